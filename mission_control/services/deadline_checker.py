# mission_control/services/deadline_checker.py
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Optional, Protocol

from loguru import logger

from mission_control.models.mission import Mission
from mission_control.services.lifecycle import SweepStep, next_sweep_step
from mission_control.services.sheets import SheetsGateway
from mission_control.storage import MissionStore
from mission_control.utils.time import now_dt

CHECK_INTERVAL_SEC = 5 * 60


class ThreadCloser(Protocol):
    async def close_thread(self, thread_id: str) -> bool: ...


class DeadlineSweeper:
    """
    Periodic sweep: close threads whose deadline passed, then export them.

    A closed-but-not-exported mission is retried on the next cycle (export
    only). Missions are processed one at a time so two exports never write
    the same sheet concurrently.
    """

    def __init__(
        self,
        store: MissionStore,
        sheets: SheetsGateway,
        closer: ThreadCloser,
        interval: float = CHECK_INTERVAL_SEC,
    ):
        self.store = store
        self.sheets = sheets
        self.closer = closer
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    async def _process(self, mission: Mission, now: datetime) -> SweepStep:
        step = next_sweep_step(mission, now)
        if step == SweepStep.NONE:
            return step

        logger.info(f"[DEADLINE] processing «{mission.title}» (deadline {mission.deadline.isoformat()}, {step.value})")
        if step == SweepStep.CLOSE_AND_EXPORT:
            try:
                closed = await self.closer.close_thread(mission.thread_id)
            except Exception as e:
                logger.error(f"[DEADLINE] close_thread raised for «{mission.title}»: {e}")
                closed = False
            if closed:
                self.store.mark_mission_closed(mission.id)
                logger.info(f"[DEADLINE] thread closed for «{mission.title}»")
            else:
                logger.warning(f"[DEADLINE] could not close thread for «{mission.title}», exporting anyway")

        current = self.store.get_mission_by_id(mission.id) or mission
        result = await self.sheets.export_mission(current)
        if result.success:
            logger.info(f"[DEADLINE] exported «{mission.title}»: {result.row_count} submissions")
        else:
            logger.error(f"[DEADLINE] export failed for «{mission.title}»: {result.error}")
        return step

    async def run_once(self, now: Optional[datetime] = None) -> int:
        """One sweep; returns how many missions were handled."""
        if not self.sheets.is_configured():
            return 0
        now = now or now_dt()
        due = self.store.get_missions_pending_export(now)
        if not due:
            return 0

        logger.info(f"[DEADLINE] {len(due)} mission(s) past deadline")
        handled = 0
        for mission in due:
            try:
                await self._process(mission, now)
                handled += 1
            except Exception as e:
                logger.exception(f"[DEADLINE] error on «{mission.title}»: {e}")
        return handled

    async def trigger(self) -> int:
        logger.info("[DEADLINE] manual check triggered")
        return await self.run_once()

    async def _loop(self) -> None:
        logger.info(f"[DEADLINE] loop started (every {self.interval:g}s)")
        while not self._stop.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.exception(f"[DEADLINE] sweep error: {e}")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("[DEADLINE] stopped")

    def start(self) -> Optional[asyncio.Task]:
        if not self.sheets.is_configured():
            logger.info("[DEADLINE] Google Sheets not configured, deadline checker off")
            return None
        if self._task and not self._task.done():
            return self._task
        self._stop.clear()
        self._task = asyncio.create_task(self._loop())
        return self._task

    async def stop(self) -> None:
        """Cancels the timer; a sweep already running is allowed to finish."""
        self._stop.set()
        if self._task:
            await self._task
            self._task = None

    @property
    def running(self) -> bool:
        return bool(self._task and not self._task.done())
