# mission_control/services/intake.py
"""
Submission and vote intake shared by the Discord and Telegram adapters.

Local persistence decides the outcome; the sheet sync that follows is
best-effort and only logged on failure.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from loguru import logger

from mission_control.models.mission import Mission
from mission_control.models.submission import Submission, SourceT
from mission_control.services.lifecycle import accepts_submissions
from mission_control.services.sheets import SheetsGateway
from mission_control.storage import MissionStore

REJECT_NOT_ACTIVE = "mission not active"
REJECT_NO_URL = "no url"


@dataclass
class IntakeResult:
    submission: Optional[Submission] = None
    rejection: Optional[str] = None
    duplicate: bool = False
    synced: bool = False

    @property
    def accepted(self) -> bool:
        return self.submission is not None


class SubmissionIntake:
    def __init__(self, store: MissionStore, sheets: SheetsGateway):
        self.store = store
        self.sheets = sheets
        # message id → submission id; storage stays authoritative
        self._by_message: Dict[str, str] = {}

    async def submit(
        self,
        mission: Mission,
        *,
        message_id: str,
        channel_id: str,
        user_id: str,
        user_tag: str,
        content: str,
        urls: List[str],
        source: SourceT,
    ) -> IntakeResult:
        if not urls:
            return IntakeResult(rejection=REJECT_NO_URL)

        existing = self.store.get_submission_by_message(message_id)
        if existing:
            logger.debug(f"[INTAKE] message {message_id} already recorded as {existing.id}")
            self._by_message[message_id] = existing.id
            return IntakeResult(submission=existing, duplicate=True)

        # re-read: the caller's copy may predate a sweep
        current = self.store.get_mission_by_id(mission.id) or mission
        if not accepts_submissions(current):
            logger.info(f"[INTAKE] rejected {message_id}: «{current.title}» is {current.status.value}")
            return IntakeResult(rejection=REJECT_NOT_ACTIVE)

        submission = self.store.create_submission(
            message_id=message_id,
            channel_id=channel_id,
            thread_id=current.thread_id,
            mission_id=current.id,
            user_id=user_id,
            user_tag=user_tag,
            content=content,
            urls=urls,
            source=source,
        )
        self._by_message[message_id] = submission.id

        synced = await self.sheets.append_submission(current, submission)
        if not synced:
            logger.warning(f"[INTAKE] {submission.id} saved locally, sheet append skipped/failed")
        if source == "telegram":
            await self.sheets.append_telegram_submission(submission, channel_id)
        return IntakeResult(submission=submission, synced=synced)

    def resolve(self, message_id: str) -> Optional[str]:
        sid = self._by_message.get(message_id)
        if sid:
            return sid
        submission = self.store.get_submission_by_message(message_id)
        if not submission:
            return None
        self._by_message[message_id] = submission.id
        return submission.id

    async def _push_votes(self, submission: Submission) -> bool:
        ok = await self.sheets.update_votes(submission.mission_id, submission.id, submission.votes)
        if not ok:
            logger.debug(f"[INTAKE] vote sync skipped/failed for {submission.id}")
        return ok

    async def vote(self, message_id: str, judge_id: str, score: int) -> Optional[Submission]:
        """Judge authorization is the adapter's job; the caller is trusted here."""
        sid = self.resolve(message_id)
        if not sid:
            return None
        submission = self.store.record_vote(sid, judge_id, score)
        if submission:
            await self._push_votes(submission)
        return submission

    async def unvote(self, message_id: str, judge_id: str) -> Optional[Submission]:
        sid = self.resolve(message_id)
        if not sid:
            return None
        submission = self.store.remove_vote(sid, judge_id)
        if submission:
            await self._push_votes(submission)
        return submission
