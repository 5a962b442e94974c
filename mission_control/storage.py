# mission_control/storage.py
"""
File-backed store for missions and submissions.

Two JSON documents live in the data directory:
    missions.json     → {"missions": [...]}
    submissions.json  → {"submissions": [...]}

Every operation loads the whole document, mutates it and writes it back.
There is no cross-process locking: one process owns the data directory.
"""
from __future__ import annotations

import json
import os
import random
import string
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from mission_control.models.mission import Mission, MissionStatus
from mission_control.models.submission import Submission, SourceT, Vote
from mission_control.services.lifecycle import can_transition, is_close_eligible, is_export_eligible
from mission_control.utils.time import ensure_utc, now_dt

M = TypeVar("M", bound=BaseModel)


class StorageError(RuntimeError):
    pass


class StorageCorruptError(StorageError):
    """Persisted document can't be parsed; no partial recovery is attempted."""


def _rand_suffix(n: int = 4) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=n))


class MissionStore:
    MISSIONS_FILE = "missions.json"
    SUBMISSIONS_FILE = "submissions.json"

    def __init__(self, data_dir: str, clock: Callable[[], datetime] = now_dt):
        self.data_dir = data_dir
        self.missions_path = os.path.join(data_dir, self.MISSIONS_FILE)
        self.submissions_path = os.path.join(data_dir, self.SUBMISSIONS_FILE)
        self._clock = clock

    # ───────────────── low level ─────────────────

    def _ensure_dir(self) -> None:
        if not os.path.isdir(self.data_dir):
            os.makedirs(self.data_dir, exist_ok=True)
            logger.info(f"[STORAGE] created data directory: {self.data_dir}")

    def _load(self, path: str, key: str, model: Type[M]) -> List[M]:
        self._ensure_dir()
        if not os.path.exists(path):
            return []
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
        try:
            doc = json.loads(raw)
            items = doc[key]
            return [model.model_validate(x) for x in items]
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            raise StorageCorruptError(f"{path} is malformed: {e}") from e

    def _save(self, path: str, key: str, items: List[BaseModel]) -> None:
        self._ensure_dir()
        doc: Dict[str, Any] = {
            key: [x.model_dump(mode="json", by_alias=True, exclude_none=True) for x in items]
        }
        with open(path, "w", encoding="utf-8") as f:
            f.write(json.dumps(doc, ensure_ascii=False, indent=2))

    def load_missions(self) -> List[Mission]:
        return self._load(self.missions_path, "missions", Mission)

    def save_missions(self, missions: List[Mission]) -> None:
        self._save(self.missions_path, "missions", missions)

    def load_submissions(self) -> List[Submission]:
        return self._load(self.submissions_path, "submissions", Submission)

    def save_submissions(self, submissions: List[Submission]) -> None:
        self._save(self.submissions_path, "submissions", submissions)

    # ───────────────── MISSIONS ─────────────────

    def register_mission(
        self,
        thread_id: str,
        title: str,
        deadline: datetime,
        brief: Optional[str] = None,
    ) -> Mission:
        """Idempotent per thread: an existing mission is returned untouched."""
        missions = self.load_missions()
        for m in missions:
            if m.thread_id == thread_id:
                logger.debug(f"[STORAGE] mission already registered: {m.id} (thread {thread_id})")
                return m

        taken = {m.id for m in missions}
        stamp = int(time.time() * 1000)
        mission_id = f"mission-{stamp}"
        while mission_id in taken:
            stamp += 1
            mission_id = f"mission-{stamp}"

        mission = Mission(
            id=mission_id,
            title=title,
            thread_id=thread_id,
            deadline=ensure_utc(deadline),
            status=MissionStatus.ACTIVE,
            created_at=self._clock(),
            brief=brief,
        )
        missions.append(mission)
        self.save_missions(missions)
        logger.info(f"[STORAGE] mission registered: {mission.id} «{title}»")
        return mission

    def get_mission_by_thread(self, thread_id: str) -> Optional[Mission]:
        return next((m for m in self.load_missions() if m.thread_id == thread_id), None)

    def get_mission_by_id(self, mission_id: str) -> Optional[Mission]:
        return next((m for m in self.load_missions() if m.id == mission_id), None)

    def get_mission_by_telegram_message(self, message_id: str) -> Optional[Mission]:
        return next((m for m in self.load_missions() if m.telegram_message_id == message_id), None)

    def update_mission_telegram_info(self, mission_id: str, message_id: str, chat_id: str) -> bool:
        missions = self.load_missions()
        mission = next((m for m in missions if m.id == mission_id), None)
        if not mission:
            logger.warning(f"[STORAGE] telegram link: mission not found {mission_id}")
            return False
        mission.telegram_message_id = message_id
        mission.telegram_chat_id = chat_id
        self.save_missions(missions)
        logger.info(f"[STORAGE] mission {mission_id} linked to telegram msg={message_id} chat={chat_id}")
        return True

    def update_mission_deadline(self, mission_id: str, new_deadline: datetime) -> bool:
        missions = self.load_missions()
        mission = next((m for m in missions if m.id == mission_id), None)
        if not mission:
            logger.warning(f"[STORAGE] deadline update: mission not found {mission_id}")
            return False
        if mission.status != MissionStatus.ACTIVE:
            logger.info(f"[STORAGE] deadline update refused: {mission_id} is {mission.status.value}")
            return False
        mission.deadline = ensure_utc(new_deadline)
        self.save_missions(missions)
        logger.info(f"[STORAGE] mission {mission_id} deadline → {mission.deadline.isoformat()}")
        return True

    def _transition(self, mission_id: str, dst: MissionStatus) -> Optional[Mission]:
        missions = self.load_missions()
        mission = next((m for m in missions if m.id == mission_id), None)
        if not mission:
            logger.warning(f"[STORAGE] mark {dst.value}: mission not found {mission_id}")
            return None
        if mission.status == dst:
            return mission
        if not can_transition(mission.status, dst):
            logger.warning(f"[STORAGE] illegal transition {mission.status.value} → {dst.value} for {mission_id}")
            return mission
        mission.status = dst
        if dst == MissionStatus.EXPORTED:
            mission.exported_at = self._clock()
        self.save_missions(missions)
        logger.info(f"[STORAGE] mission {mission_id} marked {dst.value}")
        return mission

    def mark_mission_closed(self, mission_id: str) -> Optional[Mission]:
        return self._transition(mission_id, MissionStatus.CLOSED)

    def mark_mission_exported(self, mission_id: str) -> Optional[Mission]:
        return self._transition(mission_id, MissionStatus.EXPORTED)

    def get_active_missions(self) -> List[Mission]:
        return [m for m in self.load_missions() if m.status == MissionStatus.ACTIVE]

    def get_missions_past_deadline(self, now: Optional[datetime] = None) -> List[Mission]:
        """Active missions whose deadline elapsed (close-eligible)."""
        now = now or self._clock()
        return [m for m in self.load_missions() if is_close_eligible(m, now)]

    def get_missions_pending_export(self, now: Optional[datetime] = None) -> List[Mission]:
        """Past deadline and not yet exported (export-eligible, closed included)."""
        now = now or self._clock()
        return [m for m in self.load_missions() if is_export_eligible(m, now)]

    # ───────────────── SUBMISSIONS ─────────────────

    def create_submission(
        self,
        message_id: str,
        channel_id: str,
        thread_id: str,
        mission_id: str,
        user_id: str,
        user_tag: str,
        content: str,
        urls: List[str],
        source: SourceT = "discord",
    ) -> Submission:
        submissions = self.load_submissions()
        submission = Submission(
            id=f"sub-{int(time.time() * 1000)}-{_rand_suffix()}",
            message_id=message_id,
            channel_id=channel_id,
            thread_id=thread_id,
            mission_id=mission_id,
            user_id=user_id,
            user_tag=user_tag,
            content=content,
            urls=list(urls),
            votes=[],
            submitted_at=self._clock(),
            exported=False,
            source=source,
        )
        submissions.append(submission)
        self.save_submissions(submissions)
        logger.info(f"[STORAGE] submission created: {submission.id} (source: {source})")
        return submission

    def get_submission_by_message(self, message_id: str) -> Optional[Submission]:
        return next((s for s in self.load_submissions() if s.message_id == message_id), None)

    def get_submission_by_id(self, submission_id: str) -> Optional[Submission]:
        return next((s for s in self.load_submissions() if s.id == submission_id), None)

    def get_submissions_by_mission(self, mission_id: str) -> List[Submission]:
        return [s for s in self.load_submissions() if s.mission_id == mission_id]

    def record_vote(self, submission_id: str, judge_id: str, score: int) -> Optional[Submission]:
        """Upsert keyed by judge: a repeated vote replaces score and timestamp."""
        if not 1 <= int(score) <= 5:
            raise ValueError(f"score must be 1..5, got {score}")
        submissions = self.load_submissions()
        submission = next((s for s in submissions if s.id == submission_id), None)
        if not submission:
            logger.error(f"[STORAGE] vote: submission not found {submission_id}")
            return None
        if submission.exported:
            logger.info(f"[STORAGE] vote ignored, {submission_id} already exported")
            return submission

        vote = Vote(judge_id=judge_id, score=int(score), timestamp=self._clock())
        for i, existing in enumerate(submission.votes):
            if existing.judge_id == judge_id:
                submission.votes[i] = vote
                logger.info(f"[STORAGE] vote updated: judge {judge_id} → {score} on {submission_id}")
                break
        else:
            submission.votes.append(vote)
            logger.info(f"[STORAGE] vote recorded: judge {judge_id} gave {score} to {submission_id}")

        self.save_submissions(submissions)
        return submission

    def remove_vote(self, submission_id: str, judge_id: str) -> Optional[Submission]:
        """Returns the updated submission, or None when no vote was removed."""
        submissions = self.load_submissions()
        submission = next((s for s in submissions if s.id == submission_id), None)
        if not submission:
            return None
        if submission.exported:
            logger.info(f"[STORAGE] vote removal ignored, {submission_id} already exported")
            return None
        before = len(submission.votes)
        submission.votes = [v for v in submission.votes if v.judge_id != judge_id]
        if len(submission.votes) == before:
            return None
        self.save_submissions(submissions)
        logger.info(f"[STORAGE] vote removed: judge {judge_id} from {submission_id}")
        return submission

    def mark_submissions_exported(self, mission_id: str) -> int:
        submissions = self.load_submissions()
        n = 0
        for s in submissions:
            if s.mission_id == mission_id and not s.exported:
                s.exported = True
                n += 1
        self.save_submissions(submissions)
        return n
