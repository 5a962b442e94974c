from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from mission_control.utils.time import ensure_utc, now_dt


class MissionStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"
    EXPORTED = "exported"


class Mission(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    title: str
    thread_id: str = Field(alias="threadId")
    deadline: datetime
    status: MissionStatus = MissionStatus.ACTIVE
    created_at: datetime = Field(default_factory=now_dt, alias="createdAt")
    exported_at: Optional[datetime] = Field(default=None, alias="exportedAt")
    brief: Optional[str] = None
    # where the mission was announced on Telegram (replies there are submissions)
    telegram_message_id: Optional[str] = Field(default=None, alias="telegramMessageId")
    telegram_chat_id: Optional[str] = Field(default=None, alias="telegramChatId")

    @field_validator("deadline", "created_at", "exported_at")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @property
    def is_active(self) -> bool:
        return self.status == MissionStatus.ACTIVE
