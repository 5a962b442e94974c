from __future__ import annotations
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from mission_control.utils.time import ensure_utc, now_dt

SourceT = Literal["discord", "telegram"]


class Vote(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    judge_id: str = Field(alias="judgeId")
    score: int = Field(ge=1, le=5)
    timestamp: datetime = Field(default_factory=now_dt)

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class Submission(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    message_id: str = Field(alias="messageId")
    channel_id: str = Field(alias="channelId")
    thread_id: str = Field(alias="threadId")
    mission_id: str = Field(alias="missionId")
    user_id: str = Field(alias="userId")
    user_tag: str = Field(alias="userTag")
    content: str = ""
    urls: List[str] = Field(default_factory=list)
    votes: List[Vote] = Field(default_factory=list)
    submitted_at: datetime = Field(default_factory=now_dt, alias="submittedAt")
    exported: bool = False
    # records written before the field existed all came from Discord
    source: SourceT = "discord"

    @field_validator("submitted_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def primary_url(self) -> str:
        return self.urls[0] if self.urls else ""

    def vote_of(self, judge_id: str) -> Optional[Vote]:
        for v in self.votes:
            if v.judge_id == judge_id:
                return v
        return None
