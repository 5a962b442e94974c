"""
Mission lifecycle: active → closed → exported.

The deadline sweep re-enters missions until they are exported; which step it
may take is decided here, so a closed mission is only ever re-exported and
never re-closed.
"""
from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet

from mission_control.models.mission import Mission, MissionStatus

# active → exported is legal: the thread may fail to close while export succeeds
ALLOWED_TRANSITIONS: Dict[MissionStatus, FrozenSet[MissionStatus]] = {
    MissionStatus.ACTIVE: frozenset({MissionStatus.CLOSED, MissionStatus.EXPORTED}),
    MissionStatus.CLOSED: frozenset({MissionStatus.EXPORTED}),
    MissionStatus.EXPORTED: frozenset(),
}


class SweepStep(str, Enum):
    CLOSE_AND_EXPORT = "close_and_export"
    EXPORT_ONLY = "export_only"
    NONE = "none"


def can_transition(src: MissionStatus, dst: MissionStatus) -> bool:
    return dst in ALLOWED_TRANSITIONS[src]


def is_past_deadline(mission: Mission, now: datetime) -> bool:
    return mission.deadline < now


def is_close_eligible(mission: Mission, now: datetime) -> bool:
    return mission.status == MissionStatus.ACTIVE and is_past_deadline(mission, now)


def is_export_eligible(mission: Mission, now: datetime) -> bool:
    return mission.status != MissionStatus.EXPORTED and is_past_deadline(mission, now)


def next_sweep_step(mission: Mission, now: datetime) -> SweepStep:
    if is_close_eligible(mission, now):
        return SweepStep.CLOSE_AND_EXPORT
    if is_export_eligible(mission, now):
        return SweepStep.EXPORT_ONLY
    return SweepStep.NONE


def accepts_submissions(mission: Mission) -> bool:
    return mission.status == MissionStatus.ACTIVE
