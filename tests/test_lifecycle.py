from datetime import timedelta

import pytest

from mission_control.models.mission import Mission, MissionStatus
from mission_control.services.lifecycle import (
    SweepStep,
    accepts_submissions,
    can_transition,
    is_close_eligible,
    is_export_eligible,
    next_sweep_step,
)
from mission_control.utils.time import now_dt


def _mission(status: MissionStatus, deadline_delta: timedelta) -> Mission:
    now = now_dt()
    return Mission(
        id="mission-1",
        title="Test",
        thread_id="t-1",
        deadline=now + deadline_delta,
        status=status,
        created_at=now,
    )


@pytest.mark.parametrize(
    "src,dst,ok",
    [
        (MissionStatus.ACTIVE, MissionStatus.CLOSED, True),
        (MissionStatus.ACTIVE, MissionStatus.EXPORTED, True),
        (MissionStatus.CLOSED, MissionStatus.EXPORTED, True),
        (MissionStatus.CLOSED, MissionStatus.ACTIVE, False),
        (MissionStatus.EXPORTED, MissionStatus.CLOSED, False),
        (MissionStatus.EXPORTED, MissionStatus.ACTIVE, False),
    ],
)
def test_transitions_only_move_forward(src, dst, ok):
    assert can_transition(src, dst) is ok


def test_active_before_deadline_is_left_alone():
    m = _mission(MissionStatus.ACTIVE, timedelta(hours=1))
    assert not is_close_eligible(m, now_dt())
    assert next_sweep_step(m, now_dt()) == SweepStep.NONE


def test_active_past_deadline_closes_then_exports():
    m = _mission(MissionStatus.ACTIVE, -timedelta(minutes=1))
    assert is_close_eligible(m, now_dt())
    assert is_export_eligible(m, now_dt())
    assert next_sweep_step(m, now_dt()) == SweepStep.CLOSE_AND_EXPORT


def test_closed_is_retried_as_export_only():
    m = _mission(MissionStatus.CLOSED, -timedelta(days=1))
    assert not is_close_eligible(m, now_dt())
    assert next_sweep_step(m, now_dt()) == SweepStep.EXPORT_ONLY


def test_exported_is_terminal():
    m = _mission(MissionStatus.EXPORTED, -timedelta(days=1))
    assert not is_export_eligible(m, now_dt())
    assert next_sweep_step(m, now_dt()) == SweepStep.NONE


def test_only_active_accepts_submissions():
    assert accepts_submissions(_mission(MissionStatus.ACTIVE, timedelta(days=1)))
    assert not accepts_submissions(_mission(MissionStatus.CLOSED, timedelta(days=1)))
    assert not accepts_submissions(_mission(MissionStatus.EXPORTED, timedelta(days=1)))
