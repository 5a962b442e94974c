import pytest

from mission_control.models.mission import MissionStatus
from mission_control.services.intake import REJECT_NO_URL, REJECT_NOT_ACTIVE, SubmissionIntake
from mission_control.services.sheets import TELEGRAM_SHEET_NAME, SheetsGateway
from mission_control.utils.text import sanitize_sheet_title


def _submit(intake, mission, message_id="msg-1", urls=("https://x.com/p/1",), source="discord", channel_id=None):
    return intake.submit(
        mission,
        message_id=message_id,
        channel_id=channel_id or mission.thread_id,
        user_id="user-1",
        user_tag="alice",
        content="look " + " ".join(urls),
        urls=list(urls),
        source=source,
    )


@pytest.mark.asyncio
async def test_accepted_submission_is_stored_and_synced(store, intake, spreadsheet, active_mission):
    result = await _submit(intake, active_mission)

    assert result.accepted
    assert result.synced
    assert store.get_submission_by_message("msg-1").id == result.submission.id
    rows = spreadsheet.sheets[sanitize_sheet_title(active_mission.title)].get_all_values()
    assert rows[1][0] == result.submission.id


@pytest.mark.asyncio
async def test_message_without_url_is_rejected(store, intake, active_mission):
    result = await _submit(intake, active_mission, urls=())
    assert not result.accepted
    assert result.rejection == REJECT_NO_URL
    assert store.load_submissions() == []


@pytest.mark.asyncio
async def test_closed_mission_rejects_even_with_stale_copy(store, intake, active_mission):
    store.mark_mission_closed(active_mission.id)
    # active_mission still says "active"
    result = await _submit(intake, active_mission)
    assert result.rejection == REJECT_NOT_ACTIVE
    assert store.load_submissions() == []


@pytest.mark.asyncio
async def test_same_message_is_recorded_once(store, intake, active_mission):
    first = await _submit(intake, active_mission)
    second = await _submit(intake, active_mission)
    assert second.duplicate
    assert second.submission.id == first.submission.id
    assert len(store.load_submissions()) == 1


@pytest.mark.asyncio
async def test_local_save_wins_when_sheets_missing(store, active_mission):
    intake = SubmissionIntake(store, SheetsGateway(store, None))
    result = await _submit(intake, active_mission)
    assert result.accepted
    assert result.synced is False
    assert store.get_submission_by_id(result.submission.id) is not None


@pytest.mark.asyncio
async def test_telegram_submission_goes_to_mission_and_mirror(store, intake, spreadsheet, active_mission):
    result = await _submit(intake, active_mission, message_id="tg--1001-5", source="telegram", channel_id="-1001")

    assert result.submission.source == "telegram"
    assert result.submission.mission_id == active_mission.id
    mission_rows = spreadsheet.sheets[sanitize_sheet_title(active_mission.title)].get_all_values()
    assert mission_rows[1][1] == "telegram"
    mirror = spreadsheet.sheets[TELEGRAM_SHEET_NAME].get_all_values()
    assert mirror[1][-1] == "-1001"


@pytest.mark.asyncio
async def test_vote_and_unvote_update_sheet(store, intake, spreadsheet, active_mission):
    await _submit(intake, active_mission)
    ws = spreadsheet.sheets[sanitize_sheet_title(active_mission.title)]

    await intake.vote("msg-1", "judge-a", 5)
    await intake.vote("msg-1", "judge-b", 3)
    assert ws.get_all_values()[1][7:9] == ["2", "4.00"]

    await intake.vote("msg-1", "judge-b", 5)
    assert ws.get_all_values()[1][7:9] == ["2", "5.00"]

    await intake.unvote("msg-1", "judge-a")
    await intake.unvote("msg-1", "judge-b")
    assert ws.get_all_values()[1][7:10] == ["0", "N/A", "[]"]


@pytest.mark.asyncio
async def test_vote_on_unknown_message(intake):
    assert await intake.vote("nope", "judge-a", 3) is None
    assert await intake.unvote("nope", "judge-a") is None


@pytest.mark.asyncio
async def test_resolve_falls_back_to_storage(store, sheets, active_mission):
    first = SubmissionIntake(store, sheets)
    result = await _submit(first, active_mission)
    # a fresh intake (e.g. after restart) has an empty cache
    fresh = SubmissionIntake(store, sheets)
    assert fresh.resolve("msg-1") == result.submission.id


@pytest.mark.asyncio
async def test_votes_after_close_are_kept_locally_only(store, intake, spreadsheet, active_mission):
    await _submit(intake, active_mission)
    store.mark_mission_closed(active_mission.id)
    sub = await intake.vote("msg-1", "judge-a", 4)
    assert sub.votes[0].score == 4
    ws = spreadsheet.sheets[sanitize_sheet_title(active_mission.title)]
    assert ws.get_all_values()[1][7] == "0"
    assert store.get_mission_by_id(active_mission.id).status == MissionStatus.CLOSED


@pytest.mark.asyncio
async def test_unvote_without_vote_leaves_sheet_alone(store, intake, spreadsheet, active_mission):
    await _submit(intake, active_mission)
    ws = spreadsheet.sheets[sanitize_sheet_title(active_mission.title)]
    calls_before = list(ws.calls)

    assert await intake.unvote("msg-1", "judge-never-voted") is None
    assert ws.calls == calls_before
