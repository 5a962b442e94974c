"""Sheet sync: incremental rows, vote cells, Source migration, full export."""
import asyncio
import json
import time

import pytest

from mission_control.models.mission import MissionStatus
from mission_control.models.submission import Vote
from mission_control.services.sheets import (
    SHEET_HEADERS,
    TELEGRAM_HEADERS,
    TELEGRAM_SHEET_NAME,
    RowLayout,
    SheetsGateway,
    export_table,
    format_average,
    judge_label,
    votes_json,
)
from mission_control.utils.text import sanitize_sheet_title
from tests.conftest import FakeWorksheet, make_submission


TITLE = sanitize_sheet_title("Pyth Pro: launch")


def test_format_average():
    assert format_average([]) == "N/A"
    assert format_average([4]) == "4.00"
    assert format_average([4, 2]) == "3.00"
    assert format_average([5, 3, 4]) == "4.00"
    assert format_average([5, 4, 4]) == "4.33"


def test_votes_json_is_compact():
    out = votes_json([Vote(judge_id="j1", score=4)])
    assert out == '[{"judgeId":"j1","score":4}]'


def test_judge_label_uses_id_suffix():
    assert judge_label("123456789012") == "Judge_789012"
    assert judge_label("42") == "Judge_42"


def test_row_layout_find_row():
    layout = RowLayout(SHEET_HEADERS)
    rows = [["sub-a", "discord"], ["sub-b", "telegram"]]
    assert layout.find_row(rows, "Submission ID", "sub-b") == 3
    assert layout.find_row(rows, "Submission ID", "nope") is None
    assert layout.a1(3, "Vote Count") == "H3"


@pytest.mark.asyncio
async def test_append_creates_sheet_with_headers(store, sheets, spreadsheet, active_mission):
    sub = make_submission(store, active_mission)
    assert await sheets.append_submission(active_mission, sub) is True

    ws = spreadsheet.sheets[TITLE]
    values = ws.get_all_values()
    assert values[0] == SHEET_HEADERS
    row = values[1]
    assert row[0] == sub.id
    assert row[1] == "discord"
    assert row[4] == "https://x.com/a/1"
    assert row[7:] == ["0", "N/A", "[]"]


@pytest.mark.asyncio
async def test_append_refused_for_inactive_mission(store, sheets, spreadsheet, active_mission):
    sub = make_submission(store, active_mission)
    closed = store.mark_mission_closed(active_mission.id)
    assert await sheets.append_submission(closed, sub) is False
    assert spreadsheet.sheets == {}


@pytest.mark.asyncio
async def test_unconfigured_gateway_does_nothing(store, active_mission):
    gateway = SheetsGateway(store, None)
    sub = make_submission(store, active_mission)
    assert gateway.is_configured() is False
    assert await gateway.append_submission(active_mission, sub) is False
    assert await gateway.update_votes(active_mission.id, sub.id, []) is False
    result = await gateway.export_mission(active_mission)
    assert result.success is False
    assert store.get_mission_by_id(active_mission.id).status == MissionStatus.ACTIVE


@pytest.mark.asyncio
async def test_content_is_truncated(store, sheets, spreadsheet, active_mission):
    sub = store.create_submission(
        message_id="long",
        channel_id="thread-1",
        thread_id="thread-1",
        mission_id=active_mission.id,
        user_id="u",
        user_tag="u#1",
        content="x" * 900,
        urls=["https://x.com/1"],
    )
    await sheets.append_submission(active_mission, sub)
    assert len(spreadsheet.sheets[TITLE].get_all_values()[1][5]) == 500


@pytest.mark.asyncio
async def test_vote_update_rewrites_only_vote_cells(store, sheets, spreadsheet, active_mission):
    sub = make_submission(store, active_mission)
    await sheets.append_submission(active_mission, sub)
    store.record_vote(sub.id, "judge-a", 4)
    updated = store.record_vote(sub.id, "judge-b", 2)

    assert await sheets.update_votes(active_mission.id, sub.id, updated.votes) is True

    row = spreadsheet.sheets[TITLE].get_all_values()[1]
    assert row[0] == sub.id
    assert row[7] == "2"
    assert row[8] == "3.00"
    assert json.loads(row[9]) == [
        {"judgeId": "judge-a", "score": 4},
        {"judgeId": "judge-b", "score": 2},
    ]


@pytest.mark.asyncio
async def test_vote_update_skipped_once_mission_closed(store, sheets, spreadsheet, active_mission):
    sub = make_submission(store, active_mission)
    await sheets.append_submission(active_mission, sub)
    store.mark_mission_closed(active_mission.id)
    updated = store.record_vote(sub.id, "judge-a", 5)

    assert await sheets.update_votes(active_mission.id, sub.id, updated.votes) is False
    assert spreadsheet.sheets[TITLE].get_all_values()[1][7] == "0"


@pytest.mark.asyncio
async def test_vote_update_for_unknown_row(store, sheets, spreadsheet, active_mission):
    sub = make_submission(store, active_mission)
    await sheets.append_submission(active_mission, sub)
    assert await sheets.update_votes(active_mission.id, "sub-ghost", []) is False
    assert await sheets.update_votes("mission-ghost", sub.id, []) is False


@pytest.mark.asyncio
async def test_legacy_sheet_gets_source_column(store, sheets, spreadsheet, active_mission):
    legacy_headers = [h for h in SHEET_HEADERS if h != "Source"]
    ws = spreadsheet.add_worksheet(TITLE, rows=3, cols=len(legacy_headers))
    ws.update(
        range_name="A1",
        values=[
            legacy_headers,
            ["sub-old-1", "u1", "u1#1", "https://a", "c1", "2024-01-01T00:00:00+00:00", "1", "5.00", "[]"],
            ["sub-old-2", "u2", "u2#2", "https://b", "c2", "2024-01-02T00:00:00+00:00", "0", "N/A", "[]"],
        ],
    )

    sub = make_submission(store, active_mission, source="telegram")
    assert await sheets.append_submission(active_mission, sub) is True

    values = ws.get_all_values()
    assert values[0] == SHEET_HEADERS
    assert [r[0] for r in values[1:]] == ["sub-old-1", "sub-old-2", sub.id]
    assert [r[1] for r in values[1:]] == ["discord", "discord", "telegram"]
    assert values[1][2] == "u1"
    assert values[2][8] == "N/A"


@pytest.mark.asyncio
async def test_export_writes_judge_columns_and_marks_exported(store, sheets, spreadsheet, active_mission):
    a = make_submission(store, active_mission, message_id="m-a", user_id="alice")
    b = make_submission(store, active_mission, message_id="m-b", user_id="bob", source="telegram")
    store.record_vote(a.id, "judge-000002", 5)
    store.record_vote(a.id, "judge-000001", 3)
    store.record_vote(b.id, "judge-000001", 4)

    # stale live rows get replaced
    await sheets.append_submission(active_mission, a)

    mission = store.mark_mission_closed(active_mission.id)
    result = await sheets.export_mission(mission)

    assert result.success is True
    assert result.row_count == 2
    values = spreadsheet.sheets[TITLE].get_all_values()
    assert values[0][-2:] == ["Judge_000001", "Judge_000002"]
    assert "Votes (JSON)" not in values[0]
    assert values[1][7:] == ["2", "4.00", "3", "5"]
    assert values[2][1] == "telegram"
    assert values[2][7:] == ["1", "4.00", "4", ""]
    assert len(values) == 3

    assert store.get_mission_by_id(active_mission.id).status == MissionStatus.EXPORTED
    assert all(s.exported for s in store.get_submissions_by_mission(active_mission.id))


@pytest.mark.asyncio
async def test_export_without_submissions_still_exports(store, sheets, spreadsheet, active_mission):
    result = await sheets.export_mission(active_mission)
    assert result.success is True
    assert result.row_count == 0
    assert spreadsheet.sheets == {}
    assert store.get_mission_by_id(active_mission.id).status == MissionStatus.EXPORTED


@pytest.mark.asyncio
async def test_export_failure_leaves_state(store, sheets, spreadsheet, active_mission):
    make_submission(store, active_mission)
    mission = store.mark_mission_closed(active_mission.id)
    spreadsheet.fail = True

    result = await sheets.export_mission(mission)
    assert result.success is False
    assert "unreachable" in result.error
    assert store.get_mission_by_id(active_mission.id).status == MissionStatus.CLOSED
    assert not any(s.exported for s in store.get_submissions_by_mission(active_mission.id))


@pytest.mark.asyncio
async def test_export_grows_grid(store, sheets, spreadsheet, active_mission):
    for i in range(4):
        make_submission(store, active_mission, message_id=f"m-{i}")
    spreadsheet.sheets[TITLE] = FakeWorksheet(TITLE, rows=2, cols=3)

    result = await sheets.export_mission(active_mission)
    assert result.success is True
    ws = spreadsheet.sheets[TITLE]
    assert ws.row_count >= 5
    assert len(ws.get_all_values()) == 5


@pytest.mark.asyncio
async def test_telegram_mirror_sheet(store, sheets, spreadsheet, active_mission):
    sub = make_submission(store, active_mission, source="telegram")
    assert await sheets.append_telegram_submission(sub, "-100555") is True
    values = spreadsheet.sheets[TELEGRAM_SHEET_NAME].get_all_values()
    assert values[0] == TELEGRAM_HEADERS
    assert values[1][0] == sub.id
    assert values[1][-1] == "-100555"


def test_export_table_without_votes():
    headers, rows = export_table([])
    assert headers[-1] == "Average Score"
    assert rows == []


def test_sheet_title_is_sanitized():
    assert sanitize_sheet_title("a/b:c?d*[e]'f\\g") == "a-b-c-d--e--f-g"
    assert len(sanitize_sheet_title("x" * 300)) == 100


class SlowClearWorksheet(FakeWorksheet):
    def clear(self):
        # runs inside asyncio.to_thread, so a blocking sleep widens the gap
        time.sleep(0.3)
        super().clear()


@pytest.mark.asyncio
async def test_vote_update_waits_for_running_migration(store, sheets, spreadsheet, active_mission):
    first = make_submission(store, active_mission, message_id="m-a")
    second = make_submission(store, active_mission, message_id="m-b")
    legacy_headers = [h for h in SHEET_HEADERS if h != "Source"]
    ws = SlowClearWorksheet(TITLE, rows=10, cols=len(legacy_headers))
    ws.update(
        range_name="A1",
        values=[legacy_headers, [first.id, "u1", "u1#1", "https://a", "c", "2024-01-01T00:00:00+00:00", "0", "N/A", "[]"]],
    )
    spreadsheet.sheets[TITLE] = ws
    voted = store.record_vote(first.id, "judge-1", 4)

    async def vote_during_migration():
        await asyncio.sleep(0.1)
        return await sheets.update_votes(active_mission.id, first.id, voted.votes)

    appended, updated = await asyncio.gather(
        sheets.append_submission(active_mission, second),
        vote_during_migration(),
    )

    assert appended is True
    assert updated is True
    values = ws.get_all_values()
    assert values[0] == SHEET_HEADERS
    assert values[1][0] == first.id
    assert values[1][7:9] == ["1", "4.00"]
    assert values[2][0] == second.id


@pytest.mark.asyncio
async def test_keyed_locks_are_released(store, sheets, active_mission):
    subs = [make_submission(store, active_mission, message_id=f"m-{i}") for i in range(3)]
    await asyncio.gather(*(sheets.append_submission(active_mission, s) for s in subs))
    await asyncio.gather(*(sheets.update_votes(active_mission.id, s.id, []) for s in subs))
    await sheets.export_mission(store.mark_mission_closed(active_mission.id))

    assert sheets._locks == {}
    assert sheets._lock_users == {}
