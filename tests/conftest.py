from datetime import timedelta
from typing import Dict, List

import pytest
from gspread.exceptions import WorksheetNotFound
from gspread.utils import a1_to_rowcol

from mission_control.services.intake import SubmissionIntake
from mission_control.services.sheets import SheetsGateway
from mission_control.storage import MissionStore
from mission_control.utils.time import now_dt


class FakeWorksheet:
    """In-memory stand-in for the slice of gspread.Worksheet the gateway uses."""

    def __init__(self, title: str, rows: int = 1000, cols: int = 26):
        self.title = title
        self.row_count = rows
        self.col_count = cols
        self.cells: List[List[str]] = []
        self.calls: List[str] = []

    def _set(self, row: int, col: int, value: str) -> None:
        if row > self.row_count or col > self.col_count:
            raise ValueError(f"{self.title}: ({row},{col}) exceeds grid limits")
        while len(self.cells) < row:
            self.cells.append([])
        line = self.cells[row - 1]
        while len(line) < col:
            line.append("")
        line[col - 1] = value

    def get_all_values(self) -> List[List[str]]:
        self.calls.append("get_all_values")
        width = max((len(r) for r in self.cells), default=0)
        return [list(r) + [""] * (width - len(r)) for r in self.cells]

    def row_values(self, row: int) -> List[str]:
        if row > len(self.cells):
            return []
        return list(self.cells[row - 1])

    def update(self, range_name=None, values=None, **kwargs):
        self.calls.append("update")
        row0, col0 = a1_to_rowcol(range_name)
        for i, line in enumerate(values):
            for j, v in enumerate(line):
                self._set(row0 + i, col0 + j, v)

    def batch_update(self, data, **kwargs):
        self.calls.append("batch_update")
        for item in data:
            self.update(range_name=item["range"], values=item["values"])

    def append_row(self, values, **kwargs):
        self.calls.append("append_row")
        last = 0
        for i, r in enumerate(self.cells):
            if any(r):
                last = i + 1
        if last + 1 > self.row_count:
            self.row_count = last + 1
        self.col_count = max(self.col_count, len(values))
        for j, v in enumerate(values):
            self._set(last + 1, j + 1, v)

    def clear(self):
        self.calls.append("clear")
        self.cells = []

    def add_rows(self, n: int):
        self.row_count += n

    def add_cols(self, n: int):
        self.col_count += n


class FakeSpreadsheet:
    def __init__(self):
        self.sheets: Dict[str, FakeWorksheet] = {}
        self.fail = False

    def worksheet(self, title: str) -> FakeWorksheet:
        if self.fail:
            raise RuntimeError("spreadsheet unreachable")
        try:
            return self.sheets[title]
        except KeyError:
            raise WorksheetNotFound(title)

    def add_worksheet(self, title: str, rows: int, cols: int) -> FakeWorksheet:
        ws = self.sheets[title] = FakeWorksheet(title, rows, cols)
        return ws


class FakeCloser:
    def __init__(self, result: bool = True):
        self.result = result
        self.closed: List[str] = []

    async def close_thread(self, thread_id: str) -> bool:
        self.closed.append(thread_id)
        return self.result


@pytest.fixture
def store(tmp_path):
    return MissionStore(str(tmp_path / "data"))


@pytest.fixture
def spreadsheet():
    return FakeSpreadsheet()


@pytest.fixture
def sheets(store, spreadsheet):
    return SheetsGateway(store, lambda: spreadsheet)


@pytest.fixture
def intake(store, sheets):
    return SubmissionIntake(store, sheets)


@pytest.fixture
def closer():
    return FakeCloser()


@pytest.fixture
def active_mission(store):
    return store.register_mission("thread-1", "Pyth Pro: launch", now_dt() + timedelta(days=3))


def make_submission(store, mission, message_id="msg-1", user_id="user-1", url="https://x.com/a/1", source="discord"):
    return store.create_submission(
        message_id=message_id,
        channel_id=mission.thread_id,
        thread_id=mission.thread_id,
        mission_id=mission.id,
        user_id=user_id,
        user_tag=f"tag-{user_id}",
        content=f"my post {url}",
        urls=[url],
        source=source,
    )
