# mission_control/services/sheets.py
"""
Google Sheets projection of missions.

One tab per mission (named by the sanitized title) is kept current while the
mission is active: rows are appended on intake and vote cells are rewritten on
every vote change. At export time the tab is cleared and rewritten from local
state with one column per judge. Local storage stays the source of truth, so
every public call here reports success/failure instead of raising.
"""
from __future__ import annotations

import asyncio
import contextlib
import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Sequence

import gspread
from gspread.exceptions import WorksheetNotFound
from gspread.utils import rowcol_to_a1
from loguru import logger

from mission_control.models.mission import Mission, MissionStatus
from mission_control.models.submission import Submission, Vote
from mission_control.storage import MissionStore
from mission_control.utils.text import sanitize_sheet_title

CONTENT_LIMIT = 500

BASE_HEADERS = [
    "Submission ID",
    "Source",
    "User ID",
    "User Tag",
    "URL",
    "Content",
    "Submitted At",
    "Vote Count",
    "Average Score",
]
SHEET_HEADERS = [*BASE_HEADERS, "Votes (JSON)"]

TELEGRAM_SHEET_NAME = "Telegram Submissions"
TELEGRAM_HEADERS = [
    "Submission ID",
    "User ID",
    "Username",
    "URL",
    "Content",
    "Submitted At",
    "Chat ID",
]

GOOGLE_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


class SheetsNotConfigured(RuntimeError):
    pass


@dataclass
class ExportResult:
    success: bool
    row_count: int = 0
    error: Optional[str] = None


# ───────────────── row schema ─────────────────

class RowLayout:
    """Header → column mapping, computed once per sheet read."""

    def __init__(self, headers: Sequence[str]):
        self.headers = list(headers)
        self._index: Dict[str, int] = {}
        for i, h in enumerate(self.headers):
            self._index.setdefault(h, i)

    def has(self, name: str) -> bool:
        return name in self._index

    def col(self, name: str) -> int:
        """1-based column number."""
        return self._index[name] + 1

    def get(self, row: Sequence[str], name: str) -> str:
        i = self._index.get(name)
        if i is None or i >= len(row):
            return ""
        return row[i]

    def find_row(self, rows: Sequence[Sequence[str]], name: str, value: str) -> Optional[int]:
        """Sheet row number (header is row 1) of the first data row matching."""
        for offset, row in enumerate(rows):
            if self.get(row, name) == value:
                return offset + 2
        return None

    def a1(self, row_number: int, name: str) -> str:
        return rowcol_to_a1(row_number, self.col(name))


# ───────────────── row content ─────────────────

def format_average(scores: Iterable[int]) -> str:
    scores = list(scores)
    if not scores:
        return "N/A"
    return f"{sum(scores) / len(scores):.2f}"


def votes_json(votes: Sequence[Vote]) -> str:
    return json.dumps(
        [{"judgeId": v.judge_id, "score": v.score} for v in votes],
        ensure_ascii=False,
        separators=(",", ":"),
    )


def judge_label(judge_id: str) -> str:
    return f"Judge_{judge_id[-6:]}"


def submission_cells(submission: Submission) -> List[str]:
    """Leading columns shared by the live and the exported layout."""
    return [
        submission.id,
        submission.source or "discord",
        submission.user_id,
        submission.user_tag,
        submission.primary_url,
        submission.content[:CONTENT_LIMIT],
        submission.submitted_at.isoformat(),
    ]


def live_row(submission: Submission) -> List[str]:
    # votes start empty; update_votes fills them in
    return [*submission_cells(submission), "0", "N/A", "[]"]


def export_table(submissions: Sequence[Submission]) -> tuple[List[str], List[List[str]]]:
    judge_ids = sorted({v.judge_id for s in submissions for v in s.votes})
    headers = [*BASE_HEADERS, *(judge_label(j) for j in judge_ids)]
    rows: List[List[str]] = []
    for s in submissions:
        by_judge = {v.judge_id: v.score for v in s.votes}
        rows.append([
            *submission_cells(s),
            str(len(s.votes)),
            format_average(v.score for v in s.votes),
            *(str(by_judge[j]) if j in by_judge else "" for j in judge_ids),
        ])
    return headers, rows


# ───────────────── gateway ─────────────────

class SheetsGateway:
    def __init__(self, store: MissionStore, opener: Optional[Callable[[], Any]] = None):
        self.store = store
        self._opener = opener
        self._spreadsheet: Any = None
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @classmethod
    def from_settings(cls, store: MissionStore, cfg) -> "SheetsGateway":
        if not cfg.sheets_configured:
            logger.info("[SHEETS] not configured (GOOGLE_SPREADSHEET_ID / service account missing)")
            return cls(store, None)

        def _open():
            client = gspread.service_account_from_dict(
                {
                    "type": "service_account",
                    "client_email": cfg.GOOGLE_SERVICE_ACCOUNT_EMAIL,
                    "private_key": cfg.google_private_key,
                    "token_uri": "https://oauth2.googleapis.com/token",
                },
                scopes=GOOGLE_SCOPES,
            )
            return client.open_by_key(cfg.GOOGLE_SPREADSHEET_ID)

        return cls(store, _open)

    def is_configured(self) -> bool:
        return self._opener is not None

    @contextlib.asynccontextmanager
    async def _lock(self, key: str) -> AsyncIterator[None]:
        """Keyed lock; the entry is dropped once nobody holds or awaits it."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    def _doc(self):
        if self._spreadsheet is None:
            if self._opener is None:
                raise SheetsNotConfigured("GOOGLE_SPREADSHEET_ID not configured")
            self._spreadsheet = self._opener()
        return self._spreadsheet

    # ───── blocking helpers (run via asyncio.to_thread) ─────

    @staticmethod
    def _ensure_grid(ws, rows: int, cols: int) -> None:
        if ws.row_count < rows:
            ws.add_rows(rows - ws.row_count)
        if ws.col_count < cols:
            ws.add_cols(cols - ws.col_count)

    def _write_table(self, ws, headers: List[str], rows: List[List[str]]) -> None:
        width = max([len(headers), *(len(r) for r in rows)])
        self._ensure_grid(ws, len(rows) + 1, width)
        ws.update(range_name="A1", values=[headers, *rows], value_input_option="RAW")

    def _migrate_source_column(self, ws, title: str) -> None:
        values = ws.get_all_values()
        old_header, rows = values[0], values[1:]
        logger.info(f"[SHEETS] migrating «{title}»: adding Source column ({len(rows)} rows)")
        new_header = [old_header[0], "Source", *old_header[1:]]
        migrated: List[List[str]] = []
        for r in rows:
            r = list(r) + [""] * (len(old_header) - len(r))
            # pre-Source rows were all Discord submissions
            migrated.append([r[0], "discord", *r[1:]])
        ws.clear()
        self._write_table(ws, new_header, migrated)
        logger.info(f"[SHEETS] migration complete: {len(migrated)} rows")

    def _ensure_mission_sheet(self, title: str):
        doc = self._doc()
        try:
            ws = doc.worksheet(title)
        except WorksheetNotFound:
            ws = doc.add_worksheet(title=title, rows=1000, cols=len(SHEET_HEADERS))
            self._write_table(ws, SHEET_HEADERS, [])
            logger.info(f"[SHEETS] created sheet «{title}»")
            return ws

        header = ws.row_values(1)
        if not header:
            self._write_table(ws, SHEET_HEADERS, [])
        elif "Source" not in header:
            self._migrate_source_column(ws, title)
        return ws

    def _append_sync(self, title: str, row: List[str]) -> None:
        ws = self._ensure_mission_sheet(title)
        ws.append_row(row, value_input_option="RAW", table_range="A1")

    def _update_votes_sync(self, title: str, submission_id: str, cells: Dict[str, str]) -> bool:
        doc = self._doc()
        try:
            ws = doc.worksheet(title)
        except WorksheetNotFound:
            logger.info(f"[SHEETS] sheet not found: «{title}»")
            return False

        values = ws.get_all_values()
        if not values:
            return False
        layout = RowLayout(values[0])
        row_no = layout.find_row(values[1:], "Submission ID", submission_id)
        if row_no is None:
            logger.info(f"[SHEETS] submission {submission_id} not found in «{title}»")
            return False

        updates = [
            {"range": layout.a1(row_no, name), "values": [[value]]}
            for name, value in cells.items()
            if layout.has(name)
        ]
        if updates:
            ws.batch_update(updates, value_input_option="RAW")
        return True

    def _export_sync(self, title: str, headers: List[str], rows: List[List[str]]) -> None:
        doc = self._doc()
        try:
            ws = doc.worksheet(title)
            ws.clear()
            logger.info(f"[SHEETS] cleared sheet «{title}»")
        except WorksheetNotFound:
            ws = doc.add_worksheet(title=title, rows=max(len(rows) + 1, 100), cols=len(headers))
            logger.info(f"[SHEETS] created sheet «{title}»")
        self._write_table(ws, headers, rows)

    def _append_telegram_sync(self, row: List[str]) -> None:
        doc = self._doc()
        try:
            ws = doc.worksheet(TELEGRAM_SHEET_NAME)
        except WorksheetNotFound:
            ws = doc.add_worksheet(title=TELEGRAM_SHEET_NAME, rows=1000, cols=len(TELEGRAM_HEADERS))
            self._write_table(ws, TELEGRAM_HEADERS, [])
            logger.info("[SHEETS] created Telegram submissions sheet")
        ws.append_row(row, value_input_option="RAW", table_range="A1")

    # ───── incremental ─────

    async def append_submission(self, mission: Mission, submission: Submission) -> bool:
        if mission.status != MissionStatus.ACTIVE:
            logger.info(f"[SHEETS] «{mission.title}» is {mission.status.value}, skipping append")
            return False
        if not self.is_configured():
            return False

        title = sanitize_sheet_title(mission.title)
        try:
            async with self._lock(f"sub:{submission.id}"), self._lock(f"sheet:{title}"):
                await asyncio.to_thread(self._append_sync, title, live_row(submission))
        except Exception as e:
            logger.error(f"[SHEETS] append failed for {submission.id}: {e}")
            return False
        logger.info(f"[SHEETS] appended {submission.id} ({submission.source}) to «{mission.title}»")
        return True

    async def update_votes(self, mission_id: str, submission_id: str, votes: Sequence[Vote]) -> bool:
        mission = self.store.get_mission_by_id(mission_id)
        if not mission:
            logger.info(f"[SHEETS] mission {mission_id} not found for vote update")
            return False
        if mission.status != MissionStatus.ACTIVE:
            logger.info(f"[SHEETS] «{mission.title}» is {mission.status.value}, skipping vote update")
            return False
        if not self.is_configured():
            return False

        avg = format_average(v.score for v in votes)
        cells = {
            "Vote Count": str(len(votes)),
            "Average Score": avg,
            "Votes (JSON)": votes_json(votes),
        }
        title = sanitize_sheet_title(mission.title)
        try:
            # same order as append_submission; a Source migration rewrites the whole sheet
            async with self._lock(f"sub:{submission_id}"), self._lock(f"sheet:{title}"):
                ok = await asyncio.to_thread(self._update_votes_sync, title, submission_id, cells)
        except Exception as e:
            logger.error(f"[SHEETS] vote update failed for {submission_id}: {e}")
            return False
        if ok:
            logger.info(f"[SHEETS] votes for {submission_id}: {len(votes)} votes, avg {avg}")
        return ok

    async def append_telegram_submission(self, submission: Submission, chat_id: str) -> bool:
        if not self.is_configured():
            return False
        row = [
            submission.id,
            submission.user_id,
            submission.user_tag,
            submission.primary_url,
            submission.content[:CONTENT_LIMIT],
            submission.submitted_at.isoformat(),
            chat_id,
        ]
        try:
            async with self._lock(f"sheet:{TELEGRAM_SHEET_NAME}"):
                await asyncio.to_thread(self._append_telegram_sync, row)
        except Exception as e:
            logger.error(f"[SHEETS] telegram append failed for {submission.id}: {e}")
            return False
        logger.info(f"[SHEETS] appended telegram submission {submission.id}")
        return True

    # ───── batch ─────

    async def export_mission(self, mission: Mission) -> ExportResult:
        """Full rewrite of the mission tab; on success the mission becomes exported."""
        if not self.is_configured():
            return ExportResult(False, 0, "Google Sheets not configured")
        logger.info(f"[SHEETS] exporting mission «{mission.title}»")

        submissions = self.store.get_submissions_by_mission(mission.id)
        if not submissions:
            logger.info(f"[SHEETS] no submissions for {mission.id}")
            self.store.mark_mission_exported(mission.id)
            return ExportResult(True, 0)

        headers, rows = export_table(submissions)
        title = sanitize_sheet_title(mission.title)
        try:
            async with self._lock(f"sheet:{title}"):
                await asyncio.to_thread(self._export_sync, title, headers, rows)
        except Exception as e:
            logger.error(f"[SHEETS] export failed for «{mission.title}»: {e}")
            return ExportResult(False, 0, str(e))

        self.store.mark_mission_exported(mission.id)
        self.store.mark_submissions_exported(mission.id)
        logger.info(f"[SHEETS] exported {len(rows)} submissions for «{mission.title}»")
        return ExportResult(True, len(rows))
