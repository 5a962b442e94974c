# mission_control/utils/time.py
from __future__ import annotations

import re
from datetime import datetime, timezone, timedelta
from typing import Optional

# ── Base helpers (everything is UTC) ───────────────────────────────────────────
def now_dt() -> datetime:
    return datetime.now(timezone.utc)

def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are treated as UTC; aware ones are converted."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def fmt_dt(dt: Optional[datetime], fmt: str = "%Y-%m-%d %H:%M UTC") -> str:
    if dt is None:
        return "not set"
    return ensure_utc(dt).strftime(fmt)

def days_from_now(days: int) -> datetime:
    return now_dt() + timedelta(days=days)

# ── Discord timestamps: <t:1706619600>, <t:1706619600:R> ... ─────────────────
_DISCORD_TS_RE = re.compile(r"<t:(\d+)(?::[tTdDfFR])?>")

def parse_discord_timestamp(content: Optional[str]) -> Optional[datetime]:
    """First Discord timestamp token in the text, or None."""
    if not content:
        return None
    m = _DISCORD_TS_RE.search(content)
    if not m:
        return None
    return datetime.fromtimestamp(int(m.group(1)), tz=timezone.utc)

# ── Deadline parser for commands ──────────────────────────────────────────────
def parse_iso_or_date(s: Optional[str]) -> Optional[datetime]:
    """
    Accepts:
      • ISO: 'YYYY-MM-DD', 'YYYY-MM-DDTHH:MM', 'YYYY-MM-DD HH:MM'
      • 'DD.MM' (current year, 23:59)
      • 'DD.MM.YYYY' (23:59)
    Returns an aware UTC datetime.
    """
    if not s:
        return None
    s = s.strip()
    if not s:
        return None

    # DD.MM or DD.MM.YYYY → 23:59
    m = re.fullmatch(r"(\d{1,2})\.(\d{1,2})(?:\.(\d{2,4}))?", s)
    if m:
        day, month = int(m.group(1)), int(m.group(2))
        year = int(m.group(3)) if m.group(3) else now_dt().year
        if year < 100:
            year += 2000
        try:
            return datetime(year, month, day, 23, 59, tzinfo=timezone.utc)
        except ValueError:
            return None

    # bare date → 23:59
    m = re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})", s)
    if m:
        try:
            return datetime(int(m.group(1)), int(m.group(2)), int(m.group(3)), 23, 59, tzinfo=timezone.utc)
        except ValueError:
            return None

    try:
        s_iso = s.replace(" ", "T") if (" " in s and "T" not in s) else s
        return ensure_utc(datetime.fromisoformat(s_iso))
    except ValueError:
        return None
