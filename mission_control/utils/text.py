from __future__ import annotations
import re
from typing import List

URL_RE = re.compile(r"https?://[^\s]+")
_SHEET_TITLE_BAD = re.compile(r"[*?:/\\\[\]']")

def extract_urls(text: str | None) -> List[str]:
    """URLs in order of appearance; the first one is the canonical link."""
    return URL_RE.findall(text or "")

def sanitize_sheet_title(title: str) -> str:
    # characters Google Sheets refuses in tab names; tab names max out at 100
    return _SHEET_TITLE_BAD.sub("-", title or "")[:100].strip()

def chunk_text(text: str, limit: int) -> List[str]:
    """Split on paragraph breaks so each chunk fits the platform limit."""
    if len(text) <= limit:
        return [text]
    chunks: List[str] = []
    current = ""
    for paragraph in text.split("\n\n"):
        while len(paragraph) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(paragraph[:limit])
            paragraph = paragraph[limit:]
        candidate = f"{current}\n\n{paragraph}" if current else paragraph
        if len(candidate) > limit:
            chunks.append(current)
            current = paragraph
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks
