# mission_control/services/notion.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp
from loguru import logger

NOTION_API = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
REQ_TIMEOUT = 30
MAX_RESULTS = 5


@dataclass
class Campaign:
    id: str
    title: str
    content: str
    url: str
    status: str = ""


def _plain(rich: List[Dict[str, Any]]) -> str:
    return "".join(x.get("plain_text", "") for x in rich or [])


def page_title(page: Dict[str, Any]) -> str:
    for prop in (page.get("properties") or {}).values():
        if prop.get("type") == "title":
            return _plain(prop.get("title")) or "Untitled"
    return "Untitled"


def page_status(page: Dict[str, Any]) -> str:
    prop = (page.get("properties") or {}).get("Status") or {}
    value = prop.get("status") or prop.get("select") or {}
    return value.get("name", "") if isinstance(value, dict) else ""


def block_text(block: Dict[str, Any]) -> str:
    body = block.get(block.get("type", ""), {}) or {}
    text = _plain(body.get("rich_text"))
    if block.get("type") in ("bulleted_list_item", "numbered_list_item") and text:
        return f"• {text}"
    if block.get("type", "").startswith("heading") and text:
        return f"## {text}"
    return text


class NotionClient:
    """Search campaign pages and pull their text. Failures log and return empty results."""

    def __init__(self, token: Optional[str], database_id: Optional[str] = None, timeout: int = REQ_TIMEOUT):
        self.token = (token or "").strip()
        self.database_id = (database_id or "").replace("-", "")
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.token)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Notion-Version": NOTION_VERSION,
            "Content-Type": "application/json",
        }

    async def _page_text(self, sess: aiohttp.ClientSession, page_id: str) -> str:
        url = f"{NOTION_API}/blocks/{page_id}/children?page_size=100"
        async with sess.get(url, headers=self._headers()) as r:
            if r.status >= 400:
                logger.warning(f"[NOTION] blocks {page_id}: HTTP {r.status}")
                return ""
            data = await r.json()
        lines = [block_text(b) for b in data.get("results", [])]
        return "\n".join(x for x in lines if x)

    async def search_campaigns(self, topic: str) -> List[Campaign]:
        if not self.token:
            logger.warning("[NOTION] NOTION_TOKEN is empty, skipping search")
            return []

        payload = {
            "query": topic,
            "filter": {"property": "object", "value": "page"},
            "page_size": 20,
        }
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as sess:
                async with sess.post(f"{NOTION_API}/search", headers=self._headers(), json=payload) as r:
                    if r.status >= 400:
                        logger.error(f"[NOTION] search HTTP {r.status}: {await r.text()}")
                        return []
                    data = await r.json()

                pages = data.get("results", [])
                if self.database_id:
                    # prefer pages from the campaigns database when it's known
                    in_db = [
                        p for p in pages
                        if (p.get("parent") or {}).get("database_id", "").replace("-", "") == self.database_id
                    ]
                    pages = in_db or pages

                out: List[Campaign] = []
                for page in pages[:MAX_RESULTS]:
                    out.append(Campaign(
                        id=page["id"],
                        title=page_title(page),
                        content=await self._page_text(sess, page["id"]),
                        url=page.get("url", ""),
                        status=page_status(page),
                    ))
        except Exception as e:
            logger.exception(f"[NOTION] search failed: {e}")
            return []

        logger.info(f"[NOTION] «{topic}» → {len(out)} page(s)")
        return out
