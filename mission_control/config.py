# mission_control/config.py
from __future__ import annotations
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional
import json, os, re


class Settings(BaseSettings):
    """
    Single project configuration (pydantic-settings).
    Every value can be set through the environment or .env.
    """

    # read .env (UTF-8) and IGNORE unknown keys
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Telegram ───────────────────────────────────────────────────────────────
    TELEGRAM_BOT_TOKEN: Optional[str] = Field(default=None, validation_alias="TELEGRAM_BOT_TOKEN")
    TELEGRAM_ALLOWED_CHAT_IDS_RAW: str = Field(default="", validation_alias="TELEGRAM_ALLOWED_CHAT_IDS")
    TELEGRAM_ANNOUNCEMENT_CHANNEL_ID: Optional[str] = Field(default=None, validation_alias="TELEGRAM_ANNOUNCEMENT_CHANNEL_ID")

    # ── Discord ────────────────────────────────────────────────────────────────
    DISCORD_BOT_TOKEN: Optional[str] = Field(default=None, validation_alias="DISCORD_BOT_TOKEN")
    DISCORD_GUILD_ID: Optional[str] = Field(default=None, validation_alias="DISCORD_GUILD_ID")
    DISCORD_MISSION_CHANNEL_ID: Optional[str] = Field(default=None, validation_alias="DISCORD_MISSION_CHANNEL_ID")
    DISCORD_JUDGE_ROLE_IDS_RAW: str = Field(default="", validation_alias="DISCORD_JUDGE_ROLE_IDS")

    # ── Content services (optional: /mission and /tweets) ─────────────────────
    OPENROUTER_API_KEY: Optional[str] = Field(default=None, validation_alias="OPENROUTER_API_KEY")
    OPENROUTER_MODEL: str = Field(default="anthropic/claude-sonnet-4", validation_alias="OPENROUTER_MODEL")
    NOTION_TOKEN: Optional[str] = Field(default=None, validation_alias="NOTION_TOKEN")
    NOTION_CAMPAIGNS_DB_ID: Optional[str] = Field(default=None, validation_alias="NOTION_CAMPAIGNS_DB_ID")

    # ── Google Sheets (optional) ───────────────────────────────────────────────
    GOOGLE_SPREADSHEET_ID: Optional[str] = Field(default=None, validation_alias="GOOGLE_SPREADSHEET_ID")
    GOOGLE_SERVICE_ACCOUNT_EMAIL: Optional[str] = Field(default=None, validation_alias="GOOGLE_SERVICE_ACCOUNT_EMAIL")
    GOOGLE_PRIVATE_KEY: Optional[str] = Field(default=None, validation_alias="GOOGLE_PRIVATE_KEY")

    # ── Deadlines / Storage / Logging ──────────────────────────────────────────
    DEADLINE_CHECK_INTERVAL_SEC: int = Field(default=300, validation_alias="DEADLINE_CHECK_INTERVAL_SEC")
    DEFAULT_DEADLINE_DAYS: int = Field(default=7, validation_alias="DEFAULT_DEADLINE_DAYS")
    STORAGE_DIR: Optional[str] = Field(default=None, validation_alias="STORAGE_DIR")
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # ── Webhook ────────────────────────────────────────────────────────────────
    BASE_URL: Optional[str] = Field(default=None, validation_alias="BASE_URL")
    WEBHOOK_SECRET: str = Field(default="", validation_alias="WEBHOOK_SECRET")

    # ── helpers: list parsing ──────────────────────────────────────────────────
    @staticmethod
    def _parse_ids(val: str) -> List[str]:
        """Accepts a JSON array or CSV/whitespace separated ids; ids stay strings."""
        if not val:
            return []
        try:
            data = json.loads(val)
            if isinstance(data, list):
                return [str(x).strip() for x in data if str(x).strip()]
        except ValueError:
            pass
        val = val.strip().strip("[]")
        out: List[str] = []
        for p in re.split(r"[,\s]+", val):
            m = re.search(r"-?\d+", p)
            if m:
                out.append(m.group(0))
        return out

    @property
    def TELEGRAM_ALLOWED_CHAT_IDS(self) -> List[str]:
        return self._parse_ids(self.TELEGRAM_ALLOWED_CHAT_IDS_RAW)

    @property
    def DISCORD_JUDGE_ROLE_IDS(self) -> List[str]:
        return self._parse_ids(self.DISCORD_JUDGE_ROLE_IDS_RAW)

    @property
    def google_private_key(self) -> Optional[str]:
        # keys pasted into .env usually carry literal "\n"
        if not self.GOOGLE_PRIVATE_KEY:
            return None
        return self.GOOGLE_PRIVATE_KEY.replace("\\n", "\n")

    @property
    def storage_dir(self) -> str:
        if self.STORAGE_DIR and self.STORAGE_DIR.strip():
            return self.STORAGE_DIR.strip()
        root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
        return os.path.join(root, "data")

    @property
    def sheets_configured(self) -> bool:
        return bool(self.GOOGLE_SPREADSHEET_ID and self.GOOGLE_SERVICE_ACCOUNT_EMAIL and self.GOOGLE_PRIVATE_KEY)

    @property
    def content_configured(self) -> bool:
        """Notion + AI are both needed for /mission and /tweets."""
        return bool(self.NOTION_TOKEN and self.OPENROUTER_API_KEY)


settings = Settings()
