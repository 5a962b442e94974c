# main.py: web entry (Telegram webhook), Discord client and deadline sweep
from __future__ import annotations

# --- load .env before settings are read ------------------------------------------
try:
    from dotenv import load_dotenv
    load_dotenv(override=False)
except ImportError:
    pass

import asyncio
import contextlib
from typing import Optional

from fastapi import FastAPI, Request
from loguru import logger

from aiogram import Bot, Dispatcher, types
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties

from mission_control.config import settings
from mission_control.discord_bot import MissionDiscordBot
from mission_control.handlers import register as register_handlers
from mission_control.logging import setup_logging
from mission_control.middlewares.debug import DebugMiddleware
from mission_control.services.ai_client import AIClient
from mission_control.services.deadline_checker import DeadlineSweeper
from mission_control.services.intake import SubmissionIntake
from mission_control.services.notion import NotionClient
from mission_control.services.sheets import SheetsGateway
from mission_control.storage import MissionStore

# ────────────────────────── Builders ──────────────────────────
def _build_bot() -> Bot:
    if not settings.TELEGRAM_BOT_TOKEN:
        raise RuntimeError("TELEGRAM_BOT_TOKEN not set")
    return Bot(
        token=settings.TELEGRAM_BOT_TOKEN,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )

def _build_dispatcher(**deps) -> Dispatcher:
    # deps land in workflow data and are injected into handlers by name
    dp = Dispatcher(**deps)
    register_handlers(dp)
    dbg = DebugMiddleware()
    dp.message.middleware(dbg)
    dp.callback_query.middleware(dbg)
    logger.info("[BOOT] DebugMiddleware attached")
    return dp

# ────────────────────────── Initialization ──────────────────────────
store = MissionStore(settings.storage_dir)
sheets = SheetsGateway.from_settings(store, settings)
intake = SubmissionIntake(store, sheets)
discord_bot = MissionDiscordBot(store, intake, settings)
sweeper = DeadlineSweeper(store, sheets, discord_bot, interval=settings.DEADLINE_CHECK_INTERVAL_SEC)

bot = _build_bot()
dp = _build_dispatcher(
    cfg=settings,
    store=store,
    sheets=sheets,
    intake=intake,
    discord_bot=discord_bot,
    ai=AIClient(settings.OPENROUTER_API_KEY, settings.OPENROUTER_MODEL),
    notion=NotionClient(settings.NOTION_TOKEN, settings.NOTION_CAMPAIGNS_DB_ID),
    sweeper=sweeper,
)
app = FastAPI()

_discord_task: Optional[asyncio.Task] = None

# ────────────────────────── Webhook endpoint ───────────────────────
@app.post("/webhook")
async def telegram_webhook(request: Request):
    if settings.WEBHOOK_SECRET:
        if request.headers.get("x-telegram-bot-api-secret-token") != settings.WEBHOOK_SECRET:
            return {"ok": False, "detail": "bad secret"}

    data = await request.json()
    update = types.Update.model_validate(data)
    await dp.feed_update(bot, update)
    return {"ok": True}

# ────────────────────────── Lifecycle ─────────────────────────
@app.on_event("startup")
async def on_startup():
    global _discord_task
    setup_logging(settings.LOG_LEVEL)
    logger.info("[BOOT] Mission Control starting")

    if not settings.BASE_URL:
        raise RuntimeError("BASE_URL is required (public https URL)")
    if not settings.DISCORD_BOT_TOKEN:
        raise RuntimeError("DISCORD_BOT_TOKEN not set")
    if not settings.content_configured:
        logger.warning("[ENV] NOTION_TOKEN / OPENROUTER_API_KEY missing: /mission and /tweets disabled")

    _discord_task = asyncio.create_task(discord_bot.start(settings.DISCORD_BOT_TOKEN))
    logger.info("[BOOT] discord client starting")

    url = f"{settings.BASE_URL.rstrip('/')}/webhook"
    await bot.set_webhook(
        url=url,
        secret_token=settings.WEBHOOK_SECRET or None,
        drop_pending_updates=True,
    )
    logger.info(f"[WEBHOOK] set to {url}")

    if sweeper.start():
        logger.info("[BOOT] deadline checker started")

@app.on_event("shutdown")
async def on_shutdown():
    await sweeper.stop()
    try:
        await discord_bot.close()
    except Exception as e:
        logger.warning(f"[BOOT] discord close failed: {e}")
    if _discord_task:
        with contextlib.suppress(asyncio.CancelledError):
            await _discord_task
    try:
        await bot.delete_webhook(drop_pending_updates=False)
    except Exception as e:
        logger.warning(f"[BOOT] webhook delete failed: {e}")
    await bot.session.close()
    logger.info("[BOOT] graceful shutdown complete")

# health-check
@app.get("/")
async def health():
    return {"status": "ok", "sheets": sheets.is_configured(), "sweeper": sweeper.running}
