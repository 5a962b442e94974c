# mission_control/handlers/commands.py
from __future__ import annotations

import contextlib
from html import escape
from typing import List

from aiogram import Bot, Router
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.types import Message
from loguru import logger

from mission_control.filters.allowed_chat import AllowedChat
from mission_control.services.ai_client import AIClient
from mission_control.services.briefs import brief_discord, brief_html, tweets_html
from mission_control.services.deadline_checker import DeadlineSweeper
from mission_control.services.notion import NotionClient
from mission_control.storage import MissionStore
from mission_control.utils.text import chunk_text
from mission_control.utils.time import days_from_now, fmt_dt, parse_iso_or_date

router = Router()

TELEGRAM_CHUNK = 4000  # API limit is 4096, keep a margin for entities
NOT_CONFIGURED = "⚠️ Notion and AI keys are not configured. Contact the bot admin."

HELP_TEXT = (
    "<b>Mission Control Bot</b>\n\n"
    "<b>Commands:</b>\n"
    "/mission &lt;topic&gt; — generate a mission brief &amp; create a Discord thread\n"
    "/tweets &lt;topic&gt; — generate tweet suggestions\n"
    "/status — show current missions\n"
    "/extend &lt;mission-id&gt; &lt;date&gt; — move an active mission's deadline\n"
    "/check — run the deadline check now\n"
    "/help — show this message\n\n"
    "<b>Content submissions:</b>\n"
    "Reply to a mission message with your URL to submit.\n"
    "Submissions are linked to the mission and tracked in Google Sheets."
)


async def send_long(bot: Bot, chat_id: int | str, text: str) -> List[Message]:
    return [await bot.send_message(chat_id, chunk) for chunk in chunk_text(text, TELEGRAM_CHUNK)]


@router.message(CommandStart())
async def cmd_start(m: Message):
    await m.answer(
        "<b>Mission Control Bot</b>\n\n"
        "Generates mission briefs from Notion content and opens Discord threads for submissions.\n\n"
        "Use /help to see available commands."
    )


@router.message(Command("help"), AllowedChat())
async def cmd_help(m: Message):
    await m.answer(HELP_TEXT)


@router.message(Command("status"), AllowedChat())
async def cmd_status(m: Message, store: MissionStore):
    active = store.get_active_missions()
    pending = store.get_missions_pending_export()
    lines = [
        "<b>Mission Control Status</b>",
        "",
        f"Active missions: {len(active)}",
        f"Past deadline (pending export): {len(pending)}",
    ]
    if active:
        lines += ["", "<b>Active missions:</b>"]
        for mission in active[:5]:
            lines.append(f"• {escape(mission.title)} ({fmt_dt(mission.deadline, '%Y-%m-%d')}) <code>{mission.id}</code>")
    await m.answer("\n".join(lines))


@router.message(Command("extend"), AllowedChat())
async def cmd_extend(m: Message, command: CommandObject, store: MissionStore):
    parts = (command.args or "").split(maxsplit=1)
    if len(parts) < 2:
        await m.reply("<b>Usage:</b> /extend &lt;mission-id&gt; &lt;YYYY-MM-DD [HH:MM] | DD.MM&gt;")
        return
    mission_id, raw_date = parts
    deadline = parse_iso_or_date(raw_date)
    if deadline is None:
        await m.reply("⚠️ Could not parse the date.")
        return
    mission = store.get_mission_by_id(mission_id)
    if mission is None:
        await m.reply("⚠️ Mission not found.")
        return
    if not store.update_mission_deadline(mission_id, deadline):
        await m.reply(f"⚠️ «{escape(mission.title)}» is {mission.status.value}; its deadline can't change.")
        return
    await m.reply(f"✅ «{escape(mission.title)}» deadline → {fmt_dt(deadline)}")


@router.message(Command("check"), AllowedChat())
async def cmd_check(m: Message, sweeper: DeadlineSweeper):
    if not sweeper.sheets.is_configured():
        await m.reply("⚠️ Google Sheets is not configured; nothing to export.")
        return
    handled = await sweeper.trigger()
    await m.reply(f"✅ Deadline check done: {handled} mission(s) processed.")


@router.message(Command("mission"), AllowedChat())
async def cmd_mission(
    m: Message,
    command: CommandObject,
    cfg,
    store: MissionStore,
    ai: AIClient,
    notion: NotionClient,
    discord_bot,
):
    topic = (command.args or "").strip()
    if not topic:
        await m.reply("<b>Usage:</b> /mission &lt;topic&gt;\n\n<b>Example:</b>\n<code>/mission Morgan Stanley</code>")
        return
    if not (ai.configured and notion.configured):
        await m.reply(NOT_CONFIGURED)
        return

    logger.info(f"[TG] /mission from @{m.from_user.username if m.from_user else '?'}: {topic!r}")
    progress = await m.reply(f"<i>Searching campaigns for «{escape(topic)}»…</i>")

    campaigns = await notion.search_campaigns(topic)
    if not campaigns:
        await progress.edit_text(f"⚠️ No campaigns found matching «{escape(topic)}». Try a different search term.")
        return

    await progress.edit_text(f"<i>Found {len(campaigns)} campaign(s). Generating mission brief…</i>")
    aggregated = "\n\n---\n\n".join(f"## {c.title}\n\n{c.content}" for c in campaigns)
    brief = await ai.generate_mission_brief(campaigns[0].title, aggregated, [c.url for c in campaigns])
    if brief is None:
        await progress.edit_text("⚠️ Failed to generate the mission brief. Please try again.")
        return

    await progress.edit_text("<i>Brief generated. Creating Discord mission thread…</i>")
    deadline = days_from_now(cfg.DEFAULT_DEADLINE_DAYS)
    thread = await discord_bot.create_mission_thread(
        brief.title, brief_discord(brief, int(deadline.timestamp())), deadline=deadline
    )
    if not thread.success:
        await m.reply(f"⚠️ Brief generated but Discord thread creation failed: {escape(thread.error or 'unknown error')}")

    with contextlib.suppress(TelegramBadRequest):
        await progress.delete()

    text = brief_html(brief, len(campaigns))
    announce_chat = cfg.TELEGRAM_ANNOUNCEMENT_CHANNEL_ID
    if announce_chat:
        try:
            sent = await send_long(m.bot, announce_chat, text)
        except TelegramAPIError as e:
            logger.error(f"[TG] announcement channel post failed: {e}")
            await m.reply("⚠️ Could not post to the announcement channel. Check bot permissions.")
            return
        chat_id = str(announce_chat)
    else:
        sent = await send_long(m.bot, m.chat.id, text)
        chat_id = str(m.chat.id)
    logger.info(f"[TG] mission announced in {chat_id}: msg={sent[0].message_id}")

    if thread.success and thread.mission_id:
        store.update_mission_telegram_info(thread.mission_id, str(sent[0].message_id), chat_id)
        if announce_chat:
            await m.reply(
                "✅ <b>Mission created!</b>\n\n"
                "• Discord thread created\n"
                "• Announcement posted to the Telegram channel\n\n"
                "📝 Users submit by replying to the announcement with their URL."
            )
        else:
            await m.reply("✅ <b>Mission thread created in Discord</b>\n\n📝 To submit: reply to the mission message above with your URL.")


@router.message(Command("tweets"), AllowedChat())
async def cmd_tweets(m: Message, command: CommandObject, ai: AIClient, notion: NotionClient):
    topic = (command.args or "").strip()
    if not topic:
        await m.reply("<b>Usage:</b> /tweets &lt;topic&gt;\n\n<b>Example:</b>\n<code>/tweets Pyth Pro</code>")
        return
    if not (ai.configured and notion.configured):
        await m.reply(NOT_CONFIGURED)
        return

    progress = await m.reply(f"<i>Scanning content for «{escape(topic)}»…</i>")
    campaigns = await notion.search_campaigns(topic)
    if not campaigns:
        await progress.edit_text(f"⚠️ No content found matching «{escape(topic)}». Try a different search term.")
        return

    await progress.edit_text(f"<i>Found {len(campaigns)} source(s). Generating suggestions…</i>")
    pieces = [{"title": c.title, "content": c.content, "url": c.url} for c in campaigns]
    suggestions = await ai.generate_tweet_suggestions(topic, pieces)
    with contextlib.suppress(TelegramBadRequest):
        await progress.delete()
    if not suggestions:
        await m.reply("⚠️ Failed to generate tweet suggestions. Please try again.")
        return
    await send_long(m.bot, m.chat.id, tweets_html(topic, suggestions, len(campaigns)))
