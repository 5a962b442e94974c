# mission_control/handlers/submissions.py
from __future__ import annotations

from aiogram import F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import Message, ReactionTypeEmoji
from loguru import logger

from mission_control.filters.allowed_chat import is_allowed_chat
from mission_control.services.intake import REJECT_NOT_ACTIVE, SubmissionIntake
from mission_control.storage import MissionStore
from mission_control.utils.text import extract_urls

router = Router()


def telegram_message_key(chat_id: int | str, message_id: int | str) -> str:
    # Telegram message ids are only unique per chat
    return f"tg-{chat_id}-{message_id}"


@router.message(F.text, ~F.text.startswith("/"))
async def on_text(m: Message, cfg, store: MissionStore, intake: SubmissionIntake):
    urls = extract_urls(m.text)
    if not urls:
        return

    chat_id = str(m.chat.id)
    user = m.from_user
    logger.info(f"[TG] URL from @{user.username if user else '?'} in {chat_id}: {urls[0]}")

    reply_to = m.reply_to_message
    if reply_to:
        mission = store.get_mission_by_telegram_message(str(reply_to.message_id))
        if mission:
            if mission.telegram_chat_id != chat_id:
                logger.info(f"[TG] submission chat {chat_id} != mission chat {mission.telegram_chat_id}")
                return

            result = await intake.submit(
                mission,
                message_id=telegram_message_key(chat_id, m.message_id),
                channel_id=chat_id,
                user_id=str(user.id) if user else "unknown",
                user_tag=(user.username or user.first_name) if user else "unknown",
                content=m.text,
                urls=urls,
                source="telegram",
            )
            if result.rejection == REJECT_NOT_ACTIVE:
                await m.reply("⚠️ This mission is closed.")
                return
            if not result.accepted:
                return
            try:
                await m.react([ReactionTypeEmoji(emoji="👍")])
            except TelegramBadRequest:
                await m.reply("✅ Submission recorded!")
            logger.info(f"[TG] submission {result.submission.id} recorded for «{mission.title}»")
            return

    # not a mission reply: only talk back in allowed chats
    if not is_allowed_chat(chat_id, cfg.TELEGRAM_ALLOWED_CHAT_IDS):
        return
    if reply_to:
        await m.reply("⚠️ This message is not a mission. Reply to an active mission to submit.")
    else:
        await m.reply("💡 To submit, reply to a mission message with your URL")
