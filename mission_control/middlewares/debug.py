# mission_control/middlewares/debug.py
from __future__ import annotations
from loguru import logger
from aiogram import BaseMiddleware
from aiogram.types import Message, CallbackQuery
from aiogram.exceptions import TelegramBadRequest


class DebugMiddleware(BaseMiddleware):
    async def __call__(self, handler, event, data):
        if isinstance(event, Message):
            uid = getattr(event.from_user, "id", 0) or 0
            logger.debug(f"[TG:MSG] chat={event.chat.id} from={uid} text={(event.text or event.caption or '')[:120]!r}")
        elif isinstance(event, CallbackQuery):
            uid = getattr(event.from_user, "id", 0) or 0
            logger.debug(f"[TG:CB]  from={uid} data={event.data!r}")

        try:
            return await handler(event, data)
        except TelegramBadRequest as e:
            # stale queries / edits of deleted messages are UI noise
            logger.warning(f"[TG] TelegramBadRequest suppressed: {e}")
            return None
        except Exception as e:
            # don't let one handler take down webhook delivery
            logger.opt(exception=True).error(f"[TG] handler error: {e}")
            return None
