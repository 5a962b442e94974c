from __future__ import annotations
from typing import Union

from aiogram.filters import BaseFilter
from aiogram.types import Message, CallbackQuery


def is_allowed_chat(chat_id: int | str | None, allowed: list[str]) -> bool:
    if chat_id is None:
        return False
    # empty allow-list: every chat is allowed
    if not allowed:
        return True
    return str(chat_id) in allowed


class AllowedChat(BaseFilter):
    """
    Lets through only chats from TELEGRAM_ALLOWED_CHAT_IDS.
    The list comes from `cfg` in the dispatcher workflow data.
    """
    async def __call__(self, event: Union[Message, CallbackQuery], cfg) -> bool:
        if isinstance(event, Message):
            chat = event.chat
        else:
            chat = event.message.chat if event.message else None
        return is_allowed_chat(chat.id if chat else None, cfg.TELEGRAM_ALLOWED_CHAT_IDS)
