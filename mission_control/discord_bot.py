# mission_control/discord_bot.py
"""
Discord side of Mission Control.

Submissions are replies with a URL inside threads under the mission channel.
Every accepted submission gets 1️⃣..5️⃣ reactions; only members holding a
judge role may vote, other vote reactions are removed.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import discord
from loguru import logger

from mission_control.services.intake import REJECT_NOT_ACTIVE, SubmissionIntake
from mission_control.storage import MissionStore
from mission_control.utils.text import chunk_text, extract_urls
from mission_control.utils.time import days_from_now, parse_discord_timestamp

VOTE_EMOJIS: Dict[str, int] = {
    "1️⃣": 1,
    "2️⃣": 2,
    "3️⃣": 3,
    "4️⃣": 4,
    "5️⃣": 5,
}
CONFIRMATION_EMOJI = "📝"
DISCORD_MESSAGE_LIMIT = 2000
CLOSING_MESSAGE = (
    "🔒 **Mission deadline reached.** This thread is now closed for submissions. "
    "Results will be posted shortly."
)


@dataclass
class ThreadResult:
    success: bool
    thread_id: Optional[str] = None
    mission_id: Optional[str] = None
    error: Optional[str] = None


def has_judge_role(role_ids: Iterable[int | str], judge_role_ids: Iterable[str]) -> bool:
    judges = {str(r) for r in judge_role_ids}
    return any(str(r) in judges for r in role_ids)


def build_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.guilds = True
    intents.guild_messages = True
    intents.guild_reactions = True
    intents.message_content = True
    return intents


class MissionDiscordBot(discord.Client):
    def __init__(self, store: MissionStore, intake: SubmissionIntake, cfg):
        super().__init__(intents=build_intents())
        self.store = store
        self.intake = intake
        self.cfg = cfg

    @property
    def mission_channel_id(self) -> Optional[int]:
        v = self.cfg.DISCORD_MISSION_CHANNEL_ID
        return int(v) if v else None

    async def _channel(self, channel_id: int):
        return self.get_channel(channel_id) or await self.fetch_channel(channel_id)

    # ───────── events ─────────

    async def on_ready(self):
        logger.info(f"[DISCORD] bot ready: {self.user}")
        logger.info(f"[DISCORD] guild={self.cfg.DISCORD_GUILD_ID} mission channel={self.cfg.DISCORD_MISSION_CHANNEL_ID}")

    async def _thread_deadline(self, thread: discord.Thread):
        starter = thread.starter_message
        if starter is None and thread.parent is not None:
            try:
                # message-started threads share the starter message id
                starter = await thread.parent.fetch_message(thread.id)
            except (discord.HTTPException, AttributeError) as e:
                # forum parents have no fetch_message
                logger.debug(f"[DISCORD] no starter message for thread {thread.id}: {e}")
        deadline = parse_discord_timestamp(starter.content if starter else None)
        if deadline:
            logger.info(f"[DISCORD] deadline parsed from mission post: {deadline.isoformat()}")
            return deadline
        deadline = days_from_now(self.cfg.DEFAULT_DEADLINE_DAYS)
        logger.info(f"[DISCORD] no deadline in post, default: {deadline.isoformat()}")
        return deadline

    async def on_message(self, message: discord.Message):
        if message.author.bot:
            return
        thread = message.channel
        if not isinstance(thread, discord.Thread):
            return
        if self.mission_channel_id is None or thread.parent_id != self.mission_channel_id:
            return

        urls = extract_urls(message.content)
        if not urls:
            return
        logger.info(f"[DISCORD] submission in «{thread.name}» from {message.author}: {urls[0]}")

        try:
            mission = self.store.get_mission_by_thread(str(thread.id))
            if mission is None:
                deadline = await self._thread_deadline(thread)
                mission = self.store.register_mission(str(thread.id), thread.name, deadline)

            result = await self.intake.submit(
                mission,
                message_id=str(message.id),
                channel_id=str(thread.id),
                user_id=str(message.author.id),
                user_tag=str(message.author),
                content=message.content,
                urls=urls,
                source="discord",
            )
            if result.rejection == REJECT_NOT_ACTIVE:
                await message.reply("🔒 This mission is closed. Submissions are no longer accepted.")
                return
            if not result.accepted or result.duplicate:
                return

            await message.add_reaction(CONFIRMATION_EMOJI)
            for emoji in VOTE_EMOJIS:
                await message.add_reaction(emoji)
            logger.info(f"[DISCORD] vote reactions pre-created on {message.id}")
        except discord.HTTPException as e:
            logger.error(f"[DISCORD] failed to react on {message.id}: {e}")
        except Exception as e:
            logger.exception(f"[DISCORD] submission handling failed: {e}")

    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent):
        if self.user and payload.user_id == self.user.id:
            return
        score = VOTE_EMOJIS.get(payload.emoji.name or "")
        if score is None:
            return
        message_id = str(payload.message_id)
        if not self.intake.resolve(message_id):
            return

        member = payload.member
        if member is None or member.bot:
            return
        try:
            if not has_judge_role((r.id for r in member.roles), self.cfg.DISCORD_JUDGE_ROLE_IDS):
                logger.info(f"[DISCORD] removing non-judge reaction from {member}")
                channel = await self._channel(payload.channel_id)
                msg = await channel.fetch_message(payload.message_id)
                await msg.remove_reaction(payload.emoji, member)
                return

            submission = await self.intake.vote(message_id, str(member.id), score)
            if submission:
                logger.info(f"[DISCORD] judge {member} gave {score} to {submission.id}")
        except discord.HTTPException as e:
            logger.error(f"[DISCORD] reaction handling failed: {e}")
        except Exception as e:
            logger.exception(f"[DISCORD] vote failed: {e}")

    async def on_raw_reaction_remove(self, payload: discord.RawReactionActionEvent):
        if self.user and payload.user_id == self.user.id:
            return
        if (payload.emoji.name or "") not in VOTE_EMOJIS:
            return
        try:
            submission = await self.intake.unvote(str(payload.message_id), str(payload.user_id))
            if submission:
                logger.info(f"[DISCORD] vote removed: {payload.user_id} from {submission.id}")
        except Exception as e:
            logger.exception(f"[DISCORD] vote removal failed: {e}")

    # ───────── thread lifecycle ─────────

    async def close_thread(self, thread_id: str, reason: Optional[str] = None) -> bool:
        try:
            thread = await self._channel(int(thread_id))
            if not isinstance(thread, discord.Thread):
                logger.error(f"[DISCORD] not a thread: {thread_id}")
                return False
            await thread.send(reason or CLOSING_MESSAGE)
            await thread.edit(locked=True, archived=True, reason="Mission deadline reached")
        except (discord.DiscordException, ValueError) as e:
            logger.error(f"[DISCORD] failed to close thread {thread_id}: {e}")
            return False
        logger.info(f"[DISCORD] thread closed and archived: {thread_id}")
        return True

    async def create_mission_thread(self, title: str, content: str, deadline=None) -> ThreadResult:
        if self.mission_channel_id is None:
            return ThreadResult(False, error="DISCORD_MISSION_CHANNEL_ID not configured")
        try:
            channel = await self._channel(self.mission_channel_id)
            chunks = chunk_text(content, DISCORD_MESSAGE_LIMIT)
            first = await channel.send(chunks[0])
            thread = await first.create_thread(name=title[:100], auto_archive_duration=10080)
            for chunk in chunks[1:]:
                await thread.send(chunk)
        except discord.DiscordException as e:
            logger.error(f"[DISCORD] thread creation failed: {e}")
            return ThreadResult(False, error=str(e))

        deadline = deadline or days_from_now(self.cfg.DEFAULT_DEADLINE_DAYS)
        mission = self.store.register_mission(str(thread.id), title, deadline, brief=content)
        logger.info(f"[DISCORD] mission thread created: {thread.id} → {mission.id}")
        return ThreadResult(True, thread_id=str(thread.id), mission_id=mission.id)
