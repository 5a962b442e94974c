from __future__ import annotations
from html import escape
from typing import List, Sequence

from mission_control.services.ai_client import MissionBrief, TweetSuggestion

DIVIDER = "━" * 35


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def brief_html(brief: MissionBrief, source_count: int) -> str:
    """Telegram (HTML parse mode)."""
    lines: List[str] = [f"🎯 <b>MISSION: {escape(brief.title)}</b>", ""]
    lines += ["<b>KEY MESSAGE:</b>", escape(brief.key_message), "", DIVIDER, ""]
    lines += ["<b>SUPPORTING POINTS:</b>", ""]
    lines += [f"• {escape(p)}" for p in brief.supporting_points]
    lines += ["", DIVIDER, "", "<b>OPTIONAL ANGLES:</b>", ""]
    lines += [f"💡 {escape(a)}" for a in brief.optional_angles]
    lines += ["", DIVIDER, "", "<b>EXAMPLE TWEETS:</b>", ""]
    for i, tweet in enumerate(brief.example_tweets, start=1):
        lines += [f"<b>Tweet {i}:</b>", f"<pre>{escape(tweet)}</pre>", ""]
    lines += [DIVIDER, "", "<b>SOURCES:</b>"]
    lines += [escape(u) for u in brief.source_links]
    lines += ["", f"<i>Aggregated from {_plural(source_count, 'campaign content piece')}</i>"]
    return "\n".join(lines)


def brief_discord(brief: MissionBrief, deadline_unix: int | None = None) -> str:
    """Discord markdown; the deadline token is what the thread intake parses back."""
    lines: List[str] = [f"🎯 **MISSION: {brief.title}**", ""]
    if deadline_unix:
        lines += [f"⏰ **Deadline:** <t:{deadline_unix}:F> (<t:{deadline_unix}:R>)", ""]
    lines += ["**KEY MESSAGE:**", brief.key_message, ""]
    lines += ["**SUPPORTING POINTS:**", *[f"• {p}" for p in brief.supporting_points], ""]
    lines += ["**OPTIONAL ANGLES:**", *[f"💡 {a}" for a in brief.optional_angles], ""]
    lines.append("**EXAMPLE TWEETS:**")
    for i, tweet in enumerate(brief.example_tweets, start=1):
        lines += [f"**Tweet {i}:**", "```", tweet, "```"]
    lines += ["", "**SOURCES:**", *brief.source_links]
    return "\n".join(lines)


def tweets_html(topic: str, suggestions: Sequence[TweetSuggestion], source_count: int) -> str:
    lines: List[str] = [f"🐦 <b>TWEET SUGGESTIONS: {escape(topic)}</b>", "", DIVIDER, ""]
    for i, s in enumerate(suggestions, start=1):
        lines += [
            f"<b>{i}. {escape(s.hook)}</b>",
            "",
            f"📱 <b>Twitter:</b> {escape(s.twitter_angle)}",
            f"💼 <b>LinkedIn:</b> {escape(s.linkedin_angle)}",
            f"🔗 {escape(s.source_url)}",
            "",
            DIVIDER,
            "",
        ]
    lines.append(f"<i>Generated from {_plural(source_count, 'content source')}</i>")
    return "\n".join(lines)
