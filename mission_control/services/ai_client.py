from __future__ import annotations
import json, re, aiohttp
from typing import Any, Dict, List, Optional
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
REQ_TIMEOUT = 60

MISSION_SYSTEM_PROMPT = (
    "You are a content strategist for Pyth Network, a decentralized oracle network.\n\n"
    "Your job is to create mission briefs for community content creators. Mission briefs should be:\n"
    "- Factual and evidence-based (every claim needs a source)\n"
    "- Focused on what matters to the crypto/DeFi community\n"
    "- Structured for easy content creation\n\n"
    "You write in a professional but accessible tone. No hype, no marketing fluff."
)

TWEETS_SYSTEM_PROMPT = (
    "You are a content strategist for Pyth Network, generating tweet ideas for the internal team.\n\n"
    "Suggest tweet hooks and angles, NOT full tweets. Each suggestion should:\n"
    "- Be a clear hook or angle\n"
    "- Include both Twitter and LinkedIn variations\n"
    "- Reference specific facts from the source material\n"
    "- Be distinct from other suggestions\n\n"
    "Output exactly 10 suggestions."
)


class MissionBrief(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str
    key_message: str = Field(alias="keyMessage")
    supporting_points: List[str] = Field(default_factory=list, alias="supportingPoints")
    optional_angles: List[str] = Field(default_factory=list, alias="optionalAngles")
    example_tweets: List[str] = Field(default_factory=list, alias="exampleTweets")
    source_links: List[str] = Field(default_factory=list, alias="sourceLinks")


class TweetSuggestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    hook: str
    twitter_angle: str = Field(alias="twitterAngle")
    linkedin_angle: str = Field(alias="linkedinAngle")
    source_url: str = Field(default="", alias="sourceUrl")


# ───────────────────────── JSON extraction ────────────────────────────
def extract_json(text: str) -> Optional[Any]:
    """
    Pulls JSON out of a raw answer: plain JSON, ```json ... ``` or {...} / [...] inside text.
    """
    if not text:
        return None
    m = re.search(r"```(?:json)?\s*([\[{].*?[\]}])\s*```", text, flags=re.S)
    if m:
        try:
            return json.loads(m.group(1))
        except ValueError:
            pass
    m = re.search(r"([\[{].*[\]}])", text, flags=re.S)
    if m:
        try:
            return json.loads(m.group(1))
        except ValueError:
            pass
    try:
        return json.loads(text)
    except ValueError:
        return None


class AIClient:
    """OpenRouter chat-completions wrapper. Never raises on remote failure."""

    def __init__(self, api_key: Optional[str], model: str, url: str = OPENROUTER_URL, timeout: int = REQ_TIMEOUT):
        self.api_key = (api_key or "").strip()
        self.model = model
        self.url = url
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def chat_json(self, system: str, user: str, max_tokens: int = 4000) -> Optional[Any]:
        if not self.api_key:
            logger.warning("[AI] OPENROUTER_API_KEY is empty, skipping remote call")
            return None

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": max_tokens,
            "temperature": 0.3,
        }
        try:
            async with aiohttp.ClientSession() as sess:
                async with sess.post(
                    self.url, headers=headers, json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as resp:
                    if resp.status >= 400:
                        logger.error(f"[AI] HTTP {resp.status}: {await resp.text()}")
                        return None
                    data = await resp.json()
        except Exception as e:
            logger.exception(f"[AI] request failed: {e}")
            return None

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            logger.error("[AI] unexpected response structure")
            return None

        parsed = extract_json(content)
        if parsed is None:
            logger.warning("[AI] answered but JSON parse failed")
        return parsed

    async def generate_mission_brief(self, topic: str, content: str, source_urls: List[str]) -> Optional[MissionBrief]:
        user = (
            f"Create a mission brief about: {topic}\n\n"
            f"SOURCE MATERIAL:\n{content[:30000]}\n\n"
            f"SOURCE URLS:\n" + "\n".join(source_urls) + "\n\n"
            "Answer ONLY with JSON: "
            '{"title":"...","keyMessage":"...","supportingPoints":["..."],'
            '"optionalAngles":["..."],"exampleTweets":["..."],"sourceLinks":["..."]}'
        )
        data = await self.chat_json(MISSION_SYSTEM_PROMPT, user)
        if not isinstance(data, dict):
            return None
        data.setdefault("sourceLinks", source_urls)
        try:
            return MissionBrief.model_validate(data)
        except ValidationError as e:
            logger.warning(f"[AI] brief did not validate: {e}")
            return None

    async def generate_tweet_suggestions(self, topic: str, pieces: List[Dict[str, str]]) -> List[TweetSuggestion]:
        material = "\n\n---\n\n".join(
            f"## {p.get('title', '')}\nURL: {p.get('url', '')}\n\n{p.get('content', '')}" for p in pieces
        )
        user = (
            f"Topic: {topic}\n\nSOURCE MATERIAL:\n{material[:30000]}\n\n"
            "Answer ONLY with a JSON array of 10 objects: "
            '[{"hook":"...","twitterAngle":"...","linkedinAngle":"...","sourceUrl":"..."}]'
        )
        data = await self.chat_json(TWEETS_SYSTEM_PROMPT, user)
        if isinstance(data, dict):
            data = data.get("suggestions") or []
        out: List[TweetSuggestion] = []
        for item in data or []:
            try:
                out.append(TweetSuggestion.model_validate(item))
            except ValidationError:
                continue
        return out
