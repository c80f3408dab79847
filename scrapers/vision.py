from __future__ import annotations

import base64
import json
import logging
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any

from dateutil import parser as date_parser
from openai import AsyncOpenAI, OpenAIError

from config.settings import Settings
from config.settings import settings as default_settings
from core.errors import ExtractionError
from core.models import CandidateItem
from scrapers.base import ExtractionOracle, OracleResult

log = logging.getLogger(__name__)

EXTRACT_PROMPT = """You are looking at a screenshot of Twitter/X search results.
Extract every visible tweet card, top to bottom, up to {max_items} tweets.
For each tweet return:
  "text": the full tweet text,
  "author": the @handle,
  "created_at": the timestamp as shown (ISO 8601, or relative like "2h"),
  "likes": like count (0 if not visible),
  "retweets": retweet count (0 if not visible).
Respond with pure JSON: {{"tweets": [...], "total_found": <int>}}.
If no tweets are visible return {{"tweets": [], "total_found": 0}}."""

RESULTS_LOADED_PROMPT = """Look at this screenshot of Twitter/X. Have search results
loaded with tweet cards visible (not a spinner, an empty page or an error)?
Respond with JSON: {"results_loaded": true/false, "tweet_count_visible": <int>}."""

AUTH_PROMPT = """Look at this screenshot of Twitter/X. Is the user logged in
(timeline, sidebar navigation and a Post button visible, no sign-in prompt)?
Respond with JSON: {"authenticated": true/false, "confidence": 0.0-1.0}."""

_RELATIVE_RE = re.compile(r"^(\d+)\s*([smhd])\w*(?:\s+ago)?$", re.IGNORECASE)
_RELATIVE_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}
_COUNT_RE = re.compile(r"^([\d.,]+)\s*([kKmM]?)$")


def parse_timestamp(raw: Any, now: datetime | None = None) -> datetime | None:
    """Best-effort conversion of what the oracle read off a tweet card.

    Missing values map to ``now`` (the post was on screen during the harvest);
    values that cannot be understood map to ``None``.
    """
    now = now or datetime.now(timezone.utc)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return now
    if not isinstance(raw, str):
        return None

    value = raw.strip()
    if value.lower() in ("now", "just now"):
        return now
    m = _RELATIVE_RE.match(value)
    if m:
        amount, unit = int(m.group(1)), m.group(2).lower()
        try:
            return now - timedelta(**{_RELATIVE_UNITS[unit]: amount})
        except OverflowError:
            return None

    try:
        parsed = date_parser.parse(value, default=now.replace(tzinfo=None))
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_count(raw: Any) -> int:
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, float) and not math.isfinite(raw):
        return 0
    if isinstance(raw, (int, float)):
        return max(int(raw), 0)
    if not isinstance(raw, str):
        return 0
    m = _COUNT_RE.match(raw.strip())
    if not m:
        return 0
    number, suffix = m.groups()
    try:
        value = float(number.replace(",", ""))
    except ValueError:
        return 0
    if not math.isfinite(value):
        return 0
    multiplier = {"k": 1_000, "m": 1_000_000}.get(suffix.lower(), 1)
    return int(round(value * multiplier))


def parse_candidates(data: Any, now: datetime | None = None) -> OracleResult:
    """Turn the oracle's JSON into candidates. Malformed entries are skipped."""
    if not isinstance(data, dict):
        raise ExtractionError(f"Unexpected oracle payload: {type(data).__name__}")
    raw_items = data.get("tweets", data.get("items", []))
    if not isinstance(raw_items, list):
        raise ExtractionError("Oracle payload has no item list")

    items: list[CandidateItem] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        text = raw.get("text")
        if not isinstance(text, str) or not text.strip():
            continue
        author = str(raw.get("author") or "").strip().lstrip("@") or "unknown"
        try:
            candidate = CandidateItem(
                text=text,
                author=author,
                timestamp=parse_timestamp(raw.get("created_at"), now),
                like_count=parse_count(raw.get("likes")),
                repost_count=parse_count(raw.get("retweets")),
            )
        except (ValueError, OverflowError) as e:
            log.debug("Skipping malformed candidate %r: %s", text[:40], e)
            continue
        items.append(candidate)
    total = data.get("total_found")
    return OracleResult(items=items, total_found=total if isinstance(total, int) else len(items))


class OpenAIVisionOracle(ExtractionOracle):
    """Extraction oracle backed by an OpenAI-compatible vision model."""

    def __init__(self, config: Settings | None = None, client: AsyncOpenAI | None = None) -> None:
        cfg = config or default_settings
        self._cfg = cfg
        self._model = cfg.llm_model_name
        self._client = client or AsyncOpenAI(
            api_key=cfg.OPENAI_API_KEY,
            base_url=cfg.OPENAI_BASE_URL or None,
            timeout=cfg.LLM_TIMEOUT_SECONDS,
        )

    async def analyze(self, image: bytes, prompt: str) -> dict[str, Any]:
        data_url = "data:image/png;base64," + base64.b64encode(image).decode("ascii")
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {"type": "image_url", "image_url": {"url": data_url}},
                        ],
                    }
                ],
                temperature=self._cfg.LLM_TEMPERATURE,
                max_tokens=self._cfg.LLM_MAX_TOKENS,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            raise ExtractionError(f"LLM vision error: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ExtractionError("LLM returned an empty response")
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise ExtractionError(f"Failed to parse JSON response: {e}") from e

    async def extract_items(self, image: bytes, max_items: int) -> OracleResult:
        data = await self.analyze(image, EXTRACT_PROMPT.format(max_items=max_items))
        result = parse_candidates(data)
        log.debug(
            "Oracle returned %d candidates (total_found=%d)", len(result.items), result.total_found
        )
        return result

    async def results_loaded(self, image: bytes) -> bool:
        data = await self.analyze(image, RESULTS_LOADED_PROMPT)
        return bool(data.get("results_loaded")) if isinstance(data, dict) else False

    async def is_authenticated(self, image: bytes) -> bool:
        data = await self.analyze(image, AUTH_PROMPT)
        if not isinstance(data, dict):
            return False
        log.debug("Auth check result: %s", data)
        return bool(data.get("authenticated"))
