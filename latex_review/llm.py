"""
Thin layer over the Anthropic SDK shared by the summary and quiz steps:
client construction, throttled calls, usage accounting, JSON decoding.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

import anthropic

from latex_review.config import Settings
from latex_review.errors import LLMResponseError
from latex_review.ratelimit import RateLimiter, RequestWrapper, TokenUsageTracker

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


def create_llm_client(settings: Settings) -> anthropic.AsyncAnthropic:
    """SDK retries are off; RequestWrapper owns the retry policy."""
    if settings.llm_base_url:
        # Self-hosted endpoints speaking the Messages API usually ignore the key
        return anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key or "local",
            base_url=settings.llm_base_url,
            timeout=settings.request_timeout,
            max_retries=0,
        )
    return anthropic.AsyncAnthropic(
        api_key=settings.anthropic_api_key,
        timeout=settings.request_timeout,
        max_retries=0,
    )


@dataclass
class LLMSession:
    client: Any
    wrapper: RequestWrapper
    tracker: TokenUsageTracker
    settings: Settings


def llm_rate_limiter(settings: Settings) -> RateLimiter:
    return RateLimiter(settings.max_requests_per_minute, 60.0)


def llm_session(state: dict) -> LLMSession:
    """Session over the run-wide limiter and tracker in state, so every step shares one budget."""
    settings: Settings = state["settings"]
    tracker = state.get("usage") or TokenUsageTracker(settings.max_total_tokens)
    limiter = state.get("llm_limiter") or llm_rate_limiter(settings)
    return LLMSession(
        client=state.get("llm_client") or create_llm_client(settings),
        wrapper=RequestWrapper(limiter),
        tracker=tracker,
        settings=settings,
    )


def parse_json_response(text: str) -> Any:
    raw = _FENCE_RE.sub("", text).strip()
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LLMResponseError(f"Model response is not JSON: {exc}") from exc


async def complete_json(session: LLMSession, system: str, prompt: str) -> Any:
    async def _create() -> Any:
        return await session.client.messages.create(
            model=session.settings.model,
            max_tokens=session.settings.max_tokens_per_request,
            temperature=session.settings.temperature,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )

    response = await session.wrapper.with_retry(_create)

    usage = getattr(response, "usage", None)
    if usage is not None:
        session.tracker.record_usage(usage.input_tokens + usage.output_tokens)

    if not response.content:
        raise LLMResponseError("Model returned no content")
    return parse_json_response(response.content[0].text)
