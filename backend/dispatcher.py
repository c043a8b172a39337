"""Outbound chat-completion request: model rules, endpoint, dispatch."""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import aiohttp

from config import (
    COMPLETIONS_PATH,
    GPT4_MAX_TOKENS,
    GPT5_MAX_TOKENS,
    GPT5_MIN_TOKENS,
    O3_O4_MAX_TOKENS,
    O3_O4_MIN_TOKENS,
    REASONING_MIN_TOKENS,
    STANDARD_MIN_TOKENS,
    UPSTREAM_TIMEOUT,
)
from errors import UpstreamError
from models import ChatMessage
from utils import open_request, truncate

logger = logging.getLogger(__name__)


class ModelClass(str, Enum):
    GPT5 = "gpt5"
    O3_O4 = "o3_o4"
    REASONING = "reasoning"
    STANDARD = "standard"


@dataclass(frozen=True)
class ModelRule:
    model_class: ModelClass
    matches: Callable[[str], bool]
    min_tokens: int
    max_tokens: int | None
    reasoning: bool


# Evaluated top to bottom, first match wins. The last rule matches everything.
MODEL_RULES = (
    ModelRule(ModelClass.GPT5, lambda m: "gpt-5" in m, GPT5_MIN_TOKENS, GPT5_MAX_TOKENS, True),
    ModelRule(ModelClass.O3_O4, lambda m: m.startswith(("o3", "o4")), O3_O4_MIN_TOKENS, O3_O4_MAX_TOKENS, True),
    ModelRule(ModelClass.REASONING, lambda m: m.startswith("o1"), REASONING_MIN_TOKENS, None, True),
    ModelRule(ModelClass.STANDARD, lambda m: True, STANDARD_MIN_TOKENS, None, False),
)

# Extra ceilings for standard model families
FAMILY_TOKEN_CAPS = (
    ("gpt-4", GPT4_MAX_TOKENS),
)


def classify_model(model: str) -> ModelRule:
    for rule in MODEL_RULES:
        if rule.matches(model):
            return rule
    return MODEL_RULES[-1]


def token_bounds(model: str) -> tuple[int, int | None]:
    """Inclusive [min, max] token limit for a model; max None means unbounded."""
    rule = classify_model(model)
    upper = rule.max_tokens
    if not rule.reasoning:
        for family, cap in FAMILY_TOKEN_CAPS:
            if family in model:
                upper = cap if upper is None else min(upper, cap)
    return rule.min_tokens, upper


def normalize_token_limit(model: str, requested: int) -> int:
    lower, upper = token_bounds(model)
    limit = max(requested, lower)
    if upper is not None:
        limit = min(limit, upper)
    return limit


def build_endpoint(base_url: str) -> str:
    if base_url.endswith(COMPLETIONS_PATH):
        return base_url
    return base_url.rstrip("/") + COMPLETIONS_PATH


def build_request_body(
    model: str,
    messages: list[ChatMessage],
    requested_tokens: int,
    temperature: float | None,
    stream: bool,
) -> dict:
    """Request body with the limit clamped and reasoning-model restrictions applied."""
    rule = classify_model(model)
    token_limit = normalize_token_limit(model, requested_tokens)
    body = {
        "model": model,
        "messages": [m.model_dump() for m in messages],
        "stream": stream,
    }
    if rule.reasoning:
        body["max_completion_tokens"] = token_limit
    else:
        if temperature is not None:
            body["temperature"] = temperature
        body["max_tokens"] = token_limit
    logger.info("Model %s (%s), token limit %d", model, rule.model_class.value, token_limit)
    return body


def _error_details(raw: str) -> str:
    try:
        parsed = json.loads(raw)
    except ValueError:
        return truncate(raw, 200)
    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return truncate(raw, 200)


async def dispatch(
    session: aiohttp.ClientSession,
    base_url: str,
    api_key: str,
    body: dict,
) -> aiohttp.ClientResponse:
    """POST the chat-completion request. The caller owns the returned response.

    Raises UpstreamTimeoutError after 60 seconds without response headers and
    UpstreamError on a non-2xx status.
    """
    resp = await open_request(
        session,
        "POST",
        build_endpoint(base_url),
        budget=UPSTREAM_TIMEOUT,
        target="AI service",
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        },
        json=body,
    )
    if resp.ok:
        return resp
    async with resp:
        raw = await resp.text()
    logger.error("Upstream chat API error %s: %s", resp.status, truncate(raw, 500))
    raise UpstreamError(resp.status, _error_details(raw))
