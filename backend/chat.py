"""Core chat orchestration: upstream relay + structured recommendation extraction."""

import asyncio
import json
import logging
import time
from typing import AsyncGenerator

import aiohttp

from config import UPSTREAM_TIMEOUT
from dispatcher import build_request_body
from enrichment import parse_video_links, search_videos
from errors import MalformedReplyError, UpstreamTimeoutError
from extraction import Classification, Extraction, classify
from models import ChatMessage, ChatRequest, ConfigSnapshot
from prompts import generate_system_prompt
from stream import relay
from utils import truncate

logger = logging.getLogger(__name__)

# SSE event type for each outcome
EVENT_TYPES = {
    Classification.VIDEO_LINK: "video_links",
    Classification.YOUTUBE_RECOMMEND: "youtube_videos",
    Classification.MOVIE_RECOMMEND: "recommendations",
}

# JSON response field for each outcome
RESPONSE_FIELDS = {
    Classification.VIDEO_LINK: "videoLinks",
    Classification.YOUTUBE_RECOMMEND: "youtubeVideos",
    Classification.MOVIE_RECOMMEND: "recommendations",
}


def use_stream(request: ChatRequest, config: ConfigSnapshot) -> bool:
    if request.streamMode is not None:
        return request.streamMode
    if config.ai_recommend.stream_mode is not None:
        return config.ai_recommend.stream_mode
    return True


def build_upstream_body(request: ChatRequest, config: ConfigSnapshot, stream: bool) -> dict:
    """System prompt + caller messages, with model defaults from the config."""
    ai = config.ai_recommend
    messages = [ChatMessage(role="system", content=generate_system_prompt(config.youtube))]
    messages.extend(request.messages)
    requested = request.max_tokens or request.max_completion_tokens or ai.max_tokens
    temperature = request.temperature if request.temperature is not None else ai.temperature
    return build_request_body(request.model or ai.model, messages, requested, temperature, stream)


def last_user_message(request: ChatRequest) -> str:
    return request.messages[-1].content if request.messages else ""


async def enrich(session: aiohttp.ClientSession, extraction: Extraction, config: ConfigSnapshot) -> list:
    if extraction.kind is Classification.VIDEO_LINK:
        return await parse_video_links(session, extraction.video_links)
    if extraction.kind is Classification.YOUTUBE_RECOMMEND:
        return await search_videos(session, extraction.keywords, config.youtube)
    return extraction.recommendations


async def structured_event(
    session: aiohttp.ClientSession,
    config: ConfigSnapshot,
    user_message: str,
    reply: str,
) -> dict | None:
    """Final SSE event for a completed reply. Empty movie lists are not sent."""
    extraction = classify(user_message, reply, config.youtube)
    items = await enrich(session, extraction, config)
    if extraction.kind is Classification.MOVIE_RECOMMEND and not items:
        return None
    logger.info("Reply classified as %s with %d items", extraction.kind.value, len(items))
    return {"type": EVENT_TYPES[extraction.kind], "data": [item.to_wire() for item in items]}


async def stream_reply(
    session: aiohttp.ClientSession,
    response: aiohttp.ClientResponse,
    request: ChatRequest,
    config: ConfigSnapshot,
) -> AsyncGenerator[str, None]:
    """Relay the upstream stream. Closing this generator closes the upstream response."""
    user_message = last_user_message(request)

    async def finalize(reply: str) -> dict | None:
        return await structured_event(session, config, user_message, reply)

    try:
        async for event in relay(response.content.iter_any(), finalize):
            yield event
    except (aiohttp.ClientError, asyncio.TimeoutError):
        logger.exception("Upstream stream failed")
        raise
    finally:
        response.close()


async def complete_reply(
    session: aiohttp.ClientSession,
    response: aiohttp.ClientResponse,
    request: ChatRequest,
    config: ConfigSnapshot,
    model: str,
) -> dict:
    """Non-streaming path: read the whole completion, then extract and enrich."""
    async with response:
        try:
            result = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise UpstreamTimeoutError(UPSTREAM_TIMEOUT) from e
        except aiohttp.ClientError as e:
            logger.error("Failed to read AI response body: %s", e)
            raise MalformedReplyError(details="The AI service connection broke while sending the reply") from e
        except ValueError as e:
            raise MalformedReplyError(details="The AI service returned invalid JSON") from e

    choices = result.get("choices") if isinstance(result, dict) else None
    if not choices or not isinstance(choices[0], dict) or not choices[0].get("message"):
        logger.error("Malformed AI response: %s", truncate(json.dumps(result, default=str), 500))
        raise MalformedReplyError(
            details=f"Unexpected response structure: {truncate(json.dumps(result, default=str), 200)}"
        )

    content = choices[0]["message"].get("content")
    if not isinstance(content, str) or not content.strip():
        raise MalformedReplyError(
            "The AI returned an empty reply",
            "Try describing the kind of title you want in more detail",
        )

    extraction = classify(last_user_message(request), content, config.youtube)
    items = await enrich(session, extraction, config)
    logger.info("Reply classified as %s with %d items", extraction.kind.value, len(items))
    return {
        "id": result.get("id") or f"chatcmpl-{int(time.time() * 1000)}",
        "object": "chat.completion",
        "created": result.get("created") or int(time.time()),
        "model": result.get("model") or model,
        "choices": choices,
        "usage": result.get("usage"),
        RESPONSE_FIELDS[extraction.kind]: [item.to_wire() for item in items],
        "type": extraction.kind.value,
    }
