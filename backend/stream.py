"""Transcode the upstream chat-completion event stream for the browser.

Upstream bytes arrive in arbitrary pieces. Lines are only handled once their
terminating newline has arrived, so the result does not depend on where the
network split the stream.
"""

import codecs
import json
import logging
from typing import AsyncGenerator, AsyncIterable, Awaitable, Callable

from utils import truncate

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_LINE = "data: [DONE]"
DONE_SENTINEL = "[DONE]"


async def iter_lines(chunks: AsyncIterable[bytes]) -> AsyncGenerator[str, None]:
    """Split a byte stream into text lines.

    Multi-byte characters cut across chunks are decoded once complete. The
    unterminated tail left when the stream ends is dropped.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        buffer += decoder.decode(chunk)
        *lines, buffer = buffer.split("\n")
        for line in lines:
            yield line


def parse_delta(line: str) -> str | None:
    """Content fragment carried by one upstream line, if any."""
    line = line.strip()
    if not line or line == DONE_LINE or not line.startswith(DATA_PREFIX):
        return None
    try:
        payload = json.loads(line[len(DATA_PREFIX):])
    except ValueError:
        logger.debug("Skipping malformed SSE line: %s", truncate(line, 200))
        return None
    try:
        content = payload["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    if isinstance(content, str) and content:
        return content
    return None


def encode_event(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False)


async def relay(
    chunks: AsyncIterable[bytes],
    finalize: Callable[[str], Awaitable[dict | None]],
) -> AsyncGenerator[str, None]:
    """Yield one content event per fragment, then the structured event, then [DONE].

    Each fragment is yielded before the next upstream read, so a slow consumer
    slows the upstream read down instead of filling a buffer.
    """
    full_content = ""
    async for line in iter_lines(chunks):
        content = parse_delta(line)
        if content is None:
            continue
        full_content += content
        yield encode_event({"type": "content", "content": content})

    if full_content:
        event = await finalize(full_content)
        if event is not None:
            yield encode_event(event)
    yield DONE_SENTINEL
