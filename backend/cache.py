import base64
import time
from typing import Any

from config import SIMPLE_QUESTION_MAX_CHARS
from models import ChatMessage


class TTLCache:
    """Simple in-memory cache with per-key TTL."""

    def __init__(self):
        self._store: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if time.time() > expires_at:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: int):
        self._store[key] = (time.time() + ttl, value)


def simple_question_key(messages: list[ChatMessage]) -> str | None:
    """Cache key for a single short user question, None for anything else."""
    if len(messages) != 1:
        return None
    message = messages[0]
    if message.role != "user" or len(message.content) >= SIMPLE_QUESTION_MAX_CHARS:
        return None
    digest = base64.b64encode(message.content.strip().lower().encode("utf-8")).decode("ascii")
    return f"ai-recommend-simple-{digest[:16]}"


cache = TTLCache()
