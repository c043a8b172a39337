from __future__ import annotations
from typing import Literal
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for payloads sent to the browser (camelCase keys)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(min_length=1)
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    max_completion_tokens: int | None = None
    streamMode: bool | None = None


class ModelListRequest(BaseModel):
    apiUrl: str
    apiKey: str


# --- Structured results ---

class MovieRecommendation(WireModel):
    title: str
    year: str       # always 4 digits
    genre: str
    description: str


class YoutubeVideoResult(WireModel):
    id: str
    title: str
    description: str = ""
    thumbnail: str | None = None
    channel_title: str = ""
    published_at: str = ""


class VideoLink(BaseModel):
    """A video URL found in the user's message."""
    video_id: str
    original_url: str


class VideoLinkResult(WireModel):
    video_id: str
    original_url: str
    title: str
    channel_name: str
    thumbnail: str
    playable: bool
    embed_url: str | None = None
    error: str | None = None


class StreamFormat(WireModel):
    """One resolved media variant, rewritten to go through the proxy."""
    itag: str
    quality: str | None = None
    type: str | None = None
    bitrate: str | None = None
    url: str
    direct_url: str | None = None


# --- Configuration snapshot ---

class AIRecommendConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    api_url: str = ""
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 3000
    stream_mode: bool | None = True
    allowed_users: list[str] = []


class YouTubeConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    api_key: str = ""

    @property
    def search_available(self) -> bool:
        return self.enabled and bool(self.api_key)


class ConfigSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    ai_recommend: AIRecommendConfig = AIRecommendConfig()
    youtube: YouTubeConfig = YouTubeConfig()
