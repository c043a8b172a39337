"""YouTube edge proxy: mirror discovery, format resolution, ranged media relay."""

import logging
import re
from typing import AsyncGenerator
from urllib.parse import urlencode

import aiohttp
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from config import (
    INVIDIOUS_INSTANCES,
    MEDIA_TIMEOUT,
    MEDIA_USER_AGENT,
    METADATA_TIMEOUT,
    PROBE_TIMEOUT,
    PROXY_PATH,
)
from errors import NotFoundError, RelayError, UpstreamError
from models import StreamFormat
from utils import fetch_json, open_request

logger = logging.getLogger(__name__)

VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")
CHUNK_SIZE = 64 * 1024

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "Range, Content-Type",
}
PREFLIGHT_HEADERS = {**CORS_HEADERS, "Access-Control-Max-Age": "86400"}

# Headers copied from the media host as-is
RELAYED_HEADERS = ("Content-Length", "Content-Range")


def is_valid_video_id(video_id: str) -> bool:
    return bool(VIDEO_ID_PATTERN.match(video_id))


async def discover_instance(
    session: aiohttp.ClientSession,
    instances: list[str] = INVIDIOUS_INSTANCES,
) -> str | None:
    """First mirror answering its stats endpoint, probed in order. Nothing is cached."""
    for instance in instances:
        try:
            resp = await open_request(
                session, "GET", f"{instance}/api/v1/stats", budget=PROBE_TIMEOUT, target="Mirror probe"
            )
        except (RelayError, aiohttp.ClientError) as e:
            logger.debug("Mirror %s unavailable: %s", instance, e)
            continue
        async with resp:
            if resp.ok:
                return instance
        logger.debug("Mirror %s answered %s", instance, resp.status)
    return None


async def fetch_video_info(session: aiohttp.ClientSession, video_id: str, instance: str) -> dict:
    try:
        info = await fetch_json(
            session, f"{instance}/api/v1/videos/{video_id}", budget=METADATA_TIMEOUT, target="Mirror metadata"
        )
    except UpstreamError as e:
        raise UpstreamError(e.status, e.details, message=f"Failed to get video info: {e.status}") from e
    return info if isinstance(info, dict) else {}


def proxy_url(proxy_base: str, video_id: str, kind: str, itag) -> str:
    query = urlencode({"v": video_id, "type": kind, "itag": itag})
    return f"{proxy_base.rstrip('/')}{PROXY_PATH}?{query}"


def _describe(fmt: dict, proxy_base: str, video_id: str, kind: str, quality_key: str) -> StreamFormat:
    bitrate = fmt.get("bitrate")
    return StreamFormat(
        itag=str(fmt.get("itag")),
        quality=fmt.get(quality_key),
        type=fmt.get("type"),
        bitrate=str(bitrate) if bitrate is not None else None,
        url=proxy_url(proxy_base, video_id, kind, fmt.get("itag")),
        direct_url=fmt.get("url"),
    )


def _mime(fmt: dict) -> str:
    return fmt.get("type") or ""


def build_info(video_id: str, info: dict, instance: str, proxy_base: str) -> dict:
    """Client-facing metadata with every stream rewritten to a same-origin proxy URL."""
    format_streams = info.get("formatStreams") or []
    adaptive = info.get("adaptiveFormats") or []

    video_streams = [
        _describe(f, proxy_base, video_id, "video", "qualityLabel")
        for f in format_streams
        if "video" in _mime(f)
    ]
    video_only = [
        _describe(f, proxy_base, video_id, "video", "qualityLabel")
        for f in adaptive
        if "video" in _mime(f)
    ]
    audio_streams = [
        _describe(f, proxy_base, video_id, "audio", "audioQuality")
        for f in adaptive
        if "audio" in _mime(f)
    ]
    combined = None
    if format_streams:
        combined = _describe(format_streams[0], proxy_base, video_id, "video", "qualityLabel").to_wire()

    thumbnails = info.get("videoThumbnails") or []
    return {
        "videoId": video_id,
        "title": info.get("title"),
        "author": info.get("author"),
        "lengthSeconds": info.get("lengthSeconds"),
        "thumbnail": thumbnails[0].get("url") if thumbnails else None,
        "videoStreams": [s.to_wire() for s in video_streams],
        "videoOnlyStreams": [s.to_wire() for s in video_only],
        "audioStreams": [s.to_wire() for s in audio_streams],
        "combinedStream": combined,
        "instance": instance,
    }


def find_format(info: dict, itag: str) -> dict:
    for fmt in (info.get("formatStreams") or []) + (info.get("adaptiveFormats") or []):
        if str(fmt.get("itag")) == itag and fmt.get("url"):
            return fmt
    raise NotFoundError("Stream not found")


async def _iter_body(resp: aiohttp.ClientResponse) -> AsyncGenerator[bytes, None]:
    try:
        async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
            yield chunk
    finally:
        resp.close()


async def stream_format(
    session: aiohttp.ClientSession,
    fmt: dict,
    range_header: str | None,
):
    """Pass the media bytes through, forwarding the client's Range header verbatim."""
    headers = {"User-Agent": MEDIA_USER_AGENT}
    if range_header:
        headers["Range"] = range_header

    resp = await open_request(session, "GET", fmt["url"], budget=MEDIA_TIMEOUT, target="Media host", headers=headers)
    if not resp.ok and resp.status != 206:
        resp.close()
        logger.warning("Media host answered %s for itag %s", resp.status, fmt.get("itag"))
        return JSONResponse({"error": "Failed to fetch stream"}, status_code=resp.status, headers=CORS_HEADERS)

    response_headers = dict(CORS_HEADERS)
    response_headers["Content-Type"] = resp.headers.get("Content-Type") or fmt.get("type") or "video/mp4"
    response_headers["Accept-Ranges"] = resp.headers.get("Accept-Ranges") or "bytes"
    for name in RELAYED_HEADERS:
        value = resp.headers.get(name)
        if value:
            response_headers[name] = value

    # The background close also covers a client that leaves before the body starts
    return StreamingResponse(
        _iter_body(resp),
        status_code=resp.status,
        headers=response_headers,
        background=BackgroundTask(resp.close),
    )
