"""Secondary lookups for video links and YouTube search keywords.

Items are processed one after another. A failed item never fails the batch.
"""

import logging

import aiohttp

from config import (
    MAX_EXTRACTED_ITEMS,
    METADATA_TIMEOUT,
    YOUTUBE_EMBED_URL,
    YOUTUBE_OEMBED_URL,
    YOUTUBE_SEARCH_URL,
    YOUTUBE_THUMBNAIL_URL,
    YOUTUBE_WATCH_URL,
)
from errors import ConfigurationError, RelayError
from models import VideoLink, VideoLinkResult, YouTubeConfig, YoutubeVideoResult
from utils import fetch_json

logger = logging.getLogger(__name__)

DEFAULT_VIDEO_TITLE = "YouTube video"
UNKNOWN_CHANNEL = "Unknown channel"
FAILED_VIDEO_TITLE = "Video could not be parsed"
FAILED_VIDEO_ERROR = "Unable to fetch video info"


async def parse_video_links(session: aiohttp.ClientSession, links: list[VideoLink]) -> list[VideoLinkResult]:
    """Resolve title and channel for each link through the public oEmbed endpoint."""
    results = []
    for link in links:
        thumbnail = YOUTUBE_THUMBNAIL_URL.format(video_id=link.video_id)
        params = {"url": YOUTUBE_WATCH_URL.format(video_id=link.video_id), "format": "json"}
        try:
            info = await fetch_json(session, YOUTUBE_OEMBED_URL, params, budget=METADATA_TIMEOUT, target="oEmbed")
            info = info if isinstance(info, dict) else {}
            # ValidationError is a ValueError: odd field types fail this link only
            result = VideoLinkResult(
                video_id=link.video_id,
                original_url=link.original_url,
                title=info.get("title") or DEFAULT_VIDEO_TITLE,
                channel_name=info.get("author_name") or UNKNOWN_CHANNEL,
                thumbnail=thumbnail,
                playable=True,
                embed_url=YOUTUBE_EMBED_URL.format(video_id=link.video_id),
            )
        except (RelayError, aiohttp.ClientError, ValueError) as e:
            logger.warning("Failed to parse video %s: %s", link.video_id, e)
            result = VideoLinkResult(
                video_id=link.video_id,
                original_url=link.original_url,
                title=FAILED_VIDEO_TITLE,
                channel_name=UNKNOWN_CHANNEL,
                thumbnail=thumbnail,
                playable=False,
                error=FAILED_VIDEO_ERROR,
            )
        results.append(result)
    return results


def _video_from_item(item: dict) -> YoutubeVideoResult:
    snippet = item["snippet"]
    thumbnails = snippet.get("thumbnails") or {}
    thumbnail = (thumbnails.get("medium") or thumbnails.get("default") or {}).get("url")
    return YoutubeVideoResult(
        id=item["id"]["videoId"],
        title=snippet.get("title", ""),
        description=snippet.get("description", ""),
        thumbnail=thumbnail,
        channel_title=snippet.get("channelTitle", ""),
        published_at=snippet.get("publishedAt", ""),
    )


async def search_videos(
    session: aiohttp.ClientSession,
    keywords: list[str],
    youtube: YouTubeConfig,
) -> list[YoutubeVideoResult]:
    """Top relevance hit per keyword, at most four videos overall."""
    if not youtube.api_key:
        raise ConfigurationError("YouTube API key is not configured")

    videos: list[YoutubeVideoResult] = []
    for keyword in keywords:
        if len(videos) >= MAX_EXTRACTED_ITEMS:
            break
        params = {
            "key": youtube.api_key,
            "q": keyword,
            "part": "snippet",
            "type": "video",
            "maxResults": "1",
            "order": "relevance",
        }
        try:
            data = await fetch_json(session, YOUTUBE_SEARCH_URL, params, budget=METADATA_TIMEOUT, target="YouTube search")
            items = (data.get("items") or []) if isinstance(data, dict) else []
            if items:
                videos.append(_video_from_item(items[0]))
        except (RelayError, aiohttp.ClientError, ValueError, KeyError, TypeError) as e:
            logger.warning("YouTube search for %r failed: %s", keyword, e)
    return videos
