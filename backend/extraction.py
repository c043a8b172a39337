"""Turn a finished reply into structured data.

Extraction over free-form model output is best effort: when nothing matches,
the result is simply an empty list, never an error.
"""

import re
from dataclasses import dataclass, field
from enum import Enum

from config import FALLBACK_DESCRIPTION, MAX_EXTRACTED_ITEMS
from models import MovieRecommendation, VideoLink, YouTubeConfig

VIDEO_URL_PATTERN = re.compile(
    r"(?:https?://)?(?:(?:www|m)\.)?"
    r"(?:youtube\.com/watch\?(?:[^\s#]*?&)?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/v/|youtube\.com/shorts/)"
    r"([A-Za-z0-9_-]{11})(?![A-Za-z0-9_-])"
)

# 【title】 marks a video the model wants searched
KEYWORD_PATTERN = re.compile(r"【([^】]+)】")

# 《title》 (year) [genre] - description
MOVIE_LINE_PATTERN = re.compile(r"《([^》]+)》\s*\((\d{4})\)\s*\[([^\]]+)\]\s*-\s*(.*)")


class Classification(str, Enum):
    VIDEO_LINK = "video_link_parse"
    YOUTUBE_RECOMMEND = "youtube_recommend"
    MOVIE_RECOMMEND = "movie_recommend"


@dataclass
class Extraction:
    kind: Classification
    video_links: list[VideoLink] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    recommendations: list[MovieRecommendation] = field(default_factory=list)


def detect_video_links(text: str) -> list[VideoLink]:
    """Video URLs in order of appearance. Duplicates are kept."""
    return [
        VideoLink(video_id=m.group(1), original_url=m.group(0))
        for m in VIDEO_URL_PATTERN.finditer(text)
    ]


def extract_keywords(content: str, limit: int = MAX_EXTRACTED_ITEMS) -> list[str]:
    keywords = []
    for match in KEYWORD_PATTERN.finditer(content):
        keywords.append(match.group(1).strip())
        if len(keywords) >= limit:
            break
    return keywords


def extract_recommendations(content: str, limit: int = MAX_EXTRACTED_ITEMS) -> list[MovieRecommendation]:
    recommendations = []
    for line in content.split("\n"):
        if len(recommendations) >= limit:
            break
        match = MOVIE_LINE_PATTERN.search(line)
        if not match:
            continue
        title, year, genre, description = match.groups()
        recommendations.append(MovieRecommendation(
            title=title.strip(),
            year=year.strip(),
            genre=genre.strip(),
            description=description.strip() or FALLBACK_DESCRIPTION,
        ))
    return recommendations


def classify(user_message: str, reply: str, youtube: YouTubeConfig) -> Extraction:
    """Pick exactly one outcome: video links, YouTube search, or movie recommendations."""
    links = detect_video_links(user_message)
    if links:
        return Extraction(Classification.VIDEO_LINK, video_links=links)

    if youtube.search_available:
        keywords = extract_keywords(reply)
        if keywords:
            return Extraction(Classification.YOUTUBE_RECOMMEND, keywords=keywords)

    return Extraction(Classification.MOVIE_RECOMMEND, recommendations=extract_recommendations(reply))
