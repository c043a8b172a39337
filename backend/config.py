import os
from dotenv import load_dotenv

from models import AIRecommendConfig, ConfigSnapshot, YouTubeConfig

load_dotenv()

# --- Server ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001").split(",")
    if o.strip()
]
CHAT_RATE_LIMIT = os.getenv("CHAT_RATE_LIMIT", "20/minute")

# --- Time budgets (seconds) ---
UPSTREAM_TIMEOUT = 60
PROBE_TIMEOUT = 5
METADATA_TIMEOUT = 10
MEDIA_TIMEOUT = 30

# --- Upstream chat completions ---
COMPLETIONS_PATH = "/chat/completions"
DEFAULT_MODEL = "gpt-4o-mini"

# Token limits per model class
GPT5_MIN_TOKENS = 2000
GPT5_MAX_TOKENS = 128000
O3_O4_MIN_TOKENS = 1500
O3_O4_MAX_TOKENS = 100000
REASONING_MIN_TOKENS = 1000
STANDARD_MIN_TOKENS = 500
GPT4_MAX_TOKENS = 32768

# --- Extraction ---
MAX_EXTRACTED_ITEMS = 4
FALLBACK_DESCRIPTION = "AI recommended title"

# --- External services ---
YOUTUBE_OEMBED_URL = "https://www.youtube.com/oembed"
YOUTUBE_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
YOUTUBE_THUMBNAIL_URL = "https://img.youtube.com/vi/{video_id}/mqdefault.jpg"
YOUTUBE_EMBED_URL = "https://www.youtube.com/embed/{video_id}?autoplay=1&rel=0"
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

# Invidious mirrors, probed in order on every proxy request
INVIDIOUS_INSTANCES = [
    "https://inv.nadeko.net",
    "https://invidious.nerdvpn.de",
    "https://invidious.jing.rocks",
    "https://invidious.privacyredirect.com",
    "https://yt.artemislena.eu",
]
MEDIA_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
PROXY_PATH = "/api/proxy/youtube"

# --- Cache ---
CACHE_TTL_SIMPLE_ANSWER = 300   # 5 minutes for single-turn short questions
SIMPLE_QUESTION_MAX_CHARS = 50


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


def load_config() -> ConfigSnapshot:
    """Build a fresh configuration snapshot from the environment."""
    allowed = os.getenv("AI_RECOMMEND_ALLOWED_USERS", "")
    return ConfigSnapshot(
        ai_recommend=AIRecommendConfig(
            enabled=_env_bool("AI_RECOMMEND_ENABLED", False),
            api_url=os.getenv("AI_RECOMMEND_API_URL", ""),
            api_key=os.getenv("AI_RECOMMEND_API_KEY", ""),
            model=os.getenv("AI_RECOMMEND_MODEL", DEFAULT_MODEL),
            temperature=_env_float("AI_RECOMMEND_TEMPERATURE", 0.7),
            max_tokens=_env_int("AI_RECOMMEND_MAX_TOKENS", 3000),
            stream_mode=_env_bool("AI_RECOMMEND_STREAM_MODE", True),
            allowed_users=[u.strip() for u in allowed.split(",") if u.strip()],
        ),
        youtube=YouTubeConfig(
            enabled=_env_bool("YOUTUBE_ENABLED", False),
            api_key=os.getenv("YOUTUBE_API_KEY", ""),
        ),
    )
