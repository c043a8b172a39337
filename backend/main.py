"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import aiohttp
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from sse_starlette.sse import EventSourceResponse

from auth import AI_RECOMMEND_FEATURE, get_identity, has_permission
from cache import TTLCache, cache, simple_question_key
from chat import build_upstream_body, complete_reply, stream_reply, use_stream
from config import (
    CACHE_TTL_SIMPLE_ANSWER,
    CHAT_RATE_LIMIT,
    CORS_ORIGINS,
    INVIDIOUS_INSTANCES,
    LOG_LEVEL,
    PROXY_PATH,
    load_config,
)
from dispatcher import dispatch
from errors import (
    ConfigurationError,
    InvalidRequestError,
    NoInstanceAvailableError,
    PermissionDeniedError,
    RelayError,
    UnauthorizedError,
)
from model_catalog import list_models
from models import ChatRequest, ConfigSnapshot, ModelListRequest
from proxy import (
    PREFLIGHT_HEADERS,
    build_info,
    discover_instance,
    fetch_video_info,
    find_format,
    is_valid_video_id,
    stream_format,
)
from utils import close_session, get_session

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Expires": "0",
    "Pragma": "no-cache",
    "Surrogate-Control": "no-store",
}
PROXY_TYPES = ("info", "video", "audio")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Ready, %d proxy mirrors configured", len(INVIDIOUS_INSTANCES))
    yield
    # Shutdown: close HTTP session
    await close_session()
    logger.info("Closed.")


app = FastAPI(
    title="Recommendation Relay API",
    version="1.0.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS: allow frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Dependencies ---

async def http_session() -> aiohttp.ClientSession:
    return await get_session()


def current_config() -> ConfigSnapshot:
    return load_config()


def response_cache() -> TTLCache:
    return cache


async def read_chat_request(request: Request) -> ChatRequest:
    """Parse the chat body. Called after the caller has been authorized."""
    try:
        payload = await request.json()
    except ValueError as e:
        raise InvalidRequestError("Invalid request format", "Request body must be JSON") from e
    try:
        return ChatRequest.model_validate(payload)
    except ValidationError as e:
        errors = e.errors()
        details = errors[0].get("msg") if errors else None
        raise InvalidRequestError("Invalid request format", details) from e


# --- Error handlers ---

@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    headers = NO_STORE_HEADERS if exc.status_code in (401, 403) else None
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    details = errors[0].get("msg") if errors else None
    return JSONResponse({"error": "Invalid request format", "details": details}, status_code=400)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# --- Routes ---

@app.get("/api/health")
async def health(config: ConfigSnapshot = Depends(current_config)):
    return {
        "status": "ok",
        "mirrors": len(INVIDIOUS_INSTANCES),
        "ai_recommend_enabled": config.ai_recommend.enabled,
        "youtube_search_enabled": config.youtube.search_available,
    }


@app.post("/api/ai-recommend")
@limiter.limit(CHAT_RATE_LIMIT)
async def ai_recommend(
    request: Request,
    identity: str | None = Depends(get_identity),
    config: ConfigSnapshot = Depends(current_config),
    session: aiohttp.ClientSession = Depends(http_session),
    answers: TTLCache = Depends(response_cache),
):
    if not identity:
        raise UnauthorizedError()
    if not has_permission(identity, AI_RECOMMEND_FEATURE, config):
        raise PermissionDeniedError()
    ai = config.ai_recommend
    if not ai.enabled:
        raise ConfigurationError("AI recommendations are not enabled", status_code=403)
    if not ai.api_key or not ai.api_url:
        raise ConfigurationError("AI recommendation configuration is incomplete, contact an administrator")

    chat_request = await read_chat_request(request)
    cache_key = simple_question_key(chat_request.messages)
    if cache_key:
        cached = answers.get(cache_key)
        if cached:
            return cached

    stream = use_stream(chat_request, config)
    body = build_upstream_body(chat_request, config, stream)
    upstream = await dispatch(session, ai.api_url, ai.api_key, body)

    if not stream:
        result = await complete_reply(session, upstream, chat_request, config, body["model"])
        if cache_key:
            answers.set(cache_key, result, CACHE_TTL_SIMPLE_ANSWER)
        return result

    return EventSourceResponse(
        stream_reply(session, upstream, chat_request, config),
        sep="\n",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.post("/api/admin/ai-recommend/models")
async def available_models(
    body: ModelListRequest,
    identity: str | None = Depends(get_identity),
):
    if not identity:
        raise UnauthorizedError()
    if not body.apiUrl.strip() or not body.apiKey.strip():
        raise InvalidRequestError("API URL and key are required")
    models = await list_models(body.apiUrl, body.apiKey)
    return {"models": models, "count": len(models)}


@app.get(PROXY_PATH)
async def youtube_proxy(
    request: Request,
    v: str | None = None,
    kind: str = Query("info", alias="type"),
    itag: str | None = None,
    session: aiohttp.ClientSession = Depends(http_session),
):
    if not v:
        raise InvalidRequestError("Missing video ID")
    if not is_valid_video_id(v):
        raise InvalidRequestError("Invalid video ID format")
    if kind not in PROXY_TYPES:
        raise InvalidRequestError("Invalid type parameter")
    if kind != "info" and not itag:
        raise InvalidRequestError("Missing itag parameter")

    instance = await discover_instance(session)
    if instance is None:
        raise NoInstanceAvailableError()

    info = await fetch_video_info(session, v, instance)
    if kind == "info":
        return build_info(v, info, instance, str(request.base_url))

    fmt = find_format(info, itag)
    return await stream_format(session, fmt, request.headers.get("range"))


@app.options(PROXY_PATH)
async def youtube_proxy_preflight():
    return Response(status_code=204, headers=PREFLIGHT_HEADERS)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
