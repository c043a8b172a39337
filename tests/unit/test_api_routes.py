"""
Unit Tests for API Routes

Exercises the FastAPI routes with TestClient, with the configuration, the
HTTP session and the response cache replaced through dependency overrides.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import aiohttp
import pytest
from fastapi.testclient import TestClient
from sse_starlette import sse

import main
from cache import TTLCache
from config import INVIDIOUS_INSTANCES, YOUTUBE_OEMBED_URL
from models import AIRecommendConfig
from tests.test_fixtures import FakeResponse, FakeSession, sse_body

LLM_URL = "https://llm.example.com/v1/chat/completions"
USER = {"X-Auth-User": "alice"}

MOVIE_REPLY = (
    "《Dune: Part Two》 (2024) [Sci-Fi] - Paul joins the Fremen.\n"
    "《Arrival》 (2016) [Sci-Fi/Drama] - \n"
)


def _completion(content: str) -> FakeResponse:
    return FakeResponse(200, json_data={
        "id": "chatcmpl-123",
        "created": 1700000000,
        "model": "gpt-4o-mini",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
        "usage": {"total_tokens": 42},
    })


def _chat(client, content="recommend some sci-fi movies", headers=USER, **extra):
    return client.post(
        "/api/ai-recommend",
        json={"messages": [{"role": "user", "content": content}], **extra},
        headers=headers,
    )


@pytest.fixture
def answers():
    return TTLCache()


@pytest.fixture
def client(config, fake_session, answers):
    main.limiter.enabled = False
    main.app.dependency_overrides[main.current_config] = lambda: config
    main.app.dependency_overrides[main.http_session] = lambda: fake_session
    main.app.dependency_overrides[main.response_cache] = lambda: answers
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()
    main.limiter.enabled = True


def _use_config(new_config):
    main.app.dependency_overrides[main.current_config] = lambda: new_config


@pytest.mark.unit
class TestHealthRoute:
    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["mirrors"] == len(INVIDIOUS_INSTANCES)
        assert data["ai_recommend_enabled"] is True


@pytest.mark.unit
class TestChatAuthorization:
    def test_missing_identity_is_401(self, client):
        response = _chat(client, headers={})

        assert response.status_code == 401
        assert response.headers["cache-control"].startswith("no-store")

    def test_missing_permission_is_403_with_no_store(self, client, config):
        ai = config.ai_recommend.model_copy(update={"allowed_users": ["bob"]})
        _use_config(config.model_copy(update={"ai_recommend": ai}))

        response = _chat(client)

        assert response.status_code == 403
        assert response.headers["cache-control"] == "no-store, no-cache, must-revalidate, proxy-revalidate"
        assert response.headers["surrogate-control"] == "no-store"

    def test_disabled_feature_is_403(self, client, config):
        _use_config(config.model_copy(update={"ai_recommend": AIRecommendConfig(enabled=False)}))

        response = _chat(client)

        assert response.status_code == 403

    def test_incomplete_config_is_500(self, client, config):
        _use_config(config.model_copy(update={"ai_recommend": AIRecommendConfig(enabled=True, api_key="")}))

        response = _chat(client)

        assert response.status_code == 500
        assert "incomplete" in response.json()["error"]

    def test_empty_messages_is_400(self, client):
        response = client.post("/api/ai-recommend", json={"messages": []}, headers=USER)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request format"

    def test_identity_checked_before_body(self, client, fake_session):
        response = client.post("/api/ai-recommend", json={"messages": []})

        assert response.status_code == 401
        assert response.headers["cache-control"].startswith("no-store")
        assert fake_session.calls == []

    def test_permission_checked_before_body(self, client, config):
        ai = config.ai_recommend.model_copy(update={"allowed_users": ["bob"]})
        _use_config(config.model_copy(update={"ai_recommend": ai}))

        response = client.post("/api/ai-recommend", content=b"{not json", headers=USER)

        assert response.status_code == 403

    def test_non_json_body_is_400(self, client):
        response = client.post(
            "/api/ai-recommend",
            content=b"{not json",
            headers={**USER, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["details"] == "Request body must be JSON"


@pytest.mark.unit
class TestChatNonStreaming:
    def test_movie_recommendations(self, client, fake_session):
        fake_session.routes[LLM_URL] = _completion(MOVIE_REPLY)

        response = _chat(client)

        assert response.status_code == 200
        data = response.json()
        assert data["type"] == "movie_recommend"
        assert data["id"] == "chatcmpl-123"
        assert data["usage"] == {"total_tokens": 42}
        assert [r["title"] for r in data["recommendations"]] == ["Dune: Part Two", "Arrival"]
        assert data["recommendations"][1]["description"]
        assert "videoLinks" not in data and "youtubeVideos" not in data

        body = fake_session.calls[0]["json"]
        assert body["messages"][0]["role"] == "system"
        assert body["messages"][1]["content"] == "recommend some sci-fi movies"
        assert body["stream"] is False
        assert body["max_tokens"] == 3000

    def test_video_link_in_user_message(self, client, fake_session):
        fake_session.routes[LLM_URL] = _completion(MOVIE_REPLY)
        fake_session.routes[YOUTUBE_OEMBED_URL] = FakeResponse(200, json_data={"title": "Rick", "author_name": "RA"})

        response = _chat(client, content="what is https://youtu.be/dQw4w9WgXcQ")

        data = response.json()
        assert data["type"] == "video_link_parse"
        assert len(data["videoLinks"]) == 1
        assert data["videoLinks"][0]["videoId"] == "dQw4w9WgXcQ"
        assert data["videoLinks"][0]["playable"] is True
        assert "recommendations" not in data

    def test_empty_reply_is_error(self, client, fake_session):
        fake_session.routes[LLM_URL] = _completion("   ")

        response = _chat(client)

        assert response.status_code == 500
        assert "empty" in response.json()["error"]

    def test_missing_choices_is_error(self, client, fake_session):
        fake_session.routes[LLM_URL] = FakeResponse(200, json_data={"choices": []})

        response = _chat(client)

        assert response.status_code == 500
        assert "malformed" in response.json()["error"]

    def test_upstream_error_is_mapped(self, client, fake_session):
        fake_session.routes[LLM_URL] = FakeResponse(401, text='{"error": {"message": "bad key"}}')

        response = _chat(client)

        assert response.status_code == 500
        data = response.json()
        assert data["status"] == 401
        assert data["details"] == "bad key"
        assert "API key" in data["error"]

    def test_upstream_timeout(self, client, fake_session):
        fake_session.routes[LLM_URL] = asyncio.TimeoutError()

        response = _chat(client)

        assert response.status_code == 504
        assert response.json()["timeout"] is True

    def test_body_read_timeout_is_504(self, client, fake_session):
        upstream = FakeResponse(200, body_error=aiohttp.ServerTimeoutError("Timeout on reading data from socket"))
        fake_session.routes[LLM_URL] = upstream

        response = _chat(client)

        assert response.status_code == 504
        assert response.json()["timeout"] is True
        assert upstream.released

    def test_body_read_reset_is_500(self, client, fake_session):
        fake_session.routes[LLM_URL] = FakeResponse(200, body_error=aiohttp.ClientPayloadError("reset"))

        response = _chat(client)

        assert response.status_code == 500
        assert "malformed" in response.json()["error"]

    def test_short_question_is_cached(self, client, fake_session, answers):
        fake_session.routes[LLM_URL] = [_completion(MOVIE_REPLY)]

        first = _chat(client, content="sci-fi please")
        second = _chat(client, content="  SCI-FI please ")

        assert first.status_code == second.status_code == 200
        assert second.json() == first.json()
        assert len(fake_session.calls) == 1


@pytest.fixture
def sse_app_status():
    # sse-starlette keeps a process-wide exit event bound to the first event loop
    app_status = getattr(sse, "AppStatus", None)
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        app_status.should_exit_event = None
    yield


@pytest.mark.unit
@pytest.mark.usefixtures("sse_app_status")
class TestChatStreaming:
    def test_event_stream_framing(self, client, fake_session):
        upstream = FakeResponse(200, chunks=[
            sse_body("《Alien》 (1979) ", done=False),
            sse_body("[Horror] - A crew meets a creature."),
        ])
        fake_session.routes[LLM_URL] = upstream

        response = _chat(client, content="horror movies", streamMode=True)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        body = response.text
        assert body.endswith("\n\ndata: [DONE]\n\n")

        frames = body.split("\n\n")
        assert frames[-1] == ""
        assert frames[-2] == "data: [DONE]"
        assert frames[0] == "data: " + json.dumps({"type": "content", "content": "《Alien》 (1979) "}, ensure_ascii=False)
        events = [json.loads(frame[len("data: "):]) for frame in frames[:-2]]
        assert [e["type"] for e in events] == ["content", "content", "recommendations"]
        assert events[2]["data"] == [{
            "title": "Alien",
            "year": "1979",
            "genre": "Horror",
            "description": "A crew meets a creature.",
        }]
        assert fake_session.calls[0]["json"]["stream"] is True
        assert upstream.closed

    def test_plain_reply_ends_with_done(self, client, fake_session):
        fake_session.routes[LLM_URL] = FakeResponse(200, chunks=[sse_body("Hello", " there")])

        response = _chat(client, content="hi", streamMode=True)

        assert response.text == (
            'data: {"type": "content", "content": "Hello"}\n\n'
            'data: {"type": "content", "content": " there"}\n\n'
            "data: [DONE]\n\n"
        )


@pytest.mark.unit
class TestProxyRoute:
    def test_all_mirrors_down_is_503_without_metadata_fetch(self, client, fake_session):
        for mirror in INVIDIOUS_INSTANCES:
            fake_session.routes[mirror] = aiohttp.ClientConnectionError("down")

        response = client.get("/api/proxy/youtube", params={"v": "dQw4w9WgXcQ", "type": "info"})

        assert response.status_code == 503
        assert all(url.endswith("/api/v1/stats") for url in fake_session.urls())
        assert len(fake_session.calls) == len(INVIDIOUS_INSTANCES)

    @pytest.mark.parametrize("params", [
        {},
        {"v": "short"},
        {"v": "dQw4w9WgXcQ", "type": "subtitles"},
        {"v": "dQw4w9WgXcQ", "type": "video"},
    ])
    def test_bad_parameters_are_400(self, client, fake_session, params):
        response = client.get("/api/proxy/youtube", params=params)

        assert response.status_code == 400
        assert fake_session.calls == []

    def test_info_mode(self, client, fake_session):
        mirror = INVIDIOUS_INSTANCES[0]
        fake_session.routes[f"{mirror}/api/v1/stats"] = FakeResponse(200, json_data={})
        fake_session.routes[f"{mirror}/api/v1/videos/"] = FakeResponse(200, json_data={
            "title": "Video",
            "formatStreams": [{"itag": 18, "qualityLabel": "360p", "type": "video/mp4", "url": "https://media.example/18"}],
            "adaptiveFormats": [],
        })

        response = client.get("/api/proxy/youtube", params={"v": "dQw4w9WgXcQ"})

        assert response.status_code == 200
        data = response.json()
        assert data["instance"] == mirror
        assert data["combinedStream"]["url"] == "http://testserver/api/proxy/youtube?v=dQw4w9WgXcQ&type=video&itag=18"

    def test_stream_mode_relays_range(self, client, fake_session):
        mirror = INVIDIOUS_INSTANCES[0]
        fake_session.routes[f"{mirror}/api/v1/stats"] = FakeResponse(200, json_data={})
        fake_session.routes[f"{mirror}/api/v1/videos/"] = FakeResponse(200, json_data={
            "formatStreams": [],
            "adaptiveFormats": [{"itag": "140", "type": "audio/mp4", "url": "https://media.example/140"}],
        })
        fake_session.routes["https://media.example"] = FakeResponse(
            206,
            headers={"Content-Type": "audio/mp4", "Content-Range": "bytes 100-199/1000", "Content-Length": "100"},
            chunks=[b"a" * 100],
        )

        response = client.get(
            "/api/proxy/youtube",
            params={"v": "dQw4w9WgXcQ", "type": "audio", "itag": "140"},
            headers={"Range": "bytes=100-199"},
        )

        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 100-199/1000"
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.content == b"a" * 100
        assert fake_session.calls[-1]["headers"]["Range"] == "bytes=100-199"

    def test_stream_mode_unknown_itag_is_404(self, client, fake_session):
        mirror = INVIDIOUS_INSTANCES[0]
        fake_session.routes[f"{mirror}/api/v1/stats"] = FakeResponse(200, json_data={})
        fake_session.routes[f"{mirror}/api/v1/videos/"] = FakeResponse(200, json_data={"formatStreams": []})

        response = client.get("/api/proxy/youtube", params={"v": "dQw4w9WgXcQ", "type": "video", "itag": "22"})

        assert response.status_code == 404

    def test_preflight(self, client):
        response = client.options("/api/proxy/youtube")

        assert response.status_code == 204
        assert response.headers["access-control-max-age"] == "86400"
        assert response.headers["access-control-allow-origin"] == "*"
        assert "Range" in response.headers["access-control-allow-headers"]


@pytest.mark.unit
class TestModelsRoute:
    def test_requires_identity(self, client):
        response = client.post("/api/admin/ai-recommend/models", json={"apiUrl": "u", "apiKey": "k"})

        assert response.status_code == 401

    def test_lists_models(self, client, monkeypatch):
        listing = AsyncMock(return_value=["gpt-4o", "llama-3"])
        monkeypatch.setattr(main, "list_models", listing)

        response = client.post(
            "/api/admin/ai-recommend/models",
            json={"apiUrl": "https://api.example.com/v1", "apiKey": "sk"},
            headers=USER,
        )

        assert response.status_code == 200
        assert response.json() == {"models": ["gpt-4o", "llama-3"], "count": 2}
        listing.assert_awaited_once_with("https://api.example.com/v1", "sk")
