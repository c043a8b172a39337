"""
Pytest Configuration and Shared Test Fixtures

All fixtures defined here are automatically available to all test files.
"""

import os
import sys

import pytest

# Backend modules are imported top-level, as the server runs them
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "backend")))
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from models import AIRecommendConfig, ConfigSnapshot, YouTubeConfig  # noqa: E402
from tests.test_fixtures import FakeSession  # noqa: E402


@pytest.fixture
def config():
    """Enabled AI feature, YouTube search off."""
    return ConfigSnapshot(
        ai_recommend=AIRecommendConfig(
            enabled=True,
            api_url="https://llm.example.com/v1",
            api_key="sk-test",
            model="gpt-4o-mini",
            temperature=0.7,
            max_tokens=3000,
            stream_mode=False,
        ),
        youtube=YouTubeConfig(enabled=False, api_key=""),
    )


@pytest.fixture
def youtube_config(config):
    """Same as `config` with YouTube search available."""
    return config.model_copy(update={"youtube": YouTubeConfig(enabled=True, api_key="yt-key")})


@pytest.fixture
def fake_session():
    return FakeSession()
