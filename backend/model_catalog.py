"""List the models offered by an OpenAI-compatible endpoint."""

import logging

from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from config import COMPLETIONS_PATH, METADATA_TIMEOUT
from errors import NotFoundError, UpstreamError, UpstreamTimeoutError

logger = logging.getLogger(__name__)

EXCLUDED_KEYWORDS = ("embedding", "whisper", "tts", "dall-e")
PRIORITY_FAMILIES = ("gpt-5", "gpt-4", "o3", "o1", "claude", "gemini", "deepseek", "qwen", "glm")


def api_base(api_url: str) -> str:
    base = api_url.strip()
    if base.endswith(COMPLETIONS_PATH):
        base = base[: -len(COMPLETIONS_PATH)]
    return base.rstrip("/")


def _priority(model: str) -> int:
    lowered = model.lower()
    for index, family in enumerate(PRIORITY_FAMILIES):
        if family in lowered:
            return index
    return len(PRIORITY_FAMILIES)


def filter_and_sort(models: list[str]) -> list[str]:
    """Drop non-chat models; known families first, the rest alphabetically."""
    chat_models = [m for m in models if not any(k in m.lower() for k in EXCLUDED_KEYWORDS)]
    return sorted(chat_models, key=lambda m: (_priority(m), m))


async def list_models(api_url: str, api_key: str) -> list[str]:
    client = AsyncOpenAI(
        api_key=api_key.strip(),
        base_url=api_base(api_url),
        timeout=METADATA_TIMEOUT,
        max_retries=0,
    )
    try:
        page = await client.models.list()
        ids = [m.id for m in page.data if getattr(m, "id", None)]
    except APITimeoutError as e:
        raise UpstreamTimeoutError(METADATA_TIMEOUT, "Model list") from e
    except APIStatusError as e:
        logger.warning("Model list request failed with %s", e.status_code)
        raise UpstreamError(e.status_code, message=f"Failed to fetch model list (HTTP {e.status_code})") from e
    except APIConnectionError as e:
        raise UpstreamError(502, str(e), message="Could not connect to the API endpoint") from e
    finally:
        await client.close()

    models = filter_and_sort(ids)
    if not models:
        raise NotFoundError(
            "No models found, check the API configuration",
            "Some providers do not list models, enter the model name manually",
        )
    return models
