import asyncio
import aiohttp

from errors import UpstreamError, UpstreamTimeoutError

_session: aiohttp.ClientSession | None = None

USER_AGENT = "RecommendRelay/1.0"


async def get_session() -> aiohttp.ClientSession:
    global _session
    if _session is None or _session.closed:
        # No total timeout here: every call passes its own budget.
        _session = aiohttp.ClientSession(
            headers={"User-Agent": USER_AGENT},
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=15),
        )
    return _session


async def close_session():
    global _session
    if _session and not _session.closed:
        await _session.close()
        _session = None


async def open_request(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    *,
    budget: float,
    target: str = "Upstream service",
    **kwargs,
) -> aiohttp.ClientResponse:
    """Issue a request and wait at most `budget` seconds for the response headers.

    The same budget applies to each subsequent body read. The caller owns the
    returned response and must release or close it.
    """
    try:
        return await asyncio.wait_for(
            session.request(
                method,
                url,
                timeout=aiohttp.ClientTimeout(total=None, sock_read=budget),
                **kwargs,
            ),
            timeout=budget,
        )
    except asyncio.TimeoutError as e:
        raise UpstreamTimeoutError(budget, target) from e


async def fetch_json(
    session: aiohttp.ClientSession,
    url: str,
    params: dict | None = None,
    *,
    budget: float,
    target: str = "Upstream service",
) -> dict | list:
    """Fetch JSON from a URL. Non-2xx raises UpstreamError."""
    resp = await open_request(session, "GET", url, budget=budget, target=target, params=params)
    async with resp:
        if not resp.ok:
            body = await resp.text()
            raise UpstreamError(resp.status, truncate(body, 200))
        try:
            return await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise UpstreamTimeoutError(budget, target) from e


def truncate(text: str, max_chars: int = 3000) -> str:
    """Truncate text to max_chars, adding ellipsis if cut."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."
