from __future__ import annotations

import httpx

from .constants import DEFAULT_API_TIMEOUT, LOGGER

MAX_LOGGED_BODY = 1000


def friendly_error_message(status_code: int) -> str:
    if status_code == 401:
        return "Authentication failed. Your MyAnimeList token may have expired."
    if status_code == 403:
        return "You don't have permission to read this list."
    if status_code == 404:
        return "The requested list was not found on MyAnimeList."
    if status_code == 429:
        return "MyAnimeList rate limit exceeded. Please try again later."
    if status_code >= 500:
        return "MyAnimeList is experiencing issues. Please try again later."
    return f"MyAnimeList request failed with status {status_code}."


def _redacted_url(request: httpx.Request) -> str:
    return str(request.url.copy_with(query=None))


async def log_request(request: httpx.Request) -> None:
    LOGGER.info("MAL request %s %s", request.method, _redacted_url(request))


async def log_response(response: httpx.Response) -> None:
    LOGGER.info(
        "MAL response %s %s -> %s",
        response.request.method,
        _redacted_url(response.request),
        response.status_code,
    )
    if response.status_code >= 400:
        body = await response.aread()
        text = body.decode("utf-8", errors="replace")
        if len(text) > MAX_LOGGED_BODY:
            text = text[:MAX_LOGGED_BODY] + "...<truncated>"
        LOGGER.warning("MAL error body: %s", text)


def build_http_client(
    *,
    timeout: float = DEFAULT_API_TIMEOUT,
    debug: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    event_hooks: dict[str, list] = {"request": [], "response": []}
    if debug:
        event_hooks["request"].append(log_request)
        event_hooks["response"].append(log_response)

    return httpx.AsyncClient(
        headers={"Accept": "application/json"},
        timeout=timeout,
        transport=transport,
        event_hooks=event_hooks,
    )
