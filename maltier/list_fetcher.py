from __future__ import annotations

import httpx

from auth.errors import ListFetchFailedError, UnknownListKindError
from auth.models import LIST_KINDS, ListEntry
from auth.session_manager import SessionManager

from .constants import (
    DEFAULT_API_TIMEOUT,
    DEFAULT_MAX_PAGES,
    DEFAULT_PAGE_SIZE,
    LOGGER,
    MAL_API_BASE_URL,
)
from .http import friendly_error_message


def parse_entry(item: object) -> ListEntry:
    if not isinstance(item, dict):
        raise ValueError("List item is not an object.")
    node = item.get("node")
    if not isinstance(node, dict) or not isinstance(node.get("id"), int):
        raise ValueError("List item is missing node.id.")

    picture = node.get("main_picture") or {}
    picture_url = picture.get("medium") if isinstance(picture, dict) else None
    list_status = item.get("list_status") or {}
    score = list_status.get("score", 0) if isinstance(list_status, dict) else 0
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise ValueError("List item score is not a number.")

    return ListEntry(
        remote_id=node["id"],
        picture_url=picture_url if isinstance(picture_url, str) else "",
        score=score,
    )


def parse_page(payload: object) -> tuple[list[ListEntry], str | None]:
    """Split one page of ``/users/@me/{kind}list`` into entries and the next-page URL."""
    if not isinstance(payload, dict):
        raise ValueError("List page is not a JSON object.")

    data = payload.get("data", [])
    if not isinstance(data, list):
        raise ValueError("List page data is not a list.")

    paging = payload.get("paging") or {}
    next_url = paging.get("next") if isinstance(paging, dict) else None
    if not isinstance(next_url, str) or not next_url:
        next_url = None

    return [parse_entry(item) for item in data], next_url


class ListFetcher:
    def __init__(
        self,
        session_manager: SessionManager,
        client: httpx.AsyncClient,
        *,
        base_url: str = MAL_API_BASE_URL,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        timeout: float = DEFAULT_API_TIMEOUT,
    ) -> None:
        self.session_manager = session_manager
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.max_pages = max_pages
        self.timeout = timeout
        self._client = client

    async def get_list(
        self,
        session_id: str,
        kind: str,
        *,
        force_refresh: bool = False,
    ) -> list[ListEntry]:
        if kind not in LIST_KINDS:
            raise UnknownListKindError(
                f"Unknown list kind {kind!r}; expected one of {', '.join(LIST_KINDS)}."
            )

        session = self.session_manager.get_session(session_id)
        cached = session.cached_lists.get(kind)
        if cached and not force_refresh:
            return cached

        access_token = await self.session_manager.resolve_access_token(session_id)
        entries = await self._fetch_all(access_token, kind)
        await self.session_manager.session_store.set_cached_list(session_id, kind, entries)
        LOGGER.info("Cached %s %s entries", len(entries), kind)
        return entries

    async def _fetch_all(self, access_token: str, kind: str) -> list[ListEntry]:
        url: str | None = f"{self.base_url}/users/@me/{kind}list"
        params: dict[str, str | int] | None = {
            "status": "completed",
            "sort": "list_score",
            "limit": self.page_size,
            "fields": "list_status",
        }
        entries: list[ListEntry] = []
        pages = 0

        while url:
            if pages >= self.max_pages:
                raise ListFetchFailedError(
                    f"MyAnimeList {kind} list exceeded {self.max_pages} pages."
                )
            payload = await self._get_page(url, params, access_token)
            try:
                page_entries, url = parse_page(payload)
            except ValueError as error:
                raise ListFetchFailedError(f"Unexpected {kind} list page: {error}") from error
            if url is not None and not self._is_same_origin(url):
                LOGGER.warning("Refusing %s list next page on foreign host %s", kind, url)
                raise ListFetchFailedError(
                    f"MyAnimeList {kind} list pointed paging to an unexpected host."
                )
            entries.extend(page_entries)
            pages += 1
            # paging.next already carries the query string
            params = None

        return entries

    def _is_same_origin(self, url: str) -> bool:
        base = httpx.URL(self.base_url)
        try:
            candidate = httpx.URL(url)
        except httpx.InvalidURL:
            return False
        return (candidate.scheme, candidate.host, candidate.port) == (
            base.scheme,
            base.host,
            base.port,
        )

    async def _get_page(
        self,
        url: str,
        params: dict[str, str | int] | None,
        access_token: str,
    ) -> object:
        try:
            response = await self._client.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as error:
            raise ListFetchFailedError(f"MyAnimeList request failed: {error!r}") from error

        if response.status_code != 200:
            raise ListFetchFailedError(friendly_error_message(response.status_code))

        try:
            return response.json()
        except ValueError as error:
            raise ListFetchFailedError("MyAnimeList returned invalid JSON.") from error
