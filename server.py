from __future__ import annotations

import contextlib
import os
from urllib.parse import urlparse

import uvicorn
from starlette.applications import Starlette

from auth.challenge_store import (
    DEFAULT_CHALLENGE_TTL_SECONDS,
    ChallengeStore,
    MemoryChallengeStore,
    RedisChallengeStore,
)
from auth.config_store import FileConfigurationStore
from auth.session_manager import SessionManager
from auth.session_store import SessionStore
from maltier.api import TierApi, build_middleware
from maltier.constants import (
    APP_VERSION,
    DEFAULT_API_TIMEOUT,
    DEFAULT_PAGE_SIZE,
    LOGGER,
    MAL_API_BASE_URL,
)
from maltier.env import (
    get_env_float,
    get_env_int,
    is_truthy,
    load_env,
    parse_csv_env,
    setup_logging,
    validate_env,
)
from maltier.http import build_http_client
from maltier.list_fetcher import ListFetcher


def build_challenge_store() -> ChallengeStore:
    ttl_seconds = get_env_int("MAL_CHALLENGE_TTL_SECONDS", DEFAULT_CHALLENGE_TTL_SECONDS)
    url = os.getenv("MAL_CHALLENGE_STORE_URL", "").strip()
    if url:
        LOGGER.info("Using Redis challenge store")
        return RedisChallengeStore.from_url(url, ttl_seconds)
    return MemoryChallengeStore(ttl_seconds)


def create_app() -> Starlette:
    load_env()
    debug_enabled = setup_logging()
    validate_env()

    timeout = get_env_float("MAL_API_TIMEOUT", DEFAULT_API_TIMEOUT)
    redirect_uri = os.getenv("MAL_REDIRECT_URI", "").strip()

    http_client = build_http_client(timeout=timeout, debug=debug_enabled)
    challenge_store = build_challenge_store()
    session_store = SessionStore(
        FileConfigurationStore(os.getenv("MALTIER_SESSION_STORE_PATH", ".sessions.json"))
    )
    session_manager = SessionManager(
        client_id=os.getenv("MAL_CLIENT_ID", "").strip(),
        client_secret=os.getenv("MAL_CLIENT_SECRET", "").strip(),
        redirect_uri=redirect_uri,
        challenge_store=challenge_store,
        session_store=session_store,
        http_client=http_client,
        timeout=timeout,
        fetch_user_name=is_truthy(os.getenv("MAL_FETCH_USER_NAME", "1")),
    )
    list_fetcher = ListFetcher(
        session_manager,
        http_client,
        base_url=os.getenv("MAL_API_BASE_URL", MAL_API_BASE_URL),
        page_size=get_env_int("MAL_LIST_PAGE_SIZE", DEFAULT_PAGE_SIZE),
        timeout=timeout,
    )
    api = TierApi(
        session_manager=session_manager,
        list_fetcher=list_fetcher,
        secure_cookies=urlparse(redirect_uri).scheme == "https",
    )

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        LOGGER.info("maltier %s started", APP_VERSION)
        yield
        await http_client.aclose()
        if isinstance(challenge_store, RedisChallengeStore):
            await challenge_store.aclose()

    app = Starlette(
        debug=False,
        routes=api.routes(),
        middleware=build_middleware(parse_csv_env("MALTIER_CORS_ORIGINS")),
        lifespan=lifespan,
    )
    app.state.session_manager = session_manager
    app.state.list_fetcher = list_fetcher
    app.state.http_client = http_client
    return app


def main() -> None:
    host = os.getenv("MALTIER_HOST", "127.0.0.1")
    port = int(os.getenv("MALTIER_PORT", "8000"))
    app = create_app()
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
