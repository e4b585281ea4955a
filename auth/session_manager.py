from __future__ import annotations

import asyncio
import logging
import secrets
import time
from typing import Callable

import httpx

from auth import mal_oauth2
from auth.challenge_store import ChallengeStore
from auth.errors import AuthError, InvalidStateError, RefreshFailedError, SessionNotFoundError
from auth.models import Session
from auth.session_store import SessionStore

LOGGER = logging.getLogger("maltier.auth")


def generate_session_id() -> str:
    return secrets.token_hex(16)


class SessionManager:
    """Drives the PKCE handshake and the token lifecycle of every session.

    Collaborators are passed in explicitly. The provider calls are injectable
    (``exchange_code_fn`` and friends) so tests and alternative transports can
    stand in for MyAnimeList.
    """

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        challenge_store: ChallengeStore,
        session_store: SessionStore,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = mal_oauth2.DEFAULT_TIMEOUT_SECONDS,
        fetch_user_name: bool = False,
        clock: Callable[[], float] = time.time,
        session_id_factory: Callable[[], str] = generate_session_id,
        exchange_code_fn=mal_oauth2.exchange_code,
        refresh_token_fn=mal_oauth2.refresh_token,
        fetch_identity_fn=mal_oauth2.fetch_identity,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.challenge_store = challenge_store
        self.session_store = session_store
        self.fetch_user_name = fetch_user_name

        self._http_client = http_client
        self._timeout = timeout
        self._clock = clock
        self._session_id_factory = session_id_factory
        self._exchange_code_fn = exchange_code_fn
        self._refresh_token_fn = refresh_token_fn
        self._fetch_identity_fn = fetch_identity_fn
        self._refreshes: dict[str, asyncio.Task] = {}

    # -- authorization ---------------------------------------------------------

    async def begin_authorization(self, code_challenge: str) -> tuple[str, str]:
        if not code_challenge:
            raise ValueError("code_challenge is required.")

        state = secrets.token_urlsafe(24)
        # With the plain PKCE method the challenge doubles as the verifier.
        await self.challenge_store.register(state, code_challenge)
        authorization_url = mal_oauth2.build_authorization_url(
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            state=state,
            code_challenge=code_challenge,
        )
        return state, authorization_url

    async def complete_authorization(self, code: str, state: str) -> Session:
        code_verifier = await self.challenge_store.consume(state)
        if code_verifier is None:
            raise InvalidStateError()

        exchanged = await self._exchange_code_fn(
            client_id=self.client_id,
            client_secret=self.client_secret,
            code=code,
            redirect_uri=self.redirect_uri,
            code_verifier=code_verifier,
            client=self._http_client,
            timeout=self._timeout,
        )

        user_name = None
        if self.fetch_user_name:
            identity = await self._fetch_identity_fn(
                exchanged.access_token,
                client=self._http_client,
                timeout=self._timeout,
            )
            user_name = identity.name

        session = Session(
            session_id=self._session_id_factory(),
            access_token=exchanged.access_token,
            refresh_token=exchanged.refresh_token,
            expires_at=self._clock() + exchanged.expires_in,
            user_name=user_name,
        )
        await self.session_store.create(session)
        LOGGER.info("Authorized new session for user=%s", user_name or "<unknown>")
        return session

    async def logout(self, session_id: str) -> None:
        await self.session_store.delete(session_id)
        LOGGER.info("Session logged out")

    def get_session(self, session_id: str) -> Session:
        session = self.session_store.get(session_id)
        if session is None:
            raise SessionNotFoundError()
        return session

    # -- tokens ----------------------------------------------------------------

    async def resolve_access_token(self, session_id: str) -> str:
        now = self._clock()
        session = self.get_session(session_id)
        if not session.is_expired(now):
            return session.access_token
        return await self._refresh_once(session_id)

    async def _refresh_once(self, session_id: str) -> str:
        task = self._refreshes.get(session_id)
        if task is None:
            task = asyncio.ensure_future(self._refresh(session_id))
            self._refreshes[session_id] = task

            def _forget(done: asyncio.Task) -> None:
                if self._refreshes.get(session_id) is done:
                    del self._refreshes[session_id]

            task.add_done_callback(_forget)
        return await asyncio.shield(task)

    async def _refresh(self, session_id: str) -> str:
        session = self.get_session(session_id)
        try:
            refreshed = await self._refresh_token_fn(
                client_id=self.client_id,
                client_secret=self.client_secret,
                refresh_token=session.refresh_token,
                client=self._http_client,
                timeout=self._timeout,
            )
        except RefreshFailedError:
            LOGGER.warning("Token refresh rejected by MyAnimeList")
            raise
        except AuthError as error:
            LOGGER.warning("Token refresh failed: %s", error)
            raise RefreshFailedError(f"Token refresh failed: {error}") from error

        updated = await self.session_store.update_tokens(
            session_id,
            access_token=refreshed.access_token,
            refresh_token=refreshed.refresh_token,
            expires_at=self._clock() + refreshed.expires_in,
        )
        LOGGER.info("Refreshed access token for session")
        return updated.access_token
