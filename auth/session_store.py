from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from auth.config_store import ConfigurationStore
from auth.errors import SessionIdCollisionError, SessionNotFoundError
from auth.models import AppConfiguration, ListEntry, Session

LOGGER = logging.getLogger("maltier.auth")


class SessionStore:
    """In-process owner of every session, persisted in full on each mutation.

    The configuration is read once at construction. Every mutation runs under a
    single writer lock: the new session set is built aside, saved through the
    backing :class:`ConfigurationStore` on a worker thread, and only then swapped
    in, so a failed save leaves the in-memory state untouched.
    """

    def __init__(self, backend: ConfigurationStore) -> None:
        self._backend = backend
        self._lock = asyncio.Lock()
        self._sessions: dict[str, Session] = {}

        for session in backend.load().sessions:
            if session.session_id in self._sessions:
                raise SessionIdCollisionError(
                    f"Configuration contains duplicate session id {session.session_id!r}."
                )
            self._sessions[session.session_id] = session
        LOGGER.info("Loaded %s session(s)", len(self._sessions))

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return session.snapshot()

    async def create(self, session: Session) -> None:
        async with self._lock:
            if session.session_id in self._sessions:
                raise SessionIdCollisionError()
            await self._commit({**self._sessions, session.session_id: session.snapshot()})

    async def update_tokens(
        self,
        session_id: str,
        *,
        access_token: str,
        refresh_token: str,
        expires_at: float,
    ) -> Session:
        async with self._lock:
            current = self._require(session_id)
            updated = replace(
                current,
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
            )
            await self._commit({**self._sessions, session_id: updated})
            return updated.snapshot()

    async def set_cached_list(self, session_id: str, kind: str, entries: list[ListEntry]) -> None:
        async with self._lock:
            current = self._require(session_id)
            updated = replace(current, cached_lists={**current.cached_lists, kind: list(entries)})
            await self._commit({**self._sessions, session_id: updated})

    async def delete(self, session_id: str) -> None:
        async with self._lock:
            self._require(session_id)
            remaining = {key: value for key, value in self._sessions.items() if key != session_id}
            await self._commit(remaining)

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError()
        return session

    async def _commit(self, sessions: dict[str, Session]) -> None:
        config = AppConfiguration(sessions=list(sessions.values()))
        await asyncio.to_thread(self._backend.save, config)
        self._sessions = sessions
