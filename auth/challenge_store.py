from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Callable

from redis import asyncio as redis

from auth.models import PendingChallenge

DEFAULT_CHALLENGE_TTL_SECONDS = 600
REDIS_KEY_PREFIX = "maltier:challenge:"


class ChallengeStore(ABC):
    """Single-use mapping from an OAuth ``state`` to its PKCE code verifier."""

    def __init__(self, ttl_seconds: int = DEFAULT_CHALLENGE_TTL_SECONDS) -> None:
        if ttl_seconds <= 0:
            raise ValueError("Challenge TTL must be a positive number of seconds.")
        self.ttl_seconds = ttl_seconds

    @abstractmethod
    async def register(self, state: str, code_verifier: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def consume(self, state: str) -> str | None:
        """Return and delete the verifier for ``state``; ``None`` when absent or expired."""
        raise NotImplementedError


class MemoryChallengeStore(ChallengeStore):
    def __init__(
        self,
        ttl_seconds: int = DEFAULT_CHALLENGE_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(ttl_seconds)
        self._clock = clock
        self._pending: dict[str, PendingChallenge] = {}

    async def register(self, state: str, code_verifier: str) -> None:
        now = self._clock()
        self._cleanup(now)
        self._pending[state] = PendingChallenge(
            state=state,
            code_verifier=code_verifier,
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )

    async def consume(self, state: str) -> str | None:
        # No await between lookup and removal: two racing callbacks cannot both win.
        pending = self._pending.pop(state, None)
        if pending is None or pending.expires_at <= self._clock():
            return None
        return pending.code_verifier

    def __len__(self) -> int:
        return len(self._pending)

    def _cleanup(self, now: float) -> None:
        expired_states = [
            state for state, pending in self._pending.items() if pending.expires_at <= now
        ]
        for state in expired_states:
            del self._pending[state]


class RedisChallengeStore(ChallengeStore):
    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int = DEFAULT_CHALLENGE_TTL_SECONDS,
        *,
        key_prefix: str = REDIS_KEY_PREFIX,
    ) -> None:
        super().__init__(ttl_seconds)
        self._redis = client
        self._key_prefix = key_prefix

    @classmethod
    def from_url(
        cls,
        url: str,
        ttl_seconds: int = DEFAULT_CHALLENGE_TTL_SECONDS,
    ) -> "RedisChallengeStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), ttl_seconds)

    async def register(self, state: str, code_verifier: str) -> None:
        await self._redis.set(self._key(state), code_verifier, ex=self.ttl_seconds)

    async def consume(self, state: str) -> str | None:
        value = await self._redis.getdel(self._key(state))
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def aclose(self) -> None:
        await self._redis.aclose()

    def _key(self, state: str) -> str:
        return f"{self._key_prefix}{state}"
