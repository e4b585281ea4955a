from __future__ import annotations

from dataclasses import dataclass, field, replace

LIST_KINDS = ("anime", "manga")


@dataclass
class PendingChallenge:
    state: str
    code_verifier: str
    created_at: float
    expires_at: float


@dataclass(frozen=True)
class ListEntry:
    remote_id: int
    picture_url: str
    score: float

    def to_dict(self) -> dict:
        return {
            "remote_id": self.remote_id,
            "picture_url": self.picture_url,
            "score": self.score,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "ListEntry":
        return cls(
            remote_id=int(payload["remote_id"]),
            picture_url=str(payload.get("picture_url", "")),
            score=payload.get("score", 0),
        )


@dataclass
class Session:
    session_id: str
    access_token: str
    refresh_token: str
    expires_at: float
    user_name: str | None = None
    cached_lists: dict[str, list[ListEntry]] = field(default_factory=dict)

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now

    def snapshot(self) -> "Session":
        return replace(
            self,
            cached_lists={kind: list(entries) for kind, entries in self.cached_lists.items()},
        )

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "user_name": self.user_name,
            "cached_lists": {
                kind: [entry.to_dict() for entry in entries]
                for kind, entries in self.cached_lists.items()
            },
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "Session":
        cached_lists = payload.get("cached_lists") or {}
        return cls(
            session_id=payload["session_id"],
            access_token=payload["access_token"],
            refresh_token=payload["refresh_token"],
            expires_at=float(payload["expires_at"]),
            user_name=payload.get("user_name"),
            cached_lists={
                kind: [ListEntry.from_dict(entry) for entry in entries]
                for kind, entries in cached_lists.items()
            },
        )


@dataclass
class AppConfiguration:
    sessions: list[Session] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"sessions": [session.to_dict() for session in self.sessions]}

    @classmethod
    def from_dict(cls, payload: dict) -> "AppConfiguration":
        sessions = payload.get("sessions", [])
        if not isinstance(sessions, list):
            raise RuntimeError("Configuration file is invalid; expected 'sessions' to be a list.")
        return cls(sessions=[Session.from_dict(item) for item in sessions])
