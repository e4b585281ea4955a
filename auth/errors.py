from __future__ import annotations


class ServiceError(RuntimeError):
    code = "server_error"
    status_code = 500
    default_message = "Internal error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class InvalidStateError(ServiceError):
    code = "invalid_state"
    status_code = 401
    default_message = "Unknown, expired or already used state."


class SessionNotFoundError(ServiceError):
    code = "session_not_found"
    status_code = 401
    default_message = "Unknown session."


class SessionIdCollisionError(ServiceError):
    code = "session_id_collision"
    status_code = 500
    default_message = "Generated session id already exists."


class AuthError(ServiceError):
    code = "auth_error"
    status_code = 502
    default_message = "Authorization with MyAnimeList failed."


class ExchangeFailedError(AuthError):
    code = "exchange_failed"
    default_message = "Failed to exchange MyAnimeList authorization code."


class RefreshFailedError(AuthError):
    code = "refresh_failed"
    status_code = 401
    default_message = "MyAnimeList refresh token expired or revoked; re-auth required."


class MalformedResponseError(AuthError):
    code = "malformed_response"
    default_message = "MyAnimeList token response is malformed."


class IdentityFetchFailedError(AuthError):
    code = "identity_fetch_failed"
    default_message = "Could not look up the MyAnimeList user."


class ListFetchFailedError(ServiceError):
    code = "list_fetch_failed"
    status_code = 502
    default_message = "Failed to fetch the list from MyAnimeList."


class UnknownListKindError(ServiceError):
    code = "invalid_request"
    status_code = 400
    default_message = "Unknown list kind."
