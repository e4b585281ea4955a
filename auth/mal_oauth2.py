from __future__ import annotations

import logging
import urllib.parse
from dataclasses import dataclass

import httpx

from auth.errors import (
    AuthError,
    ExchangeFailedError,
    IdentityFetchFailedError,
    MalformedResponseError,
    RefreshFailedError,
)

LOGGER = logging.getLogger("maltier.auth")

MAL_AUTHORIZE_URL = "https://myanimelist.net/v1/oauth2/authorize"
MAL_TOKEN_URL = "https://myanimelist.net/v1/oauth2/token"
MAL_IDENTITY_URL = "https://api.myanimelist.net/v2/users/@me"
DEFAULT_TIMEOUT_SECONDS = 10.0
ERROR_BODY_LOG_LIMIT = 500


@dataclass
class TokenResponse:
    access_token: str
    refresh_token: str
    expires_in: int

    @classmethod
    def from_payload(cls, payload: object) -> "TokenResponse":
        if not isinstance(payload, dict):
            raise MalformedResponseError("Token response is not a JSON object.")

        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        expires_in = payload.get("expires_in")

        if not isinstance(access_token, str) or not access_token:
            raise MalformedResponseError("Token response missing access_token.")
        if not isinstance(refresh_token, str) or not refresh_token:
            raise MalformedResponseError("Token response missing refresh_token.")
        if isinstance(expires_in, bool) or not isinstance(expires_in, int) or expires_in <= 0:
            raise MalformedResponseError("Token response missing expires_in.")

        return cls(access_token=access_token, refresh_token=refresh_token, expires_in=expires_in)


@dataclass
class Identity:
    user_id: int
    name: str


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    state: str,
    code_challenge: str,
) -> str:
    query = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "code_challenge": code_challenge,
        "code_challenge_method": "plain",
        "state": state,
    }
    return f"{MAL_AUTHORIZE_URL}?{urllib.parse.urlencode(query)}"


async def _token_request(
    payload: dict[str, str],
    error_cls: type[AuthError],
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> TokenResponse:
    own_client = client is None
    http_client = client or httpx.AsyncClient(timeout=timeout)

    try:
        response = await http_client.post(
            MAL_TOKEN_URL,
            data=payload,
            headers={"Accept": "application/json"},
            timeout=timeout,
        )
        response.raise_for_status()
    except httpx.HTTPStatusError as error:
        status_code = error.response.status_code
        LOGGER.warning(
            "Token endpoint returned %s: %s",
            status_code,
            error.response.text[:ERROR_BODY_LOG_LIMIT],
        )
        raise error_cls(f"Token request failed with status {status_code}.") from error
    except httpx.HTTPError as error:
        raise error_cls(f"Token request failed: {error!r}") from error
    finally:
        if own_client:
            await http_client.aclose()

    try:
        body = response.json()
    except ValueError as error:
        raise MalformedResponseError("Token response is not valid JSON.") from error
    return TokenResponse.from_payload(body)


async def exchange_code(
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    code_verifier: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> TokenResponse:
    return await _token_request(
        {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        },
        ExchangeFailedError,
        client=client,
        timeout=timeout,
    )


async def refresh_token(
    client_id: str,
    client_secret: str,
    refresh_token: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> TokenResponse:
    return await _token_request(
        {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
        },
        RefreshFailedError,
        client=client,
        timeout=timeout,
    )


async def fetch_identity(
    access_token: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> Identity:
    own_client = client is None
    http_client = client or httpx.AsyncClient(timeout=timeout)

    try:
        response = await http_client.get(
            MAL_IDENTITY_URL,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
            timeout=timeout,
        )
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPStatusError as error:
        raise IdentityFetchFailedError(
            f"User lookup failed with status {error.response.status_code}."
        ) from error
    except (httpx.HTTPError, ValueError) as error:
        raise IdentityFetchFailedError(f"User lookup failed: {error!r}") from error
    finally:
        if own_client:
            await http_client.aclose()

    user_id = payload.get("id") if isinstance(payload, dict) else None
    name = payload.get("name") if isinstance(payload, dict) else None
    if not isinstance(user_id, int) or not isinstance(name, str) or not name:
        raise IdentityFetchFailedError("User lookup response missing id or name.")
    return Identity(user_id=user_id, name=name)
