from __future__ import annotations

from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from auth.errors import ServiceError
from auth.session_manager import SessionManager

from .constants import APP_VERSION, LOGGER, SESSION_COOKIE_NAME
from .env import is_truthy
from .list_fetcher import ListFetcher


def extract_bearer_token(authorization_header: str | None) -> str | None:
    if not authorization_header:
        return None
    scheme, _, token = authorization_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def build_middleware(cors_origins: set[str] | None = None) -> list[Middleware]:
    return [
        Middleware(
            CORSMiddleware,
            allow_origins=sorted(cors_origins or ()),
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        )
    ]


class TierApi:
    def __init__(
        self,
        *,
        session_manager: SessionManager,
        list_fetcher: ListFetcher,
        secure_cookies: bool = True,
    ) -> None:
        self.session_manager = session_manager
        self.list_fetcher = list_fetcher
        self.secure_cookies = secure_cookies

    def routes(self) -> list[Route]:
        return [
            Route("/health", self._handle_health, methods=["GET"]),
            Route("/oauth/authorize", self._handle_authorize, methods=["POST"]),
            Route("/oauth/callback", self._handle_callback, methods=["GET"]),
            Route("/logout", self._handle_logout, methods=["POST"]),
            Route("/lists/{kind}", self._handle_list, methods=["GET"]),
        ]

    # -- handlers --------------------------------------------------------------

    async def _handle_health(self, request: Request) -> Response:
        del request
        return JSONResponse({"status": "ok", "version": APP_VERSION})

    async def _handle_authorize(self, request: Request) -> Response:
        try:
            payload = await request.json()
        except ValueError:
            return self._error("invalid_request", "Invalid JSON body.", 400)

        code_challenge = payload.get("code_challenge") if isinstance(payload, dict) else None
        if not isinstance(code_challenge, str) or not code_challenge.strip():
            return self._error("invalid_request", "code_challenge is required.", 400)

        state, authorization_url = await self.session_manager.begin_authorization(code_challenge)
        return JSONResponse({"state": state, "authorization_url": authorization_url})

    async def _handle_callback(self, request: Request) -> Response:
        if request.query_params.get("error"):
            return self._error(
                "mal_oauth_error", "MyAnimeList authorization returned an error.", 400
            )

        code = request.query_params.get("code")
        state = request.query_params.get("state")
        if not code or not state:
            return self._error("invalid_request", "Missing code or state.", 400)

        try:
            session = await self.session_manager.complete_authorization(code, state)
        except ServiceError as error:
            return self._service_error(request, error)

        response = JSONResponse(
            {
                "session_id": session.session_id,
                "user_name": session.user_name,
                "expires_at": session.expires_at,
            }
        )
        response.set_cookie(
            SESSION_COOKIE_NAME,
            session.session_id,
            httponly=True,
            secure=self.secure_cookies,
            samesite="lax",
        )
        return response

    async def _handle_logout(self, request: Request) -> Response:
        session_id = self._session_id(request)
        if session_id is None:
            return self._error("session_not_found", "Missing session.", 401)

        try:
            await self.session_manager.logout(session_id)
        except ServiceError as error:
            return self._service_error(request, error)

        response = Response(status_code=204)
        response.delete_cookie(SESSION_COOKIE_NAME)
        return response

    async def _handle_list(self, request: Request) -> Response:
        session_id = self._session_id(request)
        if session_id is None:
            return self._error("session_not_found", "Missing session.", 401)

        kind = request.path_params["kind"]
        force_refresh = is_truthy(request.query_params.get("refresh"))
        try:
            entries = await self.list_fetcher.get_list(
                session_id, kind, force_refresh=force_refresh
            )
        except ServiceError as error:
            return self._service_error(request, error)

        return JSONResponse({"kind": kind, "entries": [entry.to_dict() for entry in entries]})

    # -- helpers ---------------------------------------------------------------

    def _session_id(self, request: Request) -> str | None:
        token = extract_bearer_token(request.headers.get("authorization"))
        if token:
            return token
        return request.cookies.get(SESSION_COOKIE_NAME) or None

    def _service_error(self, request: Request, error: ServiceError) -> Response:
        if error.status_code >= 500:
            LOGGER.warning("Request %s %s failed: %s", request.method, request.url.path, error)
        return self._error(error.code, str(error), error.status_code)

    def _error(self, code: str, description: str, status_code: int) -> Response:
        return JSONResponse(
            {"error": code, "error_description": description},
            status_code=status_code,
        )
