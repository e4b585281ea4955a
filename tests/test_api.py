import urllib.parse

import httpx
from starlette.applications import Starlette
from starlette.testclient import TestClient

from auth.errors import ExchangeFailedError
from maltier.api import TierApi, build_middleware, extract_bearer_token
from tests.oauth_helpers import _build_list_fetcher, _build_session_manager, _list_item


def _list_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/mangalist"):
        return httpx.Response(500, json={"error": "down"})
    return httpx.Response(200, json={"data": [_list_item(1, 10)], "paging": {}})


def _build_client(*, exchange_code_fn=None, cors_origins=None):
    manager, store, _ = _build_session_manager(
        exchange_code_fn=exchange_code_fn, fetch_user_name=True
    )
    api = TierApi(
        session_manager=manager,
        list_fetcher=_build_list_fetcher(manager, _list_handler),
        secure_cookies=False,
    )
    app = Starlette(routes=api.routes(), middleware=build_middleware(cors_origins))
    return TestClient(app), store


def _login(client: TestClient, verifier: str = "v1") -> dict:
    state = client.post("/oauth/authorize", json={"code_challenge": verifier}).json()["state"]
    response = client.get("/oauth/callback", params={"code": "c1", "state": state})
    assert response.status_code == 200
    return response.json()


def test_health() -> None:
    client, _ = _build_client()

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_authorize_returns_state_and_url() -> None:
    client, _ = _build_client()

    response = client.post("/oauth/authorize", json={"code_challenge": "v1"})

    assert response.status_code == 200
    payload = response.json()
    query = urllib.parse.parse_qs(urllib.parse.urlparse(payload["authorization_url"]).query)
    assert query["state"] == [payload["state"]]


def test_authorize_requires_code_challenge() -> None:
    client, _ = _build_client()

    response = client.post("/oauth/authorize", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


def test_authorize_rejects_invalid_json() -> None:
    client, _ = _build_client()

    response = client.post(
        "/oauth/authorize",
        content=b"not-json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400


def test_callback_creates_session() -> None:
    client, store = _build_client()

    payload = _login(client)

    assert payload["user_name"] == "alice"
    assert payload["session_id"] in store
    assert client.cookies.get("session_id") == payload["session_id"]


def test_callback_replayed_state_is_rejected() -> None:
    client, store = _build_client()
    state = client.post("/oauth/authorize", json={"code_challenge": "v1"}).json()["state"]
    client.get("/oauth/callback", params={"code": "c1", "state": state})

    response = client.get("/oauth/callback", params={"code": "c1", "state": state})

    assert response.status_code == 401
    assert response.json()["error"] == "invalid_state"
    assert len(store) == 1


def test_callback_missing_params() -> None:
    client, _ = _build_client()

    response = client.get("/oauth/callback", params={"code": "c1"})

    assert response.status_code == 400


def test_callback_provider_error() -> None:
    client, _ = _build_client()

    response = client.get("/oauth/callback", params={"error": "access_denied", "state": "s1"})

    assert response.status_code == 400
    assert response.json()["error"] == "mal_oauth_error"


def test_callback_exchange_failure() -> None:
    async def exchange_code_fn(**kwargs):
        raise ExchangeFailedError()

    client, store = _build_client(exchange_code_fn=exchange_code_fn)
    state = client.post("/oauth/authorize", json={"code_challenge": "v1"}).json()["state"]

    response = client.get("/oauth/callback", params={"code": "c1", "state": state})

    assert response.status_code == 502
    assert response.json()["error"] == "exchange_failed"
    assert len(store) == 0


def test_list_with_bearer_session() -> None:
    client, _ = _build_client()
    session_id = _login(client)["session_id"]
    client.cookies.clear()

    response = client.get("/lists/anime", headers={"Authorization": f"Bearer {session_id}"})

    assert response.status_code == 200
    assert response.json() == {
        "kind": "anime",
        "entries": [
            {
                "remote_id": 1,
                "picture_url": "https://cdn.myanimelist.net/images/1.jpg",
                "score": 10,
            }
        ],
    }


def test_list_with_cookie_session() -> None:
    client, _ = _build_client()
    _login(client)

    response = client.get("/lists/anime")

    assert response.status_code == 200


def test_list_requires_session() -> None:
    client, _ = _build_client()

    response = client.get("/lists/anime")

    assert response.status_code == 401


def test_list_unknown_kind() -> None:
    client, _ = _build_client()
    _login(client)

    response = client.get("/lists/novels")

    assert response.status_code == 400


def test_list_upstream_failure() -> None:
    client, _ = _build_client()
    _login(client)

    response = client.get("/lists/manga")

    assert response.status_code == 502
    assert response.json()["error"] == "list_fetch_failed"


def test_logout() -> None:
    client, store = _build_client()
    session_id = _login(client)["session_id"]
    headers = {"Authorization": f"Bearer {session_id}"}

    response = client.post("/logout", headers=headers)

    assert response.status_code == 204
    assert session_id not in store
    assert client.get("/lists/anime", headers=headers).status_code == 401


def test_logout_unknown_session() -> None:
    client, _ = _build_client()

    response = client.post("/logout", headers={"Authorization": "Bearer unknown"})

    assert response.status_code == 401
    assert response.json()["error"] == "session_not_found"


def test_cors_allows_configured_origin() -> None:
    client, _ = _build_client(cors_origins={"https://tiers.example.com"})

    response = client.post(
        "/oauth/authorize",
        json={"code_challenge": "v1"},
        headers={"Origin": "https://tiers.example.com"},
    )

    assert response.headers["access-control-allow-origin"] == "https://tiers.example.com"


def test_cors_blocks_unknown_origin() -> None:
    client, _ = _build_client(cors_origins={"https://tiers.example.com"})

    response = client.post(
        "/oauth/authorize",
        json={"code_challenge": "v1"},
        headers={"Origin": "https://unknown.example"},
    )

    assert "access-control-allow-origin" not in response.headers


def test_cors_preflight_options() -> None:
    client, _ = _build_client(cors_origins={"https://tiers.example.com"})

    response = client.options(
        "/lists/anime",
        headers={
            "Origin": "https://tiers.example.com",
            "Access-Control-Request-Method": "GET",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "https://tiers.example.com"
    assert response.headers["access-control-allow-credentials"] == "true"
    assert response.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"


def test_cors_preflight_rejects_unknown_origin() -> None:
    client, _ = _build_client(cors_origins={"https://tiers.example.com"})

    response = client.options(
        "/lists/anime",
        headers={
            "Origin": "https://unknown.example",
            "Access-Control-Request-Method": "GET",
        },
    )

    assert response.status_code == 400
    assert "access-control-allow-origin" not in response.headers


def test_extract_bearer_token() -> None:
    assert extract_bearer_token("Bearer abc") == "abc"
    assert extract_bearer_token("Basic abc") is None
    assert extract_bearer_token(None) is None
