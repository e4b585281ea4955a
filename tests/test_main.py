import server


class _RunRecorder:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def __call__(self, app, **kwargs) -> None:
        self.calls.append((app, kwargs))


def test_main_uses_local_defaults(monkeypatch) -> None:
    app = object()
    recorder = _RunRecorder()
    monkeypatch.setattr(server, "create_app", lambda: app)
    monkeypatch.setattr(server.uvicorn, "run", recorder)
    monkeypatch.delenv("MALTIER_HOST", raising=False)
    monkeypatch.delenv("MALTIER_PORT", raising=False)

    server.main()

    assert recorder.calls == [(app, {"host": "127.0.0.1", "port": 8000})]


def test_main_reads_host_and_port_from_env(monkeypatch) -> None:
    app = object()
    recorder = _RunRecorder()
    monkeypatch.setattr(server, "create_app", lambda: app)
    monkeypatch.setattr(server.uvicorn, "run", recorder)
    monkeypatch.setenv("MALTIER_HOST", "0.0.0.0")
    monkeypatch.setenv("MALTIER_PORT", "9100")

    server.main()

    assert recorder.calls == [(app, {"host": "0.0.0.0", "port": 9100})]


def test_memory_challenge_store_by_default(monkeypatch) -> None:
    monkeypatch.delenv("MAL_CHALLENGE_STORE_URL", raising=False)
    monkeypatch.setenv("MAL_CHALLENGE_TTL_SECONDS", "120")

    store = server.build_challenge_store()

    assert isinstance(store, server.MemoryChallengeStore)
    assert store.ttl_seconds == 120


def test_redis_challenge_store_from_url(monkeypatch) -> None:
    monkeypatch.setenv("MAL_CHALLENGE_STORE_URL", "redis://localhost:6379/0")
    monkeypatch.delenv("MAL_CHALLENGE_TTL_SECONDS", raising=False)

    store = server.build_challenge_store()

    assert isinstance(store, server.RedisChallengeStore)
    assert store.ttl_seconds == 600
