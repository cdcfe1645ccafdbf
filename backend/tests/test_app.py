"""
Tests for the process entrypoint: bootstrap ordering, exit behaviour,
liveness and CORS.
"""
import logging

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine

from zapmanejo import config, main
from zapmanejo.auth import issue_token
from zapmanejo.db import Database
from zapmanejo.errors import STAGE_CONFIG, STAGE_PING, ConfigurationError, StartupError
from zapmanejo.models import User

from conftest import TEST_ORIGIN


@pytest.fixture
def no_overlay(tmp_path):
    return str(tmp_path / "absent.env")


def test_bootstrap_aborts_before_connecting(monkeypatch, no_overlay):
    calls = []
    monkeypatch.setattr(main, "connect", lambda *args, **kwargs: calls.append(args))

    with pytest.raises(ConfigurationError) as excinfo:
        main.bootstrap({"JWT_SECRET": "x"}, env_file=no_overlay)

    assert calls == []
    assert excinfo.value.stage == STAGE_CONFIG
    assert "DATABASE_URL" in excinfo.value.message
    assert "WHATSAPP_VERIFY_TOKEN" in excinfo.value.message


def test_bootstrap_connects_migrates_and_seeds(db_url, no_overlay):
    env = {"DATABASE_URL": db_url, "JWT_SECRET": "x", "WHATSAPP_VERIFY_TOKEN": "y"}
    database = main.bootstrap(env, env_file=no_overlay)
    try:
        database.ping()
        with database.session() as s:
            from zapmanejo.seed import LIFETIME_SLOTS, count_slots

            assert count_slots(s) == len(LIFETIME_SLOTS)
    finally:
        database.dispose()


def test_run_exits_with_status_one_on_startup_error(monkeypatch, caplog, tmp_path):
    def failing_bootstrap(**kwargs):
        raise StartupError(STAGE_PING, "Database ping failed: connection refused")

    monkeypatch.setattr(main, "setup_logging", lambda level: None)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(main, "bootstrap", failing_bootstrap)
    monkeypatch.setattr(main.uvicorn, "run", lambda *a, **kw: pytest.fail("listener must not start"))

    with caplog.at_level(logging.CRITICAL, logger="zapmanejo"):
        with pytest.raises(SystemExit) as excinfo:
            main.run()

    assert excinfo.value.code == 1
    assert "FATAL: [ping] Database ping failed" in caplog.text


def test_run_listens_on_all_interfaces(monkeypatch, database, tmp_path):
    served = {}

    def fake_run(app, host, port, **kwargs):
        served.update(app=app, host=host, port=port)

    monkeypatch.setattr(main, "setup_logging", lambda level: None)
    monkeypatch.setattr(main, "bootstrap", lambda **kwargs: database)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(main.uvicorn, "run", fake_run)
    monkeypatch.setenv("PORT", "8099")

    main.run()

    assert served["host"] == "0.0.0.0"
    assert served["port"] == 8099
    assert served["app"].state.database is database


OVERLAY_SETTINGS = ("JWT_TTL_HOURS", "RATE_LIMIT_RPM", "LOG_LEVEL", "MAX_BODY_BYTES")


def test_run_applies_settings_from_env_file(monkeypatch, database, tmp_path):
    for key in OVERLAY_SETTINGS:
        # Recorded first so the values the overlay writes are removed afterwards.
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    (tmp_path / ".env").write_text("JWT_TTL_HOURS=1\nRATE_LIMIT_RPM=2\nLOG_LEVEL=DEBUG\nMAX_BODY_BYTES=64\n")
    monkeypatch.chdir(tmp_path)

    levels = []
    served = {}
    monkeypatch.setattr(main, "setup_logging", levels.append)
    monkeypatch.setattr(main, "bootstrap", lambda **kwargs: database)
    monkeypatch.setattr(main.uvicorn, "run", lambda app, **kwargs: served.update(app=app))

    main.run()

    assert levels[-1] == "DEBUG"
    claims = jwt.get_unverified_claims(issue_token(User(id=1, email="a@example.com")))
    assert claims["exp"] - claims["iat"] == 3600

    with TestClient(served["app"]) as c:
        assert c.get("/").status_code == 200
        assert c.post("/api/auth/login", content=b"x" * 65).status_code == 413
        assert c.get("/").status_code == 429


def test_liveness(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "ZapManejo backend live"}


def test_liveness_does_not_touch_the_database(tmp_path):
    unreachable = Database(create_engine(f"sqlite:///{tmp_path / 'nope' / 'db.sqlite'}"))
    app = main.create_app(unreachable, allowed_origins=[TEST_ORIGIN])

    with TestClient(app) as c:
        response = c.get("/")

    assert response.status_code == 200
    assert response.json() == {"status": "ZapManejo backend live"}


def test_cors_preflight_for_allowed_origin(client):
    response = client.options(
        "/api/animals",
        headers={
            "Origin": TEST_ORIGIN,
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Authorization, Content-Type",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == TEST_ORIGIN
    assert response.headers["access-control-allow-credentials"] == "true"


def test_cors_rejects_unknown_origin(client):
    response = client.get("/", headers={"Origin": "https://evil.example.com"})
    assert "access-control-allow-origin" not in response.headers


def test_cors_default_origin_fallback_is_logged(database, monkeypatch, caplog):
    monkeypatch.delenv("ALLOWED_ORIGINS", raising=False)
    with caplog.at_level(logging.INFO, logger="zapmanejo"):
        app = main.create_app(database)

    assert "ALLOWED_ORIGINS not set, using default: http://localhost:3000" in caplog.text
    with TestClient(app) as c:
        response = c.get("/", headers={"Origin": "http://localhost:3000"})
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


def test_request_logging_headers(client):
    response = client.get("/")
    assert response.headers["x-request-id"]
    assert response.headers["x-server-timing-ms"].isdigit()


def test_oversized_body_is_rejected(client, auth_headers):
    response = client.post(
        "/api/animals",
        content=b" " * (config.max_body_bytes() + 1),
        headers={**auth_headers, "Content-Type": "application/json"},
    )
    assert response.status_code == 413
