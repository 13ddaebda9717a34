import json

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from projectica.config import load_settings
from projectica.orchestrator import PollPolicy


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("OPENAI_API_KEY", "DEFAULT_MODEL", "POLL_MAX_ATTEMPTS", "POLL_BACKOFF", "PROJECTICA_ENV_OVERRIDES_CONFIG"):
        monkeypatch.delenv(name, raising=False)


@pytest.mark.asyncio
async def test_get_settings_masks_api_keys(app_factory):
    app, _, _, _ = app_factory()
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            res = await client.get("/settings")
            assert res.status_code == 200
            data = res.json()["settings"]
            assert data["openai_api_key"] == "********"
            assert data["perplexity_api_key"] == "********"
            assert data["serpapi_api_key"] == "********"
            assert data["default_model"] == "test-model"


@pytest.mark.asyncio
async def test_startup_records_masked_config(app_factory):
    app, _, _, _ = app_factory()
    async with LifespanManager(app):
        row = await app.state.db.fetchone("SELECT payload_json FROM configs ORDER BY id DESC LIMIT 1")
        payload = json.loads(row["payload_json"])
        assert payload["openai_api_key"] == "********"


def test_config_precedence_configjson_wins_by_default(tmp_path, monkeypatch):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"default_model": "from-config"}))
    monkeypatch.setenv("DEFAULT_MODEL", "from-env")
    settings = load_settings(config_path=config_path)
    assert settings.default_model == "from-config"


def test_env_override_when_flag_set(tmp_path, monkeypatch):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"default_model": "from-config"}))
    monkeypatch.setenv("DEFAULT_MODEL", "from-env")
    monkeypatch.setenv("PROJECTICA_ENV_OVERRIDES_CONFIG", "1")
    settings = load_settings(config_path=config_path)
    assert settings.default_model == "from-env"


def test_secrets_backfilled_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"openai_api_key": None}))
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    settings = load_settings(config_path=config_path)
    assert settings.openai_api_key == "sk-env"


def test_poll_settings_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("POLL_MAX_ATTEMPTS", "12")
    monkeypatch.setenv("POLL_BACKOFF", "Exponential")
    settings = load_settings(config_path=tmp_path / "missing.json")
    policy = PollPolicy.from_settings(settings)
    assert policy.max_attempts == 12
    assert policy.backoff == "exponential"

