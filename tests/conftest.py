from pathlib import Path

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from projectica.config import AppSettings
from projectica.db import Database
from projectica.main import create_app
from tests.fakes import USER, FakeAssistantService, FakePerplexityClient, FakeTrendsClient


def make_settings(tmp_path: Path, **overrides) -> AppSettings:
    settings = AppSettings(
        openai_api_key="test-openai",
        openai_base_url="http://openai.test/v1",
        default_model="test-model",
        perplexity_api_key="test-pplx",
        perplexity_base_url="http://pplx.test",
        serpapi_api_key="test-serp",
        trends_base_url="http://trends.test/search.json",
        poll_interval_s=0.0,
        poll_max_attempts=5,
        database_path=str(tmp_path / "test.db"),
        host="127.0.0.1",
        port=8000,
    )
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


@pytest.fixture
async def db(tmp_path: Path) -> Database:
    database = Database(str(tmp_path / "store.db"))
    await database.init()
    return database


@pytest.fixture
def app_factory(tmp_path: Path):
    def _factory(
        *,
        fake_service: FakeAssistantService | None = None,
        fake_perplexity: FakePerplexityClient | None = None,
        fake_trends: FakeTrendsClient | None = None,
        **settings_overrides,
    ):
        settings = make_settings(tmp_path, **settings_overrides)
        service = fake_service or FakeAssistantService()
        perplexity = fake_perplexity or FakePerplexityClient()
        trends = fake_trends or FakeTrendsClient()
        app = create_app(
            settings,
            openai_client=service,
            perplexity_client=perplexity,
            trends_client=trends,
        )
        return app, service, perplexity, trends

    return _factory


@pytest.fixture
async def client(app_factory):
    app, service, perplexity, trends = app_factory()
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test", headers={"X-User-Email": USER}) as http_client:
            http_client.app = app  # type: ignore[attr-defined]
            http_client.fake_service = service  # type: ignore[attr-defined]
            http_client.fake_perplexity = perplexity  # type: ignore[attr-defined]
            http_client.fake_trends = trends  # type: ignore[attr-defined]
            yield http_client
