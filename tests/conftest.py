"""Shared pytest fixtures for offer engine tests."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from packages.common.config import Settings
from packages.common.database import metadata
from packages.domain.offers.ai_client import Completion
from packages.domain.offers.competitor_search import CompetitorSearchGateway
from packages.domain.offers.market_analyzer import MarketAnalyzerService
from packages.domain.offers.suggestion_cache import SuggestionCacheRepository

FROZEN_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Injected clock that only moves when told to."""

    def __init__(self, now: datetime = FROZEN_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def offer_dict(name: str, price, url: str = None, **extra) -> dict:
    """One competitor as the AI would emit it."""
    data = {
        "name": name,
        "typical_price": price,
        "best_offer": f"{name} offer",
        "potential_savings": 0,
        "pros": ["cheaper"],
        "cons": [],
        "website_url": url if url is not None else f"https://{name.lower().replace(' ', '')}.example",
        "phone_number": None,
        "contact_email": None,
        "contact_available": False,
    }
    data.update(extra)
    return data


def competitors_json(*offers: dict) -> str:
    return json.dumps({"competitors": list(offers)})


class FakeAIClient:
    """
    Call-counting stand-in for the AI collaborator.

    Returns `response` for every prompt, or `responder(prompt)` when given.
    """

    def __init__(self, response: str = None, responder=None, error: Exception = None, delay: float = 0):
        self.response = response if response is not None else competitors_json()
        self.responder = responder
        self.error = error
        self.delay = delay
        self.calls = 0
        self.prompts = []

    async def complete(self, prompt: str) -> Completion:
        self.calls += 1
        self.prompts.append(prompt)

        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

        text = self.responder(prompt) if self.responder else self.response
        return Completion(text=text, model="fake-model", input_tokens=1000, output_tokens=500)


@pytest.fixture
def settings():
    return Settings(
        ENVIRONMENT="test",
        LOG_LEVEL="DEBUG",
        ANTHROPIC_API_KEY=None,
        SUGGESTION_CACHE_TTL_DAYS=30,
        SEARCH_QUICK_TIMEOUT_SECONDS=0.2,
        SEARCH_FULL_TIMEOUT_SECONDS=2,
        BULK_MAX_CONCURRENCY=2,
        CACHE_JANITOR_TIMEOUT_SECONDS=2,
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite engine with the schema created from metadata."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'offers.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def cache(session_factory, clock):
    return SuggestionCacheRepository(session_factory=session_factory, clock=clock, ttl_days=30)


@pytest.fixture
def ai_client():
    return FakeAIClient()


@pytest.fixture
def gateway(ai_client, settings):
    return CompetitorSearchGateway(client=ai_client, settings=settings)


@pytest.fixture
def analyzer(cache, gateway, settings):
    return MarketAnalyzerService(cache=cache, gateway=gateway, settings=settings)
