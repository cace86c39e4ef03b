"""Integration tests for the persistent suggestion cache (SQLite)."""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from packages.domain.offers.exceptions import CacheStoreError
from packages.domain.offers.schemas import CompetitorOffer
from packages.domain.offers.suggestion_cache import SuggestionCacheRepository, normalize_key


def offers(*names):
    return [
        CompetitorOffer(
            name=name,
            typical_price=Decimal("10.99"),
            potential_savings=Decimal("120.00"),
            website_url=f"https://{name.lower()}.example",
            pros=["no commitment"],
        )
        for name in names
    ]


def test_normalize_key():
    assert normalize_key(" mobile ", "fr", "  Orange   Mobile ") == ("MOBILE", "FR", "orange mobile")
    assert normalize_key("ENERGY", "FR", "   ") == ("ENERGY", "FR", None)
    assert normalize_key("ENERGY", "FR", None) == ("ENERGY", "FR", None)


@pytest.mark.asyncio
async def test_put_then_get_roundtrip(cache):
    suggestion = cache.new_suggestion("MOBILE", "FR", "Orange", offers("Sosh", "Free"))

    assert await cache.put(suggestion) is True

    found = await cache.get("mobile", "fr", "Orange")
    assert found is not None
    assert found.id == suggestion.id
    assert [o.name for o in found.competitors] == ["Sosh", "Free"]
    assert found.competitors[0].typical_price == Decimal("10.99")
    assert found.expires_at - found.last_updated == timedelta(days=30)
    assert found.last_updated.tzinfo is not None


@pytest.mark.asyncio
async def test_get_missing_returns_none(cache):
    assert await cache.get("ENERGY", "FR", None) is None


@pytest.mark.asyncio
async def test_generic_and_merchant_keys_are_distinct(cache):
    await cache.put(cache.new_suggestion("MOBILE", "FR", None, offers("Generic")))

    assert await cache.get("MOBILE", "FR", "Orange") is None

    await cache.put(cache.new_suggestion("MOBILE", "FR", "Orange", offers("Sosh")))

    generic = await cache.get("MOBILE", "FR", "")
    specific = await cache.get("MOBILE", "FR", "Orange")
    assert generic.merchant_name is None
    assert [o.name for o in generic.competitors] == ["Generic"]
    assert [o.name for o in specific.competitors] == ["Sosh"]


@pytest.mark.asyncio
async def test_expired_entry_not_returned(cache, clock):
    await cache.put(cache.new_suggestion("ENERGY", "FR", None, offers("Ekwateur")))

    clock.advance(days=29, hours=23)
    assert await cache.get("ENERGY", "FR") is not None

    clock.advance(hours=1)
    assert await cache.get("ENERGY", "FR") is None


@pytest.mark.asyncio
async def test_first_writer_wins(cache):
    first = cache.new_suggestion("INTERNET", "FR", "Free", offers("Bouygues"))
    second = cache.new_suggestion("INTERNET", "FR", "Free", offers("Sosh"))

    assert await cache.put(first) is True
    assert await cache.put(second) is False

    stored = await cache.get("INTERNET", "FR", "Free")
    assert stored.id == first.id


@pytest.mark.asyncio
async def test_first_writer_wins_for_generic_key(cache):
    assert await cache.put(cache.new_suggestion("BANK", "FR", None, offers("Boursobank"))) is True
    assert await cache.put(cache.new_suggestion("BANK", "FR", None, offers("Fortuneo"))) is False


@pytest.mark.asyncio
async def test_concurrent_writers_keep_one_row(cache):
    writes = [cache.new_suggestion("LOAN", "FR", None, offers(f"Bank{i}")) for i in range(5)]

    results = await asyncio.gather(*(cache.put(s) for s in writes))

    assert sorted(results) == [False, False, False, False, True]
    stats = await cache.get_cache_stats()
    assert stats["total_entries"] == 1


@pytest.mark.asyncio
async def test_put_rejects_entry_expiring_at_creation(cache):
    suggestion = cache.new_suggestion("ENERGY", "FR", None, [])
    suggestion = suggestion.model_copy(update={"expires_at": suggestion.last_updated})

    with pytest.raises(ValueError):
        await cache.put(suggestion)


@pytest.mark.asyncio
async def test_delete_expired(cache, clock):
    await cache.put(cache.new_suggestion("ENERGY", "FR", None, offers("Ekwateur")))
    clock.advance(days=10)
    await cache.put(cache.new_suggestion("MOBILE", "FR", None, offers("Sosh")))

    clock.advance(days=25)
    removed = await cache.delete_expired()

    assert removed == 1
    assert await cache.get("MOBILE", "FR") is not None


@pytest.mark.asyncio
async def test_invalidate_country(cache):
    await cache.put(cache.new_suggestion("ENERGY", "FR", None, offers("Ekwateur")))
    await cache.put(cache.new_suggestion("MOBILE", "FR", "Orange", offers("Sosh")))
    await cache.put(cache.new_suggestion("ENERGY", "BE", None, offers("Luminus")))

    assert await cache.invalidate_country("fr") == 2
    assert await cache.get("ENERGY", "FR") is None
    assert await cache.get("ENERGY", "BE") is not None


@pytest.mark.asyncio
async def test_cache_stats(cache, clock):
    await cache.put(cache.new_suggestion("ENERGY", "FR", None, offers("Ekwateur")))
    clock.advance(days=31)
    await cache.put(cache.new_suggestion("MOBILE", "FR", "Orange", offers("Sosh")))

    stats = await cache.get_cache_stats()

    assert stats == {
        "total_entries": 2,
        "live_entries": 1,
        "expired_entries": 1,
        "generic_entries": 1,
        "merchant_entries": 1,
    }


@pytest.mark.asyncio
async def test_database_failure_raises_cache_store_error(tmp_path, clock):
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    # No schema created
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    broken = SuggestionCacheRepository(session_factory=async_sessionmaker(engine), clock=clock)
    try:
        with pytest.raises(CacheStoreError):
            await broken.get("ENERGY", "FR")
        with pytest.raises(CacheStoreError):
            await broken.put(broken.new_suggestion("ENERGY", "FR", None, []))
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_merchant_key_ignores_case(cache):
    first = cache.new_suggestion("MOBILE", "FR", "Orange", offers("Sosh"))

    assert await cache.put(first) is True
    assert await cache.put(cache.new_suggestion("MOBILE", "FR", "ORANGE", offers("Free"))) is False

    found = await cache.get("MOBILE", "FR", "orange")
    assert found.id == first.id
    assert found.merchant_name == "orange"


@pytest.mark.asyncio
async def test_put_replaces_expired_entry_for_same_key(cache, clock):
    old = cache.new_suggestion("ENERGY", "FR", None, offers("Ekwateur"))
    await cache.put(old)

    clock.advance(days=31)
    fresh = cache.new_suggestion("ENERGY", "FR", None, offers("Mint"))

    assert await cache.put(fresh) is True
    assert (await cache.get("ENERGY", "FR")).id == fresh.id
    assert (await cache.get_cache_stats())["total_entries"] == 1
