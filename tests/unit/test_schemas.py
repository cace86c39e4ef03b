"""Unit tests for the offer engine data models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from packages.domain.offers.schemas import MarketSuggestion

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def suggestion(expires_in):
    return MarketSuggestion(
        category="ENERGY",
        country="FR",
        last_updated=NOW,
        expires_at=NOW + expires_in,
    )


def test_expiry_after_last_update():
    entry = suggestion(timedelta(days=30))
    assert not entry.is_expired(NOW)
    assert entry.is_expired(NOW + timedelta(days=30))


@pytest.mark.parametrize("expires_in", [timedelta(0), timedelta(seconds=-1)])
def test_expiry_window_must_be_positive(expires_in):
    with pytest.raises(ValidationError):
        suggestion(expires_in)
