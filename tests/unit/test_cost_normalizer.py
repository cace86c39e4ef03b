"""Unit tests for household-sharing cost normalization."""

from decimal import Decimal

import pytest

from packages.domain.offers.charge_classifier import ChargeClassifier
from packages.domain.offers.cost_normalizer import cost_normalizer
from packages.domain.offers.schemas import ChargeType


@pytest.mark.parametrize("category", sorted(ChargeClassifier.PER_INDIVIDUAL_CATEGORIES))
@pytest.mark.parametrize("size", [1, 2, 3, 5])
def test_per_individual_divides_by_household(category, size):
    result = cost_normalizer.normalize(category, Decimal("60"), size)
    assert result.charge_type == ChargeType.PER_INDIVIDUAL
    assert result.effective_amount == Decimal("60") / size
    assert result.household_size == size


@pytest.mark.parametrize("category", sorted(ChargeClassifier.HOUSEHOLD_CATEGORIES))
@pytest.mark.parametrize("size", [1, 4])
def test_household_keeps_total(category, size):
    result = cost_normalizer.normalize(category, Decimal("150"), size)
    assert result.charge_type == ChargeType.HOUSEHOLD
    assert result.effective_amount == Decimal("150")


def test_mobile_scenario():
    result = cost_normalizer.normalize("MOBILE", Decimal("60"), 3)
    assert result.effective_amount == Decimal("20")


@pytest.mark.parametrize("size", [0, -2, None])
def test_household_size_floored_to_one(size):
    result = cost_normalizer.normalize("MOBILE", Decimal("60"), size)
    assert result.household_size == 1
    assert result.effective_amount == Decimal("60")


def test_float_amount_converted_to_decimal():
    result = cost_normalizer.normalize("ENERGY", 99.9, 2)
    assert result.effective_amount == Decimal("99.9")
