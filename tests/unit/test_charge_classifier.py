"""Unit tests for household-sharing classification."""

import pytest

from packages.domain.offers.charge_classifier import ChargeClassifier, charge_classifier
from packages.domain.offers.schemas import ChargeType


@pytest.mark.parametrize("category", ["MOBILE", "INSURANCE_HEALTH", "LEISURE_SPORT", "TRANSPORT"])
def test_per_individual_categories(category):
    assert charge_classifier.classify(category) == ChargeType.PER_INDIVIDUAL


@pytest.mark.parametrize("category", [
    "ENERGY", "INTERNET", "INSURANCE", "INSURANCE_HOME", "INSURANCE_AUTO",
    "LOAN", "BANK", "HOUSING", "LEISURE_STREAMING", "SUBSCRIPTION",
])
def test_household_categories(category):
    assert charge_classifier.classify(category) == ChargeType.HOUSEHOLD


def test_unknown_category_defaults_to_household():
    assert charge_classifier.classify("PET_FOOD") == ChargeType.HOUSEHOLD
    assert charge_classifier.classify("") == ChargeType.HOUSEHOLD


def test_classification_is_case_insensitive():
    assert charge_classifier.classify(" mobile ") == ChargeType.PER_INDIVIDUAL


def test_sets_are_disjoint():
    assert not (ChargeClassifier.PER_INDIVIDUAL_CATEGORIES & ChargeClassifier.HOUSEHOLD_CATEGORIES)


def test_suggestion_relevance():
    assert charge_classifier.is_suggestion_relevant("energy")
    assert charge_classifier.is_suggestion_relevant("LEISURE_STREAMING")
    assert not charge_classifier.is_suggestion_relevant("OTHER")
    assert not charge_classifier.is_suggestion_relevant("LEISURE")
    assert not charge_classifier.is_suggestion_relevant("")
