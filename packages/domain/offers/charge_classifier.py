"""
Charge Classifier - Static household-sharing rules for expense categories

Decides whether a category is billed once for the whole household
(electricity, home insurance) or once per member (a personal phone plan).
This drives how amounts are normalized before comparing against the market.

NO AI CALLS - Pure table lookup. Add new categories to the sets below.
"""
from enum import Enum

import structlog

from packages.domain.offers.schemas import ChargeType

logger = structlog.get_logger()


class ChargeCategory(str, Enum):
    """Expense categories known to the engine"""
    ENERGY = "ENERGY"
    INTERNET = "INTERNET"
    MOBILE = "MOBILE"
    INSURANCE = "INSURANCE"
    INSURANCE_AUTO = "INSURANCE_AUTO"
    INSURANCE_HOME = "INSURANCE_HOME"
    INSURANCE_HEALTH = "INSURANCE_HEALTH"
    LOAN = "LOAN"
    BANK = "BANK"
    TRANSPORT = "TRANSPORT"
    LEISURE = "LEISURE"
    LEISURE_SPORT = "LEISURE_SPORT"
    LEISURE_STREAMING = "LEISURE_STREAMING"
    SUBSCRIPTION = "SUBSCRIPTION"
    HOUSING = "HOUSING"
    OTHER = "OTHER"


class ChargeClassifier:
    """
    Maps categories to ChargeType using two disjoint static sets.

    Anything not explicitly known to be paid per person is a household cost.
    """

    PER_INDIVIDUAL_CATEGORIES = frozenset({
        ChargeCategory.MOBILE.value,
        ChargeCategory.INSURANCE_HEALTH.value,
        ChargeCategory.LEISURE_SPORT.value,
        ChargeCategory.TRANSPORT.value,
    })

    HOUSEHOLD_CATEGORIES = frozenset({
        ChargeCategory.ENERGY.value,
        ChargeCategory.INTERNET.value,
        ChargeCategory.INSURANCE.value,
        ChargeCategory.INSURANCE_HOME.value,
        ChargeCategory.INSURANCE_AUTO.value,
        ChargeCategory.LOAN.value,
        ChargeCategory.BANK.value,
        ChargeCategory.HOUSING.value,
        ChargeCategory.LEISURE_STREAMING.value,
        ChargeCategory.SUBSCRIPTION.value,
    })

    # Categories worth sending to the market search
    SUGGESTION_RELEVANT_CATEGORIES = frozenset({
        ChargeCategory.ENERGY.value,
        ChargeCategory.INTERNET.value,
        ChargeCategory.MOBILE.value,
        ChargeCategory.INSURANCE.value,
        ChargeCategory.INSURANCE_AUTO.value,
        ChargeCategory.INSURANCE_HOME.value,
        ChargeCategory.INSURANCE_HEALTH.value,
        ChargeCategory.LOAN.value,
        ChargeCategory.BANK.value,
        ChargeCategory.TRANSPORT.value,
        ChargeCategory.LEISURE_SPORT.value,
        ChargeCategory.LEISURE_STREAMING.value,
        ChargeCategory.SUBSCRIPTION.value,
        ChargeCategory.HOUSING.value,
    })

    @staticmethod
    def _key(category: str) -> str:
        return (category or "").strip().upper()

    def classify(self, category: str) -> ChargeType:
        """
        Classify a category as household or per-individual.

        Args:
            category: Category identifier (case-insensitive)

        Returns:
            ChargeType (HOUSEHOLD when unknown)
        """
        key = self._key(category)

        if key in self.PER_INDIVIDUAL_CATEGORIES:
            return ChargeType.PER_INDIVIDUAL

        if key not in self.HOUSEHOLD_CATEGORIES:
            logger.debug("unclassified_category_defaulting_to_household", category=key)

        return ChargeType.HOUSEHOLD

    def is_suggestion_relevant(self, category: str) -> bool:
        """Check whether a category is eligible for market suggestions."""
        return self._key(category) in self.SUGGESTION_RELEVANT_CATEGORIES


# Singleton instance
charge_classifier = ChargeClassifier()
