"""
Cost Normalizer - Household-sharing normalization of a charge amount

The number sent to the market comparison depends on how the charge is billed:
- Household charge (electricity): compare the household total
- Per-individual charge (phone plan): compare one member's share

Example:
- MOBILE, 60/month, 3 members → compare 20 per person
- ENERGY, 150/month, 4 members → compare 150 for the household
"""
from decimal import Decimal
from typing import Optional

from packages.domain.offers.charge_classifier import ChargeClassifier, charge_classifier
from packages.domain.offers.schemas import ChargeType, NormalizedCost


class CostNormalizer:
    """Produces the effective comparison amount for a charge. Pure."""

    def __init__(self, classifier: Optional[ChargeClassifier] = None):
        self.classifier = classifier or charge_classifier

    def normalize(self, category: str, total_amount: Decimal, household_size: int) -> NormalizedCost:
        """
        Normalize a total amount by household-sharing semantics.

        Args:
            category: Charge category
            total_amount: Amount paid by the whole household
            household_size: Declared members (values below 1 count as 1)

        Returns:
            NormalizedCost with effective amount and charge type
        """
        size = max(int(household_size or 1), 1)
        amount = total_amount if isinstance(total_amount, Decimal) else Decimal(str(total_amount))
        charge_type = self.classifier.classify(category)

        if charge_type == ChargeType.PER_INDIVIDUAL and size > 1:
            effective = amount / size
        else:
            effective = amount

        return NormalizedCost(
            effective_amount=effective,
            charge_type=charge_type,
            household_size=size,
        )


# Singleton instance
cost_normalizer = CostNormalizer()
