"""
Result Curator - Turns raw competitor candidates into a trustworthy short list

Steps, in order:
1. Recompute annual savings from the caller's own numbers
2. Drop offers that save nothing
3. Drop offers with no verifiable link
4. Drop the current provider (self-match filter)
5. Sort by savings, best first
6. Keep the top 3

The AI's own potential_savings is never trusted: it does not know how the
charge is shared inside the household.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional

import structlog

from packages.domain.offers.schemas import ChargeType, CompetitorOffer

logger = structlog.get_logger()

MAX_SUGGESTIONS = 3
MONTHS_PER_YEAR = 12
# Shorter names ("SFR", "EDF") would match too many unrelated providers
MIN_SELF_MATCH_LENGTH = 4

CENTS = Decimal("0.01")


class ResultCurator:
    """Pure filtering and ranking of competitor offers."""

    def compute_savings(
        self,
        typical_price: Decimal,
        effective_amount: Decimal,
        household_size: int,
        charge_type: ChargeType,
    ) -> Decimal:
        """
        Annual savings for the whole household.

        Per-individual charges are compared per person, so the per-person
        saving is scaled back up to every member.
        """
        savings = (effective_amount - typical_price) * MONTHS_PER_YEAR
        if charge_type == ChargeType.PER_INDIVIDUAL and household_size > 1:
            savings *= household_size
        return savings.quantize(CENTS, rounding=ROUND_HALF_UP)

    @staticmethod
    def is_self_match(offer_name: str, current_merchant_name: Optional[str]) -> bool:
        """Case-insensitive equals / contains / contained-by against the current provider."""
        merchant = (current_merchant_name or "").strip().lower()
        if len(merchant) < MIN_SELF_MATCH_LENGTH:
            return False

        name = (offer_name or "").strip().lower()
        if not name:
            return False

        return name == merchant or merchant in name or name in merchant

    def curate(
        self,
        offers: Iterable[CompetitorOffer],
        current_merchant_name: Optional[str],
        effective_amount: Decimal,
        household_size: int,
        charge_type: ChargeType,
    ) -> List[CompetitorOffer]:
        """
        Filter and rank offers for one caller.

        Args:
            offers: Raw or cached candidates (left untouched)
            current_merchant_name: Caller's current provider
            effective_amount: Normalized amount being compared
            household_size: Declared household members
            charge_type: Household or per-individual billing

        Returns:
            At most 3 offers, savings strictly positive, best first
        """
        size = max(int(household_size or 1), 1)
        kept = []
        dropped_no_savings = 0
        dropped_no_link = 0
        dropped_self = 0

        for offer in offers:
            savings = self.compute_savings(offer.typical_price, effective_amount, size, charge_type)

            if savings <= 0:
                dropped_no_savings += 1
                continue

            if not offer.has_reference:
                dropped_no_link += 1
                continue

            if self.is_self_match(offer.name, current_merchant_name):
                dropped_self += 1
                continue

            kept.append(offer.model_copy(update={"potential_savings": savings}))

        # sorted() is stable: ties keep the collaborator's order
        kept = sorted(kept, key=lambda o: o.potential_savings, reverse=True)[:MAX_SUGGESTIONS]

        if dropped_no_savings or dropped_no_link or dropped_self:
            logger.debug("competitor_offers_filtered",
                        kept=len(kept),
                        dropped_no_savings=dropped_no_savings,
                        dropped_no_link=dropped_no_link,
                        dropped_self_match=dropped_self)

        return kept


# Singleton instance
result_curator = ResultCurator()
