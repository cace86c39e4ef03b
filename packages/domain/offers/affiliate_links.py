"""
Affiliate Links - Partner URLs attached to curated competitor offers

The affiliate_links table maps (category, country, provider_name) to a
partner URL. When a curated offer names a provider with an active link, the
link is attached to the offer and counts as a verifiable reference.
"""
from typing import Any, Callable, Dict, Iterable, List, Optional

import sqlalchemy as sa
import structlog
from sqlalchemy.exc import SQLAlchemyError

from packages.common.database import affiliate_links, sessionmanager
from packages.domain.offers.exceptions import CacheStoreError
from packages.domain.offers.schemas import CompetitorOffer

logger = structlog.get_logger()


def provider_key(name: Optional[str]) -> str:
    return " ".join((name or "").lower().split())


class AffiliateLinkRepository:
    """Read access to active affiliate links."""

    def __init__(self, session_factory: Optional[Callable[[], Any]] = None):
        self.session_factory = session_factory or sessionmanager.session

    async def get_links(self, category: str, country: str) -> Dict[str, str]:
        """
        Active links for a category and country.

        Returns:
            Mapping of lower-cased provider name to affiliate URL. When a
            provider has several rows the highest priority wins.

        Raises:
            CacheStoreError: On database failure
        """
        category = (category or "").strip().upper()
        country = (country or "").strip().upper()

        table = affiliate_links
        stmt = (
            sa.select(table.c.provider_name, table.c.affiliate_url)
            .where(table.c.category == category)
            .where(table.c.country == country)
            .where(table.c.is_active.is_(True))
            .order_by(table.c.priority.asc())
        )

        try:
            async with self.session_factory() as db:
                result = await db.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Affiliate link lookup failed: {e}") from e

        # Ascending priority: later (higher) rows overwrite earlier ones
        links = {provider_key(row.provider_name): row.affiliate_url for row in rows}

        logger.debug("affiliate_links_loaded", category=category, country=country, links=len(links))
        return links

    async def attach(
        self,
        offers: Iterable[CompetitorOffer],
        category: str,
        country: str,
    ) -> List[CompetitorOffer]:
        """
        Copy offers, setting affiliate_link where a partner link exists.

        Offers that already carry an affiliate link are left as they are.

        Raises:
            CacheStoreError: On database failure
        """
        offers = list(offers)
        if not offers:
            return offers

        links = await self.get_links(category, country)
        if not links:
            return offers

        enriched = []
        for offer in offers:
            url = links.get(provider_key(offer.name))
            if url and not offer.affiliate_link:
                offer = offer.model_copy(update={"affiliate_link": url})
            enriched.append(offer)
        return enriched
