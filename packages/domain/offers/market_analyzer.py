"""
Market Analyzer - Single-charge cache-or-search pipeline

Flow for one charge:
1. Normalize the amount by household-sharing rules
2. Look up (category, country, merchant) in the suggestion cache
3. Hit → re-curate the cached offers against the caller's own numbers
4. Miss → AI competitor search → attach affiliate links → curate → store
   (first writer wins)
5. Record the analysis in the AI usage ledger

Every result carries an explicit provenance flag (CACHE or AI).

Failure policy:
- Invalid input raises ChargeValidationError before anything runs
- Cache read failure counts as a miss, cache write failure is logged only
- Affiliate lookup and usage ledger failures are logged only
- Search failure (unreachable, timeout, malformed answer) fails open with an
  empty suggestion and degraded_reason set; strict callers get the error
- Nothing is ever cached after a failed or cancelled search
"""
import time
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import uuid4

import structlog
from pydantic import ValidationError as PydanticValidationError

from packages.common.config import Settings, get_settings
from packages.domain.offers.affiliate_links import AffiliateLinkRepository
from packages.domain.offers.competitor_search import CompetitorSearchGateway
from packages.domain.offers.cost_normalizer import CostNormalizer, cost_normalizer
from packages.domain.offers.exceptions import (
    CacheStoreError,
    ChargeValidationError,
    MalformedResponseError,
    SearchUnavailableError,
)
from packages.domain.offers.result_curator import ResultCurator, result_curator
from packages.domain.offers.schemas import (
    AnalysisOutcome,
    AnalysisRequest,
    CompetitorOffer,
    MarketSuggestion,
    NormalizedCost,
    NormalizedRequest,
    SuggestionSource,
)
from packages.domain.offers.suggestion_cache import SuggestionCacheRepository, normalize_key
from packages.domain.offers.usage_tracker import (
    REQUEST_TYPE_ANALYSIS,
    REQUEST_TYPE_QUICK_LOOKUP,
    AIUsageRepository,
)

logger = structlog.get_logger()

# Degraded results are never stored; expires_at tells callers when to retry
DEGRADED_RETRY_AFTER = timedelta(minutes=5)


def build_analysis_request(**fields) -> AnalysisRequest:
    """
    Validate raw caller input into an AnalysisRequest.

    Raises:
        ChargeValidationError: Missing category, non-positive amount, bad codes...
    """
    try:
        return AnalysisRequest(**fields)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ChargeValidationError(f"Invalid analysis request: {problems}") from e


class MarketAnalyzerService:
    """
    Entry point for analyzing one recurring charge against the market.

    The affiliate and usage repositories share the cache's session factory
    unless given explicitly.
    """

    def __init__(
        self,
        cache: Optional[SuggestionCacheRepository] = None,
        gateway: Optional[CompetitorSearchGateway] = None,
        normalizer: Optional[CostNormalizer] = None,
        curator: Optional[ResultCurator] = None,
        settings: Optional[Settings] = None,
        affiliates: Optional[AffiliateLinkRepository] = None,
        usage: Optional[AIUsageRepository] = None,
    ):
        self.settings = settings or get_settings()
        self.cache = cache or SuggestionCacheRepository(ttl_days=self.settings.suggestion_cache_ttl_days)
        self.gateway = gateway or CompetitorSearchGateway(settings=self.settings)
        self.normalizer = normalizer or cost_normalizer
        self.curator = curator or result_curator

        session_factory = getattr(self.cache, "session_factory", None)
        self.affiliates = affiliates or AffiliateLinkRepository(session_factory=session_factory)
        self.usage = usage or AIUsageRepository(session_factory=session_factory, clock=self.cache.now)

    async def analyze_charge(
        self,
        request: AnalysisRequest,
        *,
        timeout: Optional[float] = None,
        fail_open: bool = True,
        request_type: Optional[str] = REQUEST_TYPE_ANALYSIS,
    ) -> AnalysisOutcome:
        """
        Analyze one charge, serving from cache when a live entry exists.

        Args:
            request: Validated analysis request
            timeout: Search deadline in seconds (defaults to the full search timeout)
            fail_open: Return an empty, degraded outcome on search failure
                instead of raising
            request_type: Label of the usage record; None skips recording
                (batch callers record one aggregate entry instead)

        Returns:
            AnalysisOutcome with curated offers and provenance

        Raises:
            ChargeValidationError: If request is not an AnalysisRequest
            SearchUnavailableError: Search failed and fail_open is False
            MalformedResponseError: Unusable AI answer and fail_open is False
        """
        if not isinstance(request, AnalysisRequest):
            raise ChargeValidationError(
                f"Expected AnalysisRequest, got {type(request).__name__}"
            )

        started = time.monotonic()
        timeout = timeout or self.settings.search_full_timeout_seconds
        cost = self.normalizer.normalize(request.category, request.total_amount, request.household_size)

        cached = await self._read_cache(request)
        if cached is not None:
            curated = self.curator.curate(
                cached.competitors,
                request.merchant_name,
                cost.effective_amount,
                cost.household_size,
                cost.charge_type,
            )

            logger.info("market_analysis_served_from_cache",
                       category=request.category,
                       country=request.country,
                       competitors=len(curated))

            # The stored row is never touched; only this copy carries the caller's savings
            outcome = self._outcome(
                cached.model_copy(update={"competitors": curated}),
                SuggestionSource.CACHE,
                cost,
            )
            return await self._finish(outcome, request, request_type, started)

        normalized = NormalizedRequest(request=request, cost=cost)

        try:
            result = await self.gateway.search(normalized, timeout=timeout)
        except (SearchUnavailableError, MalformedResponseError) as e:
            if not fail_open:
                raise

            logger.warning("market_analysis_degraded",
                          category=request.category,
                          country=request.country,
                          error_type=type(e).__name__,
                          error=str(e))
            outcome = self._outcome(
                self._empty_suggestion(request),
                SuggestionSource.AI,
                cost,
                degraded_reason=f"{type(e).__name__}: {e}",
            )
            return await self._finish(outcome, request, request_type, started)

        offers = await self._attach_affiliates(result.offers, request)
        curated = self.curator.curate(
            offers,
            request.merchant_name,
            cost.effective_amount,
            cost.household_size,
            cost.charge_type,
        )

        suggestion = self.cache.new_suggestion(
            request.category,
            request.country,
            request.merchant_name,
            curated,
        )
        await self._write_cache(suggestion)

        logger.info("market_analysis_computed",
                   category=request.category,
                   country=request.country,
                   raw_offers=len(result.offers),
                   competitors=len(curated),
                   cost_usd=float(result.ai_cost_usd) if result.ai_cost_usd is not None else None)

        outcome = self._outcome(
            suggestion,
            SuggestionSource.AI,
            cost,
            ai_cost_usd=result.ai_cost_usd,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
        )
        return await self._finish(outcome, request, request_type, started)

    async def quick_lookup(self, request: AnalysisRequest) -> AnalysisOutcome:
        """Instant-feedback analysis bounded by the short search deadline."""
        return await self.analyze_charge(
            request,
            timeout=self.settings.search_quick_timeout_seconds,
            fail_open=True,
            request_type=REQUEST_TYPE_QUICK_LOOKUP,
        )

    async def get_category_suggestions(self, category: str, country: str) -> Optional[MarketSuggestion]:
        """
        Read the generic (merchant-less) cached analysis for a category.

        Never triggers a search.

        Returns:
            MarketSuggestion, or None if nothing live is cached
        """
        try:
            return await self.cache.get(category, country, None)
        except CacheStoreError as e:
            logger.warning("category_suggestions_unavailable",
                          category=category,
                          country=country,
                          error=str(e))
            return None

    async def record_usage(
        self,
        request_type: str,
        category: Optional[str],
        country: Optional[str],
        input_tokens: int = 0,
        output_tokens: int = 0,
        cost_usd: Optional[Decimal] = None,
        cache_hit: bool = False,
        duration_ms: Optional[int] = None,
    ) -> None:
        """Append to the AI usage ledger; a ledger failure never fails the analysis."""
        try:
            await self.usage.record(
                request_type,
                category,
                country,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cost_usd=cost_usd,
                cache_hit=cache_hit,
                duration_ms=duration_ms,
            )
        except CacheStoreError:
            logger.error("ai_usage_record_failed",
                        request_type=request_type,
                        category=category,
                        exc_info=True)

    async def _finish(
        self,
        outcome: AnalysisOutcome,
        request: AnalysisRequest,
        request_type: Optional[str],
        started: float,
    ) -> AnalysisOutcome:
        if request_type is not None:
            await self.record_usage(
                request_type,
                request.category,
                request.country,
                input_tokens=outcome.input_tokens,
                output_tokens=outcome.output_tokens,
                cost_usd=outcome.ai_cost_usd,
                cache_hit=outcome.source == SuggestionSource.CACHE,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        return outcome

    async def _attach_affiliates(
        self,
        offers: List[CompetitorOffer],
        request: AnalysisRequest,
    ) -> List[CompetitorOffer]:
        try:
            return await self.affiliates.attach(offers, request.category, request.country)
        except CacheStoreError as e:
            logger.warning("affiliate_links_unavailable",
                          category=request.category,
                          country=request.country,
                          error=str(e))
            return offers

    async def _read_cache(self, request: AnalysisRequest) -> Optional[MarketSuggestion]:
        try:
            return await self.cache.get(request.category, request.country, request.merchant_name)
        except CacheStoreError as e:
            logger.warning("suggestion_cache_read_failed",
                          category=request.category,
                          country=request.country,
                          error=str(e))
            return None

    async def _write_cache(self, suggestion: MarketSuggestion) -> None:
        try:
            await self.cache.put(suggestion)
        except CacheStoreError:
            logger.error("suggestion_cache_write_failed",
                        category=suggestion.category,
                        country=suggestion.country,
                        exc_info=True)

    def _empty_suggestion(self, request: AnalysisRequest) -> MarketSuggestion:
        category, country, merchant = normalize_key(request.category, request.country, request.merchant_name)
        now = self.cache.now()
        return MarketSuggestion(
            id=uuid4(),
            category=category,
            country=country,
            merchant_name=merchant,
            competitors=[],
            last_updated=now,
            expires_at=now + DEGRADED_RETRY_AFTER,
        )

    @staticmethod
    def _outcome(
        suggestion: MarketSuggestion,
        source: SuggestionSource,
        cost: NormalizedCost,
        ai_cost_usd=None,
        input_tokens: int = 0,
        output_tokens: int = 0,
        degraded_reason: Optional[str] = None,
    ) -> AnalysisOutcome:
        return AnalysisOutcome(
            suggestion=suggestion,
            source=source,
            effective_amount=cost.effective_amount,
            charge_type=cost.charge_type,
            household_size=cost.household_size,
            ai_cost_usd=ai_cost_usd,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            degraded_reason=degraded_reason,
        )
