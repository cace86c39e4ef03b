"""
Bulk Analyzer - Market analysis of every charge in a budget

Each relevant charge goes through the single-charge pipeline. Charges with
different cache keys are independent, so they run concurrently (bounded by
BULK_MAX_CONCURRENCY). Charges sharing a cache key run one after the other:
the first one searches and stores, the rest are served from the cache. The
counters are then plain sums and do not depend on completion order.

A failing charge never aborts the batch. It is left out of the suggestions
and reported in BulkAnalysisResult.failures.
"""
import asyncio
import time
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, List, Optional

import structlog

from packages.common.config import Settings, get_settings
from packages.domain.offers.charge_classifier import ChargeClassifier, charge_classifier
from packages.domain.offers.exceptions import ChargeValidationError, OfferEngineError
from packages.domain.offers.label_categorizer import LabelCategorizer, label_categorizer
from packages.domain.offers.market_analyzer import MarketAnalyzerService, build_analysis_request
from packages.domain.offers.schemas import (
    BulkAnalysisResult,
    ChargeFailure,
    ChargeSuggestion,
    ChargeToAnalyze,
    SuggestionSource,
)
from packages.domain.offers.suggestion_cache import normalize_key
from packages.domain.offers.usage_tracker import REQUEST_TYPE_BULK

logger = structlog.get_logger()


class BulkAnalyzer:
    """
    Runs the cache-or-search pipeline over a batch of charges.
    """

    def __init__(
        self,
        analyzer: Optional[MarketAnalyzerService] = None,
        classifier: Optional[ChargeClassifier] = None,
        categorizer: Optional[LabelCategorizer] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.analyzer = analyzer or MarketAnalyzerService(settings=self.settings)
        self.classifier = classifier or charge_classifier
        self.categorizer = categorizer or label_categorizer
        self.max_concurrency = self.settings.bulk_max_concurrency

    async def analyze_batch(
        self,
        charges: Iterable[ChargeToAnalyze],
        country: str,
        currency: str,
        household_size: int,
    ) -> BulkAnalysisResult:
        """
        Analyze all charges of one budget.

        Args:
            charges: Budget lines, output keeps this order
            country: ISO country code of the budget
            currency: ISO currency code of the budget
            household_size: Declared household members

        Returns:
            BulkAnalysisResult with per-charge suggestions and totals

        Raises:
            ChargeValidationError: If country or currency is malformed
        """
        country = (country or "").strip().upper()
        currency = (currency or "").strip().upper()
        if len(country) != 2:
            raise ChargeValidationError(f"Invalid country code: {country!r}")
        if len(currency) != 3:
            raise ChargeValidationError(f"Invalid currency code: {currency!r}")

        started = time.monotonic()
        household_size = max(int(household_size or 1), 1)
        timeout = self.settings.search_full_timeout_seconds
        semaphore = asyncio.Semaphore(self.max_concurrency)
        # One lock per cache key: a duplicate charge waits for the first search to be stored
        key_locks = defaultdict(asyncio.Lock)

        result = BulkAnalysisResult(household_size=household_size, currency=currency)
        jobs = []

        for charge in charges:
            category = self.categorizer.refine_category(charge.category, charge.label)

            if not self.classifier.is_suggestion_relevant(category):
                result.skipped += 1
                continue

            try:
                request = build_analysis_request(
                    category=category,
                    merchant_name=charge.merchant_name,
                    total_amount=charge.amount,
                    country=country,
                    currency=currency,
                    household_size=household_size,
                    details=charge.description,
                )
            except ChargeValidationError as e:
                jobs.append((charge, category, None, e))
                continue

            jobs.append((charge, category, request, None))

        async def resolve(job):
            _, _, request, error = job
            if error is not None:
                return None, error

            key = normalize_key(request.category, request.country, request.merchant_name)

            # Key lock before the semaphore: a waiting duplicate never holds a slot
            async with key_locks[key]:
                async with semaphore:
                    try:
                        outcome = await self.analyzer.analyze_charge(
                            request,
                            timeout=timeout,
                            fail_open=False,
                            request_type=None,
                        )
                    except OfferEngineError as e:
                        return None, e
                    return outcome, None

        logger.info("bulk_analysis_started",
                   charges=len(jobs),
                   skipped=result.skipped,
                   country=country,
                   household_size=household_size,
                   max_concurrency=self.max_concurrency)

        resolved = await asyncio.gather(*(resolve(job) for job in jobs))

        total_savings = Decimal("0")
        total_cost = Decimal("0")
        input_tokens = 0
        output_tokens = 0
        suggestions: List[ChargeSuggestion] = []
        failures: List[ChargeFailure] = []

        for (charge, category, _, _), (outcome, error) in zip(jobs, resolved):
            label = charge.label or charge.description or category

            if error is not None:
                logger.warning("bulk_charge_analysis_failed",
                              charge_id=charge.id,
                              category=category,
                              error_type=type(error).__name__,
                              error=str(error))
                failures.append(ChargeFailure(
                    charge_id=charge.id,
                    charge_label=label,
                    category=category,
                    error_type=type(error).__name__,
                    message=str(error),
                ))
                continue

            if outcome.source == SuggestionSource.CACHE:
                result.cache_hits += 1
            else:
                result.ai_calls += 1

            total_cost += outcome.ai_cost_usd or Decimal("0")
            input_tokens += outcome.input_tokens
            output_tokens += outcome.output_tokens

            if outcome.suggestion.competitors:
                total_savings += outcome.best_savings
                suggestions.append(ChargeSuggestion(
                    charge_id=charge.id,
                    charge_label=label,
                    suggestion=outcome.suggestion,
                    source=outcome.source,
                ))

        result.suggestions = suggestions
        result.failures = failures
        result.total_potential_savings = total_savings
        result.total_ai_cost_usd = total_cost

        await self.analyzer.record_usage(
            REQUEST_TYPE_BULK,
            None,
            country,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=total_cost,
            cache_hit=result.cache_hits > 0 and result.ai_calls == 0,
            duration_ms=int((time.monotonic() - started) * 1000),
        )

        logger.info("bulk_analysis_complete",
                   suggestions=len(suggestions),
                   cache_hits=result.cache_hits,
                   ai_calls=result.ai_calls,
                   skipped=result.skipped,
                   failures=len(failures),
                   total_potential_savings=float(total_savings),
                   total_ai_cost_usd=float(total_cost))

        return result
