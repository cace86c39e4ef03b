"""
Competitive-offer intelligence: household-aware market comparison of
recurring charges, backed by an AI search and a persistent suggestion cache.
"""
from packages.domain.offers.affiliate_links import AffiliateLinkRepository
from packages.domain.offers.bulk_analyzer import BulkAnalyzer
from packages.domain.offers.cache_janitor import CacheJanitor
from packages.domain.offers.charge_classifier import ChargeCategory, ChargeClassifier, charge_classifier
from packages.domain.offers.competitor_search import CompetitorSearchGateway, CompetitorSearchResult
from packages.domain.offers.cost_normalizer import CostNormalizer, cost_normalizer
from packages.domain.offers.exceptions import (
    CacheStoreError,
    ChargeValidationError,
    MalformedResponseError,
    OfferEngineError,
    SearchUnavailableError,
)
from packages.domain.offers.label_categorizer import LabelCategorizer, label_categorizer
from packages.domain.offers.market_analyzer import MarketAnalyzerService, build_analysis_request
from packages.domain.offers.result_curator import ResultCurator, result_curator
from packages.domain.offers.schemas import (
    AnalysisOutcome,
    AnalysisRequest,
    BulkAnalysisResult,
    ChargeFailure,
    ChargeSuggestion,
    ChargeToAnalyze,
    ChargeType,
    CompetitorOffer,
    MarketSuggestion,
    SuggestionSource,
)
from packages.domain.offers.suggestion_cache import SuggestionCacheRepository
from packages.domain.offers.usage_tracker import AIUsageRepository

__all__ = [
    "AIUsageRepository",
    "AffiliateLinkRepository",
    "AnalysisOutcome",
    "AnalysisRequest",
    "BulkAnalysisResult",
    "BulkAnalyzer",
    "CacheJanitor",
    "CacheStoreError",
    "ChargeCategory",
    "ChargeClassifier",
    "ChargeFailure",
    "ChargeSuggestion",
    "ChargeToAnalyze",
    "ChargeType",
    "ChargeValidationError",
    "CompetitorOffer",
    "CompetitorSearchGateway",
    "CompetitorSearchResult",
    "CostNormalizer",
    "LabelCategorizer",
    "MalformedResponseError",
    "MarketAnalyzerService",
    "MarketSuggestion",
    "OfferEngineError",
    "ResultCurator",
    "SearchUnavailableError",
    "SuggestionCacheRepository",
    "SuggestionSource",
    "build_analysis_request",
    "charge_classifier",
    "cost_normalizer",
    "label_categorizer",
    "result_curator",
]
