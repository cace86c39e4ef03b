"""
Data schemas for the competitive-offer module
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ChargeType(str, Enum):
    """How a recurring charge is billed inside a household"""
    HOUSEHOLD = "household"            # Billed once for the whole household
    PER_INDIVIDUAL = "per_individual"  # Each member pays their own


class SuggestionSource(str, Enum):
    """Provenance of an analysis result"""
    CACHE = "cache"  # Served from market_suggestions
    AI = "ai"        # Freshly computed by the AI collaborator


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = " ".join(value.split())
    return value or None


class AnalysisRequest(BaseModel):
    """
    One charge to compare against the market.

    Constructed per call, never persisted.
    """
    category: str = Field(..., min_length=1, max_length=50)
    merchant_name: Optional[str] = Field(None, max_length=255, description="Current provider")
    total_amount: Decimal = Field(..., gt=0, description="Monthly amount paid by the household")
    country: str = Field(..., min_length=2, max_length=2, description="ISO 3166-1 alpha-2")
    currency: str = Field(..., min_length=3, max_length=3, description="ISO 4217 code")
    household_size: int = Field(default=1, description="Declared household members")
    details: Optional[str] = Field(None, max_length=1000, description="Technical specifics (kWh, data, coverage)")

    @field_validator("category", "country", "currency", mode="before")
    @classmethod
    def normalize_code(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("merchant_name", "details", mode="before")
    @classmethod
    def normalize_text(cls, v):
        if isinstance(v, str):
            return _clean_optional(v)
        return v

    @field_validator("household_size", mode="before")
    @classmethod
    def floor_household_size(cls, v):
        if v is None:
            return 1
        return max(int(v), 1)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "category": "MOBILE",
                "merchant_name": "Orange",
                "total_amount": "60.00",
                "country": "FR",
                "currency": "EUR",
                "household_size": 3,
                "details": "3 lines, 100GB each",
            }
        }
    )


class NormalizedCost(BaseModel):
    """Result of household-sharing normalization"""
    effective_amount: Decimal
    charge_type: ChargeType
    household_size: int = Field(..., ge=1)


class NormalizedRequest(BaseModel):
    """Analysis request after cost normalization (input to the search gateway)"""
    request: AnalysisRequest
    cost: NormalizedCost

    @property
    def effective_amount(self) -> Decimal:
        return self.cost.effective_amount

    @property
    def charge_type(self) -> ChargeType:
        return self.cost.charge_type


class CompetitorOffer(BaseModel):
    """A candidate alternative provider"""
    name: str = Field(..., min_length=1, max_length=200)
    typical_price: Decimal = Field(..., ge=0, description="Monthly price in the request currency")
    best_offer: str = Field(default="", max_length=1000, description="Offer description")
    potential_savings: Decimal = Field(default=Decimal("0"), description="Annual savings for the household")
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)
    website_url: str = Field(default="", max_length=500)
    affiliate_link: Optional[str] = Field(None, max_length=500)
    phone_number: Optional[str] = Field(None, max_length=50)
    contact_email: Optional[str] = Field(None, max_length=255)
    contact_available: bool = False

    @property
    def has_reference(self) -> bool:
        """At least one link a user can follow to verify the offer"""
        return bool((self.website_url or "").strip() or (self.affiliate_link or "").strip())


class MarketSuggestion(BaseModel):
    """
    Cached market analysis for (category, country, merchant).

    merchant_name None is the generic, category-level entry.
    """
    id: UUID = Field(default_factory=uuid4)
    category: str
    country: str
    merchant_name: Optional[str] = None
    competitors: List[CompetitorOffer] = Field(default_factory=list, max_length=3)
    last_updated: datetime
    expires_at: datetime

    @model_validator(mode="after")
    def check_expiry_window(self):
        if self.expires_at <= self.last_updated:
            raise ValueError("expires_at must be later than last_updated")
        return self

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class AnalysisOutcome(BaseModel):
    """
    Single-charge result with explicit provenance.

    degraded_reason is set when the search failed and the engine returned an
    empty suggestion instead of raising.
    """
    suggestion: MarketSuggestion
    source: SuggestionSource
    effective_amount: Decimal
    charge_type: ChargeType
    household_size: int
    ai_cost_usd: Optional[Decimal] = None
    input_tokens: int = 0
    output_tokens: int = 0
    degraded_reason: Optional[str] = None

    @property
    def best_savings(self) -> Decimal:
        if not self.suggestion.competitors:
            return Decimal("0")
        return self.suggestion.competitors[0].potential_savings


class ChargeToAnalyze(BaseModel):
    """One budget line submitted for bulk analysis"""
    id: str
    category: str = ""
    label: str = ""
    amount: Decimal
    merchant_name: Optional[str] = None
    description: Optional[str] = None


class ChargeSuggestion(BaseModel):
    """Bulk result entry for a charge that has cheaper alternatives"""
    charge_id: str
    charge_label: str
    suggestion: MarketSuggestion
    source: SuggestionSource


class ChargeFailure(BaseModel):
    """Bulk result entry for a charge whose analysis failed"""
    charge_id: str
    charge_label: str
    category: str
    error_type: str
    message: str


class BulkAnalysisResult(BaseModel):
    """Aggregate result of analyzing every charge of one budget"""
    suggestions: List[ChargeSuggestion] = Field(default_factory=list)
    cache_hits: int = 0
    ai_calls: int = 0
    total_potential_savings: Decimal = Decimal("0")
    total_ai_cost_usd: Decimal = Decimal("0")
    household_size: int = 1
    currency: str = ""
    skipped: int = 0
    failures: List[ChargeFailure] = Field(default_factory=list)
