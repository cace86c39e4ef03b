"""
Competitor Search Gateway - AI-backed lookup of cheaper providers

Builds a deterministic prompt from a normalized analysis request, sends it to
the AI collaborator and decodes the answer into typed CompetitorOffer objects.

The collaborator is untrusted:
- Output must be JSON of the shape {"competitors": [...]}
- Every candidate is validated (required fields, non-negative prices, bounded text)
- Anything else is a MalformedResponseError, never a crash
- Network failures and deadlines are SearchUnavailableError

Example:
- Input: MOBILE, current "Orange", 20.00 EUR per person, 3-person household
- AI Output: {"competitors": [{"name": "Sosh", "typical_price": 10.99, ...}]}
- Result: [CompetitorOffer(name="Sosh", typical_price=Decimal("10.99"), ...)]
"""
import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Annotated, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator
from pydantic import ValidationError as PydanticValidationError

from packages.common.config import Settings, get_settings
from packages.domain.offers.ai_client import AICompletionClient, AnthropicCompletionClient
from packages.domain.offers.exceptions import MalformedResponseError, SearchUnavailableError
from packages.domain.offers.schemas import ChargeType, CompetitorOffer, NormalizedRequest

logger = structlog.get_logger()

MAX_CANDIDATES = 3

GENERIC_PROVIDER_PLACEHOLDER = "an unspecified current provider"

# Per-category guidance appended to the prompt
CATEGORY_HINTS = {
    "ENERGY": "Compare electricity and gas suppliers on the kWh price and the fixed subscription fee. "
              "Mention regulated tariffs where they exist. Green offers are welcome if cheaper.",
    "INTERNET": "Compare home broadband (fibre, ADSL, 5G box) at equivalent speed. "
                "Mention first-year promotional prices and the price after promotion.",
    "MOBILE": "Compare SIM-only mobile plans with at least the same data allowance. "
              "Low-cost brands and MVNOs are relevant. Ignore handset financing.",
    "INSURANCE": "Compare insurers at an equivalent coverage level and deductible.",
    "INSURANCE_AUTO": "Compare car insurance at equivalent coverage (third party, comprehensive) and deductible.",
    "INSURANCE_HOME": "Compare home insurance for the same dwelling size and coverage level.",
    "INSURANCE_HEALTH": "Compare complementary health insurance at equivalent reimbursement levels.",
    "LOAN": "Focus on loan insurance delegation and rate renegotiation or buy-back offers. "
            "Express typical_price as the comparable monthly repayment or insurance cost.",
    "BANK": "Compare bank account fees, card fees and online banks with free accounts.",
    "TRANSPORT": "Compare public transport passes, rail cards and subscription alternatives.",
    "LEISURE_SPORT": "Compare gym and fitness club memberships with similar access and equipment.",
    "LEISURE_STREAMING": "Compare streaming subscriptions with similar catalogue and quality; include ad-supported tiers.",
    "SUBSCRIPTION": "Compare equivalent subscription services and cheaper plan tiers.",
    "HOUSING": "Compare housing-related recurring costs (rent insurance, service charges, maintenance contracts).",
}

DEFAULT_HINT = "Compare providers offering the same service at an equivalent level."


BoundedText = Annotated[str, StringConstraints(strip_whitespace=True, max_length=300)]


class _RawCompetitor(BaseModel):
    """One candidate as emitted by the AI (potential_savings is advisory only)"""
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, max_length=200)
    typical_price: Decimal = Field(..., ge=0)
    best_offer: str = Field(default="", max_length=1000)
    potential_savings: Decimal = Decimal("0")
    pros: List[BoundedText] = Field(default_factory=list, max_length=10)
    cons: List[BoundedText] = Field(default_factory=list, max_length=10)
    website_url: str = Field(default="", max_length=500)
    phone_number: Optional[str] = Field(None, max_length=50)
    contact_email: Optional[str] = Field(None, max_length=255)
    contact_available: bool = False

    @field_validator("name", "best_offer", "website_url", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        if v is None:
            return ""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("pros", "cons", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v

    def to_offer(self) -> CompetitorOffer:
        return CompetitorOffer(
            name=self.name,
            typical_price=self.typical_price,
            best_offer=self.best_offer,
            potential_savings=self.potential_savings,
            pros=list(self.pros),
            cons=list(self.cons),
            website_url=self.website_url,
            phone_number=self.phone_number or None,
            contact_email=self.contact_email or None,
            contact_available=self.contact_available,
        )


class _RawSearchResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    competitors: List[_RawCompetitor]


@dataclass
class CompetitorSearchResult:
    """Decoded offers plus call accounting"""
    offers: List[CompetitorOffer] = field(default_factory=list)
    ai_cost_usd: Optional[Decimal] = None
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0


class CompetitorSearchGateway:
    """
    AI-powered market search for a single normalized charge.
    """

    def __init__(
        self,
        client: Optional[AICompletionClient] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the gateway.

        Args:
            client: Completion backend (defaults to Anthropic)
            settings: Application settings (defaults to get_settings())
        """
        self.settings = settings or get_settings()
        self.client = client or AnthropicCompletionClient()
        self.input_cost_per_1k = self.settings.ai_input_cost_per_1k
        self.output_cost_per_1k = self.settings.ai_output_cost_per_1k

    async def search(
        self,
        normalized: NormalizedRequest,
        timeout: Optional[float] = None,
    ) -> CompetitorSearchResult:
        """
        Ask the AI collaborator for cheaper alternatives.

        Args:
            normalized: Request with its effective comparison amount
            timeout: Deadline in seconds (defaults to SEARCH_FULL_TIMEOUT_SECONDS)

        Returns:
            CompetitorSearchResult (offers may be empty: no better offer exists)

        Raises:
            SearchUnavailableError: Collaborator unreachable, failed, or past deadline
            MalformedResponseError: Output is not the expected JSON structure
        """
        timeout = timeout or self.settings.search_full_timeout_seconds
        request = normalized.request
        prompt = self.build_prompt(normalized)

        logger.info("competitor_search_started",
                   category=request.category,
                   country=request.country,
                   charge_type=normalized.charge_type.value,
                   household_size=normalized.cost.household_size,
                   timeout_s=timeout)

        try:
            completion = await asyncio.wait_for(self.client.complete(prompt), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.warning("competitor_search_timeout",
                          category=request.category,
                          country=request.country,
                          timeout_s=timeout)
            raise SearchUnavailableError(f"Competitor search exceeded {timeout}s deadline") from e

        cost = self._calculate_cost(completion.input_tokens, completion.output_tokens)

        logger.info("competitor_search_complete",
                   category=request.category,
                   country=request.country,
                   model=completion.model,
                   input_tokens=completion.input_tokens,
                   output_tokens=completion.output_tokens,
                   cost_usd=float(cost))

        offers = self.parse_response(completion.text)

        return CompetitorSearchResult(
            offers=offers,
            ai_cost_usd=cost,
            model=completion.model,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
        )

    def build_prompt(self, normalized: NormalizedRequest) -> str:
        """
        Build the competitor search prompt.

        Deterministic: the same normalized request always yields the same text.

        Args:
            normalized: Request with its effective comparison amount

        Returns:
            Prompt string
        """
        request = normalized.request
        size = normalized.cost.household_size
        price = normalized.effective_amount.quantize(Decimal("0.01"))

        if size <= 1:
            household_context = "a single person"
        else:
            household_context = f"a {size}-person household"

        if normalized.charge_type == ChargeType.PER_INDIVIDUAL:
            comparison_basis = "per person"
            basis_note = (
                f"Each of the {size} household members pays for this separately. "
                "Compare individual offers against the per-person price below."
                if size > 1 else
                "This charge is paid individually."
            )
        else:
            comparison_basis = "for the whole household"
            basis_note = "This charge is billed once for the whole household, whatever its size."

        provider = request.merchant_name or GENERIC_PROVIDER_PLACEHOLDER
        hint = CATEGORY_HINTS.get(request.category, DEFAULT_HINT)

        prompt = f"""You are a consumer market analyst helping {household_context} lower a recurring expense.

COUNTRY: {request.country}
CURRENCY: {request.currency}
CATEGORY: {request.category}
CURRENT PROVIDER: {provider}
CURRENT PRICE: {price} {request.currency} per month, {comparison_basis}

COMPARISON BASIS:
{basis_note}
The price above is {comparison_basis}. Quote typical_price on exactly the same basis.

CATEGORY GUIDANCE:
{hint}
"""

        if request.details:
            prompt += f"""
CURRENT CONTRACT DETAILS (compare apples to apples against these specifics):
{request.details}
"""

        prompt += f"""
RULES:
1. Return AT MOST {MAX_CANDIDATES} competitors, cheapest relevant offers first.
2. NEVER propose the current provider ({provider}) or one of its own brands.
3. Every competitor MUST include a website_url where the offer can be verified.
4. All prices MUST be monthly amounts in {request.currency}.
5. If no cheaper equivalent offer exists in {request.country}, return an empty list.
6. potential_savings is the annual saving compared to the current price.

RESPONSE FORMAT (return ONLY this JSON, no other text):
{{
  "competitors": [
    {{
      "name": "Provider name",
      "typical_price": 0.00,
      "best_offer": "Short description of the offer",
      "potential_savings": 0.00,
      "pros": ["..."],
      "cons": ["..."],
      "website_url": "https://...",
      "phone_number": null,
      "contact_email": null,
      "contact_available": false
    }}
  ]
}}
"""

        return prompt

    def parse_response(self, response_text: str) -> List[CompetitorOffer]:
        """
        Decode and validate the collaborator's answer.

        Args:
            response_text: Raw completion text

        Returns:
            Offers in the collaborator's order (may be empty)

        Raises:
            MalformedResponseError: If the text is not the expected structure
        """
        payload = self._extract_json(response_text)

        try:
            parsed = _RawSearchResponse.model_validate_json(payload)
        except PydanticValidationError as e:
            logger.error("competitor_response_invalid",
                        errors=e.error_count(),
                        response_chars=len(response_text or ""))
            raise MalformedResponseError(
                f"AI response failed validation ({e.error_count()} errors)",
                raw_response=response_text,
            ) from e

        return [competitor.to_offer() for competitor in parsed.competitors]

    @staticmethod
    def _extract_json(response_text: str) -> str:
        """Strip Markdown fences or chatter around the JSON object."""
        text = (response_text or "").strip()

        if "```json" in text:
            text = text.split("```json", 1)[1].split("```", 1)[0].strip()
        elif "```" in text:
            text = text.split("```", 1)[1].split("```", 1)[0].strip()

        if not text.startswith("{"):
            start = text.find("{")
            end = text.rfind("}")
            if start != -1 and end > start:
                text = text[start:end + 1]

        return text

    def _calculate_cost(self, input_tokens: int, output_tokens: int) -> Decimal:
        """
        Calculate cost of AI API call.

        Args:
            input_tokens: Number of input tokens
            output_tokens: Number of output tokens

        Returns:
            Total cost in USD
        """
        input_cost = (Decimal(input_tokens) / 1000) * self.input_cost_per_1k
        output_cost = (Decimal(output_tokens) / 1000) * self.output_cost_per_1k
        return input_cost + output_cost
