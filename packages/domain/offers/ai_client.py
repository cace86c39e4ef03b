"""
AI Completion Client - Contract and Anthropic implementation

The competitor search only needs "prompt in, text out". Anything that
implements AICompletionClient can back it (tests use an in-memory fake).
"""
from dataclasses import dataclass
from typing import Optional, Protocol

import anthropic
import structlog

from packages.common.config import get_settings
from packages.domain.offers.exceptions import SearchUnavailableError

logger = structlog.get_logger()


@dataclass
class Completion:
    """
    Raw text returned by the AI collaborator.

    Attributes:
        text: Completion text (expected to be JSON, not guaranteed)
        model: Model that produced it
        input_tokens: Prompt tokens billed
        output_tokens: Completion tokens billed
    """
    text: str
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0


class AICompletionClient(Protocol):
    """Protocol for text-completion backends used by the competitor search."""

    async def complete(self, prompt: str) -> Completion:
        """
        Send a single prompt and return the completion.

        Raises:
            SearchUnavailableError: Backend unreachable, misconfigured, or failed
        """
        ...


class AnthropicCompletionClient:
    """
    Claude Messages API backend.

    Settings: ANTHROPIC_API_KEY, AI_MODEL, AI_MAX_TOKENS, AI_TEMPERATURE.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.anthropic_api_key
        self.model = model or settings.ai_model
        self.max_tokens = max_tokens or settings.ai_max_tokens
        self.temperature = settings.ai_temperature if temperature is None else temperature

        if not self.api_key:
            logger.warning("anthropic_api_key_missing",
                          message="ANTHROPIC_API_KEY not set, competitor search will be unavailable")

        # Retries and deadlines are owned by the caller
        self.client = anthropic.AsyncAnthropic(api_key=self.api_key, max_retries=0) if self.api_key else None

    async def complete(self, prompt: str) -> Completion:
        if not self.client:
            raise SearchUnavailableError("ANTHROPIC_API_KEY not set")

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[
                    {
                        "role": "user",
                        "content": prompt
                    }
                ]
            )
        except anthropic.APITimeoutError as e:
            raise SearchUnavailableError(f"AI request timed out: {e}") from e
        except anthropic.APIConnectionError as e:
            raise SearchUnavailableError(f"AI backend unreachable: {e}") from e
        except anthropic.APIStatusError as e:
            raise SearchUnavailableError(f"AI backend returned status {e.status_code}") from e
        except anthropic.APIError as e:
            # e.g. APIResponseValidationError: the SDK could not decode the reply
            raise SearchUnavailableError(f"AI backend error: {type(e).__name__}: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not text:
            raise SearchUnavailableError("Empty response from AI backend")

        return Completion(
            text=text,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
