"""
Structured logging configuration

JSON logs via structlog. When LOG_MASK_SENSITIVE is on (default in
production) personal and financial data is masked before rendering:
- e-mails, IBANs and card numbers are replaced
- amounts followed by a currency are replaced
- UUIDs are shortened to their first 8 characters
- values of financial keys (amount, typical_price, ...) are redacted
"""
import logging
import re
from typing import Any, Optional

import structlog

from packages.common.config import Settings, get_settings

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
IBAN_PATTERN = re.compile(r"\b[A-Z]{2}\d{2}[A-Z0-9]{10,30}\b")
CARD_PATTERN = re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b")
AMOUNT_WITH_CURRENCY_PATTERN = re.compile(r"\b\d+(?:[.,]\d{1,2})?\s*(?:€|EUR|CHF|GBP|USD|£|\$)(?!\w)")
UUID_PATTERN = re.compile(r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\b")

REDACTED = "***"

FINANCIAL_KEYS = frozenset({
    "amount",
    "total_amount",
    "effective_amount",
    "typical_price",
    "potential_savings",
    "total_potential_savings",
    "best_savings",
})


def mask_string(value: str) -> str:
    """Mask personal and financial data inside free text."""
    value = EMAIL_PATTERN.sub("***@***.***", value)
    value = IBAN_PATTERN.sub("****IBAN****", value)
    value = CARD_PATTERN.sub("****-****-****-****", value)
    value = AMOUNT_WITH_CURRENCY_PATTERN.sub(REDACTED, value)
    value = UUID_PATTERN.sub(lambda m: m.group(0)[:8] + "...", value)
    return value


def _mask_value(value: Any) -> Any:
    if isinstance(value, str):
        return mask_string(value)
    if isinstance(value, dict):
        return {k: (REDACTED if k in FINANCIAL_KEYS else _mask_value(v)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_mask_value(v) for v in value]
    return value


def mask_sensitive_data(logger, method_name: str, event_dict: dict) -> dict:
    """structlog processor masking sensitive values in every event."""
    for key, value in list(event_dict.items()):
        if key in FINANCIAL_KEYS:
            event_dict[key] = REDACTED
        else:
            event_dict[key] = _mask_value(value)
    return event_dict


def build_processors(settings: Settings) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.mask_sensitive_logs:
        processors.append(mask_sensitive_data)
    processors.append(structlog.processors.JSONRenderer())
    return processors


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure structlog for the worker and scripts."""
    settings = settings or get_settings()

    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, settings.log_level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
