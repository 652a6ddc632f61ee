"""
Common utilities and shared functions.
Symbol normalization, permissive JSON recovery, rate-limit detection and
small arithmetic helpers shared by the services.
"""

import json
import logging
import math
import re
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class PriceFetchError(RuntimeError):
    """Raised when no authoritative price can be obtained for a symbol."""

    def __init__(self, symbol: str, reason: str):
        self.symbol = symbol
        self.reason = reason
        super().__init__(f"無法取得 {symbol} 的股價：{reason}")


class LedgerError(ValueError):
    """Raised when a buy or sell request is invalid."""


RATE_LIMIT_MARKERS = (
    "429",
    "resource_exhausted",
    "resource exhausted",
    "quota",
    "rate limit",
    "ratelimit",
    "too many requests",
)

_CODE_FENCE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


def clean_symbol(symbol: str) -> str:
    """
    Normalize user-entered symbol text.

    Examples:
        >>> clean_symbol(" 2330 ")
        '2330'
        >>> clean_symbol("00878b")
        '00878B'
    """
    return (symbol or "").strip().upper()


def normalize_symbol(symbol: str, market_type: str = "TW") -> str:
    """
    Convert a Taiwan stock symbol to yfinance format.

    Args:
        symbol: Stock symbol (e.g., "2330", "6488")
        market_type: "TW" for TWSE listings, "TWO" for TPEx (OTC) listings

    Returns:
        Properly formatted yfinance symbol

    Examples:
        >>> normalize_symbol("2330")
        '2330.TW'
        >>> normalize_symbol("6488", "TWO")
        '6488.TWO'
        >>> normalize_symbol("2330.TW")
        '2330.TW'
    """
    symbol = clean_symbol(symbol)
    if symbol.endswith((".TW", ".TWO")):
        return symbol
    if market_type == "TWO":
        return f"{symbol}.TWO"
    if market_type != "TW":
        logger.warning(f"Unknown market type: {market_type}, using TWSE suffix")
    return f"{symbol}.TW"


def extract_json(text: Optional[str]) -> Dict[str, Any]:
    """
    Recover a JSON object from free-form model output.

    Tries, in order: the whole text, the body of a ``` code fence, and the
    span between the first '{' and the last '}'. Returns {} when nothing
    parses to an object.

    Examples:
        >>> extract_json('{"a": 1}')
        {'a': 1}
        >>> extract_json('Sure!\\n```json\\n{"a": 1}\\n```')
        {'a': 1}
        >>> extract_json('Result: {"a": 1} hope this helps')
        {'a': 1}
        >>> extract_json('no json here')
        {}
    """
    if not text:
        return {}

    candidates = [text.strip()]

    fence = _CODE_FENCE.search(text)
    if fence:
        candidates.append(fence.group(1).strip())

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed

    logger.warning(f"Could not recover JSON from model output ({len(text)} chars)")
    return {}


def is_rate_limit_error(error: Any) -> bool:
    """Detect a rate-limit / quota failure by substring match on its text."""
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.floor(abs(value) + 0.5)) * (1 if value >= 0 else -1)


def calculate_change_percent(current: float, previous: Optional[float]) -> float:
    """Percent change from previous close; 0.0 when there is no usable base."""
    if not previous:
        return 0.0
    return (current - previous) / previous * 100


def to_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    """
    Best-effort numeric conversion for loosely typed model output.
    Percent strings become fractions ("28%" -> 0.28); NaN and infinities
    are rejected.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        cleaned = str(value).replace(",", "").strip()
        is_percent = cleaned.endswith("%")
        try:
            number = float(cleaned.rstrip("%").strip())
        except ValueError:
            return default
        if is_percent:
            number /= 100
    return number if math.isfinite(number) else default
