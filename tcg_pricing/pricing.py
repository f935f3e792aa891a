"""
Money parsing, FX rates and currency conversion.

Two currencies are supported (USD and EUR). Every price goes through the same
two stages: parse text to an optional number, then operate on the number.
Unknown prices stay None and are never turned into zero.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

USD = "USD"
EUR = "EUR"
NATIVE = "NATIVE"
CURRENCIES = (USD, EUR)
DISPLAY_CURRENCIES = (NATIVE, USD, EUR)

CURRENCY_SYMBOLS = {USD: "$", EUR: "€"}

# Currency symbols and whitespace stripped before parsing
_STRIP_CHARS = re.compile(r"[\s$€£¥₩]")
_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")

_TIMESTAMP_FORMATS = [
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
]


def _finite(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


def parse_money(raw: Any) -> Optional[float]:
    """
    Parse a textual price into a finite number.

    Currency symbols and whitespace are dropped first. Separators are then
    resolved as follows:
      - comma and period both present: whichever comes last is the decimal
        mark, the other one groups thousands ("$1,234.56", "1.234,56 €")
      - a single comma and no period: the comma is the decimal mark ("3,50")
      - several commas and no period: commas group thousands ("1,234,567")

    Args:
        raw: Price text, a number, or None.

    Returns:
        The parsed value, or None when the input is empty or not a number.
        Never returns NaN or infinity.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float, Decimal)):
        return _finite(float(raw))

    s = _STRIP_CHARS.sub("", str(raw).strip())
    if not s:
        return None

    has_comma = "," in s
    has_period = "." in s
    if has_comma and has_period:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif has_comma:
        if s.count(",") == 1:
            s = s.replace(",", ".")
        else:
            s = s.replace(",", "")

    if not _NUMBER.match(s):
        return None
    return _finite(float(s))


def normalize_currency_code(code: Optional[str]) -> str:
    """Map a stored currency code onto USD or EUR (USD unless it says EUR)."""
    if code and code.strip().upper() == EUR:
        return EUR
    return USD


def read_display(value: Optional[str]) -> str:
    """Resolve a requested display currency; anything unknown means NATIVE."""
    if value:
        upper = value.strip().upper()
        if upper in CURRENCIES:
            return upper
    return NATIVE


def format_money(amount: float, currency: str) -> str:
    """Render an amount as a two-decimal string, e.g. "$1,234.56" or "€3.15"."""
    symbol = CURRENCY_SYMBOLS.get(currency, "")
    sign = "-" if amount < 0 else ""
    body = f"{abs(amount):,.2f}"
    if symbol:
        return f"{sign}{symbol}{body}"
    return f"{sign}{body} {currency}"


def _parse_rate(raw: Any) -> Optional[float]:
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


@dataclass(frozen=True)
class FxRates:
    """Directional USD/EUR rates; either direction may be unknown."""

    usd_to_eur: Optional[float] = None
    eur_to_usd: Optional[float] = None

    def as_dict(self) -> dict:
        return {"usdToEur": self.usd_to_eur, "eurToUsd": self.eur_to_usd}


def resolve_fx_rates(raw_usd_eur: Any = None, raw_eur_usd: Any = None) -> FxRates:
    """
    Derive both conversion directions from up to two configured rates.

    Args:
        raw_usd_eur: EUR per 1 USD (FX_USD_EUR).
        raw_eur_usd: USD per 1 EUR (FX_EUR_USD).

    Each value counts only if it parses as a finite positive number. A
    direction that is configured is used as given; a direction that is not
    configured is the reciprocal of the other one. When both are configured
    they are kept as they are, even if they disagree.
    """
    usd_eur = _parse_rate(raw_usd_eur)
    eur_usd = _parse_rate(raw_eur_usd)

    usd_to_eur = usd_eur
    if usd_to_eur is None and eur_usd is not None:
        usd_to_eur = 1 / eur_usd

    eur_to_usd = eur_usd
    if eur_to_usd is None and usd_eur is not None:
        eur_to_usd = 1 / usd_eur

    return FxRates(usd_to_eur=usd_to_eur, eur_to_usd=eur_to_usd)


class Converter:
    """Converts and formats amounts between USD and EUR with fixed rates."""

    def __init__(self, fx: FxRates):
        self.fx = fx

    def convert(self, amount: float, from_currency: str, to_currency: str) -> Optional[float]:
        """
        Convert an amount; None when there is no usable rate.

        Identical currencies short-circuit without a rate lookup.
        """
        if from_currency == to_currency:
            return amount
        if from_currency == USD and to_currency == EUR and self.fx.usd_to_eur:
            return amount * self.fx.usd_to_eur
        if from_currency == EUR and to_currency == USD and self.fx.eur_to_usd:
            return amount * self.fx.eur_to_usd
        return None

    def display_value(self, amount: Optional[float], native: str, display: str) -> Optional[float]:
        """Numeric counterpart of maybe_format: keeps the native amount when conversion is unavailable."""
        if amount is None:
            return None
        if display == NATIVE or display == native:
            return amount
        converted = self.convert(amount, native, display)
        return amount if converted is None else converted

    def maybe_format(self, raw: Any, source: str, display: str) -> Optional[str]:
        """
        Parse and format a stored price for the requested display currency.

        Returns None only when the price itself is unknown. Without a usable
        rate the price is shown in its source currency instead of being hidden.
        """
        amount = parse_money(raw)
        if amount is None:
            return None
        if display == NATIVE or display == source:
            return format_money(amount, source)
        converted = self.convert(amount, source, display)
        if converted is None:
            return format_money(amount, source)
        return format_money(converted, display)


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """
    Normalize a timestamp to an aware UTC datetime.

    Naive values are taken to be UTC. Returns None when the value cannot be parsed.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        parsed = raw
    else:
        text = str(raw).strip()
        parsed = None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in _TIMESTAMP_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(raw: Any) -> Optional[str]:
    """ISO-8601 UTC string for a timestamp, or None."""
    parsed = parse_timestamp(raw)
    return parsed.isoformat().replace("+00:00", "Z") if parsed else None


def pick_latest_timestamp(a: Optional[str], b: Optional[str]) -> Optional[str]:
    """Return whichever of two raw timestamps is later, preferring ones that parse."""
    ta = parse_timestamp(a)
    tb = parse_timestamp(b)
    if ta and tb:
        return a if ta >= tb else b
    if ta:
        return a
    if tb:
        return b
    return a or b or None
