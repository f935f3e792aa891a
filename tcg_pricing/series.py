"""
Price history series for a single card.

Each category stores history in its own shape (Pokémon: one wide table per
market; Yu-Gi-Oh!: one table with a column per market). Both are mapped to
the same output: one Series per (market, key), each point converted to the
requested display currency on read.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import Table, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from tcg_pricing.pricing import EUR, USD, Converter, normalize_currency_code, to_iso
from tcg_pricing.tables import cardmarket_history, tcgplayer_history, ygo_history

logger = logging.getLogger(__name__)

DEFAULT_DAYS = 90
MIN_DAYS = 1
MAX_DAYS = 365

POKEMON = "pokemon"
YUGIOH = "yugioh"


def clamp_days(value: Any, default: int = DEFAULT_DAYS) -> int:
    """
    Clamp a lookback window to [1, 365] days.

    Missing, non-numeric and non-finite values fall back to the default.
    Fractional values are floored.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        n = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(n):
        return default
    return int(min(MAX_DAYS, max(MIN_DAYS, math.floor(n))))


@dataclass(frozen=True)
class SeriesDefinition:
    """One history column exposed as a (market, key) series."""

    market: str
    key: str
    currency: str
    label: Optional[str] = None

    @property
    def id(self) -> str:
        return f"{self.market}:{self.label or self.key}"


@dataclass(frozen=True)
class HistorySource:
    """A history table and the series it feeds."""

    table: Table
    definitions: Tuple[SeriesDefinition, ...]
    # When set, the first row's value overrides each definition's currency
    currency_column: Optional[str] = None


@dataclass
class SeriesPoint:
    t: str
    native: Optional[float]
    display: Optional[float]

    def as_dict(self) -> Dict[str, Any]:
        return {"t": self.t, "native": self.native, "display": self.display}


@dataclass
class Series:
    id: str
    market: str
    key: str
    native_currency: str
    points: List[SeriesPoint] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "market": self.market,
            "key": self.key,
            "nativeCurrency": self.native_currency,
            "points": [p.as_dict() for p in self.points],
        }


CATEGORY_SOURCES: Dict[str, Tuple[HistorySource, ...]] = {
    POKEMON: (
        HistorySource(
            table=tcgplayer_history,
            definitions=tuple(
                SeriesDefinition("TCGplayer", key, USD)
                for key in (
                    "normal",
                    "holofoil",
                    "reverse_holofoil",
                    "first_edition_holofoil",
                    "first_edition_normal",
                )
            ),
            currency_column="currency",
        ),
        HistorySource(
            table=cardmarket_history,
            definitions=tuple(
                SeriesDefinition("Cardmarket", key, EUR)
                for key in ("trend_price", "average_sell_price", "low_price", "suggested_price")
            ),
        ),
    ),
    YUGIOH: (
        HistorySource(
            table=ygo_history,
            definitions=(
                SeriesDefinition("TCGplayer", "tcgplayer_price", USD, label="price"),
                SeriesDefinition("Cardmarket", "cardmarket_price", EUR, label="price"),
                SeriesDefinition("eBay", "ebay_price", USD, label="price"),
                SeriesDefinition("Amazon", "amazon_price", USD, label="price"),
                SeriesDefinition("CoolStuffInc", "coolstuffinc_price", USD, label="price"),
            ),
        ),
    ),
}

SUPPORTED_CATEGORIES = tuple(CATEGORY_SOURCES)


def _lower_set(values: Optional[Iterable[str]]) -> Optional[Set[str]]:
    if values is None:
        return None
    cleaned = {v.strip().lower() for v in values if v and v.strip()}
    return cleaned or None


def _num(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def _fetch_history(
    engine: Engine,
    source: HistorySource,
    card_id: str,
    since: datetime,
    definitions: List[SeriesDefinition],
) -> List[Dict[str, Any]]:
    table = source.table
    columns = [table.c.captured_at]
    if source.currency_column:
        columns.append(table.c[source.currency_column])
    columns.extend(table.c[d.key] for d in definitions)

    query = (
        select(*columns)
        .where(table.c.card_id == card_id)
        .where(table.c.captured_at >= since)
        .order_by(table.c.captured_at.asc())
    )
    try:
        with engine.connect() as conn:
            return [dict(row) for row in conn.execute(query).mappings()]
    except SQLAlchemyError as e:
        logger.warning("Error reading %s for card %s: %s", table.name, card_id, e)
        return []


def load_series(
    engine: Engine,
    category: str,
    card_id: str,
    days: int,
    display: str,
    converter: Converter,
    markets: Optional[Iterable[str]] = None,
    keys: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> List[Series]:
    """
    Load per-market, per-key price series for one card.

    Args:
        engine: Database engine.
        category: "pokemon" or "yugioh".
        card_id: Card identifier.
        days: Lookback window in days, clamped to 1..365 (default 90).
        display: NATIVE, USD or EUR.
        converter: Converter holding the configured FX rates.
        markets: Optional case-insensitive market allow-list (e.g. "tcgplayer").
        keys: Optional case-insensitive key allow-list (e.g. "holofoil").
        now: Reference time for the lookback window. Defaults to UTC now.

    Returns:
        One Series per selected (market, key), points ordered by capture time.
        A series with no points, or with only null points, is still returned.

    Raises:
        ValueError: If the category has no history tables.
    """
    sources = CATEGORY_SOURCES.get((category or "").lower())
    if sources is None:
        raise ValueError(f"Unsupported category: {category}")

    markets_filter = _lower_set(markets)
    keys_filter = _lower_set(keys)
    days = clamp_days(days)
    since = (now or datetime.now(timezone.utc)) - timedelta(days=days)

    series: List[Series] = []
    for source in sources:
        wanted = [
            d for d in source.definitions
            if (markets_filter is None or d.market.lower() in markets_filter)
            and (keys_filter is None or d.key.lower() in keys_filter)
        ]
        if not wanted:
            continue

        rows = _fetch_history(engine, source, card_id, since, wanted)

        native_override = None
        if source.currency_column:
            first = rows[0].get(source.currency_column) if rows else None
            native_override = normalize_currency_code(first)

        for definition in wanted:
            currency = native_override or definition.currency
            points = []
            for row in rows:
                native = _num(row.get(definition.key))
                shown = converter.display_value(native, currency, display)
                points.append(
                    SeriesPoint(
                        t=to_iso(row["captured_at"]),
                        native=native,
                        display=round(shown, 2) if shown is not None else None,
                    )
                )
            series.append(
                Series(
                    id=definition.id,
                    market=definition.market,
                    key=definition.key,
                    native_currency=currency,
                    points=points,
                )
            )

    return series
