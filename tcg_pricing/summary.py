"""
Current price summary for a card, grouped into per-market display blocks.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import Table, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from tcg_pricing.pricing import (
    EUR,
    NATIVE,
    USD,
    Converter,
    normalize_currency_code,
    pick_latest_timestamp,
)
from tcg_pricing.tables import cardmarket_prices, tcgplayer_prices, ygo_prices

logger = logging.getLogger(__name__)

# Categories we know about but have no price tables for yet
NO_PRICE_SOURCE = ("mtg", "funko", "sports")

TCGPLAYER_ROWS: Tuple[Tuple[str, str], ...] = (
    ("Normal", "normal"),
    ("Holofoil", "holofoil"),
    ("Reverse Holofoil", "reverse_holofoil"),
    ("1st Ed. Holofoil", "first_edition_holofoil"),
    ("1st Ed. Normal", "first_edition_normal"),
)

CARDMARKET_ROWS: Tuple[Tuple[str, str], ...] = (
    ("Average", "average_sell_price"),
    ("Low", "low_price"),
    ("Trend", "trend_price"),
    ("Suggested", "suggested_price"),
    ("RH Sell", "reverse_holo_sell"),
    ("RH Low", "reverse_holo_low"),
    ("RH Trend", "reverse_holo_trend"),
    ("Avg 1d", "avg1"),
    ("Avg 7d", "avg7"),
    ("Avg 30d", "avg30"),
    ("RH Avg 1d", "reverse_holo_avg1"),
    ("RH Avg 7d", "reverse_holo_avg7"),
    ("RH Avg 30d", "reverse_holo_avg30"),
    ("Low EX+", "low_price_ex_plus"),
    ("German Pro Low", "german_pro_low"),
)

# (market, column, native currency); eBay/Amazon/CoolStuffInc assumed USD
YGO_MARKETS: Tuple[Tuple[str, str, str], ...] = (
    ("TCGplayer", "tcgplayer_price", USD),
    ("Cardmarket", "cardmarket_price", EUR),
    ("eBay", "ebay_price", USD),
    ("Amazon", "amazon_price", USD),
    ("CoolStuffInc", "coolstuffinc_price", USD),
)


@dataclass
class MarketPriceRow:
    label: str
    value: Optional[str]


@dataclass
class MarketBlock:
    market: str
    rows: List[MarketPriceRow] = field(default_factory=list)
    updated_at: Optional[str] = None

    def has_value(self) -> bool:
        return any(r.value is not None for r in self.rows)


@dataclass
class CardPriceSummary:
    display: str
    blocks: List[MarketBlock] = field(default_factory=list)
    latest_updated_at: Optional[str] = None

    @property
    def has_any_price(self) -> bool:
        return any(b.has_value() for b in self.blocks)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "display": self.display,
            "blocks": [
                {
                    "market": b.market,
                    "updatedAt": b.updated_at,
                    "rows": [{"label": r.label, "value": r.value} for r in b.rows],
                }
                for b in self.blocks
            ],
            "latestUpdatedAt": self.latest_updated_at,
            "hasAnyPrice": self.has_any_price,
        }


def _fetch_one(engine: Engine, table: Table, card_id: str) -> Optional[Mapping[str, Any]]:
    try:
        with engine.connect() as conn:
            row = conn.execute(
                select(table).where(table.c.card_id == card_id).limit(1)
            ).mappings().first()
    except SQLAlchemyError as e:
        logger.warning("Error reading %s for card %s: %s", table.name, card_id, e)
        return None
    return dict(row) if row is not None else None


def _block(
    market: str,
    row: Mapping[str, Any],
    labels: Tuple[Tuple[str, str], ...],
    currency: str,
    display: str,
    converter: Converter,
) -> MarketBlock:
    updated = row.get("updated_at")
    return MarketBlock(
        market=market,
        updated_at=str(updated) if updated is not None else None,
        rows=[
            MarketPriceRow(label, converter.maybe_format(row.get(column), currency, display))
            for label, column in labels
        ],
    )


def _load_pokemon(engine: Engine, card_id: str, display: str, converter: Converter) -> CardPriceSummary:
    tp = _fetch_one(engine, tcgplayer_prices, card_id)
    cm = _fetch_one(engine, cardmarket_prices, card_id)

    blocks: List[MarketBlock] = []
    if tp:
        tp_currency = normalize_currency_code(tp.get("currency"))
        blocks.append(_block("TCGplayer", tp, TCGPLAYER_ROWS, tp_currency, display, converter))
    if cm:
        blocks.append(_block("Cardmarket", cm, CARDMARKET_ROWS, EUR, display, converter))

    latest = pick_latest_timestamp(
        tp.get("updated_at") if tp else None,
        cm.get("updated_at") if cm else None,
    )
    return CardPriceSummary(display=display, blocks=blocks, latest_updated_at=latest)


def _load_ygo(engine: Engine, card_id: str, display: str, converter: Converter) -> CardPriceSummary:
    row = _fetch_one(engine, ygo_prices, card_id)
    if not row:
        return CardPriceSummary(display=display)

    blocks = []
    for market, column, currency in YGO_MARKETS:
        block = MarketBlock(
            market=market,
            rows=[MarketPriceRow("Price", converter.maybe_format(row.get(column), currency, display))],
        )
        if block.has_value():
            blocks.append(block)
    return CardPriceSummary(display=display, blocks=blocks)


def load_card_prices(
    engine: Engine,
    category: str,
    card_id: str,
    converter: Converter,
    display: str = NATIVE,
) -> Optional[CardPriceSummary]:
    """
    Build the current price summary for a card.

    Returns None for categories that have no price source yet (mtg, funko,
    sports). Raises ValueError for categories that are not known at all.
    """
    category = (category or "").lower()
    if category == "pokemon":
        return _load_pokemon(engine, card_id, display, converter)
    if category == "yugioh":
        return _load_ygo(engine, card_id, display, converter)
    if category in NO_PRICE_SOURCE:
        return None
    raise ValueError(f"Unsupported category: {category}")
