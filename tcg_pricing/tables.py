"""
Table definitions for current prices, price history and the harvester id space.

Current-price tables hold the text written by the feed importers. History
tables hold parsed numbers and are append-only.
"""

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
)

metadata = MetaData()


def _money() -> Numeric:
    return Numeric(asdecimal=False)


TCGPLAYER_METRICS = (
    "normal",
    "holofoil",
    "reverse_holofoil",
    "first_edition_holofoil",
    "first_edition_normal",
)

CARDMARKET_METRICS = (
    "average_sell_price",
    "low_price",
    "trend_price",
    "german_pro_low",
    "suggested_price",
    "reverse_holo_sell",
    "reverse_holo_low",
    "reverse_holo_trend",
    "low_price_ex_plus",
    "avg1",
    "avg7",
    "avg30",
    "reverse_holo_avg1",
    "reverse_holo_avg7",
    "reverse_holo_avg30",
)

YGO_METRICS = (
    "tcgplayer_price",
    "cardmarket_price",
    "ebay_price",
    "amazon_price",
    "coolstuffinc_price",
)


# ---- Pokémon: TCGplayer ----

tcgplayer_prices = Table(
    "tcg_card_prices_tcgplayer",
    metadata,
    Column("card_id", String, primary_key=True),
    Column("url", Text),
    Column("updated_at", String),
    Column("currency", String(8)),
    *[Column(name, String) for name in TCGPLAYER_METRICS],
)

tcgplayer_history = Table(
    "tcg_card_prices_tcgplayer_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("card_id", String, nullable=False, index=True),
    Column("captured_at", DateTime(timezone=True), nullable=False, index=True),
    Column("source_updated_at", DateTime(timezone=True)),
    Column("currency", String(8)),
    *[Column(name, _money()) for name in TCGPLAYER_METRICS],
)

# ---- Pokémon: Cardmarket (always EUR) ----

cardmarket_prices = Table(
    "tcg_card_prices_cardmarket",
    metadata,
    Column("card_id", String, primary_key=True),
    Column("url", Text),
    Column("updated_at", String),
    *[Column(name, String) for name in CARDMARKET_METRICS],
)

cardmarket_history = Table(
    "tcg_card_prices_cardmarket_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("card_id", String, nullable=False, index=True),
    Column("captured_at", DateTime(timezone=True), nullable=False, index=True),
    Column("source_updated_at", DateTime(timezone=True)),
    Column("currency", String(8)),
    *[Column(name, _money()) for name in CARDMARKET_METRICS],
)

# ---- Yu-Gi-Oh!: one row per card, one column per market ----

ygo_prices = Table(
    "ygo_card_prices",
    metadata,
    Column("card_id", String, primary_key=True),
    *[Column(name, String) for name in YGO_METRICS],
)

ygo_history = Table(
    "ygo_card_prices_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("card_id", String, nullable=False, index=True),
    Column("captured_at", DateTime(timezone=True), nullable=False, index=True),
    *[Column(name, _money()) for name in YGO_METRICS],
)

# ---- Harvester ----

ygo_cards = Table(
    "ygo_cards",
    metadata,
    Column("card_id", String, primary_key=True),
    Column("name", Text),
)

# Written by the eBay price endpoint; read here only for freshness checks
ygo_ebay_prices = Table(
    "ygo_card_prices_ebay",
    metadata,
    Column("card_id", String, primary_key=True),
    Column("price", _money()),
    Column("currency", String(8)),
    Column("url", Text),
    Column("updated_at", DateTime(timezone=True)),
)
