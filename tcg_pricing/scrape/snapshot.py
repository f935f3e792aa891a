"""
Snapshot current prices into the append-only history tables.

Every row of each current-price table becomes one history row. Values are
re-parsed with parse_money so that history and live prices share the same
numeric semantics. All inserts of a run share one transaction: either every
table is snapshotted or nothing is written.

Run daily from cron/systemd. Requires DATABASE_URL.

    python -m tcg_pricing.scrape.snapshot
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import Table, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from tcg_pricing.config import Settings, configure_logging
from tcg_pricing.database import create_db_engine
from tcg_pricing.exceptions import ConfigurationError, SnapshotError
from tcg_pricing.pricing import EUR, USD, parse_money, parse_timestamp
from tcg_pricing.tables import (
    CARDMARKET_METRICS,
    TCGPLAYER_METRICS,
    YGO_METRICS,
    cardmarket_history,
    cardmarket_prices,
    tcgplayer_history,
    tcgplayer_prices,
    ygo_history,
    ygo_prices,
)

logger = logging.getLogger(__name__)

INSERT_BATCH_SIZE = 500


@dataclass(frozen=True)
class SnapshotTable:
    """How one current-price table maps onto its history table."""

    source: Table
    history: Table
    metrics: Tuple[str, ...]
    currency_column: Optional[str] = None
    default_currency: Optional[str] = None
    updated_at_column: Optional[str] = None


SNAPSHOT_TABLES: Tuple[SnapshotTable, ...] = (
    SnapshotTable(
        source=tcgplayer_prices,
        history=tcgplayer_history,
        metrics=TCGPLAYER_METRICS,
        currency_column="currency",
        default_currency=USD,
        updated_at_column="updated_at",
    ),
    SnapshotTable(
        source=cardmarket_prices,
        history=cardmarket_history,
        metrics=CARDMARKET_METRICS,
        default_currency=EUR,
        updated_at_column="updated_at",
    ),
    # Per-market currencies are fixed and resolved when the series is read
    SnapshotTable(
        source=ygo_prices,
        history=ygo_history,
        metrics=YGO_METRICS,
    ),
)


def _declared_currency(mapping: SnapshotTable, row: Mapping[str, Any]) -> Optional[str]:
    if mapping.currency_column:
        declared = row.get(mapping.currency_column)
        if declared and str(declared).strip():
            return str(declared).strip().upper()
    return mapping.default_currency


def build_history_row(
    mapping: SnapshotTable, row: Mapping[str, Any], captured_at: datetime
) -> Dict[str, Any]:
    """Turn one current-price row into a history record."""
    record: Dict[str, Any] = {
        "card_id": row["card_id"],
        "captured_at": captured_at,
    }
    if mapping.updated_at_column:
        record["source_updated_at"] = parse_timestamp(row.get(mapping.updated_at_column))
    if "currency" in mapping.history.c:
        record["currency"] = _declared_currency(mapping, row)
    for metric in mapping.metrics:
        record[metric] = parse_money(row.get(metric))
    return record


def snapshot_table(conn: Connection, mapping: SnapshotTable, captured_at: datetime) -> int:
    """
    Copy every row of one current-price table into its history table.

    Runs on the caller's connection so the caller owns the transaction.

    Returns:
        Number of history rows inserted.
    """
    rows = conn.execute(select(mapping.source)).mappings().all()
    records: List[Dict[str, Any]] = [
        build_history_row(mapping, row, captured_at) for row in rows
    ]

    for i in range(0, len(records), INSERT_BATCH_SIZE):
        conn.execute(mapping.history.insert(), records[i:i + INSERT_BATCH_SIZE])

    return len(records)


def run_snapshot(
    engine: Engine,
    tables: Sequence[SnapshotTable] = SNAPSHOT_TABLES,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Snapshot all configured tables in a single transaction.

    Args:
        engine: Database engine.
        tables: Table mappings to snapshot, in order.
        now: Capture timestamp. Defaults to the current UTC time; every row
             of the run gets the same value.

    Returns:
        Mapping of history table name to inserted row count.

    Raises:
        SnapshotError: If any read or insert fails. The whole run is rolled back.
    """
    captured_at = now or datetime.now(timezone.utc)
    counts: Dict[str, int] = {}
    current: Optional[str] = None

    try:
        with engine.begin() as conn:
            for mapping in tables:
                current = mapping.history.name
                counts[current] = snapshot_table(conn, mapping, captured_at)
                logger.info("Staged %d rows for %s", counts[current], current)
    except SQLAlchemyError as e:
        logger.error("Snapshot failed on %s, transaction rolled back: %s", current, e)
        raise SnapshotError(f"Snapshot failed on {current}: {e}", table=current) from e

    return counts


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = argparse.ArgumentParser(
        description="Snapshot current prices into history tables (Pokémon + YGO)."
    )
    parser.parse_args(argv)

    settings = Settings.from_env()
    configure_logging(settings)

    try:
        engine = create_db_engine(settings.require_database_url())
    except ConfigurationError as e:
        logger.error("Fatal: %s", e)
        return 1

    logger.info("Starting price snapshot...")
    try:
        counts = run_snapshot(engine)
    except SnapshotError as e:
        logger.error("Snapshot failed: %s", e)
        return 1
    finally:
        engine.dispose()

    summary = ", ".join(f"{name}={count}" for name, count in counts.items())
    logger.info("Done. Inserted: %s", summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
