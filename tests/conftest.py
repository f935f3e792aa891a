"""Shared test fixtures for tcg_pricing."""

from typing import Any, Dict, Iterable

import pytest
from sqlalchemy import Table
from sqlalchemy.engine import Engine

from tcg_pricing.database import create_db_engine, init_db
from tcg_pricing.pricing import Converter, resolve_fx_rates


@pytest.fixture
def engine(tmp_path) -> Engine:
    """Engine on a temporary SQLite database with every table created."""
    db_file = tmp_path / "test_prices.db"
    engine = create_db_engine(f"sqlite:///{db_file}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def converter() -> Converter:
    """Converter with USD→EUR 0.9 and the reciprocal EUR→USD."""
    return Converter(resolve_fx_rates("0.9", None))


@pytest.fixture
def no_fx_converter() -> Converter:
    return Converter(resolve_fx_rates(None, None))


def insert_rows(engine: Engine, table: Table, rows: Iterable[Dict[str, Any]]) -> None:
    """Insert plain dict rows into a table."""
    rows = list(rows)
    with engine.begin() as conn:
        conn.execute(table.insert(), rows)


@pytest.fixture
def insert():
    return insert_rows
