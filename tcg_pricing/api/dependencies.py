"""
FastAPI dependencies: settings, database engine and FX converter.
"""
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.engine import Engine

from tcg_pricing.config import Settings
from tcg_pricing.database import get_engine
from tcg_pricing.pricing import Converter, resolve_fx_rates


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once per process."""
    return Settings.from_env()


def get_db_engine(settings: Settings = Depends(get_settings)) -> Engine:
    """
    Dependency function for FastAPI to get the database engine.
    Raises ConfigurationError if DATABASE_URL is not set.
    """
    return get_engine(settings.require_database_url())


def get_converter(settings: Settings = Depends(get_settings)) -> Converter:
    """Converter built from FX_USD_EUR / FX_EUR_USD."""
    return Converter(resolve_fx_rates(settings.fx_usd_eur, settings.fx_eur_usd))
