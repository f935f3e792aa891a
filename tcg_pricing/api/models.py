"""
Pydantic models for responses.
"""
from typing import List, Optional
from pydantic import BaseModel, Field


class FxRatesModel(BaseModel):
    """Directional FX rates in effect for a response."""
    usdToEur: Optional[float] = None
    eurToUsd: Optional[float] = None


class SeriesPointModel(BaseModel):
    t: str = Field(..., description="Capture time (ISO 8601, UTC)")
    native: Optional[float] = None
    display: Optional[float] = None


class SeriesModel(BaseModel):
    id: str = Field(..., description="Market and key, e.g. 'TCGplayer:holofoil'")
    market: str
    key: str
    nativeCurrency: str
    points: List[SeriesPointModel]


class PriceHistoryResponse(BaseModel):
    """Price history series for one card."""
    category: str
    entityId: str
    display: str
    fx: FxRatesModel
    days: int
    series: List[SeriesModel]


class MarketPriceRowModel(BaseModel):
    label: str
    value: Optional[str] = None


class MarketBlockModel(BaseModel):
    market: str
    updatedAt: Optional[str] = None
    rows: List[MarketPriceRowModel]


class CardPriceSummaryResponse(BaseModel):
    """Current prices for one card, formatted for display."""
    category: str
    entityId: str
    display: str
    blocks: List[MarketBlockModel]
    latestUpdatedAt: Optional[str] = None
    hasAnyPrice: bool = False
