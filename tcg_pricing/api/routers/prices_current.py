"""
Current Prices endpoint router.
"""
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.engine import Engine
from tcg_pricing.api.dependencies import get_converter, get_db_engine
from tcg_pricing.api.models import CardPriceSummaryResponse
from tcg_pricing.api.routers.prices_history import validate_card_path
from tcg_pricing.pricing import Converter, read_display
from tcg_pricing.summary import NO_PRICE_SOURCE, load_card_prices

router = APIRouter(prefix="/prices", tags=["prices-current"])

KNOWN_CATEGORIES = ("pokemon", "yugioh") + NO_PRICE_SOURCE


@router.get("/{category}/{card_id}", response_model=CardPriceSummaryResponse)
def get_card_prices(
    category: str,
    card_id: str,
    display: Optional[str] = Query(None, description="NATIVE, USD or EUR (default NATIVE)"),
    engine: Engine = Depends(get_db_engine),
    converter: Converter = Depends(get_converter),
):
    """
    Get the current prices for a card, grouped by market and formatted
    for the requested display currency.
    """
    category, card_id = validate_card_path(category, card_id, KNOWN_CATEGORIES)
    summary = load_card_prices(engine, category, card_id, converter, read_display(display))
    if summary is None:
        raise HTTPException(
            status_code=404,
            detail=f"No price source for category {category}",
        )

    body = summary.as_dict()
    body.update({"category": category, "entityId": card_id})
    return body
