"""
Price History endpoint router.
"""
import logging
from typing import List, Optional, Sequence, Tuple
from fastapi import APIRouter, HTTPException, Depends, Query, Response
from sqlalchemy.engine import Engine
from tcg_pricing.api.dependencies import get_converter, get_db_engine
from tcg_pricing.api.models import PriceHistoryResponse
from tcg_pricing.pricing import Converter, read_display
from tcg_pricing.series import SUPPORTED_CATEGORIES, clamp_days, load_series

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/prices", tags=["prices-history"])

# Short shared-cache lifetime, then serve stale while revalidating
CACHE_CONTROL = "public, s-maxage=60, stale-while-revalidate=300"


def split_csv(value: Optional[str]) -> Optional[List[str]]:
    """Split a comma-separated query value; None when nothing usable is left."""
    if not value:
        return None
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or None


def validate_card_path(category: str, card_id: str, supported: Sequence[str]) -> Tuple[str, str]:
    """Normalize path parameters, raising 400 for a blank id or unknown category."""
    card_id = (card_id or "").strip()
    if not card_id:
        raise HTTPException(status_code=400, detail="Missing cardId")
    category = (category or "").lower()
    if category not in supported:
        raise HTTPException(status_code=400, detail="Unsupported category")
    return category, card_id


@router.get("/history/{category}/{card_id}", response_model=PriceHistoryResponse)
def get_price_history(
    category: str,
    card_id: str,
    response: Response,
    days: Optional[str] = Query(None, description="Lookback window in days, clamped to 1..365 (default 90)"),
    display: Optional[str] = Query(None, description="NATIVE, USD or EUR (default NATIVE)"),
    currency: Optional[str] = Query(None, description="Legacy alias for display"),
    markets: Optional[str] = Query(None, description="Comma-separated markets, e.g. tcgplayer,cardmarket"),
    keys: Optional[str] = Query(None, description="Comma-separated price keys, e.g. normal,holofoil"),
    engine: Engine = Depends(get_db_engine),
    converter: Converter = Depends(get_converter),
):
    """
    Get per-market price series for one card over a lookback window.
    Every point carries the stored native value and the value converted to
    the display currency (native when no FX rate is configured).
    """
    category, card_id = validate_card_path(category, card_id, SUPPORTED_CATEGORIES)
    display_currency = read_display(display or currency)
    window = clamp_days(days)

    series = load_series(
        engine,
        category,
        card_id,
        window,
        display_currency,
        converter,
        markets=split_csv(markets),
        keys=split_csv(keys),
    )
    logger.debug(
        "Loaded %d series for %s/%s (days=%d, display=%s)",
        len(series), category, card_id, window, display_currency,
    )

    response.headers["Cache-Control"] = CACHE_CONTROL
    return {
        "category": category,
        "entityId": card_id,
        "display": display_currency,
        "fx": converter.fx.as_dict(),
        "days": window,
        "series": [s.as_dict() for s in series],
    }
