"""
Yu-Gi-Oh! eBay price harvester.

Walks ygo_cards in ascending card_id order, one batch at a time, and asks the
pricing service to look up (and persist) an eBay listing price for each card.
The cursor (last card id of the last completed batch) is saved after every
batch so that an interrupted run resumes where it left off. Cards of an
unfinished batch may be requested again on the next run; the pricing endpoint
must tolerate repeated calls for the same id.

Usage:
    python -m tcg_pricing.scrape.harvester --all --limit=0 --batch=800 --concurrency=4
    python -m tcg_pricing.scrape.harvester --only-missing-ebay --days=3 --base=https://legendary-collectibles.com

Requires:
    EBAY_CLIENT_ID
    EBAY_CLIENT_SECRET
    CRON_SECRET
    DATABASE_URL
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence
from urllib.parse import quote

import httpx
from sqlalchemy import exists, inspect, select
from sqlalchemy.engine import Engine

from tcg_pricing.config import Settings, configure_logging
from tcg_pricing.database import create_db_engine
from tcg_pricing.pricing import parse_money
from tcg_pricing.scrape.cursor import CursorStore
from tcg_pricing.scrape.pool import run_bounded
from tcg_pricing.tables import ygo_cards, ygo_ebay_prices

logger = logging.getLogger(__name__)

DEFAULT_BATCH = 500
MIN_BATCH = 50
DEFAULT_CONCURRENCY = 4
MAX_CONCURRENCY = 8
DEFAULT_DAYS_FRESH = 7
BATCH_PAUSE_SECONDS = 0.1


class OutcomeStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass
class HarvestOutcome:
    """Result of one price lookup."""

    card_id: str
    status: OutcomeStatus
    price: Optional[float] = None
    url: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, card_id: str, message: str) -> "HarvestOutcome":
        return cls(card_id=card_id, status=OutcomeStatus.ERROR, error=message)


@dataclass
class HarvestSummary:
    processed: int = 0
    found: int = 0
    not_found: int = 0
    errors: int = 0
    batches: int = 0
    cursor: Optional[str] = None


@dataclass
class HarvestOptions:
    """Harvester flags. Out-of-range values are pulled back into range."""

    all: bool = False
    only_missing_ebay: bool = False
    only_missing_primary: bool = False  # accepted for compatibility, no effect
    days_fresh: int = DEFAULT_DAYS_FRESH
    limit: int = 0
    batch: int = DEFAULT_BATCH
    concurrency: int = DEFAULT_CONCURRENCY
    start_after: Optional[str] = None
    dry_run: bool = False
    verbose: bool = False
    base_url: Optional[str] = None
    pause_seconds: float = BATCH_PAUSE_SECONDS

    def __post_init__(self) -> None:
        self.batch = max(MIN_BATCH, self.batch)
        self.concurrency = min(MAX_CONCURRENCY, max(1, self.concurrency))
        self.limit = max(0, self.limit)
        self.days_fresh = max(0, self.days_fresh)
        self.start_after = self.start_after or None

    @property
    def freshness_filter(self) -> bool:
        """--all wins over --only-missing-ebay."""
        return self.only_missing_ebay and not self.all


def parse_args(argv: Optional[Sequence[str]] = None) -> HarvestOptions:
    """Parse CLI flags into HarvestOptions."""
    parser = argparse.ArgumentParser(description="Harvest eBay listing prices for Yu-Gi-Oh! cards.")
    parser.add_argument("--all", action="store_true", help="Ignore the freshness filter")
    parser.add_argument("--only-missing-ebay", action="store_true",
                        help="Skip cards with an eBay price newer than --days")
    parser.add_argument("--only-missing-primary", action="store_true", help=argparse.SUPPRESS)
    parser.add_argument("--days", type=int, default=DEFAULT_DAYS_FRESH,
                        help="Freshness window in days (default 7)")
    parser.add_argument("--limit", type=int, default=0, help="Max cards to process, 0 = unlimited")
    parser.add_argument("--batch", type=int, default=DEFAULT_BATCH,
                        help=f"Cards per batch (default {DEFAULT_BATCH}, min {MIN_BATCH})")
    parser.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY,
                        help=f"Requests in flight (default {DEFAULT_CONCURRENCY}, max {MAX_CONCURRENCY})")
    parser.add_argument("--startAfter", dest="start_after", default=None,
                        help="Start after this card id instead of the saved cursor")
    parser.add_argument("--dry-run", action="store_true", help="Log what would be fetched, fetch nothing")
    parser.add_argument("--verbose", action="store_true", help="Log every request URL")
    parser.add_argument("--base", dest="base_url", default=None, help="Pricing service base URL")
    args = parser.parse_args(argv)

    return HarvestOptions(
        all=args.all,
        only_missing_ebay=args.only_missing_ebay,
        only_missing_primary=args.only_missing_primary,
        days_fresh=args.days,
        limit=args.limit,
        batch=args.batch,
        concurrency=args.concurrency,
        start_after=args.start_after,
        dry_run=args.dry_run,
        verbose=args.verbose,
        base_url=args.base_url,
    )


class IdPager:
    """Pages through ygo_cards ids in ascending order."""

    def __init__(self, engine: Engine, only_missing_ebay: bool = False, days_fresh: int = DEFAULT_DAYS_FRESH):
        self.engine = engine
        self.only_missing_ebay = only_missing_ebay
        self.days_fresh = days_fresh
        self._has_ebay_table: Optional[bool] = None

    def _freshness_enabled(self) -> bool:
        if not self.only_missing_ebay:
            return False
        if self._has_ebay_table is None:
            self._has_ebay_table = inspect(self.engine).has_table(ygo_ebay_prices.name)
            if not self._has_ebay_table:
                logger.warning(
                    "Table %s not found; --only-missing-ebay has no effect",
                    ygo_ebay_prices.name,
                )
        return self._has_ebay_table

    def next_page(self, after: Optional[str], limit: int) -> List[str]:
        """Ids strictly greater than `after` (all ids when None), at most `limit`."""
        cards = ygo_cards.c
        query = select(cards.card_id)
        if after is not None:
            query = query.where(cards.card_id > after)

        if self._freshness_enabled():
            ebay = ygo_ebay_prices.c
            cutoff = datetime.now(timezone.utc) - timedelta(days=self.days_fresh)
            fresh = (
                exists()
                .where(ebay.card_id == cards.card_id)
                .where(ebay.updated_at >= cutoff)
            )
            query = query.where(~fresh)

        query = query.order_by(cards.card_id.asc()).limit(limit)
        with self.engine.connect() as conn:
            return [str(card_id) for card_id in conn.execute(query).scalars()]


def classify_payload(card_id: str, payload: Any) -> HarvestOutcome:
    """Map the pricing route's JSON body onto an outcome."""
    if not isinstance(payload, dict):
        return HarvestOutcome.failed(card_id, "unexpected response body")

    item = payload.get("item") if isinstance(payload.get("item"), dict) else {}
    price_info = item.get("price") if isinstance(item.get("price"), dict) else {}
    price = parse_money(price_info.get("value"))

    if payload.get("ok") and price is not None:
        return HarvestOutcome(
            card_id=card_id,
            status=OutcomeStatus.FOUND,
            price=price,
            url=item.get("itemWebUrl"),
        )
    if payload.get("ok"):
        return HarvestOutcome(card_id=card_id, status=OutcomeStatus.NOT_FOUND)
    return HarvestOutcome.failed(card_id, str(payload.get("error") or "unknown"))


class PriceEndpointClient:
    """Calls the per-card eBay price route of the pricing service."""

    PARAMS = {"persist": "1", "game": "ygo"}

    def __init__(self, client: httpx.AsyncClient, base_url: str, cron_secret: str, verbose: bool = False):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.headers = {"x-cron": "1", "x-cron-key": cron_secret or ""}
        self.verbose = verbose

    def url_for(self, card_id: str) -> str:
        return f"{self.base_url}/api/ebay/price/{quote(card_id, safe='')}"

    async def fetch(self, card_id: str) -> HarvestOutcome:
        """
        Look up one card. Never raises for network or response problems:
        transport errors, non-2xx statuses and undecodable bodies come back
        as error outcomes.
        """
        url = self.url_for(card_id)
        if self.verbose:
            logger.info("[ebay/ygo] GET %s", url)

        try:
            response = await self.client.get(url, params=self.PARAMS, headers=self.headers)
        except httpx.HTTPError as e:
            return HarvestOutcome.failed(card_id, f"Fetch failed: {e}")

        if not response.is_success:
            content_type = response.headers.get("content-type", "")
            sample = " ".join(response.text[:200].split())
            if "json" in content_type.lower():
                logger.warning("[ebay/ygo] %s JSON error from %s: %s", response.status_code, url, sample)
            else:
                logger.warning("[ebay/ygo] Non-JSON (status %s) from %s: %s", response.status_code, url, sample)
            return HarvestOutcome.failed(card_id, f"HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            logger.warning("[ebay/ygo] Non-JSON body (status %s) from %s", response.status_code, url)
            return HarvestOutcome.failed(card_id, "non-json-ok")

        return classify_payload(card_id, payload)


class Harvester:
    """
    Batch loop: fetch ids after the cursor, resolve the whole batch with
    bounded concurrency, then advance and persist the cursor.
    """

    def __init__(
        self,
        pager: IdPager,
        fetch: Callable[[str], Awaitable[HarvestOutcome]],
        cursor_store: CursorStore,
        options: HarvestOptions,
    ):
        self.pager = pager
        self.fetch = fetch
        self.cursor_store = cursor_store
        self.options = options

    def _record(self, outcomes: List[HarvestOutcome], summary: HarvestSummary) -> None:
        for outcome in outcomes:
            if outcome.status == OutcomeStatus.FOUND:
                summary.found += 1
                logger.info("  • %s → $%s %s", outcome.card_id, outcome.price,
                            "(url ok)" if outcome.url else "")
            elif outcome.status == OutcomeStatus.NOT_FOUND:
                summary.not_found += 1
                logger.info("  • %s → not found", outcome.card_id)
            else:
                summary.errors += 1
                logger.warning("  • %s → ERROR: %s", outcome.card_id, outcome.error)

    async def run(self) -> HarvestSummary:
        options = self.options
        summary = HarvestSummary()
        cursor = options.start_after or self.cursor_store.load()
        summary.cursor = cursor

        logger.info(
            "YGO eBay harvester starting: all=%s only_missing_ebay=%s days=%d limit=%d "
            "batch=%d concurrency=%d start_after=%s dry_run=%s",
            options.all, options.only_missing_ebay, options.days_fresh, options.limit,
            options.batch, options.concurrency, options.start_after or "(state)", options.dry_run,
        )

        while True:
            page = await asyncio.to_thread(self.pager.next_page, cursor, options.batch)
            if not page:
                break

            remaining = options.limit - summary.processed if options.limit > 0 else len(page)
            ids = page[:max(0, remaining)]
            if not ids:
                break

            logger.info(
                "Batch %d..%d (cursor from %s)",
                summary.processed + 1, summary.processed + len(ids), cursor or "START",
            )

            if options.dry_run:
                logger.info("[dry-run] would fetch %d cards: %s .. %s", len(ids), ids[0], ids[-1])
            else:
                outcomes = await run_bounded(ids, self.fetch, options.concurrency)
                self._record(outcomes, summary)

            summary.processed += len(ids)
            summary.batches += 1
            cursor = ids[-1]
            summary.cursor = cursor
            if not options.dry_run:
                self.cursor_store.save(cursor)

            logger.info(
                "Progress: processed=%d  found=%d  errors=%d",
                summary.processed, summary.found, summary.errors,
            )
            if options.limit > 0 and summary.processed >= options.limit:
                break
            if options.pause_seconds > 0:
                await asyncio.sleep(options.pause_seconds)

        logger.info(
            "Done. Processed=%d  Found=%d  NotFound=%d  Errors=%d",
            summary.processed, summary.found, summary.not_found, summary.errors,
        )
        return summary


async def harvest(settings: Settings, options: HarvestOptions) -> HarvestSummary:
    """Wire the harvester to the database, cursor file and pricing service, then run it."""
    engine = create_db_engine(settings.require_database_url())
    base_url = (options.base_url or settings.price_base_url).rstrip("/")
    timeout = httpx.Timeout(settings.http_timeout)
    limits = httpx.Limits(max_connections=options.concurrency)

    try:
        async with httpx.AsyncClient(timeout=timeout, limits=limits) as client:
            endpoint = PriceEndpointClient(client, base_url, settings.cron_secret, verbose=options.verbose)
            harvester = Harvester(
                pager=IdPager(engine, options.freshness_filter, options.days_fresh),
                fetch=endpoint.fetch,
                cursor_store=CursorStore(settings.cursor_file),
                options=options,
            )
            logger.info("Pricing service: %s", base_url)
            return await harvester.run()
    finally:
        engine.dispose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point. Returns the process exit code."""
    options = parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings)

    missing = settings.missing_harvest_settings()
    if missing:
        logger.error("Fatal: %s missing", "/".join(missing))
        return 1

    asyncio.run(harvest(settings, options))
    return 0


if __name__ == "__main__":
    sys.exit(main())
