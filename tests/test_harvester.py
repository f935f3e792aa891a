"""Tests for the eBay price harvester."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from tcg_pricing.scrape import harvester
from tcg_pricing.scrape.cursor import CursorStore
from tcg_pricing.scrape.harvester import (
    Harvester,
    HarvestOptions,
    HarvestOutcome,
    IdPager,
    OutcomeStatus,
    PriceEndpointClient,
    classify_payload,
    parse_args,
)
from tcg_pricing.scrape.pool import run_bounded
from tcg_pricing.tables import ygo_cards, ygo_ebay_prices


def card_ids(n: int):
    return [f"{i:04d}" for i in range(1, n + 1)]


@pytest.fixture
def cards(engine, insert):
    ids = card_ids(120)
    insert(engine, ygo_cards, [{"card_id": card_id, "name": f"Card {card_id}"} for card_id in ids])
    return ids


@pytest.fixture
def cursor_store(tmp_path):
    return CursorStore(tmp_path / "logs" / "ebay-ygo.cursor")


class RecordingFetcher:
    """Fake fetcher that records calls and tracks requests in flight."""

    def __init__(self, fail_on=None, delay=0.0):
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.fail_on = fail_on
        self.delay = delay

    async def __call__(self, card_id):
        self.calls.append(card_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if card_id == self.fail_on:
                raise RuntimeError(f"crash on {card_id}")
            return HarvestOutcome(card_id=card_id, status=OutcomeStatus.FOUND, price=1.0)
        finally:
            self.in_flight -= 1


def options(**overrides):
    overrides.setdefault("pause_seconds", 0)
    return HarvestOptions(**overrides)


class TestOptions:
    def test_defaults(self):
        opts = parse_args([])
        assert opts.batch == 500
        assert opts.concurrency == 4
        assert opts.days_fresh == 7
        assert opts.limit == 0
        assert opts.start_after is None
        assert not opts.dry_run

    def test_clamping(self):
        opts = parse_args(["--batch=10", "--concurrency=50", "--limit=-3"])
        assert opts.batch == 50
        assert opts.concurrency == 8
        assert opts.limit == 0
        assert parse_args(["--concurrency=0"]).concurrency == 1

    def test_flags(self):
        opts = parse_args([
            "--only-missing-ebay", "--only-missing-primary", "--days=3", "--startAfter=0042",
            "--dry-run", "--verbose", "--base=http://localhost:3000",
        ])
        assert opts.freshness_filter
        assert opts.only_missing_primary
        assert opts.days_fresh == 3
        assert opts.start_after == "0042"
        assert opts.dry_run and opts.verbose
        assert opts.base_url == "http://localhost:3000"

    def test_all_disables_freshness_filter(self):
        assert not parse_args(["--all", "--only-missing-ebay"]).freshness_filter


class TestCursorStore:
    def test_missing_file(self, cursor_store):
        assert cursor_store.load() is None

    def test_save_and_load(self, cursor_store):
        cursor_store.save("0050")
        assert cursor_store.load() == "0050"
        cursor_store.save("0100")
        assert cursor_store.load() == "0100"
        assert not cursor_store.path.with_name(cursor_store.path.name + ".tmp").exists()

    def test_blank_file(self, cursor_store):
        cursor_store.path.parent.mkdir(parents=True)
        cursor_store.path.write_text("\n")
        assert cursor_store.load() is None


class TestRunBounded:
    @pytest.mark.asyncio
    async def test_order_and_bound(self):
        fetcher = RecordingFetcher(delay=0.01)
        results = await run_bounded(card_ids(20), fetcher, 3)
        assert [r.card_id for r in results] == card_ids(20)
        assert fetcher.max_in_flight == 3

    @pytest.mark.asyncio
    async def test_worker_exception_propagates(self):
        with pytest.raises(RuntimeError):
            await run_bounded(card_ids(5), RecordingFetcher(fail_on="0003"), 2)


class TestIdPager:
    def test_pages_in_ascending_order(self, engine, cards):
        pager = IdPager(engine)
        assert pager.next_page(None, 3) == ["0001", "0002", "0003"]
        assert pager.next_page("0003", 2) == ["0004", "0005"]
        assert pager.next_page("0120", 50) == []

    def test_only_missing_ebay_skips_fresh_prices(self, engine, insert, cards):
        now = datetime.now(timezone.utc)
        insert(engine, ygo_ebay_prices, [
            {"card_id": "0001", "price": 2.0, "updated_at": now - timedelta(days=1)},
            {"card_id": "0002", "price": 2.0, "updated_at": now - timedelta(days=30)},
        ])
        pager = IdPager(engine, only_missing_ebay=True, days_fresh=7)
        assert pager.next_page(None, 3) == ["0002", "0003", "0004"]
        assert IdPager(engine).next_page(None, 1) == ["0001"]

    def test_freshness_filter_without_ebay_table(self, engine, cards):
        ygo_ebay_prices.drop(engine)
        pager = IdPager(engine, only_missing_ebay=True)
        assert pager.next_page(None, 2) == ["0001", "0002"]


class TestHarvester:
    @pytest.mark.asyncio
    async def test_full_run_persists_cursor(self, engine, cards, cursor_store):
        fetcher = RecordingFetcher()
        summary = await Harvester(IdPager(engine), fetcher, cursor_store, options(batch=50)).run()

        assert fetcher.calls == cards
        assert summary.processed == 120
        assert summary.found == 120
        assert summary.batches == 3
        assert cursor_store.load() == "0120"

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, engine, insert, cursor_store):
        insert(engine, ygo_cards, [{"card_id": card_id, "name": None} for card_id in card_ids(20)])
        fetcher = RecordingFetcher(delay=0.01)
        await Harvester(IdPager(engine), fetcher, cursor_store, options(concurrency=4)).run()

        assert len(fetcher.calls) == 20
        assert fetcher.max_in_flight == 4

    @pytest.mark.asyncio
    async def test_limit(self, engine, cards, cursor_store):
        fetcher = RecordingFetcher()
        summary = await Harvester(IdPager(engine), fetcher, cursor_store, options(batch=50, limit=70)).run()

        assert summary.processed == 70
        assert fetcher.calls == cards[:70]
        assert cursor_store.load() == "0070"

    @pytest.mark.asyncio
    async def test_resumes_after_saved_cursor(self, engine, cards, cursor_store):
        cursor_store.save("0100")
        fetcher = RecordingFetcher()
        await Harvester(IdPager(engine), fetcher, cursor_store, options(batch=50)).run()
        assert fetcher.calls == cards[100:]

    @pytest.mark.asyncio
    async def test_start_after_overrides_cursor(self, engine, cards, cursor_store):
        cursor_store.save("0100")
        fetcher = RecordingFetcher()
        await Harvester(IdPager(engine), fetcher, cursor_store,
                        options(batch=50, start_after="0110")).run()
        assert fetcher.calls == cards[110:]

    @pytest.mark.asyncio
    async def test_crash_keeps_last_completed_batch(self, engine, cards, cursor_store):
        crashing = RecordingFetcher(fail_on="0075")
        with pytest.raises(RuntimeError):
            await Harvester(IdPager(engine), crashing, cursor_store, options(batch=50)).run()

        assert cursor_store.load() == "0050"

        resumed = RecordingFetcher()
        summary = await Harvester(IdPager(engine), resumed, cursor_store, options(batch=50)).run()
        assert resumed.calls[0] == "0051"
        assert summary.processed == 70
        assert cursor_store.load() == "0120"

    @pytest.mark.asyncio
    async def test_dry_run_fetches_nothing(self, engine, cards, cursor_store):
        fetcher = RecordingFetcher()
        summary = await Harvester(IdPager(engine), fetcher, cursor_store,
                                  options(batch=50, dry_run=True)).run()

        assert fetcher.calls == []
        assert summary.processed == 120
        assert summary.cursor == "0120"
        assert cursor_store.load() is None

    @pytest.mark.asyncio
    async def test_outcomes_counted(self, engine, insert, cursor_store):
        insert(engine, ygo_cards, [{"card_id": card_id, "name": None} for card_id in ("a", "b", "c")])
        results = {
            "a": HarvestOutcome("a", OutcomeStatus.FOUND, price=3.0, url="https://ebay.example/a"),
            "b": HarvestOutcome("b", OutcomeStatus.NOT_FOUND),
            "c": HarvestOutcome.failed("c", "HTTP 500"),
        }

        async def fetch(card_id):
            return results[card_id]

        summary = await Harvester(IdPager(engine), fetch, cursor_store, options()).run()
        assert (summary.found, summary.not_found, summary.errors) == (1, 1, 1)
        assert cursor_store.load() == "c"


class TestClassifyPayload:
    def test_found(self):
        outcome = classify_payload("1", {
            "ok": True,
            "item": {"price": {"value": "12.34", "currency": "USD"}, "itemWebUrl": "https://ebay.example/1"},
        })
        assert outcome.status == OutcomeStatus.FOUND
        assert outcome.price == 12.34
        assert outcome.url == "https://ebay.example/1"

    def test_not_found(self):
        assert classify_payload("1", {"ok": True, "item": None}).status == OutcomeStatus.NOT_FOUND
        assert classify_payload("1", {"ok": True}).status == OutcomeStatus.NOT_FOUND

    def test_route_error(self):
        outcome = classify_payload("1", {"ok": False, "error": "rate limited"})
        assert outcome.status == OutcomeStatus.ERROR
        assert outcome.error == "rate limited"

    def test_unexpected_body(self):
        assert classify_payload("1", ["nope"]).status == OutcomeStatus.ERROR


class TestPriceEndpointClient:
    @pytest.mark.asyncio
    async def test_request_shape(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True, "item": {"price": {"value": 5}}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            endpoint = PriceEndpointClient(client, "https://prices.example/", "s3cret")
            outcome = await endpoint.fetch("A/B 1")

        assert outcome.status == OutcomeStatus.FOUND
        (request,) = seen
        assert request.url.raw_path.decode().startswith("/api/ebay/price/A%2FB%201?")
        assert request.url.params["persist"] == "1"
        assert request.url.params["game"] == "ygo"
        assert request.headers["x-cron"] == "1"
        assert request.headers["x-cron-key"] == "s3cret"

    @pytest.mark.asyncio
    async def test_http_status_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(502, text="<html>bad gateway</html>"))
        async with httpx.AsyncClient(transport=transport) as client:
            outcome = await PriceEndpointClient(client, "https://prices.example", "k").fetch("1")
        assert outcome.status == OutcomeStatus.ERROR
        assert outcome.error == "HTTP 502"

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="not json"))
        async with httpx.AsyncClient(transport=transport) as client:
            outcome = await PriceEndpointClient(client, "https://prices.example", "k").fetch("1")
        assert outcome.status == OutcomeStatus.ERROR

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            outcome = await PriceEndpointClient(client, "https://prices.example", "k").fetch("1")
        assert outcome.status == OutcomeStatus.ERROR
        assert "connection refused" in outcome.error


class TestMain:
    def test_missing_settings_exit_1(self, monkeypatch):
        for name in ("EBAY_CLIENT_ID", "EBAY_CLIENT_SECRET", "CRON_SECRET", "DATABASE_URL"):
            monkeypatch.delenv(name, raising=False)
        assert harvester.main([]) == 1

    def test_missing_one_setting_exit_1(self, monkeypatch):
        monkeypatch.setenv("EBAY_CLIENT_ID", "id")
        monkeypatch.setenv("EBAY_CLIENT_SECRET", "secret")
        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        monkeypatch.delenv("CRON_SECRET", raising=False)
        assert harvester.main(["--dry-run"]) == 1

    def test_dry_run_end_to_end(self, monkeypatch, engine, cards, tmp_path):
        cursor_file = tmp_path / "cursor"
        monkeypatch.setenv("EBAY_CLIENT_ID", "id")
        monkeypatch.setenv("EBAY_CLIENT_SECRET", "secret")
        monkeypatch.setenv("CRON_SECRET", "cron")
        monkeypatch.setenv("DATABASE_URL", str(engine.url))
        monkeypatch.setenv("HARVEST_CURSOR_FILE", str(cursor_file))

        assert harvester.main(["--dry-run", "--limit=10"]) == 0
        assert not cursor_file.exists()
