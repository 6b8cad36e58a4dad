"""
Reindex orchestrator — the worker's control loop.

    poll triggers (every POLL_INTERVAL_SECONDS)
      → pick one run: full (every order dir) or incremental (new + corrupted)
      → per order: fetch from Volusion → needsReview policy → write
        order.meta.json → buffer for Meilisearch
      → flush publish buffer, finalise status, remove the trigger file

Orders are processed strictly one at a time.  A failed order is logged and
skipped; only an unexpected exception aborts the run, and even then the poll
loop keeps going.
"""

import asyncio
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from orderindex import config
from orderindex.ingest.review import decide_needs_review
from orderindex.ingest.volusion import fetch_order, make_client
from orderindex.models import OrderMeta, ReindexType, RunResult
from orderindex.orders.store import (
    list_order_numbers,
    read_order_meta,
    scan_pending,
    write_order_meta,
)
from orderindex.reindex.status import StatusReporter
from orderindex.reindex.triggers import PendingRun, TriggerGateway
from orderindex.search.publisher import SearchIndexPublisher

logger = logging.getLogger(__name__)


def next_indexed_time(previous: Optional[OrderMeta]) -> datetime:
    """Current UTC time, nudged past the previous ``lastIndexedUtc`` if needed."""
    now = datetime.now(timezone.utc)
    prev = previous.last_indexed_utc if previous is not None else None
    if prev is not None:
        if prev.tzinfo is None:
            prev = prev.replace(tzinfo=timezone.utc)
        if now <= prev:
            now = prev + timedelta(microseconds=1)
    return now


class ReindexOrchestrator:
    def __init__(
        self,
        orders_path: str | None = None,
        publisher: SearchIndexPublisher | None = None,
        http_client: httpx.AsyncClient | None = None,
        gateway: TriggerGateway | None = None,
        batch_size: int | None = None,
        poll_interval: float | None = None,
    ):
        self.orders_path = orders_path or config.ORDERS_PATH
        self.publisher = publisher or SearchIndexPublisher()
        self.http_client = http_client or make_client()
        self.gateway = gateway or TriggerGateway(self.orders_path)
        self.status = StatusReporter(self.orders_path)
        self.batch_size = batch_size or config.PUBLISH_BATCH_SIZE
        self.poll_interval = (
            config.POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        )

    # ── poll loop ─────────────────────────────────────────────────────────────

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        logger.info("Worker started at %s, watching %s", datetime.now(), self.orders_path)
        # a previous process died mid-run
        self.status.fail("Worker restarted before the run completed")
        await self.publisher.initialize()

        while not stop_event.is_set():
            try:
                await self.tick(stop_event)
            except Exception:
                logger.exception("Unexpected error in poll loop")

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Worker stopping")

    async def tick(self, stop_event: asyncio.Event | None = None) -> Optional[RunResult]:
        """Run at most one pending reindex.  Returns its result, or None."""
        run = self.gateway.poll()
        if run is None:
            return None

        logger.info(
            "%s %s reindex triggered. Starting scan of orders directory: %s",
            run.label.capitalize(), run.mode, self.orders_path,
        )
        self.gateway.mark_started(run)

        try:
            result = await self._dispatch(run, stop_event)
        except Exception as e:
            logger.exception("Error during %s reindex", run.mode)
            # trigger file stays so the same request is retried
            self.status.fail(str(e))
            return None

        if result.cancelled:
            logger.info("%s reindex cancelled; leaving trigger file in place", run.mode.capitalize())
        else:
            self.gateway.complete(run)
        return result

    async def _dispatch(self, run: PendingRun, stop_event: asyncio.Event | None) -> RunResult:
        if run.mode == "full":
            return await self.run_full(stop_event)
        return await self.run_incremental(stop_event)

    # ── run drivers ───────────────────────────────────────────────────────────

    async def run_full(self, stop_event: asyncio.Event | None = None) -> RunResult:
        order_numbers = list_order_numbers(self.orders_path)
        logger.info("Full reindex: %d order directories", len(order_numbers))
        return await self._run("full", order_numbers, stop_event)

    async def run_incremental(self, stop_event: asyncio.Event | None = None) -> RunResult:
        new_orders, corrupted_orders = scan_pending(self.orders_path)
        logger.info(
            "Incremental index: Found %d new orders and %d corrupted orders to process (Total: %d)",
            len(new_orders), len(corrupted_orders), len(new_orders) + len(corrupted_orders),
        )
        result = await self._run("incremental", new_orders + corrupted_orders, stop_event)
        result.new_orders = len(new_orders)
        result.corrupted_orders = len(corrupted_orders)
        return result

    async def _run(
        self,
        mode: ReindexType,
        order_numbers: list[str],
        stop_event: asyncio.Event | None,
    ) -> RunResult:
        result = RunResult(mode=mode, total_orders=len(order_numbers))
        self.status.begin(result.total_orders, mode)
        pending: list[OrderMeta] = []

        try:
            for order_number in order_numbers:
                if stop_event is not None and stop_event.is_set():
                    result.cancelled = True
                    break

                logger.info("Processing order: %s", order_number)
                self.status.progress(order_number, result.processed_orders)

                meta = await self.process_order(order_number)
                if meta is None:
                    continue

                result.processed_orders += 1
                pending.append(meta)
                if len(pending) >= self.batch_size:
                    await self.publisher.upsert_orders(pending)
                    pending = []
        finally:
            if pending:
                await self.publisher.upsert_orders(pending)

        self.status.finish(result.processed_orders)
        logger.info(
            "%s reindex complete. Processed %d of %d orders.",
            mode.capitalize(), result.processed_orders, result.total_orders,
        )
        return result

    # ── single order ──────────────────────────────────────────────────────────

    async def process_order(self, order_number: str) -> Optional[OrderMeta]:
        """
        Fetch, apply the review policy, and write one order's metadata.

        Returns the written record, or None if the order was skipped.  Does
        not publish.
        """
        previous = read_order_meta(order_number, self.orders_path)

        meta = await fetch_order(self.http_client, order_number)
        if meta is None:
            logger.warning("Failed to fetch metadata for order %s", order_number)
            return None

        meta.needs_review = decide_needs_review(meta, previous)
        meta.last_indexed_utc = next_indexed_time(previous.meta)

        try:
            write_order_meta(meta, self.orders_path)
        except OSError as e:
            logger.error("Failed to write metadata for order %s: %s", order_number, e)
            return None
        return meta

    async def reindex_order(self, order_number: str) -> Optional[OrderMeta]:
        """Process one order outside the poll loop and upsert it on its own."""
        if not os.path.isdir(os.path.join(self.orders_path, order_number)):
            logger.warning("No directory for order %s under %s", order_number, self.orders_path)
            return None

        meta = await self.process_order(order_number)
        if meta is not None:
            await self.publisher.upsert_order(meta)
        return meta

    async def aclose(self) -> None:
        await self.http_client.aclose()
        await self.publisher.aclose()
