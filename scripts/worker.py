#!/usr/bin/env python3
"""
Order photo indexer — worker CLI.

Usage
-----
Run the long-lived worker (poll triggers, daily incremental, startup pass):
    python -m scripts.worker run

One-off passes, no trigger file needed:
    python -m scripts.worker full
    python -m scripts.worker incremental

Reindex a single order and upsert it on its own:
    python -m scripts.worker order 104233

Ask a running worker for a pass (writes the trigger file):
    python -m scripts.worker trigger full
    python -m scripts.worker trigger incremental

Show the status document / prepare the search index:
    python -m scripts.worker status
    python -m scripts.worker init-index
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys

# Ensure repo root is on the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from orderindex import config                                  # noqa: E402
from orderindex.reindex.orchestrator import ReindexOrchestrator  # noqa: E402
from orderindex.reindex.status import StatusReporter           # noqa: E402
from orderindex.reindex.triggers import request_run            # noqa: E402
from orderindex.search.publisher import SearchIndexPublisher   # noqa: E402

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s │ %(levelname)-7s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("worker")


def _preflight_checks() -> bool:
    ok = True
    if not config.VOLUSION_API_URL:
        logger.error("✗ VOLUSION_API_URL is not set. Add it to your .env file.")
        ok = False
    if not config.VOLUSION_API_LOGIN or not config.VOLUSION_API_PW:
        logger.error("✗ VOLUSION_API_LOGIN / VOLUSION_API_PW are not set.")
        ok = False
    if not os.path.isdir(config.ORDERS_PATH):
        logger.warning("Orders directory %s does not exist (yet)", config.ORDERS_PATH)
    return ok


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops
            pass


async def _run_worker() -> int:
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    orchestrator = ReindexOrchestrator()
    try:
        await orchestrator.run_forever(stop_event)
    finally:
        await orchestrator.aclose()
    return 0


async def _run_once(mode: str) -> int:
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    orchestrator = ReindexOrchestrator()
    try:
        await orchestrator.publisher.initialize()
        if mode == "full":
            result = await orchestrator.run_full(stop_event)
        else:
            result = await orchestrator.run_incremental(stop_event)
    finally:
        await orchestrator.aclose()

    logger.info("━" * 60)
    logger.info(
        "Done: %d processed, %d failed, %d total%s",
        result.processed_orders,
        result.total_orders - result.processed_orders,
        result.total_orders,
        " (cancelled)" if result.cancelled else "",
    )
    return 0 if result.processed_orders == result.total_orders else 1


async def _run_order(order_number: str) -> int:
    orchestrator = ReindexOrchestrator()
    try:
        meta = await orchestrator.reindex_order(order_number)
    finally:
        await orchestrator.aclose()
    if meta is None:
        logger.error("Order %s was not indexed", order_number)
        return 1
    print(json.dumps(meta.to_document(), indent=2, ensure_ascii=False))
    return 0


async def _init_index() -> int:
    publisher = SearchIndexPublisher()
    try:
        if not await publisher.check():
            logger.error("✗ Meilisearch is not reachable at %s", config.MEILISEARCH_URL)
            return 1
        logger.info("✓ Meilisearch reachable at %s", config.MEILISEARCH_URL)
        return 0 if await publisher.initialize() else 1
    finally:
        await publisher.aclose()


def main():
    parser = argparse.ArgumentParser(
        description="Index order photo folders with Volusion metadata.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the worker poll loop")
    sub.add_parser("full", help="Reindex every order directory now")
    sub.add_parser("incremental", help="Index new and corrupted orders now")

    order_p = sub.add_parser("order", help="Reindex one order")
    order_p.add_argument("order_number", type=str)

    trigger_p = sub.add_parser("trigger", help="Write a trigger file for the running worker")
    trigger_p.add_argument("mode", choices=["full", "incremental"])

    sub.add_parser("status", help="Print the reindex status document")
    sub.add_parser("init-index", help="Create/configure the Meilisearch index")

    args = parser.parse_args()

    if args.command == "status":
        status = StatusReporter().read_or_idle()
        print(json.dumps(status.model_dump(mode="json", by_alias=True), indent=2))
        sys.exit(0)

    if args.command == "trigger":
        if not request_run(args.mode):
            logger.error("A reindex is already running; not triggering another.")
            sys.exit(1)
        logger.info("%s reindex triggered", args.mode.capitalize())
        sys.exit(0)

    if args.command == "init-index":
        sys.exit(asyncio.run(_init_index()))

    if args.command == "order":
        if not args.order_number.isdigit():
            parser.error("order_number must be numeric")
        if not _preflight_checks():
            sys.exit(1)
        sys.exit(asyncio.run(_run_order(args.order_number)))

    if not _preflight_checks():
        logger.error("Pre-flight checks failed — aborting.")
        sys.exit(1)

    if args.command == "run":
        sys.exit(asyncio.run(_run_worker()))
    sys.exit(asyncio.run(_run_once(args.command)))


if __name__ == "__main__":
    main()
