"""
Order store — one numbered directory per order, holding ``order.meta.json``.
"""

import logging
import os
import re

from pydantic import ValidationError

from orderindex import config
from orderindex.filestore import read_json, remove_stale_temp_files, write_json_atomic
from orderindex.models import MetaReadResult, OrderMeta

logger = logging.getLogger(__name__)

META_FILENAME = "order.meta.json"

_ORDER_DIR_RE = re.compile(r"^\d+$", re.ASCII)


def meta_path(order_number: str, orders_path: str | None = None) -> str:
    orders_path = orders_path or config.ORDERS_PATH
    return os.path.join(orders_path, order_number, META_FILENAME)


def list_order_numbers(orders_path: str | None = None) -> list[str]:
    """
    Return the names of numeric order directories, in numeric order.

    Raises ``FileNotFoundError`` if the orders root is missing.
    """
    orders_path = orders_path or config.ORDERS_PATH
    if not os.path.isdir(orders_path):
        raise FileNotFoundError(f"Orders directory not found: {orders_path}")

    with os.scandir(orders_path) as entries:
        names = [
            e.name for e in entries
            if e.is_dir() and _ORDER_DIR_RE.match(e.name)
        ]
    return sorted(names, key=int)


def read_order_meta(order_number: str, orders_path: str | None = None) -> MetaReadResult:
    """Read an order's metadata; unreadable files come back as ``corrupted``."""
    path = meta_path(order_number, orders_path)
    if not os.path.exists(path):
        return MetaReadResult(state="missing")
    try:
        data = read_json(path)
        meta = OrderMeta.model_validate(data)
    except (OSError, ValueError, ValidationError) as e:
        logger.warning("Detected corrupted %s for order %s: %s", META_FILENAME, order_number, e)
        return MetaReadResult(state="corrupted")
    return MetaReadResult(state="ok", meta=meta)


def write_order_meta(meta: OrderMeta, orders_path: str | None = None) -> str:
    """Atomically (over)write the order's metadata file.  Returns its path."""
    path = meta_path(meta.order_number, orders_path)
    write_json_atomic(path, meta.to_document())
    return path


def scan_pending(orders_path: str | None = None) -> tuple[list[str], list[str]]:
    """Split order directories into the incremental work set: (new, corrupted)."""
    new_orders: list[str] = []
    corrupted_orders: list[str] = []
    for order_number in list_order_numbers(orders_path):
        if remove_stale_temp_files(meta_path(order_number, orders_path)):
            logger.info("Removed stale temp files for order %s", order_number)
        result = read_order_meta(order_number, orders_path)
        if result.is_new:
            new_orders.append(order_number)
        elif result.is_corrupted:
            corrupted_orders.append(order_number)
    return new_orders, corrupted_orders
