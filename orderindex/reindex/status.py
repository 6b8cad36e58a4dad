"""
Reindex status document (``reindex.status.json``).

Single writer (the worker), many readers (the admin UI polls it).  Writes are
atomic replaces; a failed status write is logged and the run carries on.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from orderindex import config
from orderindex.filestore import read_json, write_json_atomic
from orderindex.models import ReindexStatus, ReindexType

logger = logging.getLogger(__name__)

STATUS_FILENAME = "reindex.status.json"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StatusReporter:
    def __init__(self, orders_path: str | None = None):
        self.path = os.path.join(orders_path or config.ORDERS_PATH, STATUS_FILENAME)
        self._status: Optional[ReindexStatus] = None

    def read(self) -> Optional[ReindexStatus]:
        """Return the stored status, or None if absent/unreadable."""
        if not os.path.exists(self.path):
            return None
        try:
            return ReindexStatus.model_validate(read_json(self.path))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Failed to read reindex status file: %s", e)
            return None

    def read_or_idle(self) -> ReindexStatus:
        return self.read() or ReindexStatus()

    def write(self, status: ReindexStatus) -> None:
        self._status = status
        try:
            write_json_atomic(self.path, status.model_dump(mode="json", by_alias=True))
        except OSError as e:
            logger.warning("Failed to write reindex status file: %s", e)

    @property
    def current(self) -> Optional[ReindexStatus]:
        return self._status

    # ── run lifecycle ─────────────────────────────────────────────────────────

    def begin(self, total_orders: int, reindex_type: ReindexType) -> ReindexStatus:
        previous = self.read()
        status = ReindexStatus(
            is_running=True,
            start_time=_now(),
            total_orders=total_orders,
            last_completed_run=previous.last_completed_run if previous else None,
            reindex_type=reindex_type,
        )
        self.write(status)
        return status

    def progress(self, current_order: str, processed_orders: int) -> None:
        status = self._status.model_copy(update={
            "current_order": current_order,
            "processed_orders": processed_orders,
        })
        self.write(status)

    def finish(self, processed_orders: int) -> ReindexStatus:
        now = _now()
        status = self._status.model_copy(update={
            "is_running": False,
            "end_time": now,
            "processed_orders": processed_orders,
            "current_order": None,
            "error": None,
            "last_completed_run": now,
        })
        self.write(status)
        return status

    def fail(self, message: str) -> None:
        """Mark a running status as aborted.  No-op if nothing is running."""
        status = self.read()
        if status is None or not status.is_running:
            return
        self.write(status.model_copy(update={
            "is_running": False,
            "end_time": _now(),
            "error": message,
        }))
