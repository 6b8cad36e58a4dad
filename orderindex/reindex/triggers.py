"""
Trigger gateway — decides each tick whether a run is due, and of which kind.

Signals, highest priority first:

  * ``reindex.trigger``      → full reindex (manual)
  * ``incremental.trigger``  → incremental pass (manual)
  * daily schedule hour      → incremental pass
  * worker startup           → incremental pass

The schedule is held in memory only.  A restart shortly before the target
hour can cause one extra incremental pass; processing is idempotent.
"""

import logging
import os
import stat
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from orderindex import config
from orderindex.filestore import delete_if_exists, write_text_atomic
from orderindex.models import ReindexType
from orderindex.reindex.status import StatusReporter

logger = logging.getLogger(__name__)

FULL_TRIGGER_FILENAME = "reindex.trigger"
INCREMENTAL_TRIGGER_FILENAME = "incremental.trigger"

DEFAULT_SCHEDULE_HOUR = 4


def parse_schedule_hour(cron_schedule: str | None) -> int:
    """Take the hour field from ``"M H * * *"``; fall back to 4 AM."""
    if not cron_schedule:
        return DEFAULT_SCHEDULE_HOUR
    parts = cron_schedule.split()
    if len(parts) >= 2 and parts[1].isdigit() and 0 <= int(parts[1]) <= 23:
        return int(parts[1])
    logger.warning(
        "Invalid CRON_SCHEDULE format %r. Using default %d AM.",
        cron_schedule, DEFAULT_SCHEDULE_HOUR,
    )
    return DEFAULT_SCHEDULE_HOUR


@dataclass
class PendingRun:
    mode: ReindexType
    sentinel_path: str
    manual: bool = False
    scheduled: bool = False
    startup: bool = False
    reasons: list[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        return "/".join(self.reasons) or "unknown"


class TriggerGateway:
    def __init__(
        self,
        orders_path: str | None = None,
        schedule_hour: int | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.orders_path = orders_path or config.ORDERS_PATH
        self.schedule_hour = (
            parse_schedule_hour(config.CRON_SCHEDULE) if schedule_hour is None else schedule_hour
        )
        self._clock = clock
        self.last_scheduled_run: datetime = datetime.min
        self.first_run = True

    @property
    def full_trigger_path(self) -> str:
        return os.path.join(self.orders_path, FULL_TRIGGER_FILENAME)

    @property
    def incremental_trigger_path(self) -> str:
        return os.path.join(self.orders_path, INCREMENTAL_TRIGGER_FILENAME)

    def _exists(self, path: str) -> bool:
        try:
            st = os.stat(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Could not check trigger %s: %s", path, e)
            return False
        return stat.S_ISREG(st.st_mode)

    def scheduled_due(self, now: datetime | None = None) -> bool:
        now = now or self._clock()
        today_target = now.replace(hour=self.schedule_hour, minute=0, second=0, microsecond=0)
        return now >= today_target and self.last_scheduled_run < today_target

    def poll(self) -> Optional[PendingRun]:
        """Return the single run to execute this tick, or None."""
        if self._exists(self.full_trigger_path):
            return PendingRun(
                mode="full", sentinel_path=self.full_trigger_path,
                manual=True, reasons=["manual"],
            )

        run = PendingRun(mode="incremental", sentinel_path=self.incremental_trigger_path)
        if self.first_run:
            run.startup = True
            run.reasons.append("startup")
        if self._exists(self.incremental_trigger_path):
            run.manual = True
            run.reasons.append("manual")
        if self.scheduled_due():
            run.scheduled = True
            run.reasons.append("scheduled")
        return run if run.reasons else None

    def mark_started(self, run: PendingRun) -> None:
        """Consume the startup/schedule signals so a failing run is not retried every tick."""
        if run.mode != "incremental":
            return
        if run.scheduled:
            self.last_scheduled_run = self._clock()
        if run.startup:
            self.first_run = False

    def complete(self, run: PendingRun) -> None:
        """Remove the sentinel for a finished run; already-gone files are fine."""
        if delete_if_exists(run.sentinel_path):
            logger.info("Removed trigger file %s", run.sentinel_path)


def request_run(mode: ReindexType, orders_path: str | None = None) -> bool:
    """
    Drop the sentinel file for *mode*.

    Returns False without writing if the status file shows a run in progress.
    """
    orders_path = orders_path or config.ORDERS_PATH
    status = StatusReporter(orders_path).read()
    if status is not None and status.is_running:
        logger.info("Reindex already running; %s trigger not written", mode)
        return False

    filename = FULL_TRIGGER_FILENAME if mode == "full" else INCREMENTAL_TRIGGER_FILENAME
    write_text_atomic(
        os.path.join(orders_path, filename),
        datetime.now(timezone.utc).isoformat(),
    )
    return True
