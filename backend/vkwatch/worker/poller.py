"""Fixed-interval driver for watchlist refresh passes.

``WatchlistPoller`` wraps an APScheduler interval job. Activation fires a
pass immediately and then once per interval; deactivation removes the job
but lets a pass already in flight run to completion. Passes never overlap:
a tick that fires while the previous pass is still running is skipped.
"""

from __future__ import annotations

import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from apscheduler.job import Job
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

logger = logging.getLogger(__name__)

WATCHLIST_POLL_INTERVAL_SECONDS: float = float(os.getenv("WATCHLIST_POLL_INTERVAL_SECONDS", "60"))
JOB_ID_PREFIX = "watchlist_refresh"


class WatchlistPoller:
    """Idle/Ticking state machine around a single scheduled job."""

    def __init__(
        self,
        run_pass: Callable[[], Any],
        interval_seconds: float = WATCHLIST_POLL_INTERVAL_SECONDS,
        scheduler: Optional[BaseScheduler] = None,
        job_id: Optional[str] = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.run_pass = run_pass
        self.interval_seconds = interval_seconds
        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        # Unique per instance: several pollers may share one scheduler
        self.job_id = job_id or f"{JOB_ID_PREFIX}_{uuid.uuid4().hex}"
        self._job: Optional[Job] = None
        self._pass_lock = threading.Lock()
        self._state_lock = threading.Lock()

    @property
    def is_active(self) -> bool:
        return self._job is not None

    @property
    def is_ticking(self) -> bool:
        return self._pass_lock.locked()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def activate(self) -> None:
        """Schedule passes, the first one immediately. No-op when active."""
        with self._state_lock:
            if self._job is not None:
                return

            if self._scheduler is None:
                self._scheduler = BackgroundScheduler()

            self._job = self._scheduler.add_job(
                self._tick,
                "interval",
                seconds=self.interval_seconds,
                id=self.job_id,
                name="Watchlist refresh pass",
                next_run_time=datetime.now(timezone.utc),
                max_instances=1,
                coalesce=True,
            )

            if not self._scheduler.running:
                self._scheduler.start()

            logger.info("Watchlist poller activated: every %s second(s)", self.interval_seconds)

    def deactivate(self) -> None:
        """Stop scheduling passes. A pass in flight is not interrupted."""
        with self._state_lock:
            if self._job is None:
                return

            job, self._job = self._job, None
            try:
                job.remove()
            except LookupError:
                logger.debug("Watchlist job already removed")

            if self._owns_scheduler and self._scheduler is not None and self._scheduler.running:
                self._scheduler.shutdown(wait=False)
                self._scheduler = None

            logger.info("Watchlist poller deactivated")

    def tick(self) -> bool:
        """Run one pass now unless one is already running.

        Returns True if a pass was started.
        """
        return self._tick()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _tick(self) -> bool:
        if not self._pass_lock.acquire(blocking=False):
            logger.info("Previous watchlist pass still running, skipping tick")
            return False

        try:
            self.run_pass()
        except Exception:
            logger.exception("Watchlist pass failed")
        finally:
            self._pass_lock.release()
        return True
