from __future__ import annotations

"""vkwatch background worker entry points.

``python -m vkwatch.worker.main`` runs the watchlist poller as a standalone
process. ``vkwatch-recalculate`` runs one bulk keyword-match recalculation
and exits.
"""

import logging
import signal
import threading
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from vkwatch.database import SessionLocal
from vkwatch.services.recalculator import BulkRecalculator, RecalculationSummary
from vkwatch.services.watchlist import RefreshSummary, WatchlistService
from vkwatch.worker.poller import WATCHLIST_POLL_INTERVAL_SECONDS, WatchlistPoller

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Job wrappers (each opens and closes its own DB session)
# ---------------------------------------------------------------------------


def watchlist_pass_job() -> Optional[RefreshSummary]:
    """Refresh every active watchlist author once."""
    session = SessionLocal()
    try:
        summary = WatchlistService(session).refresh_active_authors()
        logger.info("Watchlist job finished: %s", summary.as_dict())
        return summary
    except Exception:
        logger.exception("Watchlist job failed")
        return None
    finally:
        session.close()


def recalculate_job(batch_size: Optional[int] = None) -> RecalculationSummary:
    """Recompute keyword matches for every stored comment."""
    session = SessionLocal()
    try:
        return BulkRecalculator(session, batch_size=batch_size).recalculate_all()
    finally:
        session.close()


def create_poller() -> WatchlistPoller:
    return WatchlistPoller(watchlist_pass_job, interval_seconds=WATCHLIST_POLL_INTERVAL_SECONDS)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def main() -> None:
    """Run the watchlist poller until SIGTERM or SIGINT."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    logger.info(
        "Starting vkwatch worker: watchlist pass every %s second(s)",
        WATCHLIST_POLL_INTERVAL_SECONDS,
    )

    poller = create_poller()
    stop = threading.Event()

    def _shutdown(signum: int, frame: Optional[object]) -> None:
        logger.info("Received signal %s, stopping poller", signum)
        stop.set()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    poller.activate()
    try:
        stop.wait()
    finally:
        poller.deactivate()


def recalculate_main() -> None:
    """Console entry point for an operator-triggered recalculation."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    summary = recalculate_job()
    logger.info(
        "Processed %d comments: %d updated, %d matches created, %d deleted",
        summary.processed,
        summary.updated,
        summary.created,
        summary.deleted,
    )


if __name__ == "__main__":
    main()
