from __future__ import annotations

"""Tests for the vkwatch background worker entry points."""

import signal
from unittest.mock import MagicMock, patch

from vkwatch.services.recalculator import RecalculationSummary
from vkwatch.services.watchlist import RefreshSummary
from vkwatch.worker.main import (
    create_poller,
    main,
    recalculate_job,
    recalculate_main,
    watchlist_pass_job,
)
from vkwatch.worker.poller import WatchlistPoller


class TestJobWrappers:
    """Each job opens and closes its own DB session."""

    @patch("vkwatch.worker.main.WatchlistService")
    @patch("vkwatch.worker.main.SessionLocal")
    def test_watchlist_job_opens_and_closes_session(self, mock_session_cls, mock_service_cls):
        session = mock_session_cls.return_value
        mock_service_cls.return_value.refresh_active_authors.return_value = RefreshSummary(2, 5, 0)

        summary = watchlist_pass_job()

        mock_service_cls.assert_called_once_with(session)
        assert summary == RefreshSummary(2, 5, 0)
        session.close.assert_called_once()

    @patch("vkwatch.worker.main.WatchlistService")
    @patch("vkwatch.worker.main.SessionLocal")
    def test_watchlist_job_closes_session_on_error(self, mock_session_cls, mock_service_cls):
        session = mock_session_cls.return_value
        mock_service_cls.return_value.refresh_active_authors.side_effect = RuntimeError("boom")

        assert watchlist_pass_job() is None
        session.close.assert_called_once()

    @patch("vkwatch.worker.main.BulkRecalculator")
    @patch("vkwatch.worker.main.SessionLocal")
    def test_recalculate_job(self, mock_session_cls, mock_recalculator_cls):
        session = mock_session_cls.return_value
        mock_recalculator_cls.return_value.recalculate_all.return_value = RecalculationSummary(3, 1, 1, 0)

        summary = recalculate_job(batch_size=50)

        mock_recalculator_cls.assert_called_once_with(session, batch_size=50)
        assert summary.processed == 3
        session.close.assert_called_once()

    @patch("vkwatch.worker.main.recalculate_job", return_value=RecalculationSummary(1, 0, 0, 0))
    def test_recalculate_main(self, mock_job):
        recalculate_main()
        mock_job.assert_called_once_with()


class TestPollerFactory:
    def test_create_poller_runs_watchlist_job(self):
        poller = create_poller()
        assert isinstance(poller, WatchlistPoller)
        assert poller.run_pass is watchlist_pass_job
        assert not poller.is_active

    @patch("vkwatch.worker.main.WATCHLIST_POLL_INTERVAL_SECONDS", 15.0)
    def test_interval_configurable(self):
        assert create_poller().interval_seconds == 15.0


class TestMain:
    @patch("vkwatch.worker.main.signal.signal")
    @patch("vkwatch.worker.main.threading.Event")
    @patch("vkwatch.worker.main.create_poller")
    def test_runs_poller_until_stopped(self, mock_create_poller, mock_event_cls, mock_signal):
        poller = mock_create_poller.return_value

        main()

        poller.activate.assert_called_once()
        mock_event_cls.return_value.wait.assert_called_once()
        poller.deactivate.assert_called_once()
        registered = {c.args[0] for c in mock_signal.call_args_list}
        assert registered == {signal.SIGTERM, signal.SIGINT}

    @patch("vkwatch.worker.main.signal.signal")
    @patch("vkwatch.worker.main.threading.Event")
    @patch("vkwatch.worker.main.create_poller")
    def test_signal_handler_sets_stop_event(self, mock_create_poller, mock_event_cls, mock_signal):
        main()

        handler = mock_signal.call_args_list[0].args[1]
        handler(signal.SIGTERM, None)
        mock_event_cls.return_value.set.assert_called_once()

    @patch("vkwatch.worker.main.signal.signal")
    @patch("vkwatch.worker.main.threading.Event")
    @patch("vkwatch.worker.main.create_poller")
    def test_deactivates_even_if_wait_is_interrupted(
        self, mock_create_poller, mock_event_cls, mock_signal
    ):
        mock_event_cls.return_value.wait.side_effect = KeyboardInterrupt
        poller = mock_create_poller.return_value

        try:
            main()
        except KeyboardInterrupt:
            pass

        poller.deactivate.assert_called_once()
