# =============================================================================
# NutriVision - Latest Analysis Poller
# =============================================================================
# Provides the AnalysisPoller class that periodically fetches the server's
# latest record and renders it whenever its (id, timestamp) pair changes.
# Fetch failures are shown as a connection error and polling simply carries
# on at the next tick: no backoff, no retry limit.
# =============================================================================

import logging
import threading
import time
from datetime import datetime
from typing import Optional, Tuple

import requests

from shared.schemas import AnalysisEnvelope, UploadRecord
from viewer.display import STATUS_CONNECTION_ERROR, STATUS_WAITING, ConsoleRenderer

logger = logging.getLogger(__name__)


class AnalysisPoller:
    """
    Polls ``/api/latest-analysis`` and renders state transitions.

    Polls in a background daemon thread between ``start()`` and ``stop()``;
    ``check_once()`` runs a single tick synchronously.

    Args:
        server_url:    Base URL of the server (e.g., "http://127.0.0.1:3000").
        renderer:      Output sink for statuses and records.
        interval:      Seconds between polls.
        timeout:       Per-request timeout in seconds.
        session:       Optional pre-configured requests.Session.
    """

    def __init__(
        self,
        server_url: str,
        renderer: ConsoleRenderer,
        interval: float = 2.0,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self._url = f"{server_url.rstrip('/')}/api/latest-analysis"
        self._renderer = renderer
        self._interval = interval
        self._timeout = timeout
        self._session = session or requests.Session()
        self._last_seen: Optional[Tuple[int, datetime]] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def last_seen(self) -> Optional[Tuple[int, datetime]]:
        """The (id, timestamp) pair of the last rendered record."""
        return self._last_seen

    def fetch_latest(self) -> AnalysisEnvelope:
        """
        Fetch the server's latest-analysis envelope.

        Raises:
            requests.exceptions.RequestException: Network or HTTP error.
            ValueError: The body is not a valid envelope.
        """
        response = self._session.get(
            self._url,
            params={"t": int(time.time() * 1000)},
            timeout=self._timeout,
        )
        response.raise_for_status()
        return AnalysisEnvelope.model_validate(response.json())

    def check_once(self) -> bool:
        """
        Run one polling tick.

        Returns:
            True if a new record was rendered, False otherwise.
        """
        try:
            envelope = self.fetch_latest()
        except (requests.exceptions.RequestException, ValueError) as exc:
            logger.warning("Polling %s failed: %s", self._url, exc)
            self._renderer.show_status(
                STATUS_CONNECTION_ERROR,
                "Last error: " + datetime.now().strftime("%H:%M:%S"),
            )
            return False

        if not envelope.success or envelope.data is None:
            logger.debug("No analysis data available")
            self._renderer.show_status(STATUS_WAITING, "No recent analysis")
            return False

        return self.observe(envelope.data)

    def observe(self, record: UploadRecord) -> bool:
        """Render ``record`` if its (id, timestamp) pair is new."""
        key = (record.id, record.timestamp)
        if key == self._last_seen:
            logger.debug("Record %d unchanged, no update needed", record.id)
            return False

        self._last_seen = key
        if record.status.is_terminal:
            self._renderer.show_result(record)
        else:
            self._renderer.show_processing(record)
        return True

    def start(self) -> None:
        """Start polling in a background daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Polling thread is already running.")
            return

        self._stop_event.clear()

        def _poll_loop():
            logger.info("Polling %s every %.1fs", self._url, self._interval)
            while not self._stop_event.is_set():
                try:
                    self.check_once()
                except Exception:
                    logger.exception("Error while rendering poll result")
                self._stop_event.wait(timeout=self._interval)
            logger.info("Polling loop stopped.")

        self._thread = threading.Thread(target=_poll_loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Signal the polling loop to stop and wait for the thread to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
