# =============================================================================
# NutriVision - Background Analysis Dispatcher
# =============================================================================
# Runs the oracle call for each accepted upload on a bounded set of worker
# threads, detached from the HTTP request that created the processing record.
# The request handler keeps no handle to the job: the only channel between
# the two is the ResultStore, keyed by record id.
#
# Every job ends by writing a terminal record.  Oracle failures, unparsable
# output and unexpected errors all produce the deterministic fallback record,
# so a processing record is never left behind.
#
# Workers are daemon threads: an oracle call still running when shutdown's
# grace period runs out does not hold up interpreter exit.
# =============================================================================

import logging
import queue
import threading
import time
from typing import Callable, List, Optional

from server.errors import UnparsableModelOutput, UpstreamError
from server.normalizer import normalize_analysis
from server.oracle import OracleClient
from server.store import ResultStore
from shared.schemas import AnalysisResult, AnalysisStatus, UploadRecord

logger = logging.getLogger(__name__)

SHUTDOWN_SUGGESTION = "Server is shutting down; analysis was not started"

# Queue sentinel telling a worker thread to exit
_STOP = object()


class AnalysisDispatcher:
    """
    Fire-and-forget executor for per-upload oracle analysis.

    At most ``max_workers`` oracle calls run at once; further uploads wait in
    an unbounded FIFO queue.

    Args:
        store:           The ResultStore the terminal record is written to.
        oracle:          Client used for the single oracle call per upload.
        max_workers:     Upper bound on concurrent oracle calls.
        grace_seconds:   How long ``shutdown()`` waits for in-flight calls.
        normalizer:      Function turning oracle text into an AnalysisResult.
    """

    def __init__(
        self,
        store: ResultStore,
        oracle: OracleClient,
        max_workers: int = 4,
        grace_seconds: float = 2.0,
        normalizer: Callable[[str], AnalysisResult] = normalize_analysis,
    ):
        self._store = store
        self._oracle = oracle
        self._normalize = normalizer
        self._grace_seconds = grace_seconds
        self._queue: "queue.Queue" = queue.Queue()
        # Guards _pending and _closed; notified whenever a job finishes
        self._idle = threading.Condition()
        self._pending = 0
        self._closed = False
        self._workers: List[threading.Thread] = []
        for index in range(max(1, max_workers)):
            worker = threading.Thread(
                target=self._work, name=f"analysis-{index}", daemon=True
            )
            worker.start()
            self._workers.append(worker)

    def submit(self, record: UploadRecord, image_path: str) -> None:
        """
        Queue the analysis of a processing record.

        Returns immediately; the outcome is only observable through the store.
        After shutdown the record is finished with a fallback analysis
        instead, so it does not stay processing.

        Raises:
            RuntimeError: If the dispatcher has been shut down.
        """
        with self._idle:
            if self._closed:
                self._store.write(
                    record.finish(
                        AnalysisStatus.FAILED_FALLBACK,
                        AnalysisResult.fallback(SHUTDOWN_SUGGESTION),
                    )
                )
                logger.warning("Rejected record %d: dispatcher is shut down", record.id)
                raise RuntimeError("Analysis dispatcher is shut down")
            self._pending += 1
            self._queue.put((record, image_path))
        logger.info("Queued analysis for record %d (%s)", record.id, image_path)

    @property
    def in_flight(self) -> int:
        """Number of jobs queued or running."""
        with self._idle:
            return self._pending

    def _work(self) -> None:
        while True:
            job = self._queue.get()
            if job is _STOP:
                return
            try:
                self._run(*job)
            finally:
                with self._idle:
                    self._pending -= 1
                    self._idle.notify_all()

    def analyze(self, record: UploadRecord, image_path: str) -> UploadRecord:
        """
        Run the oracle and normalizer for one record and return its terminal
        successor.  Never raises for oracle or parsing failures.
        """
        started = time.time()
        try:
            raw = self._oracle.analyze(image_path, record.weight)
            analysis = self._normalize(raw)
        except UpstreamError as exc:
            logger.warning("Oracle call failed for record %d: %s", record.id, exc)
            return record.finish(AnalysisStatus.FAILED_FALLBACK, AnalysisResult.fallback())
        except UnparsableModelOutput as exc:
            logger.warning("Unusable oracle output for record %d: %s", record.id, exc)
            return record.finish(AnalysisStatus.FAILED_FALLBACK, AnalysisResult.fallback())

        logger.info(
            "Record %d analyzed as %s in %.1fs",
            record.id, analysis.food_type, time.time() - started,
        )
        return record.finish(AnalysisStatus.COMPLETE, analysis)

    def _run(self, record: UploadRecord, image_path: str) -> None:
        try:
            finished = self.analyze(record, image_path)
        except Exception:
            logger.exception("Unexpected failure analyzing record %d", record.id)
            finished = record.finish(
                AnalysisStatus.FAILED_FALLBACK, AnalysisResult.fallback()
            )
        self._store.write(finished)

    def shutdown(self, grace_seconds: Optional[float] = None) -> int:
        """
        Stop accepting uploads and wind down background work.

        Jobs still waiting in the queue are cancelled; running oracle calls
        get ``grace_seconds`` to finish and are abandoned after that.  An
        abandoned call keeps its daemon worker thread until it returns or
        the process exits.

        Returns:
            Number of jobs abandoned (cancelled or still running).
        """
        grace = self._grace_seconds if grace_seconds is None else grace_seconds
        cancelled = 0
        with self._idle:
            if not self._closed:
                self._closed = True
                while True:
                    try:
                        self._queue.get_nowait()
                    except queue.Empty:
                        break
                    cancelled += 1
                self._pending -= cancelled
                for _ in self._workers:
                    self._queue.put(_STOP)

            self._idle.wait_for(lambda: self._pending == 0, timeout=grace)
            running = self._pending

        abandoned = cancelled + running
        if abandoned:
            logger.warning(
                "Shutdown abandoned %d analysis job(s) (%d queued, %d running)",
                abandoned, cancelled, running,
            )
        else:
            logger.info("Analysis dispatcher stopped cleanly.")
        return abandoned
