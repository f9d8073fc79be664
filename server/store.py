# =============================================================================
# NutriVision - Single-Slot Result Store
# =============================================================================
# Holds the most recent UploadRecord.  Records are immutable, so publishing a
# new one is a single reference assignment: readers observe either the old
# record or the new one, never a mixture.  Last write wins.
# =============================================================================

import itertools
import logging
import time
from typing import Optional

from shared.schemas import UploadRecord

logger = logging.getLogger(__name__)


class ResultStore:
    """
    In-memory slot holding zero or one UploadRecord.

    Starts empty; ``read()`` returns None until the first ``write()``.
    Nothing is persisted across restarts.
    """

    def __init__(self):
        self._latest: Optional[UploadRecord] = None

    def write(self, record: UploadRecord) -> None:
        """Replace the slot's contents with ``record``."""
        self._latest = record
        logger.debug("Slot now holds record %d (%s)", record.id, record.status.value)

    def read(self) -> Optional[UploadRecord]:
        """Return the latest record, or None if nothing was uploaded yet."""
        return self._latest


class RecordIdAllocator:
    """
    Monotonic record identifiers.

    Seeded from wall-clock milliseconds so ids of one run do not repeat the
    ids a viewer saw from a previous run; increments by one per record, so
    concurrent uploads in the same millisecond never collide.
    """

    def __init__(self, start: Optional[int] = None):
        if start is None:
            start = int(time.time() * 1000)
        self._counter = itertools.count(start)

    def next_id(self) -> int:
        # next() on itertools.count is atomic under the GIL
        return next(self._counter)
