"""
Per-source cursor tracking.

The tracker keeps, for every source, the highest sequence id admitted so far
and rejects anything at or below it. This is the only deduplication the
pipeline does; it is not content based.
"""

import logging
import threading
from typing import Any

logger = logging.getLogger(__name__)


class CursorTracker:
    """Watermark store deduplicating items by sequence id.

    The watermark of a source never regresses. Admission is mutually
    exclusive, so concurrent attempts for the same source cannot interleave
    between the comparison and the update.

    Attributes:
        lock: Lock guarding the watermark map. The pipeline shares it with
            the batch scheduler so both are covered by one discipline.

    Example:
        >>> tracker = CursorTracker()
        >>> tracker.admit("X", 42)
        True
        >>> tracker.admit("X", 42)
        False
        >>> tracker.watermark("X")
        42
    """

    def __init__(self, lock: "threading.Lock | None" = None):
        self.lock = lock or threading.Lock()
        self._watermarks: dict[str, int] = {}

    def admit(self, source_id: str, sequence_id: int, payload: Any = None) -> bool:
        """Admit an item if it is newer than the stored watermark.

        Args:
            source_id: Source the item came from
            sequence_id: Item sequence id within the source
            payload: Unused; accepted so callers can pass the item along

        Returns:
            True if accepted (the watermark is raised to sequence_id),
            False if rejected (no state change)
        """
        with self.lock:
            current = self._watermarks.get(source_id, 0)
            if sequence_id <= current:
                return False
            self._watermarks[source_id] = sequence_id

        logger.debug(
            f"Admitted {source_id}/{sequence_id} (previous watermark {current})",
            extra={"source_id": source_id},
        )
        return True

    def watermark(self, source_id: str) -> int:
        """Return the watermark of a source (0 if never seen)."""
        with self.lock:
            return self._watermarks.get(source_id, 0)

    def snapshot(self) -> dict[str, int]:
        """Return a copy of all watermarks."""
        with self.lock:
            return dict(self._watermarks)
