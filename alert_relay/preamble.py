"""
Classifier instruction preamble.

The preamble is shared by reference with the classifier, which reads the
current text on every dispatch. Replacing it therefore never touches the
classifier's conversation history.
"""

import asyncio
import logging
import threading
from collections.abc import Callable
from pathlib import Path

from watchfiles import Change, awatch

logger = logging.getLogger(__name__)


class Preamble:
    """Holder for the current preamble text with update notifications."""

    def __init__(self, text: str = ""):
        self._text = text
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[str], None]] = []

    @property
    def text(self) -> str:
        with self._lock:
            return self._text

    def update(self, text: str) -> bool:
        """Replace the preamble text.

        Args:
            text: New preamble

        Returns:
            True if the text changed and subscribers were notified
        """
        with self._lock:
            if text == self._text:
                return False
            self._text = text
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(text)
            except Exception as e:
                logger.error(f"Preamble subscriber failed: {e}", exc_info=True)
        return True

    def subscribe(self, callback: Callable[[str], None]) -> None:
        """Register a callback invoked with the new text after each update."""
        with self._lock:
            self._subscribers.append(callback)


def load_preamble(path: str | Path) -> Preamble:
    """Read the preamble file.

    Raises:
        OSError: If the file cannot be read (fatal at startup)
    """
    return Preamble(Path(path).read_text(encoding="utf-8"))


async def watch_preamble_file(
    path: str | Path,
    preamble: Preamble,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Reload the preamble whenever its file is modified.

    Read errors are logged and the previous text is kept.

    Args:
        path: Preamble file to watch
        preamble: Holder to update
        stop_event: Stops the watcher when set
    """
    path = Path(path)
    logger.info(f"Watching preamble file {path}")
    async for changes in awatch(path, stop_event=stop_event):
        if not any(change in (Change.modified, Change.added) for change, _ in changes):
            continue
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Error reading updated preamble: {e}")
            continue
        if preamble.update(text):
            logger.info("Preamble updated")
