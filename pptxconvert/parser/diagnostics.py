"""Warning accumulator threaded through parsing.

Recoverable anomalies never unwind the parse: they are recorded here as
``"[Kind] message"`` strings and processing continues with a fallback.
Identical messages are recorded once.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Type

from pptxconvert.errors import RecoverableError

logger = logging.getLogger(__name__)


class Diagnostics:
    """Append-only, de-duplicating warning log for one presentation."""

    def __init__(self) -> None:
        self._messages: list[str] = []
        self._seen: set[str] = set()
        self._lock = threading.Lock()

    def record(self, kind: Type[RecoverableError] | str, message: str) -> bool:
        """Record a warning.

        Args:
            kind: Error class (or its name) classifying the anomaly.
            message: Human-readable description.

        Returns:
            True if the warning was new, False if an identical one was
            already recorded.
        """
        label = kind if isinstance(kind, str) else kind.__name__
        entry = f"[{label}] {message}"
        with self._lock:
            if entry in self._seen:
                return False
            self._seen.add(entry)
            self._messages.append(entry)
        logger.warning(entry)
        return True

    def record_error(self, error: RecoverableError) -> bool:
        """Record a raised recoverable error."""
        return self.record(type(error), str(error))

    @contextmanager
    def capture(self, fallback_message: Optional[str] = None) -> Iterator[None]:
        """Turn a recoverable error raised inside the block into a warning.

        Non-recoverable exceptions propagate unchanged.
        """
        try:
            yield
        except RecoverableError as e:
            if fallback_message:
                self.record(type(e), f"{fallback_message}: {e}")
            else:
                self.record_error(e)

    def extend(self, other: "Diagnostics") -> None:
        """Append another log's messages in order, skipping duplicates."""
        for entry in other.messages:
            with self._lock:
                if entry in self._seen:
                    continue
                self._seen.add(entry)
                self._messages.append(entry)

    @property
    def messages(self) -> list[str]:
        """Snapshot of recorded messages in order."""
        with self._lock:
            return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __bool__(self) -> bool:
        # An empty log is still a log.
        return True
