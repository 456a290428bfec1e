"""Bounded output buffer for process sessions."""

import threading
from collections import deque
from typing import Optional


class OutputBuffer:
    """Thread-safe, line-oriented buffer of a process's combined output.

    Keeps at most ``max_lines`` lines; once full, the oldest lines are evicted
    first. Text arrives in arbitrary chunks from more than one stream, so a
    chunk that does not end in a newline leaves its last line *open*: the next
    chunk from the same stream continues it, while a chunk from another stream
    starts a fresh line.

    Appends and drains take the same lock, so a drain never loses a line that
    is being appended concurrently.
    """

    def __init__(self, max_lines: int = 10000) -> None:
        if max_lines < 1:
            raise ValueError("max_lines must be at least 1")
        self.max_lines = max_lines
        self._lines: deque[str] = deque(maxlen=max_lines)
        self._open_stream: Optional[str] = None
        self._lock = threading.Lock()

    def append_text(self, text: str, stream: str = "stdout") -> None:
        """Append a chunk of output, splitting it into lines."""
        if not text:
            return

        first, *rest = text.split("\n")
        with self._lock:
            if self._open_stream == stream and self._lines:
                self._lines[-1] += first
            else:
                self._lines.append(first)

            if not rest:
                self._open_stream = stream
                return

            *complete, last = rest
            self._lines.extend(complete)
            if last:
                self._lines.append(last)
                self._open_stream = stream
            else:
                self._open_stream = None

    def snapshot(self, clear: bool = False) -> list[str]:
        """Return the buffered lines, atomically draining them if ``clear``."""
        with self._lock:
            lines = list(self._lines)
            if clear:
                self._lines.clear()
                self._open_stream = None
            return lines

    def read_all(self) -> str:
        """Read all buffered content as a single string."""
        with self._lock:
            return "\n".join(self._lines)

    @property
    def line_count(self) -> int:
        """Current number of lines in the buffer."""
        with self._lock:
            return len(self._lines)

    def __len__(self) -> int:
        return self.line_count
