"""
Session Log Files
=================

File logging handler that writes one file per session under the
application's Logs directory and rolls over to a new file when the
current one grows past a size limit.

The log upload job calls force_rotate() before scanning, so the file that
was being written becomes a closed file that can be delivered, while new
records go to a fresh file.

File names follow <prefix>_<YYYYMMDD_HHMMSS>.log.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional


class SessionFileHandler(logging.FileHandler):
    """
    logging.FileHandler that rolls over by size and on demand.

    Attributes:
        log_dir: Directory holding the session log files
        prefix: File name prefix
        max_bytes: Size after which the next record opens a new file
    """

    def __init__(
        self,
        log_dir: Path,
        prefix: str = "rustdesk",
        max_bytes: int = 1024 * 1024,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.log_dir = Path(log_dir)
        self.prefix = prefix
        self.max_bytes = max_bytes
        self._clock = clock
        self.log_dir.mkdir(parents=True, exist_ok=True)

        super().__init__(str(self._next_path()), encoding="utf-8")
        self._write_header()

    @property
    def current_path(self) -> Path:
        """Path of the file currently being written."""
        return Path(self.baseFilename)

    def emit(self, record: logging.LogRecord) -> None:
        if self.stream is not None and self.stream.tell() > self.max_bytes:
            self._rollover()
        super().emit(record)

    def force_rotate(self) -> bool:
        """
        Close the current file and start a new one.

        Returns:
            True if a rotation happened (records were written since the header)
        """
        self.acquire()
        try:
            if self.stream is None or self.stream.tell() <= self._header_end:
                return False
            self._rollover()
            return True
        finally:
            self.release()

    def _rollover(self) -> None:
        if self.stream is not None:
            self.stream.close()
            self.stream = None
        self.baseFilename = str(self._next_path().resolve())
        self.stream = self._open()
        self._write_header()

    def _next_path(self) -> Path:
        stamp = self._clock().strftime("%Y%m%d_%H%M%S")
        path = self.log_dir / f"{self.prefix}_{stamp}.log"
        counter = 1
        while path.exists():
            path = self.log_dir / f"{self.prefix}_{stamp}_{counter}.log"
            counter += 1
        return path

    def _write_header(self) -> None:
        started = self._clock().strftime("%Y-%m-%d %H:%M:%S")
        self.stream.write(
            "========================================\n"
            f"{self.prefix} session log\n"
            f"Started at: {started}\n"
            "========================================\n"
        )
        self.flush()
        self._header_end = self.stream.tell()


def find_session_handler(
    target: Optional[logging.Logger] = None,
) -> Optional[SessionFileHandler]:
    """Return the session file handler installed on a logger (root by default)."""
    target = target or logging.getLogger()
    for handler in target.handlers:
        if isinstance(handler, SessionFileHandler):
            return handler
    return None
