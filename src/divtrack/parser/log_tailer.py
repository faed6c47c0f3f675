"""Log tailer - incremental byte-offset reading of the client log."""

import os
from pathlib import Path
from typing import Generator, Optional

from divtrack.config.logging import get_logger

logger = get_logger()

# Anything past this is treated as a corrupt stored offset
MAX_REASONABLE_POSITION = 10_000_000_000


class LogTailer:
    """
    Read the client log incrementally, tracking a byte offset for resume.

    Handles:
    - Reading from last position
    - Rotation or truncation (file shrinks below the stored offset)
    - Yielding complete lines only; a trailing partial line is held back
    """

    def __init__(self, file_path: Path) -> None:
        self.file_path = Path(file_path)
        self._position: int = 0
        self._file_size: int = 0
        self._partial: bytes = b""

    @property
    def position(self) -> int:
        """Byte offset of the next unread byte (partial line not yet consumed)."""
        return self._position - len(self._partial)

    @property
    def file_size(self) -> int:
        """Last known file size."""
        return self._file_size

    def set_position(self, position: int, file_size: int) -> None:
        """
        Set position for resuming (e.g., from database).

        If the file is now smaller than it was, or the offset lies past the
        end, reading restarts at 0.
        """
        self._partial = b""
        current_size = self._get_file_size()
        if current_size is None:
            self._position = 0
            self._file_size = 0
        elif current_size < file_size:
            logger.info("Log file shrank (%d < %d), restarting from 0", current_size, file_size)
            self._position = 0
            self._file_size = current_size
        elif position < 0 or position > MAX_REASONABLE_POSITION:
            logger.warning("Invalid log position %d, resetting to 0", position)
            self._position = 0
            self._file_size = current_size
        elif position > current_size:
            self._position = 0
            self._file_size = current_size
        else:
            self._position = position
            self._file_size = file_size

    def seek_to_end(self) -> None:
        """
        Seek to end of log file.

        Used on first run to skip history and only process new events.
        """
        self._partial = b""
        current_size = self._get_file_size()
        if current_size is not None:
            self._position = current_size
            self._file_size = current_size

    def _get_file_size(self) -> Optional[int]:
        try:
            if not os.path.exists(self.file_path):
                return None
            return os.path.getsize(self.file_path)
        except OSError:
            return None

    def file_exists(self) -> bool:
        """Check if the log file exists."""
        try:
            return os.path.isfile(self.file_path)
        except OSError:
            return False

    def read_new_lines(self) -> Generator[str, None, None]:
        """
        Read lines appended since the last call.

        Bytes are split on LF before decoding so a multi-byte character cut
        by a concurrent write is never decoded half-way. CR before LF is
        stripped. Invalid UTF-8 is replaced rather than raised.

        Yields:
            Complete log lines (without line terminator)
        """
        current_size = self._get_file_size()
        if current_size is None:
            return

        if current_size < self._position:
            logger.info("Log rotation detected for %s", self.file_path)
            self._position = 0
            self._partial = b""

        if current_size <= self._position:
            return

        try:
            with open(self.file_path, "rb") as f:
                f.seek(self._position)
                content = f.read(current_size - self._position)
        except OSError as e:
            logger.warning("Failed to read %s: %s", self.file_path, e)
            return

        if not content:
            return

        self._position += len(content)
        self._file_size = current_size

        data = self._partial + content
        chunks = data.split(b"\n")
        # Last chunk is empty when data ended with LF, otherwise a partial line
        self._partial = chunks.pop()

        for chunk in chunks:
            if chunk.endswith(b"\r"):
                chunk = chunk[:-1]
            yield chunk.decode("utf-8", errors="replace")

    def read_all_lines(self) -> Generator[str, None, None]:
        """Read all complete lines from the beginning of the file."""
        self.reset()
        yield from self.read_new_lines()

    def reset(self) -> None:
        """Reset position to start of file."""
        self._position = 0
        self._file_size = 0
        self._partial = b""
