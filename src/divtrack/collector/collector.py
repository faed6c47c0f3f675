"""Collector - log tailing loop feeding the session state machine."""

import queue
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from divtrack.config.logging import get_logger
from divtrack.core.models import LogEvent
from divtrack.core.session_machine import SessionStateMachine
from divtrack.db.connection import Database
from divtrack.db.repository import Repository
from divtrack.parser.log_parser import parse_line
from divtrack.parser.log_tailer import LogTailer

logger = get_logger()

# Queue sentinel telling the dispatcher to exit
_STOP = object()


@dataclass(frozen=True)
class _Checkpoint:
    """Log offset reached once every event queued before it is applied."""

    file_path: Path
    position: int
    file_size: int


class Collector:
    """
    Main collector that ties the log pipeline together.

    A reader thread polls the tailer on a fixed interval, parses new lines
    and puts the events on an unbounded queue; a single dispatcher thread
    applies them to the state machine in arrival order. The reader never
    waits on the state machine, so a busy machine only lengthens the queue.

    The log offset is saved by the dispatcher after the events read up to
    it are applied, so a restart re-reads anything still queued at exit.
    """

    def __init__(
        self,
        db: Database,
        log_path: Path,
        machine: SessionStateMachine,
        on_event: Optional[Callable[[LogEvent], None]] = None,
    ) -> None:
        """
        Initialize collector.

        Args:
            db: Database connection
            log_path: Path to the client log file
            machine: State machine receiving events
            on_event: Callback after each event is applied
        """
        self.db = db
        self.repository = Repository(db)
        self.tailer = LogTailer(log_path)
        self.machine = machine
        self._on_event = on_event

        self._queue: "queue.Queue[object]" = queue.Queue()
        self._pending = 0
        self._pending_lock = threading.Lock()
        self._running = False
        self._reader_thread: Optional[threading.Thread] = None
        self._dispatch_thread: Optional[threading.Thread] = None

    def initialize(self) -> None:
        """
        Initialize collector state from database.

        Restores the active session and the log position.
        """
        self.machine.load_active()

        position_data = self.repository.get_log_position()
        if position_data:
            file_path, position, file_size = position_data
            if file_path == self.tailer.file_path:
                self.tailer.set_position(position, file_size)
                return
        # First run (or a different log) - only process new events
        self.tailer.seek_to_end()
        self._save_position()

    @property
    def pending_events(self) -> int:
        """Events read but not yet applied."""
        with self._pending_lock:
            return self._pending

    @property
    def is_running(self) -> bool:
        return self._running

    def process_line(self, line: str) -> Optional[LogEvent]:
        """Parse one line and apply it immediately (synchronous path)."""
        event = parse_line(line)
        if event is not None:
            self._apply(event)
        return event

    def _apply(self, event: LogEvent) -> None:
        self.machine.apply(event)
        if self._on_event:
            self._on_event(event)

    def _save_position(self) -> None:
        self._save_checkpoint(self._checkpoint())

    def _checkpoint(self) -> _Checkpoint:
        return _Checkpoint(self.tailer.file_path, self.tailer.position, self.tailer.file_size)

    def _save_checkpoint(self, checkpoint: _Checkpoint) -> None:
        self.repository.save_log_position(
            checkpoint.file_path, checkpoint.position, checkpoint.file_size
        )

    def process_file(self, from_beginning: bool = False) -> int:
        """
        Read and apply all new lines synchronously (non-blocking).

        Args:
            from_beginning: If True, read from start; otherwise from last position

        Returns:
            Number of lines processed
        """
        if from_beginning:
            self.tailer.reset()

        line_count = 0
        for line in self.tailer.read_new_lines():
            self.process_line(line)
            line_count += 1

        self._save_position()
        return line_count

    def poll(self) -> int:
        """
        Read new lines and queue their events for the dispatcher.

        The new offset is queued behind the events and saved once they are
        applied.

        Returns:
            Number of lines read
        """
        line_count = 0
        for line in self.tailer.read_new_lines():
            line_count += 1
            event = parse_line(line)
            if event is not None:
                with self._pending_lock:
                    self._pending += 1
                self._queue.put(event)

        if line_count:
            self._queue.put(self._checkpoint())
        return line_count

    def tail(self, poll_interval: float = 0.5) -> None:
        """
        Continuously poll the log file.

        Retries with exponential backoff and gives up after 5 consecutive
        errors.

        Args:
            poll_interval: Seconds between file checks
        """
        self._running = True
        consecutive_errors = 0
        max_consecutive_errors = 5

        while self._running:
            try:
                line_count = self.poll()
                consecutive_errors = 0
                if line_count == 0:
                    time.sleep(poll_interval)
            except Exception as e:
                consecutive_errors += 1
                logger.warning("Collector error (attempt %d): %s", consecutive_errors, e)

                if consecutive_errors >= max_consecutive_errors:
                    self._running = False
                    raise

                # Exponential backoff capped at 5 seconds
                backoff = min(poll_interval * (2 ** consecutive_errors), 5.0)
                time.sleep(backoff)

    def drain(self) -> int:
        """Apply every queued event on the calling thread. Returns the count applied."""
        applied = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return applied
            if item is _STOP:
                return applied
            if isinstance(item, _Checkpoint):
                self._save_checkpoint(item)
                continue
            try:
                self._apply(item)
            finally:
                self._applied_one()
            applied += 1

    def _applied_one(self) -> None:
        with self._pending_lock:
            self._pending -= 1

    def _dispatch_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            if isinstance(item, _Checkpoint):
                try:
                    self._save_checkpoint(item)
                except Exception:
                    logger.exception("Failed to save log position")
                continue
            try:
                self._apply(item)
            except Exception:
                logger.exception("Failed to apply %s", type(item).__name__)
            finally:
                self._applied_one()

    def _reader_loop(self, poll_interval: float) -> None:
        try:
            self.tail(poll_interval)
        except Exception:
            logger.exception("Collector stopped after repeated errors")

    def start(self, poll_interval: float = 0.5) -> None:
        """Start the reader and dispatcher threads."""
        if self._reader_thread and self._reader_thread.is_alive():
            return

        self._running = True
        self._dispatch_thread = threading.Thread(
            target=self._dispatch_loop, daemon=True, name="collector-dispatch"
        )
        self._dispatch_thread.start()
        self._reader_thread = threading.Thread(
            target=self._reader_loop, args=(poll_interval,), daemon=True, name="collector-reader"
        )
        self._reader_thread.start()
        logger.info("Collector started on %s", self.tailer.file_path)

    def stop(self) -> None:
        """Stop the loop; events already queued are applied before the dispatcher exits."""
        self._running = False
        if self._reader_thread and self._reader_thread.is_alive():
            self._reader_thread.join(timeout=2.0)
        if self._dispatch_thread and self._dispatch_thread.is_alive():
            self._queue.put(_STOP)
            self._dispatch_thread.join(timeout=2.0)
        self._reader_thread = None
        self._dispatch_thread = None
