"""
Process-wide progress tracking for chunk-relay batches.

A single ProgressTracker owns the ProgressState. The processing worker is
the only writer; polling clients read snapshot() and may call cancel().
All access goes through one lock, so readers never see a torn field.

Timestamps are epoch milliseconds, matching what polling clients expect.
"""

import dataclasses
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


_PROCESS_START = time.monotonic()

CANCEL_MESSAGE = "Processing cancelled by user"


def now_ms() -> int:
    return int(time.time() * 1000)


class ProcessingStatus(str, Enum):
    """Status of the current batch."""
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class HistoryEntry:
    """Outcome of one processed file."""
    file: str
    model: str
    duration: int
    timestamp: int
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "file": self.file,
            "model": self.model,
            "duration": self.duration,
            "timestamp": self.timestamp,
            "success": self.success,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ProgressState:
    """Mutable progress record. Mutate only through ProgressTracker.update()."""
    status: ProcessingStatus = ProcessingStatus.IDLE
    current_file: str | None = None
    current_file_number: int = 0
    total_files: int = 0
    total_chunks: int = 0
    processed_chunks: int = 0
    start_time: int | None = None
    estimated_end_time: int | None = None
    error: str | None = None
    cancelled: bool = False
    last_updated: int = field(default_factory=now_ms)
    processing_history: list[HistoryEntry] = field(default_factory=list)
    # Internal: base names already counted toward current_file_number
    processed_files: set[str] = field(default_factory=set)


_STATE_FIELDS = frozenset(f.name for f in dataclasses.fields(ProgressState))


class ProgressTracker:
    """
    Tracks batch progress.

    Usage:
        tracker = ProgressTracker()
        tracker.set_total_files(3)
        number = tracker.track_file("/uploads/a.srt")
        tracker.update(status=ProcessingStatus.PROCESSING, total_chunks=4)
        ...
        tracker.snapshot()  # from any thread
    """

    def __init__(self, history_limit: int = 10, clock: Callable[[], int] = now_ms):
        self.history_limit = history_limit
        self._clock = clock
        self._lock = threading.Lock()
        self._state = ProgressState(last_updated=clock())

    def reset(self) -> None:
        """Return to the idle baseline: counters, history and seen files cleared."""
        with self._lock:
            self._state = ProgressState(last_updated=self._clock())
        logger.info("[PROGRESS] Progress tracking completely reset")

    def set_total_files(self, total: int) -> None:
        """Announce a new batch of total files."""
        self.reset()
        self.update(total_files=total)

    def update(self, **fields: Any) -> None:
        """Merge fields into the state and stamp last_updated."""
        unknown = set(fields) - _STATE_FIELDS
        if unknown:
            raise AttributeError(f"Unknown progress fields: {sorted(unknown)}")

        if "status" in fields:
            fields["status"] = ProcessingStatus(fields["status"])

        with self._lock:
            for name, value in fields.items():
                setattr(self._state, name, value)
            self._state.last_updated = self._clock()

    def track_file(self, file_path: str | os.PathLike) -> int:
        """
        Count a file toward current_file_number, once per base name.

        Returns the file's ordinal; repeated calls for an already seen
        name return the current number unchanged.
        """
        file_name = os.path.basename(os.fspath(file_path))
        with self._lock:
            state = self._state
            if file_name in state.processed_files:
                return state.current_file_number

            state.processed_files.add(file_name)
            number = min(state.current_file_number + 1, state.total_files)
            state.current_file_number = number
            state.current_file = file_name
            state.last_updated = self._clock()
            total = state.total_files

        logger.info(f"[PROGRESS] Tracking file {number}/{total}: {file_name}")
        return number

    def cancel(self) -> bool:
        """Request cancellation. Only effective while processing."""
        with self._lock:
            if self._state.status is not ProcessingStatus.PROCESSING:
                return False
            self._state.cancelled = True
            self._state.status = ProcessingStatus.CANCELLED
            self._state.error = CANCEL_MESSAGE
            self._state.last_updated = self._clock()

        logger.info(f"[PROGRESS] {CANCEL_MESSAGE}")
        return True

    def add_history(self, entry: HistoryEntry) -> None:
        """Append a history entry, keeping only the most recent history_limit."""
        with self._lock:
            history = self._state.processing_history[-(self.history_limit - 1):] if self.history_limit > 1 else []
        self.update(processing_history=history + [entry])

    @property
    def status(self) -> ProcessingStatus:
        with self._lock:
            return self._state.status

    @property
    def is_cancelled(self) -> bool:
        with self._lock:
            return self._state.cancelled

    @property
    def total_files(self) -> int:
        with self._lock:
            return self._state.total_files

    @property
    def start_time(self) -> int | None:
        with self._lock:
            return self._state.start_time

    def snapshot(self) -> dict[str, Any]:
        """JSON-serializable copy of the state for polling clients."""
        with self._lock:
            state = self._state
            snapshot = {
                "status": state.status.value,
                "currentFile": state.current_file,
                "currentFileNumber": state.current_file_number,
                "totalFiles": state.total_files,
                "totalChunks": state.total_chunks,
                "processedChunks": state.processed_chunks,
                "startTime": state.start_time,
                "estimatedEndTime": state.estimated_end_time,
                "error": state.error,
                "cancelled": state.cancelled,
                "lastUpdated": state.last_updated,
                "processingHistory": [entry.to_dict() for entry in state.processing_history],
            }
        snapshot["uptime"] = time.monotonic() - _PROCESS_START
        snapshot["currentTime"] = self._clock()
        return snapshot
