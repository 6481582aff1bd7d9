"""Progress reporting and cancellation shared by the engines."""

import sys
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum


class ProgressStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


@dataclass
class ProgressEvent:
    """One step of a long-running operation."""

    current: int
    total: int | None
    message: str
    status: ProgressStatus = ProgressStatus.PROCESSING


ProgressCallback = Callable[[ProgressEvent], None]


class CancellationToken:
    """Cooperative cancellation flag, safe to set from another thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def is_cancelled(token: CancellationToken | None) -> bool:
    return token is not None and token.cancelled


@dataclass
class ProgressReporter:
    """Prints every Nth progress event to stderr; usable as a ProgressCallback."""

    interval: int = 100
    start_time: float = field(default_factory=time.time)
    _last_reported: int = 0

    def __call__(self, event: ProgressEvent) -> None:
        if event.status is ProgressStatus.ERROR:
            print(f"[{event.current:,}] error: {event.message}", file=sys.stderr)
            return
        due = event.current - self._last_reported >= self.interval
        if event.status is ProgressStatus.DONE or due:
            total = f"/{event.total:,}" if event.total is not None else ""
            print(f"[{event.current:,}{total}] {event.message}", file=sys.stderr)
            self._last_reported = event.current

    @property
    def elapsed_seconds(self) -> float:
        return time.time() - self.start_time


def format_duration(seconds: float) -> str:
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
