"""
Progress Reporting

Design Decision: Observer Dispatch
==================================

Options Considered:
1. Call observer callbacks inline
   - Simple, ordering is obvious
   - A slow observer slows the transfer loop

2. Post callbacks onto the observer's event loop
   - Transfer loop never waits for the observer
   - Events arrive slightly later, in order

Decision: both, chosen per reporter
- The sender reports inline (it runs on the caller's task anyway)
- The receiver posts with call_soon_threadsafe so its background task is
  never held up by the observer, even one on another thread

Status flow:
```
IDLE -> WAITING -> TRANSFERRING -> COMPLETE
  any state       -> ERROR
```
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)

WAITING_TEXT = "Waiting for connection..."
RECEIVE_COMPLETE_TEXT = "Transfer complete"
SEND_COMPLETE_TEXT = "Transfer Complete"


class TransferState(Enum):
    """Lifecycle of a single transfer as seen by the observer."""
    IDLE = "idle"
    WAITING = "waiting"
    TRANSFERRING = "transferring"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class ProgressEvent:
    """One progress notification."""
    fraction: float
    label: Optional[str] = None


# Callback types
ProgressSink = Callable[[float], None]
StatusSink = Callable[[str], None]


def _ignore(_):
    pass


@dataclass
class TransferCallbacks:
    """Sinks supplied by whatever presents the transfer."""
    on_progress: ProgressSink = field(default=_ignore)
    on_status: StatusSink = field(default=_ignore)


@dataclass
class TransferResult:
    """Outcome of one finished transfer."""
    direction: str  # 'send' or 'receive'
    path: Path
    total_size: int
    bytes_moved: int = 0
    chunks: int = 0
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    @property
    def complete(self) -> bool:
        """True when the byte count matched the declared size."""
        return self.bytes_moved == self.total_size

    @property
    def fraction(self) -> float:
        return transfer_fraction(self.bytes_moved, self.total_size)

    @property
    def elapsed_seconds(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.time()
        return end - self.started_at

    @property
    def speed_bytes_per_sec(self) -> float:
        elapsed = self.elapsed_seconds
        if elapsed <= 0:
            return 0
        return self.bytes_moved / elapsed

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'direction': self.direction,
            'path': str(self.path),
            'total_size': self.total_size,
            'bytes_moved': self.bytes_moved,
            'chunks': self.chunks,
            'complete': self.complete,
            'elapsed_seconds': self.elapsed_seconds,
            'speed_bytes_per_sec': self.speed_bytes_per_sec,
        }


def transfer_fraction(bytes_moved: int, total_size: int) -> float:
    """bytes_moved / total_size in [0, 1]; 0 for an empty transfer."""
    if total_size <= 0:
        return 0.0
    return min(1.0, bytes_moved / total_size)


class ProgressReporter:
    """
    Delivers progress and status to TransferCallbacks.

    With `loop` set, every callback is posted to that loop and this object
    returns immediately. Without it, callbacks run inline.
    """

    def __init__(self, callbacks: TransferCallbacks = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.callbacks = callbacks or TransferCallbacks()
        self.loop = loop
        self.state = TransferState.IDLE
        self.fraction = 0.0
        self.events_emitted = 0
        self.last_event: Optional[ProgressEvent] = None

    @property
    def posted(self) -> bool:
        return self.loop is not None

    def begin(self):
        """Start a new transfer: progress goes back to zero."""
        self.fraction = 0.0
        self.events_emitted = 0
        self.last_event = None

    def report(self, fraction: float, label: Optional[str] = None):
        """Emit one progress event (and the label as status, if any)."""
        fraction = max(self.fraction, min(1.0, max(0.0, fraction)))
        self.fraction = fraction
        self.events_emitted += 1
        self.last_event = ProgressEvent(fraction, label)
        self._dispatch(self.callbacks.on_progress, fraction)
        if label is not None:
            self._dispatch(self.callbacks.on_status, label)

    def set_status(self, state: TransferState, text: str):
        """Move to `state` and tell the observer."""
        logger.debug(f"Status {self.state.value} -> {state.value}: {text!r}")
        self.state = state
        self._dispatch(self.callbacks.on_status, text)

    def fail(self, error: Exception):
        """ERROR transition; the last fraction is left as it was."""
        self.set_status(TransferState.ERROR, str(error))

    def _dispatch(self, sink: Callable, value):
        if self.loop is None:
            self._deliver(sink, value)
            return
        try:
            self.loop.call_soon_threadsafe(self._deliver, sink, value)
        except RuntimeError:
            logger.debug(f"Observer loop closed, dropping event {value!r}")

    @staticmethod
    def _deliver(sink: Callable, value):
        try:
            sink(value)
        except Exception:
            logger.exception(f"Progress observer failed on {value!r}")
