"""
Inspection State - UI-observable results and cross-thread handoff.

The presentation layer observes one immutable InspectionSnapshot. Writers never
mutate fields in place: every change builds a new snapshot and swaps the
reference, so readers always see a complete value (latest wins, no tearing).

Threading:
- StateSink is written only from the UI thread
- Other threads hand work to the UI thread through a UiDispatcher
- The alert_enabled flag is read by the inference worker (single reference read)

Dispatchers:
- QueueDispatcher: work is queued and run when the UI loop calls run_pending()
- ImmediateDispatcher: work runs inline (headless use and tests)
"""

import logging
import queue
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class Label(str, Enum):
    """Binary classifier outcome."""
    POSITIVE = "Positive"
    NEGATIVE = "Negative"


@dataclass(frozen=True)
class InferenceResult:
    """
    Outcome of one completed inference.

    Attributes:
        confidence: Model confidence in [0, 1]
        label: POSITIVE iff confidence exceeded the positive threshold
        frame_id: Frame the result was computed from
    """
    confidence: float
    label: Label
    frame_id: int = 0

    def __post_init__(self):
        """Validate invariants."""
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0.0, 1.0], got {self.confidence}")

    @classmethod
    def from_confidence(
        cls,
        confidence: float,
        positive_threshold: float = 0.5,
        frame_id: int = 0,
    ) -> "InferenceResult":
        label = Label.POSITIVE if confidence > positive_threshold else Label.NEGATIVE
        return cls(confidence=confidence, label=label, frame_id=frame_id)


@dataclass(frozen=True)
class InspectionSnapshot:
    """
    Everything the presentation layer shows, as one immutable value.

    Attributes:
        result_text: Overlay text ("Waiting for input..." until the first result)
        confidence: Last published confidence
        label: Last published label, None while waiting
        ready: Model loaded, frames may enter conversion
        preview_available: Camera bound successfully
        alert_enabled: User toggle for the audible alert
        frame_id: Frame of the last published result
    """
    result_text: str = "Waiting for input..."
    confidence: float = 0.0
    label: Optional[Label] = None
    ready: bool = False
    preview_available: bool = True
    alert_enabled: bool = False
    frame_id: int = 0


SnapshotListener = Callable[[InspectionSnapshot], None]


class StateSink:
    """
    Observable holder of the current InspectionSnapshot.

    Usage (UI thread):
        sink = StateSink(InspectionSnapshot(alert_enabled=True))
        sink.subscribe(lambda snap: overlay.update(snap.result_text))
        sink.set_alert_enabled(False)

    Usage (worker thread, via dispatcher):
        dispatcher.post(lambda: sink.publish_result(result, "Leaf roll detected"))
    """

    def __init__(self, initial: Optional[InspectionSnapshot] = None):
        self._snapshot = initial or InspectionSnapshot()
        self._listeners: List[SnapshotListener] = []

    @property
    def snapshot(self) -> InspectionSnapshot:
        return self._snapshot

    @property
    def alert_enabled(self) -> bool:
        return self._snapshot.alert_enabled

    def subscribe(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    def publish_result(self, result: InferenceResult, result_text: str) -> None:
        """Publish a completed inference (UI thread)."""
        self._swap(
            result_text=result_text,
            confidence=result.confidence,
            label=result.label,
            frame_id=result.frame_id,
        )

    def set_ready(self, ready: bool) -> None:
        self._swap(ready=ready)

    def set_preview_available(self, available: bool) -> None:
        self._swap(preview_available=available)

    def set_alert_enabled(self, enabled: bool) -> None:
        """User toggle for the audible alert (UI thread)."""
        self._swap(alert_enabled=enabled)

    def _swap(self, **changes) -> None:
        snapshot = replace(self._snapshot, **changes)
        self._snapshot = snapshot

        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Snapshot listener failed: {e}", exc_info=True)


class UiDispatcher:
    """Hands callables to the thread that owns the UI."""

    def post(self, work: Callable[[], None]) -> None:
        raise NotImplementedError


class ImmediateDispatcher(UiDispatcher):
    """Runs work inline on the calling thread."""

    def post(self, work: Callable[[], None]) -> None:
        work()


class QueueDispatcher(UiDispatcher):
    """
    Single-consumer work queue drained by the UI loop.

    The UI loop calls run_pending() (or run_until()) from its own thread;
    post() is safe from any thread and never blocks.

    Example:
        dispatcher = QueueDispatcher()
        # worker thread
        dispatcher.post(lambda: sink.set_ready(True))
        # UI thread
        dispatcher.run_pending()
    """

    def __init__(self):
        self._queue: "queue.Queue[Callable[[], None]]" = queue.Queue()
        self._owner: Optional[int] = None

    def post(self, work: Callable[[], None]) -> None:
        self._queue.put_nowait(work)

    def run_pending(self, timeout: Optional[float] = None) -> int:
        """
        Run queued work on the calling (UI) thread.

        Args:
            timeout: Wait up to this long for the first item (None: don't wait)

        Returns:
            Number of callables executed
        """
        self._claim_owner()
        executed = 0

        try:
            work = self._queue.get(timeout=timeout) if timeout else self._queue.get_nowait()
        except queue.Empty:
            return 0

        while True:
            self._run(work)
            executed += 1
            try:
                work = self._queue.get_nowait()
            except queue.Empty:
                return executed

    def run_until(self, stop_event: threading.Event, poll_interval: float = 0.05) -> None:
        """Drain the queue until stop_event is set (blocking UI loop)."""
        while not stop_event.is_set():
            self.run_pending(timeout=poll_interval)
        self.run_pending()

    def pending(self) -> int:
        return self._queue.qsize()

    def _claim_owner(self) -> None:
        ident = threading.get_ident()
        if self._owner is None:
            self._owner = ident
        elif self._owner != ident:
            raise RuntimeError("QueueDispatcher drained from more than one thread")

    @staticmethod
    def _run(work: Callable[[], None]) -> None:
        try:
            work()
        except Exception as e:
            logger.error(f"UI work item failed: {e}", exc_info=True)
