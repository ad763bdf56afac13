"""
Pipeline Scheduler - per-frame state machine across execution contexts.

Each delivered frame moves through:

    Captured → (Dropped | Accepted) → Converting → Preprocessing → Inferring → Published
                                      └──────── any exception ─────────┘ → Failed

Threading Model:
- Camera context (source thread): on_frame() decides drop/accept and never
  blocks on inference
- Inference context (ThreadPoolExecutor, one worker): model load, then one
  frame at a time (conversion, preprocessing, inference, alert)
- UI context: receives results via the UiDispatcher, sole writer of StateSink

Backpressure:
- Model not loaded yet → frame released, counted as dropped
- A frame already in flight → frame released, counted as dropped
- Pacer rejects → frame released, counted as dropped

Frame release is unconditional: accepted frames are released by the worker
in a finally block, dropped frames by the camera context before returning.

Thread Safety:
- _rgb (RgbBuffer) and _engine: owned by the inference worker
- _pacing_state: owned by the camera context
- _stats: protected by _stats_lock
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional

import supervision as sv

from leafwatch_mqtt.logging import LogEvent, StructuredLogger
from leafwatch_processor.config import LabelConfig, ThresholdConfig
from leafwatch_processor.errors import ModelLoadError
from leafwatch_processor.pacer import FramePacer, PacingState
from leafwatch_processor.state import InferenceResult, Label, StateSink, UiDispatcher
from leafwatch_vision.converter import ColorspaceConverter
from leafwatch_vision.frames import RawFrame, RgbBuffer
from leafwatch_vision.preprocessor import Preprocessor

logger = logging.getLogger(__name__)

# Returns an object exposing infer(tensor) -> float
EngineLoader = Callable[[], Any]


class FrameState(str, Enum):
    """Lifecycle state of one frame inside the scheduler."""
    CAPTURED = "captured"
    DROPPED = "dropped"
    ACCEPTED = "accepted"
    CONVERTING = "converting"
    PREPROCESSING = "preprocessing"
    INFERRING = "inferring"
    PUBLISHED = "published"
    FAILED = "failed"


@dataclass
class PipelineStats:
    """Counters per terminal state, plus processed throughput."""
    captured: int = 0
    dropped: int = 0
    accepted: int = 0
    published: int = 0
    failed: int = 0
    alerts: int = 0
    fps: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PipelineScheduler:
    """
    Drives frames from the camera context through the inference worker.

    Usage:
        scheduler = PipelineScheduler(
            engine_loader=lambda: InferenceEngine.load_file(path, "auto"),
            sink=sink,
            dispatcher=dispatcher,
            preprocessor=Preprocessor.from_config(config.model),
            alert=AlertSignal.from_config(config.alert),
        )
        scheduler.load_model()          # runs on the worker, gates readiness
        source.start(scheduler.on_frame)
        ...
        scheduler.shutdown()            # before stopping the source
    """

    def __init__(
        self,
        engine_loader: EngineLoader,
        sink: StateSink,
        dispatcher: UiDispatcher,
        pacer: Optional[FramePacer] = None,
        converter: Optional[ColorspaceConverter] = None,
        preprocessor: Optional[Preprocessor] = None,
        alert=None,  # AlertSignal
        thresholds: Optional[ThresholdConfig] = None,
        labels: Optional[LabelConfig] = None,
        structured_logger: Optional[StructuredLogger] = None,
    ):
        self._engine_loader = engine_loader
        self._sink = sink
        self._dispatcher = dispatcher
        self._pacer = pacer or FramePacer()
        self._converter = converter or ColorspaceConverter()
        self._preprocessor = preprocessor or Preprocessor()
        self._alert = alert
        self._thresholds = thresholds or ThresholdConfig()
        self._labels = labels or LabelConfig()
        self._log = structured_logger or StructuredLogger(component="scheduler")

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inference")
        self._engine: Optional[Any] = None
        self._rgb = RgbBuffer()
        self._pacing_state = PacingState()

        self._ready = threading.Event()
        self._in_flight = threading.Event()
        self._stopping = False

        self._stats = PipelineStats()
        self._stats_lock = threading.Lock()
        self._fps_monitor = sv.FPSMonitor()

    # ─────────────────────────────────────────────────────────────────────
    # Readiness
    # ─────────────────────────────────────────────────────────────────────

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._ready.wait(timeout)

    def load_model(self) -> Future:
        """
        Load the model on the inference worker.

        Returns:
            Future resolving to True once ready, False if loading failed
        """
        return self._executor.submit(self._load_model)

    def _load_model(self) -> bool:
        try:
            engine = self._engine_loader()
        except ModelLoadError as e:
            self._log.error(
                event=LogEvent.MODEL_LOAD_ERROR,
                message="Model could not be loaded, pipeline stays not ready",
                exc_info=e,
            )
            return False
        except Exception as e:
            self._log.error(
                event=LogEvent.MODEL_LOAD_ERROR,
                message=f"Model loader raised {type(e).__name__}, pipeline stays not ready",
                exc_info=e,
            )
            return False

        self._engine = engine
        self._ready.set()
        self._dispatcher.post(lambda: self._sink.set_ready(True))

        describe = getattr(engine, "describe", None)
        self._log.info(
            event=LogEvent.PIPELINE_READY,
            message="Model loaded, pipeline ready",
            metadata=describe() if describe else None,
        )
        return True

    # ─────────────────────────────────────────────────────────────────────
    # Camera context
    # ─────────────────────────────────────────────────────────────────────

    def on_frame(self, frame: RawFrame) -> FrameState:
        """
        Admit or drop a delivered frame (camera context, never blocks).

        Returns:
            ACCEPTED if handed to the worker, DROPPED otherwise
        """
        with self._stats_lock:
            self._stats.captured += 1

        if self._stopping:
            return self._drop(frame, "stopping")

        if not self._ready.is_set():
            return self._drop(frame, "not_ready")

        # Single-flight guard, checked before the pacer so a busy worker
        # does not consume an acceptance slot
        if self._in_flight.is_set():
            return self._drop(frame, "busy")

        if not self._pacer.should_process(frame.timestamp_ms, self._pacing_state):
            return self._drop(frame, "paced")

        self._in_flight.set()
        try:
            future = self._executor.submit(self._process, frame)
        except RuntimeError:
            # Executor already shut down
            self._in_flight.clear()
            return self._drop(frame, "stopping")

        future.add_done_callback(lambda f: self._on_done(f, frame))

        with self._stats_lock:
            self._stats.accepted += 1
        return FrameState.ACCEPTED

    def _drop(self, frame: RawFrame, reason: str) -> FrameState:
        frame.release()
        with self._stats_lock:
            self._stats.dropped += 1

        self._log.debug(
            event=LogEvent.FRAME_DROPPED,
            message="Frame dropped",
            metadata={"frame_id": frame.frame_id, "reason": reason},
        )
        return FrameState.DROPPED

    def _on_done(self, future: Future, frame: RawFrame) -> None:
        # Cancelled before the worker picked it up: finally never ran
        if future.cancelled():
            if not frame.released:
                frame.release()
            self._in_flight.clear()

    # ─────────────────────────────────────────────────────────────────────
    # Inference context
    # ─────────────────────────────────────────────────────────────────────

    def _process(self, frame: RawFrame) -> FrameState:
        state = FrameState.ACCEPTED
        try:
            state = FrameState.CONVERTING
            self._rgb.ensure_capacity(frame.width, frame.height)
            self._converter.convert(frame, self._rgb)

            state = FrameState.PREPROCESSING
            tensor = self._preprocessor.prepare(self._rgb)

            state = FrameState.INFERRING
            confidence = self._engine.infer(tensor)
            result = InferenceResult.from_confidence(
                confidence,
                positive_threshold=self._thresholds.positive,
                frame_id=frame.frame_id,
            )

            self._maybe_alert(result)
            self._publish(result)
            state = FrameState.PUBLISHED

        except Exception as e:
            with self._stats_lock:
                self._stats.failed += 1
            self._log.error(
                event=LogEvent.FRAME_FAILED,
                message=f"Frame failed while {state.value}",
                metadata={"frame_id": frame.frame_id, "state": state.value},
                exc_info=e,
            )
            state = FrameState.FAILED

        finally:
            self._in_flight.clear()
            if not frame.released:
                frame.release()

        return state

    def _maybe_alert(self, result: InferenceResult) -> None:
        if self._alert is None:
            return
        if result.confidence <= self._thresholds.alert or not self._sink.alert_enabled:
            return

        try:
            self._alert.trigger()
        except Exception as e:
            # Audio failure must not cost the frame its result
            self._log.error(
                event=LogEvent.ALERT_ERROR,
                message="Alert tone could not be played",
                exc_info=e,
            )
            return

        with self._stats_lock:
            self._stats.alerts += 1
        self._log.info(
            event=LogEvent.ALERT_TRIGGERED,
            message="Alert triggered",
            metadata={"frame_id": result.frame_id, "confidence": result.confidence},
        )

    def _publish(self, result: InferenceResult) -> None:
        if result.label is Label.POSITIVE:
            text = self._labels.positive_text
        else:
            text = self._labels.negative_text

        self._dispatcher.post(lambda: self._sink.publish_result(result, text))

        with self._stats_lock:
            self._stats.published += 1
        self._fps_monitor.tick()

        self._log.debug(
            event=LogEvent.RESULT_PUBLISHED,
            message=text,
            metadata={
                "frame_id": result.frame_id,
                "label": result.label.value,
                "confidence": round(result.confidence, 4),
            },
        )

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def stats(self) -> PipelineStats:
        """Snapshot of the counters (any thread)."""
        with self._stats_lock:
            snapshot = replace(self._stats)
        snapshot.fps = float(self._fps_monitor.fps)
        return snapshot

    def shutdown(self) -> None:
        """
        Cancel pending work and release the worker.

        Must run before the camera source is stopped. Frames delivered
        afterwards are released immediately.
        """
        self._stopping = True
        self._executor.shutdown(wait=True, cancel_futures=True)

        self._log.info(
            event=LogEvent.PIPELINE_STOPPED,
            message="Inference worker released",
            metadata=self.stats().to_dict(),
        )
