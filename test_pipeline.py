"""
Test Pipeline Scheduler
=======================

Drives PipelineScheduler with synthetic frames, a stub engine, and a fake
alert: readiness gating, pacing, single-flight, failure containment, and
publication to the UI thread.

Usage:
    python test_pipeline.py
    pytest test_pipeline.py
"""

import threading

import numpy as np

from leafwatch_processor import (
    FramePacer,
    FrameState,
    ImmediateDispatcher,
    InferenceError,
    InspectionSnapshot,
    Label,
    ModelLoadError,
    PipelineScheduler,
    QueueDispatcher,
    StateSink,
)
from leafwatch_vision import RawFrame

WAIT = 5.0


class StubEngine:
    """Returns a fixed confidence; optionally blocks or fails."""

    def __init__(self, confidence=0.9, fail=False, gate=None):
        self.confidence = confidence
        self.fail = fail
        self.gate = gate
        self.shapes = []

    def infer(self, tensor):
        self.shapes.append(tensor.shape)
        if self.gate is not None:
            self.gate.wait(WAIT)
        if self.fail:
            raise InferenceError("stub failure")
        return self.confidence


class FakeAlert:
    def __init__(self):
        self.triggers = 0
        self.stops = 0

    def trigger(self):
        self.triggers += 1

    def stop(self):
        self.stops += 1


class TrackedFrame:
    """A 640x480 frame plus an event set on release."""

    def __init__(self, timestamp_ms, frame_id=1):
        self.released = threading.Event()
        self.release_count = 0
        self.frame = RawFrame.from_i420(
            np.full((720, 640), 128, dtype=np.uint8),
            width=640,
            height=480,
            timestamp_ms=timestamp_ms,
            frame_id=frame_id,
            on_release=self._on_release,
        )

    def _on_release(self, frame):
        self.release_count += 1
        self.released.set()


def make_scheduler(engine=None, alert_enabled=True, dispatcher=None, loader=None, alert=None):
    sink = StateSink(InspectionSnapshot(alert_enabled=alert_enabled))
    engine = engine or StubEngine()
    scheduler = PipelineScheduler(
        engine_loader=loader or (lambda: engine),
        sink=sink,
        dispatcher=dispatcher or ImmediateDispatcher(),
        pacer=FramePacer(300),
        alert=alert,
    )
    return scheduler, sink


def run_one(scheduler, timestamp_ms=0.0, frame_id=1):
    tracked = TrackedFrame(timestamp_ms, frame_id)
    state = scheduler.on_frame(tracked.frame)
    assert tracked.released.wait(WAIT), "frame never released"
    return state, tracked


def test_positive_result_with_alert_enabled():
    print("\n" + "=" * 60)
    print("TEST: Confidence 0.9, alert enabled")
    print("=" * 60)

    alert = FakeAlert()
    scheduler, sink = make_scheduler(StubEngine(0.9), alert_enabled=True, alert=alert)
    assert scheduler.load_model().result(WAIT) is True
    assert sink.snapshot.ready

    state, tracked = run_one(scheduler)
    scheduler.shutdown()

    assert state is FrameState.ACCEPTED
    assert alert.triggers == 1
    assert sink.snapshot.label is Label.POSITIVE
    assert sink.snapshot.confidence == 0.9
    assert sink.snapshot.result_text == "Leaf roll detected"
    assert tracked.release_count == 1
    print("✓ One trigger, published ('Positive', 0.9)")


def test_positive_result_with_alert_disabled():
    print("\n" + "=" * 60)
    print("TEST: Confidence 0.9, alert disabled")
    print("=" * 60)

    alert = FakeAlert()
    scheduler, sink = make_scheduler(StubEngine(0.9), alert_enabled=False, alert=alert)
    scheduler.load_model().result(WAIT)

    run_one(scheduler)
    scheduler.shutdown()

    assert alert.triggers == 0
    assert sink.snapshot.label is Label.POSITIVE
    assert sink.snapshot.confidence == 0.9
    print("✓ Zero triggers, same publication")


def test_thresholds():
    print("\n" + "=" * 60)
    print("TEST: Label and alert thresholds")
    print("=" * 60)

    cases = [
        (0.3, Label.NEGATIVE, "No leaf roll detected", 0),
        (0.5, Label.NEGATIVE, "No leaf roll detected", 0),
        (0.6, Label.POSITIVE, "Leaf roll detected", 0),
        (0.75, Label.POSITIVE, "Leaf roll detected", 0),
        (0.76, Label.POSITIVE, "Leaf roll detected", 1),
    ]
    for confidence, label, text, triggers in cases:
        alert = FakeAlert()
        scheduler, sink = make_scheduler(StubEngine(confidence), alert=alert)
        scheduler.load_model().result(WAIT)
        run_one(scheduler)
        scheduler.shutdown()

        assert sink.snapshot.label is label
        assert sink.snapshot.result_text == text
        assert alert.triggers == triggers
        print(f"✓ {confidence} → {label.value}, {triggers} trigger(s)")


def test_inference_failure_keeps_waiting_state():
    print("\n" + "=" * 60)
    print("TEST: Per-frame failure")
    print("=" * 60)

    alert = FakeAlert()
    scheduler, sink = make_scheduler(StubEngine(fail=True), alert=alert)
    scheduler.load_model().result(WAIT)

    _, tracked = run_one(scheduler)
    scheduler.shutdown()

    assert sink.snapshot.result_text == "Waiting for input..."
    assert sink.snapshot.label is None
    assert alert.triggers == 0
    assert tracked.release_count == 1
    assert scheduler.stats().failed == 1
    print("✓ Frame released, state unchanged, failure counted")


def test_model_load_failure_never_ready():
    print("\n" + "=" * 60)
    print("TEST: Model load failure")
    print("=" * 60)

    def broken_loader():
        raise ModelLoadError("no backend")

    scheduler, sink = make_scheduler(loader=broken_loader)
    assert scheduler.load_model().result(WAIT) is False
    assert not scheduler.ready
    assert not sink.snapshot.ready

    tracked = TrackedFrame(0.0)
    assert scheduler.on_frame(tracked.frame) is FrameState.DROPPED
    assert tracked.release_count == 1
    scheduler.shutdown()
    print("✓ Not ready, frames released without conversion")

def test_unexpected_loader_error_never_ready():
    def crashing_loader():
        raise RuntimeError("session has no inputs")

    scheduler, sink = make_scheduler(loader=crashing_loader)
    assert scheduler.load_model().result(WAIT) is False
    assert not scheduler.ready
    assert not sink.snapshot.ready

    tracked = TrackedFrame(0.0)
    assert scheduler.on_frame(tracked.frame) is FrameState.DROPPED
    assert tracked.release_count == 1
    scheduler.shutdown()


def test_pacer_drops_are_released():
    print("\n" + "=" * 60)
    print("TEST: Pacer drops")
    print("=" * 60)

    engine = StubEngine(0.2)
    scheduler, _ = make_scheduler(engine)
    scheduler.load_model().result(WAIT)

    run_one(scheduler, timestamp_ms=0.0, frame_id=1)

    early = TrackedFrame(100.0, frame_id=2)
    assert scheduler.on_frame(early.frame) is FrameState.DROPPED
    assert early.release_count == 1

    state, _ = run_one(scheduler, timestamp_ms=400.0, frame_id=3)
    assert state is FrameState.ACCEPTED
    scheduler.shutdown()

    assert len(engine.shapes) == 2
    assert engine.shapes[0] == (224, 298, 3)
    stats = scheduler.stats()
    assert (stats.captured, stats.accepted, stats.dropped, stats.published) == (3, 2, 1, 2)
    print(f"✓ Stats: {stats.to_dict()}")


def test_single_flight_drops_while_busy():
    print("\n" + "=" * 60)
    print("TEST: Single flight")
    print("=" * 60)

    gate = threading.Event()
    engine = StubEngine(0.2, gate=gate)
    scheduler, _ = make_scheduler(engine)
    scheduler.load_model().result(WAIT)

    first = TrackedFrame(0.0, frame_id=1)
    assert scheduler.on_frame(first.frame) is FrameState.ACCEPTED

    # Pacer would accept this one; the busy worker must not
    second = TrackedFrame(1000.0, frame_id=2)
    assert scheduler.on_frame(second.frame) is FrameState.DROPPED
    assert second.release_count == 1
    assert not first.released.is_set()

    gate.set()
    assert first.released.wait(WAIT)
    scheduler.shutdown()

    assert len(engine.shapes) == 1
    print("✓ Second frame dropped while first in flight")


def test_results_wait_for_ui_thread():
    print("\n" + "=" * 60)
    print("TEST: UI handoff")
    print("=" * 60)

    dispatcher = QueueDispatcher()
    scheduler, sink = make_scheduler(StubEngine(0.9), dispatcher=dispatcher)
    scheduler.load_model().result(WAIT)
    run_one(scheduler)
    scheduler.shutdown()

    # Nothing reaches the sink until the UI loop drains the queue
    assert not sink.snapshot.ready
    assert sink.snapshot.label is None

    assert dispatcher.run_pending() == 2
    assert sink.snapshot.ready
    assert sink.snapshot.label is Label.POSITIVE
    print("✓ Ready flag and result applied on run_pending()")


def test_frames_after_shutdown_are_released():
    scheduler, _ = make_scheduler()
    scheduler.load_model().result(WAIT)
    scheduler.shutdown()

    tracked = TrackedFrame(0.0)
    assert scheduler.on_frame(tracked.frame) is FrameState.DROPPED
    assert tracked.release_count == 1


def main():
    """Run all tests."""
    print("\n🍃 leafwatch_processor - Scheduler Tests")

    test_positive_result_with_alert_enabled()
    test_positive_result_with_alert_disabled()
    test_thresholds()
    test_inference_failure_keeps_waiting_state()
    test_model_load_failure_never_ready()
    test_unexpected_loader_error_never_ready()
    test_pacer_drops_are_released()
    test_single_flight_drops_while_busy()
    test_results_wait_for_ui_thread()
    test_frames_after_shutdown_are_released()

    print("\n" + "=" * 60)
    print("✅ ALL TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    main()
