"""
leafwatch_processor - Real-time leaf roll inspection pipeline

This package turns camera frames into a binary leaf roll verdict: frames are
paced, converted to RGB, preprocessed, classified by an ONNX model, and the
result is published to the UI thread (with an optional audible alert).

Architecture:
- InspectionService: Main orchestrator
- PipelineScheduler: Per-frame state machine across execution contexts
- FramePacer: Wall-clock frame rate limiter
- InferenceEngine: ONNX model loading (backend chain) and execution
- StateSink / InspectionSnapshot: UI-observable state
- InspectorConfig: Configuration management

Threading Model:
- Camera Source Thread (delivers frames, never blocks on inference)
- Inference Thread (single worker, one frame in flight)
- UI Thread (drains the UiDispatcher)
- Control Plane Thread (paho-mqtt internal for commands)
"""

# errors and config first: leafwatch_vision imports them while this
# package is still initializing
from leafwatch_processor.errors import (
    LeafwatchError,
    ModelLoadError,
    AcceleratorUnavailable,
    ConversionError,
    InferenceError,
    ResourceBindError,
)
from leafwatch_processor.config import InspectorConfig
from leafwatch_processor.pacer import FramePacer, PacingState
from leafwatch_processor.state import (
    Label,
    InferenceResult,
    InspectionSnapshot,
    StateSink,
    UiDispatcher,
    QueueDispatcher,
    ImmediateDispatcher,
)
from leafwatch_processor.engine import InferenceEngine
from leafwatch_processor.scheduler import FrameState, PipelineScheduler, PipelineStats
from leafwatch_processor.service import InspectionService

__all__ = [
    "LeafwatchError",
    "ModelLoadError",
    "AcceleratorUnavailable",
    "ConversionError",
    "InferenceError",
    "ResourceBindError",
    "InspectorConfig",
    "FramePacer",
    "PacingState",
    "Label",
    "InferenceResult",
    "InspectionSnapshot",
    "StateSink",
    "UiDispatcher",
    "QueueDispatcher",
    "ImmediateDispatcher",
    "InferenceEngine",
    "FrameState",
    "PipelineScheduler",
    "PipelineStats",
    "InspectionService",
]
