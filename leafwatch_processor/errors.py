"""
Error taxonomy for the inspection pipeline.

Bounded Context: Failure classification
Responsibilities:
  - Distinguish fatal startup failures from recoverable per-frame failures
  - Give the scheduler one base class to contain worker-side failures

Severity:
  - ModelLoadError: fatal for readiness (pipeline never becomes ready)
  - AcceleratorUnavailable: recoverable, consumed by the backend chain
  - ConversionError / InferenceError: recoverable, one frame is dropped
  - ResourceBindError: recoverable, pipeline runs without preview
"""


class LeafwatchError(Exception):
    """Base class for all pipeline errors"""
    pass


class ModelLoadError(LeafwatchError):
    """Raised when no execution backend could load the model"""
    pass


class AcceleratorUnavailable(LeafwatchError):
    """Raised when an optional accelerator backend cannot be initialized"""
    pass


class ConversionError(LeafwatchError):
    """Raised when a camera frame cannot be converted to RGB"""
    pass


class InferenceError(LeafwatchError):
    """Raised when a forward pass fails"""
    pass


class ResourceBindError(LeafwatchError):
    """Raised when the camera source cannot be bound"""
    pass
