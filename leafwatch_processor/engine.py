"""
Inference Engine - ONNX classifier loading and execution.

This module provides the InferenceEngine class which loads an opaque ONNX
classifier (one tensor in, one confidence scalar out) onto the best available
execution backend and runs single forward passes.

Backend chain (first success wins, exhaustion is fatal):
1. gpu:      TensorRT / CUDA / ROCm execution providers
2. platform: platform-native acceleration (CoreML, NNAPI, DirectML, OpenVINO)
3. cpu:      plain execution, always last

Each backend is one explicit construction attempt that returns a typed
BackendAttempt instead of raising. A failed optional backend only moves the
chain forward; ModelLoadError is raised when every attempt has failed.

Thread Safety:
- NOT thread-safe
- Loaded and invoked only from the inference worker thread
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import onnxruntime as ort

from leafwatch_mqtt.logging import LogEvent, StructuredLogger
from leafwatch_processor.errors import AcceleratorUnavailable, InferenceError, ModelLoadError

_log = StructuredLogger(component="engine")

CPU_PROVIDER = "CPUExecutionProvider"

SessionFactory = Callable[[bytes, List[str]], Any]


@dataclass(frozen=True)
class AcceleratorBackend:
    """
    One link of the backend chain.

    Attributes:
        name: Backend identifier ("gpu", "platform", "cpu")
        providers: Candidate ONNX Runtime providers, in preference order
        optional: False only for the plain-execution fallback
    """
    name: str
    providers: Tuple[str, ...]
    optional: bool = True


@dataclass(frozen=True)
class BackendAttempt:
    """
    Typed result of one backend construction attempt.

    Exactly one of session / error is set.
    """
    backend: str
    provider: Optional[str] = None
    session: Optional[Any] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.session is not None

    def describe(self) -> str:
        if self.ok:
            return f"{self.backend}: loaded on {self.provider}"
        return f"{self.backend}: {type(self.error).__name__}: {self.error}"


DEFAULT_BACKENDS: Tuple[AcceleratorBackend, ...] = (
    AcceleratorBackend(
        name="gpu",
        providers=(
            "TensorrtExecutionProvider",
            "CUDAExecutionProvider",
            "ROCMExecutionProvider",
        ),
    ),
    AcceleratorBackend(
        name="platform",
        providers=(
            "CoreMLExecutionProvider",
            "NnapiExecutionProvider",
            "DmlExecutionProvider",
            "OpenVINOExecutionProvider",
        ),
    ),
    AcceleratorBackend(name="cpu", providers=(CPU_PROVIDER,), optional=False),
)


def _create_session(model_bytes: bytes, providers: List[str]) -> ort.InferenceSession:
    options = ort.SessionOptions()
    options.log_severity_level = 3  # errors only
    return ort.InferenceSession(model_bytes, sess_options=options, providers=providers)


def backend_chain(
    preference: str,
    backends: Sequence[AcceleratorBackend] = DEFAULT_BACKENDS,
) -> List[AcceleratorBackend]:
    """
    Order the backends for an accelerator preference.

    "auto" keeps the full chain; a named backend starts the chain there, so
    "cpu" skips every accelerator. Unknown names raise ValueError.
    """
    if preference == "auto":
        return list(backends)

    names = [b.name for b in backends]
    if preference not in names:
        raise ValueError(
            f"Unknown accelerator preference: {preference}. "
            f"Must be 'auto' or one of {names}"
        )
    return list(backends[names.index(preference):])


def try_backend(
    backend: AcceleratorBackend,
    model_bytes: bytes,
    available_providers: Sequence[str],
    session_factory: SessionFactory = _create_session,
) -> BackendAttempt:
    """
    Attempt to load the model on one backend.

    Returns:
        BackendAttempt with a session on success, or the failure reason.
        Never raises.
    """
    provider = next((p for p in backend.providers if p in available_providers), None)
    if provider is None:
        return BackendAttempt(
            backend=backend.name,
            error=AcceleratorUnavailable(
                f"none of {list(backend.providers)} available"
            ),
        )

    try:
        session = session_factory(model_bytes, [provider])
    except Exception as e:
        return BackendAttempt(backend=backend.name, provider=provider, error=e)

    # ONNX Runtime may quietly fall back to CPU when an accelerator fails
    active = _active_provider(session)
    if active is not None and active != provider:
        return BackendAttempt(
            backend=backend.name,
            provider=provider,
            error=AcceleratorUnavailable(f"{provider} requested, session runs on {active}"),
        )

    return BackendAttempt(backend=backend.name, provider=provider, session=session)


def _active_provider(session: Any) -> Optional[str]:
    get_providers = getattr(session, "get_providers", None)
    if get_providers is None:
        return None
    providers = get_providers()
    return providers[0] if providers else None


class InferenceEngine:
    """
    Loaded classifier bound to one execution backend.

    Usage:
        engine = InferenceEngine.load_file(Path("./models/leafroll.onnx"), "auto")
        confidence = engine.infer(tensor)  # float in [0, 1]

        engine.describe()
        # {'backend': 'cpu', 'provider': 'CPUExecutionProvider', ...}
    """

    def __init__(self, session: Any, backend: str, provider: str, attempts: List[BackendAttempt]):
        self._session = session
        self.backend = backend
        self.provider = provider
        self.attempts = attempts

        inputs = session.get_inputs()
        if not inputs:
            raise ModelLoadError("Model declares no input tensor")
        model_input = inputs[0]
        self.input_name = model_input.name
        self.input_shape = list(model_input.shape)

    @classmethod
    def load(
        cls,
        model_bytes: bytes,
        accelerator_preference: str = "auto",
        backends: Sequence[AcceleratorBackend] = DEFAULT_BACKENDS,
        session_factory: SessionFactory = _create_session,
        available_providers: Optional[Sequence[str]] = None,
    ) -> "InferenceEngine":
        """
        Load the model, walking the backend chain.

        Args:
            model_bytes: Complete model file contents
            accelerator_preference: "auto", or the backend to start from
            backends: Ordered backend chain
            session_factory: Builds a session from (bytes, providers)
            available_providers: Providers compiled into the runtime
                (default: onnxruntime.get_available_providers())

        Returns:
            InferenceEngine on the first backend that loads

        Raises:
            ModelLoadError: If the bytes are empty, every backend failed, or the
                loaded session exposes no input tensor
        """
        if not model_bytes:
            raise ModelLoadError("Model byte sequence is empty")

        try:
            chain = backend_chain(accelerator_preference, backends)
        except ValueError as e:
            raise ModelLoadError(str(e)) from e

        if available_providers is None:
            available_providers = ort.get_available_providers()

        attempts: List[BackendAttempt] = []
        for backend in chain:
            attempt = try_backend(backend, model_bytes, available_providers, session_factory)
            attempts.append(attempt)

            if attempt.ok:
                try:
                    engine = cls(attempt.session, attempt.backend, attempt.provider, attempts)
                except (AttributeError, IndexError, TypeError) as e:
                    raise ModelLoadError(f"Session on {attempt.backend} is unusable: {e}") from e

                _log.info(
                    event=LogEvent.MODEL_LOADED,
                    message=f"Model loaded ({attempt.describe()})",
                    metadata={'backend': attempt.backend, 'provider': attempt.provider},
                )
                return engine

            metadata = {'backend': attempt.backend, 'reason': str(attempt.error)}
            if backend.optional:
                _log.info(
                    event=LogEvent.MODEL_BACKEND_FALLBACK,
                    message=f"Backend skipped ({attempt.describe()})",
                    metadata=metadata,
                )
            else:
                _log.error(
                    event=LogEvent.MODEL_LOAD_ERROR,
                    message=f"Backend failed ({attempt.describe()})",
                    metadata=metadata,
                )

        raise ModelLoadError(
            "No execution backend could load the model:\n"
            + "\n".join(f"  - {a.describe()}" for a in attempts)
        )

    @classmethod
    def load_file(
        cls,
        model_path: Path,
        accelerator_preference: str = "auto",
        **kwargs,
    ) -> "InferenceEngine":
        """
        Read a model file fully into memory and load it.

        Raises:
            ModelLoadError: If the file cannot be read or loaded
        """
        try:
            model_bytes = Path(model_path).read_bytes()
        except OSError as e:
            raise ModelLoadError(f"Unable to read model file {model_path}: {e}") from e

        return cls.load(model_bytes, accelerator_preference, **kwargs)

    def infer(self, tensor: np.ndarray) -> float:
        """
        Run one forward pass.

        Args:
            tensor: (H, W, C) float32 input; the batch axis is added here

        Returns:
            Confidence in [0, 1]

        Raises:
            InferenceError: If the runtime fails or the output is not a probability
        """
        batch = np.ascontiguousarray(tensor[np.newaxis], dtype=np.float32)

        try:
            outputs = self._session.run(None, {self.input_name: batch})
        except Exception as e:
            raise InferenceError(f"Forward pass failed: {e}") from e

        if not outputs or np.size(outputs[0]) == 0:
            raise InferenceError("Model produced no output")

        confidence = float(np.asarray(outputs[0]).reshape(-1)[0])
        if not 0.0 <= confidence <= 1.0:
            raise InferenceError(f"Model output {confidence} is outside [0, 1]")

        return confidence

    def describe(self) -> Dict[str, Any]:
        """
        Get information about the loaded model.

        Returns:
            Dictionary with backend, provider, input name/shape, and the
            outcome of every attempted backend
        """
        return {
            "backend": self.backend,
            "provider": self.provider,
            "input_name": self.input_name,
            "input_shape": self.input_shape,
            "attempts": [a.describe() for a in self.attempts],
        }
