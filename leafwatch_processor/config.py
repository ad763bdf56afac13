"""
Configuration schema for the inspection service.

This module defines the configuration structure for the inspector, including
camera settings, model and preprocessing parameters, pacing, confidence
thresholds, alert tone shape, and the optional MQTT mirror.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple
import yaml


@dataclass(frozen=True)
class CameraConfig:
    """
    Camera source configuration.

    Sources:
    - camera: live device opened through OpenCV (device_index)
    - video: file replay paced at the file's native FPS (video_path)
    """

    source: str = "camera"  # "camera" or "video"
    device_index: int = 0
    video_path: Optional[str] = None
    resolution_wh: Tuple[int, int] = (640, 480)  # (width, height)
    max_outstanding: int = 2

    def __post_init__(self):
        """Validate camera configuration."""
        valid_sources = {"camera", "video"}
        if self.source not in valid_sources:
            raise ValueError(
                f"Invalid camera source: {self.source}. "
                f"Must be one of {valid_sources}"
            )

        if self.source == "video" and not self.video_path:
            raise ValueError("video_path is required when source is 'video'")

        width, height = self.resolution_wh
        if width <= 0 or height <= 0:
            raise ValueError(
                f"resolution_wh must have positive dimensions, got {self.resolution_wh}"
            )
        if width % 2 or height % 2:
            raise ValueError(
                f"resolution_wh must be even for 4:2:0 chroma, got {self.resolution_wh}"
            )

        if self.max_outstanding < 1:
            raise ValueError(
                f"max_outstanding must be >= 1, got {self.max_outstanding}"
            )


@dataclass(frozen=True)
class ModelConfig:
    """
    Classifier model and preprocessing configuration.

    The model is an opaque ONNX file: one float tensor in (NHWC), one
    confidence scalar out. Preprocessing crops or pads the RGB frame to
    crop_box_hw, resizes it to input_size_hw, and maps pixels through
    (x - normalize_mean) / normalize_std.
    """

    model_path: Path = Path("./models/leafroll.onnx")
    accelerator: str = "auto"  # auto, gpu, platform, cpu
    crop_box_hw: Tuple[int, int] = (224, 298)
    input_size_hw: Tuple[int, int] = (224, 298)
    normalize_mean: float = 0.0
    normalize_std: float = 255.0

    def __post_init__(self):
        """Validate model configuration."""
        valid_accelerators = {"auto", "gpu", "platform", "cpu"}
        if self.accelerator not in valid_accelerators:
            raise ValueError(
                f"Invalid accelerator: {self.accelerator}. "
                f"Must be one of {valid_accelerators}"
            )

        for name in ("crop_box_hw", "input_size_hw"):
            height, width = getattr(self, name)
            if height <= 0 or width <= 0:
                raise ValueError(
                    f"{name} must have positive dimensions, got {getattr(self, name)}"
                )

        if self.normalize_std == 0:
            raise ValueError("normalize_std cannot be zero")


@dataclass(frozen=True)
class PacingConfig:
    """Frame pacing configuration."""

    frame_interval_ms: float = 300.0

    def __post_init__(self):
        if self.frame_interval_ms < 0:
            raise ValueError(
                f"frame_interval_ms must be >= 0, got {self.frame_interval_ms}"
            )


@dataclass(frozen=True)
class ThresholdConfig:
    """Confidence thresholds for labelling and alerting."""

    positive: float = 0.5
    alert: float = 0.75

    def __post_init__(self):
        """Validate thresholds."""
        for name in ("positive", "alert"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} threshold must be in [0.0, 1.0], got {value}")


@dataclass(frozen=True)
class AlertConfig:
    """Alert tone configuration."""

    frequency_hz: float = 1000.0
    duration_ms: int = 300
    sample_rate: int = 44100
    fade_fraction: float = 0.2
    enabled: bool = False  # initial state of the user toggle

    def __post_init__(self):
        """Validate tone parameters."""
        if self.duration_ms <= 0:
            raise ValueError(f"duration_ms must be > 0, got {self.duration_ms}")

        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be > 0, got {self.sample_rate}")

        # Nyquist limit
        if not 0 < self.frequency_hz < self.sample_rate / 2:
            raise ValueError(
                f"frequency_hz must be in (0, {self.sample_rate / 2}), got {self.frequency_hz}"
            )

        if not 0.0 <= self.fade_fraction <= 1.0:
            raise ValueError(
                f"fade_fraction must be in [0.0, 1.0], got {self.fade_fraction}"
            )


@dataclass(frozen=True)
class LabelConfig:
    """User-visible result texts."""

    positive_text: str = "Leaf roll detected"
    negative_text: str = "No leaf roll detected"
    waiting_text: str = "Waiting for input..."


@dataclass(frozen=True)
class MQTTConfig:
    """MQTT broker configuration."""

    broker: str
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    qos: int = 0  # Result mirror QoS (fire-and-forget)

    result_topic: str = "leafwatch/data/results/{service_id}"
    command_topic: str = "leafwatch/control/{service_id}/commands"
    status_topic: str = "leafwatch/control/{service_id}/status"

    def __post_init__(self):
        """Validate MQTT configuration."""
        if not 1 <= self.port <= 65535:
            raise ValueError(
                f"MQTT port must be in [1, 65535], got {self.port}"
            )

        if self.qos not in {0, 1, 2}:
            raise ValueError(
                f"MQTT QoS must be 0, 1, or 2, got {self.qos}"
            )


@dataclass(frozen=True)
class InspectorConfig:
    """
    Main configuration for the inspection service.

    This configuration is loaded from YAML and validated at startup.
    Immutable after construction (frozen dataclass).
    """

    # Service identification
    service_id: str

    camera: CameraConfig = field(default_factory=CameraConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    pacing: PacingConfig = field(default_factory=PacingConfig)
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    alert: AlertConfig = field(default_factory=AlertConfig)
    labels: LabelConfig = field(default_factory=LabelConfig)

    # Remote mirror is optional
    mqtt_config: Optional[MQTTConfig] = None

    def __post_init__(self):
        """Validate inspector configuration."""
        if not self.service_id:
            raise ValueError("service_id cannot be empty")

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "InspectorConfig":
        """
        Load configuration from YAML file.

        Example YAML:
            service_id: "field_01"

            camera:
              source: "camera"
              device_index: 0
              resolution_wh: [640, 480]

            model:
              model_path: "./models/leafroll.onnx"
              accelerator: "auto"
              crop_box_hw: [224, 298]
              input_size_hw: [224, 298]
              normalize_mean: 0.0
              normalize_std: 255.0

            pacing:
              frame_interval_ms: 300

            thresholds:
              positive: 0.5
              alert: 0.75

            alert:
              enabled: true

            mqtt_config:
              broker: "localhost"
              port: 1883
        """
        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        camera_data = dict(data.get("camera", {}))
        if "resolution_wh" in camera_data:
            camera_data["resolution_wh"] = tuple(camera_data["resolution_wh"])
        camera = CameraConfig(**camera_data)

        model_data = dict(data.get("model", {}))
        if "model_path" in model_data:
            model_data["model_path"] = Path(model_data["model_path"])
        for key in ("crop_box_hw", "input_size_hw"):
            if key in model_data:
                model_data[key] = tuple(model_data[key])
        model = ModelConfig(**model_data)

        mqtt_config_data = data.get("mqtt_config")
        mqtt_config = MQTTConfig(**mqtt_config_data) if mqtt_config_data else None

        return cls(
            service_id=data["service_id"],
            camera=camera,
            model=model,
            pacing=PacingConfig(**data.get("pacing", {})),
            thresholds=ThresholdConfig(**data.get("thresholds", {})),
            alert=AlertConfig(**data.get("alert", {})),
            labels=LabelConfig(**data.get("labels", {})),
            mqtt_config=mqtt_config,
        )
