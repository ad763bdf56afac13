"""
Inspection Service - pipeline orchestrator.

This module provides the InspectionService class which wires the camera
source, the pipeline scheduler, the audible alert, and the UI state sink,
plus the optional MQTT control plane and result mirror.

Threading Model:
- Camera Source Thread (CameraSourceThread, calls scheduler.on_frame)
- Inference Thread (single-worker executor, model load + per-frame work)
- UI Thread (whoever drains the UiDispatcher; sole writer of StateSink)
- Control Plane Thread (paho-mqtt internal, command handlers)
- Result Publisher Thread (paho-mqtt internal, network I/O)

Lifecycle:
    setup() → start() → wait() → stop()

Teardown order:
    1. Cancel pending inference work and release the worker
    2. Stop the camera source
    3. Stop any in-flight tone
    4. Disconnect MQTT
"""

import logging
import threading
from dataclasses import asdict
from typing import Any, Dict, Optional

from leafwatch_alert import AlertSignal
from leafwatch_mqtt.logging import LogEvent, StructuredLogger
from leafwatch_processor.config import CameraConfig, InspectorConfig
from leafwatch_processor.engine import InferenceEngine
from leafwatch_processor.errors import ResourceBindError
from leafwatch_processor.pacer import FramePacer
from leafwatch_processor.scheduler import EngineLoader, PipelineScheduler
from leafwatch_processor.state import InspectionSnapshot, StateSink, UiDispatcher
from leafwatch_vision.preprocessor import Preprocessor
from leafwatch_vision.sources import CameraSource, OpenCVCameraSource, VideoFileSource

logger = logging.getLogger(__name__)


def build_camera_source(config: CameraConfig) -> CameraSource:
    """Create the camera source described by config."""
    if config.source == "video":
        return VideoFileSource(
            video_path=config.video_path,
            resolution_wh=config.resolution_wh,
            max_outstanding=config.max_outstanding,
        )
    return OpenCVCameraSource(
        device_index=config.device_index,
        resolution_wh=config.resolution_wh,
        max_outstanding=config.max_outstanding,
    )


class InspectionService:
    """
    Main inspection service.

    Thread Safety:
    - sink: written only through the dispatcher (UI thread)
    - scheduler: camera thread enters on_frame, worker owns the rest
    - alert: internally locked

    Usage:
        config = InspectorConfig.from_yaml("config/inspector.yaml")
        dispatcher = QueueDispatcher()
        service = InspectionService(config, dispatcher)

        service.setup()
        service.start()
        dispatcher.run_until(stop_event)   # UI loop
        service.stop()
    """

    def __init__(
        self,
        config: InspectorConfig,
        dispatcher: UiDispatcher,
        camera_source: Optional[CameraSource] = None,
        engine_loader: Optional[EngineLoader] = None,
        alert: Optional[AlertSignal] = None,
        control_plane=None,  # MQTTControlPlane
        result_publisher=None,  # ResultPublisher
    ):
        """
        Initialize inspection service.

        Args:
            config: Inspector configuration
            dispatcher: Hands work to the UI thread
            camera_source: Frame source (default: built from config.camera)
            engine_loader: Loads the model (default: model file from config.model)
            alert: Audible alert (default: built from config.alert)
            control_plane: Optional MQTT control plane for commands
            result_publisher: Optional MQTT mirror of published snapshots
        """
        self.config = config
        self.dispatcher = dispatcher
        self.camera_source = camera_source or build_camera_source(config.camera)
        self.engine_loader = engine_loader or self._load_engine_from_config
        self.alert = alert or AlertSignal.from_config(config.alert)
        self.control_plane = control_plane
        self.result_publisher = result_publisher

        self.sink = StateSink(
            InspectionSnapshot(
                result_text=config.labels.waiting_text,
                alert_enabled=config.alert.enabled,
            )
        )
        self.scheduler: Optional[PipelineScheduler] = None
        self._log = StructuredLogger(component="inspection_service")

        self._running = False
        self._stopped_event = threading.Event()

        logger.info(f"InspectionService initialized for service_id={config.service_id}")

    def _load_engine_from_config(self) -> InferenceEngine:
        # Runs on the inference thread
        return InferenceEngine.load_file(
            self.config.model.model_path,
            self.config.model.accelerator,
        )

    def setup(self) -> None:
        """
        Build the scheduler and register handlers.

        Must be called before start().
        """
        self.scheduler = PipelineScheduler(
            engine_loader=self.engine_loader,
            sink=self.sink,
            dispatcher=self.dispatcher,
            pacer=FramePacer(self.config.pacing.frame_interval_ms),
            preprocessor=Preprocessor.from_config(self.config.model),
            alert=self.alert,
            thresholds=self.config.thresholds,
            labels=self.config.labels,
        )

        if self.control_plane is not None:
            self._setup_control_handlers()

        if self.result_publisher is not None:
            self.sink.subscribe(self.result_publisher.publish_snapshot)

        logger.info("Pipeline setup complete")

    def _setup_control_handlers(self) -> None:
        registry = self.control_plane.command_registry

        registry.register("enable_alert", self._handle_enable_alert, "Enable the audible alert")
        registry.register("disable_alert", self._handle_disable_alert, "Disable the audible alert")
        registry.register("toggle_alert", self._handle_toggle_alert, "Flip the audible alert")
        registry.register("status", self._handle_status, "Report the current inspection state")
        registry.register("stats", self._handle_stats, "Report pipeline statistics")

        logger.info(f"Control handlers registered: {sorted(registry.available_commands)}")

    def start(self) -> None:
        """
        Start the service (non-blocking).

        Lifecycle:
        1. Connect MQTT (optional; failures leave the service local-only)
        2. Load the model on the inference thread
        3. Bind the camera (failure → degraded, no preview)
        """
        if self.scheduler is None:
            raise RuntimeError("setup() must be called before start()")
        if self._running:
            logger.warning("Service already running")
            return

        logger.info("Starting inspection service")

        if self.control_plane is not None and not self.control_plane.connect(timeout=5.0):
            logger.error("Control plane unavailable, remote commands disabled")
        if self.result_publisher is not None and not self.result_publisher.connect():
            logger.warning("Result mirror offline, results skipped until the broker is reachable")

        self.scheduler.load_model()

        try:
            self.camera_source.start(self.scheduler.on_frame)
        except ResourceBindError as e:
            self._log.error(
                event=LogEvent.CAMERA_BIND_ERROR,
                message="Camera could not be bound",
                exc_info=e,
            )
            self._log.warning(
                event=LogEvent.PIPELINE_DEGRADED,
                message="Running without preview",
            )
            self.dispatcher.post(lambda: self.sink.set_preview_available(False))

        self._running = True
        self._stopped_event.clear()

        if self.control_plane is not None:
            self.control_plane.publish_status("running")
        logger.info("✅ Inspection service started")

    @property
    def is_running(self) -> bool:
        return self._running

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until stop() completes.

        Returns:
            True if the service stopped, False on timeout
        """
        return self._stopped_event.wait(timeout)

    def stop(self) -> None:
        """Stop the service gracefully, in teardown order."""
        if not self._running:
            logger.warning("Service not running")
            return

        logger.info("Stopping inspection service")

        self.scheduler.shutdown()
        self.camera_source.stop()
        self.alert.stop()

        if self.result_publisher is not None:
            self.result_publisher.disconnect()
        if self.control_plane is not None:
            self.control_plane.publish_status("stopped", self.scheduler.stats().to_dict())
            self.control_plane.disconnect()

        self._running = False
        self._stopped_event.set()
        logger.info("✅ Inspection service stopped")

    # ─────────────────────────────────────────────────────────────────────
    # UI actions (UI Thread)
    # ─────────────────────────────────────────────────────────────────────

    def set_alert_enabled(self, enabled: bool) -> None:
        """User toggle for the audible alert."""
        self.sink.set_alert_enabled(enabled)
        if not enabled:
            self.alert.stop()

        self._log.info(
            event=LogEvent.ALERT_TOGGLED,
            message=f"Alert {'enabled' if enabled else 'disabled'}",
        )
        if self.control_plane is not None:
            self.control_plane.publish_status(
                "alert_enabled" if enabled else "alert_disabled",
                {"alert_enabled": enabled},
            )

    def toggle_alert(self) -> None:
        self.set_alert_enabled(not self.sink.alert_enabled)

    def describe(self) -> Dict[str, Any]:
        """Current snapshot plus service identity (any thread)."""
        snapshot = asdict(self.sink.snapshot)
        label = snapshot.pop("label")
        return {
            "service_id": self.config.service_id,
            "running": self._running,
            "label": label.value if label is not None else None,
            **snapshot,
        }

    # ─────────────────────────────────────────────────────────────────────
    # Command Handlers (Control Plane Thread)
    # ─────────────────────────────────────────────────────────────────────

    def _handle_enable_alert(self, command: Dict) -> None:
        self.dispatcher.post(lambda: self.set_alert_enabled(True))

    def _handle_disable_alert(self, command: Dict) -> None:
        self.dispatcher.post(lambda: self.set_alert_enabled(False))

    def _handle_toggle_alert(self, command: Dict) -> None:
        self.dispatcher.post(self.toggle_alert)

    def _handle_status(self, command: Dict) -> Dict[str, Any]:
        return self.describe()

    def _handle_stats(self, command: Dict) -> Dict[str, Any]:
        stats = self.scheduler.stats().to_dict()
        stats["camera_outstanding"] = self.camera_source.outstanding
        return stats
