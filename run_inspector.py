#!/usr/bin/env python3
"""
Leaf Roll Inspector - Entry Point
=================================

This script starts the inspection service, which:
- Captures frames from a camera (or replays a video file)
- Classifies paced frames with an ONNX leaf roll model
- Shows the verdict and confidence, beeping on confident detections
- Optionally mirrors results and accepts commands over MQTT

Usage:
    python run_inspector.py --config config/inspector.yaml
    python run_inspector.py --config config/inspector.yaml --headless

UI:
    The main thread is the UI thread. It drains the dispatcher and either
    renders a status window (keys: a = toggle alert, q / Esc = quit) or, with
    --headless, logs every result change.

Signals:
    - SIGTERM: Graceful shutdown
    - SIGINT (Ctrl+C): Graceful shutdown

Logs:
    - Console: INFO level
    - File: logs/inspector.log (INFO level)
"""

import argparse
import signal
import sys
import logging
import threading
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from leafwatch_processor import InspectionService, InspectionSnapshot, QueueDispatcher
from leafwatch_processor.config import InspectorConfig
from leafwatch_control import MQTTControlPlane
from leafwatch_mqtt import ResultPublisher, attach_handler, create_logger

WINDOW_NAME = "Leafwatch"
KEY_ESC = 27


# ─────────────────────────────────────────────────────────────────────────────
# Logging Setup
# ─────────────────────────────────────────────────────────────────────────────

def setup_logging(log_file: Optional[Path] = None) -> logging.Logger:
    """
    Setup logging for the inspector.

    Args:
        log_file: Optional path to log file (default: logs/inspector.log)
    """
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            *(
                [logging.FileHandler(log_file)]
                if log_file
                else []
            )
        ]
    )

    # Structured events are JSON lines in the same file
    if log_file:
        attach_handler(logging.FileHandler(log_file))

    return logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# UI
# ─────────────────────────────────────────────────────────────────────────────

def render_status(snapshot: InspectionSnapshot, size_wh=(480, 160)) -> np.ndarray:
    """Draw the overlay panel for a snapshot (BGR image)."""
    width, height = size_wh
    panel = np.zeros((height, width, 3), dtype=np.uint8)

    if snapshot.label is None:
        color = (200, 200, 200)
    elif snapshot.label.value == "Positive":
        color = (0, 0, 255)
    else:
        color = (0, 200, 0)

    cv2.putText(panel, snapshot.result_text, (12, 40),
                cv2.FONT_HERSHEY_SIMPLEX, 0.8, color, 2, cv2.LINE_AA)
    cv2.putText(panel, f"Confidence: {snapshot.confidence:.2f}", (12, 80),
                cv2.FONT_HERSHEY_SIMPLEX, 0.6, (255, 255, 255), 1, cv2.LINE_AA)

    flags = [
        "model ready" if snapshot.ready else "loading model",
        "alert on" if snapshot.alert_enabled else "alert off",
    ]
    if not snapshot.preview_available:
        flags.append("no camera")
    cv2.putText(panel, " | ".join(flags), (12, 120),
                cv2.FONT_HERSHEY_SIMPLEX, 0.5, (180, 180, 180), 1, cv2.LINE_AA)
    cv2.putText(panel, "[a] toggle alert  [q] quit", (12, 148),
                cv2.FONT_HERSHEY_SIMPLEX, 0.45, (120, 120, 120), 1, cv2.LINE_AA)
    return panel


# ─────────────────────────────────────────────────────────────────────────────
# Main Service
# ─────────────────────────────────────────────────────────────────────────────

class InspectorApp:
    """
    Main application wrapper for InspectionService.

    Handles:
    - Configuration loading
    - Optional MQTT components
    - The UI loop on the main thread
    - Signal handling and graceful shutdown
    """

    def __init__(self, config_path: Path, log_file: Optional[Path] = None, headless: bool = False):
        self.config_path = config_path
        self.headless = headless
        self.logger = setup_logging(log_file)

        self.config: Optional[InspectorConfig] = None
        self.dispatcher = QueueDispatcher()
        self.control_plane: Optional[MQTTControlPlane] = None
        self.result_publisher: Optional[ResultPublisher] = None
        self.service: Optional[InspectionService] = None

        self._stop_event = threading.Event()
        self._shutdown_done = False
        self._last_text: Optional[str] = None

    def setup(self):
        """
        Setup all components.

        Steps:
        1. Load configuration from YAML
        2. Create MQTT control plane and result publisher (if configured)
        3. Create InspectionService and its scheduler
        """
        self.logger.info("=" * 80)
        self.logger.info("🚀 Leafwatch Inspector - Starting")
        self.logger.info("=" * 80)

        self.logger.info(f"📄 Loading configuration: {self.config_path}")
        self.config = InspectorConfig.from_yaml(self.config_path)
        self.logger.info(f"✅ Configuration loaded (service_id={self.config.service_id})")

        if self.config.mqtt_config is not None:
            self.logger.info("🔌 Creating MQTT control plane and result publisher")
            self.control_plane = MQTTControlPlane.from_config(
                self.config.mqtt_config, self.config.service_id
            )
            self.result_publisher = ResultPublisher.from_config(
                self.config.mqtt_config,
                self.config.service_id,
                logger=create_logger(component="result_publisher"),
            )
            self.logger.info(f"  - Result topic: {self.result_publisher.topic}")
            self.logger.info(f"  - Command topic: {self.control_plane.command_topic}")
        else:
            self.logger.info("ℹ️  No mqtt_config, running local-only")

        self.service = InspectionService(
            config=self.config,
            dispatcher=self.dispatcher,
            control_plane=self.control_plane,
            result_publisher=self.result_publisher,
        )
        self.service.setup()
        self.service.sink.subscribe(self._log_result)

        self.logger.info("✅ Service created")
        self.logger.info("=" * 80)

    def _log_result(self, snapshot: InspectionSnapshot) -> None:
        if snapshot.result_text != self._last_text:
            self._last_text = snapshot.result_text
            self.logger.info(f"🔎 {snapshot.result_text} ({snapshot.confidence:.2f})")

    def run(self):
        """Start the service and run the UI loop until shutdown is requested."""
        if not self.service:
            raise RuntimeError("Service not initialized. Call setup() first.")

        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        try:
            self.service.start()
            self.logger.info("✅ Service started successfully")
            self.logger.info("Press Ctrl+C to stop")
            self.logger.info("=" * 80)

            if self.headless:
                self.dispatcher.run_until(self._stop_event)
            else:
                self._window_loop()

        finally:
            self.shutdown()

    def _window_loop(self):
        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_AUTOSIZE)
        try:
            while not self._stop_event.is_set():
                self.dispatcher.run_pending()
                cv2.imshow(WINDOW_NAME, render_status(self.service.sink.snapshot))

                key = cv2.waitKey(30) & 0xFF
                if key == ord('a'):
                    self.service.toggle_alert()
                elif key in (ord('q'), KEY_ESC):
                    self._stop_event.set()
        finally:
            cv2.destroyWindow(WINDOW_NAME)

    def shutdown(self):
        """Stop the service, then run UI work queued during teardown."""
        if self._shutdown_done:
            return
        self._shutdown_done = True

        self.logger.info("=" * 80)
        self.logger.info("🛑 Shutting down inspector")
        self.logger.info("=" * 80)

        if self.service and self.service.is_running:
            self.service.stop()
        self.dispatcher.run_pending()

        self.logger.info("✅ Shutdown complete")

    def _signal_handler(self, signum, frame):
        signal_name = signal.Signals(signum).name
        self.logger.info(f"⚠️  Received signal {signal_name} ({signum})")
        self._stop_event.set()


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────

def parse_args():
    parser = argparse.ArgumentParser(
        description="Leafwatch Inspector - camera + ONNX leaf roll classifier",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start with status window
  python run_inspector.py --config config/inspector.yaml

  # No window, results in the log
  python run_inspector.py --config config/inspector.yaml --headless

  # Console logging only
  python run_inspector.py --config config/inspector.yaml --no-log-file
        """
    )

    parser.add_argument(
        '--config',
        type=Path,
        required=True,
        help='Path to inspector configuration YAML file'
    )
    parser.add_argument(
        '--log-file',
        type=Path,
        default=Path('logs/inspector.log'),
        help='Path to log file (default: logs/inspector.log)'
    )
    parser.add_argument(
        '--no-log-file',
        action='store_true',
        help='Disable file logging (console only)'
    )
    parser.add_argument(
        '--headless',
        action='store_true',
        help='No window; the main thread only drains UI work and logs results'
    )

    return parser.parse_args()


def main():
    args = parse_args()

    log_file = None if args.no_log_file else args.log_file

    if not args.config.exists():
        print(f"❌ Error: Configuration file not found: {args.config}", file=sys.stderr)
        sys.exit(1)

    app = InspectorApp(
        config_path=args.config,
        log_file=log_file,
        headless=args.headless,
    )

    try:
        app.setup()
        app.run()
    except Exception as e:
        print(f"❌ Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
