"""
Camera Sources - frame producers feeding the pipeline.

Sources capture BGR images, convert them to I420 planes, and deliver RawFrame
instances to a callback on their own capture thread (the camera callback
context). The callback must return quickly; it never waits on inference.

Backpressure:
- Each source lends at most max_outstanding frames at a time
- While that many are unreleased, new captures are discarded (keep only latest)
- Captures that cannot be converted are discarded and logged; capture goes on

Sources:
- OpenCVCameraSource: live device via cv2.VideoCapture
- VideoFileSource: file replay via supervision, paced at the file's FPS

Threading:
- start() spawns the capture thread and returns
- stop() signals the thread and joins it
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Iterator, Optional, Tuple

import cv2
import numpy as np
import supervision as sv

from leafwatch_processor.errors import ResourceBindError
from leafwatch_vision.frames import RawFrame

logger = logging.getLogger(__name__)

FrameCallback = Callable[[RawFrame], None]


class CameraSource(ABC):
    """
    Abstract threaded frame source.

    Subclasses implement _open() and _frames(); the base class owns the capture
    thread, frame numbering, and outstanding-frame accounting.
    """

    def __init__(self, resolution_wh: Tuple[int, int], max_outstanding: int = 2):
        self.resolution_wh = resolution_wh
        self.max_outstanding = max_outstanding

        self._callback: Optional[FrameCallback] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        self._outstanding = 0
        self._outstanding_lock = threading.Lock()
        self._frame_id = 0
        self._discarded = 0

    @abstractmethod
    def _open(self) -> None:
        """Acquire the device or file. Raise ResourceBindError on failure."""
        raise NotImplementedError

    @abstractmethod
    def _frames(self) -> Iterator[np.ndarray]:
        """Yield BGR frames until exhausted or stopped."""
        raise NotImplementedError

    def _close(self) -> None:
        """Release the device or file."""

    def start(self, callback: FrameCallback) -> None:
        """
        Bind the source and start delivering frames.

        Raises:
            ResourceBindError: If the device or file cannot be opened
        """
        if self._thread is not None:
            logger.warning("Camera source already started")
            return

        self._open()
        self._callback = callback
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._capture_loop,
            name="CameraSourceThread",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Camera source started ({type(self).__name__})")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop delivering frames. Safe to call when not started."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        self._close()
        logger.info(
            f"Camera source stopped (delivered={self._frame_id}, discarded={self._discarded})"
        )

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def outstanding(self) -> int:
        with self._outstanding_lock:
            return self._outstanding

    def _capture_loop(self) -> None:
        try:
            for bgr in self._frames():
                if self._stop_event.is_set():
                    break
                self._deliver(bgr)
        except Exception as e:
            logger.error(f"Camera capture loop failed: {e}", exc_info=True)

    def _deliver(self, bgr: np.ndarray) -> None:
        with self._outstanding_lock:
            if self._outstanding >= self.max_outstanding:
                self._discarded += 1
                return
            self._outstanding += 1

        try:
            frame = self._to_frame(bgr)
        except (AttributeError, cv2.error, ValueError) as e:
            # Slot was never lent out
            with self._outstanding_lock:
                self._outstanding -= 1
                self._discarded += 1
            logger.warning(f"Capture with shape {getattr(bgr, 'shape', None)} discarded: {e}")
            return

        try:
            self._callback(frame)
        except Exception as e:
            logger.error(f"Frame callback raised: {e}", exc_info=True)
            if not frame.released:
                frame.release()

    def _to_frame(self, bgr: np.ndarray) -> RawFrame:
        if bgr.ndim != 3 or bgr.shape[2] != 3:
            raise ValueError("expected a 3-channel BGR image")

        width, height = self.resolution_wh
        if bgr.shape[1] != width or bgr.shape[0] != height:
            bgr = cv2.resize(bgr, (width, height), interpolation=cv2.INTER_AREA)

        i420 = cv2.cvtColor(bgr, cv2.COLOR_BGR2YUV_I420)
        frame_id = self._frame_id + 1
        frame = RawFrame.from_i420(
            i420,
            width=width,
            height=height,
            timestamp_ms=time.monotonic() * 1000.0,
            frame_id=frame_id,
            on_release=self._on_release,
        )
        self._frame_id = frame_id
        return frame

    def _on_release(self, frame: RawFrame) -> None:
        with self._outstanding_lock:
            self._outstanding -= 1


class OpenCVCameraSource(CameraSource):
    """
    Live camera device opened through OpenCV.

    Example:
        source = OpenCVCameraSource(device_index=0, resolution_wh=(640, 480))
        source.start(scheduler.on_frame)
    """

    def __init__(
        self,
        device_index: int = 0,
        resolution_wh: Tuple[int, int] = (640, 480),
        max_outstanding: int = 2,
    ):
        super().__init__(resolution_wh=resolution_wh, max_outstanding=max_outstanding)
        self.device_index = device_index
        self._capture: Optional[cv2.VideoCapture] = None

    def _open(self) -> None:
        capture = cv2.VideoCapture(self.device_index)
        if not capture.isOpened():
            capture.release()
            raise ResourceBindError(f"Unable to open camera device {self.device_index}")

        width, height = self.resolution_wh
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        self._capture = capture

    def _frames(self) -> Iterator[np.ndarray]:
        while not self._stop_event.is_set():
            ok, frame = self._capture.read()
            if not ok:
                logger.warning("Camera read failed, stopping capture")
                return
            yield frame

    def _close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None


class VideoFileSource(CameraSource):
    """
    Video file replayed as a live camera, paced at the file's native FPS.

    Example:
        source = VideoFileSource("./data/videos/vineyard.mp4")
        source.start(scheduler.on_frame)
    """

    def __init__(
        self,
        video_path: str,
        resolution_wh: Tuple[int, int] = (640, 480),
        max_outstanding: int = 2,
        loop: bool = False,
    ):
        super().__init__(resolution_wh=resolution_wh, max_outstanding=max_outstanding)
        self.video_path = video_path
        self.loop = loop
        self._video_info: Optional[sv.VideoInfo] = None

    def _open(self) -> None:
        try:
            self._video_info = sv.VideoInfo.from_video_path(self.video_path)
        except Exception as e:
            raise ResourceBindError(f"Unable to open video {self.video_path}: {e}") from e

        logger.info(
            f"Video source: {self.video_path} "
            f"({self._video_info.resolution_wh}, {self._video_info.fps} fps)"
        )

    def _frames(self) -> Iterator[np.ndarray]:
        period = 1.0 / self._video_info.fps if self._video_info.fps else 0.0

        while True:
            next_due = time.monotonic()
            for frame in sv.get_video_frames_generator(self.video_path):
                if self._stop_event.is_set():
                    return
                yield frame

                next_due += period
                delay = next_due - time.monotonic()
                if delay > 0 and self._stop_event.wait(delay):
                    return

            if not self.loop:
                logger.info("Video source exhausted")
                return
