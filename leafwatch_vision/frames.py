"""
Frame Types
===========

Bounded Context: Camera frame ownership and RGB rasters

Types:
- PlaneView: one image plane with its own row and pixel stride
- RawFrame: 4:2:0 camera frame (Y, U, V planes), released exactly once
- RgbBuffer: reusable interleaved RGB raster, resized only on dimension change

Ownership:
- RawFrame belongs to the camera source; the pipeline borrows it and must call
  release() once, whichever terminal state the frame reaches.
- RgbBuffer belongs to the inference worker; ensure_capacity() precedes every
  conversion.
"""

import threading
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class PlaneView:
    """
    One plane of a camera frame.

    Attributes:
        buffer: Flat uint8 view over the plane memory
        row_stride: Bytes between the starts of consecutive rows
        pixel_stride: Bytes between consecutive samples in a row

    Example:
        >>> y = PlaneView(np.zeros(640 * 480, dtype=np.uint8), row_stride=640)
    """
    buffer: np.ndarray
    row_stride: int
    pixel_stride: int = 1

    def __post_init__(self):
        """Validate invariants."""
        if self.buffer.ndim != 1:
            object.__setattr__(self, "buffer", self.buffer.reshape(-1))
        if self.row_stride <= 0:
            raise ValueError(f"row_stride must be > 0, got {self.row_stride}")
        if self.pixel_stride <= 0:
            raise ValueError(f"pixel_stride must be > 0, got {self.pixel_stride}")

    def required_length(self, width: int, height: int) -> int:
        """Minimum buffer length holding height rows of width samples."""
        if width == 0 or height == 0:
            return 0
        return (height - 1) * self.row_stride + (width - 1) * self.pixel_stride + 1

    def row(self, index: int, width: int) -> np.ndarray:
        """View of one row's samples (no copy)."""
        start = index * self.row_stride
        stop = start + (width - 1) * self.pixel_stride + 1
        return self.buffer[start:stop:self.pixel_stride]


class RawFrame:
    """
    Camera-delivered 4:2:0 frame.

    The frame is borrowed from its source. release() hands the memory back and
    must be called exactly once; a second call is a programming error.

    Attributes:
        width: Luma width in pixels (even)
        height: Luma height in pixels (even)
        y, u, v: PlaneView for each plane (chroma at half resolution)
        timestamp_ms: Monotonic capture time in milliseconds
        frame_id: Sequential frame number assigned by the source
    """

    def __init__(
        self,
        width: int,
        height: int,
        y: PlaneView,
        u: PlaneView,
        v: PlaneView,
        timestamp_ms: float,
        frame_id: int = 0,
        on_release: Optional[Callable[["RawFrame"], None]] = None,
    ):
        self.width = width
        self.height = height
        self.y = y
        self.u = u
        self.v = v
        self.timestamp_ms = timestamp_ms
        self.frame_id = frame_id
        self._on_release = on_release
        self._released = False
        self._release_lock = threading.Lock()

    @property
    def size_wh(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """
        Return the frame to its source.

        Raises:
            RuntimeError: If the frame was already released
        """
        with self._release_lock:
            if self._released:
                raise RuntimeError(f"Frame {self.frame_id} released twice")
            self._released = True

        if self._on_release is not None:
            self._on_release(self)

    @classmethod
    def from_i420(
        cls,
        i420: np.ndarray,
        width: int,
        height: int,
        timestamp_ms: float,
        frame_id: int = 0,
        on_release: Optional[Callable[["RawFrame"], None]] = None,
    ) -> "RawFrame":
        """
        Wrap a contiguous I420 buffer (as produced by OpenCV) as a RawFrame.

        Args:
            i420: Array of height * 3 / 2 rows by width columns (or flat)
            width: Frame width in pixels
            height: Frame height in pixels
            timestamp_ms: Capture time in milliseconds
            frame_id: Sequential frame number
            on_release: Callback invoked once on release

        Returns:
            RawFrame whose planes are views into i420
        """
        flat = i420.reshape(-1)
        y_size = width * height
        c_size = y_size // 4
        return cls(
            width=width,
            height=height,
            y=PlaneView(flat[:y_size], row_stride=width),
            u=PlaneView(flat[y_size:y_size + c_size], row_stride=width // 2),
            v=PlaneView(flat[y_size + c_size:y_size + 2 * c_size], row_stride=width // 2),
            timestamp_ms=timestamp_ms,
            frame_id=frame_id,
            on_release=on_release,
        )


@dataclass
class RgbBuffer:
    """
    Reusable interleaved 8-bit RGB raster.

    Attributes:
        pixels: (height, width, 3) uint8 array, overwritten in place per frame
        allocations: Number of times pixels was (re)allocated

    Example:
        >>> buf = RgbBuffer()
        >>> buf.ensure_capacity(640, 480)
        True
        >>> buf.ensure_capacity(640, 480)
        False
    """
    pixels: np.ndarray = field(default_factory=lambda: np.zeros((0, 0, 3), dtype=np.uint8))
    allocations: int = 0

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    def ensure_capacity(self, width: int, height: int) -> bool:
        """
        Match the raster to the given frame dimensions.

        Returns:
            True if the raster was reallocated, False if reused
        """
        if self.width == width and self.height == height:
            return False

        self.pixels = np.zeros((height, width, 3), dtype=np.uint8)
        self.allocations += 1
        return True
