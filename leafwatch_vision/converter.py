"""
Colorspace Converter - 4:2:0 camera frames to interleaved RGB.

Conversion runs in two stages:
1. Repack: copy the planes into a canonical NV21 layout (full Y plane followed
   by interleaved V/U pairs), honoring each plane's row and pixel stride.
2. Transform: OpenCV's fixed BT.601 YUV->RGB conversion over the NV21 buffer,
   written straight into the destination raster.

Stride handling varies per capture device while the colorspace math does not,
so only stage 1 ever looks at strides.

Memory:
- The NV21 scratch buffer is owned by the converter and reallocated only when
  frame dimensions change
- The RGB destination is supplied (and owned) by the caller

Thread Safety:
- NOT thread-safe (scratch buffer is shared state)
- Only used from the inference worker
"""

from typing import Optional, Tuple

import cv2
import numpy as np

from leafwatch_processor.errors import ConversionError
from leafwatch_vision.frames import PlaneView, RawFrame, RgbBuffer


class ColorspaceConverter:
    """
    YUV 4:2:0 to RGB converter with a reusable NV21 scratch buffer.

    Usage:
        converter = ColorspaceConverter()
        rgb = RgbBuffer()

        rgb.ensure_capacity(frame.width, frame.height)
        converter.convert(frame, rgb)
    """

    def __init__(self):
        self._nv21: Optional[np.ndarray] = None
        self._nv21_size: Tuple[int, int] = (0, 0)

    def convert(self, frame: RawFrame, destination: RgbBuffer) -> None:
        """
        Convert frame into destination in place.

        Args:
            frame: Camera frame (borrowed, not released here)
            destination: RGB raster already sized to the frame

        Raises:
            ValueError: If destination dimensions differ from the frame
            ConversionError: If the frame planes are malformed
        """
        if destination.width != frame.width or destination.height != frame.height:
            raise ValueError(
                f"Destination is {destination.width}x{destination.height}, "
                f"frame is {frame.width}x{frame.height}; call ensure_capacity() first"
            )

        nv21 = self.repack_nv21(frame)

        try:
            cv2.cvtColor(nv21, cv2.COLOR_YUV2RGB_NV21, dst=destination.pixels)
        except cv2.error as e:
            raise ConversionError(f"YUV->RGB transform failed: {e}") from e

    def repack_nv21(self, frame: RawFrame) -> np.ndarray:
        """
        Copy frame planes into the canonical NV21 scratch buffer.

        Returns:
            (height * 3 / 2, width) uint8 view of the scratch buffer
        """
        width, height = frame.width, frame.height
        self._validate(frame)

        nv21 = self._scratch(width, height)
        luma = nv21[:height]
        chroma = nv21[height:]

        # Luma row by row; stride may exceed width
        for row in range(height):
            luma[row] = frame.y.row(row, width)

        # One V,U pair per 2x2 luma block
        chroma_width = width // 2
        for row in range(height // 2):
            chroma[row, 0::2] = frame.v.row(row, chroma_width)
            chroma[row, 1::2] = frame.u.row(row, chroma_width)

        return nv21

    def _scratch(self, width: int, height: int) -> np.ndarray:
        if self._nv21 is None or self._nv21_size != (width, height):
            self._nv21 = np.empty((height * 3 // 2, width), dtype=np.uint8)
            self._nv21_size = (width, height)
        return self._nv21

    @staticmethod
    def _validate(frame: RawFrame) -> None:
        width, height = frame.width, frame.height

        if width <= 0 or height <= 0:
            raise ConversionError(f"Invalid frame dimensions: {width}x{height}")
        if width % 2 or height % 2:
            raise ConversionError(
                f"4:2:0 frames need even dimensions, got {width}x{height}"
            )

        planes = (
            ("Y", frame.y, width, height),
            ("U", frame.u, width // 2, height // 2),
            ("V", frame.v, width // 2, height // 2),
        )
        for name, plane, plane_w, plane_h in planes:
            _check_plane(name, plane, plane_w, plane_h)


def _check_plane(name: str, plane: PlaneView, width: int, height: int) -> None:
    if plane.buffer.dtype != np.uint8:
        raise ConversionError(f"{name} plane must be uint8, got {plane.buffer.dtype}")
    if plane.row_stride < (width - 1) * plane.pixel_stride + 1:
        raise ConversionError(
            f"{name} plane row_stride {plane.row_stride} shorter than one row"
        )
    required = plane.required_length(width, height)
    if plane.buffer.size < required:
        raise ConversionError(
            f"{name} plane holds {plane.buffer.size} bytes, needs {required}"
        )
