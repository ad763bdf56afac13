"""
leafwatch_vision - Camera frames and image preparation

This package turns camera output into model input: frame ownership types,
stride-aware YUV 4:2:0 to RGB conversion, crop/resize/normalize preprocessing,
and the threaded camera sources that produce frames.

Architecture:
- RawFrame / PlaneView / RgbBuffer: frame and raster types
- ColorspaceConverter: planar YUV -> NV21 repack -> RGB
- Preprocessor: RGB raster -> fixed-shape float tensor
- OpenCVCameraSource / VideoFileSource: frame producers
"""

from leafwatch_processor.errors import ConversionError, ResourceBindError
from leafwatch_vision.frames import PlaneView, RawFrame, RgbBuffer
from leafwatch_vision.converter import ColorspaceConverter
from leafwatch_vision.preprocessor import Preprocessor, crop_or_pad
from leafwatch_vision.sources import CameraSource, OpenCVCameraSource, VideoFileSource

__all__ = [
    "ConversionError",
    "ResourceBindError",
    "PlaneView",
    "RawFrame",
    "RgbBuffer",
    "ColorspaceConverter",
    "Preprocessor",
    "crop_or_pad",
    "CameraSource",
    "OpenCVCameraSource",
    "VideoFileSource",
]
