"""
Preprocessor - RGB raster to fixed-shape model tensor.

Stages, in order:
1. Center crop-or-pad to the target box (zero padding)
2. Bilinear resize to the model input resolution
3. Affine normalize: (x - mean) / std

The output shape is fixed at construction and never depends on the input
frame size. Pure function of its input: the RGB raster is never modified.
"""

from typing import Tuple

import cv2
import numpy as np

from leafwatch_processor.config import ModelConfig
from leafwatch_vision.frames import RgbBuffer


class Preprocessor:
    """
    Crop/pad, resize, and normalize RGB frames for the classifier.

    Usage:
        preprocessor = Preprocessor.from_config(config.model)
        tensor = preprocessor.prepare(rgb)
        tensor.shape  # (224, 298, 3), float32
    """

    def __init__(
        self,
        crop_box_hw: Tuple[int, int] = (224, 298),
        input_size_hw: Tuple[int, int] = (224, 298),
        mean: float = 0.0,
        std: float = 255.0,
    ):
        if std == 0:
            raise ValueError("std cannot be zero")

        self.crop_box_hw = crop_box_hw
        self.input_size_hw = input_size_hw
        self.mean = float(mean)
        self.std = float(std)

    @classmethod
    def from_config(cls, config: ModelConfig) -> "Preprocessor":
        return cls(
            crop_box_hw=config.crop_box_hw,
            input_size_hw=config.input_size_hw,
            mean=config.normalize_mean,
            std=config.normalize_std,
        )

    @property
    def output_shape(self) -> Tuple[int, int, int]:
        height, width = self.input_size_hw
        return height, width, 3

    def prepare(self, rgb: RgbBuffer) -> np.ndarray:
        """
        Build the model input tensor.

        Args:
            rgb: RGB raster (read only)

        Returns:
            float32 array of output_shape
        """
        boxed = crop_or_pad(rgb.pixels, self.crop_box_hw)

        height, width = self.input_size_hw
        if boxed.shape[:2] != (height, width):
            boxed = cv2.resize(boxed, (width, height), interpolation=cv2.INTER_LINEAR)

        tensor = boxed.astype(np.float32)
        tensor -= self.mean
        tensor /= self.std
        return tensor


def crop_or_pad(image: np.ndarray, target_hw: Tuple[int, int]) -> np.ndarray:
    """
    Center-crop the dimensions that exceed the target, zero-pad the rest.

    Args:
        image: (H, W, C) array
        target_hw: (height, width) of the result

    Returns:
        (target_h, target_w, C) array; a copy when padding, otherwise a view
    """
    target_h, target_w = target_hw
    src_h, src_w = image.shape[:2]

    # Crop offsets into the source
    top = max((src_h - target_h) // 2, 0)
    left = max((src_w - target_w) // 2, 0)
    cropped = image[top:top + min(src_h, target_h), left:left + min(src_w, target_w)]

    if cropped.shape[0] == target_h and cropped.shape[1] == target_w:
        return cropped

    # Pad offsets into the target
    canvas = np.zeros((target_h, target_w) + image.shape[2:], dtype=image.dtype)
    pad_top = (target_h - cropped.shape[0]) // 2
    pad_left = (target_w - cropped.shape[1]) // 2
    canvas[pad_top:pad_top + cropped.shape[0], pad_left:pad_left + cropped.shape[1]] = cropped
    return canvas
