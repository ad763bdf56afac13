"""
Test Preprocessor
=================

Crop-or-pad, resize, and normalization of RGB rasters into model tensors.

Usage:
    python test_preprocessor.py
    pytest test_preprocessor.py
"""

import numpy as np

from leafwatch_processor.config import ModelConfig
from leafwatch_vision import Preprocessor, RgbBuffer, crop_or_pad


def rgb_of(pixels):
    return RgbBuffer(pixels=pixels)


def test_output_shape_is_fixed():
    print("\n" + "=" * 60)
    print("TEST: Output shape")
    print("=" * 60)

    preprocessor = Preprocessor.from_config(ModelConfig())

    for height, width in [(480, 640), (100, 120), (224, 298), (720, 1280)]:
        tensor = preprocessor.prepare(rgb_of(np.zeros((height, width, 3), dtype=np.uint8)))
        assert tensor.shape == (224, 298, 3)
        assert tensor.dtype == np.float32
        print(f"✓ {width}x{height} → {tensor.shape}")

    assert preprocessor.output_shape == (224, 298, 3)


def test_center_crop():
    print("\n" + "=" * 60)
    print("TEST: Center crop")
    print("=" * 60)

    image = np.zeros((480, 640, 3), dtype=np.uint8)
    # Mark the exact center box
    image[128:352, 171:469] = 255

    boxed = crop_or_pad(image, (224, 298))
    assert boxed.shape == (224, 298, 3)
    assert (boxed == 255).all()
    print("✓ Crop keeps the centered box")


def test_zero_padding():
    print("\n" + "=" * 60)
    print("TEST: Zero padding")
    print("=" * 60)

    image = np.full((100, 100, 3), 255, dtype=np.uint8)
    boxed = crop_or_pad(image, (224, 298))

    assert boxed.shape == (224, 298, 3)
    assert (boxed[62:162, 99:199] == 255).all()
    assert boxed.sum() == image.sum()
    print("✓ Small image centered on zeros")


def test_normalization():
    print("\n" + "=" * 60)
    print("TEST: Normalization")
    print("=" * 60)

    white = rgb_of(np.full((224, 298, 3), 255, dtype=np.uint8))
    tensor = Preprocessor().prepare(white)
    assert np.allclose(tensor, 1.0)

    centered = Preprocessor(mean=127.5, std=127.5).prepare(white)
    assert np.allclose(centered, 1.0)

    black = rgb_of(np.zeros((224, 298, 3), dtype=np.uint8))
    assert np.allclose(Preprocessor(mean=127.5, std=127.5).prepare(black), -1.0)
    print("✓ (x - mean) / std applied")


def test_resize_to_model_input():
    preprocessor = Preprocessor(crop_box_hw=(224, 298), input_size_hw=(112, 149))
    tensor = preprocessor.prepare(rgb_of(np.full((480, 640, 3), 128, dtype=np.uint8)))

    assert tensor.shape == (112, 149, 3)
    assert np.allclose(tensor, 128 / 255.0)


def test_input_is_not_modified():
    pixels = np.random.default_rng(1).integers(0, 256, size=(480, 640, 3), dtype=np.uint8)
    original = pixels.copy()

    Preprocessor().prepare(rgb_of(pixels))
    assert np.array_equal(pixels, original)


def main():
    """Run all tests."""
    print("\n🍃 leafwatch_vision - Preprocessor Tests")

    test_output_shape_is_fixed()
    test_center_crop()
    test_zero_padding()
    test_normalization()
    test_resize_to_model_input()
    test_input_is_not_modified()

    print("\n" + "=" * 60)
    print("✅ ALL TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    main()
