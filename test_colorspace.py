"""
Test YUV 4:2:0 → RGB Conversion
===============================

Exercises ColorspaceConverter against synthetic frames: padded strides,
interleaved chroma (pixel stride 2), determinism, and the BT.601 transform
on a full 640x480 uniform frame.

Usage:
    python test_colorspace.py
    pytest test_colorspace.py
"""

import numpy as np
import pytest

from leafwatch_vision import (
    ColorspaceConverter,
    ConversionError,
    PlaneView,
    RawFrame,
    RgbBuffer,
)


def make_frame(width, height, y, u, v, row_padding=0, on_release=None):
    """Planar 4:2:0 frame; each row padded with row_padding junk bytes."""
    def plane(values, w, h):
        stride = w + row_padding
        buf = np.full(stride * h, 0xAB, dtype=np.uint8)
        rows = np.broadcast_to(np.asarray(values, dtype=np.uint8), (h, w))
        buf.reshape(h, stride)[:, :w] = rows
        return PlaneView(buf, row_stride=stride)

    return RawFrame(
        width=width,
        height=height,
        y=plane(y, width, height),
        u=plane(u, width // 2, height // 2),
        v=plane(v, width // 2, height // 2),
        timestamp_ms=0.0,
        on_release=on_release,
    )


def expected_bt601(y, u, v):
    """Video-range BT.601 reference, clamped to 8 bits."""
    c, d, e = y - 16.0, u - 128.0, v - 128.0
    rgb = (
        1.164 * c + 1.596 * e,
        1.164 * c - 0.813 * e - 0.391 * d,
        1.164 * c + 2.018 * d,
    )
    return np.clip(np.round(rgb), 0, 255)


def convert(frame):
    converter = ColorspaceConverter()
    rgb = RgbBuffer()
    rgb.ensure_capacity(frame.width, frame.height)
    converter.convert(frame, rgb)
    return rgb.pixels


def test_uniform_frame_matches_bt601():
    """640x480 uniform frame converts to one uniform color."""
    print("\n" + "=" * 60)
    print("TEST: Uniform 640x480 frame vs BT.601")
    print("=" * 60)

    for y, u, v in [(128, 128, 128), (100, 90, 160), (200, 160, 100)]:
        pixels = convert(make_frame(640, 480, y, u, v))

        assert pixels.shape == (480, 640, 3)
        assert (pixels == pixels[0, 0]).all(), "output is not uniform"

        diff = np.abs(pixels[0, 0].astype(int) - expected_bt601(y, u, v))
        assert diff.max() <= 2, f"YUV({y},{u},{v}) → {pixels[0, 0]}"
        print(f"✓ YUV({y},{u},{v}) → RGB{tuple(pixels[0, 0])}")


def test_row_padding_is_ignored():
    """Stride larger than width must not leak padding into the image."""
    print("\n" + "=" * 60)
    print("TEST: Row padding")
    print("=" * 60)

    tight = convert(make_frame(64, 48, 90, 110, 150))
    padded = convert(make_frame(64, 48, 90, 110, 150, row_padding=32))

    assert np.array_equal(tight, padded)
    print("✓ Padded and tight strides give identical output")


def test_interleaved_chroma_pixel_stride():
    """U and V sharing one interleaved buffer (pixel stride 2)."""
    print("\n" + "=" * 60)
    print("TEST: Interleaved chroma")
    print("=" * 60)

    width, height = 32, 16
    rng = np.random.default_rng(7)
    y = rng.integers(16, 235, size=(height, width), dtype=np.uint8)
    u = rng.integers(16, 240, size=(height // 2, width // 2), dtype=np.uint8)
    v = rng.integers(16, 240, size=(height // 2, width // 2), dtype=np.uint8)

    planar = RawFrame(
        width, height,
        y=PlaneView(y.copy(), row_stride=width),
        u=PlaneView(u.copy(), row_stride=width // 2),
        v=PlaneView(v.copy(), row_stride=width // 2),
        timestamp_ms=0.0,
    )

    uv = np.empty((height // 2, width), dtype=np.uint8)
    uv[:, 0::2] = u
    uv[:, 1::2] = v
    flat = uv.reshape(-1)
    interleaved = RawFrame(
        width, height,
        y=PlaneView(y.copy(), row_stride=width),
        u=PlaneView(flat, row_stride=width, pixel_stride=2),
        v=PlaneView(flat[1:], row_stride=width, pixel_stride=2),
        timestamp_ms=0.0,
    )

    assert np.array_equal(convert(planar), convert(interleaved))
    print("✓ Interleaved chroma matches planar chroma")


def test_conversion_is_deterministic():
    print("\n" + "=" * 60)
    print("TEST: Determinism and buffer reuse")
    print("=" * 60)

    rng = np.random.default_rng(3)
    frame = RawFrame.from_i420(
        rng.integers(0, 256, size=(72, 64), dtype=np.uint8),
        width=64,
        height=48,
        timestamp_ms=0.0,
    )

    converter = ColorspaceConverter()
    rgb = RgbBuffer()

    assert rgb.ensure_capacity(64, 48) is True
    converter.convert(frame, rgb)
    first = rgb.pixels.copy()

    assert rgb.ensure_capacity(64, 48) is False
    converter.convert(frame, rgb)

    assert np.array_equal(first, rgb.pixels)
    assert rgb.allocations == 1
    assert rgb.pixels.shape == (48, 64, 3)
    print("✓ Same input, same output; raster allocated once")


def test_malformed_frames_raise_conversion_error():
    print("\n" + "=" * 60)
    print("TEST: Malformed frames")
    print("=" * 60)

    converter = ColorspaceConverter()

    # Luma plane too short for the declared height
    short = make_frame(16, 16, 50, 128, 128)
    short.y = PlaneView(short.y.buffer[:100], row_stride=16)
    rgb = RgbBuffer()
    rgb.ensure_capacity(16, 16)
    with pytest.raises(ConversionError):
        converter.convert(short, rgb)
    print("✓ Short plane rejected")

    odd = make_frame(15, 16, 50, 128, 128)
    rgb.ensure_capacity(15, 16)
    with pytest.raises(ConversionError):
        converter.convert(odd, rgb)
    print("✓ Odd width rejected")

    # Destination not sized to the frame
    frame = make_frame(16, 16, 50, 128, 128)
    with pytest.raises(ValueError):
        converter.convert(frame, RgbBuffer())
    print("✓ Unsized destination rejected")


def test_frame_released_exactly_once():
    print("\n" + "=" * 60)
    print("TEST: Frame release")
    print("=" * 60)

    released = []
    frame = make_frame(16, 16, 50, 128, 128, on_release=released.append)

    frame.release()
    assert frame.released
    assert released == [frame]

    with pytest.raises(RuntimeError):
        frame.release()
    assert len(released) == 1
    print("✓ Second release raises, callback ran once")


def main():
    """Run all tests."""
    print("\n🍃 leafwatch_vision - Colorspace Tests")

    test_uniform_frame_matches_bt601()
    test_row_padding_is_ignored()
    test_interleaved_chroma_pixel_stride()
    test_conversion_is_deterministic()
    test_malformed_frames_raise_conversion_error()
    test_frame_released_exactly_once()

    print("\n" + "=" * 60)
    print("✅ ALL TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    main()
