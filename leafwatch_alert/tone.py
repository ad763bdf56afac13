"""
Tone synthesis for the audible alert.

A tone is a sine wave at a fixed frequency, rendered as 16-bit mono PCM, with
a linear fade-out over the trailing fraction of samples so playback ends
without a click.
"""

from dataclasses import dataclass

import numpy as np

INT16_MAX = np.iinfo(np.int16).max


@dataclass(frozen=True)
class ToneRequest:
    """
    Description of one alert tone.

    Attributes:
        frequency_hz: Sine frequency
        duration_ms: Tone length
        sample_rate: Output sample rate
        fade_fraction: Trailing fraction of samples faded linearly to zero

    Example:
        >>> tone = ToneRequest()
        >>> tone.num_samples
        13230
        >>> tone.synthesize().dtype
        dtype('int16')
    """
    frequency_hz: float = 1000.0
    duration_ms: int = 300
    sample_rate: int = 44100
    fade_fraction: float = 0.2

    def __post_init__(self):
        """Validate invariants."""
        if self.duration_ms <= 0:
            raise ValueError(f"duration_ms must be > 0, got {self.duration_ms}")
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be > 0, got {self.sample_rate}")
        if not 0.0 <= self.fade_fraction <= 1.0:
            raise ValueError(f"fade_fraction must be in [0.0, 1.0], got {self.fade_fraction}")

    @property
    def num_samples(self) -> int:
        return (self.duration_ms * self.sample_rate) // 1000

    @property
    def fade_samples(self) -> int:
        return int(self.fade_fraction * self.num_samples)

    def envelope(self) -> np.ndarray:
        """Amplitude per sample: 1.0, then (n - i) / fade over the tail."""
        n = self.num_samples
        fade = self.fade_samples
        amplitude = np.ones(n, dtype=np.float64)
        if fade > 0:
            tail = np.arange(n - fade, n)
            amplitude[n - fade:] = (n - tail) / fade
        return amplitude

    def synthesize(self) -> np.ndarray:
        """
        Render the tone.

        Returns:
            int16 array of num_samples mono PCM samples
        """
        i = np.arange(self.num_samples, dtype=np.float64)
        wave = np.sin(2.0 * np.pi * i * self.frequency_hz / self.sample_rate)
        return (INT16_MAX * self.envelope() * wave).astype(np.int16)
