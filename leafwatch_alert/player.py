"""
Alert Signal - single-instance tone playback.

Each trigger() renders a fresh tone and plays it on its own output stream.
At most one stream exists at a time: a new trigger stops and closes the
previous stream before opening the next one.

Audio backend:
- Default: sounddevice OutputStream (int16, mono), imported when the first
  stream is opened so that hosts without PortAudio can still load the package
- Injectable: any factory returning an object with start(), stop(), close()

Thread Safety:
- trigger() and stop() are serialized by an internal lock
- Streams signal completion from the audio thread via on_finished
"""

import logging
import threading
from typing import Any, Callable, Optional

import numpy as np

from leafwatch_alert.tone import ToneRequest

logger = logging.getLogger(__name__)

StreamFactory = Callable[[np.ndarray, int, Callable[[], None]], Any]


def open_output_stream(
    samples: np.ndarray,
    sample_rate: int,
    on_finished: Callable[[], None],
) -> Any:
    """
    Open a sounddevice stream that plays samples once.

    Args:
        samples: int16 mono PCM
        sample_rate: Output sample rate
        on_finished: Called from the audio thread when playback ends

    Returns:
        Unstarted sounddevice.OutputStream
    """
    import sounddevice as sd

    position = 0

    def _callback(outdata, frames, time_info, status):
        nonlocal position
        if status:
            logger.debug(f"Tone stream status: {status}")

        chunk = samples[position:position + frames]
        outdata[:len(chunk), 0] = chunk
        outdata[len(chunk):, 0] = 0
        position += len(chunk)

        if position >= len(samples):
            raise sd.CallbackStop

    return sd.OutputStream(
        samplerate=sample_rate,
        channels=1,
        dtype="int16",
        callback=_callback,
        finished_callback=on_finished,
    )


class AlertSignal:
    """
    Audible alert with at most one active tone.

    Usage:
        alert = AlertSignal(ToneRequest(frequency_hz=1000, duration_ms=300))
        alert.trigger()   # plays
        alert.trigger()   # stops the first tone, plays a new one
        alert.stop()      # idempotent
    """

    def __init__(
        self,
        tone: Optional[ToneRequest] = None,
        stream_factory: StreamFactory = open_output_stream,
    ):
        self.tone = tone or ToneRequest()
        self._stream_factory = stream_factory
        self._samples = self.tone.synthesize()

        self._stream: Optional[Any] = None
        self._playing = False
        self._lock = threading.Lock()
        self._trigger_count = 0

    @classmethod
    def from_config(cls, config, stream_factory: StreamFactory = open_output_stream) -> "AlertSignal":
        """Build from an AlertConfig (frequency, duration, sample rate, fade)."""
        tone = ToneRequest(
            frequency_hz=config.frequency_hz,
            duration_ms=config.duration_ms,
            sample_rate=config.sample_rate,
            fade_fraction=config.fade_fraction,
        )
        return cls(tone=tone, stream_factory=stream_factory)

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def active_stream(self) -> Optional[Any]:
        """Stream of the current tone (kept open until replaced or stopped)."""
        return self._stream

    @property
    def trigger_count(self) -> int:
        return self._trigger_count

    def trigger(self) -> None:
        """
        Play the tone, replacing any tone still in flight.

        Raises:
            Exception: Whatever the audio backend raises when opening a stream;
                the previous stream is released either way
        """
        with self._lock:
            self._release_locked()
            self._trigger_count += 1

            stream = None

            def _finished():
                self._on_finished(stream)

            stream = self._stream_factory(self._samples, self.tone.sample_rate, _finished)
            self._stream = stream
            self._playing = True
            try:
                stream.start()
            except Exception:
                self._release_locked()
                raise

    def stop(self) -> None:
        """Stop and release the active tone. No-op when idle."""
        with self._lock:
            self._release_locked()

    def _release_locked(self) -> None:
        stream = self._stream
        if stream is None:
            return
        self._stream = None
        self._playing = False

        try:
            stream.stop()
        finally:
            stream.close()

    def _on_finished(self, stream: Any) -> None:
        # Audio thread, possibly inside stream.stop(): must not take the lock.
        # A superseded stream must not clear its replacement's flag.
        if self._stream is stream:
            self._playing = False
