"""
Frame Pacer - wall-clock rate limiter for camera frames.

The pacer is a pure decision: given a frame's arrival time and the pacing
state, process or drop. It is a valve, not a queue; dropped frames are never
buffered.

Thread Safety:
- NOT thread-safe (single writer pattern)
- Only called from the camera callback thread
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class PacingState:
    """
    Mutable pacing state, persisted across frames.

    Attributes:
        last_accepted_timestamp: Arrival time (ms) of the last accepted frame,
            None until the first frame is accepted
    """
    last_accepted_timestamp: Optional[float] = None


class FramePacer:
    """
    Accept a frame iff at least min_interval_ms elapsed since the last accepted one.

    Usage:
        pacer = FramePacer(min_interval_ms=300)
        state = PacingState()

        if pacer.should_process(frame.timestamp_ms, state):
            dispatch(frame)
        else:
            frame.release()
    """

    def __init__(self, min_interval_ms: float = 300.0):
        if min_interval_ms < 0:
            raise ValueError(f"min_interval_ms must be >= 0, got {min_interval_ms}")
        self.min_interval_ms = float(min_interval_ms)

    def should_process(self, now: float, state: PacingState) -> bool:
        """
        Decide whether the frame arriving at now should be processed.

        Args:
            now: Arrival timestamp in milliseconds (monotonic clock)
            state: Pacing state, updated on acceptance

        Returns:
            True if accepted (state updated), False if dropped (state unchanged)
        """
        last = state.last_accepted_timestamp
        if last is not None and now - last < self.min_interval_ms:
            return False

        state.last_accepted_timestamp = now
        return True
