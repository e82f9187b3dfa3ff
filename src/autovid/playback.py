"""Clocks and the playback position source for the capture loop.

The capture loop never counts frames to know where it is: each tick
reads the playback position, which is time elapsed on an injected clock
since playback started. Two clocks are provided:

  - SystemClock: monotonic wall time; sleep really sleeps. Real-time
    capture, where a slow render shows up as skipped frame slots.
  - SteppedClock: time only moves when the loop sleeps, and sleeping
    jumps straight to the requested instant. Frame-accurate offline
    rendering, and deterministic tests.
"""

import time


class SystemClock:
    def now(self) -> float:
        return time.monotonic()

    def sleep_until(self, deadline: float) -> None:
        delay = deadline - self.now()
        if delay > 0:
            time.sleep(delay)


class SteppedClock:
    def __init__(self, start: float = 0.0) -> None:
        self._now = start

    def now(self) -> float:
        return self._now

    def sleep_until(self, deadline: float) -> None:
        self._now = max(self._now, deadline)

    def advance(self, seconds: float) -> None:
        self._now += seconds


class AudioPlayback:
    """Authoritative timeline position for one run.

    The narration is muxed from its source file by the encoder, so
    "playing" it means anchoring the timeline to the clock: position()
    is the time since start(), frozen once stop() is called.
    """

    def __init__(self, clock) -> None:
        self.clock = clock
        self._started_at: float | None = None
        self._stopped_at: float | None = None

    @property
    def playing(self) -> bool:
        return self._started_at is not None and self._stopped_at is None

    def start(self) -> None:
        self._started_at = self.clock.now()
        self._stopped_at = None

    def stop(self) -> None:
        if self.playing:
            self._stopped_at = self.clock.now()

    def position(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else self.clock.now()
        return end - self._started_at

    def sleep_until(self, position: float) -> None:
        """Block until playback reaches the given timeline position."""
        if self._started_at is not None:
            self.clock.sleep_until(self._started_at + position)
