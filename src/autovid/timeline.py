"""Timeline builder -- absolute time intervals for an ordered scene list.

Walks the scenes left-to-right with a running cursor, exactly like
placing clips back-to-back with hard cuts: each interval starts where
the previous one ended, so intervals are contiguous, non-overlapping
and cover [0, total_duration).
"""

from bisect import bisect_right
from dataclasses import dataclass

from .errors import EmptyTimeline
from .models import Scene


@dataclass(frozen=True)
class TimelineInterval:
    scene: Scene
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


class Timeline:
    """Ordered scene intervals with O(log n) active-scene lookup."""

    def __init__(self, intervals: list[TimelineInterval]) -> None:
        if not intervals:
            raise EmptyTimeline("No scenes to compose")
        self.intervals = tuple(intervals)
        self._starts = [iv.start for iv in self.intervals]

    def __len__(self) -> int:
        return len(self.intervals)

    def __iter__(self):
        return iter(self.intervals)

    @property
    def total_duration(self) -> float:
        return self.intervals[-1].end

    def active_at(self, t: float) -> TimelineInterval:
        """Return the interval whose [start, end) contains t.

        Total for every t: values at or past the end clamp to the last
        interval (the playback clock may overrun slightly), negative
        values clamp to the first.
        """
        if t >= self.total_duration:
            return self.intervals[-1]
        idx = bisect_right(self._starts, t) - 1
        return self.intervals[max(0, idx)]


def build_timeline(scenes: list[Scene]) -> Timeline:
    """Convert per-scene durations into absolute intervals in O(n).

    Raises:
        EmptyTimeline: No scenes, or the durations sum to zero.
        ValueError: A scene has a negative duration.
    """
    if not scenes:
        raise EmptyTimeline("No scenes to compose")

    intervals = []
    current_t = 0.0
    for scene in scenes:
        if scene.duration < 0:
            raise ValueError(
                f"Scene {scene.ordinal}: duration must be > 0, got {scene.duration!r}"
            )
        intervals.append(TimelineInterval(scene, current_t, current_t + scene.duration))
        current_t += scene.duration

    if current_t <= 0:
        raise EmptyTimeline("Timeline has zero total duration")

    # Zero-length scenes can never be active; keep them out of the lookup
    # table so bisect lands on the scene that actually covers t.
    return Timeline([iv for iv in intervals if iv.duration > 0])
