"""Tests for the timeline builder."""

import pytest

from autovid.errors import EmptyTimeline
from autovid.models import Scene
from autovid.timeline import build_timeline


def _scenes(*durations):
    return [Scene(i, f"scene {i + 1}", d) for i, d in enumerate(durations)]


class TestBuildTimeline:
    def test_total_is_sum_of_durations(self):
        timeline = build_timeline(_scenes(2.5, 4.0, 3.5))
        assert timeline.total_duration == pytest.approx(10.0)

    def test_intervals_are_contiguous(self):
        timeline = build_timeline(_scenes(2.5, 4.0, 3.5))
        intervals = list(timeline)
        assert intervals[0].start == 0.0
        for prev, cur in zip(intervals, intervals[1:]):
            assert cur.start == prev.end
        assert intervals[-1].end == timeline.total_duration

    def test_interval_durations_match_scenes(self):
        scenes = _scenes(1.0, 2.0)
        timeline = build_timeline(scenes)
        assert [iv.duration for iv in timeline] == [1.0, 2.0]
        assert [iv.scene for iv in timeline] == scenes

    def test_no_scenes_raises(self):
        with pytest.raises(EmptyTimeline):
            build_timeline([])

    def test_zero_total_raises(self):
        with pytest.raises(EmptyTimeline):
            build_timeline(_scenes(0.0, 0.0))

    def test_negative_duration_raises(self):
        with pytest.raises(ValueError, match="Scene 2"):
            build_timeline(_scenes(1.0, -1.0))

    def test_zero_length_scene_is_never_active(self):
        scenes = _scenes(2.0, 0.0, 2.0)
        timeline = build_timeline(scenes)
        assert len(timeline) == 2
        assert timeline.active_at(2.0).scene is scenes[2]

    def test_error_code(self):
        with pytest.raises(EmptyTimeline) as exc_info:
            build_timeline([])
        assert exc_info.value.code == "autovid.timeline.empty"


class TestActiveAt:
    def test_start_of_each_interval(self):
        scenes = _scenes(10, 10, 10)
        timeline = build_timeline(scenes)
        assert timeline.active_at(0.0).scene is scenes[0]
        assert timeline.active_at(10.0).scene is scenes[1]
        assert timeline.active_at(20.0).scene is scenes[2]

    def test_inside_interval(self):
        scenes = _scenes(10, 10, 10)
        timeline = build_timeline(scenes)
        assert timeline.active_at(9.999).scene is scenes[0]
        assert timeline.active_at(15.0).scene is scenes[1]
        assert timeline.active_at(29.9).scene is scenes[2]

    def test_past_end_clamps_to_last(self):
        scenes = _scenes(10, 10, 10)
        timeline = build_timeline(scenes)
        assert timeline.active_at(30.0).scene is scenes[2]
        assert timeline.active_at(45.0).scene is scenes[2]

    def test_negative_clamps_to_first(self):
        scenes = _scenes(10, 10)
        timeline = build_timeline(scenes)
        assert timeline.active_at(-0.5).scene is scenes[0]

    def test_every_t_has_exactly_one_interval(self):
        timeline = build_timeline(_scenes(0.3, 0.7, 1.1))
        t = 0.0
        while t < timeline.total_duration:
            iv = timeline.active_at(t)
            assert iv.start <= t < iv.end
            matches = [x for x in timeline if x.start <= t < x.end]
            assert matches == [iv]
            t += 0.05
