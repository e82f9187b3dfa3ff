"""Tests for clocks and the playback position."""

import pytest

from autovid.playback import AudioPlayback, SteppedClock, SystemClock


class TestSteppedClock:
    def test_sleep_jumps_to_deadline(self):
        clock = SteppedClock()
        clock.sleep_until(1.5)
        assert clock.now() == 1.5

    def test_sleep_never_goes_backwards(self):
        clock = SteppedClock(start=2.0)
        clock.sleep_until(1.0)
        assert clock.now() == 2.0

    def test_advance(self):
        clock = SteppedClock()
        clock.advance(0.25)
        clock.advance(0.25)
        assert clock.now() == 0.5


class TestSystemClock:
    def test_sleep_until_waits(self):
        clock = SystemClock()
        start = clock.now()
        clock.sleep_until(start + 0.02)
        assert clock.now() - start >= 0.02

    def test_past_deadline_returns_immediately(self):
        clock = SystemClock()
        start = clock.now()
        clock.sleep_until(start - 10)
        assert clock.now() - start < 1.0


class TestAudioPlayback:
    def test_position_before_start_is_zero(self):
        playback = AudioPlayback(SteppedClock(start=5.0))
        assert playback.position() == 0.0
        assert not playback.playing

    def test_position_is_time_since_start(self):
        clock = SteppedClock(start=100.0)
        playback = AudioPlayback(clock)
        playback.start()
        clock.advance(1.25)
        assert playback.position() == pytest.approx(1.25)
        assert playback.playing

    def test_stop_freezes_position(self):
        clock = SteppedClock()
        playback = AudioPlayback(clock)
        playback.start()
        clock.advance(2.0)
        playback.stop()
        clock.advance(3.0)
        assert playback.position() == pytest.approx(2.0)
        assert not playback.playing

    def test_sleep_until_is_relative_to_start(self):
        clock = SteppedClock(start=10.0)
        playback = AudioPlayback(clock)
        playback.start()
        playback.sleep_until(0.5)
        assert clock.now() == pytest.approx(10.5)
        assert playback.position() == pytest.approx(0.5)
