"""Shared test fixtures for autovid tests."""

import subprocess

import pytest
import imageio_ffmpeg
from PIL import Image

from autovid.encoder import FrameSink
from autovid.models import Scene

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


class MemorySink(FrameSink):
    """FrameSink that keeps frames in a list instead of encoding them."""

    def __init__(self, fps: int = 30) -> None:
        super().__init__(fps)
        self.frames = []
        self.audio_path = None
        self.sealed = False
        self.discarded = False

    def _open(self, size, audio_path, duration) -> None:
        self.audio_path = audio_path

    def _write(self, frame) -> None:
        self.frames.append(frame)

    def _seal(self):
        self.sealed = True
        return "memory"

    def _discard(self) -> None:
        self.frames = []
        self.discarded = True


@pytest.fixture
def memory_sink():
    return MemorySink(fps=10)


@pytest.fixture
def narration(tmp_path):
    """Create a 3-second 440 Hz mono WAV narration with ffmpeg.

    Shared across test_assets.py, test_encoder.py and test_driver.py.
    """
    out = tmp_path / "narration.wav"
    subprocess.run(
        [
            _FFMPEG, "-y",
            "-f", "lavfi", "-i", "sine=frequency=440:duration=3:sample_rate=44100",
            "-ac", "1",
            str(out),
        ],
        check=True,
        capture_output=True,
    )
    return out


@pytest.fixture
def scene_image(tmp_path):
    """A 640x480 solid red PNG on disk."""
    out = tmp_path / "scene.png"
    Image.new("RGB", (640, 480), (255, 0, 0)).save(out)
    return out


@pytest.fixture
def three_scenes():
    """Three 10-second scenes without images (rendered as placeholders)."""
    return [
        Scene(0, "The first scene sets up the story for everyone watching", 10.0),
        Scene(1, "The second scene explains what happened next in detail", 10.0),
        Scene(2, "The third scene wraps up and says goodbye to the viewers", 10.0),
    ]
