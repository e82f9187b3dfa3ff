"""Encoding sinks -- turn a push stream of frames into a video artifact.

Frames arrive with the timeline position they were rendered for, not at
a fixed cadence. FrameSink maps each timestamp to its frame slot
floor(t * fps):
  - a slot skipped by a slow tick is filled by repeating the last frame,
  - a second frame landing in an already-filled slot is dropped,
  - finalize() pads to ceil(duration * fps) frames.
So the encoded stream is always exactly the timeline duration at a
constant frame rate, however irregular the ticks were.

FfmpegSink pipes raw RGB frames into the ffmpeg binary bundled with
imageio-ffmpeg and muxes the narration in as AAC:

  ffmpeg -f rawvideo -pix_fmt rgb24 -s WxH -r FPS -i -  -i narration
         -map 0:v:0 -map 1:a:0 -c:v libx264 -b:v 8M -pix_fmt yuv420p
         -c:a aac -b:a 128k -af apad -shortest -movflags +faststart out.mp4
"""

import logging
import math
import subprocess
from pathlib import Path

import imageio_ffmpeg
import numpy as np

from .errors import EncoderFailure, EncoderInitFailure, NoFramesCaptured

LOGGER = logging.getLogger(__name__)

H264_CODEC = "libx264"
H264_PIXEL_FORMAT = "yuv420p"
H264_PRESET = "veryfast"
AUDIO_CODEC = "aac"
DEFAULT_VIDEO_BITRATE = "8M"
DEFAULT_AUDIO_BITRATE = "128k"

# Guards floor(t * fps) against float error at exact slot boundaries.
_SLOT_EPSILON = 1e-6


class FrameSink:
    """Base class for push-style frame consumers.

    Subclasses implement _open, _write, _seal and _discard. Lifecycle:
    open() once, push() any number of times, then exactly one of
    finalize() or abort().
    """

    def __init__(self, fps: int = 30) -> None:
        self.fps = fps
        self.size: tuple[int, int] | None = None
        self.duration: float | None = None
        self.frames_written = 0
        self._last_frame: np.ndarray | None = None
        self._opened = False
        self._closed = False

    @property
    def total_frames(self) -> int:
        if self.duration is None:
            return 0
        return max(1, math.ceil(self.duration * self.fps - _SLOT_EPSILON))

    def slot_for(self, timestamp: float) -> int:
        return max(0, math.floor(timestamp * self.fps + _SLOT_EPSILON))

    def open(
        self, size: tuple[int, int], audio_path: str | Path | None, duration: float,
    ) -> None:
        self.size = size
        self.duration = duration
        self._open(size, audio_path, duration)
        self._opened = True

    def push(self, frame: np.ndarray, timestamp: float) -> None:
        slot = min(self.slot_for(timestamp), self.total_frames - 1)
        if slot < self.frames_written:
            return
        while self._last_frame is not None and self.frames_written < slot:
            self._emit(self._last_frame)
        while self.frames_written <= slot:
            self._emit(frame)
        self._last_frame = frame

    def finalize(self):
        """Seal the artifact and hand it to the caller.

        Raises:
            NoFramesCaptured: Nothing was pushed; no artifact is produced.
        """
        if self.frames_written == 0:
            self.abort()
            raise NoFramesCaptured("No frames were captured before finalize")
        while self.frames_written < self.total_frames:
            self._emit(self._last_frame)
        self._closed = True
        return self._seal()

    def abort(self) -> None:
        """Release the encoder and discard any partial output.

        A sink that was never opened owns nothing, so nothing is touched.
        """
        if self._closed:
            return
        self._closed = True
        if self._opened:
            self._discard()

    def _emit(self, frame: np.ndarray) -> None:
        self._write(frame)
        self.frames_written += 1

    def _open(self, size, audio_path, duration) -> None:
        raise NotImplementedError

    def _write(self, frame: np.ndarray) -> None:
        raise NotImplementedError

    def _seal(self):
        raise NotImplementedError

    def _discard(self) -> None:
        raise NotImplementedError


class FfmpegSink(FrameSink):
    """H.264/AAC MP4 writer fed through an ffmpeg subprocess."""

    def __init__(
        self,
        output_path: str | Path,
        fps: int = 30,
        bitrate: str = DEFAULT_VIDEO_BITRATE,
        audio_bitrate: str = DEFAULT_AUDIO_BITRATE,
        codec: str = H264_CODEC,
    ) -> None:
        super().__init__(fps)
        self.output_path = Path(output_path)
        self.bitrate = bitrate
        self.audio_bitrate = audio_bitrate
        self.codec = codec
        self._process: subprocess.Popen | None = None

    def build_command(
        self, ffmpeg_exe: str, size: tuple[int, int], audio_path: str | Path | None,
    ) -> list[str]:
        width, height = size
        cmd = [
            ffmpeg_exe, "-y",
            "-loglevel", "error", "-nostats",
            "-f", "rawvideo",
            "-pix_fmt", "rgb24",
            "-s", f"{width}x{height}",
            "-r", str(self.fps),
            "-i", "-",
        ]
        if audio_path is not None:
            cmd.extend(["-i", str(audio_path), "-map", "0:v:0", "-map", "1:a:0"])
        else:
            cmd.append("-an")
        cmd.extend([
            "-c:v", self.codec,
            "-preset", H264_PRESET,
            "-b:v", self.bitrate,
            "-pix_fmt", H264_PIXEL_FORMAT,
        ])
        if audio_path is not None:
            cmd.extend([
                "-c:a", AUDIO_CODEC,
                "-b:a", self.audio_bitrate,
                "-af", "apad",
                "-shortest",
            ])
        cmd.extend(["-movflags", "+faststart", str(self.output_path)])
        return cmd

    def _open(self, size, audio_path, duration) -> None:
        try:
            ffmpeg_exe = imageio_ffmpeg.get_ffmpeg_exe()
        except RuntimeError as exc:
            raise EncoderInitFailure(f"ffmpeg not available: {exc}") from exc

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command(ffmpeg_exe, size, audio_path)
        LOGGER.debug("Starting encoder: %s", " ".join(cmd))
        try:
            self._process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise EncoderInitFailure(f"cannot start ffmpeg: {exc}") from exc

    def _write(self, frame: np.ndarray) -> None:
        width, height = self.size
        if frame.shape != (height, width, 3):
            raise ValueError(
                f"Frame shape {frame.shape} does not match output {(height, width, 3)}"
            )
        try:
            self._process.stdin.write(np.ascontiguousarray(frame, dtype=np.uint8).tobytes())
        except BrokenPipeError as exc:
            raise EncoderFailure(f"ffmpeg stopped accepting frames. {self._stderr()}") from exc

    def _seal(self) -> Path:
        self._process.stdin.close()
        stderr_text = self._stderr()
        return_code = self._process.wait()
        if return_code != 0:
            self._remove_output()
            raise EncoderFailure(
                f"ffmpeg failed with exit code {return_code}. {stderr_text}"
            )
        return self.output_path

    def _discard(self) -> None:
        if self._process is not None:
            if self._process.stdin and not self._process.stdin.closed:
                try:
                    self._process.stdin.close()
                except BrokenPipeError:
                    pass
            if self._process.poll() is None:
                self._process.kill()
            self._process.wait()
        self._remove_output()

    def _stderr(self) -> str:
        if self._process is None or self._process.stderr is None:
            return ""
        return self._process.stderr.read().decode("utf-8", errors="replace").strip()

    def _remove_output(self) -> None:
        if self.output_path.exists():
            self.output_path.unlink()
