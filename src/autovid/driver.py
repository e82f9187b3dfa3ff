"""Playback & capture driver -- runs one composition end to end.

State machine (one run per driver instance):

  Idle -> LoadingAssets -> Recording -> Finalizing -> Ready
              |                |             |
              +----------------+-------------+------> Failed

  LoadingAssets: build the timeline, load every scene image in parallel
      (placeholders on failure), probe the narration audio, open the
      encoding sink.
  Recording: start playback at 0 and tick once per frame slot. Each tick
      reads the playback position (never a frame counter), picks the
      active scene, composites the frame and pushes it to the sink.
  Finalizing: once the position reaches the total duration, stop
      playback and seal the sink.

Any unrecoverable error stops playback, aborts the sink (no partial
artifact) and ends the run in Failed. run() always returns a terminal
CompositionResult; it does not raise pipeline errors. KeyboardInterrupt
and SystemExit still propagate, after the sink is aborted and the state
set to Failed.
"""

import logging
import math
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .assets import DEFAULT_LOAD_TIMEOUT, DEFAULT_LOAD_WORKERS, load_scene_assets, prepare_audio
from .captions import captions_from_scenes
from .compositor import FrameCompositor
from .encoder import DEFAULT_AUDIO_BITRATE, DEFAULT_VIDEO_BITRATE, FfmpegSink, FrameSink
from .errors import CompositionCancelled, CompositionError
from .models import (
    ASPECT_RATIO_DIMS,
    DEFAULT_CAPTION_SETTINGS,
    AspectRatio,
    Caption,
    CaptionSettings,
    ProgressEvent,
    RenderState,
    Scene,
)
from .playback import AudioPlayback, SteppedClock, SystemClock
from .timeline import build_timeline

LOGGER = logging.getLogger(__name__)

DEFAULT_FPS = 30
PROGRESS_STEP_PERCENT = 4

# Guards floor(t * fps) against float error at exact slot boundaries.
_SLOT_EPSILON = 1e-6


@dataclass(frozen=True)
class CompositionResult:
    state: RenderState
    output: Path | None = None
    error: CompositionError | None = None
    frames: int = 0
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.state is RenderState.READY


class CompositionDriver:
    """Owns the render state, playback and sink for a single run.

    Args:
        sink: Encoding sink; opened, fed and sealed (or aborted) here.
        clock: Clock for playback. SteppedClock (the default) renders
            offline at exact frame times; SystemClock captures in real time.
        fps: Output frame rate.
        on_progress: Observer called with ProgressEvent(stage, message).
        load_timeout: Seconds allowed for images, and again for audio.
        max_workers: Parallel image loaders.
    """

    def __init__(
        self,
        sink: FrameSink,
        clock=None,
        fps: int = DEFAULT_FPS,
        on_progress: Callable[[ProgressEvent], None] | None = None,
        load_timeout: float | None = DEFAULT_LOAD_TIMEOUT,
        max_workers: int = DEFAULT_LOAD_WORKERS,
    ) -> None:
        self.sink = sink
        self.clock = clock if clock is not None else SteppedClock()
        self.fps = fps
        self.on_progress = on_progress
        self.load_timeout = load_timeout
        self.max_workers = max_workers
        self._state = RenderState.IDLE
        self._cancel = threading.Event()
        self._playback: AudioPlayback | None = None

    @property
    def state(self) -> RenderState:
        return self._state

    def cancel(self) -> None:
        """Ask the run to stop. Takes effect at the next check (per tick)."""
        self._cancel.set()

    # ── Run ──────────────────────────────────────────────────────

    def run(
        self,
        scenes: list[Scene],
        audio_path: str | Path | None,
        captions: list[Caption],
        settings: CaptionSettings = DEFAULT_CAPTION_SETTINGS,
        aspect_ratio: AspectRatio | str = AspectRatio.PORTRAIT,
    ) -> CompositionResult:
        if self._state is not RenderState.IDLE:
            raise RuntimeError(
                "CompositionDriver runs once; create a new driver to re-render"
            )

        try:
            self._transition(RenderState.LOADING_ASSETS, "Loading images...")
            timeline = build_timeline(scenes)
            size = ASPECT_RATIO_DIMS[AspectRatio(aspect_ratio)]

            assets = load_scene_assets(
                scenes, size,
                max_workers=self.max_workers,
                timeout=self.load_timeout,
                on_loaded=lambda done, total: self._emit(f"Loading image {done}/{total}..."),
            )
            backgrounds = {id(asset.scene): asset.background for asset in assets}
            self._check_cancelled()

            self._emit("Preparing audio...")
            audio = prepare_audio(audio_path, self.load_timeout) if audio_path is not None else None
            self._check_cancelled()

            compositor = FrameCompositor(size, captions, settings)
            self.sink.open(size, audio.path if audio else None, timeline.total_duration)

            self._transition(RenderState.RECORDING, "Recording video with audio...")
            self._record(timeline, compositor, backgrounds)

            self._transition(RenderState.FINALIZING, "Finalizing video...")
            output = self.sink.finalize()
        except CompositionError as exc:
            return self._fail(exc)
        except Exception as exc:
            error = CompositionError(f"Composition failed: {exc}")
            error.__cause__ = exc
            return self._fail(error)
        except BaseException:
            # Interrupted (Ctrl-C, SystemExit): release the encoder, then let it propagate.
            self._teardown()
            raise
        finally:
            if self._playback is not None:
                self._playback.stop()

        self._transition(RenderState.READY, "Video ready!")
        LOGGER.info(
            "Composed %d frames (%.1fs) to %s",
            self.sink.frames_written, timeline.total_duration, output,
        )
        return CompositionResult(
            RenderState.READY,
            output=output,
            frames=self.sink.frames_written,
            duration=timeline.total_duration,
        )

    def _record(self, timeline, compositor: FrameCompositor, backgrounds: dict) -> None:
        """Capture loop: one tick per frame slot until the timeline ends."""
        total = timeline.total_duration
        last_percent = 0
        self._playback = AudioPlayback(self.clock)
        self._playback.start()

        while True:
            self._check_cancelled()
            elapsed = self._playback.position()
            if elapsed >= total:
                break

            scene = timeline.active_at(elapsed).scene
            frame = compositor.render_frame(backgrounds[id(scene)], elapsed)
            self.sink.push(frame, elapsed)

            percent = int(min(elapsed / total, 1.0) * 100)
            if percent - last_percent >= PROGRESS_STEP_PERCENT:
                last_percent = percent
                self._emit(f"Recording: {percent}%")

            next_slot = math.floor(elapsed * self.fps + _SLOT_EPSILON) + 1
            self._playback.sleep_until(next_slot / self.fps)

        self._playback.stop()

    # ── State and events ─────────────────────────────────────────

    def _transition(self, state: RenderState, message: str) -> None:
        LOGGER.debug("Render state %s -> %s", self._state.value, state.value)
        self._state = state
        self._emit(message)

    def _emit(self, message: str) -> None:
        if self.on_progress is not None:
            self.on_progress(ProgressEvent(self._state.value, message))

    def _check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise CompositionCancelled("Composition cancelled")

    def _teardown(self) -> None:
        if self._playback is not None:
            self._playback.stop()
        self.sink.abort()
        LOGGER.warning("Composition interrupted; partial output discarded")
        self._state = RenderState.FAILED

    def _fail(self, error: CompositionError) -> CompositionResult:
        if self._playback is not None:
            self._playback.stop()
        self.sink.abort()
        LOGGER.error("Composition failed [%s]: %s", error.code, error)
        self._transition(RenderState.FAILED, f"Error: {error}")
        return CompositionResult(RenderState.FAILED, error=error)


def compose(
    scenes: list[Scene],
    audio_path: str | Path | None,
    output_path: str | Path,
    captions: list[Caption] | None = None,
    settings: CaptionSettings = DEFAULT_CAPTION_SETTINGS,
    aspect_ratio: AspectRatio | str = AspectRatio.PORTRAIT,
    fps: int = DEFAULT_FPS,
    bitrate: str = DEFAULT_VIDEO_BITRATE,
    audio_bitrate: str = DEFAULT_AUDIO_BITRATE,
    realtime: bool = False,
    on_progress: Callable[[ProgressEvent], None] | None = None,
    load_timeout: float | None = DEFAULT_LOAD_TIMEOUT,
) -> CompositionResult:
    """Compose scenes, narration and captions into an MP4.

    Every call is a fresh pipeline run with its own compositor, sink and
    driver; re-rendering with new caption settings reuses nothing but
    the inputs.

    Args:
        scenes: Scenes in order.
        audio_path: Narration audio file (None renders a silent video).
        output_path: Destination .mp4.
        captions: Timed captions. None synthesizes them from scene text.
        settings: Caption settings.
        aspect_ratio: "16:9", "9:16" or "1:1".
        fps: Output frame rate.
        bitrate: Target video bitrate, ffmpeg syntax ("8M").
        audio_bitrate: Target audio bitrate ("128k").
        realtime: Capture against the system clock instead of rendering
            offline at exact frame times.
        on_progress: Observer for ProgressEvent updates.
        load_timeout: Seconds allowed for asset loading.

    Returns:
        CompositionResult: Ready with the output path, or Failed with
        the error (and no file left at output_path).
    """
    if captions is None:
        captions = captions_from_scenes(scenes)
    sink = FfmpegSink(output_path, fps=fps, bitrate=bitrate, audio_bitrate=audio_bitrate)
    driver = CompositionDriver(
        sink,
        clock=SystemClock() if realtime else SteppedClock(),
        fps=fps,
        on_progress=on_progress,
        load_timeout=load_timeout,
    )
    return driver.run(scenes, audio_path, captions, settings, aspect_ratio)
