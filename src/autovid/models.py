"""Data model for a composition run.

Scenes, captions and caption settings are read-only inputs owned by the
caller. They are frozen dataclasses so a render pass cannot mutate them,
and so re-rendering with new caption settings reuses the exact same
scenes and captions.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from PIL import Image


# ── Enumerations ─────────────────────────────────────────────────


class CaptionTemplate(str, Enum):
    KARAOKE = "karaoke"
    WORD_BY_WORD = "word-by-word"
    SENTENCE = "sentence"
    MINIMAL = "minimal"


class CaptionPosition(str, Enum):
    TOP = "top"
    CENTER = "center"
    BOTTOM = "bottom"


class FontSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class AspectRatio(str, Enum):
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"
    SQUARE = "1:1"


class RenderState(str, Enum):
    """Lifecycle stage of one composition run.

    Idle -> LoadingAssets -> Recording -> Finalizing -> Ready, with any
    unrecoverable error leading to Failed. Ready and Failed are terminal.
    """

    IDLE = "idle"
    LOADING_ASSETS = "loading_assets"
    RECORDING = "recording"
    FINALIZING = "finalizing"
    READY = "ready"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (RenderState.READY, RenderState.FAILED)


# ── Output dimensions ────────────────────────────────────────────

ASPECT_RATIO_DIMS: dict[AspectRatio, tuple[int, int]] = {
    AspectRatio.LANDSCAPE: (1920, 1080),
    AspectRatio.PORTRAIT: (1080, 1920),
    AspectRatio.SQUARE: (1080, 1080),
}

CAPTION_FONTS = ["Inter", "Montserrat", "Poppins", "Oswald", "Bebas Neue"]


# ── Inputs ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class WordTiming:
    """A single spoken word with its [start, end) span in seconds."""

    word: str
    start: float
    end: float


@dataclass(frozen=True)
class Caption:
    """A timed text span, optionally carrying per-word timing.

    A caption without word timings is rendered by proportional reveal:
    the visible portion of the text follows the fraction of the caption
    span that has elapsed.
    """

    start_time: float
    end_time: float
    text: str
    words: tuple[WordTiming, ...] = ()

    def contains(self, t: float) -> bool:
        return self.start_time <= t < self.end_time

    def progress(self, t: float) -> float:
        """Fraction of the caption span elapsed at time t."""
        span = self.end_time - self.start_time
        if span <= 0:
            return 1.0
        return (t - self.start_time) / span


@dataclass(frozen=True)
class Scene:
    """One narrated segment of the video.

    image may be a Pillow image, a path to an image file, raw encoded
    bytes, or None. Anything that cannot be decoded is replaced by a
    numbered placeholder at load time.
    """

    index: int
    text: str
    duration: float
    image_prompt: str = ""
    image: Image.Image | str | Path | bytes | None = field(
        default=None, compare=False, repr=False,
    )

    @property
    def ordinal(self) -> int:
        """1-based scene number, as shown on placeholders."""
        return self.index + 1


@dataclass(frozen=True)
class CaptionSettings:
    """Caption styling. Immutable per render pass."""

    template: CaptionTemplate = CaptionTemplate.KARAOKE
    position: CaptionPosition = CaptionPosition.BOTTOM
    font_size: FontSize = FontSize.LARGE
    font_family: str = "Inter"
    text_color: str = "#ffffff"
    background_color: str = "rgba(0, 0, 0, 0.8)"


DEFAULT_CAPTION_SETTINGS = CaptionSettings()


# ── Observability ────────────────────────────────────────────────


@dataclass(frozen=True)
class ProgressEvent:
    stage: str
    message: str
