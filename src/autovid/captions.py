"""Caption window selection -- which words are on screen at time t.

select_caption_layout() is a pure function of (captions, settings, t):
no caching, no clocks, no drawing. The compositor calls it once per
frame and renders the returned CaptionLayout. Identical inputs always
produce an identical (equal, hashable) layout.

Templates:
  - karaoke: 8-word sliding window over the word timings, split across
    two lines. Words already spoken are solid, the current word is
    highlighted and enlarged, upcoming words are dimmed. Captions
    without word timings fall back to sentence.
  - word-by-word: one uppercased word at double size.
  - sentence: progressive reveal of up to 8 words, wrapped greedily into
    at most two lines of the usable width.
  - minimal: progressive reveal of up to 6 words on one line, cut to 50
    characters, small and always bottom-anchored.

Also contains the caption builders used when no caption file is given:
grouping transcribed words per scene, or spreading scene text evenly
across the scene duration.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from .models import (
    Caption,
    CaptionPosition,
    CaptionSettings,
    CaptionTemplate,
    FontSize,
    Scene,
    WordTiming,
)


# ── Window constants ─────────────────────────────────────────────

KARAOKE_WORDS_PER_LINE = 4
KARAOKE_WINDOW = KARAOKE_WORDS_PER_LINE * 2
KARAOKE_CURRENT_SCALE = 1.1

WORD_BY_WORD_SCALE = 2.0

SENTENCE_LEAD_WORDS = 4
SENTENCE_WINDOW = 8
SENTENCE_MAX_LINES = 2

MINIMAL_LEAD_WORDS = 3
MINIMAL_WINDOW = 6
MINIMAL_MAX_CHARS = 50

# Used when the caller does not supply a pixel measure: widths are then
# counted in characters.
DEFAULT_MAX_LINE_CHARS = 42


# ── Layout types ─────────────────────────────────────────────────


class WordState(str, Enum):
    PLAIN = "plain"
    PAST = "past"
    CURRENT = "current"
    UPCOMING = "upcoming"


@dataclass(frozen=True)
class LayoutWord:
    text: str
    state: WordState = WordState.PLAIN


@dataclass(frozen=True)
class CaptionLayout:
    """Renderable decision for one frame.

    Karaoke lines hold one LayoutWord per word so each can be styled.
    Other templates hold a single PLAIN LayoutWord per line.
    """

    template: CaptionTemplate
    lines: tuple[tuple[LayoutWord, ...], ...]
    anchor: CaptionPosition
    font_size: FontSize
    scale: float = 1.0
    backdrop: bool = True
    current_index: int | None = None

    def line_texts(self) -> tuple[str, ...]:
        return tuple(" ".join(w.text for w in line) for line in self.lines)

    @property
    def text(self) -> str:
        return " ".join(self.line_texts())


# ── Lookup helpers ───────────────────────────────────────────────


def find_active_caption(captions: Sequence[Caption], t: float) -> Caption | None:
    """First caption with start <= t < end, or None (gap: draw nothing)."""
    for caption in captions:
        if caption.contains(t):
            return caption
    return None


def current_word_index(words: Sequence[WordTiming], t: float) -> int:
    """Index of the word being spoken at t.

    In a gap between words, the last word that already ended counts as
    current. Before the first word starts, returns -1.
    """
    for i, word in enumerate(words):
        if word.start <= t < word.end:
            return i
    for i in range(len(words) - 1, -1, -1):
        if t >= words[i].end:
            return i
    return -1


def karaoke_window(word_count: int, current: int) -> tuple[int, int]:
    """[start, end) of the karaoke window around the current word.

    The current word sits near the window start (three words of context
    before it). Near the end of the list the window is re-clamped from
    the end so it still shows up to KARAOKE_WINDOW words.
    """
    start = max(0, current - (KARAOKE_WORDS_PER_LINE - 1))
    end = min(word_count, start + KARAOKE_WINDOW)
    if end == word_count and end - start < KARAOKE_WINDOW:
        start = max(0, end - KARAOKE_WINDOW)
    return start, end


def reveal_window(
    word_count: int, progress: float, lead: int, span: int,
) -> tuple[int, int]:
    """[start, end) of a progressive-reveal window for a progress in [0, 1)."""
    end = min(word_count, math.ceil(progress * word_count) + lead)
    start = max(0, end - span)
    return start, end


def wrap_words(
    words: Sequence[str],
    measure: Callable[[str], float],
    max_width: float,
    max_lines: int,
) -> list[str]:
    """Greedy word wrap, keeping at most max_lines lines.

    A single word wider than max_width still gets its own line. Words
    that would start a line past max_lines are dropped from the tail.
    """
    lines = []
    current = ""
    for word in words:
        candidate = f"{current} {word}" if current else word
        if current and measure(candidate) > max_width:
            lines.append(current)
            current = word
            if len(lines) >= max_lines:
                current = ""
                break
        else:
            current = candidate
    if current and len(lines) < max_lines:
        lines.append(current)
    return lines


# ── Per-template selection ───────────────────────────────────────


def _karaoke_layout(caption, settings, t, measure, max_width):
    words = caption.words
    if not words:
        return _sentence_layout(caption, settings, t, measure, max_width)

    current = current_word_index(words, t)
    start, end = karaoke_window(len(words), current)

    def _state(idx: int) -> WordState:
        if idx < current:
            return WordState.PAST
        if idx == current:
            return WordState.CURRENT
        return WordState.UPCOMING

    visible = [LayoutWord(words[i].word, _state(i)) for i in range(start, end)]
    split = math.ceil(len(visible) / 2)
    lines = tuple(line for line in (tuple(visible[:split]), tuple(visible[split:])) if line)

    return CaptionLayout(
        template=CaptionTemplate.KARAOKE,
        lines=lines,
        anchor=settings.position,
        font_size=settings.font_size,
        backdrop=True,
        current_index=current if current >= 0 else None,
    )


def _word_by_word_layout(caption, settings, t):
    if caption.words:
        word = next((w.word for w in caption.words if w.start <= t < w.end), "")
    else:
        tokens = caption.text.split()
        if tokens:
            idx = math.floor(caption.progress(t) * len(tokens))
            word = tokens[max(0, min(idx, len(tokens) - 1))]
        else:
            word = ""

    if not word:
        return None
    return CaptionLayout(
        template=CaptionTemplate.WORD_BY_WORD,
        lines=((LayoutWord(word.upper()),),),
        anchor=settings.position,
        font_size=settings.font_size,
        scale=WORD_BY_WORD_SCALE,
        backdrop=False,
    )


def _sentence_layout(caption, settings, t, measure, max_width):
    tokens = caption.text.split()
    if not tokens:
        return None
    start, end = reveal_window(
        len(tokens), caption.progress(t), SENTENCE_LEAD_WORDS, SENTENCE_WINDOW,
    )
    lines = wrap_words(tokens[start:end], measure, max_width, SENTENCE_MAX_LINES)
    return CaptionLayout(
        template=CaptionTemplate.SENTENCE,
        lines=tuple((LayoutWord(line),) for line in lines),
        anchor=settings.position,
        font_size=settings.font_size,
        backdrop=True,
    )


def _minimal_layout(caption, t):
    tokens = caption.text.split()
    if not tokens:
        return None
    start, end = reveal_window(
        len(tokens), caption.progress(t), MINIMAL_LEAD_WORDS, MINIMAL_WINDOW,
    )
    text = " ".join(tokens[start:end])[:MINIMAL_MAX_CHARS]
    return CaptionLayout(
        template=CaptionTemplate.MINIMAL,
        lines=((LayoutWord(text),),),
        anchor=CaptionPosition.BOTTOM,
        font_size=FontSize.SMALL,
        backdrop=False,
    )


def select_caption_layout(
    captions: Sequence[Caption],
    settings: CaptionSettings,
    t: float,
    measure: Callable[[str], float] = len,
    max_width: float = DEFAULT_MAX_LINE_CHARS,
) -> CaptionLayout | None:
    """Decide what caption text is visible at time t, and how.

    Args:
        captions: All captions of the composition, in time order.
        settings: Caption settings; template, position and size are used.
        t: Timeline position in seconds.
        measure: Width of a string in the same unit as max_width. The
            compositor passes a pixel measure bound to the caption font;
            the default counts characters.
        max_width: Usable line width for sentence wrapping.

    Returns:
        The layout to draw, or None when nothing should be drawn (no
        caption is active at t, or the active one has nothing to show).
    """
    caption = find_active_caption(captions, t)
    if caption is None:
        return None

    template = CaptionTemplate(settings.template)
    if template is CaptionTemplate.KARAOKE:
        return _karaoke_layout(caption, settings, t, measure, max_width)
    if template is CaptionTemplate.WORD_BY_WORD:
        return _word_by_word_layout(caption, settings, t)
    if template is CaptionTemplate.SENTENCE:
        return _sentence_layout(caption, settings, t, measure, max_width)
    return _minimal_layout(caption, t)


# ── Caption builders ─────────────────────────────────────────────


def captions_from_transcription(
    words: Sequence[WordTiming], scenes: Sequence[Scene],
) -> list[Caption]:
    """Group transcribed words into one caption per scene interval.

    Words are consumed in order; a word belongs to the first scene whose
    end lies after the word's start. Scenes that receive no words get no
    caption, leaving a gap. Words starting after the last scene ends are
    dropped.
    """
    captions = []
    word_idx = 0
    scene_start = 0.0

    for scene in scenes:
        scene_end = scene_start + scene.duration
        scene_words = []
        while word_idx < len(words) and words[word_idx].start < scene_end:
            scene_words.append(words[word_idx])
            word_idx += 1

        if scene_words:
            captions.append(Caption(
                start_time=scene_start,
                end_time=scene_end,
                text=" ".join(w.word for w in scene_words),
                words=tuple(scene_words),
            ))
        scene_start = scene_end

    return captions


def captions_from_scenes(scenes: Sequence[Scene]) -> list[Caption]:
    """One caption per scene with evenly spread synthetic word timings."""
    captions = []
    current_t = 0.0
    for scene in scenes:
        tokens = scene.text.split()
        timings = ()
        if tokens:
            step = scene.duration / len(tokens)
            timings = tuple(
                WordTiming(word, current_t + i * step, current_t + (i + 1) * step)
                for i, word in enumerate(tokens)
            )
        captions.append(Caption(
            start_time=current_t,
            end_time=current_t + scene.duration,
            text=scene.text,
            words=timings,
        ))
        current_t += scene.duration
    return captions
