"""Frame compositor -- rasterizes one output frame at a timestamp.

A frame is built in three layers:
  1. Opaque black, then the scene image scaled to "cover" the output
     (aspect preserved, overflow axis center-cropped).
  2. A rounded-rect caption backdrop (karaoke and sentence only).
  3. Caption text, rendered as small RGBA patches (with optional glow or
     drop shadow) and alpha-blended onto the frame.

Scenes without a usable image get a placeholder: a diagonal two-color
gradient with the 1-based scene number in large translucent text.

All pixel constants are defined for the output size directly; the base
font size is min(width, height) / 18 so captions read the same in
landscape, portrait and square output.
"""

import numpy as np
from PIL import Image, ImageDraw, ImageFilter

from .captions import KARAOKE_CURRENT_SCALE, CaptionLayout, WordState, select_caption_layout
from .common import load_font, measure_text, parse_color, text_advance
from .models import Caption, CaptionPosition, CaptionSettings, CaptionTemplate, FontSize


# ── Constants ────────────────────────────────────────────────────

FONT_SIZE_SCALES = {
    FontSize.SMALL: 0.7,
    FontSize.MEDIUM: 1.0,
    FontSize.LARGE: 1.3,
}

ANCHOR_Y_FRAC = {
    CaptionPosition.TOP: 0.12,
    CaptionPosition.CENTER: 0.5,
    CaptionPosition.BOTTOM: 0.82,
}

USABLE_WIDTH_FRAC = 0.85
LINE_HEIGHT = 1.3
BACKDROP_PADDING = 20
BACKDROP_RADIUS = 16
MINIMAL_BOTTOM_OFFSET = 80

HIGHLIGHT_COLOR = (255, 215, 0, 255)     # #FFD700
HIGHLIGHT_GLOW_BLUR = 15
UPCOMING_COLOR = (255, 255, 255, 128)    # rgba(255, 255, 255, 0.5)

WORD_SHADOW_COLOR = (0, 0, 0, 230)       # rgba(0, 0, 0, 0.9)
WORD_SHADOW_BLUR = 30
WORD_SHADOW_OFFSET_Y = 5

MINIMAL_TEXT_COLOR = (255, 255, 255, 230)
MINIMAL_SHADOW_COLOR = (0, 0, 0, 204)
MINIMAL_SHADOW_BLUR = 10

PLACEHOLDER_START = (14, 165, 233)       # #0ea5e9
PLACEHOLDER_END = (99, 102, 241)         # #6366f1
PLACEHOLDER_TEXT_COLOR = (255, 255, 255, 77)


# ── Geometry ─────────────────────────────────────────────────────


def compute_cover_geometry(
    img_w: int, img_h: int, out_w: int, out_h: int,
) -> tuple[float, float, float, float]:
    """Compute (draw_x, draw_y, draw_w, draw_h) to cover the output.

    A wider image than the output fills the height and is centered
    horizontally; otherwise it fills the width and is centered
    vertically. The overflowing axis gets a negative offset.
    """
    img_aspect = img_w / img_h
    out_aspect = out_w / out_h
    if img_aspect > out_aspect:
        draw_h = float(out_h)
        draw_w = out_h * img_aspect
        return (out_w - draw_w) / 2, 0.0, draw_w, draw_h
    draw_w = float(out_w)
    draw_h = out_w / img_aspect
    return 0.0, (out_h - draw_h) / 2, draw_w, draw_h


def fit_cover(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    """Return an RGB image of exactly `size` with `image` cover-scaled on black."""
    out_w, out_h = size
    x, y, w, h = compute_cover_geometry(image.width, image.height, out_w, out_h)
    scaled = image.convert("RGBA").resize(
        (max(1, round(w)), max(1, round(h))), Image.LANCZOS,
    )
    canvas = Image.new("RGB", size, (0, 0, 0))
    canvas.paste(scaled, (round(x), round(y)), scaled)
    return canvas


# ── Patch rendering ──────────────────────────────────────────────


def render_text_patch(
    text: str,
    font,
    fill: tuple[int, int, int, int],
    shadow: tuple[tuple[int, int, int, int], float, int] | None = None,
) -> tuple[np.ndarray, int, int]:
    """Render text into a tight RGBA patch, with optional blurred shadow.

    Args:
        text: Text to render.
        font: Pillow font.
        fill: RGBA text color.
        shadow: Optional (rgba, blur, offset_y). A zero offset with the
            text color gives a glow.

    Returns:
        (patch, cx, cy): RGBA uint8 array and the point inside the patch
        that corresponds to the text's middle-center anchor.
    """
    left, top, right, bottom = font.getbbox(text, anchor="mm")
    margin = 2
    offset_y = 0
    if shadow is not None:
        _, blur, offset_y = shadow
        margin += int(blur * 1.5) + abs(offset_y)

    patch_w = right - left + 2 * margin
    patch_h = bottom - top + 2 * margin
    cx, cy = margin - left, margin - top

    img = Image.new("RGBA", (patch_w, patch_h), (0, 0, 0, 0))
    if shadow is not None:
        color, blur, offset_y = shadow
        layer = Image.new("RGBA", (patch_w, patch_h), (0, 0, 0, 0))
        ImageDraw.Draw(layer).text((cx, cy + offset_y), text, fill=color, font=font, anchor="mm")
        img = layer.filter(ImageFilter.GaussianBlur(blur / 2))

    text_layer = Image.new("RGBA", (patch_w, patch_h), (0, 0, 0, 0))
    ImageDraw.Draw(text_layer).text((cx, cy), text, fill=fill, font=font, anchor="mm")
    img = Image.alpha_composite(img, text_layer)
    return np.array(img), cx, cy


def render_backdrop_patch(
    width: int, height: int, color: tuple[int, int, int, int],
) -> np.ndarray:
    img = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    ImageDraw.Draw(img).rounded_rectangle(
        [(0, 0), (width - 1, height - 1)], radius=BACKDROP_RADIUS, fill=color,
    )
    return np.array(img)


def blend_patch(frame: np.ndarray, patch: np.ndarray, x: int, y: int) -> None:
    """Alpha-blend an RGBA patch onto an RGB frame in place at (x, y).

    The patch is clipped to the frame; parts falling outside are ignored.
    """
    frame_h, frame_w = frame.shape[:2]
    patch_h, patch_w = patch.shape[:2]
    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(frame_w, x + patch_w), min(frame_h, y + patch_h)
    if x0 >= x1 or y0 >= y1:
        return

    src = patch[y0 - y:y1 - y, x0 - x:x1 - x]
    alpha = src[:, :, 3:4].astype(np.float32) / 255.0
    rgb = src[:, :, :3].astype(np.float32)
    dest = frame[y0:y1, x0:x1].astype(np.float32)
    frame[y0:y1, x0:x1] = (dest * (1 - alpha) + rgb * alpha).astype(np.uint8)


def _blend_centered(frame, patch_info, center_x, center_y) -> None:
    patch, cx, cy = patch_info
    blend_patch(frame, patch, round(center_x - cx), round(center_y - cy))


# ── Placeholder ──────────────────────────────────────────────────


def make_placeholder(ordinal: int, size: tuple[int, int]) -> Image.Image:
    """Diagonal gradient with the scene number centered in translucent text."""
    w, h = size
    xs = np.arange(w, dtype=np.float32)[None, :]
    ys = np.arange(h, dtype=np.float32)[:, None]
    # Projection onto the (0,0) -> (w,h) diagonal, like a canvas linear gradient.
    t = (xs * w + ys * h) / float(w * w + h * h)
    start = np.array(PLACEHOLDER_START, dtype=np.float32)
    end = np.array(PLACEHOLDER_END, dtype=np.float32)
    frame = (start + (end - start) * t[..., None]).astype(np.uint8)

    font = load_font(round(min(w, h) / 4))
    _blend_centered(
        frame, render_text_patch(str(ordinal), font, PLACEHOLDER_TEXT_COLOR), w / 2, h / 2,
    )
    return Image.fromarray(frame)


# ── Compositor ───────────────────────────────────────────────────


class FrameCompositor:
    """Caller-owned renderer for one composition run.

    Holds only immutable configuration (output size, captions, settings)
    and the fonts derived from it; render_frame() has no side effects, so
    the same (background, t) always yields the same pixels.
    """

    def __init__(
        self,
        size: tuple[int, int],
        captions: list[Caption],
        settings: CaptionSettings,
    ) -> None:
        self.size = size
        self.width, self.height = size
        self.captions = tuple(captions)
        self.settings = settings
        self.text_color = parse_color(settings.text_color)
        self.background_color = parse_color(settings.background_color)
        self.max_line_width = self.width * USABLE_WIDTH_FRAC
        self._caption_font = self.font(FontSize(settings.font_size))

    # ── Metrics ──────────────────────────────────────────────────

    def font_px(self, font_size: FontSize, scale: float = 1.0) -> int:
        base = min(self.width, self.height) / 18
        return max(1, round(base * FONT_SIZE_SCALES[FontSize(font_size)] * scale))

    def font(self, font_size: FontSize, scale: float = 1.0):
        return load_font(self.font_px(font_size, scale), self.settings.font_family)

    def anchor_y(self, layout: CaptionLayout) -> float:
        if layout.template is CaptionTemplate.MINIMAL:
            return self.height - MINIMAL_BOTTOM_OFFSET
        return self.height * ANCHOR_Y_FRAC[CaptionPosition(layout.anchor)]

    def measure(self, text: str) -> float:
        return text_advance(text, self._caption_font)

    def layout_at(self, t: float) -> CaptionLayout | None:
        return select_caption_layout(
            self.captions, self.settings, t,
            measure=self.measure, max_width=self.max_line_width,
        )

    # ── Frame ────────────────────────────────────────────────────

    def render_frame(self, background: Image.Image, t: float) -> np.ndarray:
        """Render the frame at timeline position t.

        Args:
            background: Scene image. Cover-scaled here unless it is
                already an RGB image of exactly the output size.
            t: Timeline position in seconds.

        Returns:
            numpy array of shape (height, width, 3), dtype uint8.
        """
        if background.size != self.size or background.mode != "RGB":
            background = fit_cover(background, self.size)
        frame = np.array(background, dtype=np.uint8)

        layout = self.layout_at(t)
        if layout is not None:
            self.draw_caption(frame, layout)
        return frame

    def draw_caption(self, frame: np.ndarray, layout: CaptionLayout) -> None:
        template = layout.template
        if template is CaptionTemplate.KARAOKE:
            self._draw_karaoke(frame, layout)
        elif template is CaptionTemplate.WORD_BY_WORD:
            self._draw_single_line(
                frame, layout, self.text_color,
                (WORD_SHADOW_COLOR, WORD_SHADOW_BLUR, WORD_SHADOW_OFFSET_Y),
            )
        elif template is CaptionTemplate.MINIMAL:
            self._draw_single_line(
                frame, layout, MINIMAL_TEXT_COLOR,
                (MINIMAL_SHADOW_COLOR, MINIMAL_SHADOW_BLUR, 0),
            )
        else:
            self._draw_sentence(frame, layout)

    # ── Template renderers ───────────────────────────────────────

    def _line_centers(self, layout: CaptionLayout, line_height: float) -> list[float]:
        y = self.anchor_y(layout)
        n = len(layout.lines)
        return [y - (n - 1) * line_height / 2 + i * line_height for i in range(n)]

    def _draw_backdrop(self, frame, layout, text_width: float, line_height: float) -> None:
        width = round(text_width) + 2 * BACKDROP_PADDING
        height = round(len(layout.lines) * line_height) + 2 * BACKDROP_PADDING
        patch = render_backdrop_patch(width, height, self.background_color)
        x = round((self.width - width) / 2)
        y = round(self.anchor_y(layout) - height / 2)
        blend_patch(frame, patch, x, y)

    def _draw_sentence(self, frame, layout) -> None:
        font = self.font(layout.font_size)
        line_height = self.font_px(layout.font_size) * LINE_HEIGHT
        texts = layout.line_texts()
        widest = max(measure_text(text, font)[0] for text in texts)
        self._draw_backdrop(frame, layout, widest, line_height)

        for text, cy in zip(texts, self._line_centers(layout, line_height)):
            _blend_centered(
                frame, render_text_patch(text, font, self.text_color), self.width / 2, cy,
            )

    def _draw_karaoke(self, frame, layout) -> None:
        font = self.font(layout.font_size)
        current_font = self.font(layout.font_size, layout.scale * KARAOKE_CURRENT_SCALE)
        line_height = self.font_px(layout.font_size) * LINE_HEIGHT
        texts = layout.line_texts()
        widest = max(text_advance(text, font) for text in texts)
        self._draw_backdrop(frame, layout, widest, line_height)

        for line, text, cy in zip(layout.lines, texts, self._line_centers(layout, line_height)):
            # Words are positioned with the base font so the line does not
            # shift when the enlarged current word moves along it.
            x = self.width / 2 - text_advance(text, font) / 2
            for word in line:
                word_w = text_advance(word.text, font)
                if word.state is WordState.CURRENT:
                    patch = render_text_patch(
                        word.text, current_font, HIGHLIGHT_COLOR,
                        (HIGHLIGHT_COLOR, HIGHLIGHT_GLOW_BLUR, 0),
                    )
                elif word.state is WordState.PAST:
                    patch = render_text_patch(word.text, font, self.text_color)
                else:
                    patch = render_text_patch(word.text, font, UPCOMING_COLOR)
                _blend_centered(frame, patch, x + word_w / 2, cy)
                x += text_advance(word.text + " ", font)

    def _draw_single_line(self, frame, layout, fill, shadow) -> None:
        font = self.font(layout.font_size, layout.scale)
        patch = render_text_patch(layout.line_texts()[0], font, fill, shadow)
        _blend_centered(frame, patch, self.width / 2, self.anchor_y(layout))
