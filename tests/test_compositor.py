"""Tests for frame compositing."""

import numpy as np
import pytest
from PIL import Image

from autovid.compositor import (
    FrameCompositor,
    MINIMAL_BOTTOM_OFFSET,
    PLACEHOLDER_END,
    PLACEHOLDER_START,
    blend_patch,
    compute_cover_geometry,
    fit_cover,
    make_placeholder,
    render_backdrop_patch,
    render_text_patch,
)
from autovid.common import load_font
from autovid.captions import select_caption_layout
from autovid.models import (
    Caption,
    CaptionPosition,
    CaptionSettings,
    CaptionTemplate,
    FontSize,
    WordTiming,
)


SIZE = (180, 320)

CAPTIONS = [
    Caption(
        0.0, 2.0, "Hello world",
        (WordTiming("Hello", 0.0, 1.0), WordTiming("world", 1.0, 2.0)),
    ),
]


def _background(color=(10, 20, 30)):
    return Image.new("RGB", SIZE, color)


class TestComputeCoverGeometry:
    def test_wide_image_into_portrait_fills_height(self):
        x, y, w, h = compute_cover_geometry(1920, 1080, 1080, 1920)
        assert y == 0.0
        assert h == 1920
        assert w == pytest.approx(1920 * 1920 / 1080)
        assert x == pytest.approx((1080 - w) / 2)
        assert x < 0

    def test_tall_image_into_square_fills_width(self):
        x, y, w, h = compute_cover_geometry(1000, 2000, 1000, 1000)
        assert (x, w) == (0.0, 1000)
        assert h == 2000
        assert y == -500

    def test_same_aspect_is_exact(self):
        geometry = compute_cover_geometry(960, 540, 1920, 1080)
        assert geometry == pytest.approx((0.0, 0.0, 1920, 1080))

    def test_always_covers(self):
        for img in [(100, 50), (50, 100), (333, 333), (1, 1000)]:
            x, y, w, h = compute_cover_geometry(*img, 1080, 1920)
            assert x <= 0 and y <= 0
            assert x + w >= 1080 - 1e-6
            assert y + h >= 1920 - 1e-6


class TestFitCover:
    def test_output_size_and_mode(self):
        img = Image.new("RGBA", (640, 480), (255, 0, 0, 255))
        out = fit_cover(img, SIZE)
        assert out.size == SIZE
        assert out.mode == "RGB"
        assert out.getpixel((90, 160)) == (255, 0, 0)

    def test_no_black_bars(self):
        img = Image.new("RGB", (1000, 100), (0, 255, 0))
        out = np.array(fit_cover(img, SIZE))
        assert (out[:, :, 1] > 200).all()


class TestPatches:
    def test_text_patch_is_rgba(self):
        patch, cx, cy = render_text_patch("Hi", load_font(24), (255, 255, 255, 255))
        assert patch.dtype == np.uint8
        assert patch.shape[2] == 4
        assert 0 < cx < patch.shape[1]
        assert 0 < cy < patch.shape[0]

    def test_shadow_grows_patch(self):
        font = load_font(24)
        plain, _, _ = render_text_patch("Hi", font, (255, 255, 255, 255))
        shadowed, _, _ = render_text_patch(
            "Hi", font, (255, 255, 255, 255), ((0, 0, 0, 230), 10, 5),
        )
        assert shadowed.shape[0] > plain.shape[0]
        assert shadowed.shape[1] > plain.shape[1]

    def test_backdrop_has_rounded_corners(self):
        patch = render_backdrop_patch(100, 50, (0, 0, 0, 204))
        assert patch.shape == (50, 100, 4)
        assert patch[0, 0, 3] == 0
        assert patch[25, 50, 3] == 204


class TestBlendPatch:
    def test_opaque_patch_replaces_pixels(self):
        frame = np.zeros((10, 10, 3), dtype=np.uint8)
        patch = np.full((2, 2, 4), 255, dtype=np.uint8)
        blend_patch(frame, patch, 4, 4)
        assert (frame[4:6, 4:6] == 255).all()
        assert frame[0, 0].tolist() == [0, 0, 0]

    def test_transparent_patch_is_noop(self):
        frame = np.full((10, 10, 3), 7, dtype=np.uint8)
        patch = np.zeros((4, 4, 4), dtype=np.uint8)
        blend_patch(frame, patch, 2, 2)
        assert (frame == 7).all()

    def test_patch_clipped_at_edges(self):
        frame = np.zeros((10, 10, 3), dtype=np.uint8)
        patch = np.full((4, 4, 4), 255, dtype=np.uint8)
        blend_patch(frame, patch, -2, 8)
        assert (frame[8:10, 0:2] == 255).all()
        assert frame[7, 0].tolist() == [0, 0, 0]

    def test_fully_outside_is_ignored(self):
        frame = np.zeros((10, 10, 3), dtype=np.uint8)
        patch = np.full((4, 4, 4), 255, dtype=np.uint8)
        blend_patch(frame, patch, 20, 20)
        assert not frame.any()


class TestPlaceholder:
    def test_size_and_gradient_endpoints(self):
        img = make_placeholder(1, SIZE)
        assert img.size == SIZE
        arr = np.array(img)
        assert tuple(arr[0, 0]) == PLACEHOLDER_START
        assert np.allclose(arr[-1, -1], PLACEHOLDER_END, atol=3)

    def test_ordinal_changes_only_center(self):
        a = np.array(make_placeholder(3, SIZE))
        b = np.array(make_placeholder(8, SIZE))
        assert np.array_equal(a[:20, :20], b[:20, :20])
        assert np.array_equal(a[-20:, -20:], b[-20:, -20:])
        center = (slice(120, 200), slice(50, 130))
        assert not np.array_equal(a[center], b[center])


class TestFrameCompositor:
    def test_font_px_scales_with_output(self):
        comp = FrameCompositor((1080, 1920), CAPTIONS, CaptionSettings())
        assert comp.font_px(FontSize.MEDIUM) == 60
        assert comp.font_px(FontSize.LARGE) == 78
        assert comp.font_px(FontSize.SMALL) == 42
        assert comp.font_px(FontSize.MEDIUM, 2.0) == 120

    def test_anchor_y(self):
        comp = FrameCompositor((1080, 1920), CAPTIONS, CaptionSettings())
        layout = comp.layout_at(0.5)
        assert comp.anchor_y(layout) == pytest.approx(0.82 * 1920)

        minimal = FrameCompositor(
            (1080, 1920), CAPTIONS,
            CaptionSettings(template=CaptionTemplate.MINIMAL, position=CaptionPosition.TOP),
        )
        assert minimal.anchor_y(minimal.layout_at(0.5)) == 1920 - MINIMAL_BOTTOM_OFFSET

    def test_layout_matches_selector(self):
        settings = CaptionSettings(template=CaptionTemplate.SENTENCE)
        comp = FrameCompositor(SIZE, CAPTIONS, settings)
        expected = select_caption_layout(
            CAPTIONS, settings, 0.5, measure=comp.measure, max_width=comp.max_line_width,
        )
        assert comp.layout_at(0.5) == expected

    @pytest.mark.parametrize("template", list(CaptionTemplate))
    def test_render_frame_shape(self, template):
        comp = FrameCompositor(SIZE, CAPTIONS, CaptionSettings(template=template))
        frame = comp.render_frame(_background(), 0.5)
        assert frame.shape == (320, 180, 3)
        assert frame.dtype == np.uint8

    @pytest.mark.parametrize("template", list(CaptionTemplate))
    def test_caption_changes_pixels(self, template):
        comp = FrameCompositor(SIZE, CAPTIONS, CaptionSettings(template=template))
        frame = comp.render_frame(_background(), 0.5)
        assert not np.array_equal(frame, np.array(_background()))

    def test_no_caption_frame_is_background(self):
        comp = FrameCompositor(SIZE, CAPTIONS, CaptionSettings())
        frame = comp.render_frame(_background(), 5.0)
        assert np.array_equal(frame, np.array(_background()))

    def test_render_is_deterministic(self):
        comp = FrameCompositor(SIZE, CAPTIONS, CaptionSettings())
        a = comp.render_frame(_background(), 1.2)
        b = comp.render_frame(_background(), 1.2)
        assert np.array_equal(a, b)

    def test_background_is_not_mutated(self):
        bg = _background()
        before = np.array(bg)
        FrameCompositor(SIZE, CAPTIONS, CaptionSettings()).render_frame(bg, 0.5)
        assert np.array_equal(np.array(bg), before)

    def test_mismatched_background_is_cover_fitted(self):
        comp = FrameCompositor(SIZE, CAPTIONS, CaptionSettings())
        frame = comp.render_frame(Image.new("RGB", (64, 64), (0, 0, 255)), 5.0)
        assert frame.shape == (320, 180, 3)
        assert tuple(frame[0, 0]) == (0, 0, 255)

    def test_bottom_caption_leaves_top_untouched(self):
        comp = FrameCompositor(SIZE, CAPTIONS, CaptionSettings(position=CaptionPosition.BOTTOM))
        frame = comp.render_frame(_background(), 0.5)
        assert np.array_equal(frame[:100], np.array(_background())[:100])
