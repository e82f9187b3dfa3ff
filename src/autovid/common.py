"""autovid.common — shared utilities for composition.

Contains: color parsing, path variable resolution, font loading by
family name, and text measurement.
"""

import re
from functools import lru_cache
from pathlib import Path

from PIL import ImageColor, ImageDraw, ImageFont, Image


# ── Font paths ─────────────────────────────────────────────────────
# Family lookups search FONT_DIRS; FALLBACK_FONT_PATHS are tried when the
# requested family is not installed. Captions are drawn bold, so bold
# faces are preferred when a family ships several.

FONT_DIRS = [
    Path.home() / ".local/share/fonts",
    Path.home() / ".fonts",
    Path("/usr/local/share/fonts"),
    Path("/usr/share/fonts"),
]

FALLBACK_FONT_PATHS = [
    Path.home() / ".local/share/fonts/Inter.ttc",
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"),
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
]

FONT_SUFFIXES = (".ttf", ".otf", ".ttc")


# ── Color utilities ────────────────────────────────────────────────

_CSS_RGB_RE = re.compile(
    r"rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*(?:,\s*([\d.]+)\s*)?\)",
    re.IGNORECASE,
)


def parse_hex_color(hex_str: str) -> tuple[int, int, int]:
    """Convert '#RRGGBB', 'RRGGBB' or '#RGB' string to (R, G, B) tuple."""
    hex_str = hex_str.lstrip("#")
    if len(hex_str) == 3:
        hex_str = "".join(c * 2 for c in hex_str)
    return (int(hex_str[0:2], 16), int(hex_str[2:4], 16), int(hex_str[4:6], 16))


def parse_color(value: str) -> tuple[int, int, int, int]:
    """Parse a color token into an RGBA tuple.

    Accepts hex ('#fff', '#ffffff', '#ffffffcc'), CSS functional notation
    ('rgb(0, 0, 0)', 'rgba(0, 0, 0, 0.8)' with a 0-1 alpha), and any
    color name Pillow knows ('white', 'gold').

    Raises:
        ValueError: If the value is none of the above.
    """
    value = value.strip()
    match = _CSS_RGB_RE.fullmatch(value)
    if match:
        r, g, b, alpha = match.groups()
        a = 255 if alpha is None else round(min(1.0, float(alpha)) * 255)
        return (int(r), int(g), int(b), a)

    stripped = value.lstrip("#")
    if value.startswith("#") and len(stripped) == 8:
        return (*parse_hex_color(stripped[:6]), int(stripped[6:8], 16))
    if value.startswith("#") and len(stripped) in (3, 6):
        return (*parse_hex_color(stripped), 255)

    try:
        rgb = ImageColor.getrgb(value)
    except ValueError:
        raise ValueError(f"Unknown color: '{value}'.") from None
    if len(rgb) == 4:
        return rgb
    return (*rgb, 255)


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return str(paths[key])
    return re.sub(r"\$\{(\w+)\}", _replace, text)


# ── Font loading ───────────────────────────────────────────────────

@lru_cache(maxsize=32)
def find_font_file(family: str) -> Path | None:
    """Locate an installed font file for a family name like 'Bebas Neue'.

    Matches file stems that start with the family name with spaces
    removed (case-insensitive). Bold faces win over other styles.
    """
    key = family.replace(" ", "").lower()
    if not key:
        return None

    candidates = []
    for font_dir in FONT_DIRS:
        if not font_dir.is_dir():
            continue
        for path in font_dir.rglob("*"):
            if path.suffix.lower() in FONT_SUFFIXES and path.stem.lower().replace(" ", "").startswith(key):
                candidates.append(path)
    if not candidates:
        return None

    def _rank(path: Path) -> tuple[int, int, str]:
        stem = path.stem.lower()
        return (0 if "bold" in stem else 1, len(stem), str(path))

    return sorted(candidates, key=_rank)[0]


@lru_cache(maxsize=128)
def load_font(
    size: int, family: str | None = None,
) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a font at the given pixel size, cached per (size, family).

    Tries the requested family first, then the fallback list, then
    Pillow's bundled scalable default.
    """
    size = max(1, int(size))
    paths = []
    if family:
        found = find_font_file(family)
        if found is not None:
            paths.append(found)
    paths.extend(FALLBACK_FONT_PATHS)

    for font_path in paths:
        if font_path.exists():
            try:
                return ImageFont.truetype(str(font_path), size=size, index=0)
            except (OSError, IndexError):
                continue
    # Last resort: Pillow default font (scalable since Pillow 10.1).
    return ImageFont.load_default(size=size)


# ── Text measurement ───────────────────────────────────────────────

_MEASURE_DRAW = ImageDraw.Draw(Image.new("RGBA", (1, 1)))


def measure_text(text: str, font) -> tuple[int, int]:
    """Return the (width, height) of text's ink box for the given font."""
    if not text:
        return 0, 0
    bbox = _MEASURE_DRAW.textbbox((0, 0), text, font=font)
    return bbox[2] - bbox[0], bbox[3] - bbox[1]


def text_advance(text: str, font) -> float:
    """Horizontal pen advance for text, including trailing spaces."""
    return _MEASURE_DRAW.textlength(text, font=font)
