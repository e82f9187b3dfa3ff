"""Project manifest loader.

Parses a YAML manifest describing one composition run, resolves ${path}
variables, and validates scenes, caption settings and video options.

Manifest schema:
  video:
    aspect_ratio: "9:16"      # 16:9 | 9:16 | 1:1
    fps: 30
    bitrate: 8M
    audio_bitrate: 128k
  paths:
    assets: /data/project
  audio: ${assets}/narration.mp3
  captions: ${assets}/captions.json   # optional: path or inline list
  caption_settings:
    template: karaoke
    position: bottom
    font_size: large
    font_family: Inter
    text_color: "#ffffff"
    background_color: "rgba(0, 0, 0, 0.8)"
  scenes:
    - text: "Narration"
      image_prompt: "prompt used to generate the image"
      duration: 10
      image: ${assets}/scene-01.png   # optional

Relative file paths are resolved against the manifest's directory.

Captions may be a list of caption objects, or a transcript object
{"words": [{"start", "end", "text"}]} which is grouped per scene. With
no captions at all, captions are synthesized from scene text.
"""

import json
import logging
import math
from pathlib import Path

import yaml

from .captions import captions_from_scenes, captions_from_transcription
from .common import parse_color, resolve_path_vars
from .models import (
    ASPECT_RATIO_DIMS,
    AspectRatio,
    Caption,
    CaptionPosition,
    CaptionSettings,
    CaptionTemplate,
    DEFAULT_CAPTION_SETTINGS,
    FontSize,
    Scene,
    WordTiming,
)

LOGGER = logging.getLogger(__name__)


VALID_TEMPLATES = {t.value for t in CaptionTemplate}
VALID_POSITIONS = {p.value for p in CaptionPosition}
VALID_FONT_SIZES = {s.value for s in FontSize}
VALID_ASPECT_RATIOS = {a.value for a in AspectRatio}

DEFAULT_VIDEO = {
    "aspect_ratio": AspectRatio.PORTRAIT.value,
    "fps": 30,
    "bitrate": "8M",
    "audio_bitrate": "128k",
}


# ── Manifest loading ──────────────────────────────────────────────


def load_manifest(manifest_path: str | Path) -> dict:
    """Load, validate, and normalize a composition manifest.

    Processing pipeline:
      1. Parse YAML.
      2. Resolve ${path} variables in every string value.
      3. Validate video options and apply defaults.
      4. Build Scene objects (duration > 0, text required).
      5. Build CaptionSettings from defaults + overrides.
      6. Keep inline captions parsed; a captions file stays a path until
         load_captions().

    Args:
        manifest_path: Path to the YAML manifest file.

    Returns:
        Normalized config dict with keys video, audio, scenes,
        caption_settings, captions, captions_path.

    Raises:
        ValueError: Invalid or missing field.
        FileNotFoundError: Missing manifest file.
    """
    manifest_path = Path(manifest_path)
    with open(manifest_path) as f:
        raw = yaml.safe_load(f) or {}

    base_dir = manifest_path.resolve().parent
    paths = raw.pop("paths", None) or {}
    raw = _resolve_paths(raw, paths)

    config = {"video": parse_video_settings(raw.get("video") or {})}

    audio = raw.get("audio")
    config["audio"] = _resolve_file(audio, base_dir) if audio else None

    config["scenes"] = parse_scenes(raw.get("scenes") or [], base_dir)
    config["caption_settings"] = parse_caption_settings(raw.get("caption_settings") or {})

    captions = raw.get("captions")
    config["captions"] = None
    config["captions_path"] = None
    if isinstance(captions, str):
        config["captions_path"] = _resolve_file(captions, base_dir)
    elif captions is not None:
        config["captions"] = parse_captions(captions, config["scenes"])

    return config


def _resolve_paths(obj, paths: dict):
    """Recursively resolve ${var} in all string values."""
    if isinstance(obj, str):
        return resolve_path_vars(obj, paths)
    elif isinstance(obj, dict):
        return {k: _resolve_paths(v, paths) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_resolve_paths(item, paths) for item in obj]
    return obj


def _resolve_file(value: str, base_dir: Path) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else base_dir / path


# ── Section parsers ───────────────────────────────────────────────


def parse_video_settings(video: dict) -> dict:
    """Apply defaults to the video block and validate it."""
    settings = {**DEFAULT_VIDEO, **video}

    aspect = str(settings["aspect_ratio"])
    if aspect not in VALID_ASPECT_RATIOS:
        raise ValueError(
            f"video.aspect_ratio: unknown value '{aspect}'. "
            f"Valid: {sorted(VALID_ASPECT_RATIOS)}"
        )
    settings["aspect_ratio"] = AspectRatio(aspect)
    settings["resolution"] = ASPECT_RATIO_DIMS[settings["aspect_ratio"]]

    fps = settings["fps"]
    if not isinstance(fps, int) or isinstance(fps, bool) or fps <= 0:
        raise ValueError(f"video.fps must be a positive integer, got {fps!r}")

    for key in ("bitrate", "audio_bitrate"):
        settings[key] = str(settings[key])
    return settings


def parse_scenes(raw_scenes: list, base_dir: Path | None = None) -> list[Scene]:
    """Build Scene objects from manifest dicts.

    Raises:
        ValueError: Missing text, or duration that is not a finite number > 0.
    """
    scenes = []
    for i, raw in enumerate(raw_scenes):
        if not isinstance(raw, dict):
            raise ValueError(f"Scene {i + 1}: expected a mapping, got {type(raw).__name__}")
        if "text" not in raw:
            raise ValueError(f"Scene {i + 1}: missing required field 'text'")

        duration = raw.get("duration")
        if (
            not isinstance(duration, (int, float)) or isinstance(duration, bool)
            or not math.isfinite(duration) or duration <= 0
        ):
            raise ValueError(f"Scene {i + 1}: duration must be > 0, got {duration!r}")

        image = raw.get("image")
        if image and base_dir is not None:
            image = _resolve_file(image, base_dir)

        scenes.append(Scene(
            index=i,
            text=str(raw["text"]),
            duration=float(duration),
            image_prompt=str(raw.get("image_prompt", "")),
            image=image or None,
        ))
    return scenes


def parse_caption_settings(raw: dict) -> CaptionSettings:
    """Build CaptionSettings from defaults plus the given overrides.

    Raises:
        ValueError: Unknown template/position/size or unparseable color.
    """
    values = {
        "template": DEFAULT_CAPTION_SETTINGS.template.value,
        "position": DEFAULT_CAPTION_SETTINGS.position.value,
        "font_size": DEFAULT_CAPTION_SETTINGS.font_size.value,
        "font_family": DEFAULT_CAPTION_SETTINGS.font_family,
        "text_color": DEFAULT_CAPTION_SETTINGS.text_color,
        "background_color": DEFAULT_CAPTION_SETTINGS.background_color,
    }
    unknown = set(raw) - set(values)
    if unknown:
        raise ValueError(f"caption_settings: unknown field(s) {sorted(unknown)}")
    values.update({k: v for k, v in raw.items() if v is not None})

    for key, valid in (
        ("template", VALID_TEMPLATES),
        ("position", VALID_POSITIONS),
        ("font_size", VALID_FONT_SIZES),
    ):
        if str(values[key]) not in valid:
            raise ValueError(
                f"caption_settings.{key}: unknown value '{values[key]}'. "
                f"Valid: {sorted(valid)}"
            )
    for key in ("text_color", "background_color"):
        parse_color(str(values[key]))

    return CaptionSettings(
        template=CaptionTemplate(str(values["template"])),
        position=CaptionPosition(str(values["position"])),
        font_size=FontSize(str(values["font_size"])),
        font_family=str(values["font_family"]),
        text_color=str(values["text_color"]),
        background_color=str(values["background_color"]),
    )


# ── Captions ──────────────────────────────────────────────────────


def _parse_word(raw: dict, where: str) -> WordTiming:
    word = raw.get("word", raw.get("text"))
    if word is None or "start" not in raw or "end" not in raw:
        raise ValueError(f"{where}: word timing needs word/text, start and end")
    start, end = float(raw["start"]), float(raw["end"])
    if end < start:
        raise ValueError(f"{where}: word '{word}' ends before it starts")
    return WordTiming(str(word).strip(), start, end)


def _parse_caption(raw: dict, index: int) -> Caption:
    where = f"Caption {index + 1}"
    start = raw.get("start_time", raw.get("startTime"))
    end = raw.get("end_time", raw.get("endTime"))
    if start is None or end is None or "text" not in raw:
        raise ValueError(f"{where}: needs start_time, end_time and text")
    start, end = float(start), float(end)
    if end <= start:
        raise ValueError(f"{where}: end_time must be after start_time")

    words = tuple(_parse_word(w, where) for w in raw.get("words") or [])
    for prev, cur in zip(words, words[1:]):
        if cur.start < prev.start:
            raise ValueError(f"{where}: word timings must be in time order")
    return Caption(start, end, str(raw["text"]), words)


def parse_captions(data, scenes: list[Scene]) -> list[Caption]:
    """Parse captions from a caption list or a transcript object.

    Raises:
        ValueError: Unrecognized structure or invalid timings.
    """
    if isinstance(data, dict) and "words" in data:
        words = [_parse_word(w, "Transcript") for w in data["words"]]
        return captions_from_transcription(words, scenes)
    if isinstance(data, list):
        captions = [_parse_caption(c, i) for i, c in enumerate(data)]
        return sorted(captions, key=lambda c: c.start_time)
    raise ValueError(
        "Captions must be a list of captions or a transcript with 'words'"
    )


def load_captions(config: dict) -> list[Caption]:
    """Captions for a loaded manifest: inline, from file, or synthesized."""
    if config["captions"] is not None:
        return config["captions"]
    if config["captions_path"] is not None:
        with open(config["captions_path"]) as f:
            return parse_captions(json.load(f), config["scenes"])
    return captions_from_scenes(config["scenes"])


def captions_to_json(captions: list[Caption]) -> list[dict]:
    return [
        {
            "start_time": c.start_time,
            "end_time": c.end_time,
            "text": c.text,
            "words": [{"word": w.word, "start": w.start, "end": w.end} for w in c.words],
        }
        for c in captions
    ]


# ── Path validation ───────────────────────────────────────────────


def validate_paths(config: dict) -> list[str]:
    """Check that audio and captions files exist.

    Missing scene images are only warned about (they render as
    placeholders) and returned for display.

    Returns:
        Warning messages for scenes whose image file is missing.

    Raises:
        FileNotFoundError: Lists all missing required files.
    """
    missing = []
    for key in ("audio", "captions_path"):
        path = config.get(key)
        if path is not None and not Path(path).exists():
            missing.append(str(path))
    if missing:
        msg = f"Missing {len(missing)} file(s):\n"
        for p in missing:
            msg += f"  - {p}\n"
        raise FileNotFoundError(msg)

    warnings = []
    for scene in config["scenes"]:
        if isinstance(scene.image, Path) and not scene.image.exists():
            warning = f"Scene {scene.ordinal}: image not found ({scene.image}), placeholder will be used"
            LOGGER.warning(warning)
            warnings.append(warning)
    return warnings
