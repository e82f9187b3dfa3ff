"""CLI for composition.

Reads a YAML manifest, validates media paths, and renders the scenes,
narration and captions into one mp4.

Usage:
    # Offline render (exact frame times, as fast as the machine allows)
    autovid compose --manifest project.yaml --output /tmp/video.mp4

    # Re-render with different caption styling, same scenes and audio
    autovid compose --manifest project.yaml --output /tmp/video-wbw.mp4 \
        --template word-by-word --position center

    # Real-time capture against the system clock
    autovid compose --manifest project.yaml --output /tmp/video.mp4 --realtime

    # Validate only (no rendering)
    autovid compose --manifest project.yaml --validate
"""

import argparse
import dataclasses
import logging
import sys
import time

from .driver import compose
from .manifest import (
    VALID_ASPECT_RATIOS,
    VALID_FONT_SIZES,
    VALID_POSITIONS,
    VALID_TEMPLATES,
    load_captions,
    load_manifest,
    parse_caption_settings,
    validate_paths,
)
from .models import ASPECT_RATIO_DIMS, AspectRatio, ProgressEvent


def configure_logging() -> None:
    """Configure logging for CLI output."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")


def _print_progress(event: ProgressEvent) -> None:
    print(f"  [{event.stage}] {event.message}", flush=True)


def _apply_overrides(config: dict, args) -> None:
    """Replace manifest caption/video settings with CLI flags, if given."""
    overrides = {
        "template": args.template,
        "position": args.position,
        "font_size": args.font_size,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        current = dataclasses.asdict(config["caption_settings"])
        current = {k: getattr(v, "value", v) for k, v in current.items()}
        config["caption_settings"] = parse_caption_settings({**current, **overrides})
    if args.aspect_ratio is not None:
        config["video"]["aspect_ratio"] = AspectRatio(args.aspect_ratio)
        config["video"]["resolution"] = ASPECT_RATIO_DIMS[config["video"]["aspect_ratio"]]


def _print_summary(config: dict) -> None:
    video = config["video"]
    settings = config["caption_settings"]
    total = sum(s.duration for s in config["scenes"])
    print(f"Manifest valid: {len(config['scenes'])} scenes, {total:.1f}s")
    for scene in config["scenes"]:
        image = scene.image if scene.image is not None else "(placeholder)"
        text = scene.text.replace("\n", " ")[:60]
        print(f"  {scene.ordinal}: {scene.duration:.1f}s  {image} — {text}")
    width, height = video["resolution"]
    print(f"Video: {video['aspect_ratio'].value} ({width}x{height}), {video['fps']}fps")
    print(
        f"Captions: {settings.template.value}, {settings.position.value}, "
        f"{settings.font_size.value}, {settings.font_family}"
    )


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Compose scenes, narration and captions into an mp4.",
    )
    parser.add_argument(
        "--manifest", required=True,
        help="Path to YAML project manifest",
    )
    parser.add_argument(
        "--output",
        help="Output mp4 path (required unless --validate)",
    )
    parser.add_argument(
        "--template", choices=sorted(VALID_TEMPLATES), default=None,
        help="Override caption template",
    )
    parser.add_argument(
        "--position", choices=sorted(VALID_POSITIONS), default=None,
        help="Override caption position",
    )
    parser.add_argument(
        "--font-size", choices=sorted(VALID_FONT_SIZES), default=None,
        help="Override caption size class",
    )
    parser.add_argument(
        "--aspect-ratio", choices=sorted(VALID_ASPECT_RATIOS), default=None,
        help="Override output aspect ratio",
    )
    parser.add_argument(
        "--realtime", action="store_true",
        help="Capture in real time against the system clock",
    )
    parser.add_argument(
        "--validate", action="store_true",
        help="Validate manifest only — check paths, don't render",
    )
    args = parser.parse_args(args)

    configure_logging()
    config = load_manifest(args.manifest)
    _apply_overrides(config, args)
    validate_paths(config)

    if args.validate:
        _print_summary(config)
        captions = load_captions(config)
        print(f"Captions: {len(captions)} loaded")
        print("All paths verified.")
        return

    if not args.output:
        parser.error("--output is required (unless using --validate)")

    video = config["video"]
    captions = load_captions(config)
    print(f"Composing {len(config['scenes'])} scenes, {len(captions)} captions")
    print(f"Writing to: {args.output}")

    t0 = time.monotonic()
    result = compose(
        config["scenes"],
        config["audio"],
        args.output,
        captions=captions,
        settings=config["caption_settings"],
        aspect_ratio=video["aspect_ratio"],
        fps=video["fps"],
        bitrate=video["bitrate"],
        audio_bitrate=video["audio_bitrate"],
        realtime=args.realtime,
        on_progress=_print_progress,
    )
    elapsed = time.monotonic() - t0

    if not result.ok:
        print(f"\nError [{result.error.code}]: {result.error}", file=sys.stderr)
        sys.exit(1)
    print(
        f"\nDone: {result.output} — {result.duration:.1f}s video, "
        f"{result.frames} frames, {elapsed:.1f}s wall"
    )


if __name__ == "__main__":
    main()
