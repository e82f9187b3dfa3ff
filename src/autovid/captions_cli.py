"""CLI for captions — write the caption list a composition would use.

Captions come from the manifest (inline list or file); a word-level
transcript is grouped per scene, and with no captions at all they are
synthesized from scene text with evenly spread word timings.

Usage:
    autovid captions --manifest project.yaml --output captions.json
"""

import argparse
import json
from pathlib import Path

from .manifest import captions_to_json, load_captions, load_manifest, validate_paths


def _parse_args(args=None):
    parser = argparse.ArgumentParser(
        description="Export the captions of a manifest as JSON.",
    )
    parser.add_argument(
        "--manifest", required=True,
        help="Path to YAML project manifest",
    )
    parser.add_argument(
        "--output", required=True,
        help="Output JSON path",
    )
    return parser.parse_args(args)


def main(args=None):
    parsed = _parse_args(args)

    config = load_manifest(parsed.manifest)
    validate_paths(config)
    captions = load_captions(config)

    out = Path(parsed.output)
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w") as f:
        json.dump(captions_to_json(captions), f, indent=2)

    n_words = sum(len(c.words) for c in captions)
    print(f"Done: {len(captions)} captions, {n_words} timed words")
    print(f"Output: {out}")


if __name__ == "__main__":
    main()
