"""Subcommand dispatcher for autovid.

Usage:
    autovid compose   --manifest project.yaml --output video.mp4
    autovid captions  --manifest project.yaml --output captions.json
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="autovid",
        description="Compose narrated, captioned videos from scenes and audio.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own module's main().
    subparsers.add_parser("compose", help="Render a manifest to mp4")
    subparsers.add_parser("captions", help="Export a manifest's captions as JSON")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "compose":
        from .cli import main as compose_main
        compose_main(remaining)
    elif parsed.command == "captions":
        from .captions_cli import main as captions_main
        captions_main(remaining)


if __name__ == "__main__":
    main()
