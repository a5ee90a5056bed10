"""
Command-line interface for the gaze tracker.

Usage:
    gaze-tracker replay session.json --camera-config config.yaml -o tracks.json
    gaze-tracker config --show
    gaze-tracker config --generate config.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

import yaml

from . import __version__
from .config import PipelineConfig, get_default_config
from .errors import CameraConfigError, RecordingFormatError
from .pipeline import run_replay


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="gaze-tracker",
        description="Person tracking and gaze control from camera detections",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Replay a recorded session:
    gaze-tracker replay session.json --camera-config camera.yaml -o tracks.json

  Select track 3 at frame 40 of the replay:
    gaze-tracker replay session.json --camera-config camera.yaml --select 40:3

  Use a custom config file:
    gaze-tracker replay session.json -c config.yaml

  Generate a default config file:
    gaze-tracker config --generate my_config.yaml
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (use -vv for debug)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Replay command
    replay_parser = subparsers.add_parser(
        "replay",
        help="Run the tracker over a recorded detection session",
    )
    replay_parser.add_argument(
        "recording",
        type=Path,
        help="Recording JSON file",
    )
    replay_parser.add_argument(
        "--camera-config",
        type=Path,
        help="OpenCV camera calibration file (overrides the config)",
    )
    replay_parser.add_argument(
        "-o", "--output",
        type=Path,
        help="Write per-frame results and gaze commands to this JSON file",
    )
    replay_parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Path to config YAML file",
    )
    replay_parser.add_argument(
        "--select",
        nargs="+",
        default=[],
        metavar="FRAME:ID",
        help="Inject selection events, e.g. 40:3 selects track 3 at frame 40",
    )
    replay_parser.add_argument(
        "--no-auto-select",
        action="store_true",
        help="Disable automatic selection of the nearest person",
    )
    replay_parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress bars",
    )

    # Config command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration utilities",
    )
    config_group = config_parser.add_mutually_exclusive_group(required=True)
    config_group.add_argument(
        "--show",
        action="store_true",
        help="Show current default configuration",
    )
    config_group.add_argument(
        "--generate",
        type=Path,
        metavar="FILE",
        help="Generate a default config file",
    )

    return parser


def setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def parse_selections(values: list) -> dict:
    """
    Parse FRAME:ID selection arguments.

    Raises:
        ValueError: If a value is not of the form FRAME:ID
    """
    selections = {}
    for value in values:
        frame, sep, track_id = value.partition(":")
        if not sep:
            raise ValueError(f"Expected FRAME:ID, got {value!r}")
        selections[int(frame)] = int(track_id)
    return selections


def cmd_replay(args: argparse.Namespace) -> int:
    """Handle the replay command."""
    # Load config
    if args.config:
        if not args.config.exists():
            print(f"Error: Config file not found: {args.config}", file=sys.stderr)
            return 1
        config = PipelineConfig.from_yaml(args.config)
    else:
        config = get_default_config()

    # Override config with CLI args
    if args.no_auto_select:
        config.gaze.auto_select_nearest = False

    # Validate input
    if not args.recording.exists():
        print(f"Error: Recording not found: {args.recording}", file=sys.stderr)
        return 1

    try:
        selections = parse_selections(args.select)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        results = run_replay(
            recording_path=args.recording,
            camera_config=args.camera_config,
            output_path=args.output,
            config=config,
            selections=selections,
            show_progress=not args.no_progress,
        )
    except (CameraConfigError, RecordingFormatError) as e:
        logging.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    track_ids = sorted({t.track_id for r in results for t in r.tracks})
    skipped = sum(1 for r in results if r.skipped)

    print("\nReplay complete!")
    print(f"Processed {len(results)} frame(s), {skipped} skipped")
    print(f"Tracks seen: {len(track_ids)}")
    if args.output:
        print(f"Results saved to: {args.output}")

    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the config command."""
    config = get_default_config()

    if args.show:
        print(yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False))
        return 0

    if args.generate:
        config.to_yaml(args.generate)
        print(f"Generated config file: {args.generate}")
        return 0

    return 1


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    setup_logging(args.verbose)

    if args.command == "replay":
        return cmd_replay(args)
    elif args.command == "config":
        return cmd_config(args)

    return 1


if __name__ == "__main__":
    sys.exit(main())
