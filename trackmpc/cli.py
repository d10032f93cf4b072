"""
Command-line interface for TrackMPC.

Usage:
    trackmpc run --track sine --steps 200
    trackmpc replay frames.txt
    trackmpc validate config.yml
    trackmpc info
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from trackmpc import __version__


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="trackmpc",
        description="TrackMPC - Receding-horizon path tracking with latency compensation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  trackmpc run                           Drive the default sine track
  trackmpc run --track circle --steps 300
  trackmpc run -o run.json --plot run.png
  trackmpc replay frames.txt             Feed recorded frames to the controller
  trackmpc validate config.yml           Validate a configuration file
        """,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (use -vv for debug)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress all output except errors",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser(
        "run",
        help="Run a closed-loop simulation",
        description="Drive a generated track with the simulated vehicle",
    )
    _add_run_arguments(run_parser)

    replay_parser = subparsers.add_parser(
        "replay",
        help="Replay telemetry frames",
        description="Feed recorded frames (one per line) through the telemetry handler",
    )
    replay_parser.add_argument("frames_file", type=Path, help="File with one frame per line")
    replay_parser.add_argument("--config", "-f", type=Path, help="Path to configuration file")

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a configuration file",
        description="Validate a YAML configuration file",
    )
    validate_parser.add_argument(
        "config_file",
        type=Path,
        help="Path to configuration file",
    )

    subparsers.add_parser(
        "info",
        help="Show system information",
        description="Display system and dependency information",
    )

    return parser


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    """Add arguments specific to the run command."""
    parser.add_argument(
        "--config", "-f",
        type=Path,
        help="Path to configuration file",
    )

    parser.add_argument(
        "--track", "-t",
        choices=["straight", "sine", "circle"],
        default="sine",
        help="Track shape (default: sine)",
    )

    parser.add_argument(
        "--steps",
        type=int,
        default=200,
        help="Maximum control cycles (default: 200)",
    )

    parser.add_argument(
        "--error-model",
        choices=["local", "geometric"],
        default="geometric",
        help="Error propagation in the horizon (default: geometric)",
    )

    parser.add_argument(
        "--offset",
        type=float,
        default=0.0,
        help="Initial lateral offset to the left of the track (default: 0.0)",
    )

    parser.add_argument(
        "--output", "-o",
        type=Path,
        help="Output file for the run (JSON format)",
    )

    parser.add_argument(
        "--frames",
        type=Path,
        help="Record the inbound telemetry frames to this file",
    )

    parser.add_argument(
        "--plot",
        type=Path,
        help="Save a plot of the run to this file",
    )


def setup_logging(verbose: int, quiet: bool) -> None:
    """Setup logging based on verbosity level."""
    import logging
    from trackmpc.logging import setup_logging as _setup_logging

    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    _setup_logging(level=level, force=True)


def _load(config_path: Optional[Path]):
    from trackmpc.config import ConfigManager

    return ConfigManager(config_path).load()


def cmd_run(args: argparse.Namespace) -> int:
    """Execute the run command."""
    from trackmpc.exceptions import TrackMPCError
    from trackmpc.logging import LOG_ERROR, LOG_INFO

    try:
        # Import here to avoid slow startup for help commands
        from trackmpc.controller import RecedingHorizonController
        from trackmpc.runner import run_simulation
        from trackmpc.track import generate_track

        config = _load(args.config)
        config.horizon.error_model = args.error_model
        config.validate()

        track = generate_track(args.track)
        LOG_INFO(f"Track: {args.track} ({len(track)} waypoints), error model: {args.error_model}")

        controller = RecedingHorizonController(config)
        result = run_simulation(
            controller,
            track,
            max_steps=args.steps,
            lateral_offset=args.offset,
            record_frames=args.frames is not None,
        )

        stats = result["statistics"]
        print(f"Cycles: {result['steps']}")
        print(f"Fallback cycles: {result['failures']}")
        print(f"Mean lateral deviation: {result['mean_deviation']:.3f}")
        print(f"Max lateral deviation: {result['max_deviation']:.3f}")
        print(f"Average solve time: {stats['avg_solve_time_ms']:.1f} ms")

        if args.output:
            import json
            output_data = {
                "steps": result["steps"],
                "failures": result["failures"],
                "mean_deviation": result["mean_deviation"],
                "max_deviation": result["max_deviation"],
                "trajectory": [list(p) for p in result["trajectory"]],
                "commands": [list(c) for c in result["commands"]],
                "statistics": stats,
            }
            with open(args.output, "w") as f:
                json.dump(output_data, f, indent=2)
            LOG_INFO(f"Results saved to {args.output}")

        if args.frames:
            with open(args.frames, "w") as f:
                f.write("\n".join(result["frames"]) + "\n")
            LOG_INFO(f"Frames saved to {args.frames}")

        if args.plot:
            from trackmpc.plotting import plot_run
            plot_run(result, track, args.plot, title=f"{args.track} track")
            LOG_INFO(f"Plot saved to {args.plot}")

        return 0

    except (TrackMPCError, OSError) as e:
        LOG_ERROR(f"Error: {e}")
        if args.verbose >= 2:
            import traceback
            traceback.print_exc()
        return 1


def cmd_replay(args: argparse.Namespace) -> int:
    """Execute the replay command."""
    from trackmpc.controller import RecedingHorizonController
    from trackmpc.exceptions import TrackMPCError
    from trackmpc.telemetry import TelemetryHandler

    try:
        handler = TelemetryHandler(RecedingHorizonController(_load(args.config)))
        with open(args.frames_file, "r") as f:
            for line in f:
                frame = line.strip()
                if not frame:
                    continue
                reply = handler.handle(frame)
                if reply is not None:
                    print(reply)
        return 0

    except (TrackMPCError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Execute the validate command."""
    from trackmpc.config import ConfigManager
    from trackmpc.exceptions import ConfigurationError

    try:
        manager = ConfigManager(args.config_file)
        config = manager.load(validate=True)
        print(f"Configuration file '{args.config_file}' is valid.")
        print(f"  Horizon: {config.horizon.steps} x {config.horizon.timestep}s")
        print(f"  Latency: {config.latency.delay}s")
        print(f"  Solver: {config.solver.backend}")
        return 0

    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError, TypeError) as e:
        print(f"Error reading configuration: {e}", file=sys.stderr)
        return 1


def cmd_info(args: argparse.Namespace) -> int:
    """Execute the info command."""
    import importlib
    import platform

    print("TrackMPC System Information")
    print("=" * 40)
    print(f"TrackMPC version: {__version__}")
    print(f"Python version: {platform.python_version()}")
    print(f"Platform: {platform.platform()}")
    print()

    print("Dependencies:")
    dependencies = [("numpy", "numpy"), ("scipy", "scipy"), ("casadi", "casadi"),
                    ("matplotlib", "matplotlib"), ("pyyaml", "yaml")]
    for name, module in dependencies:
        try:
            mod = importlib.import_module(module)
            version = getattr(mod, "__version__", "unknown")
            print(f"  {name}: {version}")
        except ImportError:
            print(f"  {name}: NOT INSTALLED")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.quiet)

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "replay":
        return cmd_replay(args)
    elif args.command == "validate":
        return cmd_validate(args)
    elif args.command == "info":
        return cmd_info(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
