"""
Command-line interface.

Usage:
    songbird <audio_file> [options]
    songbird --live [options]
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from songbird.config import EngineConfig, LayoutMode, ResolverMode
from songbird.core.species import SpeciesTable
from songbird.engine import SpectralEngine, TickDriver, run_offline
from songbird.io.exporter import SessionExporter
from songbird.io.source import FileFeatureSource, LiveFeatureSource
from songbird.render import render_snapshot, save_png


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="songbird",
        description="Map an audio stream onto a 3D light-trail trajectory",
    )

    parser.add_argument(
        "audio",
        type=Path,
        nargs="?",
        default=None,
        help="Input audio file (wav, mp3, flac); omit with --live",
    )
    parser.add_argument("--live", action="store_true", help="Capture from the default input device")
    parser.add_argument("--device", type=str, default=None, help="Input device name or index (live)")
    parser.add_argument(
        "-f", "--fps", type=int, default=60,
        help="Tick rate in frames per second (default: 60)",
    )
    parser.add_argument(
        "-d", "--duration", type=float, default=None,
        help="Stop after N seconds (default: whole file, or until Ctrl-C live)",
    )

    # Mapping
    parser.add_argument(
        "--layout", type=str, default="shell",
        choices=[m.value for m in LayoutMode],
        help="Anchor layout (default: shell)",
    )
    parser.add_argument(
        "--mode", type=str, default="peak",
        choices=[m.value for m in ResolverMode],
        help="Pitch resolver mode (default: peak)",
    )
    parser.add_argument(
        "--turbulence", type=float, default=0.0,
        help="Turbulence amount [0.0-1.0] (default: 0.0)",
    )
    parser.add_argument("--comet-length", type=int, default=150, help="Comet trail capacity")
    parser.add_argument("--structure-length", type=int, default=2000, help="Structure trail capacity")

    # Visual
    parser.add_argument("--trail-color", type=str, default="#00ffcc", help="Comet colour")
    parser.add_argument("--structure-color", type=str, default="#ffffff", help="Structure colour")
    parser.add_argument("--background", type=str, default="#020202", help="Background colour")
    parser.add_argument("--line-weight", type=float, default=2.0, help="Comet line weight")

    # Species
    parser.add_argument(
        "--species-table", type=Path, default=None,
        help="JSON species table (default: built-in catalogue)",
    )

    # Output
    parser.add_argument("-o", "--output", type=Path, default=None, help="Write final session snapshot (JSON)")
    parser.add_argument("--png", type=Path, default=None, help="Write a still preview of the final frame")
    parser.add_argument("--events", type=Path, default=None, help="Write emitted data points (JSON)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.live and args.audio is None:
        parser.error("an audio file is required unless --live is given")
    if args.audio is not None and not args.audio.exists():
        print(f"Error: Audio file not found: {args.audio}", file=sys.stderr)
        sys.exit(1)

    try:
        config = EngineConfig(
            trail_color=args.trail_color,
            structure_color=args.structure_color,
            background_color=args.background,
            line_weight=args.line_weight,
            turbulence=args.turbulence,
            layout=args.layout,
            resolver_mode=args.mode,
            comet_capacity=args.comet_length,
            structure_capacity=args.structure_length,
        )
        table = SpeciesTable.load(args.species_table) if args.species_table else None
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    events = []
    engine = SpectralEngine(config, species_table=table, on_data_point=events.append, seed=args.seed)

    state = {"label": None, "species": None}

    def report(session, result):
        if result.label != state["label"]:
            state["label"] = result.label
            print(f"  [{session.elapsed:7.2f}s] note {result.label}")
        species_id = result.species.species_id if result.species else None
        if species_id != state["species"]:
            state["species"] = species_id
            if result.species:
                print(f"  [{session.elapsed:7.2f}s] species {result.species.display_name} "
                      f"({result.species.confidence}%)")
            else:
                print(f"  [{session.elapsed:7.2f}s] species cleared")

    t0 = time.time()
    if args.live:
        device = args.device
        if device is not None and device.isdigit():
            device = int(device)
        source = LiveFeatureSource(device=device)
        driver = TickDriver(engine, source, fps=args.fps)
        print("Listening... (Ctrl-C to stop)")
        try:
            session = driver.run(duration=args.duration, on_tick=report)
        except RuntimeError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        except KeyboardInterrupt:
            driver.stop()
            session = driver.session
            print()
    else:
        print(f"Mapping audio: {args.audio}")
        source = FileFeatureSource(args.audio)
        session = run_offline(engine, source, fps=args.fps, duration=args.duration, on_tick=report)

    print(f"\nDone! {session.tick_count} ticks in {time.time() - t0:.1f}s")
    print(f"  Comet points: {len(session.comet)}")
    print(f"  Structure points: {len(session.structure)}")
    print(f"  Data points emitted: {len(events)}")

    exporter = SessionExporter()
    if args.output:
        print(f"  Snapshot: {exporter.export_json(session, args.output)}")
    if args.events:
        print(f"  Events: {exporter.export_data_points(events, args.events)}")
    if args.png:
        frame = render_snapshot(session, engine.config)
        print(f"  Preview: {save_png(frame, args.png)}")


if __name__ == "__main__":
    main()
