"""
Command-line interface for a headless parcel simulation run.
"""

import argparse
import logging
import sys

from .config import EngineConfig, load_config, setup_logging
from .initializer import HandoffError
from .output import RasterOutput
from .simulator import ParcelSimulator

logger = logging.getLogger(__name__)


def run(
    simulator: ParcelSimulator,
    hours: float,
    fps: float = 60.0,
    speed: float = 1.0,
    report_every: float = 1.0
) -> int:
    """
    Drive the engine the way a render loop would.

    Args:
        simulator: Engine to drive
        hours: Simulated hours to run
        fps: Frames per wall-clock second being emulated
        speed: Simulated hours per wall-clock second
        report_every: Simulated hours between progress messages

    Returns:
        Number of frames emulated
    """
    frame_dt = speed * 3600.0 / fps
    frames = int(round(hours * 3600.0 / frame_dt))
    report_frames = max(1, int(round(report_every * 3600.0 / frame_dt)))
    born = removed = 0

    for frame in range(1, frames + 1):
        try:
            simulator.advance_external(frame_dt)
        except HandoffError as e:
            logger.error("Staying in lightweight mode: %s", e)
        for event in simulator.drain_events():
            if event.kind == "born":
                born += 1
            else:
                removed += 1
        if frame % report_frames == 0:
            points = simulator.get_point_data()
            logger.info("%s | %s mode | %d parcels (+%d / -%d)",
                        simulator.get_current_time().strftime("%Y-%m-%d %H:%M"),
                        simulator.mode, len(points), born, removed)
            born = removed = 0
    return frames


def main(argv=None):
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Headless air-parcel lifecycle simulator"
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Configuration file (JSON)"
    )

    parser.add_argument(
        "--hours",
        type=float,
        default=24.0,
        help="Simulated hours to run (default: 24)"
    )

    parser.add_argument(
        "--fps",
        type=float,
        default=60.0,
        help="Emulated render frames per second (default: 60)"
    )

    parser.add_argument(
        "--speed",
        type=float,
        default=1.0,
        help="Simulated hours per wall-clock second (default: 1)"
    )

    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed (overrides the config file)"
    )

    parser.add_argument(
        "--full",
        action="store_true",
        help="Hand off to the full-mode sources before running"
    )

    parser.add_argument(
        "--flight",
        type=float,
        nargs=4,
        action="append",
        metavar=("LON0", "LAT0", "LON1", "LAT1"),
        help="Fly a route between two positions (repeatable)"
    )

    parser.add_argument(
        "-o", "--output",
        type=str,
        help="Write a density raster of the final snapshot with this prefix"
    )

    parser.add_argument(
        "--resolution",
        type=float,
        default=1.0,
        help="Output grid resolution in degrees (default: 1.0)"
    )

    parser.add_argument(
        "--loglevel",
        type=str,
        default="INFO",
        help="Logging level (default: INFO)"
    )

    args = parser.parse_args(argv)
    setup_logging(getattr(logging, args.loglevel.upper(), logging.INFO))

    try:
        config = load_config(args.config) if args.config else EngineConfig()
        if args.seed is not None:
            config.seed = args.seed
    except (OSError, ValueError) as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    simulator = ParcelSimulator(config)

    if args.full:
        simulator.request_full_mode()
        try:
            simulator.wait_for_handoff()
        except HandoffError as e:
            logger.error("Continuing in lightweight mode: %s", e)

    for route in args.flight or []:
        simulator.fly_route(*route)

    run(simulator, args.hours, fps=args.fps, speed=args.speed)

    stats = simulator.get_statistics()
    logger.info("Run complete: %d steps, %d active parcels, %d queued",
                stats["steps"], stats["active_parcels"], stats["queued_parcels"])

    if args.output:
        raster = RasterOutput(resolution=args.resolution)
        raster.add_snapshot(simulator.get_point_data())
        raster.save_raster(args.output, title=simulator.get_current_time().strftime("%Y-%m-%d %H:%M UTC"))
        grid_stats = raster.get_grid_statistics()
        logger.info("Occupied cells: %d / %d", grid_stats["occupied_cells"], grid_stats["total_cells"])


if __name__ == "__main__":
    main()
