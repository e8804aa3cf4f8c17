"""Propagation overlays: CLI entry point.

Renders the gray-line (solar terminator, enhanced-propagation zone,
twilight lines) and, when an OVATION grid is supplied, the aurora
probability raster for one instant.

Usage
-----
    python main.py                                   # gray line for now (UTC)
    python main.py --time 2026-03-20T12:00:00Z
    python main.py --grid data/ovation_aurora_latest.json --opacity 0.8
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging."""
    fmt = "%(name)s [%(levelname)s] %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
        stream=sys.stdout,
    )


def parse_time(value: str) -> datetime:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        instant = datetime.fromisoformat(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid ISO-8601 time: {value!r}") from e
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="overlays",
        description="Gray-line and aurora overlays for HF propagation maps",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python main.py\n"
            "  python main.py --time 2026-06-21T04:00:00Z --no-twilight\n"
            "  python main.py --grid data/ovation_aurora_latest.json\n"
            "  python main.py --grid ovation.json --opacity 0.8 --output out\n"
            "  python main.py --location 51.5 -0.1\n"
        ),
    )
    parser.add_argument(
        "--time",
        type=parse_time,
        default=None,
        help="UTC instant to render, ISO-8601 (default: now)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default="config/default_config.yaml",
        help="Path to overlay config YAML (default: config/default_config.yaml)",
    )
    parser.add_argument(
        "--grid",
        type=str,
        default=None,
        help="Path to a saved OVATION aurora JSON document",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="output",
        help="Output directory for products and plots (default: output/)",
    )
    parser.add_argument(
        "--opacity",
        type=float,
        default=None,
        help="Aurora raster opacity in [0, 1] (default: from config)",
    )
    parser.add_argument(
        "--no-twilight",
        action="store_true",
        default=False,
        help="Hide civil / nautical / astronomical twilight lines",
    )
    parser.add_argument(
        "--no-enhanced",
        action="store_true",
        default=False,
        help="Hide the enhanced-propagation zone around the terminator",
    )
    parser.add_argument(
        "--location",
        type=float,
        nargs=2,
        metavar=("LAT", "LON"),
        default=None,
        help="Location for the solar-altitude plot [deg] (default: subsolar point)",
    )
    parser.add_argument(
        "--no-plot",
        action="store_true",
        default=False,
        help="Write data products only, skip the overlay figure",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main overlay entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    logger = logging.getLogger("overlays")
    logger.info("=" * 60)
    logger.info("  Propagation Overlays: gray line & aurora")
    logger.info("=" * 60)

    from geo_engine.constants import load_config, log_platform_info
    from grid_ingestion.ovation_loader import GridPayloadError, load_ovation_json
    from overlays.io_manager import save_products
    from overlays.lifecycle import OverlayScheduler

    log_platform_info()

    # Load configuration
    config_path = Path(args.config)
    logger.info("Loading config: %s", config_path)
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        logger.error("Cannot load configuration: %s", e)
        return 1

    scheduler = OverlayScheduler.from_config(config)
    grayline, aurora = scheduler.grayline, scheduler.aurora
    grayline.show_twilight = not args.no_twilight
    grayline.show_enhanced_zone = not args.no_enhanced
    if args.opacity is not None:
        try:
            aurora.opacity = args.opacity
        except ValueError as e:
            logger.error("%s", e)
            return 1

    instant = args.time or datetime.now(timezone.utc)
    output_dir = Path(args.output)

    # Gray line
    geometry = grayline.update(instant)
    lat, lon = geometry.subsolar_point
    logger.info(
        "Gray line at %s: %d terminator points, subsolar point (%.2f, %.2f)",
        instant.isoformat(),
        len(geometry.terminator),
        lat,
        lon,
    )

    # Aurora raster
    raster = None
    if args.grid:
        try:
            grid = load_ovation_json(args.grid)
        except (FileNotFoundError, GridPayloadError) as e:
            logger.error("Cannot load aurora grid: %s", e)
            return 1
        aurora.submit_grid(grid, received_at=instant)
        raster = aurora.build_pending()

    metadata = {
        "config": str(config_path),
        "grayline_opacity": grayline.opacity,
        "aurora_opacity": aurora.opacity,
        "forecast_time": aurora.forecast_time,
    }
    saved = save_products(output_dir, geometry=geometry, raster=raster, metadata=metadata)

    if not args.no_plot:
        from visualization.plotter import generate_all_plots

        logger.info("Generating plots → %s/", output_dir)
        saved += generate_all_plots(
            geometry,
            raster,
            ramp=aurora.ramp,
            output_dir=output_dir,
            grayline_opacity=grayline.opacity,
            aurora_opacity=aurora.opacity,
            location=tuple(args.location) if args.location else None,
        )

    # Summary
    logger.info("=" * 60)
    logger.info("  OVERLAYS COMPLETE")
    logger.info("=" * 60)
    logger.info("  Output files (%d):", len(saved))
    for p in saved:
        logger.info("    → %s", p)
    logger.info("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(main())
