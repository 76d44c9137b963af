"""classify_surfaces CLI (thin wrapper)

Loads one organized frame, runs surface classification through
surftools.pipeline and prints a per-cluster summary. Optionally writes a
colored point cloud of the result.

Usage:
    python -m processing.classify_surfaces frame.pcd \
        --config config.yaml \
        --export classified.ply --color-mode type \
        --log-level INFO
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from common.cli import add_config_arg, add_log_level_arg, parse_args_with_config, setup_logging
from common.config import Config
from common.logging import CountingHandler
from exceptions.exceptions import StepPreconditionError
from surftools.exporters import export_classified_cloud
from surftools.io import load_organized_cloud
from surftools.pipeline import run_pipeline
from surftools.presenters import cluster_summary, print_cluster_summary, print_pipeline_header, print_type_tally


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Segment an organized point cloud frame and classify its surfaces"
    )
    add_config_arg(parser)
    add_log_level_arg(parser)
    parser.add_argument("cloud_path", help="Organized frame: .npy (H, W, 3) or PCD/PLY")
    parser.add_argument("--width", type=int, default=None, help="Grid width when the file does not carry it")
    parser.add_argument("--height", type=int, default=None, help="Grid height when the file does not carry it")
    parser.add_argument("--export", default=None, help="Write a colored point cloud to this path")
    parser.add_argument(
        "--color-mode",
        choices=("type", "cluster"),
        default="type",
        help="Color exported points by surface type or by cluster id",
    )
    parser.add_argument("--no-borders", action="store_true", help="Do not paint border pixels in the export")
    parser.add_argument("--summary-only", action="store_true", help="Skip the per-cluster listing")
    return parser


def defaults_from_cfg(cfg: Config) -> dict:
    return {"log_level": cfg.logging.level}


def main(argv: Optional[list] = None) -> int:
    args, cfg = parse_args_with_config(build_parser, defaults_from_cfg, argv)
    setup_logging(args.log_level or "INFO")

    counter = CountingHandler()
    logging.getLogger().addHandler(counter)
    try:
        grid = load_organized_cloud(args.cloud_path, width=args.width, height=args.height)
        logging.info("Loaded %s: %r", args.cloud_path, grid)
        result = run_pipeline(grid, cfg)

        print_pipeline_header(result)
        if not args.summary_only:
            for cid in result.graph.ids():
                print_cluster_summary(cluster_summary(result, cid))
        print_type_tally(result)

        if args.export:
            n = export_classified_cloud(args.export, result, grid, mode=args.color_mode,
                                        draw_borders=not args.no_borders)
            logging.info("Wrote %d point(s) to %s", n, args.export)
    except StepPreconditionError as e:
        logging.error("%s: %s", e.code, str(e))
    finally:
        logging.getLogger().removeHandler(counter)

    if counter.warnings:
        logging.debug("%d warning(s) while processing %s", counter.warnings, args.cloud_path)
    return 0 if counter.clean else 1


if __name__ == "__main__":
    sys.exit(main())
