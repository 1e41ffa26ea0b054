#!/usr/bin/env python3
"""End-to-end retrieval: sites → COMIDs → daily NWM retrospective flow → CSV (+ metrics, comparison plot)."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from analysis.metrics import coverage_summary, summer_low_flow  # noqa: E402
from config.master_study_sites import MASTER_STUDY_SITES  # noqa: E402
from config.settings import ARCHIVES, load_run_config  # noqa: E402
from data_acquisition.assemble import write_table  # noqa: E402
from data_acquisition.errors import ArchiveUnavailableError  # noqa: E402
from data_acquisition.pipeline import retrieve_site_streamflow  # noqa: E402
from data_acquisition.sites import load_sites, sites_from_registry  # noqa: E402

logger = logging.getLogger("run_pipeline")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--sites-csv", type=Path, default=None, help="Site list CSV (defaults to MASTER_STUDY_SITES)")
    parser.add_argument("--site-ids", nargs="+", default=None, help="Registry site keys to use when no CSV is given")
    parser.add_argument("--name-col", default=None)
    parser.add_argument("--lat-col", default=None)
    parser.add_argument("--lon-col", default=None)
    parser.add_argument("--crs", default="EPSG:4326", help="CRS of the CSV coordinates")
    parser.add_argument("--start", default="1979-10-01", help="Study period start (YYYY-MM-DD)")
    parser.add_argument("--end", default="2020-09-30", help="Study period end, inclusive (YYYY-MM-DD)")
    parser.add_argument("--config", type=Path, default=None, help="YAML/JSON file with retrieval settings")
    parser.add_argument("--archive", choices=sorted(ARCHIVES), default=None)
    parser.add_argument("--transport", choices=["http", "s3"], default=None)
    parser.add_argument("--concurrency", choices=["process", "thread"], default=None)
    parser.add_argument("--max-workers", type=int, default=None, help="Default: cpu_count - 1")
    parser.add_argument("--scratch-dir", default=None, help="Scratch directory for downloads (default: temporary)")
    parser.add_argument("--task-timeout", type=float, default=None, help="Seconds allowed per date download")
    parser.add_argument("--preflight", action="store_true", help="Abort early if sampled archive objects are missing")
    parser.add_argument("--out", type=Path, default=Path("data/nwm_site_streamflow.csv"))
    parser.add_argument("--metrics-out", type=Path, default=None, help="Write summer low-flow metrics CSV")
    parser.add_argument("--compare-usgs", default=None, help="USGS site number to compare against (default with --plot-out: the site's registry usgs_id)")
    parser.add_argument("--compare-site", default=None, help="Site name in the table to compare (default: first site)")
    parser.add_argument("--plot-out", type=Path, default=None, help="Comparison plot path")
    parser.add_argument("--verbose", action="store_true")
    return parser


def _compare_with_usgs(args, table, resolved) -> None:
    """Join USGS daily flow onto one site's NWM series; write the CSV and optional plot."""
    from data_acquisition.usgs import NWISDailyClient, join_observed
    from viz.plot_comparison import plot_comparison

    import requests

    site_name = args.compare_site or (resolved[0].name if resolved else None)
    site = next((s for s in resolved if s.name == site_name), None)
    usgs_id = args.compare_usgs or (site.usgs_id if site is not None and args.plot_out else None)
    if not usgs_id:
        if args.plot_out:
            logger.warning(f"⚠️  No USGS site number for {site_name}; comparison plot skipped")
        return

    try:
        observed = NWISDailyClient().fetch_daily_discharge(usgs_id, args.start, args.end)
    except requests.RequestException as e:
        logger.warning(f"⚠️  USGS comparison skipped: {e}")
        return
    joined = join_observed(table, observed, site_name=site_name)
    comparison_csv = args.out.with_name(f"{args.out.stem}_usgs_{usgs_id}.csv")
    write_table(joined, comparison_csv)
    if args.plot_out:
        try:
            plot_comparison(joined, args.plot_out, title=f"{site_name} vs USGS {usgs_id}")
        except ValueError as e:
            logger.warning(f"⚠️  Comparison plot skipped: {e}")
            return
        logger.info(f"🖼️  Saved comparison plot: {args.plot_out}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    try:
        config = load_run_config(args.config).with_overrides(
            archive=args.archive,
            transport=args.transport,
            concurrency=args.concurrency,
            max_workers=args.max_workers,
            scratch_dir=args.scratch_dir,
            task_timeout=args.task_timeout,
        )
        if args.sites_csv:
            sites = load_sites(args.sites_csv, args.name_col, args.lat_col, args.lon_col, crs=args.crs)
        else:
            sites = sites_from_registry(MASTER_STUDY_SITES, args.site_ids)
    except (FileNotFoundError, ValueError, KeyError) as e:
        logger.error(f"❌ {e}")
        return 2

    try:
        table, resolved = retrieve_site_streamflow(
            sites, args.start, args.end, config=config, preflight=args.preflight
        )
    except ValueError as e:
        logger.error(f"❌ {e}")
        return 2
    except ArchiveUnavailableError as e:
        logger.error(f"❌ Preflight failed: {e}")
        return 1

    write_table(table, args.out)
    print(coverage_summary(table).to_string(index=False))

    if args.metrics_out:
        metrics = summer_low_flow(table)
        write_table(metrics, args.metrics_out)

    if args.compare_usgs or args.plot_out:
        _compare_with_usgs(args, table, resolved)

    logger.info("✅ NWM retrieval complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
