#!/usr/bin/env python3
"""
Probe availability of NWM retrospective CHRTOUT files (12:00Z daily snapshot)
for a given date range.

Outputs a CSV with per-URL existence flags and prints a per-year summary.

Usage examples:
  python3 -m data_acquisition.tools.check_nwm_archive --start 1979-10-01 --end 1979-10-10
  python3 -m data_acquisition.tools.check_nwm_archive --start 2020-12-25 --end 2021-01-05 --archive v3.0 --out data/check_v3.csv
"""
from __future__ import annotations

import argparse
import sys
from typing import List, Sequence

import pandas as pd
import requests

from config.settings import ARCHIVES, ArchiveSpec

from ..nwm import archive_url, study_period


def head_ok(url: str, timeout: float = 10.0) -> bool:
    try:
        r = requests.head(url, timeout=timeout)
        return r.ok
    except requests.RequestException:
        return False


def sample_dates(dates: Sequence[pd.Timestamp], samples: int) -> List[pd.Timestamp]:
    """Evenly spaced dates including both ends; all dates when samples <= 0."""
    dates = list(dates)
    if samples <= 0 or samples >= len(dates):
        return dates
    if samples == 1:
        return [dates[0]]
    step = (len(dates) - 1) / (samples - 1)
    picks = sorted({int(round(i * step)) for i in range(samples)})
    return [dates[i] for i in picks]


def probe_archive(dates: Sequence[pd.Timestamp], archive: ArchiveSpec, samples: int = 0,
                  timeout: float = 10.0) -> pd.DataFrame:
    records = []
    for day in sample_dates(dates, samples):
        u = archive_url(day, archive)
        ok = archive.covers(pd.Timestamp(day)) and head_ok(u, timeout=timeout)
        records.append(
            {
                "date": pd.Timestamp(day).strftime("%Y-%m-%d"),
                "archive": archive.name,
                "exists": ok,
                "url": u,
            }
        )
    return pd.DataFrame.from_records(records, columns=["date", "archive", "exists", "url"])


def print_summary(df: pd.DataFrame) -> None:
    if df.empty:
        print("No records to summarize.")
        return
    cov = (
        df.assign(year=df["date"].str[:4])
        .groupby(["archive", "year"])
        .agg(days_found=("exists", "sum"), days_probed=("exists", "size"))
        .reset_index()
    )
    print("Per-year availability:")
    print(cov.to_string(index=False))


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Probe NWM retrospective CHRTOUT availability")
    ap.add_argument("--start", required=True, help="YYYY-MM-DD")
    ap.add_argument("--end", required=True, help="YYYY-MM-DD")
    ap.add_argument("--archive", choices=sorted(ARCHIVES), default="v2.1")
    ap.add_argument("--samples", type=int, default=0, help="Probe only N evenly spaced dates (0 = every date)")
    ap.add_argument("--out", default=None, help="CSV file to write results")
    args = ap.parse_args(argv)

    try:
        dates = study_period(args.start, args.end)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 2

    df = probe_archive(dates, ARCHIVES[args.archive], samples=args.samples)
    print_summary(df)

    if args.out:
        try:
            df.to_csv(args.out, index=False)
            print(f"\nWrote results to: {args.out}")
        except FileNotFoundError:
            print(f"\nOutput path not found: {args.out}. Please create parent directory and re-run.")

    # Return non-zero if nothing found
    found_any = df["exists"].any()
    return 0 if found_any else 1


if __name__ == "__main__":
    sys.exit(main())
