"""Plot NWM retrospective flow against USGS observed daily flow for one site."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd

from . import colors, utils
from .style import temporary_style

REQUIRED_COLUMNS = {"date", "usgs_cms", "nwm_cms"}


def plot_comparison(df: pd.DataFrame, output: str | Path, title: Optional[str] = None,
                    log_scale: bool = True) -> Path:
    """Line plot of observed (usgs_cms) and modelled (nwm_cms) daily flow."""
    missing = REQUIRED_COLUMNS.difference(df.columns)
    if missing:
        raise ValueError(f"Comparison frame missing columns: {sorted(missing)}")
    df = df.sort_values("date")
    if df[["usgs_cms", "nwm_cms"]].dropna(how="all").empty:
        raise ValueError("No flow values to plot")

    with temporary_style():
        fig, ax = plt.subplots(figsize=(10, 3.5))
        ax.plot(df["date"], df["usgs_cms"], label="USGS observed", color=colors.COLORS["obs"])
        ax.plot(df["date"], df["nwm_cms"], label="NWM retrospective", color=colors.COLORS["nwm"])
        if log_scale:
            ax.set_yscale("log")
        ax.set_xlabel(None)
        ax.set_ylabel("Flow [cms]")
        if title:
            ax.set_title(title)
        ax.legend(frameon=False, loc="upper right")
        fig.autofmt_xdate()
        fig.tight_layout()
        out = utils.ensure_parent(output)
        fig.savefig(out)
        plt.close(fig)
    return out


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--csv", type=Path, required=True, help="CSV with date, usgs_cms, nwm_cms")
    parser.add_argument("--out", type=Path, required=True, help="Output image path")
    parser.add_argument("--title", default=None)
    parser.add_argument("--linear", action="store_true", help="Linear instead of log y-axis")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    df = pd.read_csv(args.csv, parse_dates=["date"])
    plot_comparison(df, args.out, title=args.title, log_scale=not args.linear)


if __name__ == "__main__":
    main()
