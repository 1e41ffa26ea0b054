"""Summary statistics over the assembled site streamflow table."""

from __future__ import annotations

from typing import Iterable

import pandas as pd

SUMMER_MONTHS = (6, 7, 8)


def summer_low_flow(table: pd.DataFrame, months: Iterable[int] = SUMMER_MONTHS) -> pd.DataFrame:
    """
    Median summer low flow per site.

    For each site and calendar year the minimum flow over ``months`` is taken,
    then the median of those annual minima across years. Missing flows are
    ignored; a site with no valid summer flow gets NaN.
    """
    df = table.dropna(subset=["site_name"]).copy()
    df["date"] = pd.to_datetime(df["date"])
    df = df[df["date"].dt.month.isin(list(months))]
    df["year"] = df["date"].dt.year
    annual = (
        df.groupby(["site_name", "year"], sort=False)["streamflow_cms"]
        .min()
        .rename("low_flow")
        .reset_index()
    )
    out = (
        annual.groupby("site_name", sort=False)["low_flow"]
        .median()
        .rename("median_summer_lowflow_cms")
        .reset_index()
    )
    sites = pd.DataFrame({"site_name": table["site_name"].dropna().unique()})
    return sites.merge(out, on="site_name", how="left")


def coverage_summary(table: pd.DataFrame) -> pd.DataFrame:
    """Per-site row counts by status and the fraction of dates with a valid flow."""
    df = table.dropna(subset=["site_name"])
    counts = df.pivot_table(index="site_name", columns="status", values="date",
                            aggfunc="count", fill_value=0, sort=False)
    counts.columns.name = None
    valid = df.groupby("site_name", sort=False)["streamflow_cms"].apply(lambda s: s.notna().mean())
    counts["valid_fraction"] = valid
    return counts.reset_index()
