"""Join per-date NWM records back onto the site catalog."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

import pandas as pd

from config.settings import UNRESOLVED_COMID

from .nwm import RECORD_COLUMNS, TIMESTEP_FAILURES
from .sites import Site, site_catalog

logger = logging.getLogger(__name__)

UNRESOLVED = "unresolved"
NOT_IN_ARCHIVE = "not_in_archive"
OUTPUT_COLUMNS = ["site_name", "comid", "date", "streamflow_cms", "status"]


def _normalize_records(records: pd.DataFrame) -> pd.DataFrame:
    df = records.reindex(columns=RECORD_COLUMNS).copy()
    df["comid"] = pd.array(df["comid"].tolist(), dtype="Int64")
    df["date"] = pd.to_datetime(df["date"]).dt.normalize()
    df["streamflow_cms"] = pd.to_numeric(df["streamflow_cms"], errors="coerce").astype(float)
    return df


def _catalog_frame(sites: Union[Sequence[Site], pd.DataFrame]) -> pd.DataFrame:
    cat = sites if isinstance(sites, pd.DataFrame) else site_catalog(sites)
    cat = cat[["site_name", "comid"]].copy()
    cat["comid"] = pd.array(cat["comid"].tolist(), dtype="Int64")
    cat["_site_order"] = range(len(cat))
    return cat


def assemble(
    records: pd.DataFrame,
    sites: Union[Sequence[Site], pd.DataFrame],
    dates: Optional[Iterable] = None,
) -> pd.DataFrame:
    """
    Build the long-form table: one row per (site, date) plus orphan records.

    Flow records join onto sites by COMID, so two sites sharing a COMID both
    receive the value; nothing is deduplicated. Records whose COMID matches no
    site are kept with a null site_name. A missing row for a date marks every
    site row of that date with its failure status; sites carrying the
    unresolved sentinel are marked ``unresolved`` on every date.
    """
    recs = _normalize_records(records)
    catalog = _catalog_frame(sites)
    if dates is None:
        period = pd.DatetimeIndex(sorted(recs["date"].dropna().unique()))
    else:
        period = pd.DatetimeIndex(pd.to_datetime(list(dates))).normalize()

    is_missing = recs["comid"].isna()
    failed = recs.loc[is_missing & recs["status"].isin(TIMESTEP_FAILURES)]
    failed_status = failed.drop_duplicates("date").set_index("date")["status"]
    flows = recs.loc[~is_missing]

    grid = catalog.merge(pd.DataFrame({"date": period}), how="cross")
    out = grid.merge(flows, on=["comid", "date"], how="outer")

    # Object dtype so mapped NaN and string labels share one column on every pandas version
    status = out["status"].astype(object)
    unfilled = status.isna()
    unresolved = out["comid"].isna() | (out["comid"] == UNRESOLVED_COMID)
    unresolved = unresolved.fillna(True).astype(bool)
    status = status.where(~unfilled, out["date"].map(failed_status).astype(object))
    status = status.where(status.notna(), NOT_IN_ARCHIVE)
    out["status"] = status.mask(unfilled & unresolved, UNRESOLVED)

    if catalog.empty and not failed.empty:
        # No site rows to carry the failure; keep the placeholder rows themselves
        out = pd.concat([out, failed.assign(site_name=None)], ignore_index=True)

    out = out.sort_values(["date", "_site_order", "comid"], kind="mergesort", na_position="last")
    out = out[OUTPUT_COLUMNS].reset_index(drop=True)
    _log_anomalies(out)
    return out


def _log_anomalies(table: pd.DataFrame) -> None:
    orphans = table["site_name"].isna() & table["comid"].notna()
    if orphans.any():
        logger.warning(f"⚠️  {int(orphans.sum())} rows carry COMIDs with no matching site")
    counts = table["status"].value_counts()
    for status, n in counts.items():
        if status != "ok":
            logger.info(f"   {status}: {n} rows")


def write_table(table: pd.DataFrame, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(path, index=False, date_format="%Y-%m-%d")
    logger.info(f"💾 Saved streamflow table: {path} (rows={len(table)})")
    return path
