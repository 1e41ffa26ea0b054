"""Site catalog loading from CSV files or the master study-site registry."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_CRS = "EPSG:4326"

NAME_CANDIDATES = ["site", "site_name", "name", "field.code", "field_code", "site_id", "code"]
LAT_CANDIDATES = ["latitude", "lat", "dec_lat_va"]
LON_CANDIDATES = ["longitude", "lon", "long", "lng", "dec_long_va"]


@dataclass(frozen=True)
class Site:
    name: str
    latitude: float
    longitude: float
    crs: str = DEFAULT_CRS
    comid: Optional[int] = None
    usgs_id: Optional[str] = None


def _detect_column(columns: Sequence[str], candidates: Iterable[str], label: str) -> str:
    lookup = {c.strip().lower(): c for c in columns}
    for cand in candidates:
        if cand in lookup:
            return lookup[cand]
    raise ValueError(f"Could not find a {label} column among {list(columns)}")


def load_sites(
    path: str | Path,
    name_col: Optional[str] = None,
    lat_col: Optional[str] = None,
    lon_col: Optional[str] = None,
    crs: str = DEFAULT_CRS,
) -> List[Site]:
    """Read a site list CSV. Column names are detected case-insensitively unless given."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Site list not found: {path}")
    df = pd.read_csv(path)
    if df.empty:
        raise ValueError(f"Site list is empty: {path}")

    name_col = name_col or _detect_column(df.columns, NAME_CANDIDATES, "site name")
    lat_col = lat_col or _detect_column(df.columns, LAT_CANDIDATES, "latitude")
    lon_col = lon_col or _detect_column(df.columns, LON_CANDIDATES, "longitude")
    missing = [c for c in (name_col, lat_col, lon_col) if c not in df.columns]
    if missing:
        raise ValueError(f"Site list missing columns: {missing}")

    coords = df[[lat_col, lon_col]].apply(pd.to_numeric, errors="coerce")
    bad = coords.isna().any(axis=1)
    if bad.any():
        raise ValueError(
            f"Non-numeric coordinates for sites: {df.loc[bad, name_col].astype(str).tolist()}"
        )

    sites = [
        Site(name=str(name), latitude=float(lat), longitude=float(lon), crs=crs)
        for name, lat, lon in zip(df[name_col], coords[lat_col], coords[lon_col])
    ]
    logger.info(f"📍 Loaded {len(sites)} sites from {path}")
    return sites


def sites_from_registry(registry: dict, site_ids: Optional[Iterable[str]] = None) -> List[Site]:
    """Build Site objects from a MASTER_STUDY_SITES-style mapping."""
    ids = list(site_ids) if site_ids else list(registry)
    out = []
    for site_id in ids:
        if site_id not in registry:
            raise KeyError(f"Site {site_id} missing from MASTER_STUDY_SITES.")
        info = registry[site_id]
        comid = info.get("nwm_comid")
        out.append(
            Site(
                name=info.get("name", site_id),
                latitude=float(info["lat"]),
                longitude=float(info["lon"]),
                crs=info.get("crs", DEFAULT_CRS),
                comid=int(comid) if comid is not None else None,
                usgs_id=info.get("usgs_id"),
            )
        )
    return out


def site_catalog(sites: Sequence[Site]) -> pd.DataFrame:
    """Tabular view of sites (one row per site, in input order)."""
    return pd.DataFrame(
        {
            "site_name": [s.name for s in sites],
            "comid": pd.array([s.comid for s in sites], dtype="Int64"),
            "latitude": [s.latitude for s in sites],
            "longitude": [s.longitude for s in sites],
        }
    )
