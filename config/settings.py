"""
Archive presets and run configuration for NWM retrospective retrieval.

Two public retrospective archives expose one CHRTOUT file per model hour:

- v2.1 (1979-02-01 → 2020-12-31):
    https://noaa-nwm-retrospective-2-1-pds.s3.amazonaws.com/model_output/{YYYY}/{YYYYMMDDHHMM}.CHRTOUT_DOMAIN1.comp
- v3.0 (1979-02-01 → 2023-01-31):
    https://noaa-nwm-retrospective-3-0-pds.s3.amazonaws.com/CONUS/netcdf/CHRTOUT/{YYYY}/{YYYYMMDDHHMM}.CHRTOUT_DOMAIN1

Only the 12:00Z snapshot of each day is retrieved.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

import pandas as pd

NLDI_BASE_URL = "https://api.water.usgs.gov/nldi"
NWIS_DV_URL = "https://waterservices.usgs.gov/nwis/dv/"

# Reserved COMID for sites whose coordinate could not be resolved
UNRESOLVED_COMID = -9999


@dataclass(frozen=True)
class ArchiveSpec:
    name: str
    base_url: str
    bucket: str
    key_prefix: str
    suffix: str
    first_date: str
    last_date: str
    time_of_day: str = "1200"

    def covers(self, date: pd.Timestamp) -> bool:
        return pd.Timestamp(self.first_date) <= date <= pd.Timestamp(self.last_date)


ARCHIVES = {
    "v2.1": ArchiveSpec(
        name="v2.1",
        base_url="https://noaa-nwm-retrospective-2-1-pds.s3.amazonaws.com/model_output",
        bucket="noaa-nwm-retrospective-2-1-pds",
        key_prefix="model_output",
        suffix=".CHRTOUT_DOMAIN1.comp",
        first_date="1979-02-01",
        last_date="2020-12-31",
    ),
    "v3.0": ArchiveSpec(
        name="v3.0",
        base_url="https://noaa-nwm-retrospective-3-0-pds.s3.amazonaws.com/CONUS/netcdf/CHRTOUT",
        bucket="noaa-nwm-retrospective-3-0-pds",
        key_prefix="CONUS/netcdf/CHRTOUT",
        suffix=".CHRTOUT_DOMAIN1",
        first_date="1979-02-01",
        last_date="2023-01-31",
    ),
}


@dataclass
class RetrievalConfig:
    """Knobs for one retrieval run. Every field can be set from a config file or the CLI."""

    archive: str = "v2.1"
    transport: str = "http"  # "http" (requests) or "s3" (anonymous boto3)
    concurrency: str = "process"  # "process" or "thread"
    max_workers: Optional[int] = None  # default: cpu_count - 1
    scratch_dir: Optional[str] = None  # default: per-run temporary directory
    task_timeout: float = 600.0  # seconds allowed for one date's download
    connect_timeout: float = 15.0
    read_timeout: float = 120.0
    progress_every: int = 250
    nldi_url: str = NLDI_BASE_URL
    raindrop: bool = True
    resolver_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.archive not in ARCHIVES:
            raise ValueError(f"Unknown archive '{self.archive}'. Choose from {sorted(ARCHIVES)}")
        if self.transport not in ("http", "s3"):
            raise ValueError("transport must be 'http' or 's3'")
        if self.concurrency not in ("process", "thread"):
            raise ValueError("concurrency must be 'process' or 'thread'")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if self.task_timeout <= 0:
            raise ValueError("task_timeout must be positive")

    @property
    def archive_spec(self) -> ArchiveSpec:
        return ARCHIVES[self.archive]

    def with_overrides(self, **overrides: Any) -> "RetrievalConfig":
        """Return a copy with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _read_mapping(path: Path) -> dict[str, Any]:
    data = path.read_text()
    if path.suffix == ".json":
        return json.loads(data)
    import yaml

    return yaml.safe_load(data) or {}


def load_run_config(path: str | Path | None) -> RetrievalConfig:
    """Load a RetrievalConfig from a YAML or JSON file; defaults when path is None."""
    if path is None:
        return RetrievalConfig()
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    raw = _read_mapping(path)
    if not isinstance(raw, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    known = {f.name for f in fields(RetrievalConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown config keys in {path}: {unknown}")
    return RetrievalConfig(**raw)
