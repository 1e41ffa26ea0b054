"""
USGS NWIS daily-value retrieval for comparing NWM output against observations.

Source (RDB, tab separated):
  https://waterservices.usgs.gov/nwis/dv/?format=rdb&sites={site}&startDT={start}&endDT={end}
      &parameterCd=00060&statCd=00003&siteStatus=all

Discharge is reported in cfs and converted to cms.
"""

from __future__ import annotations

import io
import logging
import random
import time
from typing import Optional

import pandas as pd
import requests

from config.settings import NWIS_DV_URL

logger = logging.getLogger(__name__)

CFS_TO_CMS = 0.0283168
DISCHARGE_PARAM = "00060"
DAILY_MEAN_STAT = "00003"


class NWISDailyClient:
    """Daily-value client with exponential backoff on 503s, timeouts and connection errors."""

    def __init__(self, base_url: str = NWIS_DV_URL, max_retries: int = 4, base_delay: float = 1.0,
                 max_delay: float = 30.0, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.base_url = base_url
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self.session = session or requests.Session()

    def _backoff(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay) + random.uniform(0.1, 0.5)

    def get(self, params: dict) -> requests.Response:
        """GET with retry; raises requests.RequestException once retries are exhausted."""
        for attempt in range(self.max_retries + 1):
            try:
                r = self.session.get(self.base_url, params=params, timeout=self.timeout)
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                if attempt == self.max_retries:
                    raise
                delay = self._backoff(attempt)
                logger.warning(f"🌐 NWIS network error: {e}. Attempt {attempt + 1}/{self.max_retries + 1}. Sleeping {delay:.1f}s ...")
                time.sleep(delay)
                continue
            if r.status_code == 503 and attempt < self.max_retries:
                delay = self._backoff(attempt)
                logger.warning(f"🔄 NWIS HTTP 503. Attempt {attempt + 1}/{self.max_retries + 1}. Sleeping {delay:.1f}s ...")
                time.sleep(delay)
                continue
            r.raise_for_status()
            return r
        raise requests.RequestException("NWIS retries exhausted")

    def fetch_daily_discharge(self, site_no: str, start_date, end_date) -> pd.DataFrame:
        """Observed daily mean discharge as columns [date, usgs_cms]."""
        params = {
            "format": "rdb",
            "sites": site_no,
            "startDT": pd.Timestamp(start_date).strftime("%Y-%m-%d"),
            "endDT": pd.Timestamp(end_date).strftime("%Y-%m-%d"),
            "parameterCd": DISCHARGE_PARAM,
            "statCd": DAILY_MEAN_STAT,
            "siteStatus": "all",
        }
        logger.info(f"Fetching USGS {site_no} daily discharge {params['startDT']}..{params['endDT']}")
        r = self.get(params)
        return parse_daily_rdb(r.text)


def parse_daily_rdb(text: str) -> pd.DataFrame:
    """Parse an NWIS dv RDB payload into [date, usgs_cms]."""
    lines = [ln for ln in text.splitlines() if ln and not ln.startswith("#")]
    header_idx = next((i for i, ln in enumerate(lines) if ln.startswith("agency_cd")), None)
    if header_idx is None:
        return pd.DataFrame(columns=["date", "usgs_cms"])
    # Row after the header holds RDB column widths (e.g. "5s 15s 20d")
    data = "\n".join([lines[header_idx]] + lines[header_idx + 2:])
    df = pd.read_csv(io.StringIO(data), sep="\t", dtype=str)
    flow_col = next(
        (c for c in df.columns if c.endswith(f"{DISCHARGE_PARAM}_{DAILY_MEAN_STAT}")), None
    )
    if flow_col is None or df.empty:
        return pd.DataFrame(columns=["date", "usgs_cms"])
    out = pd.DataFrame({
        "date": pd.to_datetime(df["datetime"], errors="coerce"),
        "usgs_cms": pd.to_numeric(df[flow_col], errors="coerce") * CFS_TO_CMS,
    })
    return out.dropna(subset=["date"]).sort_values("date").reset_index(drop=True)


def join_observed(nwm: pd.DataFrame, observed: pd.DataFrame, site_name: Optional[str] = None) -> pd.DataFrame:
    """Left-join one site's NWM series onto observed daily flow: [date, usgs_cms, nwm_cms]."""
    sim = nwm
    if site_name is not None:
        sim = nwm[nwm["site_name"] == site_name]
    sim = (
        sim.assign(date=pd.to_datetime(sim["date"]).dt.normalize())
        .rename(columns={"streamflow_cms": "nwm_cms"})[["date", "nwm_cms"]]
        .drop_duplicates("date")
    )
    obs = observed.assign(date=pd.to_datetime(observed["date"]).dt.normalize())
    return obs.merge(sim, on="date", how="left")[["date", "usgs_cms", "nwm_cms"]]
