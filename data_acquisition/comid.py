"""
NHDPlus COMID resolution for point sites via the USGS NLDI service.

Two lookup modes:

- raindrop (default): POST {nldi}/pygeoapi/processes/nldi-flowtrace/execution
    Traces a raindrop from the point down to the network. The response carries
    several features tagged by ``id`` ("nhdFlowline", "raindropPath"); only the
    flowline candidate holds the COMID of the containing reach.
- position: GET {nldi}/linked-data/comid/position?coords=POINT(lon lat)
    Returns the catchment flowline the point falls in.

Resolution runs sequentially in the main process; the service is not called from
retrieval workers.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Tuple

import geopandas as gpd
import requests
from shapely.geometry import Point

from config.settings import NLDI_BASE_URL, UNRESOLVED_COMID

from .errors import ResolutionError
from .sites import Site

logger = logging.getLogger(__name__)

FLOWLINE_FEATURE = "nhdFlowline"


def to_wgs84(lon: float, lat: float, crs: str) -> Tuple[float, float]:
    """Reproject a single point to EPSG:4326 (lon, lat)."""
    pt = gpd.GeoSeries([Point(lon, lat)], crs=crs).to_crs(epsg=4326).iloc[0]
    return float(pt.x), float(pt.y)


def _flowline_comid(payload: dict, untagged_is_flowline: bool = False) -> int:
    """Pick the nhdFlowline COMID; position lookups return a single untagged feature."""
    default_id = FLOWLINE_FEATURE if untagged_is_flowline else None
    features = payload.get("features") if isinstance(payload, dict) else None
    if not features:
        raise ResolutionError("NLDI returned no features near the point")
    candidates = [
        f.get("properties", {}) for f in features
        if f.get("properties", {}).get("id", default_id) == FLOWLINE_FEATURE
    ]
    for props in candidates:
        comid = props.get("comid")
        if comid not in (None, ""):
            try:
                return int(comid)
            except (TypeError, ValueError) as exc:
                raise ResolutionError(f"Non-integer COMID in NLDI response: {comid!r}") from exc
    types = sorted({str(f.get("properties", {}).get("id")) for f in features})
    raise ResolutionError(f"No {FLOWLINE_FEATURE} candidate in NLDI response (got {types})")


class ComidResolver:
    """Resolve site coordinates to NHDPlus COMIDs. No internal retry."""

    def __init__(
        self,
        base_url: str = NLDI_BASE_URL,
        raindrop: bool = True,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.raindrop = raindrop
        self.timeout = timeout
        self.session = session or requests.Session()

    def _raindrop_trace(self, lon: float, lat: float) -> dict:
        url = f"{self.base_url}/pygeoapi/processes/nldi-flowtrace/execution"
        body = {
            "inputs": {
                "lat": lat,
                "lon": lon,
                "raindroptrace": "true",
                "direction": "down",
            }
        }
        r = self.session.post(url, json=body, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def _position(self, lon: float, lat: float) -> dict:
        url = f"{self.base_url}/linked-data/comid/position"
        params = {"f": "json", "coords": f"POINT({lon} {lat})"}
        r = self.session.get(url, params=params, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def resolve_comid(self, lon: float, lat: float, crs: str) -> int:
        """Return the flowline COMID for a point; raises ResolutionError on any failure."""
        try:
            x, y = to_wgs84(lon, lat, crs)
        except Exception as exc:
            raise ResolutionError(f"Could not reproject ({lon}, {lat}) from {crs}: {exc}") from exc
        try:
            payload = self._raindrop_trace(x, y) if self.raindrop else self._position(x, y)
        except requests.RequestException as exc:
            raise ResolutionError(f"NLDI request failed for ({x:.5f}, {y:.5f}): {exc}") from exc
        except ValueError as exc:
            raise ResolutionError(f"NLDI returned invalid JSON for ({x:.5f}, {y:.5f})") from exc
        return _flowline_comid(payload, untagged_is_flowline=not self.raindrop)

    def resolve(self, site: Site) -> Site:
        """Return a copy of ``site`` with its COMID set, or the sentinel if resolution failed."""
        if site.comid is not None:
            return site
        try:
            comid = self.resolve_comid(site.longitude, site.latitude, site.crs)
        except ResolutionError as exc:
            logger.warning(f"⚠️  {site.name}: {exc}; using sentinel COMID {UNRESOLVED_COMID}")
            return replace(site, comid=UNRESOLVED_COMID)
        except Exception as exc:
            logger.warning(f"⚠️  {site.name}: unexpected resolver error {exc!r}; using sentinel COMID {UNRESOLVED_COMID}")
            return replace(site, comid=UNRESOLVED_COMID)
        logger.info(f"🎯 {site.name} → COMID {comid}")
        return replace(site, comid=comid)

    def resolve_all(self, sites: Iterable[Site]) -> List[Site]:
        resolved = [self.resolve(s) for s in sites]
        failed = [s.name for s in resolved if s.comid == UNRESOLVED_COMID]
        if failed:
            logger.warning(f"⚠️  {len(failed)}/{len(resolved)} sites did not resolve: {failed}")
        return resolved


def target_comids(sites: Iterable[Site]) -> List[int]:
    """Distinct resolved COMIDs in first-seen order, excluding the sentinel."""
    seen: List[int] = []
    for s in sites:
        if s.comid is not None and s.comid != UNRESOLVED_COMID and s.comid not in seen:
            seen.append(s.comid)
    return seen

