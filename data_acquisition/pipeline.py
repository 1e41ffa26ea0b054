"""Resolve sites, retrieve the study period, and assemble the site table."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import pandas as pd

from config.settings import RetrievalConfig

from .assemble import assemble
from .comid import ComidResolver, target_comids
from .nwm import NWMRetrospectiveCollector, study_period
from .sites import Site

logger = logging.getLogger(__name__)


def retrieve_site_streamflow(
    sites: Sequence[Site],
    start_date,
    end_date,
    config: Optional[RetrievalConfig] = None,
    resolver: Optional[ComidResolver] = None,
    collector: Optional[NWMRetrospectiveCollector] = None,
    preflight: bool = False,
) -> Tuple[pd.DataFrame, List[Site]]:
    """Return (long-form table, resolved sites) for the inclusive period start_date..end_date."""
    config = config or RetrievalConfig()
    dates = study_period(start_date, end_date)
    resolver = resolver or ComidResolver(
        base_url=config.nldi_url, raindrop=config.raindrop, timeout=config.resolver_timeout
    )
    collector = collector or NWMRetrospectiveCollector(config)

    logger.info(f"🔎 Resolving COMIDs for {len(sites)} sites")
    resolved = resolver.resolve_all(sites)
    comids = target_comids(resolved)

    if preflight and comids:
        collector.preflight(dates)

    records = collector.run_all(dates, comids)
    table = assemble(records, resolved, dates=dates)
    return table, resolved
