"""Tests for joining per-date records onto the site catalog."""

import numpy as np
import pandas as pd
import pytest

from config.settings import UNRESOLVED_COMID
from data_acquisition.assemble import NOT_IN_ARCHIVE, UNRESOLVED, assemble
from data_acquisition.nwm import FETCH_FAILED, OK, missing_record
from data_acquisition.sites import Site

D1 = pd.Timestamp("2001-05-01")
D2 = pd.Timestamp("2001-05-02")


def _flow(comid, date, value):
    return {"comid": comid, "date": date, "streamflow_cms": value, "status": OK}


def _records(*rows):
    return pd.DataFrame(list(rows))


def _site(name, comid):
    return Site(name=name, latitude=33.0, longitude=-87.0, comid=comid)


def _tuples(df):
    out = []
    for r in df.itertuples(index=False):
        flow = None if pd.isna(r.streamflow_cms) else r.streamflow_cms
        comid = None if pd.isna(r.comid) else int(r.comid)
        site = None if pd.isna(r.site_name) else r.site_name
        out.append((site, comid, r.date, flow))
    return out


class TestAssembleScenarios:
    def test_failed_second_date_keeps_row(self):
        recs = _records(_flow(111, D1, 12.5), missing_record(D2, FETCH_FAILED))
        out = assemble(recs, [_site("S", 111)], dates=[D1, D2])
        assert _tuples(out) == [("S", 111, D1, 12.5), ("S", 111, D2, None)]
        assert out["status"].tolist() == [OK, FETCH_FAILED]

    def test_two_sites_share_comid(self):
        recs = _records(_flow(222, D1, 7.0))
        out = assemble(recs, [_site("A", 222), _site("B", 222)], dates=[D1])
        assert _tuples(out) == [("A", 222, D1, 7.0), ("B", 222, D1, 7.0)]

    def test_unresolved_site_never_absent(self):
        recs = _records(_flow(111, D1, 1.0), _flow(111, D2, 2.0))
        sites = [_site("S", 111), _site("Lost", UNRESOLVED_COMID)]
        out = assemble(recs, sites, dates=[D1, D2])
        lost = out[out["site_name"] == "Lost"]
        assert len(lost) == 2
        assert (lost["comid"] == UNRESOLVED_COMID).all()
        assert lost["streamflow_cms"].isna().all()
        assert (lost["status"] == UNRESOLVED).all()


class TestAssembleJoin:
    def test_every_site_every_date(self):
        recs = _records(missing_record(D1, FETCH_FAILED), missing_record(D2, FETCH_FAILED))
        sites = [_site("A", 1), _site("B", 2), _site("C", UNRESOLVED_COMID)]
        out = assemble(recs, sites, dates=[D1, D2])
        assert len(out) == 6
        assert set(zip(out["site_name"], out["date"])) == {(s, d) for s in "ABC" for d in (D1, D2)}

    def test_orphan_record_kept_with_null_site(self):
        recs = _records(_flow(1, D1, 3.0), _flow(99, D1, 4.0))
        out = assemble(recs, [_site("A", 1)], dates=[D1])
        orphan = out[out["comid"] == 99]
        assert len(orphan) == 1
        assert pd.isna(orphan["site_name"].iloc[0])
        assert orphan["streamflow_cms"].iloc[0] == 4.0

    def test_resolved_comid_absent_from_file(self):
        recs = _records(_flow(1, D1, 3.0))
        out = assemble(recs, [_site("A", 1), _site("B", 2)], dates=[D1])
        b = out[out["site_name"] == "B"].iloc[0]
        assert np.isnan(b["streamflow_cms"])
        assert b["status"] == NOT_IN_ARCHIVE

    def test_dates_default_to_record_dates(self):
        recs = _records(_flow(1, D2, 2.0), missing_record(D1, FETCH_FAILED))
        out = assemble(recs, [_site("A", 1)])
        assert out["date"].tolist() == [D1, D2]

    def test_sorted_by_date_then_site_order(self):
        recs = _records(_flow(2, D2, 1.0), _flow(1, D2, 1.0), _flow(2, D1, 1.0), _flow(1, D1, 1.0))
        out = assemble(recs, [_site("Z", 2), _site("A", 1)], dates=[D1, D2])
        assert out["site_name"].tolist() == ["Z", "A", "Z", "A"]

    def test_no_sites_keeps_placeholder_rows(self):
        recs = _records(missing_record(D1, FETCH_FAILED))
        out = assemble(recs, [], dates=[D1])
        assert len(out) == 1
        assert out["status"].iloc[0] == FETCH_FAILED

    def test_output_columns(self):
        out = assemble(_records(_flow(1, D1, 1.0)), [_site("A", 1)])
        assert list(out.columns) == ["site_name", "comid", "date", "streamflow_cms", "status"]

    @pytest.mark.parametrize("as_frame", [True, False])
    def test_accepts_catalog_frame(self, as_frame):
        sites = [_site("A", 1)]
        catalog = pd.DataFrame({"site_name": ["A"], "comid": [1]}) if as_frame else sites
        out = assemble(_records(_flow(1, D1, 5.0)), catalog, dates=[D1])
        assert _tuples(out) == [("A", 1, D1, 5.0)]
