"""Tests for USGS daily-value parsing, retry and NWM comparison join."""

from unittest.mock import Mock

import numpy as np
import pandas as pd
import pytest
import requests

from data_acquisition import usgs
from data_acquisition.usgs import CFS_TO_CMS, NWISDailyClient, join_observed, parse_daily_rdb

RDB = """# ---------------------------------- WARNING ----------------------------------------
# Some of the data that you have obtained from this U.S. Geological Survey database
#
agency_cd\tsite_no\tdatetime\t123_00060_00003\t123_00060_00003_cd
5s\t15s\t20d\t14n\t10s
USGS\t02446500\t1999-10-01\t100\tA
USGS\t02446500\t1999-10-02\t\tA
USGS\t02446500\t1999-10-03\t50\tA
"""


def test_parse_daily_rdb_converts_to_cms():
    df = parse_daily_rdb(RDB)
    assert list(df.columns) == ["date", "usgs_cms"]
    assert df["date"].tolist() == list(pd.date_range("1999-10-01", periods=3))
    assert df["usgs_cms"].iloc[0] == pytest.approx(100 * CFS_TO_CMS)
    assert np.isnan(df["usgs_cms"].iloc[1])


def test_parse_without_header_is_empty():
    assert parse_daily_rdb("# nothing here\n").empty


def _response(status, text=""):
    r = Mock()
    r.status_code = status
    r.text = text
    if status >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(f"{status}")
    else:
        r.raise_for_status.return_value = None
    return r


def test_retries_503_then_succeeds(monkeypatch):
    monkeypatch.setattr(usgs.time, "sleep", lambda s: None)
    session = Mock()
    session.get.side_effect = [_response(503), _response(200, RDB)]
    client = NWISDailyClient(session=session, max_retries=2)
    df = client.fetch_daily_discharge("02446500", "1999-10-01", "1999-10-03")
    assert len(df) == 3
    assert session.get.call_count == 2
    params = session.get.call_args.kwargs["params"]
    assert params["parameterCd"] == "00060"
    assert params["statCd"] == "00003"


def test_gives_up_after_retries(monkeypatch):
    monkeypatch.setattr(usgs.time, "sleep", lambda s: None)
    session = Mock()
    session.get.side_effect = requests.ConnectionError("offline")
    client = NWISDailyClient(session=session, max_retries=1)
    with pytest.raises(requests.RequestException):
        client.get({})
    assert session.get.call_count == 2


def test_join_observed_left_join_on_observations():
    nwm = pd.DataFrame({
        "site_name": ["S", "S", "T"],
        "comid": [1, 1, 2],
        "date": pd.to_datetime(["1999-10-01", "1999-10-05", "1999-10-01"]),
        "streamflow_cms": [3.0, 9.0, 100.0],
        "status": ["ok", "ok", "ok"],
    })
    obs = pd.DataFrame({"date": pd.to_datetime(["1999-10-01", "1999-10-02"]), "usgs_cms": [2.0, 2.5]})
    out = join_observed(nwm, obs, site_name="S")
    assert out["nwm_cms"].iloc[0] == 3.0
    assert np.isnan(out["nwm_cms"].iloc[1])
    assert len(out) == 2
