"""Tests for post-hoc summary statistics."""

import numpy as np
import pandas as pd
import pytest

from analysis.metrics import coverage_summary, summer_low_flow


def _table():
    rows = []
    for year, lows in ((2001, 2.0), (2002, 4.0), (2003, 9.0)):
        for day in pd.date_range(f"{year}-05-25", f"{year}-09-05"):
            flow = lows if day.month == 7 and day.day == 15 else 50.0
            if day.month == 5 or day.month == 9:
                flow = 0.1  # outside summer, ignored
            rows.append({"site_name": "A", "comid": 1, "date": day, "streamflow_cms": flow, "status": "ok"})
    rows.append({"site_name": "B", "comid": -9999, "date": pd.Timestamp("2001-07-01"),
                 "streamflow_cms": np.nan, "status": "unresolved"})
    return pd.DataFrame(rows)


def test_median_of_annual_summer_minima():
    out = summer_low_flow(_table()).set_index("site_name")
    assert out.loc["A", "median_summer_lowflow_cms"] == pytest.approx(4.0)
    assert np.isnan(out.loc["B", "median_summer_lowflow_cms"])


def test_coverage_summary():
    out = coverage_summary(_table()).set_index("site_name")
    assert out.loc["A", "valid_fraction"] == pytest.approx(1.0)
    assert out.loc["B", "valid_fraction"] == pytest.approx(0.0)
    assert out.loc["B", "unresolved"] == 1
