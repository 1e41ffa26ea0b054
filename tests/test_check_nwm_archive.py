"""Tests for the archive availability probe and the collector preflight."""

import pandas as pd
import pytest

from config.settings import ARCHIVES, RetrievalConfig
from data_acquisition.errors import ArchiveUnavailableError
from data_acquisition.nwm import NWMRetrospectiveCollector, study_period
from data_acquisition.tools import check_nwm_archive as probe


def test_sample_dates_keeps_ends():
    dates = list(study_period("2000-01-01", "2000-01-10"))
    picked = probe.sample_dates(dates, 3)
    assert picked[0] == dates[0]
    assert picked[-1] == dates[-1]
    assert len(picked) == 3
    assert probe.sample_dates(dates, 0) == dates
    assert probe.sample_dates(dates, 1) == [dates[0]]


def test_probe_skips_head_outside_coverage(monkeypatch):
    seen = []
    monkeypatch.setattr(probe, "head_ok", lambda url, timeout=10.0: seen.append(url) or True)
    dates = study_period("2020-12-31", "2021-01-01")
    df = probe.probe_archive(dates, ARCHIVES["v2.1"])
    assert df["exists"].tolist() == [True, False]
    assert len(seen) == 1
    assert df["url"].iloc[1].endswith("/2021/202101011200.CHRTOUT_DOMAIN1.comp")


def test_main_returns_nonzero_when_nothing_found(monkeypatch, capsys):
    monkeypatch.setattr(probe, "head_ok", lambda url, timeout=10.0: False)
    assert probe.main(["--start", "2000-01-01", "--end", "2000-01-02"]) == 1
    assert "Per-year availability" in capsys.readouterr().out


def test_main_rejects_reversed_range():
    assert probe.main(["--start", "2000-01-02", "--end", "2000-01-01"]) == 2


class TestPreflight:
    def test_raises_when_nothing_available(self, monkeypatch):
        monkeypatch.setattr(probe, "head_ok", lambda url, timeout=10.0: False)
        collector = NWMRetrospectiveCollector(RetrievalConfig(concurrency="thread", max_workers=1))
        with pytest.raises(ArchiveUnavailableError):
            collector.preflight(study_period("2000-01-01", "2000-01-05"))

    def test_passes_when_some_available(self, monkeypatch):
        monkeypatch.setattr(probe, "head_ok", lambda url, timeout=10.0: url.endswith("200001011200.CHRTOUT_DOMAIN1.comp"))
        collector = NWMRetrospectiveCollector(RetrievalConfig(concurrency="thread", max_workers=1))
        collector.preflight(study_period("2000-01-01", "2000-01-05"))

    def test_period_outside_archive(self, monkeypatch):
        monkeypatch.setattr(probe, "head_ok", lambda url, timeout=10.0: True)
        collector = NWMRetrospectiveCollector(RetrievalConfig())
        with pytest.raises(ArchiveUnavailableError):
            collector.preflight(pd.date_range("1970-01-01", periods=3, freq="D"))
