"""Shared fixtures: synthetic CHRTOUT files and an in-memory archive transport."""

from __future__ import annotations

import os

import numpy as np
import pandas as pd
import pytest
import xarray as xr


def write_chrtout(path, feature_ids, flows) -> str:
    ds = xr.Dataset(
        {"streamflow": ("feature_id", np.asarray(flows, dtype="float64"))},
        coords={"feature_id": np.asarray(feature_ids, dtype="int64")},
    )
    ds.to_netcdf(path)
    return str(path)


class FakeTransport:
    """Serves per-date CHRTOUT contents; dates mapped to an exception fail instead."""

    def __init__(self, files: dict):
        self.files = {pd.Timestamp(k): v for k, v in files.items()}
        self.downloaded = []

    def download(self, date, archive, dst_path, deadline):
        self.downloaded.append(dst_path)
        content = self.files.get(pd.Timestamp(date))
        if content is None:
            raise FileNotFoundError(f"no object for {date}")
        if isinstance(content, Exception):
            raise content
        if isinstance(content, bytes):
            with open(dst_path, "wb") as f:
                f.write(content)
            return
        feature_ids, flows = content
        write_chrtout(dst_path, feature_ids, flows)


@pytest.fixture
def scratch(tmp_path):
    d = tmp_path / "scratch"
    d.mkdir()
    return d


@pytest.fixture
def assert_scratch_empty(scratch):
    def _check():
        assert os.listdir(scratch) == []
    return _check
