"""
🔄 NWM Retrospective DAILY Streamflow Extractor
==============================================

Retrieves the 12:00Z CHRTOUT snapshot for every day of a study period from the
public NWM retrospective archive and keeps only the COMIDs of interest:

    {base}/{YYYY}/{YYYYMMDD}1200.CHRTOUT_DOMAIN1[.comp]

Each day is an independent task: download to a scratch file keyed by the date,
read ``feature_id``/``streamflow`` with xarray, filter to the target COMIDs, and
remove the scratch file. Tasks run in a process pool (cpu_count - 1 workers by
default). A failing day never aborts the batch: it is reported as a single
missing row for that date tagged with the step that failed.
"""

from __future__ import annotations

import concurrent.futures as cf
import contextlib
import logging
import os
import shutil
import tempfile
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

import boto3
import numpy as np
import pandas as pd
import requests
import xarray as xr
from botocore import UNSIGNED
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from config.settings import ArchiveSpec, RetrievalConfig

from .errors import ArchiveUnavailableError, ExtractError, FetchError

logger = logging.getLogger(__name__)

# Row status values
OK = "ok"
FETCH_FAILED = "fetch_failed"
EXTRACT_FAILED = "extract_failed"
TASK_FAILED = "task_failed"
WORKER_FAILED = "worker_failed"
TIMESTEP_FAILURES = (FETCH_FAILED, EXTRACT_FAILED, TASK_FAILED, WORKER_FAILED)

RECORD_COLUMNS = ["comid", "date", "streamflow_cms", "status"]

# Small enough that a trickling server still hits the deadline check often
DOWNLOAD_CHUNK_BYTES = 64 * 1024


def study_period(start_date, end_date) -> pd.DatetimeIndex:
    """Inclusive, gap-free daily dates from start_date to end_date."""
    start_dt = pd.Timestamp(start_date).normalize()
    end_dt = pd.Timestamp(end_date).normalize()
    if end_dt < start_dt:
        raise ValueError("end_date must be on or after start_date")
    return pd.date_range(start=start_dt, end=end_dt, freq="D")


# ---- Archive locators ----
def compact_date(date, archive: ArchiveSpec) -> str:
    return f"{pd.Timestamp(date):%Y%m%d}{archive.time_of_day}"


def archive_url(date, archive: ArchiveSpec) -> str:
    ts = pd.Timestamp(date)
    return f"{archive.base_url.rstrip('/')}/{ts:%Y}/{compact_date(ts, archive)}{archive.suffix}"


def archive_key(date, archive: ArchiveSpec) -> str:
    ts = pd.Timestamp(date)
    return f"{archive.key_prefix.strip('/')}/{ts:%Y}/{compact_date(ts, archive)}{archive.suffix}"


def scratch_path(date, scratch_dir: str, archive: ArchiveSpec) -> str:
    """Local scratch file for one date; unique per date so concurrent tasks never collide."""
    return os.path.join(scratch_dir, f"{compact_date(date, archive)}{archive.suffix}")


# ---- Transports ----
class HttpTransport:
    """Streams archive objects over HTTPS with requests."""

    def __init__(self, connect_timeout: float = 15.0, read_timeout: float = 120.0,
                 session: Optional[requests.Session] = None):
        self.timeout = (connect_timeout, read_timeout)
        self.session = session or requests.Session()

    def download(self, date: pd.Timestamp, archive: ArchiveSpec, dst_path: str, deadline: float) -> None:
        url = archive_url(date, archive)
        with self.session.get(url, stream=True, timeout=self.timeout) as r:
            if r.status_code == 404:
                raise FetchError(f"Not in archive: {url}")
            r.raise_for_status()
            with open(dst_path, 'wb') as f:
                for chunk in r.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
                    if time.monotonic() > deadline:
                        raise FetchError(f"Download exceeded task timeout: {url}")
                    if chunk:
                        f.write(chunk)


class S3Transport:
    """Downloads archive objects from the public bucket with an anonymous boto3 client."""

    def __init__(self, connect_timeout: float = 15.0, read_timeout: float = 120.0, client=None):
        self.client = client or boto3.client(
            's3',
            region_name='us-east-1',
            config=Config(
                signature_version=UNSIGNED,
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={'max_attempts': 2},
            ),
        )

    def download(self, date: pd.Timestamp, archive: ArchiveSpec, dst_path: str, deadline: float) -> None:
        key = archive_key(date, archive)
        source = f"s3://{archive.bucket}/{key}"

        def _check_deadline(_bytes_transferred):
            if time.monotonic() > deadline:
                raise FetchError(f"Download exceeded task timeout: {source}")

        self.client.download_file(archive.bucket, key, dst_path, Callback=_check_deadline)
        _check_deadline(0)


def make_transport(config: RetrievalConfig):
    if config.transport == "s3":
        return S3Transport(config.connect_timeout, config.read_timeout)
    return HttpTransport(config.connect_timeout, config.read_timeout)


def _remove_scratch(path: str) -> None:
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning(f"Could not remove scratch file {path}: {e}")


@contextlib.contextmanager
def downloaded_timestep(date, archive: ArchiveSpec, scratch_dir: str, transport,
                        task_timeout: float = 600.0) -> Iterator[str]:
    """Download one date's file to scratch and yield its path; the file is removed on every exit path."""
    ts = pd.Timestamp(date)
    path = scratch_path(ts, scratch_dir, archive)
    try:
        if not archive.covers(ts):
            raise FetchError(
                f"{ts.date()} outside NWM {archive.name} archive "
                f"({archive.first_date} → {archive.last_date})"
            )
        try:
            transport.download(ts, archive, path, time.monotonic() + task_timeout)
        except FetchError:
            raise
        except (requests.RequestException, BotoCoreError, ClientError, OSError) as e:
            raise FetchError(f"{archive_url(ts, archive)}: {e}") from e
        yield path
    finally:
        _remove_scratch(path)


def extract_timestep(path: str, target_comids: Iterable[int], date) -> List[dict]:
    """Read feature_id/streamflow from a CHRTOUT file and keep rows for target COMIDs."""
    ts = pd.Timestamp(date)
    targets = np.array(sorted({int(c) for c in target_comids}), dtype=np.int64)
    try:
        with xr.open_dataset(path) as ds:
            missing = [v for v in ('feature_id', 'streamflow') if v not in ds.variables]
            if missing:
                raise ExtractError(f"{os.path.basename(path)} missing variables {missing}")
            feature_ids = np.asarray(ds['feature_id'].values).reshape(-1)
            values = np.asarray(ds['streamflow'].values, dtype=float)
    except ExtractError:
        raise
    except Exception as e:
        raise ExtractError(f"Could not read {os.path.basename(path)}: {e}") from e

    if values.size != feature_ids.size:
        raise ExtractError(
            f"feature_id ({feature_ids.size}) and streamflow ({values.size}) lengths differ"
        )
    values = values.reshape(-1)
    idx = np.nonzero(np.isin(feature_ids, targets))[0]
    return [
        {
            'comid': int(feature_ids[i]),
            'date': ts,
            'streamflow_cms': float(values[i]),
            'status': OK,
        }
        for i in idx
    ]


def missing_record(date, failure: str) -> dict:
    """Placeholder row standing in for a whole failed date."""
    return {'comid': None, 'date': pd.Timestamp(date), 'streamflow_cms': np.nan, 'status': failure}


@dataclass
class TimestepResult:
    """Outcome of one date's task; safe to return across process boundaries."""

    date: pd.Timestamp
    records: List[dict] = field(default_factory=list)
    failure: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def to_rows(self) -> List[dict]:
        if self.ok:
            return list(self.records)
        return [missing_record(self.date, self.failure)]


def run_one_date(date, target_comids: Iterable[int], archive: ArchiveSpec, scratch_dir: str,
                 transport, task_timeout: float = 600.0) -> TimestepResult:
    """Fetch and extract one date. Never raises: failures come back as a failed TimestepResult."""
    ts = pd.Timestamp(date)
    try:
        with downloaded_timestep(ts, archive, scratch_dir, transport, task_timeout) as path:
            records = extract_timestep(path, target_comids, ts)
    except FetchError as e:
        logger.debug(f"Fetch failed {ts.date()}: {e}")
        return TimestepResult(date=ts, failure=FETCH_FAILED, error=str(e))
    except ExtractError as e:
        logger.debug(f"Parse failed {ts.date()}: {e}")
        return TimestepResult(date=ts, failure=EXTRACT_FAILED, error=str(e))
    except Exception as e:
        logger.debug(f"Unexpected failure {ts.date()}: {e!r}")
        return TimestepResult(date=ts, failure=TASK_FAILED, error=f"{type(e).__name__}: {e}")
    return TimestepResult(date=ts, records=records)


# ---- Pool workers ----
# Per worker (process or thread) copies of the broadcast inputs and its own transport
_worker = threading.local()


def _init_worker(config: RetrievalConfig, targets: frozenset, scratch_dir: str) -> None:
    _worker.config = config
    _worker.targets = targets
    _worker.scratch_dir = scratch_dir
    _worker.transport = None


def _run_date_worker(date_iso: str) -> TimestepResult:
    cfg = _worker.config
    if _worker.transport is None:
        try:
            _worker.transport = make_transport(cfg)
        except Exception as e:
            return TimestepResult(date=pd.Timestamp(date_iso), failure=TASK_FAILED,
                                  error=f"transport setup failed: {e}")
    return run_one_date(
        date_iso,
        _worker.targets,
        cfg.archive_spec,
        _worker.scratch_dir,
        _worker.transport,
        cfg.task_timeout,
    )


def default_workers() -> int:
    """Available parallelism minus one unit for the coordinating process."""
    return max(1, (os.cpu_count() or 2) - 1)


def consolidate(results: Sequence[TimestepResult]) -> pd.DataFrame:
    """Concatenate per-date rows in date order."""
    rows: List[dict] = []
    for res in results:
        rows.extend(res.to_rows())
    df = pd.DataFrame(rows, columns=RECORD_COLUMNS)
    df['comid'] = pd.array(df['comid'].tolist(), dtype="Int64")
    df['date'] = pd.to_datetime(df['date'])
    df['streamflow_cms'] = pd.to_numeric(df['streamflow_cms'], errors='coerce').astype(float)
    return df.sort_values('date', kind='mergesort').reset_index(drop=True)


class NWMRetrospectiveCollector:
    """Collects daily 12:00Z NWM retrospective streamflow for target COMIDs."""

    def __init__(self, config: Optional[RetrievalConfig] = None):
        self.config = config or RetrievalConfig()
        self.archive = self.config.archive_spec
        self.max_workers = self.config.max_workers or default_workers()

    def _scratch_dir(self) -> Tuple[str, bool]:
        if self.config.scratch_dir:
            os.makedirs(self.config.scratch_dir, exist_ok=True)
            return self.config.scratch_dir, False
        return tempfile.mkdtemp(prefix="nwm_retro_"), True

    def preflight(self, dates: Sequence[pd.Timestamp], samples: int = 3) -> None:
        """Probe a few archive URLs; raise ArchiveUnavailableError when none exist."""
        from .tools.check_nwm_archive import probe_archive

        df = probe_archive(dates, self.archive, samples=samples, timeout=self.config.connect_timeout)
        if df.empty or not df['exists'].any():
            raise ArchiveUnavailableError(
                f"No NWM {self.archive.name} objects found at {self.archive.base_url} "
                f"for sampled dates {df['date'].tolist() if not df.empty else []}"
            )
        logger.info(f"✅ Preflight: {int(df['exists'].sum())}/{len(df)} sampled archive objects available")

    def run_all(self, dates: Iterable, target_comids: Iterable[int]) -> pd.DataFrame:
        """Run one task per date and return the consolidated records (flow rows and missing rows)."""
        dates = [pd.Timestamp(d) for d in dates]
        targets = frozenset(int(c) for c in target_comids)
        if not dates:
            return consolidate([])
        if not targets:
            logger.warning("⚠️  No resolved COMIDs to extract; skipping archive downloads")
            return consolidate([])

        logger.info(f"🚀 COLLECTING NWM {self.archive.name} RETROSPECTIVE - DAILY 12:00Z")
        logger.info("=" * 60)
        logger.info(f"📅 Period: {dates[0].date()} → {dates[-1].date()} ({len(dates)} days)")
        logger.info(f"🎯 Target COMIDs: {sorted(targets)}")
        logger.info(f"⚙️  {self.max_workers} {self.config.concurrency} workers via {self.config.transport}")

        scratch_dir, owned = self._scratch_dir()
        try:
            results = self._dispatch(dates, targets, scratch_dir)
        finally:
            if owned:
                shutil.rmtree(scratch_dir, ignore_errors=True)

        self._log_summary(results)
        return consolidate(results)

    def _dispatch(self, dates: List[pd.Timestamp], targets: frozenset, scratch_dir: str) -> List[TimestepResult]:
        if self.config.concurrency == "thread":
            executor_cls = cf.ThreadPoolExecutor
        else:
            # Processes keep netCDF/HDF5 handles out of shared threads
            executor_cls = cf.ProcessPoolExecutor

        results: List[TimestepResult] = []
        started = time.time()
        with executor_cls(max_workers=self.max_workers, initializer=_init_worker,
                          initargs=(self.config, targets, scratch_dir)) as ex:
            try:
                futures = [ex.submit(_run_date_worker, d.isoformat()) for d in dates]
                for n, (d, fut) in enumerate(zip(dates, futures), start=1):
                    try:
                        res = fut.result()
                    except Exception as e:
                        logger.error(f"❌ Worker failed for {d.date()}: {e!r}")
                        res = TimestepResult(date=d, failure=WORKER_FAILED, error=repr(e))
                    results.append(res)
                    if n % self.config.progress_every == 0 or n == len(dates):
                        failed = sum(1 for r in results if not r.ok)
                        logger.info(f"   📦 {n}/{len(dates)} dates done ({failed} failed, {time.time() - started:.0f}s)")
            except KeyboardInterrupt:
                ex.shutdown(wait=False, cancel_futures=True)
                raise
        return results

    def _log_summary(self, results: Sequence[TimestepResult]) -> None:
        failures = Counter(r.failure for r in results if not r.ok)
        n_ok = len(results) - sum(failures.values())
        logger.info(f"📊 {n_ok}/{len(results)} dates retrieved")
        for kind, count in sorted(failures.items()):
            logger.warning(f"   ⚠️  {kind}: {count} dates")
        if results and n_ok == 0:
            logger.error(
                "❌ Every date failed; check the archive base URL, network access, and period bounds"
            )
        if failures:
            sample = [r for r in results if not r.ok][:3]
            for r in sample:
                logger.debug(f"   {r.date.date()}: {r.error}")
