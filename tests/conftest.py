import csv
import time
from pathlib import Path

import pytest

from store_monitor.models.job import JobStatus
from store_monitor.services.dataset_loader import CsvDatasetSource, DatasetPaths
from store_monitor.services.report_service import JobManager

POLL_HEADER = ["store_id", "status", "timestamp_utc"]
HOURS_HEADER = ["store_id", "dayOfWeek", "start_time_local", "end_time_local"]
TIMEZONE_HEADER = ["store_id", "timezone_str"]

# 2023-01-23 is a Monday; America/Chicago is UTC-6 in January
S1_POLLS = [
    ["S1", "active", "2023-01-23 16:00:00.000000 UTC"],    # Monday 10:00 local
    ["S1", "inactive", "2023-01-23 22:00:00.000000 UTC"],  # Monday 16:00 local
    ["S1", "inactive", "2023-01-24 02:00:00.000000 UTC"],  # Monday 20:00 local, closed
]
S1_HOURS = [["S1", "0", "09:00:00", "17:00:00"]]
S1_TIMEZONES = [["S1", "America/Chicago"]]


def _write_csv(path: Path, header, rows) -> str:
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    return str(path)


@pytest.fixture
def write_datasets(tmp_path):
    """Write the three CSV files and return their DatasetPaths"""

    def _write(polls=(), hours=(), timezones=(), poll_header=POLL_HEADER,
               hours_header=HOURS_HEADER, timezone_header=TIMEZONE_HEADER) -> DatasetPaths:
        return DatasetPaths(
            store_status=_write_csv(tmp_path / "store_status.csv", poll_header, polls),
            business_hours=_write_csv(tmp_path / "business_hours.csv", hours_header, hours),
            timezones=_write_csv(tmp_path / "timezones.csv", timezone_header, timezones),
        )

    return _write


@pytest.fixture
def s1_paths(write_datasets):
    return write_datasets(polls=S1_POLLS, hours=S1_HOURS, timezones=S1_TIMEZONES)


@pytest.fixture
def s1_source(s1_paths):
    return CsvDatasetSource(s1_paths, chunk_size=2)


@pytest.fixture
def job_manager(s1_source):
    manager = JobManager(s1_source, max_workers=2, verbose_errors=False)
    manager.initialize()
    yield manager
    manager.shutdown(wait=True)


def _wait_for_job(manager: JobManager, job_id: str, timeout: float = 10.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        job = manager.get_job(job_id)
        if job.status != JobStatus.RUNNING:
            return job
        time.sleep(0.02)
    raise AssertionError(f"job {job_id} still running after {timeout}s")


@pytest.fixture
def wait_for_job():
    """Poll a job until it leaves RUNNING"""
    return _wait_for_job
