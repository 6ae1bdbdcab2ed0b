import threading

import pytest

from store_monitor.errors import DatasetParseError, InternalError, JobNotFoundError
from store_monitor.models.job import Job, JobStatus
from store_monitor.models.schemas import ReportPayload
from store_monitor.services.dataset_loader import CsvDatasetSource, DatasetPaths
from store_monitor.services.report_service import JobManager, generate_report


class BlockingSource:
    """Dataset source whose first read waits until released"""

    def __init__(self, inner):
        self.inner = inner
        self.release = threading.Event()

    def iter_timezones(self):
        self.release.wait(timeout=10)
        return self.inner.iter_timezones()

    def iter_business_hours(self):
        return self.inner.iter_business_hours()

    def iter_polls(self):
        return self.inner.iter_polls()


class BrokenSource:
    def iter_timezones(self):
        raise DatasetParseError("timezones line 7: unknown timezone 'Nowhere'")

    def iter_business_hours(self):
        return iter(())

    def iter_polls(self):
        return iter(())


def test_generate_report_s1_scenario(s1_source):
    report = generate_report(s1_source)

    assert report.store_count == 1
    (store,) = report.stores
    assert store.store_id == "S1"
    assert store.uptime_percentage == 50.00
    assert store.downtime_percentage == 50.00


def test_generate_report_defaults_for_unknown_store(write_datasets):
    # S2 has no hours and no timezone: every poll is in hours
    paths = write_datasets(polls=[
        ["S2", "active", "2023-01-21 03:00:00 UTC"],
        ["S2", "active", "2023-01-22 08:00:00 UTC"],
        ["S2", "inactive", "2023-01-23 23:59:00 UTC"],
        ["S2", "active", "2023-01-25 12:00:00 UTC"],
    ])

    (store,) = generate_report(CsvDatasetSource(paths)).stores

    assert store.uptime_percentage == 75.00
    assert store.downtime_percentage == 25.00


def test_generate_report_is_idempotent(s1_source):
    first = generate_report(s1_source)
    second = generate_report(s1_source)

    assert first.stores == second.stores


def test_job_lifecycle_completes(s1_paths, wait_for_job):
    source = BlockingSource(CsvDatasetSource(s1_paths))
    manager = JobManager(source, max_workers=1)
    manager.initialize()
    try:
        job_id = manager.create_job()

        running = manager.get_job(job_id)
        assert running.status == JobStatus.RUNNING
        assert running.result is None
        assert running.error_message is None
        assert running.completed_at is None

        source.release.set()
        done = wait_for_job(manager, job_id)

        assert done.status == JobStatus.COMPLETE
        assert isinstance(done.result, ReportPayload)
        assert done.result.stores[0].uptime_percentage == 50.00
        assert done.completed_at >= done.started_at
        assert manager.get_job(job_id).status == JobStatus.COMPLETE
    finally:
        manager.shutdown(wait=True)


def test_job_lifecycle_fails_with_message(wait_for_job):
    manager = JobManager(BrokenSource(), max_workers=1, verbose_errors=False)
    manager.initialize()
    try:
        job = wait_for_job(manager, manager.create_job())

        assert job.status == JobStatus.FAILED
        assert job.error_message == "timezones line 7: unknown timezone 'Nowhere'"
        assert job.result is None
        assert job.completed_at is not None
    finally:
        manager.shutdown(wait=True)


def test_verbose_errors_include_traceback(wait_for_job):
    manager = JobManager(BrokenSource(), max_workers=1, verbose_errors=True)
    manager.initialize()
    try:
        job = wait_for_job(manager, manager.create_job())

        assert "Traceback" in job.error_message
        assert "DatasetParseError" in job.error_message
    finally:
        manager.shutdown(wait=True)


def test_missing_dataset_fails_job(tmp_path, wait_for_job):
    paths = DatasetPaths(*(str(tmp_path / name) for name in ("s.csv", "b.csv", "t.csv")))
    manager = JobManager(CsvDatasetSource(paths), max_workers=1, verbose_errors=False)
    manager.initialize()
    try:
        job = wait_for_job(manager, manager.create_job())

        assert job.status == JobStatus.FAILED
        assert "timezones dataset not found" in job.error_message
    finally:
        manager.shutdown(wait=True)


def test_create_job_requires_initialization(s1_source):
    manager = JobManager(s1_source)

    with pytest.raises(InternalError, match="not initialized"):
        manager.create_job()


def test_get_unknown_job(job_manager):
    with pytest.raises(JobNotFoundError, match="Report nope not found"):
        job_manager.get_job("nope")


def test_list_jobs_in_creation_order(job_manager, wait_for_job):
    ids = [job_manager.create_job() for _ in range(3)]
    for job_id in ids:
        wait_for_job(job_manager, job_id)

    jobs = job_manager.list_jobs()

    assert [job.id for job in jobs] == ids
    assert all(job.status == JobStatus.COMPLETE for job in jobs)


def test_concurrent_jobs_produce_identical_stores(job_manager, wait_for_job):
    ids = [job_manager.create_job() for _ in range(4)]
    results = [wait_for_job(job_manager, job_id).result for job_id in ids]

    assert len(set(ids)) == 4
    assert all(result.stores == results[0].stores for result in results)


def test_terminal_state_never_reverts():
    job = Job.start("j1").fail("boom")

    with pytest.raises(InternalError):
        job.complete(ReportPayload(generated_at=job.started_at, store_count=0, stores=[]))
    with pytest.raises(InternalError):
        job.fail("again")
    assert job.status == JobStatus.FAILED


def test_status_response_omits_result():
    payload = ReportPayload(generated_at=Job.start("x").started_at, store_count=0, stores=[])
    job = Job.start("j1").complete(payload)

    assert "data" not in job.to_status_response()
    assert job.to_response()["data"]["store_count"] == 0
    assert job.to_response()["completionTime"] is not None


def test_job_fails_when_pool_stops_before_submit(s1_source):
    manager = JobManager(s1_source, max_workers=1)
    manager.initialize()
    # pool stopped underneath a manager that still holds it
    manager._executor.shutdown(wait=True)
    try:
        with pytest.raises(InternalError, match="shutting down"):
            manager.create_job()

        (job,) = manager.list_jobs()
        assert job.status == JobStatus.FAILED
        assert job.completed_at is not None
        assert "stopped before the job could start" in job.error_message
    finally:
        manager.shutdown(wait=True)
