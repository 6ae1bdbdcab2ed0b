import threading
import traceback
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional
import logging

from store_monitor import config
from store_monitor.errors import InternalError, JobNotFoundError, ReportError
from store_monitor.models.job import Job
from store_monitor.models.schemas import ReportPayload
from store_monitor.services.data_processor import BusinessHoursIndex, TimezoneResolver, aggregate_uptime
from store_monitor.services.dataset_loader import DatasetSource
from store_monitor.services.report_formatter import format_report

logger = logging.getLogger(__name__)


def generate_report(source: DatasetSource, default_timezone: str = config.DEFAULT_TIMEZONE) -> ReportPayload:
    """Run the whole pipeline against the datasets exposed by ``source``"""
    timezones = TimezoneResolver.from_entries(source.iter_timezones(), default=default_timezone)
    logger.info(f"Loaded timezone data for {len(timezones)} stores")

    hours_index = BusinessHoursIndex.from_intervals(source.iter_business_hours())
    logger.info(f"Loaded business hours for {len(hours_index)} stores")

    aggregates = aggregate_uptime(source.iter_polls(), timezones, hours_index)
    return format_report(aggregates)


class JobManager:
    """Owns the report jobs and runs their pipelines on a worker pool.

    The job table is the only state shared between request handlers and
    workers; every read and every terminal write holds ``_lock``.
    """

    def __init__(
        self,
        source: DatasetSource,
        max_workers: int = config.REPORT_MAX_WORKERS,
        verbose_errors: bool = config.DEVELOPMENT,
        default_timezone: str = config.DEFAULT_TIMEZONE,
    ):
        self.source = source
        self.max_workers = max_workers
        self.verbose_errors = verbose_errors
        self.default_timezone = default_timezone
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None

    def initialize(self) -> None:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="report-worker")
            logger.info(f"Report service initialized with {self.max_workers} workers")

    def shutdown(self, wait: bool = False) -> None:
        executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
            logger.info("Report service stopped")

    def create_job(self) -> str:
        """Register a new RUNNING job and start its pipeline in the background"""
        executor = self._executor
        if executor is None:
            raise InternalError("Report service not initialized")

        job_id = str(uuid.uuid4())
        with self._lock:
            self._jobs[job_id] = Job.start(job_id)

        try:
            executor.submit(self._run_job, job_id)
        except RuntimeError as e:
            # pool shut down after the check above
            self._finish(job_id, error_message=f"Report service stopped before the job could start: {e}")
            raise InternalError("Report service is shutting down") from e
        logger.info(f"Report {job_id} queued")
        return job_id

    def get_job(self, job_id: str) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Report {job_id} not found")
        return job

    def list_jobs(self) -> List[Job]:
        with self._lock:
            jobs = list(self._jobs.values())
        return sorted(jobs, key=lambda job: job.started_at)

    def _run_job(self, job_id: str) -> None:
        try:
            logger.info(f"Starting report generation for {job_id}")
            result = generate_report(self.source, default_timezone=self.default_timezone)
        except Exception as e:
            logger.exception(f"Report generation failed for {job_id}")
            self._finish(job_id, error_message=self._error_message(e))
        else:
            self._finish(job_id, result=result)
            logger.info(f"Report {job_id} completed successfully ({result.store_count} stores)")

    def _finish(self, job_id: str, result: Optional[ReportPayload] = None, error_message: Optional[str] = None) -> None:
        with self._lock:
            job = self._jobs[job_id]
            if result is not None:
                self._jobs[job_id] = job.complete(result)
            else:
                self._jobs[job_id] = job.fail(error_message)

    def _error_message(self, error: Exception) -> str:
        if self.verbose_errors:
            return "".join(traceback.format_exception(type(error), error, error.__traceback__))
        if isinstance(error, ReportError):
            return error.message
        return str(error) or type(error).__name__
