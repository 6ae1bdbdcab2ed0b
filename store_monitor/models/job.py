from pydantic import BaseModel, ConfigDict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from store_monitor.errors import InternalError
from store_monitor.models.schemas import ReportPayload


class JobStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Job(BaseModel):
    """Immutable snapshot of one report job.

    Transitions return a new snapshot; the job manager swaps it into its table
    under a lock so readers only ever see whole records.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    status: JobStatus = JobStatus.RUNNING
    started_at: datetime
    completed_at: Optional[datetime] = None
    result: Optional[ReportPayload] = None
    error_message: Optional[str] = None

    @classmethod
    def start(cls, job_id: str) -> "Job":
        return cls(id=job_id, started_at=_utcnow())

    @property
    def is_finished(self) -> bool:
        return self.status != JobStatus.RUNNING

    def complete(self, result: ReportPayload) -> "Job":
        self._ensure_running()
        return self.model_copy(update={
            "status": JobStatus.COMPLETE,
            "completed_at": _utcnow(),
            "result": result,
        })

    def fail(self, error_message: str) -> "Job":
        self._ensure_running()
        return self.model_copy(update={
            "status": JobStatus.FAILED,
            "completed_at": _utcnow(),
            "error_message": error_message or "Report generation failed",
        })

    def _ensure_running(self) -> None:
        if self.is_finished:
            raise InternalError(f"Report {self.id} already finished with status {self.status.value}")

    def to_status_response(self) -> dict:
        """Status metadata only, used by the listing endpoint"""
        response = {
            "report_id": self.id,
            "status": self.status.value,
            "startTime": self.started_at.isoformat(),
            "completionTime": self.completed_at.isoformat() if self.completed_at else None,
        }
        if self.status == JobStatus.FAILED and self.error_message:
            response["error"] = self.error_message
        return response

    def to_response(self) -> dict:
        response = self.to_status_response()
        if self.status == JobStatus.COMPLETE and self.result is not None:
            response["data"] = self.result.model_dump(mode="json")
        return response
