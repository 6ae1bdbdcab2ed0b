from fastapi import APIRouter, Depends, Request, status
from datetime import datetime, timezone

from store_monitor.models.schemas import HealthResponse, ReportListResponse, ReportResponse
from store_monitor.services.report_service import JobManager

router = APIRouter()


def get_job_manager(request: Request) -> JobManager:
    return request.app.state.job_manager


def health_status() -> HealthResponse:
    return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc))


@router.get("/health", response_model=HealthResponse)
async def health_check():
    return health_status()


@router.post("/reports", response_model=ReportResponse, status_code=status.HTTP_202_ACCEPTED)
async def trigger_report(job_manager: JobManager = Depends(get_job_manager)):
    """Start report generation; poll /reports/{report_id} for the result"""
    report_id = job_manager.create_job()
    return ReportResponse(report_id=report_id, message="Report generation started")


@router.get("/reports/{report_id}")
async def get_report(report_id: str, job_manager: JobManager = Depends(get_job_manager)):
    """Report status, plus the data once complete or the error once failed"""
    return job_manager.get_job(report_id).to_response()


@router.get("/reports", response_model=ReportListResponse)
async def list_reports(job_manager: JobManager = Depends(get_job_manager)):
    reports = [job.to_status_response() for job in job_manager.list_jobs()]
    return ReportListResponse(count=len(reports), reports=reports)
