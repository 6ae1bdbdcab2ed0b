from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, time
from typing import Any, Dict, List
import pytz


class StorePoll(BaseModel):
    model_config = ConfigDict(frozen=True)

    store_id: str
    timestamp_utc: datetime
    is_active: bool


class BusinessInterval(BaseModel):
    model_config = ConfigDict(frozen=True)

    store_id: str
    day_of_week: int = Field(ge=0, le=6)  # 0=Monday, 6=Sunday
    start_local: time
    end_local: time


class TimezoneEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    store_id: str
    timezone: str

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"unknown timezone '{value}'")
        return value


class StoreReport(BaseModel):
    store_id: str
    uptime_percentage: float
    downtime_percentage: float


class ReportPayload(BaseModel):
    generated_at: datetime
    store_count: int
    stores: List[StoreReport]


class ReportResponse(BaseModel):
    report_id: str
    message: str


class ReportListResponse(BaseModel):
    count: int
    reports: List[Dict[str, Any]]


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
