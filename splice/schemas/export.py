from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class ExportStatus(str, Enum):
    """Export job status."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"

    @property
    def is_active(self) -> bool:
        return self in (ExportStatus.QUEUED, ExportStatus.RUNNING)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExportJob(BaseModel):
    id: str
    project_id: str
    status: ExportStatus = ExportStatus.QUEUED
    progress: float = Field(default=0.0, ge=0, le=100)
    current_stage: str | None = None
    output_path: str | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
