"""Export job persistence.

The store is plain persistence: every state rule lives in ExportService.
Jobs are handed out as copies so a caller never mutates stored state
without going through ``save``.
"""

import threading
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from splice.models.database import get_session_maker, get_sync_db
from splice.models.export_job import ExportJobRecord
from splice.schemas.export import ExportJob, ExportStatus

ACTIVE_STATUSES = [ExportStatus.QUEUED.value, ExportStatus.RUNNING.value]


class JobStore(Protocol):
    def create(self, job: ExportJob) -> ExportJob: ...

    def get(self, job_id: str) -> ExportJob | None: ...

    def find_active(self, project_id: str) -> ExportJob | None: ...

    def save(self, job: ExportJob) -> ExportJob: ...


class InMemoryJobStore:
    """Thread-safe in-memory job store (single process)."""

    def __init__(self) -> None:
        self._jobs: dict[str, ExportJob] = {}
        self._lock = threading.Lock()

    def create(self, job: ExportJob) -> ExportJob:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Export job {job.id} already exists")
            self._jobs[job.id] = job.model_copy()
            return job.model_copy()

    def get(self, job_id: str) -> ExportJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy() if job else None

    def find_active(self, project_id: str) -> ExportJob | None:
        with self._lock:
            active = [j for j in self._jobs.values() if j.project_id == project_id and j.status.is_active]
            if not active:
                return None
            return max(active, key=lambda j: j.created_at).model_copy()

    def save(self, job: ExportJob) -> ExportJob:
        with self._lock:
            self._jobs[job.id] = job.model_copy()
            return job.model_copy()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


def _to_schema(record: ExportJobRecord) -> ExportJob:
    return ExportJob(
        id=record.id,
        project_id=record.project_id,
        status=ExportStatus(record.status),
        progress=record.progress,
        current_stage=record.current_stage,
        output_path=record.output_path,
        error_message=record.error_message,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _apply(record: ExportJobRecord, job: ExportJob) -> None:
    record.status = job.status.value
    record.progress = job.progress
    record.current_stage = job.current_stage
    record.output_path = job.output_path
    record.error_message = job.error_message


class SqlJobStore:
    """Job store over the ``export_jobs`` table (SQLAlchemy sync session)."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory or get_session_maker()

    def create(self, job: ExportJob) -> ExportJob:
        with get_sync_db(self._session_factory) as db:
            record = ExportJobRecord(id=job.id, project_id=job.project_id, created_at=job.created_at)
            _apply(record, job)
            db.add(record)
            db.flush()
            return _to_schema(record)

    def get(self, job_id: str) -> ExportJob | None:
        with get_sync_db(self._session_factory) as db:
            record = db.get(ExportJobRecord, job_id)
            return _to_schema(record) if record else None

    def find_active(self, project_id: str) -> ExportJob | None:
        with get_sync_db(self._session_factory) as db:
            result = db.execute(
                select(ExportJobRecord)
                .where(
                    ExportJobRecord.project_id == project_id,
                    ExportJobRecord.status.in_(ACTIVE_STATUSES),
                )
                .order_by(ExportJobRecord.created_at.desc())
                .limit(1)
            )
            record = result.scalar_one_or_none()
            return _to_schema(record) if record else None

    def save(self, job: ExportJob) -> ExportJob:
        with get_sync_db(self._session_factory) as db:
            record = db.get(ExportJobRecord, job.id)
            if record is None:
                record = ExportJobRecord(id=job.id, project_id=job.project_id, created_at=job.created_at)
                db.add(record)
            _apply(record, job)
            db.flush()
            return _to_schema(record)
