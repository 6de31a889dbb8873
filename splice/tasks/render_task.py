"""Celery task for export rendering.

``build_export_service`` wires an ExportService over the SQL job store with
``dispatch_export`` as its dispatcher, so ``start_export`` queues renders here.
"""

import asyncio
import logging

from pydantic import ValidationError
from sqlalchemy.orm import Session, sessionmaker

from splice.celery_app import celery_app
from splice.config import Settings
from splice.schemas.export import ExportJob
from splice.schemas.timeline import ProjectTimeline
from splice.services.export_service import ExportService
from splice.services.job_store import SqlJobStore
from splice.services.project_store import ProjectStore

logger = logging.getLogger(__name__)


def dispatch_export(job: ExportJob, project: ProjectTimeline) -> None:
    """ExportService dispatcher that queues the render on the worker."""
    payload = project.model_dump(mode="json", by_alias=True)
    render_export_task.delay(job.id, payload)


def build_export_service(
    projects: ProjectStore | None = None,
    settings: Settings | None = None,
    session_factory: sessionmaker[Session] | None = None,
) -> ExportService:
    return ExportService(
        SqlJobStore(session_factory),
        projects=projects,
        dispatcher=dispatch_export,
        settings=settings,
    )


# Retrying a render would replay a terminal job, so failures are final
@celery_app.task(bind=True, max_retries=0)
def render_export_task(self, job_id: str, project_payload: dict) -> dict:
    """
    Execute an export render as a Celery task.

    Args:
        job_id: ExportJob id (QUEUED)
        project_payload: Project graph passed by value

    Returns:
        dict with status and output information
    """
    service = build_export_service()

    try:
        project = ProjectTimeline.model_validate(project_payload)
    except ValidationError as e:
        logger.error(f"[EXPORT] Invalid project payload for job {job_id}: {e}")
        job = service.abort(job_id, f"Invalid project data: {e.error_count()} errors")
        return {"status": job.status.value, "message": job.error_message}

    def on_progress(progress: int, stage: str) -> None:
        self.update_state(state="PROGRESS", meta={"progress": progress, "stage": stage})

    job = asyncio.run(service.run_export(job_id, project, on_progress=on_progress))

    return {
        "status": job.status.value,
        "output_path": job.output_path,
        "message": job.error_message,
    }
