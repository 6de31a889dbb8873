"""Export job state machine.

QUEUED -> RUNNING -> COMPLETE | FAILED. Creation is idempotent per project
while a job is in flight; terminal jobs never move again and a new request
after a terminal state creates a fresh job.
"""

import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol
from uuid import uuid4

from splice.config import Settings, get_settings
from splice.exceptions import (
    ExportJobNotFoundError,
    InvalidJobTransitionError,
    ProjectNotFoundError,
    SpliceError,
)
from splice.render.pipeline import ProgressCallback, RenderPipeline
from splice.schemas.export import ExportJob, ExportStatus
from splice.schemas.timeline import ProjectTimeline
from splice.services.job_store import JobStore
from splice.services.project_store import ProjectStore

logger = logging.getLogger(__name__)


class Renderer(Protocol):
    async def render(
        self,
        project: ProjectTimeline,
        output_path: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> str: ...


Dispatcher = Callable[[ExportJob, ProjectTimeline], None]
PipelineFactory = Callable[[str], Renderer]


class ExportService:
    def __init__(
        self,
        store: JobStore,
        projects: ProjectStore | None = None,
        dispatcher: Dispatcher | None = None,
        settings: Settings | None = None,
    ):
        self.store = store
        self.projects = projects
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()
        # Serialises find-then-create so concurrent requests share one job
        self._create_lock = threading.Lock()
        self._render_slots = asyncio.Semaphore(max(1, self.settings.render_max_concurrency))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_export_status(self, job_id: str) -> ExportJob:
        job = self.store.get(job_id)
        if job is None:
            raise ExportJobNotFoundError(job_id)
        return job

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _get_or_create(self, project_id: str) -> tuple[ExportJob, bool]:
        with self._create_lock:
            existing = self.store.find_active(project_id)
            if existing is not None:
                logger.info(f"[EXPORT] Reusing in-flight job {existing.id} for project {project_id}")
                return existing, False

            job = self.store.create(ExportJob(id=uuid4().hex, project_id=project_id))
            logger.info(f"[EXPORT] Created job {job.id} for project {project_id}")
            return job, True

    def create_export_job(self, project_id: str) -> ExportJob:
        """Return the project's QUEUED/RUNNING job, or create a new QUEUED one."""
        job, _ = self._get_or_create(project_id)
        return job

    def start_export(self, project_id: str) -> ExportJob:
        """Create (or reuse) a job and hand newly created jobs to the dispatcher.

        Raises:
            ProjectNotFoundError: If the project store does not know the project
        """
        if self.projects is None:
            raise RuntimeError("ExportService has no project store")

        project = self.projects.get_project_with_timeline(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)

        job, created = self._get_or_create(project_id)
        if created and self.dispatcher is not None:
            self.dispatcher(job, project)
        return job

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(self, job_id: str, allowed: tuple[ExportStatus, ...], target: ExportStatus) -> ExportJob:
        job = self.get_export_status(job_id)
        if job.status not in allowed:
            raise InvalidJobTransitionError(job_id, job.status.value, target.value)
        return job

    @staticmethod
    def _touch(job: ExportJob) -> None:
        job.updated_at = datetime.now(timezone.utc)

    def start(self, job_id: str) -> ExportJob:
        job = self._transition(job_id, (ExportStatus.QUEUED,), ExportStatus.RUNNING)
        job.status = ExportStatus.RUNNING
        job.progress = 0.0
        job.current_stage = "Starting"
        self._touch(job)
        return self.store.save(job)

    def update_progress(self, job_id: str, progress: float, stage: str | None = None) -> ExportJob:
        """Record a progress checkpoint. Lower values than the stored one are ignored."""
        job = self._transition(job_id, (ExportStatus.RUNNING,), ExportStatus.RUNNING)
        progress = min(100.0, max(0.0, float(progress)))
        if progress < job.progress:
            return job

        job.progress = progress
        if stage is not None:
            job.current_stage = stage
        self._touch(job)
        return self.store.save(job)

    def complete(self, job_id: str, output_path: str) -> ExportJob:
        job = self._transition(job_id, (ExportStatus.RUNNING,), ExportStatus.COMPLETE)
        job.status = ExportStatus.COMPLETE
        job.progress = 100.0
        job.current_stage = "Complete"
        job.output_path = output_path
        job.error_message = None
        self._touch(job)
        logger.info(f"[EXPORT] Job {job_id} complete: {output_path}")
        return self.store.save(job)

    def fail(self, job_id: str, message: str) -> ExportJob:
        job = self._transition(job_id, (ExportStatus.RUNNING,), ExportStatus.FAILED)
        job.status = ExportStatus.FAILED
        job.error_message = message
        self._touch(job)
        logger.error(f"[EXPORT] Job {job_id} failed at {job.progress:.0f}%: {message}")
        return self.store.save(job)

    def abort(self, job_id: str, message: str) -> ExportJob:
        """Fail a QUEUED job that never reaches the renderer.

        The job is started first so FAILED is only ever entered from RUNNING.
        """
        self.start(job_id)
        return self.fail(job_id, message)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _default_pipeline(self, job_id: str) -> Renderer:
        return RenderPipeline(job_id=job_id, settings=self.settings)

    async def run_export(
        self,
        job_id: str,
        project: ProjectTimeline,
        pipeline_factory: PipelineFactory | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ExportJob:
        """Run the render for a QUEUED job and record the outcome.

        Render errors are recorded on the job (FAILED) rather than raised;
        the returned job carries the final state.
        """
        async with self._render_slots:
            self.start(job_id)
            pipeline = (pipeline_factory or self._default_pipeline)(job_id)

            def progress_callback(progress: int, stage: str) -> None:
                self.update_progress(job_id, progress, stage)
                if on_progress:
                    on_progress(progress, stage)

            try:
                output_path = await pipeline.render(project, progress_callback=progress_callback)
            except SpliceError as e:
                return self.fail(job_id, e.message)
            except Exception as e:
                logger.exception(f"[EXPORT] Unexpected render error for job {job_id}")
                return self.fail(job_id, str(e) or e.__class__.__name__)

            return self.complete(job_id, output_path)
