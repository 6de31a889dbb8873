"""Custom exceptions for the splice engine.

Errors carry a machine-readable ``code`` alongside the human message so the
job store can persist them and a polling caller can branch on them.
"""

from typing import Any


class SpliceError(Exception):
    """Base exception for all splice errors."""

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


# =============================================================================
# Input validation
# =============================================================================


class TimelineValidationError(SpliceError):
    """Malformed project graph or query."""

    code = "INVALID_TIMELINE"
    message = "Invalid timeline data"


# =============================================================================
# Missing dependencies (abort the render job)
# =============================================================================


class MissingDependencyError(SpliceError):
    """Base class for render inputs that are absent."""

    code = "MISSING_DEPENDENCY"


class NoPrimaryContentError(MissingDependencyError):
    """Primary video track has nothing renderable."""

    code = "NO_PRIMARY_CONTENT"
    message = "No clips to render on the primary video track"


class AssetNotFoundError(MissingDependencyError):
    """Referenced asset is unknown or its file is absent."""

    code = "ASSET_NOT_FOUND"
    message = "Asset not found"

    def __init__(self, asset_id: str | None = None, path: str | None = None):
        if asset_id and path:
            message = f"Asset file not found: {asset_id} ({path})"
        elif asset_id:
            message = f"Asset not found: {asset_id}"
        else:
            message = self.message
        self.asset_id = asset_id
        self.path = path
        super().__init__(message)


class ProjectNotFoundError(MissingDependencyError):
    """Project store has no project with this id."""

    code = "PROJECT_NOT_FOUND"
    message = "Project not found"

    def __init__(self, project_id: str | None = None):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}" if project_id else None)


# =============================================================================
# Processing tool
# =============================================================================


class MediaToolError(SpliceError):
    """External media tool invocation failed."""

    code = "MEDIA_TOOL_FAILED"
    message = "Media processing failed"

    def __init__(self, message: str | None = None, *, command: list[str] | None = None, stderr: str = ""):
        self.command = command or []
        self.stderr = stderr
        detail = message or self.__class__.message
        if stderr:
            detail = f"{detail}: {stderr.strip()[-500:]}"
        super().__init__(detail)


# =============================================================================
# Export jobs
# =============================================================================


class ExportJobNotFoundError(SpliceError):
    code = "EXPORT_NOT_FOUND"
    message = "Export job not found"

    def __init__(self, job_id: str | None = None):
        message = f"Export job not found: {job_id}" if job_id else self.message
        super().__init__(message)


class InvalidJobTransitionError(SpliceError):
    code = "INVALID_JOB_TRANSITION"
    message = "Invalid export job transition"

    def __init__(self, job_id: str, current: str, target: str):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Export job {job_id} cannot move from {current} to {target}")
