"""Project store collaborator.

The editor's persistence layer owns projects; the engine only needs the
resolved graph for one project at a time.
"""

import threading
from typing import Protocol

from splice.schemas.timeline import ProjectTimeline


class ProjectStore(Protocol):
    def get_project_with_timeline(self, project_id: str) -> ProjectTimeline | None: ...


class InMemoryProjectStore:
    """Dict-backed project store for workers without a database and for tests."""

    def __init__(self, projects: list[ProjectTimeline] | None = None) -> None:
        self._projects: dict[str, ProjectTimeline] = {}
        self._lock = threading.Lock()
        for project in projects or []:
            self.put(project)

    def put(self, project: ProjectTimeline) -> None:
        with self._lock:
            self._projects[project.project_id] = project

    def get_project_with_timeline(self, project_id: str) -> ProjectTimeline | None:
        with self._lock:
            project = self._projects.get(project_id)
            return project.model_copy(deep=True) if project else None
