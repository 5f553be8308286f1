# projects/storage/base.py
"""
Capability interface implemented by every storage backend.

Exactly one implementation is built at process start (see ``build_storage``)
and handed to the services; nothing branches on the backend per call.
Every method takes the acting ``Principal`` and returns entities from
``projects.entities`` or raises a ``core.exceptions.TrackerError``.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from ..entities import ActivityEntry, CustomField, Principal, Project, Task


class ProjectStorage(ABC):
    #: backend name reported by the health check
    name = "abstract"

    #: whether ``create_tasks`` is all-or-nothing. Services fall back to
    #: best-effort, one task at a time, when it is not.
    atomic_imports = False

    # Projects

    @abstractmethod
    def list_projects(self, principal: Principal) -> List[Project]:
        """Projects the principal can access, with tasks and custom fields embedded."""

    @abstractmethod
    def get_project(self, principal: Principal, project_id: str) -> Project:
        """Raises NotFoundError when missing or not accessible."""

    def load_for_write(self, principal: Principal, project_id: str) -> Project:
        """
        Project about to be written under. Backends that can tell "missing"
        from "denied" raise AuthorizationError for the latter; the default
        collapses both to NotFoundError like a read does.
        """
        return self.get_project(principal, project_id)

    @abstractmethod
    def create_project(self, principal: Principal, project: Project) -> Project:
        pass

    @abstractmethod
    def update_project(self, principal: Principal, project_id: str, changes: dict) -> Project:
        pass

    @abstractmethod
    def delete_project(self, principal: Principal, project_id: str, activity: Optional[ActivityEntry] = None):
        """
        Delete the project with its tasks and custom fields. ``activity`` is
        recorded as part of the delete so the audit entry outlives the rows;
        failing to record it never blocks the delete.
        """

    # Tasks

    @abstractmethod
    def list_tasks(self, principal: Principal, project_id: str) -> List[Task]:
        pass

    @abstractmethod
    def get_task(self, principal: Principal, project_id: str, task_id: str) -> Task:
        pass

    @abstractmethod
    def create_task(self, principal: Principal, task: Task) -> Task:
        pass

    @abstractmethod
    def create_tasks(self, principal: Principal, project_id: str, tasks: List[Task]) -> List[Task]:
        """Insert a batch of already validated tasks."""

    @abstractmethod
    def update_task(self, principal: Principal, project_id: str, task_id: str, changes: dict) -> Task:
        pass

    @abstractmethod
    def delete_task(self, principal: Principal, project_id: str, task_id: str):
        """Delete the task; activity entries that referenced it keep their project and lose the task id."""

    # Custom fields

    @abstractmethod
    def list_custom_fields(self, principal: Principal, project_id: str) -> List[CustomField]:
        pass

    @abstractmethod
    def create_custom_field(self, principal: Principal, custom_field: CustomField) -> CustomField:
        pass

    @abstractmethod
    def update_custom_field(self, principal: Principal, project_id: str, field_id: str, changes: dict) -> CustomField:
        pass

    @abstractmethod
    def delete_custom_field(self, principal: Principal, project_id: str, field_id: str):
        pass

    # Activity log (append-only: no update or delete)

    @abstractmethod
    def append_activity(self, principal: Principal, entry: ActivityEntry) -> ActivityEntry:
        pass

    @abstractmethod
    def list_activity(self, principal: Principal, project_id: str, limit: Optional[int] = None) -> List[ActivityEntry]:
        """Newest first."""

    # Principals

    def remove_principal(self, principal_id: str):
        """
        Clear every reference to a deleted principal (owner, membership,
        assignee, activity actor). Rows are never deleted. Backends whose
        database does this through foreign keys and triggers leave it to
        the database.
        """
        return None
