# projects/storage/supabase.py
"""
Managed backend: Supabase (PostgREST) with row-level security.

Authorization is not evaluated here. Each call builds a client carrying the
caller's JWT and the policies in ``projects/sql/supabase_schema.sql`` scope
every statement to the rows ``ProjectPolicy`` would allow. Rows the caller
cannot see simply do not come back, which this adapter reports as
NotFoundError.
"""
from contextlib import contextmanager
import json
import logging
from typing import Callable, List, Optional

import httpx
from django.core.serializers.json import DjangoJSONEncoder
from postgrest.exceptions import APIError

from core.exceptions import (
    AuthorizationError,
    BackendUnavailableError,
    DuplicateEntityError,
    NotFoundError,
    TransactionError,
    ValidationError,
)
from core.supabase_client import create_supabase_client

from ..entities import ActivityEntry, CustomField, Principal, Project, Task
from .base import ProjectStorage

logger = logging.getLogger("tracker.storage")


PROJECT_SELECT = "*, tasks(*), custom_fields(*)"

# Postgres / PostgREST error codes
UNIQUE_VIOLATION = "23505"
CHECK_VIOLATION = "23514"
INSUFFICIENT_PRIVILEGE = "42501"
NO_ROWS = "PGRST116"


@contextmanager
def postgrest_errors(entity=None, operation=None, entity_id=None):
    """Map PostgREST and transport failures to the tracker taxonomy."""
    try:
        yield
    except APIError as exc:
        context = {"entity": entity, "entity_id": entity_id, "operation": operation}
        if exc.code == UNIQUE_VIOLATION:
            raise DuplicateEntityError(**context) from exc
        if exc.code == CHECK_VIOLATION:
            raise ValidationError(exc.message, **context) from exc
        if exc.code == INSUFFICIENT_PRIVILEGE:
            # Row-level security rejected the row as it would be written
            raise AuthorizationError(**context) from exc
        if exc.code == NO_ROWS:
            raise NotFoundError(**context) from exc
        logger.warning(f"Supabase rejected {operation} on {entity}: {exc.code} {exc.message}")
        raise TransactionError(**context) from exc
    except httpx.TransportError as exc:
        logger.error(f"Supabase unreachable during {operation}: {exc}")
        raise BackendUnavailableError(entity=entity, operation=operation) from exc


def _jsonable(data: dict) -> dict:
    return json.loads(json.dumps(data, cls=DjangoJSONEncoder))


def _project_from_row(row: dict) -> Project:
    project = Project.from_dict(row)
    project.tasks.sort(key=lambda task: task.created_at.isoformat() if task.created_at else "")
    project.custom_fields.sort(key=lambda field: field.created_at.isoformat() if field.created_at else "")
    return project


class SupabaseStorage(ProjectStorage):
    name = "supabase"
    atomic_imports = True

    def __init__(self, client_factory: Optional[Callable] = None, activity_limit: Optional[int] = None):
        self.client_factory = client_factory or create_supabase_client
        self.activity_limit = activity_limit

    def _client(self, principal: Principal):
        return self.client_factory(principal.access_token)

    def _table(self, principal: Principal, table: str):
        return self._client(principal).table(table)

    # ─────────────────────────────────────────────────────────────
    # Projects
    # ─────────────────────────────────────────────────────────────

    def list_projects(self, principal: Principal) -> List[Project]:
        with postgrest_errors(entity="project", operation="list"):
            response = (
                self._table(principal, "projects")
                .select(PROJECT_SELECT)
                .order("last_modified", desc=True)
                .execute()
            )
        return [_project_from_row(row) for row in response.data or []]

    def get_project(self, principal: Principal, project_id: str) -> Project:
        with postgrest_errors(entity="project", operation="get", entity_id=project_id):
            response = (
                self._table(principal, "projects")
                .select(PROJECT_SELECT)
                .eq("id", project_id)
                .execute()
            )
        if not response.data:
            raise NotFoundError(entity="project", entity_id=project_id)
        return _project_from_row(response.data[0])

    def create_project(self, principal: Principal, project: Project) -> Project:
        row = project.to_dict()
        row.pop("tasks")
        row.pop("custom_fields")
        with postgrest_errors(entity="project", operation="create"):
            self._table(principal, "projects").insert(row).execute()
        return self.get_project(principal, project.id)

    def update_project(self, principal: Principal, project_id: str, changes: dict) -> Project:
        with postgrest_errors(entity="project", operation="update", entity_id=project_id):
            response = (
                self._table(principal, "projects")
                .update(_jsonable(changes))
                .eq("id", project_id)
                .execute()
            )
        if not response.data:
            raise NotFoundError(entity="project", entity_id=project_id, operation="update")
        return self.get_project(principal, project_id)

    def delete_project(self, principal: Principal, project_id: str, activity: Optional[ActivityEntry] = None):
        if activity is not None:
            # Written first: once the project is gone the insert policy no longer passes
            try:
                self.append_activity(principal, activity)
            except (AuthorizationError, NotFoundError, TransactionError, ValidationError) as exc:
                logger.warning(f"Could not record activity {activity.action} on {project_id}: {exc.message}")
        with postgrest_errors(entity="project", operation="delete", entity_id=project_id):
            response = (
                self._table(principal, "projects")
                .delete()
                .eq("id", project_id)
                .execute()
            )
        if not response.data:
            raise NotFoundError(entity="project", entity_id=project_id, operation="delete")

    # ─────────────────────────────────────────────────────────────
    # Tasks
    # ─────────────────────────────────────────────────────────────

    def list_tasks(self, principal: Principal, project_id: str) -> List[Task]:
        return self.get_project(principal, project_id).tasks

    def get_task(self, principal: Principal, project_id: str, task_id: str) -> Task:
        with postgrest_errors(entity="task", operation="get", entity_id=task_id):
            response = (
                self._table(principal, "tasks")
                .select("*")
                .eq("id", task_id)
                .eq("project_id", project_id)
                .execute()
            )
        if not response.data:
            raise NotFoundError(entity="task", entity_id=task_id)
        return Task.from_dict(response.data[0])

    def create_task(self, principal: Principal, task: Task) -> Task:
        return self.create_tasks(principal, task.project_id, [task])[0]

    def create_tasks(self, principal: Principal, project_id: str, tasks: List[Task]) -> List[Task]:
        # One statement: PostgREST inserts the whole batch or nothing. The
        # touch_project_on_task_write trigger bumps projects.last_modified in it.
        rows = [task.to_dict() for task in tasks]
        with postgrest_errors(entity="task", operation="create"):
            response = self._table(principal, "tasks").insert(rows).execute()
        return [Task.from_dict(row) for row in response.data or []]

    def update_task(self, principal: Principal, project_id: str, task_id: str, changes: dict) -> Task:
        with postgrest_errors(entity="task", operation="update", entity_id=task_id):
            response = (
                self._table(principal, "tasks")
                .update(_jsonable(changes))
                .eq("id", task_id)
                .eq("project_id", project_id)
                .execute()
            )
        if not response.data:
            raise NotFoundError(entity="task", entity_id=task_id, operation="update")
        return Task.from_dict(response.data[0])

    def delete_task(self, principal: Principal, project_id: str, task_id: str):
        # activity_log.task_id is cleared by its ON DELETE SET NULL foreign key
        with postgrest_errors(entity="task", operation="delete", entity_id=task_id):
            response = (
                self._table(principal, "tasks")
                .delete()
                .eq("id", task_id)
                .eq("project_id", project_id)
                .execute()
            )
        if not response.data:
            raise NotFoundError(entity="task", entity_id=task_id, operation="delete")

    # ─────────────────────────────────────────────────────────────
    # Custom fields
    # ─────────────────────────────────────────────────────────────

    def list_custom_fields(self, principal: Principal, project_id: str) -> List[CustomField]:
        return self.get_project(principal, project_id).custom_fields

    def create_custom_field(self, principal: Principal, custom_field: CustomField) -> CustomField:
        with postgrest_errors(entity="custom_field", operation="create"):
            response = self._table(principal, "custom_fields").insert(custom_field.to_dict()).execute()
        return CustomField.from_dict(response.data[0])

    def update_custom_field(self, principal: Principal, project_id: str, field_id: str, changes: dict) -> CustomField:
        with postgrest_errors(entity="custom_field", operation="update", entity_id=field_id):
            response = (
                self._table(principal, "custom_fields")
                .update(_jsonable(changes))
                .eq("id", field_id)
                .eq("project_id", project_id)
                .execute()
            )
        if not response.data:
            raise NotFoundError(entity="custom_field", entity_id=field_id, operation="update")
        return CustomField.from_dict(response.data[0])

    def delete_custom_field(self, principal: Principal, project_id: str, field_id: str):
        with postgrest_errors(entity="custom_field", operation="delete", entity_id=field_id):
            response = (
                self._table(principal, "custom_fields")
                .delete()
                .eq("id", field_id)
                .eq("project_id", project_id)
                .execute()
            )
        if not response.data:
            raise NotFoundError(entity="custom_field", entity_id=field_id, operation="delete")

    # ─────────────────────────────────────────────────────────────
    # Activity
    # ─────────────────────────────────────────────────────────────

    def append_activity(self, principal: Principal, entry: ActivityEntry) -> ActivityEntry:
        with postgrest_errors(entity="activity", operation="log_activity"):
            response = self._table(principal, "activity_log").insert(entry.to_dict()).execute()
        return ActivityEntry.from_dict(response.data[0]) if response.data else entry

    def list_activity(self, principal: Principal, project_id: str, limit: Optional[int] = None) -> List[ActivityEntry]:
        # Distinguish "no entries" from "no access"
        self.get_project(principal, project_id)
        limit = limit or self.activity_limit
        query = (
            self._table(principal, "activity_log")
            .select("*")
            .eq("project_id", project_id)
            .order("created_at", desc=True)
        )
        if limit:
            query = query.limit(limit)
        with postgrest_errors(entity="activity", operation="list"):
            response = query.execute()
        return [ActivityEntry.from_dict(row) for row in response.data or []]
