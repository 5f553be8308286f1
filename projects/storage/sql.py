# projects/storage/sql.py
"""
Raw-SQL backend over a Django database connection (SQL Server through
mssql-django in production, any Django backend in development and tests).

The database does no authorization here, so every statement is preceded by
a ``ProjectPolicy`` check in this module. Statements are parameterized,
multi-statement writes run in one transaction and driver errors come out
as the tracker error taxonomy (see ``core.db``).
"""
import json
import logging
from typing import List, Optional

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db import DatabaseError, connections, transaction
from django.utils import timezone

from core.db import atomic_write, database_errors, dictfetchall
from core.exceptions import AuthorizationError, NotFoundError, ValidationError

from ..entities import (
    ACTIVITY_COLUMNS,
    CUSTOM_FIELD_COLUMNS,
    PROJECT_COLUMNS,
    TASK_COLUMNS,
    ActivityEntry,
    CustomField,
    Principal,
    Project,
    Task,
)
from ..policies import ProjectPolicy
from .base import ProjectStorage

logger = logging.getLogger("tracker.storage")


JSON_COLUMNS = {"team_members", "dependencies", "custom_fields", "options", "changes"}
PRINCIPAL_COLUMNS = {"created_by", "assignee", "user_id"}
DATETIME_COLUMNS = {"created_date", "last_modified", "created_at", "updated_at"}
DATE_COLUMNS = {"start_date", "end_date"}


def _placeholders(values) -> str:
    return ", ".join(["%s"] * len(values))


class SqlStorage(ProjectStorage):
    name = "sql"
    atomic_imports = True

    def __init__(self, using: str = "default", activity_limit: Optional[int] = None):
        self.using = using
        self.activity_limit = activity_limit

    @property
    def connection(self):
        return connections[self.using]

    # ─────────────────────────────────────────────────────────────
    # Value conversion
    # ─────────────────────────────────────────────────────────────

    def _principal_pk(self, value):
        if value is None:
            return None
        try:
            return get_user_model()._meta.pk.to_python(value)
        except DjangoValidationError:
            raise ValidationError(f"Unknown principal: {value!r}", details={"principal": str(value)})

    def _to_db(self, column, value):
        ops = self.connection.ops
        if column in JSON_COLUMNS:
            return None if value is None else json.dumps(value, cls=DjangoJSONEncoder)
        if column in PRINCIPAL_COLUMNS:
            return self._principal_pk(value)
        if column in DATETIME_COLUMNS:
            return ops.adapt_datetimefield_value(value)
        if column in DATE_COLUMNS:
            return ops.adapt_datefield_value(value)
        return value

    @staticmethod
    def _from_db(row: dict) -> dict:
        data = dict(row)
        for column in JSON_COLUMNS.intersection(data):
            if isinstance(data[column], (str, bytes)):
                data[column] = json.loads(data[column])
        return data

    def _insert(self, cursor, table, columns, entity_dict):
        cursor.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({_placeholders(columns)})",
            [self._to_db(column, entity_dict[column]) for column in columns],
        )

    def _update(self, cursor, table, row_id, changes: dict):
        if not changes:
            return
        assignments = ", ".join(f"{column} = %s" for column in changes)
        cursor.execute(
            f"UPDATE {table} SET {assignments} WHERE id = %s",
            [self._to_db(column, value) for column, value in changes.items()] + [row_id],
        )

    def _check_principal_exists(self, cursor, principal_id):
        if principal_id is None:
            return
        pk = self._principal_pk(principal_id)
        table = get_user_model()._meta.db_table
        cursor.execute(f"SELECT 1 FROM {table} WHERE {get_user_model()._meta.pk.column} = %s", [pk])
        if cursor.fetchone() is None:
            raise ValidationError(
                f"Unknown assignee: {principal_id}",
                entity="task",
                details={"assignee": str(principal_id)},
            )

    # ─────────────────────────────────────────────────────────────
    # Loading and the gate
    # ─────────────────────────────────────────────────────────────

    def _fetch_project(self, cursor, project_id) -> Optional[Project]:
        cursor.execute(
            f"SELECT {', '.join(PROJECT_COLUMNS)} FROM projects WHERE id = %s",
            [project_id],
        )
        rows = dictfetchall(cursor)
        if not rows:
            return None
        project = Project.from_dict(self._from_db(rows[0]))
        self._attach_children(cursor, [project])
        return project

    def _attach_children(self, cursor, projects: List[Project]):
        if not projects:
            return
        by_id = {project.id: project for project in projects}
        ids = list(by_id)

        cursor.execute(
            f"SELECT {', '.join(TASK_COLUMNS)} FROM tasks "
            f"WHERE project_id IN ({_placeholders(ids)}) ORDER BY created_at ASC",
            ids,
        )
        for row in dictfetchall(cursor):
            task = Task.from_dict(self._from_db(row))
            by_id[task.project_id].tasks.append(task)

        cursor.execute(
            f"SELECT {', '.join(CUSTOM_FIELD_COLUMNS)} FROM custom_fields "
            f"WHERE project_id IN ({_placeholders(ids)}) ORDER BY created_at ASC",
            ids,
        )
        for row in dictfetchall(cursor):
            custom_field = CustomField.from_dict(self._from_db(row))
            by_id[custom_field.project_id].custom_fields.append(custom_field)

    def _member_column(self):
        # jsonb has no LIKE; other backends store the list as text
        return "team_members::text" if self.connection.vendor == "postgresql" else "team_members"

    def _membership_filter(self, principal_id):
        """
        WHERE clause narrowing projects to those the principal may own or be a
        member of. A coarse pre-filter: ``ProjectPolicy`` still decides.
        """
        member_column = self._member_column()
        pattern = f"%{json.dumps(str(principal_id))}%"
        try:
            owner_pk = self._principal_pk(principal_id)
        except ValidationError:
            return f"{member_column} LIKE %s", [pattern]
        return f"(created_by = %s OR {member_column} LIKE %s)", [owner_pk, pattern]

    def _read_gate(self, cursor, principal: Principal, project_id) -> Project:
        project = self._fetch_project(cursor, project_id)
        if project is None or not ProjectPolicy.can_access_project(principal.id, project):
            raise NotFoundError(entity="project", entity_id=project_id)
        return project

    def _write_gate(self, cursor, principal: Principal, project_id, operation) -> Project:
        """The row exists but the principal may not touch it -> AuthorizationError."""
        project = self._fetch_project(cursor, project_id)
        if project is None:
            raise NotFoundError(entity="project", entity_id=project_id, operation=operation)
        if not ProjectPolicy.can_access_project(principal.id, project):
            logger.warning(f"Denied {operation} on project {project_id} for principal {principal.id}")
            raise AuthorizationError(entity="project", entity_id=project_id, operation=operation)
        return project

    # ─────────────────────────────────────────────────────────────
    # Projects
    # ─────────────────────────────────────────────────────────────

    def list_projects(self, principal: Principal) -> List[Project]:
        with database_errors(entity="project", operation="list"):
            with self.connection.cursor() as cursor:
                where, params = self._membership_filter(principal.id)
                cursor.execute(
                    f"SELECT {', '.join(PROJECT_COLUMNS)} FROM projects WHERE {where} ORDER BY last_modified DESC",
                    params,
                )
                projects = [
                    project
                    for project in (Project.from_dict(self._from_db(row)) for row in dictfetchall(cursor))
                    if ProjectPolicy.can_access_project(principal.id, project)
                ]
                self._attach_children(cursor, projects)
        return projects

    def get_project(self, principal: Principal, project_id: str) -> Project:
        with database_errors(entity="project", operation="get"):
            with self.connection.cursor() as cursor:
                return self._read_gate(cursor, principal, project_id)

    def load_for_write(self, principal: Principal, project_id: str) -> Project:
        with database_errors(entity="project", operation="write"):
            with self.connection.cursor() as cursor:
                return self._write_gate(cursor, principal, project_id, "write")

    def create_project(self, principal: Principal, project: Project) -> Project:
        allowed, reason = ProjectPolicy.can_create_project(principal.id, project)
        if not allowed:
            raise AuthorizationError(reason, entity="project", operation="create")
        with atomic_write(self.using, entity="project", operation="create"):
            with self.connection.cursor() as cursor:
                self._insert(cursor, "projects", PROJECT_COLUMNS, project.to_dict() | {
                    "created_date": project.created_date,
                    "last_modified": project.last_modified,
                })
                return self._fetch_project(cursor, project.id)

    def update_project(self, principal: Principal, project_id: str, changes: dict) -> Project:
        with atomic_write(self.using, entity="project", operation="update"):
            with self.connection.cursor() as cursor:
                before = self._write_gate(cursor, principal, project_id, "update")
                after = Project.from_dict(before.to_dict() | {
                    key: value for key, value in changes.items() if key not in DATETIME_COLUMNS
                })
                allowed, reason = ProjectPolicy.can_update_project(principal.id, before, after)
                if not allowed:
                    raise AuthorizationError(reason, entity="project", entity_id=project_id, operation="update")
                self._update(cursor, "projects", project_id, changes)
                return self._fetch_project(cursor, project_id)

    def delete_project(self, principal: Principal, project_id: str, activity: Optional[ActivityEntry] = None):
        with atomic_write(self.using, entity="project", operation="delete"):
            with self.connection.cursor() as cursor:
                project = self._write_gate(cursor, principal, project_id, "delete")
                if activity is not None:
                    self._record_best_effort(cursor, principal, project, activity)
                # Explicit cascade, children first
                cursor.execute(
                    "UPDATE activity_log SET task_id = NULL "
                    "WHERE task_id IN (SELECT id FROM tasks WHERE project_id = %s)",
                    [project_id],
                )
                cursor.execute("DELETE FROM tasks WHERE project_id = %s", [project_id])
                cursor.execute("DELETE FROM custom_fields WHERE project_id = %s", [project_id])
                cursor.execute("DELETE FROM projects WHERE id = %s", [project_id])

    def _record_best_effort(self, cursor, principal, project, entry):
        """Insert an activity entry inside a savepoint so failing to log never aborts the caller."""
        allowed, reason = ProjectPolicy.can_log_activity(principal.id, project, entry)
        if not allowed:
            logger.warning(f"Skipped activity {entry.action} on {project.id}: {reason}")
            return
        try:
            with transaction.atomic(using=self.using):
                self._insert(cursor, "activity_log", ACTIVITY_COLUMNS, entry.to_dict() | {
                    "created_at": entry.created_at,
                })
        except DatabaseError as exc:
            logger.warning(f"Could not record activity {entry.action} on {project.id}: {exc}")

    # ─────────────────────────────────────────────────────────────
    # Tasks
    # ─────────────────────────────────────────────────────────────

    def list_tasks(self, principal: Principal, project_id: str) -> List[Task]:
        return self.get_project(principal, project_id).tasks

    def get_task(self, principal: Principal, project_id: str, task_id: str) -> Task:
        task = self.get_project(principal, project_id).task_by_id(task_id)
        if task is None:
            raise NotFoundError(entity="task", entity_id=task_id)
        return task

    def _task_row(self, task: Task) -> dict:
        return task.to_dict() | {
            "start_date": task.start_date,
            "end_date": task.end_date,
            "created_at": task.created_at,
            "updated_at": task.updated_at,
        }

    def create_task(self, principal: Principal, task: Task) -> Task:
        return self.create_tasks(principal, task.project_id, [task])[0]

    def create_tasks(self, principal: Principal, project_id: str, tasks: List[Task]) -> List[Task]:
        with atomic_write(self.using, entity="task", operation="create"):
            with self.connection.cursor() as cursor:
                self._write_gate(cursor, principal, project_id, "create_task")
                for task in tasks:
                    self._check_principal_exists(cursor, task.assignee)
                    self._insert(cursor, "tasks", TASK_COLUMNS, self._task_row(task))
                latest = max((task.created_at for task in tasks if task.created_at), default=timezone.now())
                self._update(cursor, "projects", project_id, {"last_modified": latest})
                created = self._fetch_project(cursor, project_id)
        ids = [task.id for task in tasks]
        return [task for task in created.tasks if task.id in ids]

    def update_task(self, principal: Principal, project_id: str, task_id: str, changes: dict) -> Task:
        with atomic_write(self.using, entity="task", operation="update"):
            with self.connection.cursor() as cursor:
                project = self._write_gate(cursor, principal, project_id, "update_task")
                if project.task_by_id(task_id) is None:
                    raise NotFoundError(entity="task", entity_id=task_id)
                if "assignee" in changes:
                    self._check_principal_exists(cursor, changes["assignee"])
                self._update(cursor, "tasks", task_id, changes)
                if changes.get("updated_at"):
                    self._update(cursor, "projects", project_id, {"last_modified": changes["updated_at"]})
                return self._fetch_project(cursor, project_id).task_by_id(task_id)

    def delete_task(self, principal: Principal, project_id: str, task_id: str):
        with atomic_write(self.using, entity="task", operation="delete"):
            with self.connection.cursor() as cursor:
                project = self._write_gate(cursor, principal, project_id, "delete_task")
                if project.task_by_id(task_id) is None:
                    raise NotFoundError(entity="task", entity_id=task_id)
                cursor.execute("UPDATE activity_log SET task_id = NULL WHERE task_id = %s", [task_id])
                cursor.execute("DELETE FROM tasks WHERE id = %s AND project_id = %s", [task_id, project_id])

    # ─────────────────────────────────────────────────────────────
    # Custom fields
    # ─────────────────────────────────────────────────────────────

    def list_custom_fields(self, principal: Principal, project_id: str) -> List[CustomField]:
        return self.get_project(principal, project_id).custom_fields

    @staticmethod
    def _field(project: Project, field_id: str) -> CustomField:
        for custom_field in project.custom_fields:
            if custom_field.id == field_id:
                return custom_field
        raise NotFoundError(entity="custom_field", entity_id=field_id)

    def create_custom_field(self, principal: Principal, custom_field: CustomField) -> CustomField:
        with atomic_write(self.using, entity="custom_field", operation="create"):
            with self.connection.cursor() as cursor:
                self._write_gate(cursor, principal, custom_field.project_id, "create_custom_field")
                self._insert(cursor, "custom_fields", CUSTOM_FIELD_COLUMNS, custom_field.to_dict() | {
                    "created_at": custom_field.created_at,
                })
                return self._field(self._fetch_project(cursor, custom_field.project_id), custom_field.id)

    def update_custom_field(self, principal: Principal, project_id: str, field_id: str, changes: dict) -> CustomField:
        with atomic_write(self.using, entity="custom_field", operation="update"):
            with self.connection.cursor() as cursor:
                self._field(self._write_gate(cursor, principal, project_id, "update_custom_field"), field_id)
                self._update(cursor, "custom_fields", field_id, changes)
                return self._field(self._fetch_project(cursor, project_id), field_id)

    def delete_custom_field(self, principal: Principal, project_id: str, field_id: str):
        with atomic_write(self.using, entity="custom_field", operation="delete"):
            with self.connection.cursor() as cursor:
                self._field(self._write_gate(cursor, principal, project_id, "delete_custom_field"), field_id)
                cursor.execute(
                    "DELETE FROM custom_fields WHERE id = %s AND project_id = %s",
                    [field_id, project_id],
                )

    # ─────────────────────────────────────────────────────────────
    # Activity
    # ─────────────────────────────────────────────────────────────

    def append_activity(self, principal: Principal, entry: ActivityEntry) -> ActivityEntry:
        with atomic_write(self.using, entity="activity", operation="log_activity"):
            with self.connection.cursor() as cursor:
                project = self._write_gate(cursor, principal, entry.project_id, "log_activity")
                allowed, reason = ProjectPolicy.can_log_activity(principal.id, project, entry)
                if not allowed:
                    raise AuthorizationError(reason, entity="activity", operation="log_activity")
                self._insert(cursor, "activity_log", ACTIVITY_COLUMNS, entry.to_dict() | {
                    "created_at": entry.created_at,
                })
        return entry

    def list_activity(self, principal: Principal, project_id: str, limit: Optional[int] = None) -> List[ActivityEntry]:
        limit = limit or self.activity_limit
        with database_errors(entity="activity", operation="list"):
            with self.connection.cursor() as cursor:
                self._read_gate(cursor, principal, project_id)
                cursor.execute(
                    f"SELECT {', '.join(ACTIVITY_COLUMNS)} FROM activity_log "
                    "WHERE project_id = %s ORDER BY created_at DESC",
                    [project_id],
                )
                columns = [col[0] for col in cursor.description]
                rows = cursor.fetchmany(limit) if limit else cursor.fetchall()
        return [ActivityEntry.from_dict(self._from_db(dict(zip(columns, row)))) for row in rows]

    # ─────────────────────────────────────────────────────────────
    # Principals
    # ─────────────────────────────────────────────────────────────

    def remove_principal(self, principal_id: str):
        # created_by, assignee and user_id are cleared by ON DELETE SET NULL;
        # membership lives in JSON and is rewritten here
        principal_id = str(principal_id)
        member_column = self._member_column()
        with atomic_write(self.using, entity="project", operation="remove_principal"):
            with self.connection.cursor() as cursor:
                cursor.execute(
                    f"SELECT id, team_members FROM projects WHERE {member_column} LIKE %s",
                    [f"%{json.dumps(principal_id)}%"],
                )
                for row in dictfetchall(cursor):
                    members = self._from_db(row)["team_members"] or []
                    if principal_id in members:
                        self._update(cursor, "projects", row["id"], {
                            "team_members": [member for member in members if member != principal_id],
                        })
        logger.info(f"Removed principal {principal_id} from project memberships")
