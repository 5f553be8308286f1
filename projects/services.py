# projects/services.py
"""
Project and task services.

Both services are built per request around the one storage backend the
process runs with and the principal acting in that request. They own the
multi-step operations (validate, derive status, write, log activity) and
add entity/operation context to storage errors without swallowing them.
"""
from contextlib import contextmanager
from datetime import timedelta
import json
import logging
from typing import List, Optional

from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone

from core import constants
from core.exceptions import NotFoundError, TrackerError, ValidationError

from . import state_machine
from .entities import ActivityEntry, CustomField, Principal, Project, Task, generate_id
from .storage.base import ProjectStorage
from .validation import (
    apply_custom_field_values,
    check_date_order,
    check_dependencies,
    clean_custom_field_data,
    clean_project_data,
    clean_task_data,
)

logger = logging.getLogger("tracker.projects")


def to_jsonable(value):
    return json.loads(json.dumps(value, cls=DjangoJSONEncoder))


@contextmanager
def operation_context(entity, operation, entity_id=None):
    try:
        yield
    except TrackerError as exc:
        raise exc.with_context(entity=entity, entity_id=entity_id, operation=operation)


class TrackerService:
    def __init__(self, storage: ProjectStorage, principal: Principal):
        self.storage = storage
        self.principal = principal

    def log_activity(self, project_id: str, action: str, changes=None, task_id: Optional[str] = None):
        """
        Append one audit entry for a mutation that already succeeded.

        Best-effort: a failure is logged and never undoes the mutation.
        """
        entry = self.build_activity(project_id, action, changes, task_id)
        try:
            return self.storage.append_activity(self.principal, entry)
        except TrackerError as exc:
            logger.warning(f"Activity '{action}' on project {project_id} was not recorded: {exc.code} {exc.message}")
            return None

    def build_activity(self, project_id, action, changes=None, task_id=None) -> ActivityEntry:
        return ActivityEntry(
            id=generate_id(),
            project_id=project_id,
            action=action,
            task_id=task_id,
            user_id=self.principal.id,
            changes=to_jsonable(changes) if changes is not None else None,
            created_at=timezone.now(),
        )


class ProjectService(TrackerService):

    def list_projects(self) -> List[Project]:
        with operation_context("project", "list"):
            return self.storage.list_projects(self.principal)

    def get_project(self, project_id: str) -> Project:
        with operation_context("project", "get", project_id):
            return self.storage.get_project(self.principal, project_id)

    def create_project(self, data: dict) -> Project:
        cleaned = clean_project_data(data)
        now = timezone.now()
        project = Project(
            id=generate_id(),
            created_date=now,
            last_modified=now,
            created_by=self.principal.id,
            **cleaned,
        )
        with operation_context("project", "create"):
            project = self.storage.create_project(self.principal, project)

        logger.info(f"Project {project.id} created by {self.principal.id}")
        self.log_activity(project.id, constants.ACTIVITY_PROJECT_CREATED, {"name": project.name})
        return project

    def update_project(self, project_id: str, data: dict) -> Project:
        changes = clean_project_data(data, partial=True)
        if not changes:
            return self.get_project(project_id)

        with operation_context("project", "update", project_id):
            project = self.storage.update_project(
                self.principal, project_id, {**changes, "last_modified": timezone.now()}
            )

        self.log_activity(project_id, constants.ACTIVITY_PROJECT_UPDATED, changes)
        return project

    def delete_project(self, project_id: str):
        """
        Delete a project with its tasks and custom fields. The audit entry is
        recorded by the storage as part of the delete and survives it.
        """
        with operation_context("project", "delete", project_id):
            project = self.storage.load_for_write(self.principal, project_id)
            entry = self.build_activity(
                project_id,
                constants.ACTIVITY_PROJECT_DELETED,
                {"name": project.name, "task_count": len(project.tasks)},
            )
            self.storage.delete_project(self.principal, project_id, activity=entry)

        logger.info(f"Project {project_id} deleted by {self.principal.id}")

    def list_activity(self, project_id: str, limit: Optional[int] = None) -> List[ActivityEntry]:
        with operation_context("activity", "list", project_id):
            return self.storage.list_activity(self.principal, project_id, limit)

    # ─────────────────────────────────────────────────────────────
    # Custom fields
    # ─────────────────────────────────────────────────────────────

    def list_custom_fields(self, project_id: str) -> List[CustomField]:
        with operation_context("custom_field", "list", project_id):
            return self.storage.list_custom_fields(self.principal, project_id)

    def create_custom_field(self, project_id: str, data: dict) -> CustomField:
        cleaned = clean_custom_field_data(data)
        custom_field = CustomField(
            id=generate_id(),
            project_id=project_id,
            created_at=timezone.now(),
            **cleaned,
        )
        with operation_context("custom_field", "create"):
            self.storage.load_for_write(self.principal, project_id)
            custom_field = self.storage.create_custom_field(self.principal, custom_field)

        self.log_activity(
            project_id,
            constants.ACTIVITY_CUSTOM_FIELD_CREATED,
            {"name": custom_field.name, "field_type": custom_field.field_type},
        )
        return custom_field

    def update_custom_field(self, project_id: str, field_id: str, data: dict) -> CustomField:
        with operation_context("custom_field", "update", field_id):
            project = self.storage.load_for_write(self.principal, project_id)
            existing = next((cf for cf in project.custom_fields if cf.id == field_id), None)
            if existing is None:
                raise NotFoundError(entity="custom_field", entity_id=field_id)

            changes = clean_custom_field_data(data, partial=True, existing=existing)
            if not changes:
                return existing
            if changes.get("field_type", existing.field_type) != existing.field_type:
                # Known gap: stored task values are not migrated to the new type
                logger.warning(
                    f"Custom field {field_id} changed type {existing.field_type} -> "
                    f"{changes['field_type']}; existing task values are left as they are"
                )
            custom_field = self.storage.update_custom_field(self.principal, project_id, field_id, changes)

        self.log_activity(project_id, constants.ACTIVITY_CUSTOM_FIELD_UPDATED, {"id": field_id, **changes})
        return custom_field

    def delete_custom_field(self, project_id: str, field_id: str):
        with operation_context("custom_field", "delete", field_id):
            self.storage.delete_custom_field(self.principal, project_id, field_id)
        self.log_activity(project_id, constants.ACTIVITY_CUSTOM_FIELD_DELETED, {"id": field_id})

    # ─────────────────────────────────────────────────────────────
    # Demo mode
    # ─────────────────────────────────────────────────────────────

    def initialize_demo_data(self) -> Optional[Project]:
        """
        Seed a sample project for the principal on the local backend when
        they have none yet. Returns the project, or None if nothing was seeded.
        """
        if self.storage.name != constants.BACKEND_LOCAL:
            logger.info("Demo data is only seeded on the local backend")
            return None
        if self.list_projects():
            return None

        project = self.create_project({
            "name": "Website Redesign",
            "description": "Sample project to explore tasks, dependencies and custom fields.",
        })
        self.create_custom_field(project.id, {
            "name": "Priority",
            "field_type": CustomField.FIELD_SELECT,
            "options": ["Low", "Medium", "High"],
            "default_value": "Medium",
        })

        today = timezone.now().date()
        tasks = TaskService(self.storage, self.principal)
        research = tasks.create_task(project.id, {
            "name": "User research",
            "start_date": today,
            "end_date": today + timedelta(days=6),
            "progress": 100,
            "status": Task.STATUS_COMPLETED,
        })
        design = tasks.create_task(project.id, {
            "name": "Wireframes",
            "start_date": today + timedelta(days=7),
            "end_date": today + timedelta(days=13),
            "progress": 40,
            "status": Task.STATUS_IN_PROGRESS,
            "dependencies": [research.id],
        })
        tasks.create_task(project.id, {
            "name": "Launch",
            "task_type": Task.TYPE_MILESTONE,
            "start_date": today + timedelta(days=21),
            "end_date": today + timedelta(days=21),
            "dependencies": [design.id],
        })
        return self.get_project(project.id)


class TaskService(TrackerService):

    def list_tasks(self, project_id: str) -> List[Task]:
        with operation_context("task", "list", project_id):
            return self.storage.list_tasks(self.principal, project_id)

    def get_task(self, project_id: str, task_id: str) -> Task:
        with operation_context("task", "get", task_id):
            return self.storage.get_task(self.principal, project_id, task_id)

    def _build_task(self, project: Project, data: dict, created_at) -> Task:
        """Validate a task spec against its project and return the Task to insert."""
        cleaned = clean_task_data(data)
        if not data.get("status"):
            cleaned["status"] = state_machine.derive_status(cleaned["progress"], cleaned["status"])
        task_id = generate_id()
        check_dependencies(task_id, cleaned["dependencies"], project)
        cleaned["custom_fields"] = apply_custom_field_values(cleaned["custom_fields"], project.custom_fields)
        return Task(
            id=task_id,
            project_id=project.id,
            created_at=created_at,
            updated_at=created_at,
            **cleaned,
        )

    def create_task(self, project_id: str, data: dict) -> Task:
        with operation_context("task", "create"):
            project = self.storage.load_for_write(self.principal, project_id)
            task = self._build_task(project, data, timezone.now())
            task = self.storage.create_task(self.principal, task)

        self.log_activity(project_id, constants.ACTIVITY_TASK_CREATED, {"task_name": task.name}, task.id)
        return task

    def update_task(self, project_id: str, task_id: str, data: dict) -> Task:
        """
        Partial update. A rejected update leaves the stored task untouched.
        Progress changes derive status unless the same update sets status.
        """
        with operation_context("task", "update", task_id):
            project = self.storage.load_for_write(self.principal, project_id)
            task = project.task_by_id(task_id)
            if task is None:
                raise NotFoundError(entity="task", entity_id=task_id)

            changes = clean_task_data(data, partial=True)
            check_date_order(
                changes.get("start_date", task.start_date),
                changes.get("end_date", task.end_date),
            )
            if "dependencies" in changes:
                check_dependencies(task_id, changes["dependencies"], project)
                cycle = state_machine.find_dependency_cycle(task_id, changes["dependencies"], project.tasks)
                if cycle:
                    raise ValidationError(
                        "Dependencies would form a cycle.",
                        entity="task",
                        entity_id=task_id,
                        details={"dependencies": cycle},
                    )
            if "custom_fields" in changes:
                changes["custom_fields"] = apply_custom_field_values(
                    changes["custom_fields"], project.custom_fields
                )
            changes = state_machine.apply_progress(task, changes)
            if not changes:
                return task

            task = self.storage.update_task(
                self.principal, project_id, task_id, {**changes, "updated_at": timezone.now()}
            )

        self.log_activity(project_id, constants.ACTIVITY_TASK_UPDATED, changes, task_id)
        return task

    def update_progress(self, project_id: str, task_id: str, progress) -> Task:
        return self.update_task(project_id, task_id, {"progress": progress})

    def delete_task(self, project_id: str, task_id: str):
        with operation_context("task", "delete", task_id):
            project = self.storage.load_for_write(self.principal, project_id)
            task = project.task_by_id(task_id)
            if task is None:
                raise NotFoundError(entity="task", entity_id=task_id)
            self.storage.delete_task(self.principal, project_id, task_id)

        # The task row is gone, so the entry keeps its id in the payload only
        self.log_activity(
            project_id,
            constants.ACTIVITY_TASK_DELETED,
            {"task_id": task_id, "task_name": task.name},
        )

    def import_tasks(self, project_id: str, specs: list) -> List[Task]:
        """
        Create many tasks in one call.

        Server backends are all-or-nothing: every spec is validated before
        anything is written and one bad spec rejects the batch. The local
        backend is best-effort: invalid specs are skipped and only the
        created tasks are returned, so the result may be shorter than
        ``specs``.
        """
        with operation_context("task", "import"):
            project = self.storage.load_for_write(self.principal, project_id)
            started = timezone.now()

            if self.storage.atomic_imports:
                tasks = []
                for index, spec in enumerate(specs):
                    try:
                        task = self._build_task(project, spec, started + timedelta(microseconds=index))
                    except ValidationError as exc:
                        exc.details = {"index": index, **exc.details}
                        raise
                    tasks.append(task)
                    # Later specs may depend on earlier ones
                    project.tasks.append(task)
                created = self.storage.create_tasks(self.principal, project_id, tasks) if tasks else []
            else:
                created = []
                for index, spec in enumerate(specs):
                    try:
                        task = self._build_task(project, spec, started + timedelta(microseconds=index))
                        task = self.storage.create_task(self.principal, task)
                    except TrackerError as exc:
                        logger.warning(f"Skipped import item {index} for project {project_id}: {exc.message}")
                        continue
                    created.append(task)
                    project.tasks.append(task)

        self.log_activity(
            project_id,
            constants.ACTIVITY_TASKS_IMPORTED,
            {"count": len(created), "requested": len(specs)},
        )
        return created

    def get_dependencies(self, project_id: str, task_id: str) -> List[Task]:
        with operation_context("task", "dependencies", task_id):
            project = self.storage.get_project(self.principal, project_id)
            task = project.task_by_id(task_id)
            if task is None:
                raise NotFoundError(entity="task", entity_id=task_id)
            return state_machine.resolve_dependencies(task, project.tasks)

    def can_start_task(self, project_id: str, task_id: str) -> bool:
        with operation_context("task", "can_start", task_id):
            project = self.storage.get_project(self.principal, project_id)
            task = project.task_by_id(task_id)
            if task is None:
                raise NotFoundError(entity="task", entity_id=task_id)
            return state_machine.can_start(task, project.tasks)
