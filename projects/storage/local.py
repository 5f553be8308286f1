# projects/storage/local.py
"""
Local (demo) backend: a scoped key-value store on disk.

Two independent keys hold the whole state: ``projects`` (full Project
objects with their tasks and custom fields embedded) and ``activity-log``
(newest first). The adapter instance owns the loaded state; there is no
module-level cache.
"""
import json
import logging
import os
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from django.core.serializers.json import DjangoJSONEncoder

from core.exceptions import AuthorizationError, BackendUnavailableError, NotFoundError

from ..entities import ActivityEntry, CustomField, Principal, Project, Task
from ..policies import ProjectPolicy
from .base import ProjectStorage

logger = logging.getLogger("tracker.storage")


PROJECTS_KEY = "projects"
ACTIVITY_KEY = "activity-log"


class LocalKeyValueStore:
    """One JSON file per scoped key, replaced atomically on write."""

    def __init__(self, directory, scope: str):
        self.directory = Path(directory)
        self.scope = scope

    def path_for(self, key: str) -> Path:
        return self.directory / f"{self.scope}.{key}.json"

    def get(self, key: str, default=None):
        path = self.path_for(key)
        if not path.exists():
            return default
        try:
            with open(path, encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, ValueError) as exc:
            logger.error(f"Local store key '{key}' is unreadable: {exc}")
            raise BackendUnavailableError(f"Local store key '{key}' is unreadable.") from exc

    def set(self, key: str, value):
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{self.scope}.{key}.")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(value, handle, cls=DjangoJSONEncoder)
            os.replace(tmp_path, self.path_for(key))
        except OSError as exc:
            logger.error(f"Could not write local store key '{key}': {exc}")
            raise BackendUnavailableError(f"Could not write local store key '{key}'.") from exc


class LocalStorage(ProjectStorage):
    name = "local"
    atomic_imports = False

    def __init__(self, store: LocalKeyValueStore, activity_limit: Optional[int] = None):
        self.store = store
        self.activity_limit = activity_limit
        self._projects = None
        self._activity = None

    # ─────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────

    def _load(self):
        if self._projects is None:
            self._projects = [Project.from_dict(item) for item in self.store.get(PROJECTS_KEY, [])]
            self._activity = [ActivityEntry.from_dict(item) for item in self.store.get(ACTIVITY_KEY, [])]

    def _persist(self, key, items):
        try:
            self.store.set(key, [item.to_dict() for item in items])
        except BackendUnavailableError:
            # Unsaved in-memory changes are dropped; the next call reloads from disk
            self._projects = self._activity = None
            raise

    def _save_projects(self):
        self._persist(PROJECTS_KEY, self._projects)

    def _save_activity(self):
        self._persist(ACTIVITY_KEY, self._activity)

    def _find(self, project_id: str) -> Optional[Project]:
        self._load()
        for project in self._projects:
            if project.id == project_id:
                return project
        return None

    def _accessible(self, principal: Principal, project_id: str) -> Project:
        project = self._find(project_id)
        if project is None or not ProjectPolicy.can_access_project(principal.id, project):
            raise NotFoundError(entity="project", entity_id=project_id)
        return project

    @staticmethod
    def _copy(project: Project) -> Project:
        # Callers get detached copies; only the adapter mutates its state
        return Project.from_dict(project.to_dict())

    # ─────────────────────────────────────────────────────────────
    # Projects
    # ─────────────────────────────────────────────────────────────

    def list_projects(self, principal: Principal) -> List[Project]:
        self._load()
        return [
            self._copy(project)
            for project in self._projects
            if ProjectPolicy.can_access_project(principal.id, project)
        ]

    def get_project(self, principal: Principal, project_id: str) -> Project:
        return self._copy(self._accessible(principal, project_id))

    def create_project(self, principal: Principal, project: Project) -> Project:
        allowed, reason = ProjectPolicy.can_create_project(principal.id, project)
        if not allowed:
            raise AuthorizationError(reason, entity="project", operation="create")
        self._load()
        self._projects.append(self._copy(project))
        self._save_projects()
        return self._copy(project)

    def update_project(self, principal: Principal, project_id: str, changes: dict) -> Project:
        before = self._accessible(principal, project_id)
        after = replace(before, **changes)
        allowed, reason = ProjectPolicy.can_update_project(principal.id, before, after)
        if not allowed:
            raise AuthorizationError(reason, entity="project", entity_id=project_id, operation="update")
        self._projects[self._projects.index(before)] = after
        self._save_projects()
        return self._copy(after)

    def delete_project(self, principal: Principal, project_id: str, activity: Optional[ActivityEntry] = None):
        project = self._accessible(principal, project_id)
        task_ids = {task.id for task in project.tasks}
        self._projects.remove(project)
        for entry in self._activity:
            if entry.task_id in task_ids:
                entry.task_id = None
        if activity is not None:
            allowed, reason = ProjectPolicy.can_log_activity(principal.id, project, activity)
            if allowed:
                self._activity.insert(0, activity)
            else:
                logger.warning(f"Skipped activity for deleted project {project_id}: {reason}")
        self._save_projects()
        self._save_activity()

    # ─────────────────────────────────────────────────────────────
    # Tasks
    # ─────────────────────────────────────────────────────────────

    def list_tasks(self, principal: Principal, project_id: str) -> List[Task]:
        return self.get_project(principal, project_id).tasks

    def get_task(self, principal: Principal, project_id: str, task_id: str) -> Task:
        project = self._accessible(principal, project_id)
        task = project.task_by_id(task_id)
        if task is None:
            raise NotFoundError(entity="task", entity_id=task_id)
        return Task.from_dict(task.to_dict())

    def create_task(self, principal: Principal, task: Task) -> Task:
        return self.create_tasks(principal, task.project_id, [task])[0]

    def create_tasks(self, principal: Principal, project_id: str, tasks: List[Task]) -> List[Task]:
        project = self._accessible(principal, project_id)
        project.tasks.extend(Task.from_dict(task.to_dict()) for task in tasks)
        project.last_modified = max(
            [task.created_at for task in tasks if task.created_at] or [project.last_modified]
        )
        self._save_projects()
        return [Task.from_dict(task.to_dict()) for task in tasks]

    def update_task(self, principal: Principal, project_id: str, task_id: str, changes: dict) -> Task:
        project = self._accessible(principal, project_id)
        task = project.task_by_id(task_id)
        if task is None:
            raise NotFoundError(entity="task", entity_id=task_id)
        updated = replace(task, **changes)
        project.tasks[project.tasks.index(task)] = updated
        if updated.updated_at:
            project.last_modified = updated.updated_at
        self._save_projects()
        return Task.from_dict(updated.to_dict())

    def delete_task(self, principal: Principal, project_id: str, task_id: str):
        project = self._accessible(principal, project_id)
        task = project.task_by_id(task_id)
        if task is None:
            raise NotFoundError(entity="task", entity_id=task_id)
        project.tasks.remove(task)
        self._save_projects()
        if any(entry.task_id == task_id for entry in self._activity):
            for entry in self._activity:
                if entry.task_id == task_id:
                    entry.task_id = None
            self._save_activity()

    # ─────────────────────────────────────────────────────────────
    # Custom fields
    # ─────────────────────────────────────────────────────────────

    def _field(self, project: Project, field_id: str) -> CustomField:
        for custom_field in project.custom_fields:
            if custom_field.id == field_id:
                return custom_field
        raise NotFoundError(entity="custom_field", entity_id=field_id)

    def list_custom_fields(self, principal: Principal, project_id: str) -> List[CustomField]:
        return self.get_project(principal, project_id).custom_fields

    def create_custom_field(self, principal: Principal, custom_field: CustomField) -> CustomField:
        project = self._accessible(principal, custom_field.project_id)
        project.custom_fields.append(CustomField.from_dict(custom_field.to_dict()))
        self._save_projects()
        return CustomField.from_dict(custom_field.to_dict())

    def update_custom_field(self, principal: Principal, project_id: str, field_id: str, changes: dict) -> CustomField:
        project = self._accessible(principal, project_id)
        custom_field = self._field(project, field_id)
        updated = replace(custom_field, **changes)
        project.custom_fields[project.custom_fields.index(custom_field)] = updated
        self._save_projects()
        return CustomField.from_dict(updated.to_dict())

    def delete_custom_field(self, principal: Principal, project_id: str, field_id: str):
        project = self._accessible(principal, project_id)
        project.custom_fields.remove(self._field(project, field_id))
        self._save_projects()

    # ─────────────────────────────────────────────────────────────
    # Activity
    # ─────────────────────────────────────────────────────────────

    def append_activity(self, principal: Principal, entry: ActivityEntry) -> ActivityEntry:
        project = self._find(entry.project_id)
        allowed, reason = ProjectPolicy.can_log_activity(principal.id, project, entry)
        if not allowed:
            if project is None or not ProjectPolicy.can_access_project(principal.id, project):
                raise NotFoundError(entity="project", entity_id=entry.project_id, operation="log_activity")
            raise AuthorizationError(reason, entity="activity", operation="log_activity")
        self._activity.insert(0, entry)
        self._save_activity()
        return entry

    def list_activity(self, principal: Principal, project_id: str, limit: Optional[int] = None) -> List[ActivityEntry]:
        self._accessible(principal, project_id)
        limit = limit or self.activity_limit
        entries = [entry for entry in self._activity if entry.project_id == project_id]
        if limit:
            entries = entries[:limit]
        return [ActivityEntry.from_dict(entry.to_dict()) for entry in entries]

    # ─────────────────────────────────────────────────────────────
    # Principals
    # ─────────────────────────────────────────────────────────────

    def remove_principal(self, principal_id: str):
        principal_id = str(principal_id)
        self._load()
        for project in self._projects:
            if project.created_by == principal_id:
                project.created_by = None
            if principal_id in project.team_members:
                project.team_members = [member for member in project.team_members if member != principal_id]
            for task in project.tasks:
                if task.assignee == principal_id:
                    task.assignee = None
        for entry in self._activity:
            if entry.user_id == principal_id:
                entry.user_id = None
        self._save_projects()
        self._save_activity()
        logger.info(f"Cleared local references to principal {principal_id}")
