# projects/entities.py
"""
Entity model shared by every storage backend.

Whatever backend served a request, services and views only ever see these
dataclasses, so the shape of a returned Project/Task/CustomField/ActivityEntry
never depends on configuration.
"""
from dataclasses import dataclass, field, fields as dataclass_fields
from datetime import date, datetime, timezone as dt_timezone
from typing import Any, Optional
import uuid

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime


def generate_id() -> str:
    return str(uuid.uuid4())


def as_datetime(value) -> Optional[datetime]:
    """Coerce a stored timestamp (ISO text or naive/aware datetime) to aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        parsed = parse_datetime(value)
        if parsed is None:
            parsed_date = parse_date(value)
            if parsed_date is None:
                raise ValueError(f"Not a timestamp: {value!r}")
            parsed = datetime.combine(parsed_date, datetime.min.time())
        value = parsed
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime.combine(value, datetime.min.time())
    if timezone.is_naive(value):
        value = timezone.make_aware(value, dt_timezone.utc)
    return value


def as_date(value) -> Optional[date]:
    """Coerce ISO text, a date or a datetime to a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_date(str(value)[:10])
    if parsed is None:
        raise ValueError(f"Not a date: {value!r}")
    return parsed


def _iso(value):
    return value.isoformat() if value is not None else None


@dataclass
class Principal:
    """
    An already-authenticated actor. ``access_token`` is only needed by the
    managed backend, whose row-level policies must evaluate as the caller.
    """
    id: str
    access_token: Optional[str] = None

    def __post_init__(self):
        self.id = str(self.id)


@dataclass
class CustomField:
    FIELD_TEXT = "text"
    FIELD_NUMBER = "number"
    FIELD_DATE = "date"
    FIELD_SELECT = "select"
    FIELD_BOOLEAN = "boolean"

    FIELD_TYPE_CHOICES = [
        (FIELD_TEXT, "Text"),
        (FIELD_NUMBER, "Number"),
        (FIELD_DATE, "Date"),
        (FIELD_SELECT, "Select"),
        (FIELD_BOOLEAN, "Boolean"),
    ]

    id: str
    project_id: str
    name: str
    field_type: str
    required: bool = False
    options: Optional[list] = None
    # Always text, whatever field_type says; see validation.cast_custom_value
    default_value: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "field_type": self.field_type,
            "required": self.required,
            "options": self.options,
            "default_value": self.default_value,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CustomField":
        return cls(
            id=str(data["id"]),
            project_id=str(data["project_id"]),
            name=data["name"],
            field_type=data["field_type"],
            required=bool(data.get("required") or False),
            options=data.get("options"),
            default_value=data.get("default_value"),
            created_at=as_datetime(data.get("created_at")),
        )


@dataclass
class Task:
    TYPE_TASK = "task"
    TYPE_MILESTONE = "milestone"
    TYPE_DELIVERABLE = "deliverable"

    TYPE_CHOICES = [
        (TYPE_TASK, "Task"),
        (TYPE_MILESTONE, "Milestone"),
        (TYPE_DELIVERABLE, "Deliverable"),
    ]

    STATUS_NOT_STARTED = "not-started"
    STATUS_IN_PROGRESS = "in-progress"
    STATUS_COMPLETED = "completed"
    STATUS_ON_HOLD = "on-hold"
    STATUS_IMPACTED = "impacted"
    STATUS_ON_GOING = "on-going"
    STATUS_DEV_IN_PROGRESS = "dev-in-progress"
    STATUS_DONE = "done"

    STATUS_CHOICES = [
        (STATUS_NOT_STARTED, "Not started"),
        (STATUS_IN_PROGRESS, "In progress"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_ON_HOLD, "On hold"),
        (STATUS_IMPACTED, "Impacted"),
        (STATUS_ON_GOING, "On-going"),
        (STATUS_DEV_IN_PROGRESS, "Dev in progress"),
        (STATUS_DONE, "Done"),
    ]

    id: str
    project_id: str
    name: str
    start_date: date
    end_date: date
    description: Optional[str] = None
    task_type: str = TYPE_TASK
    status: str = STATUS_NOT_STARTED
    assignee: Optional[str] = None
    progress: int = 0
    dependencies: list = field(default_factory=list)
    custom_fields: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "task_type": self.task_type,
            "status": self.status,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "assignee": self.assignee,
            "progress": self.progress,
            "dependencies": list(self.dependencies),
            "custom_fields": dict(self.custom_fields),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        assignee = data.get("assignee")
        return cls(
            id=str(data["id"]),
            project_id=str(data["project_id"]),
            name=data["name"],
            description=data.get("description"),
            task_type=data.get("task_type") or cls.TYPE_TASK,
            status=data.get("status") or cls.STATUS_NOT_STARTED,
            start_date=as_date(data.get("start_date")),
            end_date=as_date(data.get("end_date")),
            assignee=str(assignee) if assignee is not None else None,
            progress=int(data.get("progress") or 0),
            dependencies=[str(dep) for dep in (data.get("dependencies") or [])],
            custom_fields=dict(data.get("custom_fields") or {}),
            created_at=as_datetime(data.get("created_at")),
            updated_at=as_datetime(data.get("updated_at")),
        )


@dataclass
class Project:
    STATUS_ACTIVE = "active"
    STATUS_COMPLETED = "completed"
    STATUS_ARCHIVED = "archived"

    STATUS_CHOICES = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_ARCHIVED, "Archived"),
    ]

    id: str
    name: str
    description: Optional[str] = None
    status: str = STATUS_ACTIVE
    created_date: Optional[datetime] = None
    last_modified: Optional[datetime] = None
    # Owner; cleared (never cascaded) when the principal is deleted
    created_by: Optional[str] = None
    team_members: list = field(default_factory=list)
    tasks: list = field(default_factory=list)
    custom_fields: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "created_date": _iso(self.created_date),
            "last_modified": _iso(self.last_modified),
            "created_by": self.created_by,
            "team_members": list(self.team_members),
            "tasks": [task.to_dict() for task in self.tasks],
            "custom_fields": [custom_field.to_dict() for custom_field in self.custom_fields],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        created_by = data.get("created_by")
        return cls(
            id=str(data["id"]),
            name=data["name"],
            description=data.get("description"),
            status=data.get("status") or cls.STATUS_ACTIVE,
            created_date=as_datetime(data.get("created_date")),
            last_modified=as_datetime(data.get("last_modified")),
            created_by=str(created_by) if created_by is not None else None,
            team_members=[str(member) for member in (data.get("team_members") or [])],
            tasks=[Task.from_dict(task) for task in (data.get("tasks") or [])],
            custom_fields=[CustomField.from_dict(cf) for cf in (data.get("custom_fields") or [])],
        )

    def task_by_id(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None


@dataclass
class ActivityEntry:
    """Write-once audit record. There is no update or delete path."""
    id: str
    project_id: str
    action: str
    task_id: Optional[str] = None
    user_id: Optional[str] = None
    changes: Any = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "action": self.action,
            "changes": self.changes,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ActivityEntry":
        task_id = data.get("task_id")
        user_id = data.get("user_id")
        return cls(
            id=str(data["id"]),
            project_id=str(data["project_id"]),
            task_id=str(task_id) if task_id is not None else None,
            user_id=str(user_id) if user_id is not None else None,
            action=data["action"],
            changes=data.get("changes"),
            created_at=as_datetime(data.get("created_at")),
        )


# Column names of each entity, in schema order (used by the SQL and Supabase adapters)
PROJECT_COLUMNS = [f.name for f in dataclass_fields(Project) if f.name not in ("tasks", "custom_fields")]
TASK_COLUMNS = [f.name for f in dataclass_fields(Task)]
CUSTOM_FIELD_COLUMNS = [f.name for f in dataclass_fields(CustomField)]
ACTIVITY_COLUMNS = [f.name for f in dataclass_fields(ActivityEntry)]
