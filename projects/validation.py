# projects/validation.py
"""
Entity validation for every storage backend.

Adapters never persist a payload that has not been through these functions,
so the date-ordering, progress and custom-field rules hold no matter which
backend is configured.
"""
from datetime import date
from decimal import Decimal, InvalidOperation
import re
from typing import Optional

from django.utils import timezone

from core.exceptions import ValidationError

from .entities import CustomField, Project, Task, as_date
from .state_machine import clamp_progress


PROJECT_NAME_MAX_LENGTH = 255
TASK_NAME_MAX_LENGTH = 255

TRUE_VALUES = {"true", "1", "yes", "on"}
FALSE_VALUES = {"false", "0", "no", "off"}


def sanitize_text(text: Optional[str], max_length: Optional[int] = None) -> str:
    """Strip surrounding whitespace and control characters, enforce max length."""
    if text is None:
        return ""
    text = str(text).strip()
    # Remove control characters except newlines and tabs
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)
    if max_length and len(text) > max_length:
        text = text[:max_length]
    return text


def _required_name(value, entity, max_length) -> str:
    name = sanitize_text(value, max_length)
    if not name:
        raise ValidationError("Name is required.", entity=entity, details={"name": "required"})
    return name


def _optional_text(value) -> Optional[str]:
    if value is None:
        return None
    text = sanitize_text(value)
    return text or None


def _choice(value, choices, field_name, entity) -> str:
    if value not in dict(choices):
        raise ValidationError(
            f"Invalid {field_name}: {value!r}",
            entity=entity,
            details={field_name: "invalid choice"},
        )
    return value


def _date(value, field_name) -> date:
    try:
        parsed = as_date(value)
    except (TypeError, ValueError):
        parsed = None
    if parsed is None:
        raise ValidationError(
            f"Invalid {field_name}: {value!r}",
            entity="task",
            details={field_name: "invalid date"},
        )
    return parsed


def _id_list(value, field_name, entity) -> list:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError(
            f"{field_name} must be a list.",
            entity=entity,
            details={field_name: "expected a list"},
        )
    # Keep order, drop duplicates
    seen = []
    for item in value:
        item = str(item)
        if item not in seen:
            seen.append(item)
    return seen


def check_date_order(start_date: date, end_date: date):
    if end_date < start_date:
        raise ValidationError(
            "end_date must not be before start_date.",
            entity="task",
            details={"end_date": "before start_date"},
        )


# ─────────────────────────────────────────────────────────────
# Projects
# ─────────────────────────────────────────────────────────────

def clean_project_data(data: dict, partial: bool = False) -> dict:
    """
    Validate a project payload. ``partial`` validates only the keys present
    (updates); otherwise defaults are filled in (creates).
    """
    cleaned = {}

    if not partial or "name" in data:
        cleaned["name"] = _required_name(data.get("name"), "project", PROJECT_NAME_MAX_LENGTH)
    if not partial or "description" in data:
        cleaned["description"] = _optional_text(data.get("description"))
    if not partial or "status" in data:
        cleaned["status"] = _choice(
            data.get("status") or Project.STATUS_ACTIVE,
            Project.STATUS_CHOICES,
            "status",
            "project",
        )
    if not partial or "team_members" in data:
        cleaned["team_members"] = _id_list(data.get("team_members"), "team_members", "project")

    return cleaned


# ─────────────────────────────────────────────────────────────
# Tasks
# ─────────────────────────────────────────────────────────────

def clean_task_data(data: dict, partial: bool = False) -> dict:
    """
    Validate a task payload.

    Creates get the defaults the UI relies on (type ``task``, status
    ``not-started``, both dates today when omitted). Date ordering is
    checked here when both dates are present; partial updates are checked
    again against the merged task with ``check_date_order``.
    """
    cleaned = {}

    if not partial or "name" in data:
        cleaned["name"] = _required_name(data.get("name"), "task", TASK_NAME_MAX_LENGTH)
    if not partial or "description" in data:
        cleaned["description"] = _optional_text(data.get("description"))
    if not partial or "task_type" in data:
        cleaned["task_type"] = _choice(
            data.get("task_type") or Task.TYPE_TASK, Task.TYPE_CHOICES, "task_type", "task"
        )
    if not partial or "status" in data:
        cleaned["status"] = _choice(
            data.get("status") or Task.STATUS_NOT_STARTED, Task.STATUS_CHOICES, "status", "task"
        )

    today = timezone.now().date()
    if not partial or "start_date" in data:
        value = data.get("start_date")
        cleaned["start_date"] = _date(value, "start_date") if value not in (None, "") else today
    if not partial or "end_date" in data:
        value = data.get("end_date")
        cleaned["end_date"] = _date(value, "end_date") if value not in (None, "") else today
    if "start_date" in cleaned and "end_date" in cleaned:
        check_date_order(cleaned["start_date"], cleaned["end_date"])

    if not partial or "assignee" in data:
        assignee = data.get("assignee")
        cleaned["assignee"] = str(assignee) if assignee not in (None, "") else None
    if not partial or "progress" in data:
        try:
            cleaned["progress"] = clamp_progress(data.get("progress") or 0)
        except (TypeError, ValueError, OverflowError):
            raise ValidationError(
                f"Invalid progress: {data.get('progress')!r}",
                entity="task",
                details={"progress": "not a number"},
            )
    if not partial or "dependencies" in data:
        cleaned["dependencies"] = _id_list(data.get("dependencies"), "dependencies", "task")
    if not partial or "custom_fields" in data:
        values = data.get("custom_fields") or {}
        if not isinstance(values, dict):
            raise ValidationError(
                "custom_fields must be an object.",
                entity="task",
                details={"custom_fields": "expected an object"},
            )
        cleaned["custom_fields"] = {str(key): value for key, value in values.items()}

    return cleaned


def check_dependencies(task_id: str, dependencies: list, project: Project):
    """Dependencies must name other tasks of the same project."""
    known = {task.id for task in project.tasks}
    for dependency_id in dependencies:
        if dependency_id == task_id:
            raise ValidationError(
                "A task cannot depend on itself.",
                entity="task",
                entity_id=task_id,
                details={"dependencies": dependency_id},
            )
        if dependency_id not in known:
            raise ValidationError(
                f"Unknown dependency: {dependency_id}",
                entity="task",
                entity_id=task_id,
                details={"dependencies": dependency_id},
            )


# ─────────────────────────────────────────────────────────────
# Custom fields
# ─────────────────────────────────────────────────────────────

def normalize_custom_value(field_type: str, value, options=None) -> Optional[str]:
    """
    Normalise a custom-field value to its stored text form.

    number -> decimal text, date -> ISO date, boolean -> "true"/"false",
    select -> one of ``options``, text -> stripped text.
    Raises ValidationError when the value does not fit ``field_type``.
    """
    if value is None or value == "":
        return None

    if field_type == CustomField.FIELD_NUMBER:
        if isinstance(value, bool):
            raise ValidationError(f"Not a number: {value!r}", entity="custom_field")
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"Not a number: {value!r}", entity="custom_field")
        if not number.is_finite():
            raise ValidationError(f"Not a number: {value!r}", entity="custom_field")
        return format(number.normalize(), "f") if number != number.to_integral_value() else str(int(number))

    if field_type == CustomField.FIELD_DATE:
        try:
            parsed = as_date(value)
        except (TypeError, ValueError):
            parsed = None
        if parsed is None:
            raise ValidationError(f"Not a date: {value!r}", entity="custom_field")
        return parsed.isoformat()

    if field_type == CustomField.FIELD_BOOLEAN:
        if isinstance(value, bool):
            return "true" if value else "false"
        text = str(value).strip().lower()
        if text in TRUE_VALUES:
            return "true"
        if text in FALSE_VALUES:
            return "false"
        raise ValidationError(f"Not a boolean: {value!r}", entity="custom_field")

    if field_type == CustomField.FIELD_SELECT:
        text = str(value)
        if text not in (options or []):
            raise ValidationError(f"{value!r} is not one of the options.", entity="custom_field")
        return text

    return sanitize_text(value)


def cast_custom_value(field_type: str, text: Optional[str]):
    """Read-side cast of a stored custom-field text value."""
    if text is None:
        return None
    if field_type == CustomField.FIELD_NUMBER:
        number = Decimal(text)
        return int(number) if number == number.to_integral_value() else float(number)
    if field_type == CustomField.FIELD_DATE:
        return as_date(text)
    if field_type == CustomField.FIELD_BOOLEAN:
        return text == "true"
    return text


def clean_custom_field_data(data: dict, partial: bool = False, existing: Optional[CustomField] = None) -> dict:
    """
    Validate a custom-field definition. On updates the merged definition
    (existing values overlaid with ``data``) must still be consistent.
    """
    cleaned = {}

    if not partial or "name" in data:
        cleaned["name"] = _required_name(data.get("name"), "custom_field", 255)
    if not partial or "field_type" in data:
        cleaned["field_type"] = _choice(
            data.get("field_type"), CustomField.FIELD_TYPE_CHOICES, "field_type", "custom_field"
        )
    if not partial or "required" in data:
        cleaned["required"] = bool(data.get("required") or False)
    if not partial or "options" in data:
        options = data.get("options")
        if options is not None:
            if not isinstance(options, (list, tuple)):
                raise ValidationError(
                    "options must be a list.", entity="custom_field", details={"options": "expected a list"}
                )
            options = [str(option) for option in options]
        cleaned["options"] = options

    field_type = cleaned.get("field_type", existing.field_type if existing else None)
    options = cleaned.get("options", existing.options if existing else None)

    if field_type == CustomField.FIELD_SELECT and not options:
        raise ValidationError(
            "Select fields need at least one option.",
            entity="custom_field",
            details={"options": "required for select"},
        )
    if field_type != CustomField.FIELD_SELECT and "options" in cleaned:
        cleaned["options"] = None

    if not partial or "default_value" in data or "field_type" in cleaned or "options" in cleaned:
        raw_default = data.get("default_value") if "default_value" in data else (
            existing.default_value if existing else None
        )
        cleaned["default_value"] = normalize_custom_value(field_type, raw_default, options)

    return cleaned


def apply_custom_field_values(values: dict, fields: list) -> dict:
    """
    Normalise a task's custom-field values against the project's definitions.

    Known fields are cast by the field contract; a required field without a
    value takes its default or the write fails. Unknown keys pass through.
    """
    result = dict(values or {})
    for custom_field in fields:
        if custom_field.id in result and result[custom_field.id] not in (None, ""):
            try:
                result[custom_field.id] = normalize_custom_value(
                    custom_field.field_type, result[custom_field.id], custom_field.options
                )
            except ValidationError as exc:
                exc.details = {"custom_fields": {custom_field.id: exc.message}}
                raise exc.with_context(entity="task")
        elif custom_field.required:
            if custom_field.default_value is None:
                raise ValidationError(
                    f"Custom field '{custom_field.name}' is required.",
                    entity="task",
                    details={"custom_fields": {custom_field.id: "required"}},
                )
            result[custom_field.id] = custom_field.default_value
    return result
