from types import SimpleNamespace

import httpx
from django.test import SimpleTestCase
from postgrest.exceptions import APIError

from core.exceptions import (
    AuthorizationError,
    BackendUnavailableError,
    DuplicateEntityError,
    NotFoundError,
    TransactionError,
    ValidationError,
)
from projects.entities import ActivityEntry, CustomField, Principal, Task
from projects.storage.supabase import SupabaseStorage


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.verb = None
        self.payload = None
        self.filters = []

    def _verb(self, verb, payload=None):
        self.verb = verb
        self.payload = payload
        return self

    def select(self, columns):
        return self._verb("select", columns)

    def insert(self, rows):
        return self._verb("insert", rows)

    def update(self, changes):
        return self._verb("update", changes)

    def delete(self):
        return self._verb("delete")

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column, desc=False):
        return self

    def limit(self, count):
        self.filters.append(("limit", count))
        return self

    def execute(self):
        self.client.calls.append((self.table, self.verb, self.payload))
        result = self.client.results.get((self.table, self.verb), [])
        if isinstance(result, Exception):
            raise result
        return SimpleNamespace(data=result)


class FakeClient:
    def __init__(self):
        self.results = {}
        self.calls = []
        self.tokens = []

    def factory(self, access_token):
        self.tokens.append(access_token)
        return self

    def table(self, name):
        return FakeQuery(self, name)


def api_error(code, message="rejected"):
    return APIError({"message": message, "code": code, "hint": None, "details": None})


def project_row(**extra):
    row = {
        "id": "p1", "name": "Remote", "description": "", "status": "active",
        "created_by": "u1", "team_members": [],
        "created_date": "2025-01-01T00:00:00+00:00", "last_modified": "2025-01-01T00:00:00+00:00",
        "tasks": [], "custom_fields": [],
    }
    row.update(extra)
    return row


def task_row(task_id, created_at):
    return {
        "id": task_id, "project_id": "p1", "name": task_id,
        "start_date": "2025-01-01", "end_date": "2025-01-02",
        "task_type": "task", "status": "not-started", "progress": 0,
        "dependencies": [], "custom_fields": {},
        "created_at": created_at, "updated_at": created_at,
    }


FIELD = CustomField(id="f1", project_id="p1", name="Size", field_type="text")


class SupabaseStorageTests(SimpleTestCase):
    def setUp(self):
        self.client = FakeClient()
        self.storage = SupabaseStorage(client_factory=self.client.factory)
        self.principal = Principal(id="u1", access_token="jwt-u1")

    def test_client_is_built_with_callers_token(self):
        self.storage.list_projects(self.principal)
        self.assertEqual(self.client.tokens, ["jwt-u1"])

    def test_embedded_tasks_come_back_in_creation_order(self):
        self.client.results[("projects", "select")] = [project_row(tasks=[
            task_row("late", "2025-01-03T00:00:00+00:00"),
            task_row("early", "2025-01-01T00:00:00+00:00"),
        ])]
        project = self.storage.get_project(self.principal, "p1")
        self.assertEqual([t.id for t in project.tasks], ["early", "late"])

    def test_invisible_project_is_not_found(self):
        with self.assertRaises(NotFoundError):
            self.storage.get_project(self.principal, "p1")

    def test_empty_update_result_is_not_found(self):
        with self.assertRaises(NotFoundError):
            self.storage.update_task(self.principal, "p1", "t1", {"name": "x"})
        with self.assertRaises(NotFoundError):
            self.storage.delete_project(self.principal, "p1")

    def test_error_codes_are_mapped(self):
        cases = [
            ("23505", DuplicateEntityError),
            ("23514", ValidationError),
            ("42501", AuthorizationError),
            ("PGRST116", NotFoundError),
            ("XX000", TransactionError),
        ]
        for code, expected in cases:
            with self.subTest(code=code):
                self.client.results[("custom_fields", "insert")] = api_error(code)
                with self.assertRaises(expected):
                    self.storage.create_custom_field(self.principal, FIELD)

    def test_transport_failure_is_unavailable(self):
        self.client.results[("projects", "select")] = httpx.ConnectError("refused")
        with self.assertRaises(BackendUnavailableError):
            self.storage.list_projects(self.principal)

    def test_delete_records_activity_first(self):
        self.client.results[("projects", "delete")] = [{"id": "p1"}]
        entry = ActivityEntry(id="a1", project_id="p1", action="project_deleted", user_id="u1")

        self.storage.delete_project(self.principal, "p1", activity=entry)

        verbs = [(table, verb) for table, verb, _ in self.client.calls]
        self.assertEqual(verbs, [("activity_log", "insert"), ("projects", "delete")])

    def test_delete_survives_activity_rejection(self):
        self.client.results[("activity_log", "insert")] = api_error("42501")
        self.client.results[("projects", "delete")] = [{"id": "p1"}]
        entry = ActivityEntry(id="a1", project_id="p1", action="project_deleted", user_id="u1")

        with self.assertLogs("tracker.storage", level="WARNING"):
            self.storage.delete_project(self.principal, "p1", activity=entry)

    def test_import_is_one_insert(self):
        tasks = [Task.from_dict(task_row(f"t{i}", f"2025-01-01T00:00:00.00000{i}+00:00")) for i in range(3)]
        self.client.results[("tasks", "insert")] = [t.to_dict() for t in tasks]

        created = self.storage.create_tasks(self.principal, "p1", tasks)

        self.assertEqual([t.id for t in created], ["t0", "t1", "t2"])
        inserts = [payload for table, verb, payload in self.client.calls if (table, verb) == ("tasks", "insert")]
        self.assertEqual(len(inserts), 1)
        self.assertEqual(len(inserts[0]), 3)

    def test_task_writes_are_single_statements(self):
        # projects.last_modified is bumped by a trigger, never by a second request
        self.client.results[("projects", "update")] = httpx.ConnectTimeout("timed out")
        tasks = [Task.from_dict(task_row(f"t{i}", "2025-01-01T00:00:00+00:00")) for i in range(3)]
        self.client.results[("tasks", "insert")] = [t.to_dict() for t in tasks]
        self.client.results[("tasks", "update")] = [tasks[0].to_dict() | {"name": "renamed"}]

        self.assertEqual(len(self.storage.create_tasks(self.principal, "p1", tasks)), 3)
        updated = self.storage.update_task(
            self.principal, "p1", "t0", {"name": "renamed", "updated_at": "2025-01-02T00:00:00+00:00"}
        )

        self.assertEqual(updated.name, "renamed")
        verbs = [(table, verb) for table, verb, _ in self.client.calls]
        self.assertEqual(verbs, [("tasks", "insert"), ("tasks", "update")])
