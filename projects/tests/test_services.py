from unittest.mock import patch

from django.test import TestCase

from core.exceptions import NotFoundError, TransactionError, ValidationError
from projects.entities import Task
from projects.services import ProjectService, TaskService
from projects.storage.sql import SqlStorage

from .helpers import TrackerTestMixin, make_user, principal_for, task_spec


class TaskServiceTests(TrackerTestMixin, TestCase):
    def setUp(self):
        self.owner = make_user("owner")
        self.storage = self.use_storage(self.make_local_storage())
        self.projects = ProjectService(self.storage, principal_for(self.owner))
        self.tasks = TaskService(self.storage, principal_for(self.owner))
        self.project = self.projects.create_project({"name": "Services"})

    def test_explicit_status_wins_over_progress(self):
        task = self.tasks.create_task(self.project.id, task_spec("T"))
        task = self.tasks.update_task(self.project.id, task.id, {"progress": 100, "status": Task.STATUS_IMPACTED})
        self.assertEqual(task.status, Task.STATUS_IMPACTED)
        self.assertEqual(task.progress, 100)

    def test_progress_boundaries(self):
        task = self.tasks.create_task(self.project.id, task_spec("T"))
        expected = [(1, "in-progress"), (99, "in-progress"), (100, "completed"), (99, "in-progress"), (0, "not-started")]
        for progress, status in expected:
            task = self.tasks.update_progress(self.project.id, task.id, progress)
            self.assertEqual((task.progress, task.status), (progress, status))

    def test_can_start_follows_dependencies(self):
        first = self.tasks.create_task(self.project.id, task_spec("First"))
        second = self.tasks.create_task(self.project.id, task_spec("Second"))
        last = self.tasks.create_task(self.project.id, task_spec("Last", dependencies=[first.id, second.id]))

        self.assertTrue(self.tasks.can_start_task(self.project.id, first.id))
        self.assertFalse(self.tasks.can_start_task(self.project.id, last.id))

        self.tasks.update_progress(self.project.id, first.id, 100)
        self.assertFalse(self.tasks.can_start_task(self.project.id, last.id))

        self.tasks.update_task(self.project.id, second.id, {"status": Task.STATUS_DONE})
        self.assertTrue(self.tasks.can_start_task(self.project.id, last.id))
        self.assertEqual(
            [t.id for t in self.tasks.get_dependencies(self.project.id, last.id)],
            [first.id, second.id],
        )

    def test_dependencies_must_be_project_tasks(self):
        task = self.tasks.create_task(self.project.id, task_spec("T"))
        with self.assertRaises(ValidationError):
            self.tasks.update_task(self.project.id, task.id, {"dependencies": [task.id]})
        with self.assertRaises(ValidationError):
            self.tasks.create_task(self.project.id, task_spec("U", dependencies=["no-such-task"]))

    def test_dependency_cycles_are_rejected(self):
        a = self.tasks.create_task(self.project.id, task_spec("A"))
        b = self.tasks.create_task(self.project.id, task_spec("B", dependencies=[a.id]))
        with self.assertRaises(ValidationError) as ctx:
            self.tasks.update_task(self.project.id, a.id, {"dependencies": [b.id]})
        self.assertEqual(ctx.exception.details["dependencies"], [a.id, b.id, a.id])
        self.assertEqual(self.tasks.get_task(self.project.id, a.id).dependencies, [])

    def test_required_custom_field_default_is_applied(self):
        field = self.projects.create_custom_field(self.project.id, {
            "name": "Priority", "field_type": "select", "required": True,
            "options": ["Low", "High"], "default_value": "Low",
        })
        task = self.tasks.create_task(self.project.id, task_spec("T"))
        self.assertEqual(task.custom_fields, {field.id: "Low"})

        with self.assertRaises(ValidationError):
            self.tasks.update_task(self.project.id, task.id, {"custom_fields": {field.id: "Urgent"}})

    def test_field_type_change_logs_warning(self):
        field = self.projects.create_custom_field(self.project.id, {"name": "Size", "field_type": "text"})
        with self.assertLogs("tracker.projects", level="WARNING") as logs:
            updated = self.projects.update_custom_field(self.project.id, field.id, {"field_type": "number"})
        self.assertEqual(updated.field_type, "number")
        self.assertIn("existing task values", logs.output[0])

    def test_activity_failure_does_not_undo_mutation(self):
        with patch.object(self.storage, "append_activity", side_effect=TransactionError()):
            with self.assertLogs("tracker.projects", level="WARNING"):
                task = self.tasks.create_task(self.project.id, task_spec("Kept"))
        self.assertEqual(self.tasks.get_task(self.project.id, task.id).name, "Kept")

    def test_errors_carry_context(self):
        with self.assertRaises(NotFoundError) as ctx:
            self.tasks.get_task(self.project.id, "missing")
        self.assertEqual(ctx.exception.entity, "task")
        self.assertEqual(ctx.exception.operation, "get")

    def test_one_activity_entry_per_mutation(self):
        task = self.tasks.create_task(self.project.id, task_spec("T"))
        self.tasks.update_task(self.project.id, task.id, {"name": "T2"})
        self.tasks.delete_task(self.project.id, task.id)
        actions = [e.action for e in self.projects.list_activity(self.project.id)]
        self.assertEqual(actions, ["task_deleted", "task_updated", "task_created", "project_created"])


class DemoDataTests(TrackerTestMixin, TestCase):
    def setUp(self):
        self.user = make_user("demo")

    def test_seeds_once_on_local_backend(self):
        storage = self.use_storage(self.make_local_storage())
        service = ProjectService(storage, principal_for(self.user))

        project = service.initialize_demo_data()
        self.assertEqual(len(project.tasks), 3)
        self.assertEqual(project.custom_fields[0].name, "Priority")
        tasks = TaskService(storage, principal_for(self.user))
        self.assertTrue(tasks.can_start_task(project.id, project.tasks[1].id))
        self.assertFalse(tasks.can_start_task(project.id, project.tasks[2].id))

        self.assertIsNone(service.initialize_demo_data())

    def test_skipped_on_server_backends(self):
        service = ProjectService(SqlStorage(), principal_for(self.user))
        self.assertIsNone(service.initialize_demo_data())
