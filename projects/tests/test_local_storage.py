import json
from unittest.mock import patch

from django.test import TestCase

from core.exceptions import BackendUnavailableError, NotFoundError
from projects.entities import Task
from projects.services import ProjectService, TaskService
from projects.storage.local import ACTIVITY_KEY, PROJECTS_KEY, LocalKeyValueStore, LocalStorage

from .helpers import TrackerTestMixin, make_user, principal_for, task_spec


class LocalStorageTests(TrackerTestMixin, TestCase):
    def setUp(self):
        self.owner = make_user("owner")
        self.member = make_user("member")
        self.storage = self.use_storage(self.make_local_storage())
        self.principal = principal_for(self.owner)
        self.projects = ProjectService(self.storage, self.principal)
        self.tasks = TaskService(self.storage, self.principal)
        self.project = self.projects.create_project({"name": "Demo", "team_members": [str(self.member.pk)]})

    def test_state_lives_under_two_keys(self):
        self.tasks.create_task(self.project.id, task_spec("Embedded"))
        store = self.storage.store

        with open(store.path_for(PROJECTS_KEY)) as handle:
            projects = json.load(handle)
        with open(store.path_for(ACTIVITY_KEY)) as handle:
            activity = json.load(handle)

        self.assertEqual(projects[0]["id"], self.project.id)
        self.assertEqual(projects[0]["tasks"][0]["name"], "Embedded")
        self.assertEqual([entry["action"] for entry in activity], ["task_created", "project_created"])

    def test_state_survives_a_new_instance(self):
        self.tasks.create_task(self.project.id, task_spec("Persisted"))
        reopened = LocalStorage(LocalKeyValueStore(self.storage.store.directory, self.storage.store.scope))

        project = reopened.get_project(self.principal, self.project.id)
        self.assertEqual([t.name for t in project.tasks], ["Persisted"])

    def test_scopes_are_independent(self):
        other = LocalStorage(LocalKeyValueStore(self.storage.store.directory, "other-scope"))
        self.assertEqual(other.list_projects(self.principal), [])

    def test_projects_keep_insertion_order(self):
        second = self.projects.create_project({"name": "Second"})
        self.projects.update_project(self.project.id, {"description": "touched"})
        self.assertEqual([p.id for p in self.projects.list_projects()], [self.project.id, second.id])

    def test_unreadable_store_is_unavailable(self):
        path = self.storage.store.path_for(PROJECTS_KEY)
        path.write_text("{not json")
        broken = LocalStorage(LocalKeyValueStore(self.storage.store.directory, self.storage.store.scope))
        with self.assertRaises(BackendUnavailableError):
            broken.list_projects(self.principal)

    def test_failed_write_is_not_kept_in_memory(self):
        task = self.tasks.create_task(self.project.id, task_spec("Stable"))

        with patch.object(self.storage.store, "set", side_effect=BackendUnavailableError()):
            with self.assertRaises(BackendUnavailableError):
                self.projects.update_project(self.project.id, {"name": "Changed"})
            with self.assertRaises(BackendUnavailableError):
                self.tasks.update_progress(self.project.id, task.id, 60)

        project = self.projects.get_project(self.project.id)
        self.assertEqual(project.name, "Demo")
        self.assertEqual(project.task_by_id(task.id).progress, 0)

        # A later successful write does not carry the failed changes to disk
        self.projects.update_project(self.project.id, {"description": "saved"})
        reopened = LocalStorage(LocalKeyValueStore(self.storage.store.directory, self.storage.store.scope))
        self.assertEqual(reopened.get_project(self.principal, self.project.id).name, "Demo")

    def test_delete_cascades_and_keeps_activity(self):
        created = [self.tasks.create_task(self.project.id, task_spec(f"T{i}")) for i in range(3)]
        self.projects.delete_project(self.project.id)

        with self.assertRaises(NotFoundError):
            self.projects.get_project(self.project.id)

        entries = [e for e in self.storage._activity if e.project_id == self.project.id]
        task_entries = [e for e in entries if e.action == "task_created"]
        self.assertEqual(len(task_entries), 3)
        self.assertTrue(all(e.task_id is None for e in task_entries))
        self.assertEqual(entries[0].action, "project_deleted")
        self.assertEqual(entries[0].changes["task_count"], len(created))

    def test_import_is_best_effort(self):
        specs = [task_spec(f"T{i}") for i in range(5)]
        specs[2] = task_spec("Bad", start_date="2025-02-10", end_date="2025-02-01")

        created = self.tasks.import_tasks(self.project.id, specs)

        self.assertEqual([t.name for t in created], ["T0", "T1", "T3", "T4"])
        self.assertEqual(len(self.tasks.list_tasks(self.project.id)), 4)
        imported = self.projects.list_activity(self.project.id)[0]
        self.assertEqual(imported.action, "tasks_imported")
        self.assertEqual(imported.changes, {"count": 4, "requested": 5})

    def test_import_skips_unparseable_progress(self):
        specs = [task_spec("A"), task_spec("B", progress="1e400"), task_spec("C")]

        created = self.tasks.import_tasks(self.project.id, specs)

        self.assertEqual([t.name for t in created], ["A", "C"])
        self.assertEqual([t.name for t in self.tasks.list_tasks(self.project.id)], ["A", "C"])
        imported = self.projects.list_activity(self.project.id)[0]
        self.assertEqual(imported.changes, {"count": 2, "requested": 3})

    def test_principal_deletion_clears_references(self):
        task = self.tasks.create_task(self.project.id, task_spec("Mine", assignee=str(self.owner.pk)))
        owner_id = str(self.owner.pk)
        self.owner.delete()

        member = principal_for(self.member)
        project = self.storage.get_project(member, self.project.id)
        self.assertIsNone(project.created_by)
        self.assertIsNone(project.task_by_id(task.id).assignee)
        entries = self.storage.list_activity(member, self.project.id)
        self.assertTrue(entries)
        self.assertFalse(any(e.user_id == owner_id for e in entries))

    def test_deleted_member_loses_membership(self):
        member_id = str(self.member.pk)
        self.member.delete()

        project = self.projects.get_project(self.project.id)
        self.assertNotIn(member_id, project.team_members)

    def test_deleting_task_clears_activity_reference(self):
        task = self.tasks.create_task(self.project.id, task_spec("Short lived"))
        self.tasks.delete_task(self.project.id, task.id)

        entries = self.projects.list_activity(self.project.id)
        self.assertEqual(entries[0].action, "task_deleted")
        self.assertEqual(entries[0].changes["task_id"], task.id)
        self.assertFalse(any(e.task_id == task.id for e in entries))

    def test_progress_status_round_trip(self):
        task = self.tasks.create_task(self.project.id, task_spec("Status", status=Task.STATUS_ON_HOLD))
        task = self.tasks.update_progress(self.project.id, task.id, 50)
        self.assertEqual(task.status, Task.STATUS_ON_HOLD)
        task = self.tasks.update_progress(self.project.id, task.id, 100)
        self.assertEqual(task.status, Task.STATUS_COMPLETED)
