from datetime import date, timedelta

from django.test import TestCase
from django.utils import timezone

from core.exceptions import DuplicateEntityError, NotFoundError, TransactionError, ValidationError
from projects.entities import Project, Task, generate_id
from projects.models import ActivityLog
from projects.models import Project as ProjectRow
from projects.models import Task as TaskRow
from projects.services import ProjectService, TaskService
from projects.storage.sql import SqlStorage

from .helpers import TrackerTestMixin, make_user, principal_for, task_spec


class SqlStorageTests(TrackerTestMixin, TestCase):
    def setUp(self):
        self.owner = make_user("owner")
        self.member = make_user("member")
        self.storage = self.use_storage(SqlStorage(activity_limit=50))
        self.principal = principal_for(self.owner)
        self.projects = ProjectService(self.storage, self.principal)
        self.tasks = TaskService(self.storage, self.principal)
        self.project = self.projects.create_project({
            "name": "Apollo",
            "team_members": [str(self.member.pk)],
        })

    def test_round_trip_shape(self):
        task = self.tasks.create_task(self.project.id, task_spec(
            "Design", assignee=str(self.member.pk), progress=10, custom_fields={"k": "v"},
        ))
        project = self.projects.get_project(self.project.id)

        self.assertEqual(project.created_by, str(self.owner.pk))
        self.assertEqual(project.team_members, [str(self.member.pk)])
        self.assertEqual(project.tasks[0].id, task.id)
        self.assertEqual(project.tasks[0].start_date, date(2025, 1, 1))
        self.assertEqual(project.tasks[0].assignee, str(self.member.pk))
        self.assertEqual(project.tasks[0].status, Task.STATUS_IN_PROGRESS)
        self.assertEqual(project.tasks[0].custom_fields, {"k": "v"})
        self.assertIsNotNone(project.created_date.tzinfo)

    def test_projects_listed_by_last_modified_desc(self):
        second = self.projects.create_project({"name": "Second"})
        self.assertEqual([p.id for p in self.projects.list_projects()], [second.id, self.project.id])

        self.projects.update_project(self.project.id, {"description": "touched"})
        self.assertEqual([p.id for p in self.projects.list_projects()], [self.project.id, second.id])

    def test_delete_cascades_and_keeps_activity(self):
        created = [self.tasks.create_task(self.project.id, task_spec(f"T{i}")) for i in range(3)]
        self.projects.delete_project(self.project.id)

        self.assertFalse(TaskRow.objects.filter(id__in=[t.id for t in created]).exists())
        self.assertFalse(ProjectRow.objects.filter(id=self.project.id).exists())

        entries = ActivityLog.objects.filter(project_id=self.project.id)
        self.assertEqual(entries.filter(action="task_created").count(), 3)
        self.assertFalse(entries.filter(task__isnull=False).exists())
        self.assertTrue(entries.filter(action="project_deleted").exists())

    def test_rejected_update_leaves_task_unchanged(self):
        task = self.tasks.create_task(self.project.id, task_spec("Build"))
        with self.assertRaises(ValidationError):
            self.tasks.update_task(self.project.id, task.id, {"end_date": date(2024, 12, 1)})
        self.assertEqual(self.tasks.get_task(self.project.id, task.id).end_date, date(2025, 1, 10))

    def test_import_is_all_or_nothing(self):
        specs = [task_spec(f"T{i}") for i in range(5)]
        specs[2] = task_spec("Bad", start_date="2025-02-10", end_date="2025-02-01")

        with self.assertRaises(ValidationError) as ctx:
            self.tasks.import_tasks(self.project.id, specs)
        self.assertEqual(ctx.exception.details["index"], 2)
        self.assertEqual(self.tasks.list_tasks(self.project.id), [])

    def test_import_creates_batch_in_order(self):
        created = self.tasks.import_tasks(self.project.id, [task_spec(f"T{i}") for i in range(5)])
        self.assertEqual([t.name for t in created], ["T0", "T1", "T2", "T3", "T4"])
        self.assertEqual(
            ActivityLog.objects.get(project_id=self.project.id, action="tasks_imported").changes,
            {"count": 5, "requested": 5},
        )

    def test_failed_statement_rolls_back_the_batch(self):
        now = timezone.now()
        good = Task(id=generate_id(), project_id=self.project.id, name="ok",
                    start_date=date(2025, 1, 1), end_date=date(2025, 1, 2), created_at=now, updated_at=now)
        # Bypasses service validation so the database CHECK constraint fires
        bad = Task(id=generate_id(), project_id=self.project.id, name="bad",
                   start_date=date(2025, 1, 5), end_date=date(2025, 1, 1),
                   created_at=now + timedelta(microseconds=1), updated_at=now)

        with self.assertRaises(TransactionError):
            self.storage.create_tasks(self.principal, self.project.id, [good, bad])
        self.assertFalse(TaskRow.objects.filter(project_id=self.project.id).exists())

    def test_duplicate_id_is_a_conflict(self):
        now = timezone.now()
        clone = Project(id=self.project.id, name="Clone", created_by=self.principal.id,
                        created_date=now, last_modified=now)
        with self.assertRaises(DuplicateEntityError):
            self.storage.create_project(self.principal, clone)

    def test_unknown_assignee_rejected(self):
        with self.assertRaises(ValidationError):
            self.tasks.create_task(self.project.id, task_spec("T", assignee="999999"))

    def test_principal_deletion_clears_references(self):
        task = self.tasks.create_task(self.project.id, task_spec("Owned", assignee=str(self.owner.pk)))
        self.owner.delete()

        project = ProjectRow.objects.get(id=self.project.id)
        self.assertIsNone(project.owner_id)
        self.assertIsNone(TaskRow.objects.get(id=task.id).assignee_id)
        self.assertTrue(ActivityLog.objects.filter(project_id=self.project.id).exists())
        self.assertFalse(ActivityLog.objects.filter(user__isnull=False).exists())

        # The member still has access through team_members
        member_view = ProjectService(self.storage, principal_for(self.member))
        self.assertIsNone(member_view.get_project(self.project.id).created_by)

    def test_deleted_member_loses_membership(self):
        member_id = str(self.member.pk)
        self.member.delete()

        self.assertEqual(ProjectRow.objects.get(id=self.project.id).team_members, [])
        self.assertNotIn(member_id, self.projects.get_project(self.project.id).team_members)

    def test_list_projects_only_returns_accessible_rows(self):
        outsider = make_user("outsider")
        outsider_projects = ProjectService(self.storage, principal_for(outsider))
        theirs = outsider_projects.create_project({"name": "Theirs"})

        self.assertEqual([p.id for p in self.projects.list_projects()], [self.project.id])
        self.assertEqual([p.id for p in outsider_projects.list_projects()], [theirs.id])
        member_view = ProjectService(self.storage, principal_for(self.member))
        self.assertEqual([p.id for p in member_view.list_projects()], [self.project.id])

    def test_last_write_wins(self):
        task = self.tasks.create_task(self.project.id, task_spec("Shared"))
        member_tasks = TaskService(self.storage, principal_for(self.member))

        self.tasks.update_task(self.project.id, task.id, {"name": "Owner edit"})
        member_tasks.update_task(self.project.id, task.id, {"name": "Member edit"})
        self.assertEqual(self.tasks.get_task(self.project.id, task.id).name, "Member edit")

    def test_activity_newest_first_and_capped(self):
        task = self.tasks.create_task(self.project.id, task_spec("T"))
        for progress in (10, 20, 30):
            self.tasks.update_progress(self.project.id, task.id, progress)

        entries = self.projects.list_activity(self.project.id, limit=2)
        self.assertEqual(len(entries), 2)
        self.assertEqual(entries[0].changes, {"progress": 30})
        self.assertGreaterEqual(entries[0].created_at, entries[1].created_at)

    def test_missing_task_is_not_found(self):
        with self.assertRaises(NotFoundError):
            self.tasks.update_task(self.project.id, generate_id(), {"name": "ghost"})
