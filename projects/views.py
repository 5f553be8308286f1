# projects/views.py
from django.apps import apps
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .entities import Principal
from .serializers import (
    CustomFieldInputSerializer,
    ProgressSerializer,
    ProjectInputSerializer,
    TaskImportSerializer,
    TaskInputSerializer,
    custom_field_payload,
    project_payload,
)
from .services import ProjectService, TaskService


class TrackerAPIView(APIView):
    """
    Base for the tracker endpoints: resolves the acting principal and hands
    the process-wide storage backend to the services.
    """
    permission_classes = [IsAuthenticated]

    def get_storage(self):
        return apps.get_app_config("projects").storage

    def get_principal(self) -> Principal:
        auth = self.request.auth
        # Supabase tokens: the principal is the token subject, and RLS needs the token itself
        if isinstance(auth, dict) and auth.get("sub"):
            return Principal(id=auth["sub"], access_token=auth.get("access_token"))
        return Principal(id=str(self.request.user.pk))

    def project_service(self) -> ProjectService:
        return ProjectService(self.get_storage(), self.get_principal())

    def task_service(self) -> TaskService:
        return TaskService(self.get_storage(), self.get_principal())

    def validated(self, serializer_class, partial=False):
        serializer = serializer_class(data=self.request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        return dict(serializer.validated_data)


# ─────────────────────────────────────────────────────────────
# Projects
# ─────────────────────────────────────────────────────────────

class ProjectListView(TrackerAPIView):

    def get(self, request):
        projects = self.project_service().list_projects()
        return Response([project_payload(project) for project in projects])

    def post(self, request):
        project = self.project_service().create_project(self.validated(ProjectInputSerializer))
        return Response(project_payload(project), status=status.HTTP_201_CREATED)


class ProjectDetailView(TrackerAPIView):

    def get(self, request, project_id):
        return Response(project_payload(self.project_service().get_project(project_id)))

    def patch(self, request, project_id):
        changes = self.validated(ProjectInputSerializer, partial=True)
        project = self.project_service().update_project(project_id, changes)
        return Response(project_payload(project))

    put = patch

    def delete(self, request, project_id):
        self.project_service().delete_project(project_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ProjectActivityView(TrackerAPIView):

    def get(self, request, project_id):
        limit = request.query_params.get("limit")
        limit = int(limit) if limit and limit.isdigit() else None
        entries = self.project_service().list_activity(project_id, limit)
        return Response([entry.to_dict() for entry in entries])


class DemoDataView(TrackerAPIView):
    """
    POST /api/projects/demo/
    Seed the sample project (local backend only)
    """

    def post(self, request):
        project = self.project_service().initialize_demo_data()
        if project is None:
            return Response({"seeded": False})
        return Response({"seeded": True, "project": project_payload(project)}, status=status.HTTP_201_CREATED)


# ─────────────────────────────────────────────────────────────
# Tasks
# ─────────────────────────────────────────────────────────────

class TaskListView(TrackerAPIView):

    def get(self, request, project_id):
        tasks = self.task_service().list_tasks(project_id)
        return Response([task.to_dict() for task in tasks])

    def post(self, request, project_id):
        task = self.task_service().create_task(project_id, self.validated(TaskInputSerializer))
        return Response(task.to_dict(), status=status.HTTP_201_CREATED)


class TaskImportView(TrackerAPIView):
    """
    POST /api/projects/<id>/tasks/import/
    Body: {"tasks": [{...}, ...]}

    ``atomic`` in the response tells the caller which policy applied:
    all-or-nothing (server backends) or best-effort (local backend), where
    ``count`` may be lower than ``requested``.
    """

    def post(self, request, project_id):
        specs = self.validated(TaskImportSerializer)["tasks"]
        service = self.task_service()
        created = service.import_tasks(project_id, specs)
        return Response(
            {
                "created": [task.to_dict() for task in created],
                "count": len(created),
                "requested": len(specs),
                "atomic": service.storage.atomic_imports,
            },
            status=status.HTTP_201_CREATED,
        )


class TaskDetailView(TrackerAPIView):

    def get(self, request, project_id, task_id):
        return Response(self.task_service().get_task(project_id, task_id).to_dict())

    def patch(self, request, project_id, task_id):
        changes = self.validated(TaskInputSerializer, partial=True)
        task = self.task_service().update_task(project_id, task_id, changes)
        return Response(task.to_dict())

    put = patch

    def delete(self, request, project_id, task_id):
        self.task_service().delete_task(project_id, task_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class TaskProgressView(TrackerAPIView):

    def post(self, request, project_id, task_id):
        progress = self.validated(ProgressSerializer)["progress"]
        task = self.task_service().update_progress(project_id, task_id, progress)
        return Response(task.to_dict())

    patch = post


class TaskDependenciesView(TrackerAPIView):

    def get(self, request, project_id, task_id):
        service = self.task_service()
        dependencies = service.get_dependencies(project_id, task_id)
        return Response(
            {
                "dependencies": [task.to_dict() for task in dependencies],
                "can_start": service.can_start_task(project_id, task_id),
            }
        )


# ─────────────────────────────────────────────────────────────
# Custom fields
# ─────────────────────────────────────────────────────────────

class CustomFieldListView(TrackerAPIView):

    def get(self, request, project_id):
        fields = self.project_service().list_custom_fields(project_id)
        return Response([custom_field_payload(cf) for cf in fields])

    def post(self, request, project_id):
        custom_field = self.project_service().create_custom_field(
            project_id, self.validated(CustomFieldInputSerializer)
        )
        return Response(custom_field_payload(custom_field), status=status.HTTP_201_CREATED)


class CustomFieldDetailView(TrackerAPIView):

    def patch(self, request, project_id, field_id):
        changes = self.validated(CustomFieldInputSerializer, partial=True)
        custom_field = self.project_service().update_custom_field(project_id, field_id, changes)
        return Response(custom_field_payload(custom_field))

    def delete(self, request, project_id, field_id):
        self.project_service().delete_custom_field(project_id, field_id)
        return Response(status=status.HTTP_204_NO_CONTENT)
