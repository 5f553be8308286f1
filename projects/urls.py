from django.urls import path

from .views import (
    CustomFieldDetailView,
    CustomFieldListView,
    DemoDataView,
    ProjectActivityView,
    ProjectDetailView,
    ProjectListView,
    TaskDependenciesView,
    TaskDetailView,
    TaskImportView,
    TaskListView,
    TaskProgressView,
)

urlpatterns = [
    path("projects/", ProjectListView.as_view(), name="project-list"),
    path("projects/demo/", DemoDataView.as_view(), name="project-demo"),
    path("projects/<str:project_id>/", ProjectDetailView.as_view(), name="project-detail"),
    path("projects/<str:project_id>/activity/", ProjectActivityView.as_view(), name="project-activity"),
    path("projects/<str:project_id>/tasks/", TaskListView.as_view(), name="task-list"),
    path("projects/<str:project_id>/tasks/import/", TaskImportView.as_view(), name="task-import"),
    path("projects/<str:project_id>/tasks/<str:task_id>/", TaskDetailView.as_view(), name="task-detail"),
    path(
        "projects/<str:project_id>/tasks/<str:task_id>/progress/",
        TaskProgressView.as_view(),
        name="task-progress",
    ),
    path(
        "projects/<str:project_id>/tasks/<str:task_id>/dependencies/",
        TaskDependenciesView.as_view(),
        name="task-dependencies",
    ),
    path("projects/<str:project_id>/custom-fields/", CustomFieldListView.as_view(), name="custom-field-list"),
    path(
        "projects/<str:project_id>/custom-fields/<str:field_id>/",
        CustomFieldDetailView.as_view(),
        name="custom-field-detail",
    ),
]
