from django.apps import AppConfig


class ProjectsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "projects"

    def ready(self):
        from .storage import build_storage

        # The one backend this process runs with; services receive it explicitly
        self.storage = build_storage()

        import projects.signals  # noqa: F401
