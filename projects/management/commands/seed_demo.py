from django.apps import apps
from django.core.management.base import BaseCommand, CommandError
from django.contrib.auth import get_user_model

from authx.services import register_principal
from core.constants import BACKEND_LOCAL
from projects.entities import Principal
from projects.services import ProjectService

User = get_user_model()


class Command(BaseCommand):
    help = "Seeds the sample project for a principal on the local (demo) backend"

    def add_arguments(self, parser):
        parser.add_argument("--email", default="demo@example.com")
        parser.add_argument("--password", default="demo-password")

    def handle(self, *args, **options):
        storage = apps.get_app_config("projects").storage
        if storage.name != BACKEND_LOCAL:
            raise CommandError(f"Demo data is only seeded on the local backend (running: {storage.name})")

        self.stdout.write("🌱 Seeding demo data...")

        user = User.objects.filter(email=options["email"]).first()
        if user is None:
            user = register_principal(options["email"], options["password"], full_name="Demo User")
            self.stdout.write(f"Created principal: {user.email}")

        project = ProjectService(storage, Principal(id=user.pk)).initialize_demo_data()
        if project is None:
            self.stdout.write(f"{user.email} already has projects; nothing seeded")
            return

        self.stdout.write(self.style.SUCCESS(f"Seeded '{project.name}' with {len(project.tasks)} tasks"))
