import shutil
import tempfile
from datetime import date
from unittest.mock import patch

from django.apps import apps
from django.contrib.auth import get_user_model

from projects.entities import Principal
from projects.storage.local import LocalKeyValueStore, LocalStorage

User = get_user_model()


def make_user(name):
    return User.objects.create_user(username=name, email=f"{name}@example.com", password="pass12345")


def principal_for(user):
    return Principal(id=user.pk)


def task_spec(name, **extra):
    spec = {"name": name, "start_date": date(2025, 1, 1), "end_date": date(2025, 1, 10)}
    spec.update(extra)
    return spec


class TrackerTestMixin:
    """
    Swaps the process-wide storage for the one under test, so signal
    handlers and views see the same backend as the test. Local stores live
    in a temporary directory.
    """

    def use_storage(self, storage):
        patcher = patch.object(apps.get_app_config("projects"), "storage", storage)
        patcher.start()
        self.addCleanup(patcher.stop)
        return storage

    def make_local_storage(self, scope="test"):
        directory = tempfile.mkdtemp(prefix="tracker_store_")
        self.addCleanup(shutil.rmtree, directory, ignore_errors=True)
        return LocalStorage(LocalKeyValueStore(directory, scope), activity_limit=50)
