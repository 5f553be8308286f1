import logging

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from core.constants import BACKEND_CHOICES, BACKEND_LOCAL, BACKEND_SQL, BACKEND_SUPABASE

from .base import ProjectStorage
from .local import LocalKeyValueStore, LocalStorage

logger = logging.getLogger("tracker.storage")


def build_storage(backend: str = None) -> ProjectStorage:
    """
    Build the one storage backend this process runs with.

    Chosen from ``settings.TRACKER_BACKEND`` at startup and never switched
    per call.
    """
    backend = backend or settings.TRACKER_BACKEND
    limit = settings.ACTIVITY_LOG_LIMIT

    if backend == BACKEND_LOCAL:
        store = LocalKeyValueStore(settings.TRACKER_LOCAL_STORE_DIR, settings.TRACKER_LOCAL_STORE_SCOPE)
        storage = LocalStorage(store, activity_limit=limit)
    elif backend == BACKEND_SUPABASE:
        from .supabase import SupabaseStorage

        storage = SupabaseStorage(activity_limit=limit)
    elif backend == BACKEND_SQL:
        from .sql import SqlStorage

        storage = SqlStorage(using=settings.TRACKER_SQL_DATABASE, activity_limit=limit)
    else:
        raise ImproperlyConfigured(
            f"TRACKER_BACKEND must be one of {', '.join(BACKEND_CHOICES)}, got {backend!r}"
        )

    logger.info(f"Tracker storage backend: {storage.name}")
    return storage


__all__ = ["ProjectStorage", "build_storage"]
