from django.apps import apps
from django.conf import settings
from django.db.models.signals import post_delete
from django.dispatch import receiver
import logging

logger = logging.getLogger("tracker.projects")


@receiver(post_delete, sender=settings.AUTH_USER_MODEL)
def clear_principal_references(sender, instance, **kwargs):
    """
    A deleted principal leaves projects, tasks and activity in place with the
    owner, assignee and actor references cleared. Database foreign keys do
    this for the server backends; the local store needs to be told.
    """
    storage = apps.get_app_config("projects").storage
    storage.remove_principal(str(instance.pk))
    logger.info(f"Principal {instance.pk} deleted; references cleared on {storage.name} backend")
