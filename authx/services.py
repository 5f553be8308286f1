# authx/services.py
import logging

from django.contrib.auth import get_user_model

from core.db import atomic_write
from users.models import Profile

logger = logging.getLogger("tracker")

User = get_user_model()


def register_principal(email: str, password: str, full_name: str = ""):
    """
    Create a principal and its profile as one unit of work.

    Both inserts commit or neither does. An email that is already taken
    surfaces as DuplicateEntityError (409); any other failure as
    TransactionError with nothing written.
    """
    email = User.objects.normalize_email(email).lower()

    with atomic_write(entity="user", operation="signup"):
        user = User.objects.create_user(username=email, email=email, password=password)
        Profile.objects.create(
            user=user,
            username=email.split("@")[0],
            full_name=full_name,
        )

    logger.info(f"Registered principal {user.pk}")
    return user
