# users/models.py
from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """
    An authenticated principal. The tracker core only ever sees ``str(pk)``;
    it never authenticates, it only authorizes.
    """
    # Sign-up collides on email, never on username
    email = models.EmailField(unique=True)

    def __str__(self):
        return self.email or self.username


class Profile(models.Model):
    """Display data created in the same transaction as the principal."""
    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="profile",
    )
    username = models.CharField(max_length=150)
    full_name = models.CharField(max_length=255, blank=True, default="")
    avatar_url = models.URLField(max_length=1024, blank=True, null=True)

    def __str__(self):
        return self.username
