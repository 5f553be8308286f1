from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import IntegrityError
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from core.exceptions import TransactionError
from authx.services import register_principal
from users.models import Profile

User = get_user_model()


class SignupTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.payload = {"email": "Ada@Example.com", "password": "s3cret-pass", "full_name": "Ada"}

    def test_signup_creates_principal_and_profile(self):
        response = self.client.post("/api/auth/signup/", self.payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        user = User.objects.get(pk=response.data["id"])
        self.assertEqual(user.email, "ada@example.com")
        self.assertEqual(user.profile.username, "ada")
        self.assertEqual(user.profile.full_name, "Ada")

    def test_duplicate_email_is_a_conflict(self):
        self.client.post("/api/auth/signup/", self.payload, format="json")
        response = self.client.post("/api/auth/signup/", self.payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error_code"], "duplicate")
        self.assertEqual(User.objects.count(), 1)

    def test_profile_failure_leaves_no_principal(self):
        with patch.object(Profile.objects, "create", side_effect=IntegrityError("profile rejected")):
            with self.assertRaises(TransactionError):
                register_principal("grace@example.com", "s3cret-pass")

        self.assertFalse(User.objects.filter(email="grace@example.com").exists())

    def test_login_returns_tokens(self):
        self.client.post("/api/auth/signup/", self.payload, format="json")
        response = self.client.post(
            "/api/auth/login/", {"email": "ada@example.com", "password": "s3cret-pass"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn("access", response.data)

        me = APIClient()
        me.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
        self.assertEqual(me.get("/api/auth/me/").data["email"], "ada@example.com")
