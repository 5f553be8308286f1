# core/supabase_auth.py
# DRF authentication class that accepts Supabase-issued JWTs

import logging

import jwt
from django.conf import settings
from django.contrib.auth import get_user_model
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

logger = logging.getLogger("tracker")

User = get_user_model()


class SupabaseJWTAuthentication(BaseAuthentication):
    """
    Validates Supabase JWTs for the managed-backend deployment.

    1. Extracts the JWT from the Authorization header
    2. Verifies the signature with the project's JWT secret
    3. Maps the token to a local user by email (created on first sight)

    ``request.auth`` carries the claims plus the raw token: the storage layer
    needs both, the ``sub`` claim as principal id and the token itself so
    row-level security evaluates as the caller.
    """

    def authenticate(self, request):
        auth_header = request.headers.get("Authorization", "")

        if not auth_header.startswith("Bearer "):
            return None  # Let other auth backends handle it

        token = auth_header.split(" ", 1)[1]

        secret = settings.SUPABASE_JWT_SECRET
        if not secret:
            return None  # Not a Supabase deployment

        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=["HS256"],
                audience="authenticated",
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationFailed("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.debug(f"Invalid Supabase token: {e}")
            return None  # Let other auth backends try

        principal_id = payload.get("sub")
        if not principal_id:
            raise AuthenticationFailed("Invalid token: missing user ID")

        user = self._get_or_create_user(payload.get("email"))
        return (user, {**payload, "access_token": token})

    def authenticate_header(self, request):
        # Makes unauthenticated requests a 401 rather than a 403
        return 'Bearer realm="api"'

    def _get_or_create_user(self, email):
        if not email:
            raise AuthenticationFailed("Token missing email claim")

        user, created = User.objects.get_or_create(
            email=email,
            defaults={"username": email},
        )
        if created:
            user.set_unusable_password()
            user.save(update_fields=["password"])
            logger.info(f"Created local user for Supabase principal: {email}")
        return user
