# core/supabase_client.py
# Supabase client factory for the managed-backend storage variant

import logging

from django.conf import settings
from supabase import Client, create_client
from supabase.lib.client_options import ClientOptions

from .exceptions import BackendUnavailableError

logger = logging.getLogger("tracker.storage")


def create_supabase_client(access_token: str | None = None) -> Client:
    """
    Build a PostgREST-backed Supabase client acting as the given principal.

    Uses the anon key plus the caller's JWT so row-level security sees
    ``auth.uid()`` of the authenticated user. A client is built per call;
    nothing is cached at module level.

    Args:
        access_token: The caller's Supabase access token (JWT)

    Returns:
        A configured Supabase client

    Raises:
        BackendUnavailableError: if Supabase is not configured
    """
    url = settings.SUPABASE_URL
    key = settings.SUPABASE_ANON_KEY

    if not url or not key:
        logger.warning("Supabase credentials not configured")
        raise BackendUnavailableError("Supabase URL and anonymous key are required.")

    options = ClientOptions(
        postgrest_client_timeout=settings.SUPABASE_TIMEOUT,
        auto_refresh_token=False,
        persist_session=False,
    )
    client = create_client(url, key, options=options)

    if access_token:
        # Row-level security evaluates against this token, not the anon key
        client.postgrest.auth(access_token)
    else:
        logger.debug("Supabase client created without a user token; RLS will deny most rows")

    return client
