"""Supabase client initialization."""

from functools import lru_cache

from supabase import Client, create_client

from futurecast.core.config import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Get the shared Supabase client.

    Returns:
        Client authenticated with the service role key

    Raises:
        RuntimeError: If the URL or key is missing or the client cannot be built
    """
    settings = get_settings()
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required for the supabase store")
    try:
        return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e
