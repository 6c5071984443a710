from functools import lru_cache

from supabase import AsyncClient, Client, acreate_client, create_client

from config import SUPABASE_KEY, SUPABASE_URL


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Shared Supabase client, injected into routes with ``Depends``."""
    if not SUPABASE_URL or not SUPABASE_KEY:
        raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set")
    return create_client(SUPABASE_URL, SUPABASE_KEY)


async def get_async_supabase() -> AsyncClient:
    # realtime channels are only available on the async client
    return await acreate_client(SUPABASE_URL, SUPABASE_KEY)
