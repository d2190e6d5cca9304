import logging
from typing import Optional

import httpx
from supabase import acreate_client, AsyncClient
from macrotrack.config import settings

logger = logging.getLogger(__name__)


class SupabaseClient:
    _client: Optional[AsyncClient] = None
    _service_client: Optional[AsyncClient] = None
    _rest_client: Optional[httpx.AsyncClient] = None

    @classmethod
    async def get_client(cls) -> AsyncClient:
        if cls._client is None:
            cls._client = await acreate_client(settings.supabase_url, settings.supabase_key)
        return cls._client

    @classmethod
    async def get_service_client(cls) -> AsyncClient:
        """Client with service_role key; bypasses RLS. Use for admin operations only."""
        if cls._service_client is None and settings.supabase_service_role_key:
            cls._service_client = await acreate_client(
                settings.supabase_url, settings.supabase_service_role_key
            )
        return cls._service_client or await cls.get_client()

    @classmethod
    async def create_user_client(cls, access_token: str) -> AsyncClient:
        """Per-request client whose PostgREST calls run under the caller's JWT (RLS applies)."""
        client = await acreate_client(settings.supabase_url, settings.supabase_key)
        client.postgrest.auth(access_token)
        return client

    @staticmethod
    async def close_user_client(client: AsyncClient) -> None:
        """Release the HTTP pools of a client built by create_user_client."""
        try:
            await client.postgrest.aclose()
            auth_http = getattr(client.auth, "_http_client", None)
            if auth_http is not None:
                await auth_http.aclose()
        except Exception as e:
            logger.warning(f"Error closing per-request Supabase client: {e}")

    @classmethod
    def get_rest_client(cls) -> httpx.AsyncClient:
        """Plain HTTP client for the /tables REST fallback transport."""
        if cls._rest_client is None:
            cls._rest_client = httpx.AsyncClient(
                base_url=settings.rest_api_base_url,
                timeout=settings.rest_api_timeout_seconds,
                headers={"Content-Type": "application/json"},
            )
        return cls._rest_client

    @classmethod
    async def close(cls):
        if cls._rest_client is not None:
            await cls._rest_client.aclose()
        cls.reset_client()

    @classmethod
    def reset_client(cls):
        cls._client = None
        cls._service_client = None
        cls._rest_client = None


async def get_service_supabase() -> AsyncClient:
    return await SupabaseClient.get_service_client()


def get_rest_client() -> httpx.AsyncClient:
    return SupabaseClient.get_rest_client()
