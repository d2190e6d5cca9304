"""
Transports for the anonymous_profiles table.

Two ways to reach the same table:
1. StructuredTransport - Supabase PostgREST query builder (primary)
2. RestTransport - generic /tables REST API over httpx (fallback)

Both expose fetch_profile() and create_profile() and raise only the identity
error taxonomy.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from macrotrack.modules.identity.exceptions import SchemaMismatch, ServiceError

logger = logging.getLogger(__name__)

# Columns that older deployments may not have
OPTIONAL_PROFILE_COLUMNS = ("expires_at",)

# PostgREST: no rows for .single() / invalid uuid text
_NOT_FOUND_CODES = ("PGRST116", "22P02")


class ProfileLookup(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"


def classify_create_error(message: str, status_code: Optional[int] = None,
                          code: Optional[str] = None) -> ServiceError:
    """Errors that mention an optional column mean "retry with a smaller shape"."""
    lowered = (message or "").lower()
    for column in OPTIONAL_PROFILE_COLUMNS:
        if column in lowered:
            return SchemaMismatch(message, column=column, status_code=status_code, code=code)
    return ServiceError(message or "Unknown error", status_code=status_code, code=code)


class ProfileTransport:
    name = "base"

    def __init__(self, table: str = "anonymous_profiles"):
        self.table = table

    async def fetch_profile(self, profile_id: str) -> ProfileLookup:
        raise NotImplementedError

    async def create_profile(self, shape: Dict[str, Any]) -> str:
        raise NotImplementedError


class StructuredTransport(ProfileTransport):
    name = "structured"

    def __init__(self, client, table: str = "anonymous_profiles"):
        super().__init__(table)
        self.client = client

    async def fetch_profile(self, profile_id: str) -> ProfileLookup:
        try:
            result = await self.client.table(self.table)\
                .select("id")\
                .eq("id", profile_id)\
                .maybe_single()\
                .execute()
        except Exception as e:
            if getattr(e, "code", None) in _NOT_FOUND_CODES:
                return ProfileLookup.NOT_FOUND
            raise ServiceError(
                f"Profile lookup failed: {getattr(e, 'message', None) or e}",
                code=getattr(e, "code", None),
            ) from e

        # maybe_single() yields None (or empty data) when there is no row
        if result is None or not result.data:
            return ProfileLookup.NOT_FOUND
        return ProfileLookup.FOUND

    async def create_profile(self, shape: Dict[str, Any]) -> str:
        try:
            result = await self.client.table(self.table).insert([shape]).execute()
        except Exception as e:
            raise classify_create_error(
                getattr(e, "message", None) or str(e),
                code=getattr(e, "code", None),
            ) from e

        rows = result.data if result is not None else None
        if not rows or not rows[0].get("id"):
            raise ServiceError("Profile insert returned no id")
        return str(rows[0]["id"])


class RestTransport(ProfileTransport):
    name = "rest"

    def __init__(self, http: httpx.AsyncClient, table: str = "anonymous_profiles"):
        super().__init__(table)
        self.http = http

    async def fetch_profile(self, profile_id: str) -> ProfileLookup:
        try:
            response = await self.http.get(f"/tables/{self.table}/{profile_id}")
        except httpx.HTTPError as e:
            raise ServiceError(f"REST profile lookup failed: {e}") from e

        if response.status_code == 404:
            return ProfileLookup.NOT_FOUND
        if not response.is_success:
            raise ServiceError(
                f"REST profile lookup failed with status {response.status_code}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError:
            body = None
        return ProfileLookup.FOUND if body else ProfileLookup.NOT_FOUND

    async def create_profile(self, shape: Dict[str, Any]) -> str:
        try:
            response = await self.http.post(f"/tables/{self.table}", json=shape)
        except httpx.HTTPError as e:
            raise ServiceError(f"REST profile create failed: {e}") from e

        if not response.is_success:
            raise classify_create_error(
                response.text or f"REST API failed with status {response.status_code}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict) or not body.get("id"):
            raise ServiceError("REST profile create returned no id", status_code=response.status_code)
        return str(body["id"])
