"""
Core dependencies: per-request Supabase client, identity binder and auth guards
"""

from fastapi import Depends, HTTPException, Request, Response, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from supabase import AsyncClient
from typing import AsyncIterator, Optional
import logging

from macrotrack.config import settings
from macrotrack.database.supabase_client import SupabaseClient, get_rest_client
from macrotrack.modules.identity.binder import IdentityBinder
from macrotrack.modules.identity.exceptions import AuthenticationRequired, ServiceError
from macrotrack.modules.identity.fallback import ANON_PROVISIONING_KEY, SingleFlight
from macrotrack.modules.identity.service import build_identity_binder
from macrotrack.modules.identity.storage import CookieStorage, IdentityStorage

logger = logging.getLogger(__name__)

# auto_error=False: anonymous callers are allowed through to the binder
security = HTTPBearer(auto_error=False)

# Shared across requests so concurrent first visits from one browser create one guest profile
guest_single_flight = SingleFlight()


def get_access_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> Optional[str]:
    """Extract JWT token from Authorization header, if any"""
    return credentials.credentials if credentials else None


async def get_supabase_client(
    access_token: Optional[str] = Depends(get_access_token)
) -> AsyncIterator[AsyncClient]:
    """Client scoped to the caller's JWT so row-level security applies.

    The per-request client is closed once the response is done; anonymous
    callers share the process-wide client.
    """
    if not access_token:
        yield await SupabaseClient.get_client()
        return
    client = await SupabaseClient.create_user_client(access_token)
    try:
        yield client
    finally:
        await SupabaseClient.close_user_client(client)


def get_identity_storage(request: Request, response: Response) -> IdentityStorage:
    return CookieStorage(
        request,
        response,
        cookie_name=settings.anon_cookie_name,
        max_age=settings.anon_cookie_max_age,
        secure=settings.is_production,
    )


def guest_flight_key(request: Request) -> str:
    """Single-flight key for guest provisioning: the cached guest id, else client address and user agent"""
    cached_id = request.cookies.get(settings.anon_cookie_name)
    if cached_id:
        return f"{ANON_PROVISIONING_KEY}:{cached_id}"
    host = request.client.host if request.client else "unknown"
    user_agent = request.headers.get("user-agent", "")
    return f"{ANON_PROVISIONING_KEY}:{host}:{user_agent}"


async def get_identity_binder(
    request: Request,
    access_token: Optional[str] = Depends(get_access_token),
    supabase: AsyncClient = Depends(get_supabase_client),
    storage: IdentityStorage = Depends(get_identity_storage),
) -> IdentityBinder:
    rest_client = get_rest_client() if settings.rest_api_base_url else None
    return build_identity_binder(
        supabase,
        storage,
        access_token=access_token,
        rest_client=rest_client,
        single_flight=guest_single_flight,
        flight_key=guest_flight_key(request),
    )


def unauthorized(detail: str = "Authentication required") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(binder: IdentityBinder = Depends(get_identity_binder)) -> str:
    """Authenticated user id (401 if not signed in)"""
    try:
        return await binder.require_authentication()
    except AuthenticationRequired:
        raise unauthorized()


def is_super_user(user) -> bool:
    """Check if user is a super user from app_metadata"""
    # app_metadata is set server-side and cannot be modified by users
    app_metadata = getattr(user, "app_metadata", None) or {}
    return app_metadata.get("type") == "super_user"


async def get_current_super_user_id(binder: IdentityBinder = Depends(get_identity_binder)) -> str:
    """Authenticated super user id (401 if not signed in, 403 otherwise)"""
    remote = binder.resolver.remote
    try:
        user = await remote.get_user() if remote is not None else None
    except ServiceError as e:
        logger.warning(f"Could not load user for admin check: {e}")
        user = None
    if user is None:
        raise unauthorized()
    if not is_super_user(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only administrators can perform this action"
        )
    return str(user.id)
