from fastapi import APIRouter, Depends, Request
from macrotrack.config import settings
from macrotrack.core.dependencies import get_current_user_id, get_identity_binder
from macrotrack.core.rate_limit import limiter
from macrotrack.modules.auth.schemas import (
    LoginRequest, LogoutResponse, RegisterRequest, RegisterResponse,
    TokenResponse, UpgradeRequest, UpgradeResponse
)
from macrotrack.modules.auth.service import AuthService
from macrotrack.modules.identity.binder import IdentityBinder
from macrotrack.modules.identity.schemas import AuthState

router = APIRouter(prefix="/auth", tags=["auth"])


def get_auth_service(binder: IdentityBinder = Depends(get_identity_binder)) -> AuthService:
    return AuthService(binder)


@router.post("/register", response_model=RegisterResponse, status_code=201)
@limiter.limit(settings.auth_rate_limit)
async def register(
    request: Request,
    register_data: RegisterRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Register a new user"""
    return await service.register(register_data)


@router.post("/login", response_model=TokenResponse)
@limiter.limit(settings.auth_rate_limit)
async def login(
    request: Request,
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access token"""
    return await service.login(login_data)


@router.post("/logout", response_model=LogoutResponse)
async def logout(service: AuthService = Depends(get_auth_service)):
    """Logout; the guest identity cookie is cleared even if the remote call fails"""
    return await service.logout()


@router.post("/upgrade", response_model=UpgradeResponse, status_code=201)
@limiter.limit(settings.auth_rate_limit)
async def upgrade(
    request: Request,
    upgrade_data: UpgradeRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Register the current guest as a real user"""
    return await service.upgrade_anonymous_user(upgrade_data)


@router.get("/state", response_model=AuthState)
async def auth_state(service: AuthService = Depends(get_auth_service)):
    """Debug snapshot of the caller's identity"""
    return await service.get_auth_state()


@router.get("/me")
async def me(user_id: str = Depends(get_current_user_id)):
    return {"user_id": user_id}
