import logging
from typing import Optional

from fastapi import HTTPException

from macrotrack.config import settings
from macrotrack.modules.auth.schemas import (
    AuthErrorCode, LoginRequest, LogoutResponse, RegisterRequest, RegisterResponse,
    TokenResponse, UpgradeRequest, UpgradeResponse
)
from macrotrack.modules.identity.binder import IdentityBinder
from macrotrack.modules.identity.exceptions import ServiceError
from macrotrack.modules.identity.schemas import AuthState

logger = logging.getLogger(__name__)

# User-facing text; no technical detail
AUTH_ERROR_MESSAGES = {
    AuthErrorCode.INVALID_CREDENTIALS: "Invalid email or password",
    AuthErrorCode.EMAIL_NOT_CONFIRMED: "Please check your email and confirm your account",
    AuthErrorCode.RATE_LIMITED: "Too many attempts. Please wait a moment and try again",
    AuthErrorCode.ALREADY_REGISTERED: "User already exists",
    AuthErrorCode.WEAK_PASSWORD: "Password does not meet the requirements",
    AuthErrorCode.UNKNOWN: "Authentication failed. Please try again",
}

AUTH_ERROR_STATUS = {
    AuthErrorCode.INVALID_CREDENTIALS: 401,
    AuthErrorCode.EMAIL_NOT_CONFIRMED: 403,
    AuthErrorCode.RATE_LIMITED: 429,
    AuthErrorCode.ALREADY_REGISTERED: 400,
    AuthErrorCode.WEAK_PASSWORD: 400,
    AuthErrorCode.UNKNOWN: 500,
}


def classify_auth_error(message: Optional[str], status_code: Optional[int] = None) -> AuthErrorCode:
    """Map a Supabase auth error message onto an AuthErrorCode."""
    lowered = (message or "").lower()
    if "invalid login credentials" in lowered or "invalid credentials" in lowered:
        return AuthErrorCode.INVALID_CREDENTIALS
    if "email not confirmed" in lowered:
        return AuthErrorCode.EMAIL_NOT_CONFIRMED
    if "too many requests" in lowered or "rate limit" in lowered or status_code == 429:
        return AuthErrorCode.RATE_LIMITED
    if "already registered" in lowered or "already exists" in lowered:
        return AuthErrorCode.ALREADY_REGISTERED
    if "password" in lowered and ("weak" in lowered or "at least" in lowered):
        return AuthErrorCode.WEAK_PASSWORD
    return AuthErrorCode.UNKNOWN


def auth_http_error(e: ServiceError) -> HTTPException:
    code = classify_auth_error(e.message, e.status_code)
    if code == AuthErrorCode.UNKNOWN:
        logger.error(f"Unclassified auth error: {e.message}")
    return HTTPException(
        status_code=AUTH_ERROR_STATUS[code],
        detail={"code": code.value, "message": AUTH_ERROR_MESSAGES[code]},
    )


def validate_password(password: str, confirm_password: Optional[str] = None) -> Optional[str]:
    """Return an error message, or None if the password is acceptable."""
    if confirm_password is not None and password != confirm_password:
        return "Passwords do not match"
    if len(password or "") < settings.min_password_length:
        return f"Password must be at least {settings.min_password_length} characters long"
    return None


class AuthService:
    def __init__(self, binder: IdentityBinder):
        self.binder = binder

    @property
    def remote(self):
        remote = self.binder.resolver.remote
        if remote is None:
            raise HTTPException(status_code=503, detail="Authentication service not available")
        return remote

    async def login(self, login_data: LoginRequest) -> TokenResponse:
        """Authenticate user using Supabase Auth"""
        try:
            auth_response = await self.remote.sign_in_with_password(login_data.email, login_data.password)
        except ServiceError as e:
            raise auth_http_error(e)

        if not auth_response or not auth_response.user or not auth_response.session:
            raise HTTPException(status_code=401, detail="Invalid credentials")

        return TokenResponse(
            access_token=auth_response.session.access_token,
            token_type="bearer",
            user_id=str(auth_response.user.id),
            email=auth_response.user.email or login_data.email
        )

    async def register(self, register_data: RegisterRequest) -> RegisterResponse:
        """Register a new user using Supabase Auth"""
        problem = validate_password(register_data.password, register_data.confirm_password)
        if problem:
            raise HTTPException(status_code=400, detail=problem)

        user_metadata = {}
        if register_data.full_name:
            user_metadata["full_name"] = register_data.full_name

        try:
            auth_response = await self.remote.sign_up(register_data.email, register_data.password, user_metadata)
        except ServiceError as e:
            raise auth_http_error(e)

        if not auth_response or not auth_response.user:
            raise HTTPException(status_code=400, detail="Failed to register user")

        return RegisterResponse(
            user_id=str(auth_response.user.id),
            email=auth_response.user.email or register_data.email,
            message="User registered successfully"
        )

    async def logout(self) -> LogoutResponse:
        """Sign out remotely (best effort) and drop any cached guest identity"""
        remote_signed_out = await self.binder.sign_out()
        return LogoutResponse(message="Logged out successfully", remote_signed_out=remote_signed_out)

    async def upgrade_anonymous_user(self, upgrade_data: UpgradeRequest) -> UpgradeResponse:
        """Turn a guest into a registered user.

        Records owned by the old anonymous profile stay where they are; the
        response flags them with reattribution_pending.
        """
        problem = validate_password(upgrade_data.password)
        if problem:
            raise HTTPException(status_code=400, detail=problem)

        current_anon_id = self.binder.storage.get()

        try:
            auth_response = await self.remote.sign_up(upgrade_data.email, upgrade_data.password)
        except ServiceError as e:
            logger.error(f"Error upgrading anonymous user: {e.message}")
            raise auth_http_error(e)

        new_user_id = auth_response.user.id if auth_response and auth_response.user else None
        if not new_user_id:
            raise HTTPException(status_code=500, detail="Failed to get new user ID from signup response")

        if current_anon_id:
            logger.warning(
                f"Anonymous user upgraded; records with anon_profile_id='{current_anon_id}' "
                f"were not re-attributed to user_id='{new_user_id}'"
            )

        self.binder.clear_anonymous_profile()
        logger.info(f"Upgraded anonymous user to authenticated user {new_user_id}")

        return UpgradeResponse(
            user_id=str(new_user_id),
            email=auth_response.user.email or upgrade_data.email,
            previous_anon_profile_id=current_anon_id,
            reattribution_pending=current_anon_id is not None,
            message="Account created successfully"
        )

    async def get_auth_state(self) -> AuthState:
        return await self.binder.get_auth_state()
