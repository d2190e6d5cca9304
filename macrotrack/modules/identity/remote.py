"""
Adapter over the Supabase auth API.

Supabase Auth provides:
- auth.get_user(jwt) / auth.get_session() - current identity
- auth.sign_in_with_password() - Authenticate users
- auth.sign_up() - Register new users
- auth.sign_out() - Logout users

Every failure is re-raised as ServiceError so callers only see the identity
error taxonomy.
"""
import logging
from typing import Any, Dict, Optional

from macrotrack.modules.identity.exceptions import ServiceError

logger = logging.getLogger(__name__)

# Messages supabase uses when there simply is no session; not an error for us
_NO_SESSION_MARKERS = ("auth session missing", "session_not_found", "no session")


def _to_service_error(e: Exception) -> ServiceError:
    status = getattr(e, "status", None) or getattr(e, "status_code", None)
    code = getattr(e, "code", None)
    message = getattr(e, "message", None) or str(e)
    return ServiceError(message, status_code=status, code=code)


class SupabaseIdentityService:
    def __init__(self, client, access_token: Optional[str] = None):
        self.client = client
        self.access_token = access_token

    async def get_user(self) -> Optional[Any]:
        """Supabase user of the current session, or None when nobody is signed in."""
        try:
            if self.access_token:
                response = await self.client.auth.get_user(self.access_token)
                user = response.user if response else None
            else:
                session = await self.client.auth.get_session()
                user = session.user if session else None
        except Exception as e:
            if any(marker in str(e).lower() for marker in _NO_SESSION_MARKERS):
                return None
            raise _to_service_error(e) from e
        if user is None or not getattr(user, "id", None):
            return None
        return user

    async def get_current_user_id(self) -> Optional[str]:
        user = await self.get_user()
        return str(user.id) if user is not None else None

    async def sign_in_with_password(self, email: str, password: str) -> Any:
        try:
            return await self.client.auth.sign_in_with_password({
                "email": email,
                "password": password
            })
        except Exception as e:
            raise _to_service_error(e) from e

    async def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> Any:
        credentials: Dict[str, Any] = {"email": email, "password": password}
        if metadata:
            credentials["options"] = {"data": metadata}
        try:
            return await self.client.auth.sign_up(credentials)
        except Exception as e:
            raise _to_service_error(e) from e

    async def sign_out(self) -> None:
        try:
            if self.access_token:
                # Server side there is no stored session; revoke the bearer token itself
                await self.client.auth.admin.sign_out(self.access_token)
            else:
                await self.client.auth.sign_out()
        except Exception as e:
            raise _to_service_error(e) from e

    async def verify_otp(self, token_hash: str, otp_type: str = "invite") -> Any:
        try:
            return await self.client.auth.verify_otp({
                "token_hash": token_hash,
                "type": otp_type
            })
        except Exception as e:
            raise _to_service_error(e) from e

    async def update_user(self, attributes: Dict[str, Any]) -> Any:
        try:
            return await self.client.auth.update_user(attributes)
        except Exception as e:
            raise _to_service_error(e) from e
