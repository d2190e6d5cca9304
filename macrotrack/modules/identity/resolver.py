import asyncio
import logging
from typing import Optional

from macrotrack.config import settings
from macrotrack.modules.identity.exceptions import ServiceError
from macrotrack.modules.identity.schemas import (
    AuthenticatedIdentity, UnauthenticatedIdentity, Identity
)

logger = logging.getLogger(__name__)


class IdentityResolver:
    """
    Works out who the caller is, without ever blocking past the timeout.

    One resolver per session. The diagnostic flags live on the instance so a
    timeout is reported once per session, while genuine service errors are
    reported every time.
    """

    def __init__(self, remote, timeout_seconds: Optional[float] = None):
        self.remote = remote
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.auth_timeout_seconds
        self.auth_timeout_logged = False
        self.auth_error_count = 0

    async def resolve_current_user_id(self) -> Optional[str]:
        """Authenticated user id, or None. Never raises."""
        if self.remote is None:
            logger.warning("Supabase client not available")
            return None

        try:
            return await asyncio.wait_for(
                self.remote.get_current_user_id(),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            if not self.auth_timeout_logged:
                self.auth_timeout_logged = True
                logger.debug(
                    f"Authentication timeout after {self.timeout_seconds}s - continuing unauthenticated"
                )
            return None
        except ServiceError as e:
            self.auth_error_count += 1
            logger.error(f"Error getting current user: {e.message}")
            return None
        except Exception as e:
            self.auth_error_count += 1
            logger.error(f"Error in resolve_current_user_id: {e}")
            return None

    async def resolve_identity(self) -> Identity:
        user_id = await self.resolve_current_user_id()
        if user_id:
            return AuthenticatedIdentity(user_id=user_id)
        return UnauthenticatedIdentity()

    async def is_authenticated(self) -> bool:
        return await self.resolve_current_user_id() is not None
