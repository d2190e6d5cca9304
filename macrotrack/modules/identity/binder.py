"""
Attaches the caller's identity to outgoing writes and builds read filters.

Two modes, chosen by anonymous_profiles_enabled:
- invite-only (default): only authenticated users own records
- legacy guest mode: unauthenticated callers get an anonymous profile

Persisted records always carry exactly one of user_id / anon_profile_id.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from macrotrack.config import settings
from macrotrack.modules.identity.exceptions import AuthenticationRequired, NoValidIdentifier
from macrotrack.modules.identity.fallback import GuestProvisioner
from macrotrack.modules.identity.resolver import IdentityResolver
from macrotrack.modules.identity.schemas import (
    AnonymousIdentity, AuthenticatedIdentity, AuthState, Identity,
    NO_USER_SENTINEL, UnauthenticatedIdentity, UserIdentifier
)
from macrotrack.modules.identity.storage import IdentityStorage

logger = logging.getLogger(__name__)

NO_MATCH_FILTER = {"user_id": NO_USER_SENTINEL, "anon_profile_id": NO_USER_SENTINEL}


def is_no_match_filter(query_filter: Dict[str, Any]) -> bool:
    return query_filter == NO_MATCH_FILTER


class IdentityBinder:
    def __init__(
        self,
        resolver: IdentityResolver,
        storage: IdentityStorage,
        provisioner: Optional[GuestProvisioner] = None,
        anonymous_enabled: Optional[bool] = None,
    ):
        self.resolver = resolver
        self.storage = storage
        self.provisioner = provisioner
        self.anonymous_enabled = (
            anonymous_enabled if anonymous_enabled is not None else settings.anonymous_profiles_enabled
        )

    @property
    def anonymous_allowed(self) -> bool:
        return self.anonymous_enabled and self.provisioner is not None

    async def _anonymous_profile_id(self) -> Optional[str]:
        if not self.anonymous_allowed:
            return None
        return await self.provisioner.get_or_create_anonymous_profile()

    async def is_authenticated(self) -> bool:
        return await self.resolver.is_authenticated()

    async def resolve_owner(self) -> Identity:
        """Authenticated user, else (guest mode) an anonymous profile, else unauthenticated."""
        user_id = await self.resolver.resolve_current_user_id()
        if user_id:
            return AuthenticatedIdentity(user_id=user_id)
        anon_profile_id = await self._anonymous_profile_id()
        if anon_profile_id:
            return AnonymousIdentity(anon_profile_id=anon_profile_id)
        return UnauthenticatedIdentity()

    async def get_current_user_identifier(self) -> UserIdentifier:
        owner = await self.resolve_owner()
        if isinstance(owner, AuthenticatedIdentity):
            return UserIdentifier(user_id=owner.user_id, is_authenticated=True)
        if isinstance(owner, AnonymousIdentity):
            return UserIdentifier(anon_profile_id=owner.anon_profile_id)
        logger.warning("User not authenticated - login required")
        return UserIdentifier(requires_login=True)

    async def require_authentication(self) -> str:
        user_id = await self.resolver.resolve_current_user_id()
        if not user_id:
            raise AuthenticationRequired()
        return user_id

    async def require_identifier(self) -> UserIdentifier:
        identifier = await self.get_current_user_identifier()
        if not identifier.has_identity():
            raise NoValidIdentifier()
        return identifier

    async def build_identified_payload(self, data: Dict[str, Any], require_auth: bool = False) -> Dict[str, Any]:
        """Copy of data with user_id / anon_profile_id set; identity fields in data are overwritten."""
        if require_auth:
            user_id = await self.require_authentication()
            return {**data, "user_id": user_id, "anon_profile_id": None}

        identifier = await self.require_identifier()
        return {**data, **identifier.ownership_fields()}

    async def build_query_filter(self, allow_anonymous: bool = True) -> Dict[str, Any]:
        """Equality filter for identity-scoped reads. Falls back to a filter that matches no rows."""
        user_id = await self.resolver.resolve_current_user_id()
        if user_id:
            return {"user_id": user_id}

        if allow_anonymous:
            anon_profile_id = await self._anonymous_profile_id()
            if anon_profile_id:
                return {"anon_profile_id": anon_profile_id}

        return dict(NO_MATCH_FILTER)

    async def get_auth_state(self) -> AuthState:
        """Debug snapshot; never raises."""
        try:
            user_id = await self.resolver.resolve_current_user_id()
            anon_profile_id = None if user_id else self.storage.get()
            return AuthState(
                is_authenticated=user_id is not None,
                is_anonymous=user_id is None,
                user_id=user_id,
                anon_profile_id=anon_profile_id,
            )
        except Exception as e:
            logger.warning(f"Error in get_auth_state: {e}")
            return AuthState()

    def clear_anonymous_profile(self) -> None:
        self.storage.remove()
        logger.debug("Anonymous profile cleared from storage")

    async def sign_out(self) -> bool:
        """Best-effort remote sign-out; the local anonymous cache is always cleared.

        Returns whether the remote sign-out went through.
        """
        remote = self.resolver.remote
        signed_out = True
        try:
            if remote is not None:
                await asyncio.wait_for(remote.sign_out(), timeout=self.resolver.timeout_seconds)
        except asyncio.TimeoutError:
            signed_out = False
            logger.warning("Sign out timed out, continuing with cleanup")
        except Exception as e:
            signed_out = False
            logger.warning(f"Sign out failed, continuing with cleanup: {e}")
        finally:
            self.clear_anonymous_profile()

        if signed_out:
            logger.info("User signed out")
        return signed_out
