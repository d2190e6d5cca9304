from pydantic import BaseModel
from typing import Literal, Optional, Union

NO_USER_SENTINEL = "no-user"


class AuthenticatedIdentity(BaseModel):
    kind: Literal["authenticated"] = "authenticated"
    user_id: str


class AnonymousIdentity(BaseModel):
    kind: Literal["anonymous"] = "anonymous"
    anon_profile_id: str


class UnauthenticatedIdentity(BaseModel):
    kind: Literal["unauthenticated"] = "unauthenticated"


Identity = Union[AuthenticatedIdentity, AnonymousIdentity, UnauthenticatedIdentity]


class UserIdentifier(BaseModel):
    """Ownership fields attached to a record; at most one is set."""
    user_id: Optional[str] = None
    anon_profile_id: Optional[str] = None
    is_authenticated: bool = False
    requires_login: bool = False

    def has_identity(self) -> bool:
        return bool(self.user_id or self.anon_profile_id)

    def ownership_fields(self) -> dict:
        return {"user_id": self.user_id, "anon_profile_id": self.anon_profile_id}


class AuthState(BaseModel):
    is_authenticated: bool = False
    is_anonymous: bool = True
    user_id: Optional[str] = None
    anon_profile_id: Optional[str] = None

