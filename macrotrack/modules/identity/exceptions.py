"""Identity error taxonomy.

Transport-level failures are converted into these at the resolver / fallback
chain boundary; nothing raw from supabase or httpx should reach route code.
"""
from typing import List, Optional


class IdentityError(Exception):
    """Base class for identity resolution failures."""


class IdentityTimeout(IdentityError):
    """A remote identity call did not finish within its time budget."""


class ServiceError(IdentityError):
    """The remote identity service answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class SchemaMismatch(ServiceError):
    """A create attempt failed because an optional column is absent."""

    def __init__(self, message: str, column: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message, status_code=status_code, code=code)
        self.column = column


class AuthenticationRequired(IdentityError):
    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class NoValidIdentifier(IdentityError):
    def __init__(self, message: str = "No valid user identifier available"):
        super().__init__(message)


class AllProvisioningMethodsFailed(IdentityError):
    """Every guest provisioning strategy was tried and none succeeded."""

    def __init__(self, errors: List[Exception]):
        self.errors = errors
        last = errors[-1] if errors else None
        super().__init__(
            f"All {len(errors)} provisioning attempts failed"
            + (f"; last error: {last}" if last else "")
        )
