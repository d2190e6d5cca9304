"""Identity resolver: bounded-time session lookup and diagnostic gating."""

import asyncio
import logging

import pytest

from macrotrack.modules.identity.exceptions import ServiceError
from macrotrack.modules.identity.remote import SupabaseIdentityService
from macrotrack.modules.identity.resolver import IdentityResolver
from macrotrack.modules.identity.schemas import AuthenticatedIdentity, UnauthenticatedIdentity

from tests.conftest import FakeAPIError, USER_ID, VALID_TOKEN


class ScriptedRemote:
    def __init__(self, user_id=None, error=None, delay=0):
        self.user_id = user_id
        self.error = error
        self.delay = delay
        self.calls = 0

    async def get_current_user_id(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.user_id


@pytest.mark.asyncio
async def test_valid_token_resolves_user_id(signed_in_supabase):
    resolver = IdentityResolver(SupabaseIdentityService(signed_in_supabase, VALID_TOKEN), timeout_seconds=1)
    assert await resolver.resolve_current_user_id() == USER_ID
    assert await resolver.resolve_identity() == AuthenticatedIdentity(user_id=USER_ID)
    assert await resolver.is_authenticated() is True


@pytest.mark.asyncio
async def test_no_session_is_unauthenticated(supabase):
    resolver = IdentityResolver(SupabaseIdentityService(supabase), timeout_seconds=1)
    assert await resolver.resolve_current_user_id() is None
    assert isinstance(await resolver.resolve_identity(), UnauthenticatedIdentity)
    assert resolver.auth_error_count == 0


@pytest.mark.asyncio
async def test_missing_session_error_is_not_a_service_error(supabase):
    supabase.auth.get_user_error = FakeAPIError("Auth session missing!")
    resolver = IdentityResolver(SupabaseIdentityService(supabase), timeout_seconds=1)
    assert await resolver.resolve_current_user_id() is None
    assert resolver.auth_error_count == 0


@pytest.mark.asyncio
async def test_timeout_returns_none_and_logs_once(caplog):
    resolver = IdentityResolver(ScriptedRemote(user_id=USER_ID, delay=1), timeout_seconds=0.01)

    with caplog.at_level(logging.DEBUG, logger="macrotrack.modules.identity.resolver"):
        results = [await resolver.resolve_current_user_id() for _ in range(3)]

    assert results == [None, None, None]
    timeouts = [r for r in caplog.records if "timeout" in r.getMessage().lower()]
    assert len(timeouts) == 1
    assert timeouts[0].levelno == logging.DEBUG
    assert resolver.auth_timeout_logged is True


@pytest.mark.asyncio
async def test_timeout_flag_is_per_resolver(caplog):
    with caplog.at_level(logging.DEBUG, logger="macrotrack.modules.identity.resolver"):
        for _ in range(2):
            resolver = IdentityResolver(ScriptedRemote(delay=1), timeout_seconds=0.01)
            await resolver.resolve_current_user_id()

    timeouts = [r for r in caplog.records if "timeout" in r.getMessage().lower()]
    assert len(timeouts) == 2


@pytest.mark.asyncio
async def test_service_error_logged_every_time(caplog):
    resolver = IdentityResolver(ScriptedRemote(error=ServiceError("RLS denied", status_code=403)), timeout_seconds=1)

    with caplog.at_level(logging.DEBUG, logger="macrotrack.modules.identity.resolver"):
        for _ in range(3):
            assert await resolver.resolve_current_user_id() is None

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 3
    assert resolver.auth_error_count == 3


@pytest.mark.asyncio
async def test_unexpected_exception_never_escapes():
    resolver = IdentityResolver(ScriptedRemote(error=RuntimeError("boom")), timeout_seconds=1)
    assert await resolver.resolve_current_user_id() is None


@pytest.mark.asyncio
async def test_missing_remote_is_unauthenticated():
    resolver = IdentityResolver(None, timeout_seconds=1)
    assert await resolver.resolve_current_user_id() is None
    assert await resolver.is_authenticated() is False
