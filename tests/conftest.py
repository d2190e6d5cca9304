"""Test fixtures: in-memory fakes for the Supabase client, auth API and profile transports.

No network and no live Supabase project are needed. The fakes only implement
the slice of the supabase-py surface the package actually calls.
"""

import asyncio
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from macrotrack.core.rate_limit import limiter
from macrotrack.modules.identity.binder import IdentityBinder
from macrotrack.modules.identity.fallback import GuestProvisioner
from macrotrack.modules.identity.remote import SupabaseIdentityService
from macrotrack.modules.identity.resolver import IdentityResolver
from macrotrack.modules.identity.storage import MemoryStorage
from macrotrack.modules.identity.transports import ProfileLookup, ProfileTransport

USER_ID = "0dac340b-6c1b-4236-915a-590b055a730a"
USER_EMAIL = "coach2@healthcenter.com"
VALID_TOKEN = "valid-jwt"
ADMIN_ID = "7c1e4f0a-2b9d-4c55-8e1f-3a6b2d9c0e41"
ADMIN_TOKEN = "admin-jwt"


class FakeAPIError(Exception):
    """Shape of postgrest / gotrue errors: message plus optional code and status."""

    def __init__(self, message, code=None, status=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


def make_user(user_id=USER_ID, email=USER_EMAIL, metadata=None, app_metadata=None):
    return SimpleNamespace(id=user_id, email=email, user_metadata=metadata or {}, app_metadata=app_metadata or {})


# ═══════════════════════════════════════════════════════════
# PostgREST query builder
# ═══════════════════════════════════════════════════════════


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.calls = []
        self.inserted = None
        self.single = False

    def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        return self

    def select(self, *args, **kwargs):
        return self._record("select", *args, **kwargs)

    def eq(self, column, value):
        return self._record("eq", column, value)

    def ilike(self, column, pattern):
        return self._record("ilike", column, pattern)

    def order(self, column, desc=False):
        return self._record("order", column, desc=desc)

    def limit(self, count):
        return self._record("limit", count)

    def range(self, start, end):
        return self._record("range", start, end)

    def maybe_single(self):
        self.single = True
        return self._record("maybe_single")

    def insert(self, rows):
        self.inserted = rows
        return self._record("insert", rows)

    def filters(self):
        return {args[0]: args[1] for name, args, _ in self.calls if name == "eq"}

    async def execute(self):
        self.db.executed.append(self)
        error = self.db.errors.get(self.table)
        if error is not None:
            raise error

        if self.inserted is not None:
            created = []
            for row in self.inserted:
                self.db.next_id += 1
                created.append({**row, "id": row.get("id") or f"{self.table}-{self.db.next_id}"})
            self.db.rows.setdefault(self.table, []).extend(created)
            return SimpleNamespace(data=created)

        wanted = self.filters()
        rows = [
            row for row in self.db.rows.get(self.table, [])
            if all(row.get(k) == v for k, v in wanted.items())
        ]
        if self.single:
            # supabase-py returns None from maybe_single() when there is no row
            return SimpleNamespace(data=rows[0]) if rows else None
        return SimpleNamespace(data=rows)


class FakeRpc:
    def __init__(self, db, name, params):
        self.db = db
        self.name = name
        self.params = params

    async def execute(self):
        self.db.rpc_calls.append((self.name, self.params))
        result = self.db.rpc_results.get(self.name)
        if isinstance(result, Exception):
            raise result
        return SimpleNamespace(data=result)


# ═══════════════════════════════════════════════════════════
# Auth API
# ═══════════════════════════════════════════════════════════


class FakeAdminAuth:
    def __init__(self, auth):
        self.auth = auth
        self.signed_out_tokens = []
        self.invites = []
        self.updates = []

    async def sign_out(self, jwt, scope="global"):
        if self.auth.sign_out_error is not None:
            raise self.auth.sign_out_error
        if self.auth.sign_out_delay:
            await asyncio.sleep(self.auth.sign_out_delay)
        self.signed_out_tokens.append(jwt)

    async def invite_user_by_email(self, email, options=None):
        if self.auth.invite_error is not None:
            raise self.auth.invite_error
        self.invites.append((email, options))
        return SimpleNamespace(user=make_user(email=email))

    async def update_user_by_id(self, uid, attributes):
        self.updates.append((uid, attributes))
        return SimpleNamespace(user=make_user(user_id=uid))


class FakeAuth:
    def __init__(self):
        self.tokens = {}
        self.session_user = None
        self.get_user_delay = 0
        self.get_user_error = None
        self.sign_in_error = None
        self.sign_up_error = None
        self.sign_out_error = None
        self.sign_out_delay = 0
        self.invite_error = None
        self.verify_error = None
        self.sign_ups = []
        self.sign_outs = 0
        self.admin = FakeAdminAuth(self)

    async def get_user(self, jwt=None):
        if self.get_user_delay:
            await asyncio.sleep(self.get_user_delay)
        if self.get_user_error is not None:
            raise self.get_user_error
        user = self.tokens.get(jwt)
        if user is None:
            raise FakeAPIError("invalid JWT: unable to parse or verify signature", status=401)
        return SimpleNamespace(user=user)

    async def get_session(self):
        if self.get_user_delay:
            await asyncio.sleep(self.get_user_delay)
        if self.get_user_error is not None:
            raise self.get_user_error
        if self.session_user is None:
            return None
        return SimpleNamespace(user=self.session_user)

    async def sign_in_with_password(self, credentials):
        if self.sign_in_error is not None:
            raise self.sign_in_error
        user = make_user(email=credentials["email"])
        return SimpleNamespace(user=user, session=SimpleNamespace(access_token=VALID_TOKEN))

    async def sign_up(self, credentials):
        if self.sign_up_error is not None:
            raise self.sign_up_error
        self.sign_ups.append(credentials)
        user = make_user(
            user_id="b5f0e5a2-6c1b-4236-915a-590b055a0001",
            email=credentials["email"],
            metadata=credentials.get("options", {}).get("data"),
        )
        return SimpleNamespace(user=user, session=None)

    async def sign_out(self):
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.sign_outs += 1
        self.session_user = None

    async def verify_otp(self, params):
        if self.verify_error is not None:
            raise self.verify_error
        user = make_user(email="invited@example.com")
        return SimpleNamespace(user=user, session=SimpleNamespace(access_token="invite-session-jwt"))


class FakeSupabase:
    def __init__(self):
        self.rows = {}
        self.errors = {}
        self.rpc_results = {}
        self.rpc_calls = []
        self.executed = []
        self.next_id = 0
        self.auth = FakeAuth()

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params=None):
        return FakeRpc(self, name, params or {})

    def queries_for(self, table):
        return [q for q in self.executed if q.table == table]


# ═══════════════════════════════════════════════════════════
# Profile transports
# ═══════════════════════════════════════════════════════════


class FakeTransport(ProfileTransport):
    """Scripted transport: create_results are consumed in order (Exception = raise)."""

    def __init__(self, name="fake", create_results=None, lookup=ProfileLookup.FOUND,
                 lookup_error=None, create_delay=0):
        super().__init__("anonymous_profiles")
        self.name = name
        self.create_results = list(create_results or [])
        self.lookup = lookup
        self.lookup_error = lookup_error
        self.create_delay = create_delay
        self.created_shapes = []
        self.lookups = []

    async def fetch_profile(self, profile_id):
        self.lookups.append(profile_id)
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.lookup

    async def create_profile(self, shape):
        self.created_shapes.append(shape)
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        result = self.create_results.pop(0) if self.create_results else f"{self.name}-profile"
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture()
def supabase():
    return FakeSupabase()


@pytest.fixture()
def signed_in_supabase(supabase):
    supabase.auth.tokens[VALID_TOKEN] = make_user()
    return supabase


def build_binder(client, token=None, storage=None, transports=None, anonymous_enabled=False, timeout=0.5):
    storage = storage if storage is not None else MemoryStorage()
    remote = SupabaseIdentityService(client, access_token=token) if client is not None else None
    provisioner = None
    if anonymous_enabled:
        provisioner = GuestProvisioner(transports or [], storage, lookup_timeout=timeout, create_timeout=timeout)
    resolver = IdentityResolver(remote, timeout_seconds=timeout)
    return IdentityBinder(resolver, storage, provisioner=provisioner, anonymous_enabled=anonymous_enabled)


# ═══════════════════════════════════════════════════════════
# HTTP
# ═══════════════════════════════════════════════════════════


@pytest_asyncio.fixture()
async def api(supabase):
    """HTTP client with the Supabase client and identity binder overridden.

    The bearer token from each request still flows through get_access_token,
    so tests can switch between signed-in and anonymous callers per request.
    """
    from macrotrack.core.dependencies import get_access_token, get_identity_binder, get_supabase_client
    from macrotrack.main import app
    from fastapi import Depends

    async def override_get_supabase_client():
        return supabase

    async def override_get_identity_binder(access_token=Depends(get_access_token)):
        return build_binder(supabase, token=access_token)

    app.dependency_overrides[get_supabase_client] = override_get_supabase_client
    app.dependency_overrides[get_identity_binder] = override_get_identity_binder
    limiter.enabled = False

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    limiter.enabled = True
    app.dependency_overrides.clear()
