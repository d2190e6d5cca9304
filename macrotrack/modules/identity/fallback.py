"""
Guest (anonymous profile) provisioning.

Legacy path, only used when anonymous_profiles_enabled is on.

The chain is data: an ordered list of (transport, record shape) strategies
run by run_in_order(), which stops at the first success. Shapes go from the
richest to the most minimal so at least one matches whatever schema version
the deployment has:

    structured:with_expires_at -> structured:minimal -> structured:empty
    -> rest:with_expires_at -> rest:minimal -> rest:empty

Attempts are strictly sequential; a failed shape (schema mismatch or any
other error) moves on to the next one.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from macrotrack.config import settings
from macrotrack.modules.identity.exceptions import (
    AllProvisioningMethodsFailed, IdentityTimeout, SchemaMismatch
)
from macrotrack.modules.identity.storage import IdentityStorage
from macrotrack.modules.identity.transports import ProfileLookup, ProfileTransport

logger = logging.getLogger(__name__)

ANON_PROVISIONING_KEY = "anon-provisioning"


class ProfileShape(str, Enum):
    WITH_EXPIRY = "with_expires_at"
    MINIMAL = "minimal"
    EMPTY = "empty"


def build_profile_shape(shape: ProfileShape, display_name: str, ttl_days: int,
                        now: Optional[datetime] = None) -> Dict[str, Any]:
    if shape == ProfileShape.EMPTY:
        return {}
    payload: Dict[str, Any] = {"display_name": display_name}
    if shape == ProfileShape.WITH_EXPIRY:
        now = now or datetime.now(timezone.utc)
        payload["expires_at"] = (now + timedelta(days=ttl_days)).isoformat()
    return payload


@dataclass
class ProvisioningStrategy:
    transport: ProfileTransport
    shape: ProfileShape

    @property
    def label(self) -> str:
        return f"{self.transport.name}:{self.shape.value}"


def default_strategies(transports: Sequence[ProfileTransport]) -> List[ProvisioningStrategy]:
    """Every shape on the first transport, then every shape on the next."""
    return [
        ProvisioningStrategy(transport=transport, shape=shape)
        for transport in transports
        for shape in ProfileShape
    ]


async def run_in_order(attempts: Sequence[Tuple[str, Callable[[], Awaitable[Any]]]]) -> Tuple[Any, str]:
    """Await each attempt in turn and return (result, label) of the first success.

    Raises AllProvisioningMethodsFailed with every collected error when none succeed.
    """
    errors: List[Exception] = []
    for index, (label, attempt) in enumerate(attempts):
        try:
            result = await attempt()
        except SchemaMismatch as e:
            errors.append(e)
            logger.debug(f"{label}: column '{e.column}' not found, trying next format")
            continue
        except Exception as e:
            errors.append(e)
            if index < len(attempts) - 1:
                logger.warning(f"{label} failed, trying next format: {e}")
            continue
        return result, label
    raise AllProvisioningMethodsFailed(errors)


class SingleFlight:
    """Concurrent callers with the same key share one in-progress call."""

    def __init__(self):
        self._inflight: Dict[str, asyncio.Future] = {}

    async def do(self, key: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        # shield: one cancelled caller must not cancel the shared attempt
        return await asyncio.shield(task)

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def _forget(self, key: str, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]


class GuestProvisioner:
    def __init__(
        self,
        transports: Sequence[ProfileTransport],
        storage: IdentityStorage,
        *,
        strategies: Optional[Sequence[ProvisioningStrategy]] = None,
        display_name: Optional[str] = None,
        ttl_days: Optional[int] = None,
        lookup_timeout: Optional[float] = None,
        create_timeout: Optional[float] = None,
        single_flight: Optional[SingleFlight] = None,
        flight_key: str = ANON_PROVISIONING_KEY,
    ):
        self.transports = list(transports)
        self.storage = storage
        self.strategies = list(strategies) if strategies is not None else default_strategies(self.transports)
        self.display_name = display_name or settings.anon_profile_display_name
        self.ttl_days = ttl_days if ttl_days is not None else settings.anon_profile_ttl_days
        self.lookup_timeout = lookup_timeout if lookup_timeout is not None else settings.auth_timeout_seconds
        self.create_timeout = create_timeout if create_timeout is not None else settings.profile_create_timeout_seconds
        self.single_flight = single_flight or SingleFlight()
        # a shared SingleFlight needs a key per client so guests never share an id by accident
        self.flight_key = flight_key

    async def get_or_create_anonymous_profile(self) -> Optional[str]:
        """Cached guest id if the server still knows it, otherwise a new one. None if everything failed."""
        profile_id = await self.single_flight.do(self.flight_key, self._get_or_create)
        # callers that joined another caller's attempt still persist the id in their own storage
        if profile_id and self.storage.get() != profile_id:
            self.storage.set(profile_id)
        return profile_id

    async def _get_or_create(self) -> Optional[str]:
        cached_id = self.storage.get()
        if cached_id and await self._verify_cached(cached_id):
            return cached_id

        try:
            profile_id, label = await run_in_order([
                (strategy.label, self._attempt(strategy)) for strategy in self.strategies
            ])
        except AllProvisioningMethodsFailed as e:
            logger.critical(f"Anonymous profile provisioning failed on every transport: {e}")
            return None

        self.storage.set(profile_id)
        logger.info(f"Created anonymous profile {profile_id} via {label}")
        return profile_id

    async def _verify_cached(self, cached_id: str) -> bool:
        """True if a transport confirms the cached id; evicts the cache on not-found."""
        for transport in self.transports:
            try:
                lookup = await asyncio.wait_for(
                    transport.fetch_profile(cached_id),
                    timeout=self.lookup_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(f"Verifying anonymous profile via {transport.name} timed out")
                continue
            except Exception as e:
                logger.warning(f"Could not verify anonymous profile via {transport.name}: {e}")
                continue

            if lookup == ProfileLookup.FOUND:
                return True
            self.storage.remove()
            logger.info(f"Anonymous profile {cached_id} not found, removed from storage")
            return False
        return False

    def _attempt(self, strategy: ProvisioningStrategy) -> Callable[[], Awaitable[str]]:
        async def attempt() -> str:
            shape = build_profile_shape(strategy.shape, self.display_name, self.ttl_days)
            try:
                return await asyncio.wait_for(
                    strategy.transport.create_profile(shape),
                    timeout=self.create_timeout,
                )
            except asyncio.TimeoutError as e:
                raise IdentityTimeout(f"{strategy.label} timed out after {self.create_timeout}s") from e
        return attempt
