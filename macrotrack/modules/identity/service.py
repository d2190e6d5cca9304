from typing import List, Optional

import httpx

from macrotrack.config import settings
from macrotrack.modules.identity.binder import IdentityBinder
from macrotrack.modules.identity.fallback import ANON_PROVISIONING_KEY, GuestProvisioner, SingleFlight
from macrotrack.modules.identity.remote import SupabaseIdentityService
from macrotrack.modules.identity.resolver import IdentityResolver
from macrotrack.modules.identity.storage import IdentityStorage
from macrotrack.modules.identity.transports import ProfileTransport, RestTransport, StructuredTransport


def build_profile_transports(client, rest_client: Optional[httpx.AsyncClient] = None) -> List[ProfileTransport]:
    """Structured transport first; the REST transport only when a base URL is configured."""
    transports: List[ProfileTransport] = []
    if client is not None:
        transports.append(StructuredTransport(client, table=settings.anon_profiles_table))
    if rest_client is not None and settings.rest_api_base_url:
        transports.append(RestTransport(rest_client, table=settings.anon_profiles_table))
    return transports


def build_identity_binder(
    client,
    storage: IdentityStorage,
    access_token: Optional[str] = None,
    rest_client: Optional[httpx.AsyncClient] = None,
    single_flight: Optional[SingleFlight] = None,
    flight_key: str = ANON_PROVISIONING_KEY,
) -> IdentityBinder:
    """Wire resolver, guest provisioner and binder around one Supabase client."""
    remote = SupabaseIdentityService(client, access_token=access_token) if client is not None else None
    resolver = IdentityResolver(remote)

    provisioner = None
    if settings.anonymous_profiles_enabled:
        provisioner = GuestProvisioner(
            build_profile_transports(client, rest_client),
            storage,
            single_flight=single_flight,
            flight_key=flight_key,
        )

    return IdentityBinder(resolver, storage, provisioner=provisioner)
