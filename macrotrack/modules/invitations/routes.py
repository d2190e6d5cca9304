from fastapi import APIRouter, Depends, HTTPException, Request
from supabase import AsyncClient

from macrotrack.config import settings
from macrotrack.core.dependencies import (
    get_current_super_user_id, get_current_user_id, get_identity_binder, get_supabase_client, unauthorized
)
from macrotrack.core.rate_limit import limiter
from macrotrack.database.supabase_client import get_service_supabase
from macrotrack.modules.auth.schemas import TokenResponse
from macrotrack.modules.identity.binder import IdentityBinder
from macrotrack.modules.identity.exceptions import ServiceError
from macrotrack.modules.invitations.schemas import (
    CompleteInviteRequest, InvitationLink, InvitationValidation, RedeemCodeRequest,
    RedeemCodeResponse, SendInvitationRequest, SendInvitationResponse,
    ValidateCodeRequest, VerifyInviteRequest
)
from macrotrack.modules.invitations.service import InvitationService, parse_invitation_link

router = APIRouter(prefix="/invitations", tags=["invitations"])


async def get_invitation_service(
    supabase: AsyncClient = Depends(get_supabase_client),
    binder: IdentityBinder = Depends(get_identity_binder),
) -> InvitationService:
    admin_client = await get_service_supabase() if settings.supabase_service_role_key else None
    return InvitationService(supabase, remote=binder.resolver.remote, admin_client=admin_client)


@router.get("/parse", response_model=InvitationLink)
async def parse_link(url: str):
    """Detect which kind of invitation a landing URL carries"""
    link = parse_invitation_link(url)
    if link is None:
        raise HTTPException(status_code=404, detail="No invitation found in URL")
    return link


@router.post("/validate", response_model=InvitationValidation)
@limiter.limit(settings.auth_rate_limit)
async def validate_code(
    request: Request,
    body: ValidateCodeRequest,
    service: InvitationService = Depends(get_invitation_service)
):
    """Check a coach invitation code without consuming it"""
    return await service.validate_code(body.code)


@router.post("/redeem", response_model=RedeemCodeResponse, status_code=201)
@limiter.limit(settings.auth_rate_limit)
async def redeem_code(
    request: Request,
    redeem_data: RedeemCodeRequest,
    service: InvitationService = Depends(get_invitation_service)
):
    """Register with a coach invitation code"""
    return await service.redeem_code(redeem_data)


@router.post("/verify", response_model=TokenResponse)
@limiter.limit(settings.auth_rate_limit)
async def verify_invite(
    request: Request,
    body: VerifyInviteRequest,
    service: InvitationService = Depends(get_invitation_service)
):
    """Exchange an email invitation token for a session"""
    return await service.verify_invite_token(body.token_hash)


@router.post("/complete")
async def complete_invite(
    complete_data: CompleteInviteRequest,
    user_id: str = Depends(get_current_user_id),
    service: InvitationService = Depends(get_invitation_service)
):
    """Set password and name for a user who accepted an email invitation"""
    return await service.complete_invited_registration(user_id, complete_data)


@router.post("/profile")
async def ensure_profile(service: InvitationService = Depends(get_invitation_service)):
    """Create the caller's profile if the invitation flow has not done so yet"""
    try:
        user = await service.remote.get_user()
    except ServiceError:
        user = None
    if user is None:
        raise unauthorized()
    created = await service.ensure_user_profile(user)
    return {"user_id": str(user.id), "profile_created": created}


@router.post("/send", response_model=SendInvitationResponse)
async def send_invitation(
    body: SendInvitationRequest,
    user_id: str = Depends(get_current_super_user_id),
    service: InvitationService = Depends(get_invitation_service)
):
    """Send a Supabase email invitation (super users only; requires service role key)"""
    return await service.send_email_invitation(body.email, body.inviter_name)
