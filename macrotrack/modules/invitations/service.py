"""
Invitation redemption.

Two ways into the invite-only app:
1. Coach invitation codes - validated and counted through RPC functions,
   the new user is assigned to the coach who issued the code
2. Supabase email invitations - token verified with verify_otp, password
   set afterwards, profile created on first login if missing
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, urlparse

from fastapi import HTTPException

from macrotrack.config import settings
from macrotrack.modules.auth.schemas import TokenResponse
from macrotrack.modules.auth.service import auth_http_error, validate_password
from macrotrack.modules.identity.exceptions import ServiceError
from macrotrack.modules.identity.remote import SupabaseIdentityService
from macrotrack.modules.invitations.schemas import (
    CompleteInviteRequest, InvitationKind, InvitationLink, InvitationValidation,
    RedeemCodeRequest, RedeemCodeResponse, SendInvitationResponse
)

logger = logging.getLogger(__name__)

INVALID_CODE_MESSAGE = "Invalid or expired invitation code"
VALIDATION_ERROR_MESSAGE = "Error validating invitation code"


def _first(params: Dict[str, list], *names: str) -> Optional[str]:
    for name in names:
        values = params.get(name)
        if values and values[0]:
            return values[0]
    return None


def parse_invitation_link(url: str) -> Optional[InvitationLink]:
    """Detect a coach code (?code= / ?invitation_code=) or a Supabase invite token
    (query or #fragment, type invite|signup). Coach codes win when both are present."""
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    fragment = parse_qs(parsed.fragment)

    code = _first(query, "code", "invitation_code")
    if code:
        return InvitationLink(kind=InvitationKind.COACH_CODE, code=code.strip())

    token = _first(query, "token") or _first(fragment, "access_token")
    invite_type = _first(query, "type") or _first(fragment, "type")
    email = _first(query, "email") or _first(fragment, "email")
    if token and invite_type in ("invite", "signup"):
        return InvitationLink(kind=InvitationKind.SUPABASE_INVITE, token=token, email=email)
    return None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InvitationService:
    def __init__(self, supabase, remote: Optional[SupabaseIdentityService] = None, admin_client=None):
        self.supabase = supabase
        self.remote = remote or SupabaseIdentityService(supabase)
        self.admin_client = admin_client

    # ─── Coach invitation codes ─────────────────────────────

    async def validate_code(self, code: str) -> InvitationValidation:
        code = (code or "").strip()
        if not code:
            return InvitationValidation(valid=False, message="Invitation code is required")

        try:
            result = await self.supabase.rpc("validate_invitation_code", {"input_code": code}).execute()
        except Exception as e:
            logger.error(f"Error validating invitation code: {e}")
            return InvitationValidation(valid=False, message=VALIDATION_ERROR_MESSAGE)

        rows = result.data if result is not None else None
        if isinstance(rows, dict):
            rows = [rows]
        if not rows:
            return InvitationValidation(valid=False, message=INVALID_CODE_MESSAGE)

        row = rows[0]
        if not row.get("is_valid"):
            return InvitationValidation(valid=False, message=INVALID_CODE_MESSAGE)

        return InvitationValidation(
            valid=True,
            message="Invitation code is valid",
            code=code,
            code_id=str(row["code_id"]) if row.get("code_id") else None,
            coach_email=row.get("coach_email"),
            coach_name=row.get("coach_name"),
        )

    async def increment_usage(self, code: str) -> bool:
        """Count one redemption. Failures are logged, never raised."""
        try:
            result = await self.supabase.rpc("increment_invitation_code_usage", {"input_code": code}).execute()
        except Exception as e:
            logger.error(f"Error incrementing invitation code usage: {e}")
            return False

        if result is None or not result.data:
            logger.warning(f"Invitation code not found for increment: {code}")
            return False
        logger.info(f"Invitation code usage incremented for: {code}")
        return True

    async def redeem_code(self, redeem_data: RedeemCodeRequest) -> RedeemCodeResponse:
        """Sign up with a coach code, create the client profile, count the redemption."""
        problem = validate_password(redeem_data.password, redeem_data.confirm_password)
        if problem:
            raise HTTPException(status_code=400, detail=problem)

        validation = await self.validate_code(redeem_data.code)
        if not validation.valid:
            raise HTTPException(status_code=400, detail=validation.message)

        code = validation.code
        try:
            auth_response = await self.remote.sign_up(redeem_data.email, redeem_data.password, {
                "full_name": redeem_data.full_name,
                "name": redeem_data.full_name,
                "invitation_code": code,
            })
        except ServiceError as e:
            logger.error(f"Coach registration error: {e.message}")
            raise auth_http_error(e)

        user = auth_response.user if auth_response else None
        if not user:
            raise HTTPException(status_code=400, detail="Failed to register user")

        now = _now()
        profile = {
            "id": str(uuid.uuid4()),
            "user_id": str(user.id),
            "user_email": user.email or redeem_data.email,
            "user_name": redeem_data.full_name,
            "user_role": settings.default_invited_role,
            "assignment_status": "assigned",
            "assigned_coach": validation.coach_email,
            "coach_invite_code": code,
            "coach_assignment_date": now,
            "role_assigned_at": now,
            "role_assigned_by": f"invitation_code_{code}",
            "created_at": now,
            "updated_at": now,
        }
        profile_created = True
        try:
            await self.supabase.table("user_profiles").insert([profile]).execute()
        except Exception as e:
            # A database trigger may already have created the profile
            profile_created = False
            logger.error(f"Error creating user profile: {e}")

        usage_recorded = await self.increment_usage(code)

        return RedeemCodeResponse(
            user_id=str(user.id),
            email=user.email or redeem_data.email,
            assigned_coach=validation.coach_email,
            profile_created=profile_created,
            usage_recorded=usage_recorded,
            message="Account created successfully",
        )

    # ─── Supabase email invitations ─────────────────────────

    async def verify_invite_token(self, token_hash: str) -> TokenResponse:
        try:
            auth_response = await self.remote.verify_otp(token_hash, "invite")
        except ServiceError as e:
            logger.error(f"Invitation verification error: {e.message}")
            raise HTTPException(status_code=400, detail="Invalid or expired invitation link.")

        if not auth_response or not auth_response.user or not auth_response.session:
            raise HTTPException(status_code=400, detail="Invalid or expired invitation link.")

        return TokenResponse(
            access_token=auth_response.session.access_token,
            user_id=str(auth_response.user.id),
            email=auth_response.user.email or "",
        )

    async def complete_invited_registration(self, user_id: str, complete_data: CompleteInviteRequest) -> Dict[str, Any]:
        """Set the password and name of a user who arrived through an email invite"""
        problem = validate_password(complete_data.password, complete_data.confirm_password)
        if problem:
            raise HTTPException(status_code=400, detail=problem)
        if self.admin_client is None or not settings.supabase_service_role_key:
            raise HTTPException(
                status_code=500,
                detail="Service role key not configured. Cannot complete registration."
            )

        attributes: Dict[str, Any] = {
            "password": complete_data.password,
            "user_metadata": {
                "full_name": complete_data.full_name,
                "name": complete_data.full_name,
                "role": "user",
            },
        }
        if complete_data.email:
            attributes["email"] = complete_data.email

        try:
            response = await self.admin_client.auth.admin.update_user_by_id(user_id, attributes)
        except Exception as e:
            logger.error(f"Registration error: {e}")
            raise HTTPException(status_code=500, detail="Failed to complete registration. Please try again.")

        if not response or not response.user:
            raise HTTPException(status_code=404, detail="User not found")
        return {"user_id": user_id, "message": "Registration completed successfully"}

    async def ensure_user_profile(self, user) -> bool:
        """Create the profile (and client role) for an email-invited user. Returns True if created."""
        try:
            existing = await self.supabase.table("user_profiles")\
                .select("*")\
                .eq("user_id", str(user.id))\
                .maybe_single()\
                .execute()
        except Exception as e:
            logger.error(f"Error checking user profile: {e}")
            return False

        if existing is not None and existing.data:
            logger.debug("User profile already exists for email invite user")
            return False

        metadata = getattr(user, "user_metadata", None) or {}
        now = _now()
        profile = {
            "id": str(uuid.uuid4()),
            "user_id": str(user.id),
            "user_email": user.email,
            "user_name": metadata.get("full_name") or user.email,
            "user_role": settings.default_invited_role,
            "assignment_status": "unassigned",
            "role_assigned_at": now,
            "role_assigned_by": "email_invitation",
            "created_at": now,
            "updated_at": now,
        }
        try:
            await self.supabase.table("user_profiles").insert([profile]).execute()
        except Exception as e:
            logger.error(f"Error creating user profile for email invite: {e}")
            return False

        await self._assign_default_role(str(user.id))
        logger.info("User profile created for email invitation")
        return True

    async def _assign_default_role(self, user_id: str) -> None:
        role_name = settings.default_invited_role
        try:
            role = await self.supabase.table("roles")\
                .select("id")\
                .eq("name", role_name)\
                .maybe_single()\
                .execute()
            if role is not None and role.data:
                await self.supabase.table("user_roles").insert([{
                    "user_id": user_id,
                    "role_id": role.data["id"]
                }]).execute()
                return
        except Exception as e:
            logger.warning(f"Role lookup failed, using string role assignment: {e}")

        try:
            await self.supabase.table("user_roles").insert([{
                "user_id": user_id,
                "role": role_name
            }]).execute()
        except Exception as e:
            logger.error(f"Role assignment failed for {user_id}: {e}")

    async def send_email_invitation(self, email: str, inviter_name: str = "Administrator") -> SendInvitationResponse:
        if self.admin_client is None or not settings.supabase_service_role_key:
            return SendInvitationResponse(success=False, error="Service role key not configured")
        try:
            await self.admin_client.auth.admin.invite_user_by_email(email, {
                "data": {
                    "invited_by": inviter_name,
                    "invitation_type": "email",
                    "invited_at": _now(),
                }
            })
        except Exception as e:
            logger.error(f"Error sending email invitation: {e}")
            return SendInvitationResponse(success=False, error=str(e))

        logger.info(f"Email invitation sent to {email}")
        return SendInvitationResponse(success=True)
