from pydantic import BaseModel, EmailStr
from typing import Optional
from enum import Enum


class InvitationKind(str, Enum):
    COACH_CODE = "coach_code"
    SUPABASE_INVITE = "supabase_invite"


class InvitationLink(BaseModel):
    kind: InvitationKind
    code: Optional[str] = None
    token: Optional[str] = None
    email: Optional[str] = None


class ValidateCodeRequest(BaseModel):
    code: str


class InvitationValidation(BaseModel):
    valid: bool
    message: str
    code: Optional[str] = None
    code_id: Optional[str] = None
    coach_email: Optional[str] = None
    coach_name: Optional[str] = None


class RedeemCodeRequest(BaseModel):
    code: str
    email: EmailStr
    password: str
    confirm_password: Optional[str] = None
    full_name: str


class RedeemCodeResponse(BaseModel):
    user_id: str
    email: str
    assigned_coach: Optional[str] = None
    profile_created: bool
    usage_recorded: bool
    message: str


class VerifyInviteRequest(BaseModel):
    token_hash: str


class CompleteInviteRequest(BaseModel):
    email: Optional[EmailStr] = None
    password: str
    confirm_password: Optional[str] = None
    full_name: str


class SendInvitationRequest(BaseModel):
    email: EmailStr
    inviter_name: str = "Administrator"


class SendInvitationResponse(BaseModel):
    success: bool
    error: Optional[str] = None
