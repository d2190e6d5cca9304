from pydantic import BaseModel, EmailStr
from typing import Optional
from enum import Enum


class AuthErrorCode(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_NOT_CONFIRMED = "email_not_confirmed"
    RATE_LIMITED = "rate_limited"
    ALREADY_REGISTERED = "already_registered"
    WEAK_PASSWORD = "weak_password"
    UNKNOWN = "unknown"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    confirm_password: Optional[str] = None
    full_name: Optional[str] = None


class RegisterResponse(BaseModel):
    user_id: str
    email: str
    message: str


class UpgradeRequest(BaseModel):
    email: EmailStr
    password: str


class UpgradeResponse(BaseModel):
    user_id: str
    email: str
    previous_anon_profile_id: Optional[str] = None
    # Records owned by the anonymous profile are not moved to the new user
    reattribution_pending: bool = False
    message: str


class LogoutResponse(BaseModel):
    message: str
    remote_signed_out: bool
