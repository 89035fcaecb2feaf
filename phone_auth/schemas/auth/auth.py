# phone_auth/schemas/auth/auth.py
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from ...application.ports.challenge_repo import ChallengeType


class LoginOrRegisterRequest(BaseModel):
    phone_number: str = Field(..., description="Phone number, with or without the leading +")
    business_name: Optional[str] = Field(None, max_length=100, description="Required when the number has no account yet")
    owner_name: Optional[str] = Field(None, max_length=50, description="Required when the number has no account yet")

    @field_validator('business_name', 'owner_name')
    @classmethod
    def validate_names(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            return None
        if len(v) < 2:
            raise ValueError('Must be at least 2 characters')
        return v


class LoginOrRegisterData(BaseModel):
    action: ChallengeType
    phone_number: str
    expires_in: int


class LoginOrRegisterResponse(BaseModel):
    success: bool = True
    message: str
    data: LoginOrRegisterData


class VerifyOTPRequest(BaseModel):
    phone_number: str
    otp: str = Field(..., min_length=1, max_length=32, description="The code received by SMS")
    challenge_type: ChallengeType = Field(..., description="register or login, as returned by login-or-register")

    @field_validator('otp')
    @classmethod
    def validate_otp(cls, v):
        return v.strip()


class TokenData(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int


class AccountData(BaseModel):
    id: str
    phone_number: str
    is_verified: bool
    business_name: Optional[str] = None
    owner_name: Optional[str] = None


class VerifyOTPData(TokenData):
    account: AccountData


class VerifyOTPResponse(BaseModel):
    success: bool = True
    message: str
    data: VerifyOTPData


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class RefreshTokenResponse(BaseModel):
    success: bool = True
    message: str
    data: TokenData


class LogoutRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutResponse(BaseModel):
    success: bool = True
    message: str
    data: Dict[str, Any]


class MeResponse(BaseModel):
    success: bool = True
    data: Dict[str, Any]
