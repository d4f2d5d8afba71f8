# ticket_auth/schemas/auth/auth.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Literal


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SignInRequest(BaseModel):
    phone: Optional[str] = Field(None, description="Phone number for OTP sign-in")
    otp: Optional[str] = Field(None, description="Code received through the messaging channel")


class RequestOtpRequest(BaseModel):
    phone: str = Field(..., description="Phone number (0xxxxxxxxx, 84xxxxxxxxx or +84xxxxxxxxx)")

    @field_validator("phone")
    @classmethod
    def strip_phone(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Phone number is required")
        return v


class ValidateTokenRequest(BaseModel):
    type: Literal["access", "refresh"] = Field("access", description="Which token kind is being presented")


class TokenPairData(CamelModel):
    access_token: str = Field(..., alias="accessToken")
    refresh_token: str = Field(..., alias="refreshToken")


class OtpRequestData(CamelModel):
    remaining_attempts: int = Field(..., alias="remainingAttempts")
    otp_expires_in: int = Field(..., alias="otpExpiresIn")


class AccountData(CamelModel):
    id: str
    uid: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    name: Optional[str] = None
    picture: Optional[str] = None
    role: str
    provider: str
    auth_type: str = Field(..., alias="authType")


class TokenValidationData(CamelModel):
    user_id: str = Field(..., alias="userId")
    uid: Optional[str] = None
    email: Optional[str] = None
    token_type: str = Field(..., alias="tokenType")
    user_exists: bool = Field(..., alias="userExists")
    role: Optional[str] = None
    provider: Optional[str] = None
    issued_at: int = Field(..., alias="issuedAt")
    expires_at: int = Field(..., alias="expiresAt")


class HealthData(BaseModel):
    status: Literal["ok", "degraded"]
    database: bool
    cache: bool
    version: str
