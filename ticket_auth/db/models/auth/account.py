# ticket_auth/db/models/auth/account.py
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import SQLModel, Field

from ....utils import new_account_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    USER = "user"
    BUSINESS = "business"
    ADMIN = "admin"


class AuthType(str, Enum):
    FEDERATED = "federated"
    PHONE_OTP = "phone_otp"


class AuthProvider(str, Enum):
    GOOGLE = "google"
    FACEBOOK = "facebook"
    LOCAL = "local"
    SMS_ZALO = "sms_zalo"


class Account(SQLModel, table=True):
    __tablename__ = "accounts"
    id: str = Field(default_factory=new_account_id, primary_key=True, max_length=36)
    external_uid: Optional[str] = Field(default=None, max_length=128, unique=True, index=True)
    email: Optional[str] = Field(default=None, max_length=255, unique=True, index=True)
    phone_number: Optional[str] = Field(default=None, max_length=20, unique=True, index=True)
    email_verified: bool = Field(default=False)
    phone_verified: bool = Field(default=False)
    role: UserRole = Field(default=UserRole.USER)
    auth_type: AuthType = Field(default=AuthType.FEDERATED)
    provider: AuthProvider = Field(default=AuthProvider.LOCAL)
    custom_claims: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    id_token: Optional[str] = Field(default=None)
    refresh_token: Optional[str] = Field(default=None)
    last_login_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime(timezone=True))
    deleted_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    def is_federated(self) -> bool:
        return self.auth_type == AuthType.FEDERATED
