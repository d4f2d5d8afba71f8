import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

import jwt

from ...core.config import Settings
from ...db.models import Account
from ...exceptions import InvalidToken

logger = logging.getLogger(__name__)


class TokenPurpose(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass
class TokenClaims:
    account_id: str
    uid: Optional[str]
    email: Optional[str]
    purpose: TokenPurpose
    issued_at: int
    expires_at: int
    jti: Optional[str] = None
    role: Optional[str] = None
    provider: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TokenClaims":
        return cls(
            account_id=payload["sub"],
            uid=payload.get("uid"),
            email=payload.get("email"),
            purpose=TokenPurpose(payload["type"]),
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
            jti=payload.get("jti"),
            role=payload.get("role"),
            provider=payload.get("provider"),
        )


@dataclass
class TokenService:
    """Mints and verifies the platform's own bearer tokens. Holds no state."""

    access_secret: str
    refresh_secret: str
    access_ttl_seconds: int = 3600
    refresh_ttl_seconds: int = 7 * 24 * 3600
    algorithm: str = "HS256"

    def __post_init__(self) -> None:
        if not self.access_secret or not self.refresh_secret:
            raise ValueError("Token secrets must be configured")
        if self.access_secret == self.refresh_secret:
            raise ValueError("Access and refresh tokens must be signed with different secrets")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            access_secret=settings.JWT_SECRET,
            refresh_secret=settings.JWT_REFRESH_SECRET,
            access_ttl_seconds=settings.ACCESS_TOKEN_EXPIRE_SECONDS,
            refresh_ttl_seconds=settings.REFRESH_TOKEN_EXPIRE_SECONDS,
            algorithm=settings.JWT_ALGORITHM,
        )

    def _secret_for(self, purpose: TokenPurpose) -> str:
        return self.access_secret if purpose == TokenPurpose.ACCESS else self.refresh_secret

    def _ttl_for(self, purpose: TokenPurpose) -> int:
        return self.access_ttl_seconds if purpose == TokenPurpose.ACCESS else self.refresh_ttl_seconds

    def _encode(self, claims: Dict[str, Any], purpose: TokenPurpose) -> str:
        now = datetime.now(timezone.utc)
        to_encode = dict(claims)
        to_encode.update({
            "type": purpose.value,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self._ttl_for(purpose))).timestamp()),
            # unique per token so two pairs minted in the same second never collide
            "jti": uuid.uuid4().hex,
        })
        return jwt.encode(to_encode, self._secret_for(purpose), algorithm=self.algorithm)

    def create_access_token(self, account: Account) -> str:
        return self._encode({
            "sub": account.id,
            "uid": account.external_uid,
            "email": account.email,
            "role": account.role.value if account.role else None,
            "provider": account.provider.value if account.provider else None,
        }, TokenPurpose.ACCESS)

    def create_refresh_token(self, account: Account) -> str:
        return self._encode({
            "sub": account.id,
            "uid": account.external_uid,
            "email": account.email,
        }, TokenPurpose.REFRESH)

    def mint(self, account: Account) -> TokenPair:
        pair = TokenPair(
            access_token=self.create_access_token(account),
            refresh_token=self.create_refresh_token(account),
        )
        logger.info(f"Generated token pair for user: {account.id}")
        return pair

    def verify(self, token: str, expected_purpose: TokenPurpose) -> TokenClaims:
        """Signature, expiry and purpose are checked; every failure is ``InvalidToken``."""
        expected_purpose = TokenPurpose(expected_purpose)
        if not token:
            logger.warning(f"{expected_purpose.value} token rejected: empty")
            raise InvalidToken()
        try:
            payload = jwt.decode(
                token,
                self._secret_for(expected_purpose),
                algorithms=[self.algorithm],
                options={"require": ["sub", "type", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError as e:
            logger.warning(f"{expected_purpose.value} token rejected: expired")
            raise InvalidToken() from e
        except jwt.InvalidSignatureError as e:
            logger.warning(f"{expected_purpose.value} token rejected: bad signature")
            raise InvalidToken() from e
        except jwt.MissingRequiredClaimError as e:
            logger.warning(f"{expected_purpose.value} token rejected: missing claim {e.claim}")
            raise InvalidToken() from e
        except jwt.DecodeError as e:
            logger.warning(f"{expected_purpose.value} token rejected: malformed")
            raise InvalidToken() from e
        except jwt.InvalidTokenError as e:
            logger.warning(f"{expected_purpose.value} token rejected: {e}")
            raise InvalidToken() from e

        if payload.get("type") != expected_purpose.value:
            logger.warning(
                f"{expected_purpose.value} token rejected: purpose mismatch ({payload.get('type')})"
            )
            raise InvalidToken()
        return TokenClaims.from_payload(payload)
