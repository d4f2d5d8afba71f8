import functools
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from ...db.models import Account, AuthProvider, AuthType, UserRole
from ...exceptions import (
    AuthError,
    Conflict,
    InternalError,
    InvalidCredential,
    InvalidToken,
    NotFound,
    Unauthorized,
    ValidationFailed,
)
from ...utils import new_account_id, normalize_phone
from ..ports.account_repo import AccountRepository
from ..ports.audit_logger import AuditLogger
from ..ports.identity_provider import FederatedIdentity, IdentityProvider
from ..ports.profile_service import ProfileService
from .otp_service import OTPService, OtpRequestResult
from .session_registry import SessionRegistry
from .token_service import TokenClaims, TokenPair, TokenPurpose, TokenService

logger = logging.getLogger(__name__)

_PROVIDER_BY_SIGN_IN_METHOD = {
    "google.com": AuthProvider.GOOGLE,
    "facebook.com": AuthProvider.FACEBOOK,
}


def map_provider(sign_in_provider: Optional[str]) -> AuthProvider:
    """Identity provider's sign-in method -> stored provider label."""
    return _PROVIDER_BY_SIGN_IN_METHOD.get(sign_in_provider or "", AuthProvider.LOCAL)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _orchestrated(operation: str):
    """Typed auth errors pass through; anything else is logged and becomes InternalError."""
    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(self, *args, **kwargs):
            try:
                return await fn(self, *args, **kwargs)
            except AuthError:
                raise
            except Exception as e:
                logger.exception(f"{operation} failed unexpectedly: {e}")
                raise InternalError() from e
        return wrapper
    return decorator


@dataclass
class AuthContext:
    """Who is calling, as established from a verified platform token."""

    account_id: str
    uid: Optional[str]
    email: Optional[str]
    role: Optional[str]
    provider: Optional[str]
    token_type: TokenPurpose
    issued_at: int
    expires_at: int
    account_exists: bool = True

    @classmethod
    def from_claims(cls, claims: TokenClaims, account: Optional[Account] = None) -> "AuthContext":
        role = claims.role
        provider = claims.provider
        if account is not None:
            role = role or account.role.value
            provider = provider or account.provider.value
        return cls(
            account_id=claims.account_id,
            uid=claims.uid,
            email=claims.email,
            role=role,
            provider=provider,
            token_type=claims.purpose,
            issued_at=claims.issued_at,
            expires_at=claims.expires_at,
            account_exists=account is not None,
        )


@dataclass
class SignUpResult:
    account: Account
    name: Optional[str] = None
    picture: Optional[str] = None


@dataclass
class AuthService:
    """Resolves callers to accounts and coordinates every auth flow.

    Sign-up registers the account with the profile service first and only then
    stores it locally, so the account id is shared by both systems. If the local
    write fails after the remote one succeeded the profile is orphaned; that is
    logged and the error still reaches the caller.
    """

    accounts: AccountRepository
    identity: IdentityProvider
    profiles: ProfileService
    tokens: TokenService
    sessions: SessionRegistry
    otp: OTPService
    audit: Optional[AuditLogger] = None

    def _audit(self, action: str, *, phone: Optional[str] = None, user_id: Optional[str] = None,
               success: bool = True, details: Optional[dict] = None) -> None:
        if self.audit is not None:
            self.audit.log(action, phone=phone, user_id=user_id, success=success, details=details)

    async def _persist_session(self, account: Account) -> TokenPair:
        pair = self.tokens.mint(account)
        account.refresh_token = pair.refresh_token
        account.last_login_at = _utcnow()
        account = await self.accounts.save(account)
        await self.sessions.whitelist(account.id, pair.access_token)
        return pair

    async def _create_local_account(self, account: Account) -> Account:
        try:
            return await self.accounts.add(account)
        except Exception:
            logger.error(
                f"Local account write failed after profile provisioning; profile {account.id} is orphaned"
            )
            raise

    @staticmethod
    def _phone_or_none(phone: Optional[str]) -> Optional[str]:
        if not phone:
            return None
        try:
            return normalize_phone(phone)
        except ValidationFailed:
            logger.warning("Ignoring unparseable phone number from identity provider")
            return None

    # =========================
    # Federated sign-up / sign-in
    # =========================
    @_orchestrated("sign_up")
    async def sign_up(self, raw_token: str) -> SignUpResult:
        identity: FederatedIdentity = await self.identity.verify(raw_token)

        existing = await self.accounts.get_by_external_uid(identity.uid, include_deleted=True)
        if existing is not None:
            reason = "deactivated" if existing.deleted_at else "exists"
            logger.info(f"Sign-up rejected for uid {identity.uid}: {reason}")
            self._audit("sign_up", user_id=identity.uid, success=False, details={"reason": reason})
            raise Conflict("Account has been deactivated" if existing.deleted_at else "User already exists")

        phone = self._phone_or_none(identity.phone_number)
        # Unique columns are checked before the profile service is touched
        if phone and await self.accounts.get_by_phone(phone, include_deleted=True):
            self._audit("sign_up", phone=phone, user_id=identity.uid, success=False, details={"reason": "phone_taken"})
            raise Conflict("Phone number is already registered")

        account_id = new_account_id()
        await self.profiles.create_profile(account_id, identity.name, identity.picture)

        account = Account(
            id=account_id,
            external_uid=identity.uid,
            email=identity.email,
            email_verified=identity.email_verified,
            phone_number=phone,
            phone_verified=phone is not None,
            role=UserRole.USER,
            auth_type=AuthType.FEDERATED,
            provider=map_provider(identity.provider),
            custom_claims={"sign_in_provider": identity.provider},
            id_token=raw_token,
        )
        account = await self._create_local_account(account)

        logger.info(f"Created account {account.id} for uid {identity.uid} via {account.provider.value}")
        self._audit("sign_up", phone=phone, user_id=account.id, details={"provider": account.provider.value})
        return SignUpResult(account=account, name=identity.name, picture=identity.picture)

    @_orchestrated("sign_in")
    async def sign_in_federated(self, raw_token: str) -> TokenPair:
        identity = await self.identity.verify(raw_token)
        provider = map_provider(identity.provider)

        account = await self.accounts.get_by_external_uid_and_provider(identity.uid, provider)
        if account is None:
            logger.info(f"Sign-in rejected, no {provider.value} account for uid {identity.uid}")
            self._audit("sign_in", user_id=identity.uid, success=False, details={"reason": "not_found"})
            raise NotFound("User not found. Please sign up first.")

        account.id_token = raw_token
        account.email_verified = account.email_verified or identity.email_verified
        pair = await self._persist_session(account)
        self._audit("sign_in", user_id=account.id, details={"provider": provider.value})
        return pair

    # =========================
    # Phone OTP
    # =========================
    @_orchestrated("request_otp")
    async def request_otp(self, phone: str) -> OtpRequestResult:
        return await self.otp.request_otp(phone)

    @_orchestrated("sign_in")
    async def sign_in_with_otp(self, phone: str, code: str) -> TokenPair:
        phone = normalize_phone(phone)
        if not await self.otp.verify_otp(phone, code):
            raise InvalidCredential("Invalid or expired OTP")
        return await self.sign_in_verified_phone(phone)

    @_orchestrated("sign_in")
    async def sign_in_verified_phone(self, phone: str) -> TokenPair:
        """Sign in a phone whose ownership was already proven by an OTP match."""
        phone = normalize_phone(phone)
        account = await self.accounts.get_by_phone(phone)

        if account is None:
            if await self.accounts.get_by_phone(phone, include_deleted=True):
                self._audit("sign_in", phone=phone, success=False, details={"reason": "deactivated"})
                raise Conflict("Account has been deactivated")
            account_id = new_account_id()
            await self.profiles.create_profile(account_id, f"Zalo User-{phone}", None)
            account = await self._create_local_account(Account(
                id=account_id,
                phone_number=phone,
                phone_verified=True,
                role=UserRole.USER,
                auth_type=AuthType.PHONE_OTP,
                provider=AuthProvider.SMS_ZALO,
            ))
            logger.info(f"Provisioned phone account {account.id}")
            self._audit("sign_up", phone=phone, user_id=account.id, details={"provider": AuthProvider.SMS_ZALO.value})
        elif account.auth_type != AuthType.PHONE_OTP:
            self._audit("sign_in", phone=phone, user_id=account.id, success=False, details={"reason": "federated_account"})
            raise Conflict("Phone number belongs to an account that signs in through its identity provider")

        account.phone_verified = True
        pair = await self._persist_session(account)
        self._audit("sign_in", phone=phone, user_id=account.id, details={"provider": account.provider.value})
        return pair

    # =========================
    # Sign-out
    # =========================
    async def _sign_out(self, account: Account) -> None:
        await self.sessions.revoke(account.id)

        if account.is_federated() and account.external_uid:
            try:
                await self.identity.revoke_sessions(account.external_uid)
            except AuthError as e:
                logger.warning(f"Identity provider session revocation failed for {account.id}: {e.message}")

        account.id_token = None
        account.refresh_token = None
        await self.accounts.save(account)
        logger.info(f"Signed out account {account.id}")
        self._audit("sign_out", user_id=account.id)

    @_orchestrated("sign_out")
    async def sign_out(self, external_uid: str) -> None:
        account = await self.accounts.get_by_external_uid(external_uid)
        if account is None:
            raise NotFound("User not found")
        await self._sign_out(account)

    @_orchestrated("sign_out")
    async def sign_out_account(self, account_id: str) -> None:
        account = await self.accounts.get_by_id(account_id)
        if account is None:
            raise NotFound("User not found")
        await self._sign_out(account)

    # =========================
    # Platform tokens
    # =========================
    async def _load_token_account(self, claims: TokenClaims) -> Optional[Account]:
        if claims.uid:
            account = await self.accounts.get_by_external_uid(claims.uid)
        else:
            account = await self.accounts.get_by_id(claims.account_id)
        if account is not None and account.id != claims.account_id:
            logger.warning(f"Token subject {claims.account_id} does not match account {account.id}")
            raise InvalidToken()
        return account

    async def _verify_refresh(self, refresh_token: str) -> Tuple[TokenClaims, Account]:
        claims = self.tokens.verify(refresh_token, TokenPurpose.REFRESH)
        account = await self._load_token_account(claims)
        if account is None:
            raise NotFound("User not found")
        if not account.refresh_token or not hmac.compare_digest(account.refresh_token, refresh_token):
            logger.warning(f"Superseded or revoked refresh token presented for {account.id}")
            self._audit("refresh_reuse_detected", user_id=account.id, success=False)
            raise Unauthorized("Refresh token has been revoked or superseded")
        return claims, account

    @_orchestrated("validate_token")
    async def validate_token(self, token: str, purpose: TokenPurpose = TokenPurpose.ACCESS) -> AuthContext:
        """Refresh tokens must be the account's current one; access tokens must be whitelisted.

        A whitelisted access token whose account has since disappeared still
        validates, with ``account_exists`` set to False.
        """
        purpose = TokenPurpose(purpose)
        if purpose == TokenPurpose.REFRESH:
            claims, account = await self._verify_refresh(token)
            return AuthContext.from_claims(claims, account)

        claims = self.tokens.verify(token, TokenPurpose.ACCESS)
        if not await self.sessions.is_valid(claims.account_id, token):
            raise InvalidToken("Access token has been revoked or superseded")
        account = await self._load_token_account(claims)
        return AuthContext.from_claims(claims, account)

    async def authenticate(self, access_token: str) -> AuthContext:
        context = await self.validate_token(access_token, TokenPurpose.ACCESS)
        if not context.account_exists:
            raise Unauthorized("Account no longer exists")
        return context

    @_orchestrated("refresh")
    async def refresh(self, refresh_token: str) -> TokenPair:
        """Single use: of concurrent refreshes with the same token only one rotates."""
        _, account = await self._verify_refresh(refresh_token)
        pair = self.tokens.mint(account)
        rotated = await self.accounts.rotate_refresh_token(
            account.id, refresh_token, pair.refresh_token, _utcnow()
        )
        if not rotated:
            logger.warning(f"Refresh token for {account.id} was rotated concurrently")
            self._audit("refresh_reuse_detected", user_id=account.id, success=False)
            raise Unauthorized("Refresh token has been revoked or superseded")
        await self.sessions.whitelist(account.id, pair.access_token)
        logger.info(f"Rotated tokens for account {account.id}")
        self._audit("token_refreshed", user_id=account.id)
        return pair
