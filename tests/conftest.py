from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from ticket_auth.application.ports.account_repo import AccountRepository
from ticket_auth.application.ports.audit_logger import AuditLogger
from ticket_auth.application.ports.identity_provider import FederatedIdentity, IdentityProvider
from ticket_auth.application.ports.messaging_provider import MessagingProvider
from ticket_auth.application.ports.profile_service import ProfileService
from ticket_auth.application.services.auth_service import AuthService
from ticket_auth.application.services.otp_service import OTPService
from ticket_auth.application.services.session_registry import SessionRegistry
from ticket_auth.application.services.token_service import TokenService
from ticket_auth.core.config import Settings
from ticket_auth.db.models import Account, AuthProvider
from ticket_auth.exceptions import Conflict, DeliveryFailed, InvalidFederatedToken, ProviderUnavailable
from ticket_auth.infrastructure.cache.memory_cache import InMemoryCacheStore


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAccountRepo(AccountRepository):
    def __init__(self):
        self.accounts: Dict[str, Account] = {}
        self.fail_on_add = False

    def _live(self, include_deleted: bool = False):
        return [a for a in self.accounts.values() if include_deleted or a.deleted_at is None]

    async def get_by_id(self, account_id: str) -> Optional[Account]:
        return next((a for a in self._live() if a.id == account_id), None)

    async def get_by_external_uid(self, external_uid: str, *, include_deleted: bool = False) -> Optional[Account]:
        return next((a for a in self._live(include_deleted) if a.external_uid == external_uid), None)

    async def get_by_external_uid_and_provider(self, external_uid: str, provider: AuthProvider) -> Optional[Account]:
        return next((a for a in self._live() if a.external_uid == external_uid and a.provider == provider), None)

    async def get_by_phone(self, phone: str, *, include_deleted: bool = False) -> Optional[Account]:
        return next((a for a in self._live(include_deleted) if a.phone_number == phone), None)

    async def get_by_id_and_refresh_token(self, account_id: str, refresh_token: str) -> Optional[Account]:
        account = await self.get_by_id(account_id)
        return account if account and account.refresh_token == refresh_token else None

    async def add(self, account: Account) -> Account:
        if self.fail_on_add:
            raise RuntimeError("database unavailable")
        for other in self.accounts.values():
            if account.external_uid and other.external_uid == account.external_uid:
                raise Conflict("Account already exists")
            if account.phone_number and other.phone_number == account.phone_number:
                raise Conflict("Account already exists")
        self.accounts[account.id] = account
        return account

    async def save(self, account: Account) -> Account:
        self.accounts[account.id] = account
        return account

    async def rotate_refresh_token(self, account_id: str, expected: str, new_token: str, last_login_at: datetime) -> bool:
        account = await self.get_by_id_and_refresh_token(account_id, expected)
        if account is None:
            return False
        account.refresh_token = new_token
        account.last_login_at = last_login_at
        return True

    async def soft_delete(self, account_id: str) -> bool:
        account = await self.get_by_id(account_id)
        if account is None:
            return False
        account.deleted_at = datetime.now(timezone.utc)
        return True


class FakeIdentityProvider(IdentityProvider):
    def __init__(self):
        self.identities: Dict[str, FederatedIdentity] = {}
        self.revoked: List[str] = []
        self.fail_revoke = False

    def register(self, token: str, uid: str, provider: str = "google.com", **fields: Any) -> FederatedIdentity:
        identity = FederatedIdentity(uid=uid, provider=provider, **fields)
        self.identities[token] = identity
        return identity

    async def verify(self, raw_token: str) -> FederatedIdentity:
        identity = self.identities.get(raw_token)
        if identity is None:
            raise InvalidFederatedToken()
        return identity

    async def revoke_sessions(self, uid: str) -> None:
        if self.fail_revoke:
            raise ProviderUnavailable("Identity provider timed out")
        self.revoked.append(uid)


class FakeProfileService(ProfileService):
    def __init__(self):
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self.fail = False

    async def create_profile(self, account_id: str, name: Optional[str], picture: Optional[str]) -> Dict[str, Any]:
        if self.fail:
            raise ProviderUnavailable("Profile service is not responding")
        self.profiles[account_id] = {"id": account_id, "name": name, "picture": picture}
        return self.profiles[account_id]

    async def get_profile(self, account_id: str) -> Optional[Dict[str, Any]]:
        return self.profiles.get(account_id)

    async def update_profile(self, account_id: str, **fields: Any) -> Dict[str, Any]:
        self.profiles[account_id].update(fields)
        return self.profiles[account_id]

    async def delete_profile(self, account_id: str) -> None:
        self.profiles.pop(account_id, None)


class FakeMessaging(MessagingProvider):
    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self.fail = False

    async def send_otp(self, phone: str, code: str) -> None:
        if self.fail:
            raise DeliveryFailed()
        self.sent.append((phone, code))


class RecordingAudit(AuditLogger):
    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def log(self, action: str, phone: Optional[str] = None, user_id: Optional[str] = None, success: bool = True, details: Optional[Dict[str, Any]] = None) -> None:
        self.events.append({"action": action, "phone": phone, "user_id": user_id, "success": success, "details": details})

    def actions(self) -> List[str]:
        return [e["action"] for e in self.events]


@pytest.fixture
def test_settings():
    return Settings(
        JWT_SECRET="test-access-secret",
        JWT_REFRESH_SECRET="test-refresh-secret",
        REDIS_URL=None,
        FIREBASE_API_KEY="test-api-key",
        ZALO_APP_ID="app-id",
        ZALO_APP_SECRET="app-secret",
        ZALO_REFRESH_TOKEN="seed-refresh",
        PROFILE_SERVICE_URL="http://profiles.test/api/v1",
    )


@pytest.fixture
def cache():
    return InMemoryCacheStore()


@pytest.fixture
def messaging():
    return FakeMessaging()


@pytest.fixture
def identity():
    return FakeIdentityProvider()


@pytest.fixture
def profiles():
    return FakeProfileService()


@pytest.fixture
def accounts():
    return FakeAccountRepo()


@pytest.fixture
def audit():
    return RecordingAudit()


@pytest.fixture
def tokens():
    return TokenService(access_secret="test-access-secret", refresh_secret="test-refresh-secret")


@pytest.fixture
def otp_service(cache, messaging, audit):
    return OTPService(cache=cache, messaging=messaging, audit=audit, code_generator=lambda n: "482913")


@pytest.fixture
def auth_service(accounts, identity, profiles, tokens, cache, otp_service, audit):
    return AuthService(
        accounts=accounts,
        identity=identity,
        profiles=profiles,
        tokens=tokens,
        sessions=SessionRegistry(cache),
        otp=otp_service,
        audit=audit,
    )
