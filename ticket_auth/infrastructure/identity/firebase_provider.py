import asyncio
import logging
from typing import Any, Dict, Optional

import firebase_admin
import httpx
from firebase_admin import auth as fb_auth
from firebase_admin.exceptions import FirebaseError

from ...application.ports.identity_provider import FederatedIdentity, IdentityProvider
from ...core.config import Settings
from ...exceptions import InvalidFederatedToken, ProviderUnavailable

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_NAME = "federated"
KNOWN_PROVIDERS = ("google.com", "facebook.com")


def determine_provider(claims: Dict[str, Any]) -> str:
    """Provider hint from either a decoded ID token or an accounts:lookup record."""
    firebase_claims = claims.get("firebase") or {}
    if firebase_claims.get("sign_in_provider"):
        return firebase_claims["sign_in_provider"]

    identities = firebase_claims.get("identities") or {}
    for provider_id in KNOWN_PROVIDERS:
        if provider_id in identities:
            return provider_id

    provider_ids = [info.get("providerId") for info in claims.get("providerUserInfo") or [] if info.get("providerId")]
    for provider_id in KNOWN_PROVIDERS:
        if provider_id in provider_ids:
            return provider_id
    if provider_ids:
        return provider_ids[0]

    return DEFAULT_PROVIDER_NAME


def normalize_claims(claims: Dict[str, Any]) -> FederatedIdentity:
    uid = claims.get("localId") or claims.get("uid") or claims.get("sub")
    if not uid:
        raise InvalidFederatedToken("Federated token carries no subject")
    return FederatedIdentity(
        uid=uid,
        email=claims.get("email"),
        email_verified=bool(claims.get("emailVerified", claims.get("email_verified", False))),
        name=claims.get("displayName") or claims.get("name"),
        picture=claims.get("photoUrl") or claims.get("picture"),
        phone_number=claims.get("phoneNumber") or claims.get("phone_number"),
        provider=determine_provider(claims),
        raw_claims=claims,
    )


class FirebaseIdentityProvider(IdentityProvider):
    def __init__(self, settings: Settings, http_client: httpx.AsyncClient, app: Optional[firebase_admin.App] = None):
        self.settings = settings
        self.http = http_client
        self.app = app

    async def verify(self, raw_token: str) -> FederatedIdentity:
        if not self.settings.FIREBASE_API_KEY:
            raise ProviderUnavailable("Identity provider is not configured")
        try:
            res = await self.http.post(
                self.settings.FIREBASE_TOKEN_VALIDATION_URL,
                params={"key": self.settings.FIREBASE_API_KEY},
                json={"idToken": raw_token},
                timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
            )
        except httpx.TimeoutException as e:
            logger.error("Firebase token validation timed out")
            raise ProviderUnavailable("Identity provider timed out") from e
        except httpx.RequestError as e:
            logger.error(f"Firebase token validation request failed: {e}")
            raise ProviderUnavailable() from e

        if 400 <= res.status_code < 500:
            logger.warning(f"Token validation returned {res.status_code} - token is invalid")
            raise InvalidFederatedToken()
        if not 200 <= res.status_code < 300:
            logger.error(f"Firebase API returned status {res.status_code}")
            raise ProviderUnavailable(upstream_status=res.status_code)

        try:
            body = res.json()
        except ValueError as e:
            raise ProviderUnavailable("Identity provider returned an unreadable response") from e
        users = body.get("users") if isinstance(body, dict) else None
        if not users:
            raise InvalidFederatedToken()

        identity = normalize_claims(users[0])
        logger.info(f"Token verified for user: {identity.uid}")
        return identity

    async def revoke_sessions(self, uid: str) -> None:
        if self.app is None:
            logger.warning(f"Firebase app not initialized; skipping session revocation for {uid}")
            return
        try:
            await asyncio.wait_for(
                asyncio.to_thread(fb_auth.revoke_refresh_tokens, uid, app=self.app),
                timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as e:
            raise ProviderUnavailable("Identity provider timed out") from e
        except (FirebaseError, ValueError) as e:
            raise ProviderUnavailable(f"Failed to revoke federated sessions: {e}") from e
        logger.info(f"Revoked all refresh tokens for Firebase user: {uid}")
