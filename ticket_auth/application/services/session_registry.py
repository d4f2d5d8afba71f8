import hmac
import logging
from dataclasses import dataclass

from ..ports.cache_store import CacheStore

logger = logging.getLogger(__name__)


@dataclass
class SessionRegistry:
    """Access-token whitelist: one trusted access token per account.

    A newer ``whitelist`` call silently supersedes the previous token, and
    ``revoke`` invalidates it immediately regardless of its signature or expiry.
    """

    cache: CacheStore
    ttl_seconds: int = 3600
    key_prefix: str = "access_token:"

    def _key(self, account_id: str) -> str:
        return f"{self.key_prefix}{account_id}"

    async def whitelist(self, account_id: str, access_token: str) -> None:
        await self.cache.set_ex(self._key(account_id), self.ttl_seconds, access_token)
        logger.info(f"Stored access token for user: {account_id}")

    async def is_valid(self, account_id: str, token: str) -> bool:
        stored = await self.cache.get(self._key(account_id))
        if not stored:
            logger.info(f"No access token found for user: {account_id}")
            return False
        is_valid = hmac.compare_digest(stored.encode(), token.encode())
        logger.info(f"Access token validation for user {account_id}: {is_valid}")
        return is_valid

    async def revoke(self, account_id: str) -> None:
        await self.cache.delete(self._key(account_id))
        logger.info(f"Removed access token for user: {account_id}")

    async def remaining_ttl(self, account_id: str) -> int:
        return await self.cache.ttl(self._key(account_id))
