import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from ...application.ports.cache_store import CacheStore
from ...application.ports.messaging_provider import MessagingProvider
from ...core.config import Settings
from ...exceptions import DeliveryFailed
from ...utils import mask_phone, to_international

logger = logging.getLogger(__name__)

# Refresh slightly before the provider-side expiry
TOKEN_EXPIRY_SKEW_SECONDS = 60


class ZaloMessagingProvider(MessagingProvider):
    """OTP delivery through Zalo Notification Service templates.

    The OA access token expires; it is kept in the cache store together with
    the rotated refresh token and renewed before dispatch when stale.
    """

    TOKEN_CACHE_KEY = "zalo:oa_token"

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        cache: CacheStore,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.http = http_client
        self.cache = cache
        self._clock = clock
        self._refresh_lock = asyncio.Lock()

    async def send_otp(self, phone: str, code: str) -> None:
        access_token = await self._get_access_token()
        payload = {
            "phone": to_international(phone),
            "template_id": self.settings.ZALO_OTP_TEMPLATE_ID,
            "template_data": {"otp": code},
            "tracking_id": f"otp-{int(self._clock() * 1000)}",
        }
        try:
            res = await self.http.post(
                self.settings.ZALO_TEMPLATE_URL,
                json=payload,
                headers={"access_token": access_token},
                timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
            )
        except httpx.TimeoutException as e:
            logger.error("Zalo template send timed out")
            raise DeliveryFailed("Messaging provider timed out") from e
        except httpx.RequestError as e:
            logger.error(f"Zalo template send failed: {e}")
            raise DeliveryFailed() from e

        if res.status_code >= 400:
            logger.error(f"Zalo template send returned HTTP {res.status_code}")
            raise DeliveryFailed(upstream_status=res.status_code)
        body = self._json(res)
        error_code = int(body.get("error", 0) or 0)
        if error_code < 0:
            logger.error(f"Error sending OTP {error_code}: {body.get('message')}")
            raise DeliveryFailed(provider_error=error_code)
        logger.info(f"OTP sent via Zalo to {mask_phone(phone)}")

    async def _get_access_token(self) -> str:
        cached = await self._load_token()
        if cached and self._is_fresh(cached):
            return cached["access_token"]

        async with self._refresh_lock:
            # Another task may have refreshed while we waited
            cached = await self._load_token()
            if cached and self._is_fresh(cached):
                return cached["access_token"]
            refresh_token = (cached or {}).get("refresh_token") or self.settings.ZALO_REFRESH_TOKEN
            if not refresh_token:
                raise DeliveryFailed("Zalo OA token is not configured")
            token = await self.refresh_token(refresh_token)
            return token["access_token"]

    async def refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        logger.info("Refreshing Zalo OA token")
        try:
            res = await self.http.post(
                self.settings.ZALO_TOKEN_URL,
                data={
                    "app_id": self.settings.ZALO_APP_ID,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
                headers={"secret_key": self.settings.ZALO_APP_SECRET},
                timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to refresh Zalo token: {e}")
            raise DeliveryFailed("Failed to refresh messaging provider token") from e

        body = self._json(res)
        if res.status_code >= 400 or not body.get("access_token"):
            logger.error(f"Zalo token refresh rejected: HTTP {res.status_code} {body.get('error_name') or body.get('error')}")
            raise DeliveryFailed("Failed to refresh messaging provider token")

        token = {
            "access_token": body["access_token"],
            "refresh_token": body.get("refresh_token") or refresh_token,
            "expires_in": int(body.get("expires_in", 0) or 0),
        }
        token["expire_at"] = self._clock() + token["expires_in"]
        await self.cache.set(self.TOKEN_CACHE_KEY, json.dumps(token))
        logger.info("Zalo OA token refreshed and stored")
        return token

    async def _load_token(self) -> Optional[Dict[str, Any]]:
        raw = await self.cache.get(self.TOKEN_CACHE_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable cached Zalo token")
            return None

    def _is_fresh(self, token: Dict[str, Any]) -> bool:
        return bool(token.get("access_token")) and float(token.get("expire_at", 0)) > self._clock() + TOKEN_EXPIRY_SKEW_SECONDS

    @staticmethod
    def _json(res: httpx.Response) -> Dict[str, Any]:
        try:
            body = res.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
