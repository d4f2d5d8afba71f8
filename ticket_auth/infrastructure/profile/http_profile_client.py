import logging
from typing import Any, Dict, Optional

import httpx

from ...application.ports.profile_service import ProfileService
from ...exceptions import ProviderUnavailable

logger = logging.getLogger(__name__)


class HttpProfileService(ProfileService):
    """Client for the account-profile service (``/accounts`` resource)."""

    def __init__(self, base_url: str, http_client: httpx.AsyncClient, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.http = http_client
        self.timeout = timeout

    async def create_profile(self, account_id: str, name: Optional[str], picture: Optional[str]) -> Dict[str, Any]:
        logger.info(f"Creating profile in profile service: {account_id}")
        res = await self._request("POST", "/accounts", json={"id": account_id, "name": name, "picture": picture})
        logger.info(f"Profile created in profile service: {account_id}")
        return self._json(res)

    async def get_profile(self, account_id: str) -> Optional[Dict[str, Any]]:
        res = await self._request("GET", f"/accounts/{account_id}", allow_not_found=True)
        if res.status_code == 404:
            return None
        return self._json(res)

    async def update_profile(self, account_id: str, **fields: Any) -> Dict[str, Any]:
        res = await self._request("PUT", f"/accounts/{account_id}", json=fields)
        logger.info(f"Profile updated in profile service: {account_id}")
        return self._json(res)

    async def delete_profile(self, account_id: str) -> None:
        await self._request("DELETE", f"/accounts/{account_id}")
        logger.info(f"Profile deleted from profile service: {account_id}")

    async def _request(self, method: str, path: str, json: Optional[dict] = None, allow_not_found: bool = False) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            res = await self.http.request(method, url, json=json, timeout=self.timeout)
        except httpx.TimeoutException as e:
            logger.error(f"Profile service timed out: {method} {path}")
            raise ProviderUnavailable("Profile service is not responding") from e
        except httpx.RequestError as e:
            logger.error(f"Profile service request failed: {method} {path}: {e}")
            raise ProviderUnavailable("Profile service is not responding") from e

        if allow_not_found and res.status_code == 404:
            return res
        if not res.is_success:
            upstream = self._json(res)
            message = upstream.get("message") if isinstance(upstream.get("message"), str) else None
            logger.error(f"Profile service error {res.status_code} on {method} {path}: {message}")
            raise ProviderUnavailable(
                message or "Profile service request failed",
                upstream_status=res.status_code,
            )
        return res

    @staticmethod
    def _json(res: httpx.Response) -> Dict[str, Any]:
        if not res.content:
            return {}
        try:
            body = res.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {"data": body}
