import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ...core.config import Settings
from ...exceptions import RateLimited
from ...utils import generate_otp, is_numeric_code, mask_phone, normalize_phone
from ..ports.audit_logger import AuditLogger
from ..ports.cache_store import CacheStore
from ..ports.messaging_provider import MessagingProvider

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OtpRequestResult:
    remaining_attempts: int
    expires_in: int


@dataclass
class OTPService:
    """One-time codes for phone sign-in.

    Codes live under ``otp:{phone}`` for ``otp_ttl_seconds`` and are consumed on
    the first successful match. Requests per phone are counted under
    ``otp_rate_limit:{phone}``; the counter's window starts at the first request
    and is never extended by later ones.
    """

    cache: CacheStore
    messaging: MessagingProvider
    otp_ttl_seconds: int = 120
    max_requests: int = 4
    window_seconds: int = 24 * 3600
    code_length: int = 6
    audit: Optional[AuditLogger] = None
    clock: Callable[[], datetime] = _utcnow
    code_generator: Callable[[int], str] = generate_otp

    @classmethod
    def from_settings(cls, settings: Settings, cache: CacheStore, messaging: MessagingProvider, audit: Optional[AuditLogger] = None) -> "OTPService":
        return cls(
            cache=cache,
            messaging=messaging,
            otp_ttl_seconds=settings.OTP_TTL_SECONDS,
            max_requests=settings.OTP_MAX_REQUESTS,
            window_seconds=settings.OTP_RATE_LIMIT_WINDOW_SECONDS,
            code_length=settings.OTP_LENGTH,
            audit=audit,
        )

    @staticmethod
    def otp_key(phone: str) -> str:
        return f"otp:{phone}"

    @staticmethod
    def rate_limit_key(phone: str) -> str:
        return f"otp_rate_limit:{phone}"

    async def attempts(self, phone: str) -> int:
        value = await self.cache.get(self.rate_limit_key(phone))
        return int(value) if value else 0

    async def is_rate_limited(self, phone: str) -> bool:
        return await self.attempts(normalize_phone(phone)) >= self.max_requests

    async def rate_limit_ttl(self, phone: str) -> int:
        return await self.cache.ttl(self.rate_limit_key(normalize_phone(phone)))

    def _audit(self, action: str, phone: str, success: bool, details: Optional[dict] = None) -> None:
        if self.audit is not None:
            self.audit.log(action, phone=phone, success=success, details=details)

    async def request_otp(self, phone: str) -> OtpRequestResult:
        phone = normalize_phone(phone)
        rate_key = self.rate_limit_key(phone)

        if await self.attempts(phone) >= self.max_requests:
            ttl = await self.cache.ttl(rate_key)
            retry_after = ttl if ttl > 0 else self.window_seconds
            reset_time = (self.clock() + timedelta(seconds=retry_after)).isoformat()
            logger.warning(f"OTP rate limit exceeded for {mask_phone(phone)}, resets at {reset_time}")
            self._audit("otp_rate_limited", phone, False, {"retry_after": retry_after})
            raise RateLimited(retry_after=retry_after, reset_time=reset_time, max_attempts=self.max_requests)

        code = self.code_generator(self.code_length)
        # Dispatch first: a failed send leaves no code behind and costs no attempt
        await self.messaging.send_otp(phone, code)
        await self.cache.set_ex(self.otp_key(phone), self.otp_ttl_seconds, code)
        count = await self.cache.incr_with_ttl(rate_key, self.window_seconds)

        remaining = max(0, self.max_requests - count)
        logger.info(f"OTP sent to {mask_phone(phone)}, {remaining} attempts remaining")
        self._audit("otp_requested", phone, True, {"remaining_attempts": remaining})
        return OtpRequestResult(remaining_attempts=remaining, expires_in=self.otp_ttl_seconds)

    async def verify_otp(self, phone: str, candidate: Optional[str]) -> bool:
        phone = normalize_phone(phone)
        if not is_numeric_code(candidate, self.code_length):
            logger.info(f"OTP rejected for {mask_phone(phone)}: not a {self.code_length}-digit code")
            self._audit("otp_rejected", phone, False, {"reason": "malformed"})
            return False

        matched = await self.cache.compare_and_delete(self.otp_key(phone), candidate)
        if matched:
            logger.info(f"OTP verified for {mask_phone(phone)}")
            self._audit("otp_verified", phone, True)
        else:
            logger.info(f"OTP rejected for {mask_phone(phone)}: missing or mismatched")
            self._audit("otp_rejected", phone, False, {"reason": "mismatch"})
        return matched
