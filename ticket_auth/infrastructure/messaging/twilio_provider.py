import asyncio
import logging
from typing import Optional

from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from ...application.ports.messaging_provider import MessagingProvider
from ...core.config import Settings
from ...exceptions import DeliveryFailed
from ...utils import mask_phone, to_international

logger = logging.getLogger(__name__)


class TwilioMessagingProvider(MessagingProvider):
    """Plain SMS delivery; the code is generated and checked locally, not by Twilio Verify."""

    def __init__(self, settings: Settings, client: Optional[Client] = None):
        self.settings = settings
        self.client = client or Client(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            http_client=TwilioHttpClient(timeout=settings.PROVIDER_TIMEOUT_SECONDS),
        )
        self.from_number = settings.TWILIO_PHONE_NUMBER

    async def send_otp(self, phone: str, code: str) -> None:
        if not self.from_number:
            raise DeliveryFailed("Twilio sender number not configured")
        body = f"Your verification code is {code}. It expires in {self.settings.OTP_TTL_SECONDS // 60} minutes."
        try:
            message = await asyncio.wait_for(
                asyncio.to_thread(
                    self.client.messages.create,
                    to=to_international(phone, with_plus=True),
                    from_=self.from_number,
                    body=body,
                ),
                timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Twilio SMS timed out for {mask_phone(phone)}")
            raise DeliveryFailed("Messaging provider timed out") from e
        except TwilioException as e:
            logger.error(f"Twilio SMS failed: {e}")
            raise DeliveryFailed() from e
        logger.info(f"Twilio SMS queued: {message.sid}")
