import pytest
from twilio.base.exceptions import TwilioRestException

from ticket_auth.exceptions import DeliveryFailed
from ticket_auth.infrastructure.messaging.twilio_provider import TwilioMessagingProvider


class FakeMessages:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def create(self, to, from_, body):
        if self.error:
            raise self.error
        self.calls.append({"to": to, "from_": from_, "body": body})
        return type("Message", (), {"sid": "SM123"})()


class FakeTwilioClient:
    def __init__(self, error=None):
        self.messages = FakeMessages(error)


@pytest.mark.asyncio
async def test_send_otp_uses_e164(test_settings):
    settings = test_settings.model_copy(update={"TWILIO_PHONE_NUMBER": "+15550000000"})
    client = FakeTwilioClient()
    await TwilioMessagingProvider(settings, client=client).send_otp("0901234567", "482913")

    call = client.messages.calls[0]
    assert call["to"] == "+84901234567"
    assert call["from_"] == "+15550000000"
    assert "482913" in call["body"]


@pytest.mark.asyncio
async def test_twilio_error_is_delivery_failure(test_settings):
    settings = test_settings.model_copy(update={"TWILIO_PHONE_NUMBER": "+15550000000"})
    client = FakeTwilioClient(error=TwilioRestException(400, "uri", msg="invalid number"))
    with pytest.raises(DeliveryFailed):
        await TwilioMessagingProvider(settings, client=client).send_otp("0901234567", "482913")


@pytest.mark.asyncio
async def test_missing_sender_number(test_settings):
    with pytest.raises(DeliveryFailed):
        await TwilioMessagingProvider(test_settings, client=FakeTwilioClient()).send_otp("0901234567", "482913")
