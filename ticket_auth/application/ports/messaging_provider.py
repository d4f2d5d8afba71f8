from typing import Protocol


class MessagingProvider(Protocol):
    async def send_otp(self, phone: str, code: str) -> None:
        ...
