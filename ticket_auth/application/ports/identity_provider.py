from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol


@dataclass
class FederatedIdentity:
    uid: str
    email: Optional[str] = None
    email_verified: bool = False
    name: Optional[str] = None
    picture: Optional[str] = None
    phone_number: Optional[str] = None
    provider: str = "federated"
    raw_claims: Dict[str, Any] = field(default_factory=dict)


class IdentityProvider(Protocol):
    async def verify(self, raw_token: str) -> FederatedIdentity:
        ...

    async def revoke_sessions(self, uid: str) -> None:
        ...
