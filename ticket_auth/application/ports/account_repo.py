from datetime import datetime
from typing import Protocol, Optional

from ...db.models import Account, AuthProvider


class AccountRepository(Protocol):
    async def get_by_id(self, account_id: str) -> Optional[Account]:
        ...

    async def get_by_external_uid(self, external_uid: str, *, include_deleted: bool = False) -> Optional[Account]:
        ...

    async def get_by_external_uid_and_provider(self, external_uid: str, provider: AuthProvider) -> Optional[Account]:
        ...

    async def get_by_phone(self, phone: str, *, include_deleted: bool = False) -> Optional[Account]:
        ...

    async def get_by_id_and_refresh_token(self, account_id: str, refresh_token: str) -> Optional[Account]:
        ...

    async def add(self, account: Account) -> Account:
        ...

    async def save(self, account: Account) -> Account:
        ...

    async def rotate_refresh_token(self, account_id: str, expected: str, new_token: str, last_login_at: datetime) -> bool:
        """Swap the stored refresh token only if it still equals ``expected``."""
        ...

    async def soft_delete(self, account_id: str) -> bool:
        ...
