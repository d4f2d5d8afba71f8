import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import col, select

from .....application.ports.account_repo import AccountRepository
from .....db.models import Account, AuthProvider
from .....exceptions import Conflict

logger = logging.getLogger(__name__)


class SqlAccountRepository(AccountRepository):
    """Each call is its own short unit of work on a fresh ``AsyncSession``."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _first(self, *conditions, include_deleted: bool = False) -> Optional[Account]:
        statement = select(Account).where(*conditions)
        if not include_deleted:
            statement = statement.where(col(Account.deleted_at).is_(None))
        async with self.session_factory() as session:
            result = await session.exec(statement)
            return result.first()

    async def get_by_id(self, account_id: str) -> Optional[Account]:
        return await self._first(Account.id == account_id)

    async def get_by_external_uid(self, external_uid: str, *, include_deleted: bool = False) -> Optional[Account]:
        return await self._first(Account.external_uid == external_uid, include_deleted=include_deleted)

    async def get_by_external_uid_and_provider(self, external_uid: str, provider: AuthProvider) -> Optional[Account]:
        return await self._first(Account.external_uid == external_uid, Account.provider == provider)

    async def get_by_phone(self, phone: str, *, include_deleted: bool = False) -> Optional[Account]:
        return await self._first(Account.phone_number == phone, include_deleted=include_deleted)

    async def get_by_id_and_refresh_token(self, account_id: str, refresh_token: str) -> Optional[Account]:
        return await self._first(Account.id == account_id, Account.refresh_token == refresh_token)

    async def add(self, account: Account) -> Account:
        async with self.session_factory() as session:
            session.add(account)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.warning(f"Account insert rejected by unique constraint: {account.id}")
                raise Conflict("Account already exists") from e
            await session.refresh(account)
            return account

    async def save(self, account: Account) -> Account:
        account.updated_at = datetime.now(timezone.utc)
        async with self.session_factory() as session:
            merged = await session.merge(account)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise Conflict("Account update conflicts with an existing account") from e
            await session.refresh(merged)
            return merged

    async def rotate_refresh_token(self, account_id: str, expected: str, new_token: str, last_login_at: datetime) -> bool:
        statement = (
            update(Account)
            .where(
                col(Account.id) == account_id,
                col(Account.refresh_token) == expected,
                col(Account.deleted_at).is_(None),
            )
            .values(
                refresh_token=new_token,
                last_login_at=last_login_at,
                updated_at=datetime.now(timezone.utc),
            )
        )
        async with self.session_factory() as session:
            result = await session.exec(statement)
            await session.commit()
            return result.rowcount == 1

    async def soft_delete(self, account_id: str) -> bool:
        async with self.session_factory() as session:
            result = await session.exec(
                select(Account).where(Account.id == account_id, col(Account.deleted_at).is_(None))
            )
            account = result.first()
            if not account:
                return False
            now = datetime.now(timezone.utc)
            account.deleted_at = now
            account.updated_at = now
            session.add(account)
            await session.commit()
            return True
