"""Persistence of users and their connected banks, including the encrypted access credential."""

import logging
from typing import Any

from sqlalchemy import select, and_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from bankbridge.core.encryption import encrypt_token, decrypt_token
from bankbridge.models.bank import User, ConnectedBank, BankStatus, utcnow

logger = logging.getLogger(__name__)

# Columns an upsert may overwrite when the caller supplies them
OPTIONAL_BANK_FIELDS = ("account_mask", "account_type", "logo_url", "nickname")


class CredentialStore:
    """
    Keyed storage of ConnectedBank rows, one per (user, institution).

    Wraps a request-scoped AsyncSession. Writes go through dialect-native
    INSERT ... ON CONFLICT statements so concurrent requests for the same
    key converge on a single row.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self, model):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(model)
        if dialect == "sqlite":
            return sqlite_insert(model)
        raise NotImplementedError(f"Upserts are not supported on {dialect}")

    async def get_user(self, user_id: str) -> User | None:
        """Look up a user without creating one."""
        result = await self.db.execute(
            select(User).where(User.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def ensure_user(self, user_id: str) -> User:
        """Find the user, creating the row if it does not exist yet."""
        stmt = self._insert(User).values(user_id=user_id).on_conflict_do_nothing(
            index_elements=["user_id"],
        )
        result = await self.db.execute(stmt)
        if result.rowcount:
            logger.info(f"Created user {user_id}")
        return await self.get_user(user_id)

    async def list_banks(self, user: User) -> list[ConnectedBank]:
        """All banks of a user, oldest connection first."""
        result = await self.db.execute(
            select(ConnectedBank)
            .where(ConnectedBank.user_pk == user.id)
            .order_by(ConnectedBank.created_at, ConnectedBank.institution_id)
        )
        return list(result.scalars().all())

    async def get_bank(self, user: User, institution_id: str) -> ConnectedBank | None:
        result = await self.db.execute(
            select(ConnectedBank).where(
                and_(
                    ConnectedBank.user_pk == user.id,
                    ConnectedBank.institution_id == institution_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def upsert_bank(
        self,
        user: User,
        institution_id: str,
        institution_name: str,
        access_token: str,
        item_id: str,
        account_ids: list[str] | None = None,
        **optional: Any,
    ) -> ConnectedBank:
        """
        Insert or update the bank for (user, institution_id).

        The access token is encrypted before it is written. Status resets to
        connected and any previous error message is cleared. Optional fields
        only overwrite stored values when they are not None.

        Args:
            user: Owning user
            institution_id: Plaid institution id, the second half of the key
            institution_name: Display name of the institution
            access_token: Plaintext access credential
            item_id: Plaid item id
            account_ids: Plaid account ids, replaces the stored list when given
            **optional: Any of account_mask, account_type, logo_url, nickname

        Returns:
            The stored ConnectedBank
        """
        unknown = set(optional) - set(OPTIONAL_BANK_FIELDS)
        if unknown:
            raise TypeError(f"Unknown bank fields: {sorted(unknown)}")

        values = {
            "institution_name": institution_name,
            "encrypted_access_token": encrypt_token(access_token),
            "item_id": item_id,
            "status": BankStatus.CONNECTED.value,
            "error_message": None,
            "updated_at": utcnow(),
        }
        values.update({k: v for k, v in optional.items() if v is not None})
        if account_ids is not None:
            values["account_ids"] = list(account_ids)

        stmt = self._insert(ConnectedBank).values(
            user_pk=user.id,
            institution_id=institution_id,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_pk", "institution_id"],
            set_={key: stmt.excluded[key] for key in values},
        )
        await self.db.execute(stmt)

        result = await self.db.execute(
            select(ConnectedBank)
            .where(
                and_(
                    ConnectedBank.user_pk == user.id,
                    ConnectedBank.institution_id == institution_id,
                )
            )
            .execution_options(populate_existing=True)
        )
        bank = result.scalar_one()
        logger.info(f"Stored bank {institution_id} (item {item_id}) for user {user.user_id}")
        return bank

    async def update_bank(self, bank: ConnectedBank, **values: Any) -> ConnectedBank:
        """Apply attribute updates to a bank and flush them."""
        for key, value in values.items():
            setattr(bank, key, value)
        bank.updated_at = utcnow()
        await self.db.flush()
        return bank

    async def delete_bank(self, bank: ConnectedBank) -> None:
        await self.db.delete(bank)
        await self.db.flush()

    def get_access_token(self, bank: ConnectedBank) -> str:
        """Decrypt the stored access credential. Only outbound Plaid calls use it."""
        return decrypt_token(bank.encrypted_access_token)
