"""CRUD over the banks a user has connected."""

import logging
from typing import Any

from bankbridge.core.errors import UserNotFoundError, BankNotFoundError
from bankbridge.models.bank import ConnectedBank, BankStatus, User, utcnow
from bankbridge.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)

# Fields a PATCH may touch
PATCHABLE_FIELDS = ("status", "last_sync_transaction_count", "error_message", "nickname")


async def list_banks(store: CredentialStore, user_id: str) -> list[ConnectedBank]:
    """
    Return every bank connected by the user.

    Creates the user when it has never been seen, so listing is not a pure read.
    """
    user = await store.ensure_user(user_id)
    return await store.list_banks(user)


async def upsert_bank(
    store: CredentialStore,
    user_id: str,
    institution_id: str,
    institution_name: str,
    access_token: str,
    item_id: str,
    account_ids: list[str] | None = None,
    **optional: Any,
) -> ConnectedBank:
    """Add a bank for the user, or refresh the one already stored for that institution."""
    user = await store.ensure_user(user_id)
    return await store.upsert_bank(
        user,
        institution_id=institution_id,
        institution_name=institution_name,
        access_token=access_token,
        item_id=item_id,
        account_ids=account_ids if account_ids is not None else [],
        **optional,
    )


async def _require_bank(store: CredentialStore, user_id: str, institution_id: str) -> tuple[User, ConnectedBank]:
    user = await store.get_user(user_id)
    if not user:
        raise UserNotFoundError(user_id)

    bank = await store.get_bank(user, institution_id)
    if not bank:
        raise BankNotFoundError(institution_id)

    return user, bank


async def patch_bank(
    store: CredentialStore,
    user_id: str,
    institution_id: str,
    changes: dict[str, Any],
) -> ConnectedBank:
    """
    Update the supplied fields of a bank.

    Only keys present in `changes` are written, so an explicit None clears
    a field. Setting status to connected stamps last_sync_at.

    Raises:
        UserNotFoundError: The user has never been stored
        BankNotFoundError: The user has no bank for that institution
    """
    _, bank = await _require_bank(store, user_id, institution_id)

    values = {key: changes[key] for key in PATCHABLE_FIELDS if key in changes}
    # A null status is ignored rather than written
    if values.get("status", "") is None:
        del values["status"]
    if values.get("status") == BankStatus.CONNECTED.value:
        values["last_sync_at"] = utcnow()

    bank = await store.update_bank(bank, **values)
    logger.info(f"Updated bank {institution_id} for user {user_id}: {sorted(values)}")
    return bank


async def delete_bank(store: CredentialStore, user_id: str, institution_id: str) -> None:
    """
    Disconnect a bank, dropping its stored credential.

    Raises:
        UserNotFoundError: The user has never been stored
        BankNotFoundError: The user has no bank for that institution
    """
    _, bank = await _require_bank(store, user_id, institution_id)
    await store.delete_bank(bank)
    logger.info(f"Deleted bank {institution_id} for user {user_id}")
