"""Transaction retrieval using the credential stored for a user's bank."""

import logging
from datetime import date, timedelta

from plaid.api import plaid_api

from bankbridge.core.config import DEFAULT_TRANSACTION_WINDOW_DAYS
from bankbridge.core.errors import InputError, NoBanksConnectedError, BankNotFoundError
from bankbridge.models.bank import ConnectedBank, utcnow
from bankbridge.services import plaid_service
from bankbridge.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)


def default_date_range(
    start_date: date | None = None,
    end_date: date | None = None,
    today: date | None = None,
) -> tuple[date, date]:
    """Fill missing bounds with the trailing window ending today."""
    today = today or date.today()
    end_date = end_date or today
    start_date = start_date or today - timedelta(days=DEFAULT_TRANSACTION_WINDOW_DAYS)
    if start_date > end_date:
        raise InputError(
            f"start_date {start_date.isoformat()} is after end_date {end_date.isoformat()}"
        )
    return start_date, end_date


async def resolve_bank(
    store: CredentialStore,
    user_id: str,
    institution_id: str | None = None,
) -> ConnectedBank:
    """
    Pick the bank whose credential a transaction fetch should use.

    The named institution when given, otherwise the user's oldest connection.
    Never creates the user.
    """
    user = await store.get_user(user_id)
    banks = await store.list_banks(user) if user else []
    if not banks:
        raise NoBanksConnectedError(user_id)

    if not institution_id:
        return banks[0]

    for bank in banks:
        if bank.institution_id == institution_id:
            return bank
    raise BankNotFoundError(institution_id)


async def fetch_transactions(
    store: CredentialStore,
    client: plaid_api.PlaidApi,
    user_id: str,
    institution_id: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    today: date | None = None,
) -> dict:
    """
    Fetch transactions for one of the user's banks.

    Dates default to the last 30 days. A single Plaid call is made; its
    transaction list and total count are returned unmodified. On success
    the bank's sync metadata is updated.

    Returns:
        {"transactions": [...], "total_transactions": int}
    """
    start_date, end_date = default_date_range(start_date, end_date, today)
    bank = await resolve_bank(store, user_id, institution_id)

    logger.info(
        f"Fetching transactions for user {user_id} from {bank.institution_id} "
        f"({start_date.isoformat()} to {end_date.isoformat()})"
    )
    result = await plaid_service.get_transactions(
        client,
        store.get_access_token(bank),
        start_date,
        end_date,
    )

    await store.update_bank(
        bank,
        last_sync_transaction_count=result["total_transactions"],
        last_sync_at=utcnow(),
    )
    logger.info(
        f"Fetched {len(result['transactions'])} of {result['total_transactions']} "
        f"transactions for user {user_id}"
    )
    return result
