"""Exchange of Plaid public tokens for stored access credentials."""

import logging
from dataclasses import dataclass

from plaid.api import plaid_api

from bankbridge.core.errors import ProviderError
from bankbridge.services import plaid_service
from bankbridge.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)


@dataclass
class ExchangeResult:
    """Outcome of a public-token exchange. Deliberately carries no access token."""
    item_id: str
    institution_id: str
    institution_name: str


async def exchange_public_token(
    store: CredentialStore,
    client: plaid_api.PlaidApi,
    public_token: str,
    user_id: str,
    institution_id: str | None = None,
    institution_name: str | None = None,
    account_ids: list[str] | None = None,
    **optional,
) -> ExchangeResult:
    """
    Exchange a public token and store the resulting credential for the user.

    When the caller does not name the institution, it is looked up through
    the item. That lookup is best-effort: if Plaid fails it, the bank is
    stored under whatever is known, down to the item id. The bank is
    upserted with status connected, creating the user if needed.

    Args:
        store: Credential store for the current request
        client: Plaid API client
        public_token: The public token from Plaid Link
        user_id: External user id
        institution_id: Institution from the Link metadata, if known
        institution_name: Institution name from the Link metadata, if known
        account_ids: Account ids from the Link metadata, if known
        **optional: account_mask, account_type, logo_url, nickname

    Returns:
        ExchangeResult with the item and institution identifiers
    """
    access_token, item_id = await plaid_service.exchange_public_token(client, public_token)

    # The public token is spent by now; lookup failures must not lose the credential
    try:
        if not institution_id:
            institution_id = await plaid_service.get_item_institution_id(client, access_token)
        if institution_id and not institution_name:
            institution = await plaid_service.get_institution(client, institution_id)
            institution_name = institution["name"]
            optional.setdefault("logo_url", institution["logo_url"])
    except ProviderError as e:
        logger.warning(f"Institution lookup for item {item_id} failed, storing without it: {e.message}")

    # Items without an institution are keyed by their own id
    institution_id = institution_id or item_id
    institution_name = institution_name or institution_id

    user = await store.ensure_user(user_id)
    await store.upsert_bank(
        user,
        institution_id=institution_id,
        institution_name=institution_name,
        access_token=access_token,
        item_id=item_id,
        account_ids=account_ids,
        **optional,
    )

    logger.info(f"Exchanged public token for user {user_id}: item {item_id} at {institution_id}")
    return ExchangeResult(
        item_id=item_id,
        institution_id=institution_id,
        institution_name=institution_name,
    )
