"""Plaid API client: link tokens, public-token exchange, institution lookup and transactions."""

import json
import logging
import hashlib
import time
from datetime import date
from functools import lru_cache

import plaid
import urllib3
from plaid.api import plaid_api
from plaid.model.country_code import CountryCode
from plaid.model.institutions_get_by_id_request import InstitutionsGetByIdRequest
from plaid.model.institutions_get_by_id_request_options import InstitutionsGetByIdRequestOptions
from plaid.model.item_get_request import ItemGetRequest
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products
from plaid.model.transactions_get_request import TransactionsGetRequest
from starlette.concurrency import run_in_threadpool

from bankbridge.core import config
from bankbridge.core.errors import ProviderError, ProviderConfigurationError, scrub_secrets

logger = logging.getLogger(__name__)


@lru_cache
def get_plaid_client() -> plaid_api.PlaidApi:
    """Create the process-wide Plaid API client from environment configuration."""
    if not config.PLAID_CLIENT_ID or not config.PLAID_SECRET:
        raise ProviderConfigurationError(
            "PLAID_CLIENT_ID and PLAID_SECRET environment variables are required"
        )

    configuration = plaid.Configuration(
        host=config.PLAID_ENV_MAP.get(config.PLAID_ENV, config.PLAID_ENV_MAP["sandbox"]),
        api_key={
            "clientId": config.PLAID_CLIENT_ID,
            "secret": config.PLAID_SECRET,
        },
    )

    api_client = plaid.ApiClient(configuration)
    logger.info(f"Plaid client configured for {config.PLAID_ENV}")
    return plaid_api.PlaidApi(api_client)


def close_plaid_client() -> None:
    """Release the cached client's connection pool, if one was created."""
    if get_plaid_client.cache_info().currsize:
        get_plaid_client().api_client.close()
        get_plaid_client.cache_clear()


def _provider_error_details(e: plaid.ApiException) -> dict:
    """Decode Plaid's JSON error body, falling back to the raw reason."""
    try:
        body = json.loads(e.body) if e.body else {}
    except (TypeError, ValueError):
        body = {"error_message": str(e.body)}
    if not isinstance(body, dict):
        body = {"error_message": str(body)}
    return body


async def _call(operation: str, method, request, secrets: tuple[str, ...] = ()):
    """
    Run one blocking Plaid call in a worker thread with the configured timeout.

    A single attempt, no retries. Failures become ProviderError with the
    provider payload scrubbed of credentials.
    """
    try:
        return await run_in_threadpool(
            method,
            request,
            _request_timeout=config.PLAID_TIMEOUT_SECONDS,
        )
    except plaid.ApiException as e:
        details = scrub_secrets(_provider_error_details(e), secrets)
        logger.warning(
            f"Plaid {operation} failed: HTTP {e.status} {details.get('error_code')} "
            f"(request {details.get('request_id')})"
        )
        raise ProviderError(f"Failed to {operation}", details=details, provider_status=e.status) from e
    except urllib3.exceptions.HTTPError as e:
        logger.warning(f"Plaid {operation} unreachable: {type(e).__name__}")
        raise ProviderError(
            f"Failed to {operation}",
            details=scrub_secrets({"error_message": str(e)}, secrets),
        ) from e


def _hash_user_id(user_id: str) -> str:
    """Hash user_id to avoid sending PII (like email) to Plaid."""
    return hashlib.sha256(user_id.encode()).hexdigest()[:32]


def generate_client_user_id() -> str:
    return f"user-{int(time.time() * 1000)}"


async def create_link_token(client: plaid_api.PlaidApi, user_id: str | None = None) -> str:
    """
    Create a Plaid Link token for initializing Link in the client.

    Args:
        client: Plaid API client
        user_id: The requesting user's id; a throwaway id is generated when absent

    Returns:
        The link_token string
    """
    client_user_id = _hash_user_id(user_id) if user_id else generate_client_user_id()

    request = LinkTokenCreateRequest(
        products=[Products(p) for p in config.PLAID_PRODUCTS],
        client_name=config.PLAID_CLIENT_NAME,
        country_codes=[CountryCode(c) for c in config.PLAID_COUNTRY_CODES],
        language=config.PLAID_LANGUAGE,
        user=LinkTokenCreateRequestUser(client_user_id=client_user_id),
    )

    response = await _call("create link token", client.link_token_create, request)
    return response.link_token


async def exchange_public_token(client: plaid_api.PlaidApi, public_token: str) -> tuple[str, str]:
    """
    Exchange a short-lived public token.

    Returns:
        (access_token, item_id)
    """
    request = ItemPublicTokenExchangeRequest(public_token=public_token)
    response = await _call(
        "exchange token",
        client.item_public_token_exchange,
        request,
        secrets=(public_token,),
    )
    return response.access_token, response.item_id


async def get_item_institution_id(client: plaid_api.PlaidApi, access_token: str) -> str | None:
    """Institution the item is linked to, if Plaid reports one."""
    response = await _call(
        "get item",
        client.item_get,
        ItemGetRequest(access_token=access_token),
        secrets=(access_token,),
    )
    return getattr(response.item, "institution_id", None)


async def get_institution(client: plaid_api.PlaidApi, institution_id: str) -> dict:
    """Name and logo of an institution. The logo is returned as a data URL."""
    request = InstitutionsGetByIdRequest(
        institution_id=institution_id,
        country_codes=[CountryCode(c) for c in config.PLAID_COUNTRY_CODES],
        options=InstitutionsGetByIdRequestOptions(include_optional_metadata=True),
    )
    response = await _call("get institution", client.institutions_get_by_id, request)
    institution = response.institution
    logo = getattr(institution, "logo", None)
    return {
        "name": institution.name,
        "logo_url": f"data:image/png;base64,{logo}" if logo else None,
    }


async def get_transactions(
    client: plaid_api.PlaidApi,
    access_token: str,
    start_date: date,
    end_date: date,
) -> dict:
    """
    Fetch transactions for one item between two dates, inclusive.

    Returns:
        Dict with the provider's `transactions` list and `total_transactions`
    """
    request = TransactionsGetRequest(
        access_token=access_token,
        start_date=start_date,
        end_date=end_date,
    )
    response = await _call(
        "fetch transactions",
        client.transactions_get,
        request,
        secrets=(access_token,),
    )
    data = response.to_dict()
    return {
        "transactions": data.get("transactions", []),
        "total_transactions": data.get("total_transactions", 0),
    }
