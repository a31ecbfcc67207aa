"""Plaid endpoints: Link token, public-token exchange and transactions."""

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends
from plaid.api import plaid_api
from pydantic import BaseModel, Field

from bankbridge.core.dependencies import get_plaid, get_store
from bankbridge.services import plaid_service, token_exchange, transaction_sync
from bankbridge.services.credential_store import CredentialStore

router = APIRouter(tags=["plaid"])


class LinkTokenRequest(BaseModel):
    """Optional body of a Link token request."""
    user_id: str | None = Field(None, alias="userId")

    class Config:
        populate_by_name = True


class LinkTokenResponse(BaseModel):
    """Response containing Plaid Link token."""
    link_token: str


class ExchangeRequest(BaseModel):
    """Public token from Plaid Link plus whatever Link metadata the client has."""
    public_token: str = Field(..., min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)
    institution_id: str | None = Field(None, alias="institutionId")
    institution_name: str | None = Field(None, alias="institutionName")
    account_ids: list[str] | None = Field(None, alias="accountIds")
    account_mask: str | None = Field(None, alias="accountMask")
    account_type: str | None = Field(None, alias="accountType")
    nickname: str | None = None

    class Config:
        populate_by_name = True


class ExchangeResponse(BaseModel):
    """Response after a successful exchange. Never includes the access token."""
    success: bool = True
    item_id: str
    institution_id: str


class TransactionsRequest(BaseModel):
    """Transaction fetch for one of the user's banks."""
    user_id: str = Field(..., alias="userId", min_length=1)
    institution_id: str | None = Field(None, alias="institutionId")
    start_date: date | None = None
    end_date: date | None = None

    class Config:
        populate_by_name = True


class TransactionsResponse(BaseModel):
    """Transactions exactly as Plaid returned them."""
    transactions: list[dict[str, Any]]
    total_transactions: int


@router.post("/link-token", response_model=LinkTokenResponse)
@router.post("/api/plaid/create_link_token", response_model=LinkTokenResponse, include_in_schema=False)
async def create_link_token(
    request: LinkTokenRequest | None = None,
    client: plaid_api.PlaidApi = Depends(get_plaid),
) -> LinkTokenResponse:
    """
    Create a Plaid Link token.

    The token is used to initialize Plaid Link in the client.
    """
    user_id = request.user_id if request else None
    link_token = await plaid_service.create_link_token(client, user_id)
    return LinkTokenResponse(link_token=link_token)


@router.post("/exchange-token", response_model=ExchangeResponse)
@router.post("/api/plaid/exchange_token", response_model=ExchangeResponse, include_in_schema=False)
async def exchange_token(
    request: ExchangeRequest,
    store: CredentialStore = Depends(get_store),
    client: plaid_api.PlaidApi = Depends(get_plaid),
) -> ExchangeResponse:
    """
    Exchange a Plaid public token for an access token.

    Called after the user completes the Link flow. The access token is
    stored encrypted and is not returned.
    """
    result = await token_exchange.exchange_public_token(
        store,
        client,
        public_token=request.public_token,
        user_id=request.user_id,
        institution_id=request.institution_id,
        institution_name=request.institution_name,
        account_ids=request.account_ids,
        account_mask=request.account_mask,
        account_type=request.account_type,
        nickname=request.nickname,
    )
    return ExchangeResponse(
        item_id=result.item_id,
        institution_id=result.institution_id,
    )


@router.post("/transactions", response_model=TransactionsResponse)
@router.post("/api/plaid/transactions", response_model=TransactionsResponse, include_in_schema=False)
async def get_transactions(
    request: TransactionsRequest,
    store: CredentialStore = Depends(get_store),
    client: plaid_api.PlaidApi = Depends(get_plaid),
) -> TransactionsResponse:
    """
    Fetch transactions for one of the user's connected banks.

    Uses the named institution or, without one, the user's first bank.
    Dates default to the last 30 days.
    """
    result = await transaction_sync.fetch_transactions(
        store,
        client,
        user_id=request.user_id,
        institution_id=request.institution_id,
        start_date=request.start_date,
        end_date=request.end_date,
    )
    return TransactionsResponse(**result)
