"""Dependency injection for the credential store and the Plaid client."""

from fastapi import Depends
from plaid.api import plaid_api
from sqlalchemy.ext.asyncio import AsyncSession

from bankbridge.core.database import get_db
from bankbridge.services import plaid_service
from bankbridge.services.credential_store import CredentialStore


async def get_store(db: AsyncSession = Depends(get_db)) -> CredentialStore:
    """Credential store bound to the request's database session."""
    return CredentialStore(db)


def get_plaid() -> plaid_api.PlaidApi:
    """Process-wide Plaid client. Overridden in tests."""
    return plaid_service.get_plaid_client()
