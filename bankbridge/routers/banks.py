"""Connected-bank endpoints for a user."""

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from bankbridge.core.dependencies import get_store
from bankbridge.services import bank_registry
from bankbridge.services.credential_store import CredentialStore

router = APIRouter(tags=["banks"])


class BankResponse(BaseModel):
    """A connected bank as returned to clients. The access token is not a field."""
    id: UUID
    user_id: str = Field(validation_alias="external_user_id", serialization_alias="userId")
    institution_id: str
    institution_name: str
    item_id: str
    account_mask: str | None
    account_type: str | None
    logo_url: str | None
    nickname: str | None
    account_ids: list[str]
    status: str
    error_message: str | None
    last_sync_transaction_count: int | None
    last_sync_at: datetime | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True

    @field_validator("last_sync_at", "created_at", "updated_at")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        # SQLite hands back naive datetimes
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class BankListResponse(BaseModel):
    banks: list[BankResponse]


class BankEnvelope(BaseModel):
    bank: BankResponse


class BankCreate(BaseModel):
    """Fields for adding or refreshing a bank."""
    institution_id: str = Field(..., min_length=1)
    institution_name: str = Field(..., min_length=1)
    access_token: str = Field(..., min_length=1)
    item_id: str = Field(..., min_length=1)
    account_mask: str | None = None
    account_type: str | None = None
    logo_url: str | None = None
    nickname: str | None = None
    account_ids: list[str] = []

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class BankPatch(BaseModel):
    """Partial update. Only keys present in the body are applied."""
    status: str | None = None
    last_sync_transaction_count: int | None = Field(None, ge=0)
    error_message: str | None = None
    nickname: str | None = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class DeleteResponse(BaseModel):
    success: bool = True
    message: str


@router.get("/user/{user_id}/banks", response_model=BankListResponse)
async def list_banks(
    user_id: str,
    store: CredentialStore = Depends(get_store),
) -> BankListResponse:
    """
    Get all connected banks for a user.

    An unknown user is created and gets an empty list.
    """
    banks = await bank_registry.list_banks(store, user_id)
    return BankListResponse(banks=[BankResponse.model_validate(b) for b in banks])


@router.post("/user/{user_id}/banks", response_model=BankEnvelope)
async def save_bank(
    user_id: str,
    request: BankCreate,
    store: CredentialStore = Depends(get_store),
) -> BankEnvelope:
    """Add a connected bank, or update the one stored for the same institution."""
    bank = await bank_registry.upsert_bank(
        store,
        user_id,
        institution_id=request.institution_id,
        institution_name=request.institution_name,
        access_token=request.access_token,
        item_id=request.item_id,
        account_ids=request.account_ids,
        account_mask=request.account_mask,
        account_type=request.account_type,
        logo_url=request.logo_url,
        nickname=request.nickname,
    )
    return BankEnvelope(bank=BankResponse.model_validate(bank))


@router.patch("/user/{user_id}/banks/{institution_id}", response_model=BankEnvelope)
async def update_bank(
    user_id: str,
    institution_id: str,
    request: BankPatch,
    store: CredentialStore = Depends(get_store),
) -> BankEnvelope:
    """Update status, sync info, error message or nickname of a bank."""
    bank = await bank_registry.patch_bank(
        store,
        user_id,
        institution_id,
        request.model_dump(exclude_unset=True),
    )
    return BankEnvelope(bank=BankResponse.model_validate(bank))


@router.delete("/user/{user_id}/banks/{institution_id}", response_model=DeleteResponse)
async def delete_bank(
    user_id: str,
    institution_id: str,
    store: CredentialStore = Depends(get_store),
) -> DeleteResponse:
    """Disconnect a bank."""
    await bank_registry.delete_bank(store, user_id, institution_id)
    return DeleteResponse(message="Bank disconnected")
