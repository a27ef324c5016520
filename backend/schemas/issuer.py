"""Pydantic schemas for issuer profile and wallet setup."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from backend.schemas.wallet import WalletRead, wallet_to_read
from backend.utils.constants import normalize_token_standard


class IssuerProfileCreate(BaseModel):
    company_name: str = Field(min_length=1, max_length=200)
    company_registration_number: str = "TBD"
    jurisdiction: str = "TBD"

    @field_validator("company_name")
    @classmethod
    def _trim_company_name(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text


class IssuerProfileUpdate(BaseModel):
    company_name: str | None = Field(default=None, min_length=1, max_length=200)
    company_registration_number: str | None = None
    jurisdiction: str | None = None

    @field_validator("company_name")
    @classmethod
    def _trim_optional_company_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text


class IssuerRead(BaseModel):
    id: int
    user_id: int
    company_name: str
    company_registration_number: str
    jurisdiction: str
    selected_asset_type: str | None
    selected_blockchain: str | None
    selected_token_standard: str | None
    setup_completed: bool
    setup_completed_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class SetupSelections(BaseModel):
    """Asset type / blockchain / token standard; any may be omitted."""

    asset_type: str | None = None
    blockchain: str | None = None
    token_standard: str | None = None

    @field_validator("asset_type")
    @classmethod
    def _upper_asset_type(cls, value: str | None) -> str | None:
        return value.strip().upper() if value else None

    @field_validator("blockchain")
    @classmethod
    def _lower_blockchain(cls, value: str | None) -> str | None:
        return value.strip().lower() if value else None

    @field_validator("token_standard")
    @classmethod
    def _normalize_token_standard(cls, value: str | None) -> str | None:
        return normalize_token_standard(value) if value else None


class AssetTypeOption(BaseModel):
    value: str
    label: str


class BlockchainOption(BaseModel):
    value: str
    label: str
    asset_id: str


class SetupOptions(BaseModel):
    asset_types: list[AssetTypeOption]
    blockchains: list[BlockchainOption]
    token_standards: list[str]


class SetupStatusRead(BaseModel):
    issuer_id: int
    completed: bool
    completed_at: datetime | None = None
    selections: dict = {}
    wallet: WalletRead | None = None


class ProvisioningResultRead(BaseModel):
    success: bool
    issuer_id: int
    state: str
    already_completed: bool = False
    vault_id: str | None = None
    failed_step: str | None = None
    wallet: WalletRead | None = None
    error: dict | None = None


def result_to_read(result) -> ProvisioningResultRead:
    return ProvisioningResultRead(
        success=result.success,
        issuer_id=result.issuer_id,
        state=result.state.value,
        already_completed=result.already_completed,
        vault_id=result.vault_id,
        failed_step=result.failed_step,
        wallet=wallet_to_read(result.wallet) if result.wallet else None,
        error=result.error.to_dict() if result.error else None,
    )
