"""Pydantic schemas for wallets, balances and vault administration."""

from pydantic import BaseModel, Field, field_validator

from backend.services.wallet_repository import is_placeholder_address
from backend.utils.constants import CHAIN_CONFIG, get_explorer_url


class WalletRead(BaseModel):
    id: int
    issuer_id: int
    user_id: int
    chain: str
    asset_id: str
    token_standard: str | None
    deposit_address: str
    external_vault_id: str
    provider: str
    is_active: bool
    explorer_url: str | None = None

    model_config = {"from_attributes": True}


class BalanceRead(BaseModel):
    vault_id: str
    asset_id: str
    total: str
    available: str
    pending: str
    frozen: str
    locked: str
    mock: bool = False

    model_config = {"from_attributes": True}


class VaultCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    customer_ref_id: str | None = None
    auto_fuel: bool = False

    @field_validator("name")
    @classmethod
    def _trim_name(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text


class VaultRename(BaseModel):
    name: str = Field(min_length=1, max_length=200)


class AdminSetupRequest(BaseModel):
    asset_type: str
    blockchain: str
    token_standard: str
    force: bool = False


def wallet_to_read(wallet) -> WalletRead:
    """Build a WalletRead from a Wallet row or WalletSummary, with explorer link."""
    read = WalletRead.model_validate(wallet)
    if read.chain in CHAIN_CONFIG and not is_placeholder_address(read.deposit_address):
        read.explorer_url = get_explorer_url(read.chain, read.deposit_address)
    return read
