"""Wallet model — the custodial wallet provisioned for an issuer."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Wallet(SQLModel, table=True):
    __tablename__ = "wallet"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    # At most one wallet per issuer
    issuer_id: int = Field(foreign_key="issuer.id", index=True, unique=True)
    chain: str  # "ethereum" | "polygon" | "avalanche"
    asset_id: str  # provider asset id, e.g. "ETH_TEST5"
    token_standard: str | None = None
    deposit_address: str
    external_vault_id: str = Field(index=True)
    provider: str = "live"  # "live" | "mock"
    is_active: bool = True
    is_custodial: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
