"""Issuer model — company profile and wallet setup selections."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Issuer(SQLModel, table=True):
    __tablename__ = "issuer"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True, unique=True)
    company_name: str
    company_registration_number: str = "TBD"
    jurisdiction: str = "TBD"

    # Setup selections
    selected_asset_type: str | None = None  # e.g. "EQUITY"
    selected_blockchain: str | None = None  # "ethereum" | "polygon" | "avalanche"
    selected_token_standard: str | None = None  # e.g. "ERC-20"

    setup_completed: bool = False
    setup_completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
