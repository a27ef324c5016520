"""ProvisioningLog model — step events from wallet provisioning and reconciliation."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class ProvisioningLog(SQLModel, table=True):
    __tablename__ = "provisioning_log"

    id: int | None = Field(default=None, primary_key=True)
    issuer_id: int = Field(foreign_key="issuer.id", index=True)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: str  # "success", "error", "warning"
    action: str  # "setup", "wallet_sync"
    step: str | None = None  # "vault-create", "asset-attach", ...
    external_vault_id: str | None = None
    message: str | None = None
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
