"""CustodyCredential model — encrypted custody provider API credentials."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class CustodyCredential(SQLModel, table=True):
    __tablename__ = "custody_credential"

    id: int | None = Field(default=None, primary_key=True)
    name: str = "default"
    api_base_url: str = "https://sandbox-api.fireblocks.io"
    api_key: str
    signing_key_encrypted: str = ""  # Fernet-encrypted PEM private key
    auth_scheme: str = "bearer"  # "bearer" | "bearer_api_key"
    is_active: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
