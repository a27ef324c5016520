"""User model for authentication."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field

ROLES = ("admin", "issuer", "investor")


class User(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    username: str = Field(unique=True, index=True)
    email: str | None = None
    hashed_password: str
    totp_secret: str
    role: str = Field(default="issuer", index=True)  # "admin" | "issuer" | "investor"
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
