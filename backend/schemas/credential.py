"""Pydantic schemas for the custody credential API."""

from datetime import datetime

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from pydantic import BaseModel, Field, field_validator

AUTH_SCHEMES = ("bearer", "bearer_api_key")


def _check_url(value: str) -> str:
    url = value.strip()
    if not url:
        raise ValueError("must not be empty")
    if not (url.startswith("http://") or url.startswith("https://")):
        raise ValueError("must start with http:// or https://")
    return url.rstrip("/")


def _check_signing_key(value: str) -> str:
    pem = value.strip()
    if not pem:
        raise ValueError("must not be empty")
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm):
        raise ValueError("must be an unencrypted PEM private key")
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError("must be an RSA private key")
    return pem + "\n"


def _check_name(value: str) -> str:
    text = value.strip()
    if not text:
        raise ValueError("must not be empty")
    return text


def _check_auth_scheme(value: str) -> str:
    scheme = value.strip().lower()
    if scheme not in AUTH_SCHEMES:
        raise ValueError(f"must be one of {', '.join(AUTH_SCHEMES)}")
    return scheme


class CustodyCredentialCreate(BaseModel):
    name: str = Field(default="default", min_length=1, max_length=120)
    api_base_url: str = "https://sandbox-api.fireblocks.io"
    api_key: str = Field(min_length=1)
    signing_key: str  # PEM text, encrypted before storage
    auth_scheme: str = "bearer"

    @field_validator("name")
    @classmethod
    def _trim_name(cls, value: str) -> str:
        return _check_name(value)

    @field_validator("api_base_url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        return _check_url(value)

    @field_validator("api_key")
    @classmethod
    def _trim_api_key(cls, value: str) -> str:
        return _check_name(value)

    @field_validator("signing_key")
    @classmethod
    def _validate_signing_key(cls, value: str) -> str:
        return _check_signing_key(value)

    @field_validator("auth_scheme")
    @classmethod
    def _validate_auth_scheme(cls, value: str) -> str:
        return _check_auth_scheme(value)


class CustodyCredentialUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    api_base_url: str | None = None
    api_key: str | None = None
    signing_key: str | None = None  # If provided, re-encrypts
    auth_scheme: str | None = None
    is_active: bool | None = None

    @field_validator("name", "api_key")
    @classmethod
    def _trim_optional(cls, value: str | None) -> str | None:
        return None if value is None else _check_name(value)

    @field_validator("api_base_url")
    @classmethod
    def _validate_optional_url(cls, value: str | None) -> str | None:
        return None if value is None else _check_url(value)

    @field_validator("signing_key")
    @classmethod
    def _validate_optional_signing_key(cls, value: str | None) -> str | None:
        return None if value is None else _check_signing_key(value)

    @field_validator("auth_scheme")
    @classmethod
    def _validate_optional_auth_scheme(cls, value: str | None) -> str | None:
        return None if value is None else _check_auth_scheme(value)


class CustodyCredentialRead(BaseModel):
    id: int
    name: str
    api_base_url: str
    api_key: str
    auth_scheme: str
    is_active: bool
    created_at: datetime
    # signing key is NEVER exposed

    model_config = {"from_attributes": True}

    @field_validator("api_key")
    @classmethod
    def _mask_api_key(cls, value: str) -> str:
        if len(value) <= 8:
            return "****"
        return f"{value[:4]}...{value[-4:]}"
