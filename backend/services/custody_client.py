"""Custody provider (vault) API client.

Single point of contact with the external custody REST API. Owns live vs
mock mode selection, request signing and error normalization.
"""

import enum
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from backend.services.errors import (
    AuthenticationFailure,
    ConfigurationError,
    CustodyApiError,
    TransportError,
)
from backend.services.mock_responses import MockResponseGenerator
from backend.services.request_signer import TOKEN_LIFETIME_SECONDS, RequestSigner, canonical_body
from backend.utils.constants import VAULT_ACCOUNTS_PATH

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://sandbox-api.fireblocks.io"


class AuthScheme(str, enum.Enum):
    BEARER = "bearer"  # signed JWT only
    BEARER_API_KEY = "bearer_api_key"  # signed JWT plus static X-API-Key header


@dataclass
class Balance:
    vault_id: str
    asset_id: str
    total: str = "0"
    available: str = "0"
    pending: str = "0"
    frozen: str = "0"
    locked: str = "0"
    mock: bool = False

    @classmethod
    def from_response(cls, vault_id: str, asset_id: str, body: dict) -> "Balance":
        return cls(
            vault_id=vault_id,
            asset_id=body.get("id", asset_id),
            total=str(body.get("total", body.get("balance", "0"))),
            available=str(body.get("available", "0")),
            pending=str(body.get("pending", "0")),
            frozen=str(body.get("frozen", "0")),
            locked=str(body.get("lockedAmount", "0")),
            mock=bool(body.get("mock", False)),
        )


def normalize_base_url(url: str | None) -> str:
    url = (url or "").strip() or DEFAULT_BASE_URL
    if not url.startswith("http"):
        url = "https://" + url
    return url.rstrip("/")


def parse_auth_scheme(value: AuthScheme | str | None) -> AuthScheme:
    """Accept an AuthScheme or its case-insensitive name."""
    if isinstance(value, AuthScheme):
        return value
    try:
        return AuthScheme((value or "").strip().lower())
    except ValueError:
        raise ConfigurationError(f"Unknown custody auth scheme: {value!r}", setting="vault_auth_scheme")


def load_signing_key(pem: str | None = None, path: str | None = None) -> str:
    """Return PEM text of an RSA private key, read from ``pem`` or ``path``.

    Raises ConfigurationError if nothing is configured, the file cannot be
    read or the key does not parse as an RSA private key.
    """
    if not pem:
        if not path:
            raise ConfigurationError("No signing key configured", setting="vault_signing_key_path")
        try:
            pem = Path(path).expanduser().read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read signing key: {e}", setting="vault_signing_key_path")

    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ConfigurationError(f"Signing key is not a valid PEM private key: {e}", setting="vault_signing_key_path")
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigurationError("Signing key must be an RSA private key", setting="vault_signing_key_path")
    return pem


class CustodyClient:
    """Signed client for the custody API with a mock-mode fallback."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: str | None = None,
        signing_key: str | None = None,
        signing_key_path: str | None = None,
        auth_scheme: AuthScheme | str = AuthScheme.BEARER,
        mock_mode: bool = False,
        fallback_to_mock_on_error: bool = False,
        timeout: float = 30.0,
        token_lifetime: int = TOKEN_LIFETIME_SECONDS,
        mock_responses: MockResponseGenerator | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = normalize_base_url(base_url)
        self.api_key = api_key or ""
        self.auth_scheme = AuthScheme.BEARER
        self.fallback_to_mock_on_error = fallback_to_mock_on_error
        self.timeout = timeout
        self.mock_responses = mock_responses or MockResponseGenerator()
        self._client = http_client
        self._mock_mode = mock_mode
        self._signer = RequestSigner(None, None, token_lifetime=token_lifetime)

        if mock_mode:
            logger.warning("Custody client running in MOCK mode (configured)")
            return

        try:
            self.auth_scheme = parse_auth_scheme(auth_scheme)
            if not self.api_key:
                raise ConfigurationError("Custody API key not set", setting="vault_api_key")
            pem = load_signing_key(signing_key, signing_key_path)
        except ConfigurationError as e:
            logger.warning(f"Custody client falling back to MOCK mode: {e}")
            self._mock_mode = True
            return

        self._signer = RequestSigner(self.api_key, pem, token_lifetime=token_lifetime)
        logger.info(f"Custody client initialized for {self.base_url} ({self.auth_scheme.value})")

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout, connect=10.0))
        return self._client

    def _build_headers(self, token: str) -> dict:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.auth_scheme == AuthScheme.BEARER_API_KEY:
            headers["X-API-Key"] = self.api_key
        return headers

    async def call(self, method: str, endpoint: str, data: dict | None = None):
        """Issue a signed API call and return the parsed JSON body.

        In mock mode no network I/O happens and a mock response is returned.
        On failure a CustodyApiError subclass is raised, or a mock response is
        returned when ``fallback_to_mock_on_error`` is enabled.
        """
        method = method.upper()
        endpoint = endpoint if endpoint.startswith("/") else f"/{endpoint}"

        if self._mock_mode:
            logger.debug(f"MOCK {method} {endpoint}")
            return self.mock_responses.response_for(method, endpoint, data)

        body = canonical_body(data) if data is not None else ""
        signed = self._signer.sign(method, endpoint, body)
        if signed is None:
            logger.warning(f"Could not sign {method} {endpoint}; returning mock response")
            return self.mock_responses.response_for(method, endpoint, data)

        try:
            return await self._send(method, endpoint, body, signed.token)
        except CustodyApiError as e:
            if self.fallback_to_mock_on_error:
                logger.warning(f"{method} {endpoint} failed ({e.message}); falling back to mock response")
                return self.mock_responses.response_for(method, endpoint, data)
            raise

    async def _send(self, method: str, endpoint: str, body: str, token: str):
        url = f"{self.base_url}{endpoint}"
        client = await self._get_client()
        try:
            response = await client.request(
                method,
                url,
                content=body.encode("utf-8") if body else None,
                headers=self._build_headers(token),
            )
        except httpx.TimeoutException as e:
            raise TransportError(
                "Custody API timed out", method, endpoint, original_message=str(e) or type(e).__name__
            )
        except httpx.HTTPError as e:
            raise TransportError(
                "Cannot reach custody API", method, endpoint, original_message=str(e) or type(e).__name__
            )

        payload = _parse_body(response)
        if response.status_code in (401, 403):
            logger.error(f"{method} {endpoint} rejected: {response.status_code}")
            raise AuthenticationFailure(
                "Custody API rejected the request signature",
                method,
                endpoint,
                status_code=response.status_code,
                response_body=payload,
                original_message=response.reason_phrase,
            )
        if response.status_code >= 400:
            logger.error(f"{method} {endpoint} failed: {response.status_code}")
            raise CustodyApiError(
                f"Custody API error {response.status_code}",
                method,
                endpoint,
                status_code=response.status_code,
                response_body=payload,
                original_message=response.reason_phrase,
            )
        logger.debug(f"{method} {endpoint} -> {response.status_code}")
        return payload

    # -- vault accounts -------------------------------------------------

    async def create_vault(self, name: str, customer_ref_id: str | None = None, auto_fuel: bool = False) -> dict:
        data = {"name": name, "hiddenOnUI": False, "autoFuel": auto_fuel}
        if customer_ref_id:
            data["customerRefId"] = customer_ref_id
        return await self.call("POST", VAULT_ACCOUNTS_PATH, data)

    async def get_vault(self, vault_id: str) -> dict:
        return await self.call("GET", f"{VAULT_ACCOUNTS_PATH}/{vault_id}")

    async def list_vaults(self, limit: int = 20, page: int = 0) -> dict:
        # Query string is part of the signed uri claim
        return await self.call("GET", f"{VAULT_ACCOUNTS_PATH}_paged?limit={limit}&page={page}")

    async def rename_vault(self, vault_id: str, name: str) -> dict:
        return await self.call("PUT", f"{VAULT_ACCOUNTS_PATH}/{vault_id}", {"name": name})

    # -- asset wallets --------------------------------------------------

    async def create_asset_wallet(self, vault_id: str, asset_id: str, extra: dict | None = None) -> dict:
        return await self.call("POST", f"{VAULT_ACCOUNTS_PATH}/{vault_id}/{asset_id}", extra or {})

    async def activate_asset_wallet(self, vault_id: str, asset_id: str) -> dict:
        return await self.call("POST", f"{VAULT_ACCOUNTS_PATH}/{vault_id}/{asset_id}/activate")

    async def list_deposit_addresses(self, vault_id: str, asset_id: str) -> list:
        result = await self.call("GET", f"{VAULT_ACCOUNTS_PATH}/{vault_id}/{asset_id}/addresses")
        if isinstance(result, dict):
            return result.get("addresses", [])
        return result or []

    async def create_deposit_address(self, vault_id: str, asset_id: str, description: str | None = None) -> dict:
        data = {"description": description or f"Deposit address for {asset_id} wallet"}
        return await self.call("POST", f"{VAULT_ACCOUNTS_PATH}/{vault_id}/{asset_id}/addresses", data)

    async def get_vault_asset_balance(self, vault_id: str, asset_id: str) -> Balance:
        body = await self.call("GET", f"{VAULT_ACCOUNTS_PATH}/{vault_id}/{asset_id}")
        return Balance.from_response(vault_id, asset_id, body)

    async def refresh_vault_asset_balance(self, vault_id: str, asset_id: str) -> Balance:
        body = await self.call("POST", f"{VAULT_ACCOUNTS_PATH}/{vault_id}/{asset_id}/balance")
        return Balance.from_response(vault_id, asset_id, body)

    # -- misc -----------------------------------------------------------

    async def get_supported_assets(self) -> list:
        return await self.call("GET", "/v1/supported_assets")

    async def get_vault_transactions(self, vault_id: str, limit: int = 50) -> list:
        result = await self.call("GET", f"/v1/transactions?vaultAccountIds={vault_id}&limit={limit}")
        if isinstance(result, dict):
            return result.get("transactions", [])
        return result or []

    async def test_connection(self) -> dict:
        """Test connectivity and credentials against the provider."""
        if self._mock_mode:
            return {"status": "mock", "message": "Custody client is in mock mode"}
        try:
            await self.list_vaults(limit=1)
            return {"status": "ok", "base_url": self.base_url}
        except CustodyApiError as e:
            return {"status": "error", "message": e.message, **e.details}

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None


def _parse_body(response: httpx.Response):
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        # Not JSON, or not decodable text
        return {"raw": response.text}
