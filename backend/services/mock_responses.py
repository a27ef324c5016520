"""Fabricated custody API responses for mock mode.

Responses are keyed by endpoint pattern and always carry ``"mock": True``.
Shapes are fixed per endpoint; deposit addresses are derived from the vault
and asset ids so repeated calls for the same wallet agree with each other.
"""

import hashlib
import re
import time
import uuid
from typing import Callable

from backend.utils.constants import CHAIN_CONFIG, VAULT_ACCOUNTS_PATH

_VAULT_RE = re.compile(rf"^{VAULT_ACCOUNTS_PATH}/(?P<vault_id>[^/?]+)$")
_ASSET_RE = re.compile(rf"^{VAULT_ACCOUNTS_PATH}/(?P<vault_id>[^/?]+)/(?P<asset_id>[^/?]+)$")
_ASSET_ACTION_RE = re.compile(
    rf"^{VAULT_ACCOUNTS_PATH}/(?P<vault_id>[^/?]+)/(?P<asset_id>[^/?]+)/(?P<action>activate|addresses|balance)$"
)


def mock_address(vault_id: str, asset_id: str) -> str:
    """EVM-shaped address (0x + 40 hex) derived from the vault and asset ids."""
    digest = hashlib.sha256(f"{vault_id}:{asset_id}".encode()).hexdigest()
    return f"0x{digest[:40]}"


def _zero_balance(asset_id: str) -> dict:
    return {
        "id": asset_id,
        "total": "0",
        "balance": "0",
        "available": "0",
        "pending": "0",
        "frozen": "0",
        "lockedAmount": "0",
        "mock": True,
    }


class MockResponseGenerator:
    """Builds mock responses for custody API endpoints."""

    def __init__(self, id_factory: Callable[[], str] | None = None):
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex[:12])

    def response_for(self, method: str, endpoint: str, data: dict | None = None):
        method = method.upper()
        path = endpoint.split("?", 1)[0]
        data = data or {}

        if path == VAULT_ACCOUNTS_PATH and method == "POST":
            return {
                "id": f"mock-vault-{self._id_factory()}",
                "name": data.get("name", "Mock Vault Account"),
                "hiddenOnUI": data.get("hiddenOnUI", False),
                "customerRefId": data.get("customerRefId"),
                "autoFuel": data.get("autoFuel", False),
                "assets": [],
                "mock": True,
            }

        if path == f"{VAULT_ACCOUNTS_PATH}_paged":
            return {"accounts": [], "paging": {}, "mock": True}

        match = _ASSET_ACTION_RE.match(path)
        if match:
            return self._asset_action(method, match["vault_id"], match["asset_id"], match["action"], data)

        match = _ASSET_RE.match(path)
        if match:
            vault_id, asset_id = match["vault_id"], match["asset_id"]
            if method == "POST":
                return {
                    "id": f"mock-wallet-{self._id_factory()}",
                    "address": mock_address(vault_id, asset_id),
                    "legacyAddress": None,
                    "tag": None,
                    "status": "ACTIVE",
                    "mock": True,
                }
            return _zero_balance(asset_id)

        match = _VAULT_RE.match(path)
        if match:
            return {
                "id": match["vault_id"],
                "name": data.get("name", "Mock Vault Account"),
                "hiddenOnUI": False,
                "assets": [],
                "mock": True,
            }

        if path == "/v1/supported_assets":
            return [
                {"id": config["asset_id"], "name": config["name"], "type": "BASE_ASSET", "mock": True}
                for config in CHAIN_CONFIG.values()
            ]

        if path == "/v1/transactions":
            return []

        return {"mock": True, "timestamp": int(time.time() * 1000)}

    def _asset_action(self, method: str, vault_id: str, asset_id: str, action: str, data: dict):
        address = mock_address(vault_id, asset_id)
        if action == "activate":
            return {"status": "ACTIVE", "mock": True}
        if action == "balance":
            return _zero_balance(asset_id)
        if method == "GET":
            return [{"address": address, "tag": None, "description": "Mock deposit address", "mock": True}]
        return {
            "address": address,
            "tag": None,
            "description": data.get("description", "Mock deposit address"),
            "mock": True,
        }
