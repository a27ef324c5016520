"""Tests for the mock-mode response generator."""

import re

from backend.services.mock_responses import MockResponseGenerator, mock_address

ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")


def _generator() -> MockResponseGenerator:
    return MockResponseGenerator(id_factory=lambda: "abc123")


def test_vault_create_echoes_request():
    body = _generator().response_for(
        "POST", "/v1/vault/accounts", {"name": "Acme Co - EQUITY - ERC-20", "customerRefId": "issuer-1", "autoFuel": True}
    )
    assert body["id"] == "mock-vault-abc123"
    assert body["name"] == "Acme Co - EQUITY - ERC-20"
    assert body["customerRefId"] == "issuer-1"
    assert body["autoFuel"] is True
    assert body["mock"] is True


def test_asset_wallet_create_has_address():
    body = _generator().response_for("POST", "/v1/vault/accounts/7/ETH_TEST5")
    assert body["id"] == "mock-wallet-abc123"
    assert ADDRESS_RE.match(body["address"])
    assert body["mock"] is True


def test_addresses_list_and_create_agree():
    gen = _generator()
    listed = gen.response_for("GET", "/v1/vault/accounts/7/ETH_TEST5/addresses")
    created = gen.response_for("POST", "/v1/vault/accounts/7/ETH_TEST5/addresses", {"description": "d"})
    assert isinstance(listed, list)
    assert listed[0]["address"] == created["address"] == mock_address("7", "ETH_TEST5")
    assert created["description"] == "d"


def test_mock_address_depends_on_vault_and_asset():
    assert ADDRESS_RE.match(mock_address("1", "ETH_TEST5"))
    assert mock_address("1", "ETH_TEST5") != mock_address("2", "ETH_TEST5")
    assert mock_address("1", "ETH_TEST5") != mock_address("1", "AVAXTEST")


def test_balance_endpoints_zeroed():
    gen = _generator()
    for method, path in (
        ("GET", "/v1/vault/accounts/7/AVAXTEST"),
        ("POST", "/v1/vault/accounts/7/AVAXTEST/balance"),
    ):
        body = gen.response_for(method, path)
        assert body["id"] == "AVAXTEST"
        assert body["total"] == body["available"] == "0"
        assert body["mock"] is True


def test_activate():
    assert _generator().response_for("POST", "/v1/vault/accounts/7/AVAXTEST/activate") == {
        "status": "ACTIVE",
        "mock": True,
    }


def test_paged_list_ignores_query_string():
    body = _generator().response_for("GET", "/v1/vault/accounts_paged?limit=1&page=0")
    assert body["accounts"] == []
    assert body["mock"] is True


def test_vault_get_and_rename():
    gen = _generator()
    assert gen.response_for("GET", "/v1/vault/accounts/9")["id"] == "9"
    assert gen.response_for("PUT", "/v1/vault/accounts/9", {"name": "New"})["name"] == "New"


def test_unknown_endpoint_still_tagged():
    body = _generator().response_for("GET", "/v1/something/else")
    assert body["mock"] is True
    assert isinstance(body["timestamp"], int)
