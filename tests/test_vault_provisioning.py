"""Tests for the issuer vault provisioning workflow."""

import asyncio
import logging
import re
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from sqlmodel import Session, select

from backend.models.issuer import Issuer
from backend.models.provisioning_log import ProvisioningLog
from backend.models.wallet import Wallet
from backend.services.custody_client import CustodyClient
from backend.services.errors import ProvisioningStepFailure, TransportError, ValidationError
from backend.services.setup_status import SetupStatusTracker
from backend.services.vault_provisioning import (
    ProvisioningState,
    VaultProvisioningWorkflow,
    validate_selection,
)
from backend.services.wallet_repository import SqlWalletRepository

ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")


def _fake_client() -> MagicMock:
    """A live-mode client double whose calls all succeed."""
    client = MagicMock(spec=CustodyClient)
    client.mock_mode = False
    client.create_vault = AsyncMock(return_value={"id": "42", "name": "Acme Co - EQUITY - ERC-20"})
    client.create_asset_wallet = AsyncMock(return_value={"id": "ETH_TEST5", "status": "WAITING_FOR_APPROVAL"})
    client.activate_asset_wallet = AsyncMock(return_value={"status": "ACTIVE"})
    client.list_deposit_addresses = AsyncMock(return_value=[{"address": "0x" + "ab" * 20, "tag": None}])
    client.create_deposit_address = AsyncMock(return_value={"address": "0x" + "cd" * 20})
    return client


def _transport_error(endpoint: str) -> TransportError:
    return TransportError("Cannot reach custody API", "POST", endpoint, original_message="connection refused")


def _workflow(engine, client) -> VaultProvisioningWorkflow:
    wallets = SqlWalletRepository(engine)
    return VaultProvisioningWorkflow(client, wallets, SetupStatusTracker(engine, wallets))


async def _setup(workflow, issuer, blockchain="ethereum", **kwargs):
    return await workflow.setup(
        issuer.id, issuer.user_id, issuer.company_name, "EQUITY", blockchain, "ERC-20", **kwargs
    )


def _wallet_rows(engine) -> list[Wallet]:
    with Session(engine) as session:
        return list(session.exec(select(Wallet)).all())


def _total_calls(client) -> int:
    return sum(
        getattr(client, name).await_count
        for name in (
            "create_vault",
            "create_asset_wallet",
            "activate_asset_wallet",
            "list_deposit_addresses",
            "create_deposit_address",
        )
    )


# ---------------------------------------------------------------------------
# 1. Selection validation
# ---------------------------------------------------------------------------

class TestValidateSelection:
    def test_normalizes_and_maps_asset(self):
        selection = validate_selection("equity", "Polygon", "ERC20")
        assert selection.asset_type == "EQUITY"
        assert selection.blockchain == "polygon"
        assert selection.token_standard == "ERC-20"
        assert selection.asset_id == "AMOY_POLYGON_TEST"

    @pytest.mark.parametrize(
        "asset_type, blockchain, token_standard, field",
        [
            ("STOCKS", "ethereum", "ERC-20", "asset_type"),
            ("EQUITY", "solana", "ERC-20", "blockchain"),
            ("EQUITY", "", "ERC-20", "blockchain"),
            ("EQUITY", "polygon", "ERC-1400", "token_standard"),
            ("ART", "ethereum", "ERC-20", "token_standard"),
        ],
    )
    def test_rejects(self, asset_type, blockchain, token_standard, field):
        with pytest.raises(ValidationError) as exc:
            validate_selection(asset_type, blockchain, token_standard)
        assert exc.value.details["field"] == field

    def test_nft_standards_for_unique_assets(self):
        assert validate_selection("REAL_ESTATE", "avalanche", "ERC-721").asset_id == "AVAXTEST"


@pytest.mark.asyncio
@pytest.mark.parametrize("blockchain", ["solana", "bitcoin", "ETHEREUM-MAINNET"])
async def test_unsupported_blockchain_makes_no_client_calls(engine, issuer, blockchain):
    client = _fake_client()
    with pytest.raises(ValidationError):
        await _setup(_workflow(engine, client), issuer, blockchain=blockchain)
    assert _total_calls(client) == 0
    assert _wallet_rows(engine) == []


# ---------------------------------------------------------------------------
# 2. Scenarios
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_mock_mode_provisions_mock_wallet(engine, issuer):
    client = CustodyClient(mock_mode=True)
    result = await _setup(_workflow(engine, client), issuer)

    assert result.success is True
    assert result.state == ProvisioningState.PERSISTED
    assert ADDRESS_RE.match(result.wallet.deposit_address)
    assert result.wallet.provider == "mock"
    assert result.wallet.external_vault_id.startswith("mock-vault-")
    assert result.wallet.asset_id == "ETH_TEST5"


@pytest.mark.asyncio
async def test_asset_attach_transport_error_is_fatal(engine, issuer):
    client = _fake_client()
    client.create_asset_wallet.side_effect = _transport_error("/v1/vault/accounts/42/ETH_TEST5")

    result = await _setup(_workflow(engine, client), issuer)

    assert result.success is False
    assert result.failed_step == "asset-attach"
    assert isinstance(result.error, ProvisioningStepFailure)
    assert isinstance(result.error.cause, TransportError)
    assert result.state == ProvisioningState.VAULT_CREATED
    assert result.vault_id == "42"
    assert _wallet_rows(engine) == []
    client.activate_asset_wallet.assert_not_awaited()

    with Session(engine) as session:
        log = session.exec(select(ProvisioningLog).where(ProvisioningLog.status == "error")).one()
    assert log.step == "asset-attach"
    assert log.external_vault_id == "42"


@pytest.mark.asyncio
async def test_vault_create_failure_is_fatal(engine, issuer):
    client = _fake_client()
    client.create_vault.side_effect = _transport_error("/v1/vault/accounts")

    result = await _setup(_workflow(engine, client), issuer)

    assert result.success is False
    assert result.failed_step == "vault-create"
    assert result.state == ProvisioningState.NOT_STARTED
    assert result.vault_id is None
    client.create_asset_wallet.assert_not_awaited()
    assert _wallet_rows(engine) == []


@pytest.mark.asyncio
async def test_vault_without_id_is_fatal(engine, issuer):
    client = _fake_client()
    client.create_vault.return_value = {"name": "no id"}
    result = await _setup(_workflow(engine, client), issuer)
    assert result.failed_step == "vault-create"
    assert _wallet_rows(engine) == []


@pytest.mark.asyncio
async def test_activation_failure_does_not_block(engine, issuer, caplog):
    client = _fake_client()
    client.activate_asset_wallet.side_effect = _transport_error("/v1/vault/accounts/42/ETH_TEST5/activate")

    with caplog.at_level(logging.WARNING, logger="backend.services.vault_provisioning"):
        result = await _setup(_workflow(engine, client), issuer)

    assert result.success is True
    assert result.wallet.deposit_address == "0x" + "ab" * 20
    assert result.wallet.provider == "live"
    assert "activation" in caplog.text


@pytest.mark.asyncio
async def test_address_falls_back_to_create(engine, issuer):
    client = _fake_client()
    client.list_deposit_addresses.return_value = []

    result = await _setup(_workflow(engine, client), issuer)

    assert result.wallet.deposit_address == "0x" + "cd" * 20
    client.create_deposit_address.assert_awaited_once_with("42", "ETH_TEST5")


@pytest.mark.asyncio
async def test_address_placeholder_when_list_and_create_fail(engine, issuer):
    client = _fake_client()
    client.list_deposit_addresses.side_effect = _transport_error("/v1/vault/accounts/42/ETH_TEST5/addresses")
    client.create_deposit_address.side_effect = _transport_error("/v1/vault/accounts/42/ETH_TEST5/addresses")

    result = await _setup(_workflow(engine, client), issuer)

    assert result.success is True
    assert result.wallet.deposit_address == "vault:42:ETH_TEST5"


@pytest.mark.asyncio
async def test_vault_request_shape(engine, issuer):
    client = _fake_client()
    await _setup(_workflow(engine, client), issuer)
    client.create_vault.assert_awaited_once_with(
        name="Acme Co - EQUITY - ERC-20",
        customer_ref_id=f"issuer-{issuer.id}",
        auto_fuel=True,
    )
    client.create_asset_wallet.assert_awaited_once_with("42", "ETH_TEST5")
    client.activate_asset_wallet.assert_awaited_once_with("42", "ETH_TEST5")


@pytest.mark.asyncio
async def test_mock_tagged_response_marks_wallet_mock(engine, issuer):
    # Live client that fell back to mock responses mid-run
    client = _fake_client()
    client.create_asset_wallet.return_value = {"id": "mock-wallet-1", "mock": True}
    result = await _setup(_workflow(engine, client), issuer)
    assert result.wallet.provider == "mock"


# ---------------------------------------------------------------------------
# 3. Persistence, idempotence and concurrency
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_wallet_round_trip(engine, issuer):
    workflow = _workflow(engine, _fake_client())
    result = await workflow.setup(issuer.id, issuer.user_id, "Acme Co", "GOLD", "avalanche", "ERC-20")

    stored = SqlWalletRepository(engine).get_by_issuer(issuer.id)
    assert stored.chain == "avalanche"
    assert stored.asset_id == "AVAXTEST"
    assert stored.deposit_address == result.wallet.deposit_address
    assert stored.external_vault_id == "42"

    with Session(engine) as session:
        row = session.get(Issuer, issuer.id)
    assert row.setup_completed is True
    assert row.setup_completed_at is not None
    assert row.selected_asset_type == "GOLD"
    assert row.selected_blockchain == "avalanche"


@pytest.mark.asyncio
async def test_second_setup_short_circuits(engine, issuer):
    client = _fake_client()
    workflow = _workflow(engine, client)

    first = await _setup(workflow, issuer)
    second = await _setup(workflow, issuer)

    assert second.success is True
    assert second.already_completed is True
    assert second.wallet.id == first.wallet.id
    assert client.create_vault.await_count == 1
    assert len(_wallet_rows(engine)) == 1


@pytest.mark.asyncio
async def test_force_updates_existing_row(engine, issuer):
    client = _fake_client()
    workflow = _workflow(engine, client)
    first = await _setup(workflow, issuer)

    client.create_vault.return_value = {"id": "43"}
    client.list_deposit_addresses.return_value = [{"address": "0x" + "ef" * 20}]
    second = await _setup(workflow, issuer, force=True)

    assert second.already_completed is False
    assert second.wallet.id == first.wallet.id
    assert second.wallet.external_vault_id == "43"
    rows = _wallet_rows(engine)
    assert len(rows) == 1
    assert rows[0].deposit_address == "0x" + "ef" * 20


@pytest.mark.asyncio
async def test_flag_without_wallet_reprovisions(engine, issuer):
    client = _fake_client()
    workflow = _workflow(engine, client)
    workflow.status.mark_completed(issuer.id)

    result = await _setup(workflow, issuer)

    assert result.already_completed is False
    assert client.create_vault.await_count == 1
    assert len(_wallet_rows(engine)) == 1


@pytest.mark.asyncio
async def test_concurrent_setup_creates_one_wallet(engine, issuer):
    client = _fake_client()

    async def slow_vault(**kwargs):
        await asyncio.sleep(0.01)
        return {"id": "42"}

    client.create_vault.side_effect = slow_vault
    workflow = _workflow(engine, client)

    results = await asyncio.gather(*[_setup(workflow, issuer) for _ in range(5)])

    assert all(r.success for r in results)
    assert sum(1 for r in results if not r.already_completed) == 1
    assert len({r.wallet.id for r in results}) == 1
    assert client.create_vault.await_count == 1
    assert len(_wallet_rows(engine)) == 1


@pytest.mark.asyncio
async def test_different_issuers_run_independently(engine, issuer):
    with Session(engine) as session:
        other = Issuer(user_id=issuer.user_id + 100, company_name="Other Ltd")
        session.add(other)
        session.commit()
        session.refresh(other)

    client = _fake_client()
    workflow = _workflow(engine, client)
    a, b = await asyncio.gather(_setup(workflow, issuer), _setup(workflow, other))

    assert a.wallet.issuer_id == issuer.id
    assert b.wallet.issuer_id == other.id
    assert len(_wallet_rows(engine)) == 2


@pytest.mark.asyncio
async def test_persist_failure_reported(engine, issuer):
    client = _fake_client()
    workflow = _workflow(engine, client)
    missing_issuer_id = issuer.id + 999

    result = await workflow.setup(missing_issuer_id, issuer.user_id, "Ghost", "EQUITY", "ethereum", "ERC-20")

    assert result.success is False
    assert result.failed_step == "persist"
    assert result.state == ProvisioningState.DEPOSIT_ADDRESS_RESOLVED
    assert _wallet_rows(engine) == []


@pytest.mark.asyncio
async def test_persist_failure_rolls_back_wallet_row(engine, issuer, monkeypatch):
    from backend.services import setup_status

    def _broken(*args, **kwargs):
        raise ValueError("issuer update rejected")

    monkeypatch.setattr(setup_status, "_set_completed", _broken)
    result = await _setup(_workflow(engine, _fake_client()), issuer)

    assert result.failed_step == "persist"
    assert _wallet_rows(engine) == []
    with Session(engine) as session:
        assert session.get(Issuer, issuer.id).setup_completed is False


def test_check_status(engine, issuer):
    workflow = _workflow(engine, _fake_client())
    status = workflow.check_status(issuer.id)
    assert status.completed is False
    assert status.wallet is None


@pytest.mark.asyncio
async def test_undecodable_provider_body_returns_failure_result(engine, issuer, private_pem):
    def _garbage(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"\xff\xfe\xfa garbage")

    client = CustodyClient(
        base_url="https://custody.test",
        api_key="k",
        signing_key=private_pem,
        fallback_to_mock_on_error=True,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(_garbage)),
    )
    result = await _setup(_workflow(engine, client), issuer)

    assert result.success is False
    assert result.failed_step == "vault-create"
    assert _wallet_rows(engine) == []
