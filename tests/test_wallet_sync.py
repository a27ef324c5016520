"""Tests for wallet reconciliation against the custody provider."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlmodel import Session, select

from backend.engine.wallet_sync import sync_wallets
from backend.models.provisioning_log import ProvisioningLog
from backend.services.custody_client import CustodyClient
from backend.services.errors import AuthenticationFailure
from backend.services.wallet_repository import SqlWalletRepository

RESOLVED = "0x" + "9a" * 20


def _client(addresses=None) -> MagicMock:
    client = MagicMock(spec=CustodyClient)
    client.mock_mode = False
    client.list_deposit_addresses = AsyncMock(return_value=addresses if addresses is not None else [{"address": RESOLVED}])
    client.create_deposit_address = AsyncMock(return_value={"address": RESOLVED})
    return client


def _seed(engine, issuer, **fields) -> SqlWalletRepository:
    repo = SqlWalletRepository(engine)
    values = dict(
        chain="ethereum",
        asset_id="ETH_TEST5",
        token_standard="ERC-20",
        deposit_address="vault:42:ETH_TEST5",
        external_vault_id="42",
        provider="live",
    )
    values.update(fields)
    repo.upsert_for_issuer(issuer.id, issuer.user_id, **values)
    return repo


@pytest.mark.asyncio
async def test_placeholder_resolved(engine, issuer):
    repo = _seed(engine, issuer)
    client = _client()

    summary = await sync_wallets(client, repo)

    assert summary.as_dict() == {"checked": 1, "resolved": 1, "skipped": 0, "failed": 0}
    wallet = repo.get_by_issuer(issuer.id)
    assert wallet.deposit_address == RESOLVED
    assert wallet.provider == "live"
    client.list_deposit_addresses.assert_awaited_once_with("42", "ETH_TEST5")
    with Session(engine) as session:
        log = session.exec(select(ProvisioningLog)).one()
    assert log.action == "wallet_sync"
    assert log.status == "success"


@pytest.mark.asyncio
async def test_creates_address_when_none_listed(engine, issuer):
    repo = _seed(engine, issuer)
    client = _client(addresses=[])
    summary = await sync_wallets(client, repo)
    assert summary.resolved == 1
    client.create_deposit_address.assert_awaited_once_with("42", "ETH_TEST5")


@pytest.mark.asyncio
async def test_mock_responses_not_accepted(engine, issuer):
    repo = _seed(engine, issuer)
    client = _client(addresses=[{"address": "0xmock", "mock": True}])
    client.create_deposit_address.return_value = {"address": "0xmock", "mock": True}

    summary = await sync_wallets(client, repo)

    assert summary.skipped == 1
    assert repo.get_by_issuer(issuer.id).deposit_address == "vault:42:ETH_TEST5"


@pytest.mark.asyncio
async def test_mock_vault_skipped(engine, issuer):
    repo = _seed(engine, issuer, external_vault_id="mock-vault-abc", provider="mock", deposit_address="0x" + "00" * 20)
    client = _client()
    summary = await sync_wallets(client, repo)
    assert summary.skipped == 1
    client.list_deposit_addresses.assert_not_awaited()


@pytest.mark.asyncio
async def test_provider_error_recorded(engine, issuer):
    repo = _seed(engine, issuer)
    client = _client()
    client.list_deposit_addresses.side_effect = AuthenticationFailure(
        "Custody API rejected the request signature", "GET", "/v1/vault/accounts/42/ETH_TEST5/addresses", status_code=401
    )

    summary = await sync_wallets(client, repo)

    assert summary.failed == 1
    with Session(engine) as session:
        log = session.exec(select(ProvisioningLog)).one()
    assert log.status == "error"
    assert log.details["status_code"] == 401


@pytest.mark.asyncio
async def test_mock_mode_client_skips_run(engine, issuer):
    repo = _seed(engine, issuer)
    summary = await sync_wallets(CustodyClient(mock_mode=True), repo)
    assert summary.checked == 0
    assert repo.get_by_issuer(issuer.id).deposit_address == "vault:42:ETH_TEST5"


@pytest.mark.asyncio
async def test_nothing_to_do(engine, issuer):
    repo = _seed(engine, issuer, deposit_address=RESOLVED)
    client = _client()
    summary = await sync_wallets(client, repo)
    assert summary.checked == 0
    client.list_deposit_addresses.assert_not_awaited()


# ---------------------------------------------------------------------------
# Scheduler wiring
# ---------------------------------------------------------------------------

def test_sync_job_registered(engine):
    from backend.engine.scheduler import WALLET_SYNC_JOB_ID, add_wallet_sync_job, scheduler

    add_wallet_sync_job(_client(), SqlWalletRepository(engine), 15)
    try:
        job = scheduler.get_job(WALLET_SYNC_JOB_ID)
        assert job is not None
        assert job.func is sync_wallets
    finally:
        scheduler.remove_job(WALLET_SYNC_JOB_ID)


@pytest.mark.asyncio
async def test_mock_client_gets_no_sync_job(engine):
    from backend.engine.scheduler import WALLET_SYNC_JOB_ID, scheduler, start_scheduler, stop_scheduler

    start_scheduler(CustodyClient(mock_mode=True), SqlWalletRepository(engine), 15)
    try:
        assert scheduler.running
        assert scheduler.get_job(WALLET_SYNC_JOB_ID) is None
    finally:
        stop_scheduler()
