"""Wallet sync: reconcile provisional wallet rows with the custody provider.

Provisioning never fails on deposit address resolution, so a wallet row may
hold a ``vault:{id}:{asset}`` placeholder address, or may have been written
while the client was falling back to mock responses. With a live client this
module re-resolves those rows against the provider.

Cases handled:
1. Client in mock mode: nothing can be resolved, skip the run
2. Wallet's vault id is a mock vault id: the vault does not exist at the
   provider, leave the row for re-provisioning
3. Provider lists a deposit address: store it and mark the wallet live
4. Provider lists none: create one, store it and mark the wallet live
"""

import logging
from dataclasses import dataclass

from backend.services.custody_client import CustodyClient
from backend.services.errors import CustodyApiError
from backend.services.wallet_repository import WalletRecordRepository

logger = logging.getLogger(__name__)

MOCK_VAULT_PREFIX = "mock-"


@dataclass
class SyncSummary:
    checked: int = 0
    resolved: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> dict:
        return {"checked": self.checked, "resolved": self.resolved, "skipped": self.skipped, "failed": self.failed}


def _real_address(response) -> str | None:
    if isinstance(response, dict) and response.get("address") and not response.get("mock"):
        return response["address"]
    return None


async def _resolve_address(client: CustodyClient, vault_id: str, asset_id: str) -> str | None:
    addresses = await client.list_deposit_addresses(vault_id, asset_id)
    for entry in addresses:
        address = _real_address(entry)
        if address:
            return address
    return _real_address(await client.create_deposit_address(vault_id, asset_id))


async def sync_wallets(client: CustodyClient, wallets: WalletRecordRepository) -> SyncSummary:
    """Re-resolve placeholder and mock wallets. Returns a summary of outcomes."""
    summary = SyncSummary()
    if client.mock_mode:
        logger.info("Wallet sync: custody client in mock mode, skipping")
        return summary

    pending = wallets.list_needing_reconciliation()
    if not pending:
        logger.info("Wallet sync: no wallets need reconciliation")
        return summary

    logger.info(f"Wallet sync: {len(pending)} wallets to reconcile")
    for wallet in pending:
        summary.checked += 1

        if wallet.external_vault_id.startswith(MOCK_VAULT_PREFIX):
            logger.warning(
                f"Wallet sync: wallet {wallet.id} (issuer {wallet.issuer_id}) has mock vault "
                f"{wallet.external_vault_id}, re-provision with force to replace it"
            )
            summary.skipped += 1
            continue

        try:
            address = await _resolve_address(client, wallet.external_vault_id, wallet.asset_id)
        except CustodyApiError as e:
            logger.error(f"Wallet sync: wallet {wallet.id} lookup failed: {e}")
            wallets.record_event(
                wallet.issuer_id,
                status="error",
                action="wallet_sync",
                message=e.message,
                external_vault_id=wallet.external_vault_id,
                details={"status_code": e.status_code, "endpoint": e.endpoint},
            )
            summary.failed += 1
            continue

        if not address:
            logger.warning(f"Wallet sync: provider has no address yet for wallet {wallet.id}")
            summary.skipped += 1
            continue

        wallets.update(wallet.id, deposit_address=address, provider="live")
        wallets.record_event(
            wallet.issuer_id,
            status="success",
            action="wallet_sync",
            message=f"Deposit address resolved: {wallet.deposit_address} -> {address}",
            external_vault_id=wallet.external_vault_id,
        )
        logger.info(f"Wallet sync: wallet {wallet.id} resolved to {address}")
        summary.resolved += 1

    logger.info(f"Wallet sync complete: {summary.as_dict()}")
    return summary
