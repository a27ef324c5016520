"""Issuer vault provisioning workflow.

Runs the ordered custody calls that stand up one issuer's custodial wallet:

    NOT_STARTED -> VAULT_CREATED -> ASSET_ATTACHED -> WALLET_ACTIVATED
        -> DEPOSIT_ADDRESS_RESOLVED -> PERSISTED

Vault creation and asset attachment are fatal on failure. Activation failure
is logged and skipped, since the provider may activate on attachment.
Deposit address resolution never fails: it falls back to creating an address
and finally to a ``vault:{id}:{asset}`` placeholder that the wallet sync job
resolves later.
"""

import asyncio
import enum
import logging
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from backend.services.custody_client import CustodyClient
from backend.services.errors import CustodyApiError, ProvisioningStepFailure, ValidationError
from backend.services.setup_status import SetupStatus, SetupStatusTracker
from backend.services.wallet_repository import WalletRecordRepository, WalletSummary, placeholder_address
from backend.utils.constants import (
    ASSET_TYPES,
    SUPPORTED_BLOCKCHAINS,
    get_asset_id,
    get_token_standard_options,
    normalize_token_standard,
)

logger = logging.getLogger(__name__)

STEP_VAULT_CREATE = "vault-create"
STEP_ASSET_ATTACH = "asset-attach"
STEP_ACTIVATE = "activate"
STEP_DEPOSIT_ADDRESS = "deposit-address"
STEP_PERSIST = "persist"


class ProvisioningState(str, enum.Enum):
    NOT_STARTED = "not_started"
    VAULT_CREATED = "vault_created"
    ASSET_ATTACHED = "asset_attached"
    WALLET_ACTIVATED = "wallet_activated"
    DEPOSIT_ADDRESS_RESOLVED = "deposit_address_resolved"
    PERSISTED = "persisted"


@dataclass(frozen=True)
class SetupSelection:
    asset_type: str
    blockchain: str
    token_standard: str
    asset_id: str


@dataclass
class ProvisioningResult:
    success: bool
    issuer_id: int
    state: ProvisioningState
    wallet: WalletSummary | None = None
    vault_id: str | None = None
    already_completed: bool = False
    failed_step: str | None = None
    error: ProvisioningStepFailure | None = None


def validate_selection(asset_type: str, blockchain: str, token_standard: str) -> SetupSelection:
    """Check an asset type / blockchain / token standard combination.

    Raises ValidationError for anything outside the supported set.
    """
    asset_type = (asset_type or "").strip().upper()
    blockchain = (blockchain or "").strip().lower()
    token_standard = normalize_token_standard(token_standard or "")

    if asset_type not in ASSET_TYPES:
        raise ValidationError(f"Invalid asset type: {asset_type or '<empty>'}", field="asset_type", value=asset_type)
    if blockchain not in SUPPORTED_BLOCKCHAINS:
        raise ValidationError(
            f"Unsupported blockchain: {blockchain or '<empty>'}", field="blockchain", value=blockchain
        )
    if token_standard not in get_token_standard_options(asset_type, blockchain):
        raise ValidationError(
            f"Token standard {token_standard} not supported for {asset_type} on {blockchain}",
            field="token_standard",
            value=token_standard,
        )
    return SetupSelection(
        asset_type=asset_type,
        blockchain=blockchain,
        token_standard=token_standard,
        asset_id=get_asset_id(blockchain),
    )


def _is_mock(response) -> bool:
    return isinstance(response, dict) and bool(response.get("mock"))


class VaultProvisioningWorkflow:
    """Provisions one custodial wallet per issuer."""

    def __init__(
        self,
        client: CustodyClient,
        wallets: WalletRecordRepository,
        status: SetupStatusTracker,
    ):
        self.client = client
        self.wallets = wallets
        self.status = status
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, issuer_id: int) -> asyncio.Lock:
        lock = self._locks.get(issuer_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[issuer_id] = lock
        return lock

    def check_status(self, issuer_id: int) -> SetupStatus:
        return self.status.is_completed(issuer_id)

    async def setup(
        self,
        issuer_id: int,
        user_id: int,
        company_name: str,
        asset_type: str,
        blockchain: str,
        token_standard: str,
        force: bool = False,
    ) -> ProvisioningResult:
        """Provision the issuer's wallet, or return the existing one.

        Raises ValidationError before any custody call if the selection is
        not supported. Every other outcome is reported in the result.
        """
        selection = validate_selection(asset_type, blockchain, token_standard)

        lock = self._lock_for(issuer_id)
        async with lock:
            if not force:
                current = self.status.is_completed(issuer_id)
                if current.completed:
                    logger.info(f"Issuer {issuer_id} already set up, returning wallet {current.wallet.id}")
                    return ProvisioningResult(
                        success=True,
                        issuer_id=issuer_id,
                        state=ProvisioningState.PERSISTED,
                        wallet=current.wallet,
                        vault_id=current.wallet.external_vault_id,
                        already_completed=True,
                    )
            return await self._run(issuer_id, user_id, company_name, selection)

    async def _run(
        self, issuer_id: int, user_id: int, company_name: str, selection: SetupSelection
    ) -> ProvisioningResult:
        state = ProvisioningState.NOT_STARTED
        vault_id = None
        logger.info(
            f"Provisioning issuer {issuer_id}: {selection.asset_type} / {selection.blockchain} / "
            f"{selection.token_standard} ({selection.asset_id})"
        )

        try:
            vault = await self.client.create_vault(
                name=f"{company_name} - {selection.asset_type} - {selection.token_standard}",
                customer_ref_id=f"issuer-{issuer_id}",
                auto_fuel=True,
            )
            vault_id = str(vault.get("id") or "") if isinstance(vault, dict) else ""
            if not vault_id:
                raise ProvisioningStepFailure(STEP_VAULT_CREATE, "provider returned no vault id")
            state = ProvisioningState.VAULT_CREATED
            logger.info(f"Issuer {issuer_id}: vault {vault_id} created")

            try:
                asset_wallet = await self.client.create_asset_wallet(vault_id, selection.asset_id)
            except CustodyApiError as e:
                raise ProvisioningStepFailure(STEP_ASSET_ATTACH, e)
            state = ProvisioningState.ASSET_ATTACHED
            logger.info(f"Issuer {issuer_id}: asset {selection.asset_id} attached to vault {vault_id}")

            activation = await self._activate(issuer_id, vault_id, selection.asset_id)
            state = ProvisioningState.WALLET_ACTIVATED

            deposit_address, address_mock = await self._resolve_deposit_address(
                issuer_id, vault_id, selection.asset_id
            )
            state = ProvisioningState.DEPOSIT_ADDRESS_RESOLVED

            mock = (
                self.client.mock_mode
                or _is_mock(vault)
                or _is_mock(asset_wallet)
                or _is_mock(activation)
                or address_mock
            )
            wallet = self._persist(issuer_id, user_id, selection, vault_id, deposit_address, mock)
            state = ProvisioningState.PERSISTED

        except CustodyApiError as e:
            # Only vault creation can raise past this point unwrapped
            failure = ProvisioningStepFailure(STEP_VAULT_CREATE, e)
            return self._failed(issuer_id, state, vault_id, failure)
        except ProvisioningStepFailure as failure:
            return self._failed(issuer_id, state, vault_id, failure)

        summary = WalletSummary.from_wallet(wallet)
        logger.info(
            f"Issuer {issuer_id}: wallet {summary.id} ready at {summary.deposit_address} ({summary.provider})"
        )
        self.wallets.record_event(
            issuer_id,
            status="success",
            action="setup",
            message=f"Wallet provisioned ({summary.provider})",
            external_vault_id=vault_id,
            details={"asset_id": selection.asset_id, "deposit_address": summary.deposit_address},
        )
        return ProvisioningResult(
            success=True,
            issuer_id=issuer_id,
            state=state,
            wallet=summary,
            vault_id=vault_id,
        )

    async def _activate(self, issuer_id: int, vault_id: str, asset_id: str):
        try:
            return await self.client.activate_asset_wallet(vault_id, asset_id)
        except CustodyApiError as e:
            logger.warning(
                f"Issuer {issuer_id}: activation of {asset_id} in vault {vault_id} failed, continuing: {e.message}"
            )
            self.wallets.record_event(
                issuer_id,
                status="warning",
                action="setup",
                step=STEP_ACTIVATE,
                message=f"Activation failed, continuing: {e.message}",
                external_vault_id=vault_id,
            )
            return None

    async def _resolve_deposit_address(self, issuer_id: int, vault_id: str, asset_id: str) -> tuple[str, bool]:
        """Return (address, is_mock). Falls back to a placeholder address."""
        try:
            addresses = await self.client.list_deposit_addresses(vault_id, asset_id)
            if addresses and addresses[0].get("address"):
                return addresses[0]["address"], _is_mock(addresses[0])
            logger.info(f"No deposit address for {vault_id}/{asset_id} yet, creating one")
        except CustodyApiError as e:
            logger.warning(f"Listing deposit addresses for {vault_id}/{asset_id} failed: {e.message}")

        try:
            created = await self.client.create_deposit_address(vault_id, asset_id)
            if isinstance(created, dict) and created.get("address"):
                return created["address"], _is_mock(created)
            logger.warning(f"Provider returned no address for {vault_id}/{asset_id}")
        except CustodyApiError as e:
            logger.warning(f"Creating deposit address for {vault_id}/{asset_id} failed: {e.message}")

        address = placeholder_address(vault_id, asset_id)
        logger.warning(f"Using placeholder deposit address {address}")
        self.wallets.record_event(
            issuer_id,
            status="warning",
            action="setup",
            step=STEP_DEPOSIT_ADDRESS,
            message=f"Using placeholder deposit address {address}",
            external_vault_id=vault_id,
        )
        return address, False

    def _persist(
        self,
        issuer_id: int,
        user_id: int,
        selection: SetupSelection,
        vault_id: str,
        deposit_address: str,
        mock: bool,
    ):
        try:
            # Wallet row and completed flag commit together or not at all
            wallet = self.status.complete_with_wallet(
                issuer_id,
                user_id,
                dict(
                    chain=selection.blockchain,
                    asset_id=selection.asset_id,
                    token_standard=selection.token_standard,
                    deposit_address=deposit_address,
                    external_vault_id=vault_id,
                    provider="mock" if mock else "live",
                    is_active=True,
                    is_custodial=True,
                ),
                datetime.now(timezone.utc),
                asset_type=selection.asset_type,
                blockchain=selection.blockchain,
                token_standard=selection.token_standard,
            )
        except (SQLAlchemyError, ValueError) as e:
            raise ProvisioningStepFailure(STEP_PERSIST, str(e))
        return wallet

    def _failed(
        self,
        issuer_id: int,
        state: ProvisioningState,
        vault_id: str | None,
        failure: ProvisioningStepFailure,
    ) -> ProvisioningResult:
        logger.error(f"Issuer {issuer_id}: {failure}")
        if vault_id:
            # The vault exists at the provider without a local wallet row
            logger.warning(f"Issuer {issuer_id}: vault {vault_id} left orphaned at the provider")
        try:
            self.wallets.record_event(
                issuer_id,
                status="error",
                action="setup",
                step=failure.step,
                message=failure.message,
                external_vault_id=vault_id,
                details=_json_safe(failure.details),
            )
        except SQLAlchemyError as e:
            logger.error(f"Could not record provisioning failure for issuer {issuer_id}: {e}")
        return ProvisioningResult(
            success=False,
            issuer_id=issuer_id,
            state=state,
            vault_id=vault_id,
            failed_step=failure.step,
            error=failure,
        )


def _json_safe(details: dict) -> dict:
    return {
        k: v if isinstance(v, (str, int, float, bool, type(None), dict, list)) else str(v)
        for k, v in details.items()
    }
