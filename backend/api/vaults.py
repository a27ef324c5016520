"""Vault administration API (admin role).

Direct access to custody vault operations plus provisioning on behalf of an
issuer.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from backend.database import get_session
from backend.models.issuer import Issuer
from backend.schemas.issuer import ProvisioningResultRead, SetupStatusRead, result_to_read
from backend.schemas.wallet import AdminSetupRequest, BalanceRead, VaultCreate, VaultRename, wallet_to_read
from backend.services.custody_client import CustodyClient
from backend.services.errors import CustodyApiError, VaultServiceError
from backend.services.vault_provisioning import VaultProvisioningWorkflow
from backend.api.deps import get_custody_client, get_workflow, require_role, vault_error_to_http

router = APIRouter(prefix="/api/vaults", tags=["vaults"], dependencies=[Depends(require_role("admin"))])


@router.post("/setup/{issuer_id}", response_model=ProvisioningResultRead)
async def setup_issuer(
    issuer_id: int,
    data: AdminSetupRequest,
    session: Session = Depends(get_session),
    workflow: VaultProvisioningWorkflow = Depends(get_workflow),
):
    issuer = session.get(Issuer, issuer_id)
    if not issuer:
        raise HTTPException(status_code=404, detail="Issuer not found")
    try:
        result = await workflow.setup(
            issuer_id=issuer.id,
            user_id=issuer.user_id,
            company_name=issuer.company_name,
            asset_type=data.asset_type,
            blockchain=data.blockchain,
            token_standard=data.token_standard,
            force=data.force,
        )
    except VaultServiceError as e:
        raise vault_error_to_http(e)
    if not result.success:
        raise vault_error_to_http(result.error)
    return result_to_read(result)


@router.get("/status/{issuer_id}", response_model=SetupStatusRead)
def issuer_status(
    issuer_id: int,
    session: Session = Depends(get_session),
    workflow: VaultProvisioningWorkflow = Depends(get_workflow),
):
    if not session.get(Issuer, issuer_id):
        raise HTTPException(status_code=404, detail="Issuer not found")
    status = workflow.check_status(issuer_id)
    return SetupStatusRead(
        issuer_id=status.issuer_id,
        completed=status.completed,
        completed_at=status.completed_at,
        selections=status.selections,
        wallet=wallet_to_read(status.wallet) if status.wallet else None,
    )


@router.get("/assets/supported")
async def supported_assets(client: CustodyClient = Depends(get_custody_client)):
    try:
        return await client.get_supported_assets()
    except CustodyApiError as e:
        raise vault_error_to_http(e)


@router.get("")
async def list_vaults(limit: int = 20, page: int = 0, client: CustodyClient = Depends(get_custody_client)):
    try:
        return await client.list_vaults(limit=limit, page=page)
    except CustodyApiError as e:
        raise vault_error_to_http(e)


@router.post("", status_code=201)
async def create_vault(data: VaultCreate, client: CustodyClient = Depends(get_custody_client)):
    try:
        return await client.create_vault(data.name, customer_ref_id=data.customer_ref_id, auto_fuel=data.auto_fuel)
    except CustodyApiError as e:
        raise vault_error_to_http(e)


@router.get("/{vault_id}")
async def get_vault(vault_id: str, client: CustodyClient = Depends(get_custody_client)):
    try:
        return await client.get_vault(vault_id)
    except CustodyApiError as e:
        raise vault_error_to_http(e)


@router.put("/{vault_id}")
async def rename_vault(vault_id: str, data: VaultRename, client: CustodyClient = Depends(get_custody_client)):
    try:
        return await client.rename_vault(vault_id, data.name)
    except CustodyApiError as e:
        raise vault_error_to_http(e)


@router.get("/{vault_id}/transactions")
async def vault_transactions(vault_id: str, limit: int = 50, client: CustodyClient = Depends(get_custody_client)):
    try:
        return await client.get_vault_transactions(vault_id, limit=limit)
    except CustodyApiError as e:
        raise vault_error_to_http(e)


@router.post("/{vault_id}/wallets/{asset_id}", status_code=201)
async def create_asset_wallet(vault_id: str, asset_id: str, client: CustodyClient = Depends(get_custody_client)):
    try:
        return await client.create_asset_wallet(vault_id, asset_id)
    except CustodyApiError as e:
        raise vault_error_to_http(e)


@router.post("/{vault_id}/wallets/{asset_id}/activate")
async def activate_asset_wallet(vault_id: str, asset_id: str, client: CustodyClient = Depends(get_custody_client)):
    try:
        return await client.activate_asset_wallet(vault_id, asset_id)
    except CustodyApiError as e:
        raise vault_error_to_http(e)


@router.get("/{vault_id}/wallets/{asset_id}/addresses")
async def deposit_addresses(vault_id: str, asset_id: str, client: CustodyClient = Depends(get_custody_client)):
    try:
        return await client.list_deposit_addresses(vault_id, asset_id)
    except CustodyApiError as e:
        raise vault_error_to_http(e)


@router.get("/{vault_id}/wallets/{asset_id}/balance", response_model=BalanceRead)
async def get_balance(vault_id: str, asset_id: str, client: CustodyClient = Depends(get_custody_client)):
    try:
        return await client.get_vault_asset_balance(vault_id, asset_id)
    except CustodyApiError as e:
        raise vault_error_to_http(e)


@router.post("/{vault_id}/wallets/{asset_id}/balance/refresh", response_model=BalanceRead)
async def refresh_balance(vault_id: str, asset_id: str, client: CustodyClient = Depends(get_custody_client)):
    try:
        return await client.refresh_vault_asset_balance(vault_id, asset_id)
    except CustodyApiError as e:
        raise vault_error_to_http(e)
