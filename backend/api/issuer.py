"""Issuer API: profile, setup options, preferences and wallet setup."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from backend.database import get_session
from backend.models.issuer import Issuer
from backend.models.user import User
from backend.schemas.issuer import (
    AssetTypeOption,
    BlockchainOption,
    IssuerProfileCreate,
    IssuerProfileUpdate,
    IssuerRead,
    ProvisioningResultRead,
    SetupOptions,
    SetupSelections,
    SetupStatusRead,
    result_to_read,
)
from backend.schemas.wallet import wallet_to_read
from backend.services.errors import ValidationError, VaultServiceError
from backend.services.vault_provisioning import VaultProvisioningWorkflow, validate_selection
from backend.utils.constants import (
    ASSET_TYPES,
    CHAIN_CONFIG,
    get_blockchain_options,
    get_token_standard_options,
)
from backend.api.deps import get_current_issuer, get_workflow, require_role, vault_error_to_http

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/issuer", tags=["issuer"])

_SELECTION_FIELDS = ("asset_type", "blockchain", "token_standard")


@router.get("/me", response_model=IssuerRead)
def get_profile(issuer: Issuer = Depends(get_current_issuer)):
    return issuer


@router.post("/profile", response_model=IssuerRead, status_code=201)
def create_profile(
    data: IssuerProfileCreate,
    user: User = Depends(require_role("issuer")),
    session: Session = Depends(get_session),
):
    existing = session.exec(select(Issuer).where(Issuer.user_id == user.id)).first()
    if existing:
        raise HTTPException(status_code=409, detail="Issuer profile already exists")
    issuer = Issuer(user_id=user.id, **data.model_dump())
    session.add(issuer)
    session.commit()
    session.refresh(issuer)
    logger.info(f"Issuer profile {issuer.id} created for user {user.username}")
    return issuer


@router.put("/profile", response_model=IssuerRead)
def update_profile(
    data: IssuerProfileUpdate,
    issuer: Issuer = Depends(get_current_issuer),
    session: Session = Depends(get_session),
):
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(issuer, key, value)
    issuer.updated_at = datetime.now(timezone.utc)
    session.add(issuer)
    session.commit()
    session.refresh(issuer)
    return issuer


@router.get("/setup/options", response_model=SetupOptions, dependencies=[Depends(require_role("issuer"))])
def setup_options(asset_type: str | None = None, blockchain: str | None = None):
    """Options catalogue. Blockchains and token standards narrow as selections are made."""
    asset_type = asset_type.upper() if asset_type else None
    blockchain = blockchain.lower() if blockchain else None

    chains = get_blockchain_options(asset_type) if asset_type else list(CHAIN_CONFIG)
    standards = get_token_standard_options(asset_type, blockchain) if asset_type and blockchain else []
    return SetupOptions(
        asset_types=[AssetTypeOption(value=k, label=v) for k, v in ASSET_TYPES.items()],
        blockchains=[
            BlockchainOption(value=c, label=CHAIN_CONFIG[c]["name"], asset_id=CHAIN_CONFIG[c]["asset_id"])
            for c in chains
        ],
        token_standards=standards,
    )


@router.put("/setup/preferences", response_model=IssuerRead)
def save_preferences(
    data: SetupSelections,
    issuer: Issuer = Depends(get_current_issuer),
    session: Session = Depends(get_session),
):
    if issuer.setup_completed:
        raise HTTPException(status_code=409, detail="Setup already completed; preferences are locked")

    merged = _merge_selections(issuer, data)
    if merged["asset_type"] and merged["asset_type"] not in ASSET_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid asset type: {merged['asset_type']}")
    if merged["blockchain"] and merged["blockchain"] not in CHAIN_CONFIG:
        raise HTTPException(status_code=400, detail=f"Unsupported blockchain: {merged['blockchain']}")
    if all(merged.values()):
        try:
            validate_selection(**merged)
        except ValidationError as e:
            raise vault_error_to_http(e)

    issuer.selected_asset_type = merged["asset_type"]
    issuer.selected_blockchain = merged["blockchain"]
    issuer.selected_token_standard = merged["token_standard"]
    issuer.updated_at = datetime.now(timezone.utc)
    session.add(issuer)
    session.commit()
    session.refresh(issuer)
    return issuer


@router.post("/setup/complete", response_model=ProvisioningResultRead)
async def complete_setup(
    data: SetupSelections,
    issuer: Issuer = Depends(get_current_issuer),
    workflow: VaultProvisioningWorkflow = Depends(get_workflow),
):
    """Provision the issuer's custodial wallet. Idempotent; re-provisioning is admin only."""
    merged = _merge_selections(issuer, data)
    missing = [name for name in _SELECTION_FIELDS if not merged[name]]
    if missing:
        raise HTTPException(
            status_code=400,
            detail={"message": "Setup selections incomplete", "missing_fields": missing},
        )

    try:
        result = await workflow.setup(
            issuer_id=issuer.id,
            user_id=issuer.user_id,
            company_name=issuer.company_name,
            **merged,
        )
    except VaultServiceError as e:
        raise vault_error_to_http(e)

    if not result.success:
        raise vault_error_to_http(result.error)
    return result_to_read(result)


@router.get("/setup/status", response_model=SetupStatusRead)
def setup_status(
    issuer: Issuer = Depends(get_current_issuer),
    workflow: VaultProvisioningWorkflow = Depends(get_workflow),
):
    status = workflow.check_status(issuer.id)
    return SetupStatusRead(
        issuer_id=status.issuer_id,
        completed=status.completed,
        completed_at=status.completed_at,
        selections=status.selections,
        wallet=wallet_to_read(status.wallet) if status.wallet else None,
    )


def _merge_selections(issuer: Issuer, data: SetupSelections) -> dict:
    """Request values win over the issuer's stored preferences."""
    return {
        "asset_type": data.asset_type or issuer.selected_asset_type,
        "blockchain": data.blockchain or issuer.selected_blockchain,
        "token_standard": data.token_standard or issuer.selected_token_standard,
    }
