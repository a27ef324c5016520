"""Wallet API: the current issuer's custodial wallet and its balance."""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from backend.database import get_session
from backend.models.issuer import Issuer
from backend.models.wallet import Wallet
from backend.schemas.wallet import BalanceRead, WalletRead, wallet_to_read
from backend.services.custody_client import CustodyClient
from backend.services.errors import CustodyApiError
from backend.api.deps import get_current_issuer, get_custody_client, vault_error_to_http

router = APIRouter(prefix="/api/wallet", tags=["wallet"])


def _issuer_wallet(issuer: Issuer, session: Session) -> Wallet:
    wallet = session.exec(select(Wallet).where(Wallet.issuer_id == issuer.id)).first()
    if not wallet:
        raise HTTPException(status_code=404, detail="Wallet not found; complete setup first")
    return wallet


@router.get("", response_model=WalletRead)
def get_wallet(
    issuer: Issuer = Depends(get_current_issuer),
    session: Session = Depends(get_session),
):
    return wallet_to_read(_issuer_wallet(issuer, session))


@router.get("/balance", response_model=BalanceRead)
async def get_balance(
    issuer: Issuer = Depends(get_current_issuer),
    session: Session = Depends(get_session),
    client: CustodyClient = Depends(get_custody_client),
):
    wallet = _issuer_wallet(issuer, session)
    try:
        return await client.get_vault_asset_balance(wallet.external_vault_id, wallet.asset_id)
    except CustodyApiError as e:
        raise vault_error_to_http(e)


@router.post("/balance/refresh", response_model=BalanceRead)
async def refresh_balance(
    issuer: Issuer = Depends(get_current_issuer),
    session: Session = Depends(get_session),
    client: CustodyClient = Depends(get_custody_client),
):
    wallet = _issuer_wallet(issuer, session)
    try:
        return await client.refresh_vault_asset_balance(wallet.external_vault_id, wallet.asset_id)
    except CustodyApiError as e:
        raise vault_error_to_http(e)
