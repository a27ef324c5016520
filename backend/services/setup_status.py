"""Issuer setup status: idempotency guard for wallet provisioning."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from backend.models.issuer import Issuer
from backend.models.wallet import Wallet
from backend.services.wallet_repository import WalletRecordRepository, WalletSummary

logger = logging.getLogger(__name__)


@dataclass
class SetupStatus:
    issuer_id: int
    completed: bool
    completed_at: datetime | None = None
    wallet: WalletSummary | None = None
    selections: dict = field(default_factory=dict)


class SetupStatusTracker:
    """Derives setup status from the issuer flag and wallet existence."""

    def __init__(self, engine: Engine, wallets: WalletRecordRepository):
        self._engine = engine
        self._wallets = wallets

    def is_completed(self, issuer_id: int) -> SetupStatus:
        with Session(self._engine) as session:
            issuer = session.get(Issuer, issuer_id)
            if issuer is None:
                return SetupStatus(issuer_id=issuer_id, completed=False)
            completed = issuer.setup_completed
            completed_at = issuer.setup_completed_at
            selections = {
                "asset_type": issuer.selected_asset_type,
                "blockchain": issuer.selected_blockchain,
                "token_standard": issuer.selected_token_standard,
            }

        if not completed:
            return SetupStatus(issuer_id=issuer_id, completed=False, selections=selections)

        wallet = self._wallets.get_by_issuer(issuer_id)
        if wallet is None:
            # Flag set but the wallet row is gone: treat as not completed
            logger.warning(f"Issuer {issuer_id} marked complete but has no wallet")
            return SetupStatus(issuer_id=issuer_id, completed=False, selections=selections)

        return SetupStatus(
            issuer_id=issuer_id,
            completed=True,
            completed_at=completed_at,
            wallet=WalletSummary.from_wallet(wallet),
            selections=selections,
        )

    def mark_completed(
        self,
        issuer_id: int,
        completed_at: datetime | None = None,
        asset_type: str | None = None,
        blockchain: str | None = None,
        token_standard: str | None = None,
    ) -> None:
        with Session(self._engine) as session:
            issuer = _get_issuer(session, issuer_id)
            _set_completed(issuer, completed_at, asset_type, blockchain, token_standard)
            session.add(issuer)
            session.commit()

    def complete_with_wallet(
        self,
        issuer_id: int,
        user_id: int,
        wallet_fields: dict,
        completed_at: datetime | None = None,
        asset_type: str | None = None,
        blockchain: str | None = None,
        token_standard: str | None = None,
    ) -> Wallet:
        """Write the wallet row and the completed flag in one transaction.

        Nothing is written when the issuer does not exist.
        """
        try:
            return self._complete(issuer_id, user_id, completed_at, asset_type, blockchain, token_standard, wallet_fields)
        except IntegrityError:
            # A concurrent writer inserted the wallet row first
            logger.warning(f"Wallet insert for issuer {issuer_id} raced, retrying as update")
            return self._complete(issuer_id, user_id, completed_at, asset_type, blockchain, token_standard, wallet_fields)

    def _complete(
        self,
        issuer_id: int,
        user_id: int,
        completed_at: datetime | None,
        asset_type: str | None,
        blockchain: str | None,
        token_standard: str | None,
        wallet_fields: dict,
    ) -> Wallet:
        with Session(self._engine) as session:
            issuer = _get_issuer(session, issuer_id)
            wallet = self._wallets.upsert_for_issuer(issuer_id, user_id, session=session, **wallet_fields)
            _set_completed(issuer, completed_at, asset_type, blockchain, token_standard)
            session.add(issuer)
            session.commit()
            session.refresh(wallet)
            return wallet

    def reset(self, issuer_id: int) -> None:
        """Clear the completed flag so the next setup runs again."""
        with Session(self._engine) as session:
            issuer = session.get(Issuer, issuer_id)
            if issuer is None:
                return
            issuer.setup_completed = False
            issuer.setup_completed_at = None
            issuer.updated_at = datetime.now(timezone.utc)
            session.add(issuer)
            session.commit()
        logger.info(f"Setup status reset for issuer {issuer_id}")


def _get_issuer(session: Session, issuer_id: int) -> Issuer:
    issuer = session.get(Issuer, issuer_id)
    if issuer is None:
        raise ValueError(f"Issuer {issuer_id} not found")
    return issuer


def _set_completed(
    issuer: Issuer,
    completed_at: datetime | None,
    asset_type: str | None,
    blockchain: str | None,
    token_standard: str | None,
) -> None:
    now = datetime.now(timezone.utc)
    issuer.setup_completed = True
    issuer.setup_completed_at = completed_at or now
    if asset_type:
        issuer.selected_asset_type = asset_type
    if blockchain:
        issuer.selected_blockchain = blockchain
    if token_standard:
        issuer.selected_token_standard = token_standard
    issuer.updated_at = now
