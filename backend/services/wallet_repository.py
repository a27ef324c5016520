"""Wallet record persistence boundary.

The provisioning workflow only talks to storage through WalletRecordRepository.
SqlWalletRepository is the SQLModel implementation used by the app.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select, or_

from backend.models.provisioning_log import ProvisioningLog
from backend.models.wallet import Wallet

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "vault:"

# Columns the workflow may write on a wallet row
WALLET_FIELDS = (
    "chain",
    "asset_id",
    "token_standard",
    "deposit_address",
    "external_vault_id",
    "provider",
    "is_active",
    "is_custodial",
)


@dataclass
class WalletSummary:
    id: int
    issuer_id: int
    user_id: int
    chain: str
    asset_id: str
    token_standard: str | None
    deposit_address: str
    external_vault_id: str
    provider: str
    is_active: bool

    @classmethod
    def from_wallet(cls, wallet: Wallet) -> "WalletSummary":
        return cls(
            id=wallet.id,
            issuer_id=wallet.issuer_id,
            user_id=wallet.user_id,
            chain=wallet.chain,
            asset_id=wallet.asset_id,
            token_standard=wallet.token_standard,
            deposit_address=wallet.deposit_address,
            external_vault_id=wallet.external_vault_id,
            provider=wallet.provider,
            is_active=wallet.is_active,
        )


def placeholder_address(vault_id: str, asset_id: str) -> str:
    return f"{PLACEHOLDER_PREFIX}{vault_id}:{asset_id}"


def is_placeholder_address(address: str | None) -> bool:
    return not address or address.startswith(PLACEHOLDER_PREFIX)


class WalletRecordRepository(ABC):
    """Abstract base for wallet record storage."""

    @abstractmethod
    def get_by_issuer(self, issuer_id: int) -> Wallet | None:
        ...

    @abstractmethod
    def upsert_for_issuer(self, issuer_id: int, user_id: int, session: Session | None = None, **fields) -> Wallet:
        """Update the issuer's wallet row in place, or insert it if missing.

        When ``session`` is given the write joins that transaction and the
        caller commits.
        """
        ...

    @abstractmethod
    def update(self, wallet_id: int, **fields) -> Wallet | None:
        ...

    @abstractmethod
    def list_needing_reconciliation(self) -> list[Wallet]:
        """Wallets with a placeholder address or provisioned in mock mode."""
        ...

    def record_event(
        self,
        issuer_id: int,
        status: str,
        action: str,
        message: str,
        step: str | None = None,
        external_vault_id: str | None = None,
        details: dict | None = None,
    ) -> None:
        """Append a provisioning event. Default is a no-op."""


class SqlWalletRepository(WalletRecordRepository):
    """SQLModel-backed wallet storage."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def get_by_issuer(self, issuer_id: int) -> Wallet | None:
        with Session(self._engine) as session:
            return session.exec(select(Wallet).where(Wallet.issuer_id == issuer_id)).first()

    def upsert_for_issuer(self, issuer_id: int, user_id: int, session: Session | None = None, **fields) -> Wallet:
        _check_fields(fields)
        if session is not None:
            return self._apply(session, issuer_id, user_id, fields)
        try:
            return self._upsert(issuer_id, user_id, fields)
        except IntegrityError:
            # Another writer inserted the row between our read and insert
            logger.warning(f"Wallet insert for issuer {issuer_id} raced, retrying as update")
            return self._upsert(issuer_id, user_id, fields)

    def _upsert(self, issuer_id: int, user_id: int, fields: dict) -> Wallet:
        with Session(self._engine) as session:
            wallet = self._apply(session, issuer_id, user_id, fields)
            session.commit()
            session.refresh(wallet)
            return wallet

    def _apply(self, session: Session, issuer_id: int, user_id: int, fields: dict) -> Wallet:
        wallet = session.exec(select(Wallet).where(Wallet.issuer_id == issuer_id)).first()
        if wallet is None:
            wallet = Wallet(issuer_id=issuer_id, user_id=user_id, **fields)
            logger.info(f"Creating wallet for issuer {issuer_id}")
        else:
            for key, value in fields.items():
                setattr(wallet, key, value)
            wallet.updated_at = datetime.now(timezone.utc)
            logger.info(f"Updating wallet {wallet.id} for issuer {issuer_id}")
        session.add(wallet)
        session.flush()
        return wallet

    def update(self, wallet_id: int, **fields) -> Wallet | None:
        _check_fields(fields)
        with Session(self._engine) as session:
            wallet = session.get(Wallet, wallet_id)
            if wallet is None:
                return None
            for key, value in fields.items():
                setattr(wallet, key, value)
            wallet.updated_at = datetime.now(timezone.utc)
            session.add(wallet)
            session.commit()
            session.refresh(wallet)
            return wallet

    def list_needing_reconciliation(self) -> list[Wallet]:
        with Session(self._engine) as session:
            stmt = select(Wallet).where(
                Wallet.is_active == True,
                or_(
                    Wallet.deposit_address.startswith(PLACEHOLDER_PREFIX),
                    Wallet.provider == "mock",
                ),
            )
            return list(session.exec(stmt).all())

    def record_event(
        self,
        issuer_id: int,
        status: str,
        action: str,
        message: str,
        step: str | None = None,
        external_vault_id: str | None = None,
        details: dict | None = None,
    ) -> None:
        with Session(self._engine) as session:
            session.add(ProvisioningLog(
                issuer_id=issuer_id,
                status=status,
                action=action,
                step=step,
                external_vault_id=external_vault_id,
                message=message,
                details=details,
            ))
            session.commit()


def _check_fields(fields: dict) -> None:
    unknown = set(fields) - set(WALLET_FIELDS)
    if unknown:
        raise ValueError(f"Unknown wallet fields: {sorted(unknown)}")
