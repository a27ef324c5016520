"""Construction of the custody client and provisioning workflow.

The app builds one client at startup and keeps it on ``app.state``. An active
stored credential takes precedence over the TK_VAULT_* settings.
"""

import logging

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from backend.config import Settings, settings
from backend.models.credential import CustodyCredential
from backend.services.custody_client import CustodyClient
from backend.services.encryption import decrypt
from backend.services.errors import ConfigurationError
from backend.services.setup_status import SetupStatusTracker
from backend.services.vault_provisioning import VaultProvisioningWorkflow
from backend.services.wallet_repository import SqlWalletRepository

logger = logging.getLogger(__name__)


def client_from_settings(cfg: Settings = settings) -> CustodyClient:
    return CustodyClient(
        base_url=cfg.vault_api_base_url,
        api_key=cfg.vault_api_key,
        signing_key_path=cfg.vault_signing_key_path or None,
        auth_scheme=cfg.vault_auth_scheme,
        mock_mode=cfg.vault_mock_mode,
        fallback_to_mock_on_error=cfg.vault_fallback_to_mock_on_error,
        timeout=cfg.vault_request_timeout,
        token_lifetime=cfg.vault_token_lifetime,
    )


def client_from_credential(cred: CustodyCredential, cfg: Settings = settings) -> CustodyClient:
    """Build a client from a stored credential. Raises ConfigurationError if the key can't be decrypted."""
    signing_key = decrypt(cred.signing_key_encrypted) if cred.signing_key_encrypted else None
    return CustodyClient(
        base_url=cred.api_base_url,
        api_key=cred.api_key,
        signing_key=signing_key,
        auth_scheme=cred.auth_scheme,
        mock_mode=cfg.vault_mock_mode,
        fallback_to_mock_on_error=cfg.vault_fallback_to_mock_on_error,
        timeout=cfg.vault_request_timeout,
        token_lifetime=cfg.vault_token_lifetime,
    )


def build_custody_client(engine: Engine, cfg: Settings = settings) -> CustodyClient:
    with Session(engine) as session:
        cred = session.exec(
            select(CustodyCredential)
            .where(CustodyCredential.is_active == True)
            .order_by(CustodyCredential.id)
        ).first()

    if cred is not None:
        try:
            client = client_from_credential(cred, cfg)
            logger.info(f"Custody client built from stored credential '{cred.name}'")
            return client
        except ConfigurationError as e:
            logger.error(f"Stored credential '{cred.name}' unusable, falling back to settings: {e}")

    return client_from_settings(cfg)


def build_workflow(client: CustodyClient, engine: Engine) -> VaultProvisioningWorkflow:
    wallets = SqlWalletRepository(engine)
    return VaultProvisioningWorkflow(client, wallets, SetupStatusTracker(engine, wallets))
