"""Database models."""

from backend.models.user import User
from backend.models.issuer import Issuer
from backend.models.wallet import Wallet
from backend.models.credential import CustodyCredential
from backend.models.provisioning_log import ProvisioningLog

__all__ = [
    "User",
    "Issuer",
    "Wallet",
    "CustodyCredential",
    "ProvisioningLog",
]
