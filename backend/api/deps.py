"""Shared API dependencies."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session, select

from backend.database import get_session
from backend.models.issuer import Issuer
from backend.models.user import User
from backend.services.auth import decode_access_token, has_role
from backend.services.custody_client import CustodyClient
from backend.services.errors import ValidationError, VaultServiceError
from backend.services.vault_provisioning import VaultProvisioningWorkflow

bearer_scheme = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User:
    """Validate JWT and return the current user."""
    claims = decode_access_token(credentials.credentials)
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    user = session.exec(select(User).where(User.username == claims.username)).first()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    if claims.role is not None and claims.role != user.role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Role changed since login, sign in again",
        )
    return user


def require_role(*roles: str):
    """Dependency factory: the current user must hold one of ``roles`` (admins always pass)."""

    def _check(user: User = Depends(get_current_user)) -> User:
        if not has_role(user.role, *roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(roles)}",
            )
        return user

    return _check


def get_current_issuer(
    user: User = Depends(require_role("issuer")),
    session: Session = Depends(get_session),
) -> Issuer:
    issuer = session.exec(select(Issuer).where(Issuer.user_id == user.id)).first()
    if issuer is None:
        raise HTTPException(status_code=404, detail="Issuer profile not found")
    return issuer


def get_custody_client(request: Request) -> CustodyClient:
    client = getattr(request.app.state, "custody_client", None)
    if client is None:
        raise HTTPException(status_code=503, detail="Custody client not initialized")
    return client


def get_workflow(request: Request) -> VaultProvisioningWorkflow:
    workflow = getattr(request.app.state, "workflow", None)
    if workflow is None:
        raise HTTPException(status_code=503, detail="Provisioning workflow not initialized")
    return workflow


def vault_error_to_http(error: VaultServiceError) -> HTTPException:
    """Map custody and provisioning errors onto HTTP responses."""
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=error.to_dict())
    return HTTPException(status_code=502, detail=error.to_dict())
