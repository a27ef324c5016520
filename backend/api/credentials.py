"""CRUD API for stored custody provider credentials (admin role)."""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from backend.database import get_session
from backend.models.credential import CustodyCredential
from backend.schemas.credential import CustodyCredentialCreate, CustodyCredentialUpdate, CustodyCredentialRead
from backend.services.custody_factory import client_from_credential
from backend.services.encryption import encrypt
from backend.services.errors import ConfigurationError
from backend.api.deps import require_role, vault_error_to_http

router = APIRouter(prefix="/api/credentials", tags=["credentials"], dependencies=[Depends(require_role("admin"))])


def _get_or_404(cred_id: int, session: Session) -> CustodyCredential:
    cred = session.get(CustodyCredential, cred_id)
    if not cred:
        raise HTTPException(status_code=404, detail="Credential not found")
    return cred


@router.get("", response_model=list[CustodyCredentialRead])
def list_credentials(session: Session = Depends(get_session)):
    return session.exec(select(CustodyCredential)).all()


@router.post("", response_model=CustodyCredentialRead, status_code=201)
def create_credential(
    data: CustodyCredentialCreate,
    session: Session = Depends(get_session),
):
    try:
        encrypted = encrypt(data.signing_key)
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=e.to_dict())
    cred = CustodyCredential(
        name=data.name,
        api_base_url=data.api_base_url,
        api_key=data.api_key,
        signing_key_encrypted=encrypted,
        auth_scheme=data.auth_scheme,
    )
    session.add(cred)
    session.commit()
    session.refresh(cred)
    return cred


@router.get("/{cred_id}", response_model=CustodyCredentialRead)
def get_credential(cred_id: int, session: Session = Depends(get_session)):
    return _get_or_404(cred_id, session)


@router.put("/{cred_id}", response_model=CustodyCredentialRead)
def update_credential(
    cred_id: int,
    data: CustodyCredentialUpdate,
    session: Session = Depends(get_session),
):
    cred = _get_or_404(cred_id, session)

    update_data = data.model_dump(exclude_unset=True)
    signing_key = update_data.pop("signing_key", None)
    if signing_key is not None:
        try:
            cred.signing_key_encrypted = encrypt(signing_key)
        except ConfigurationError as e:
            raise HTTPException(status_code=500, detail=e.to_dict())

    for key, value in update_data.items():
        if value is not None:
            setattr(cred, key, value)

    session.add(cred)
    session.commit()
    session.refresh(cred)
    return cred


@router.delete("/{cred_id}", status_code=204)
def delete_credential(cred_id: int, session: Session = Depends(get_session)):
    cred = _get_or_404(cred_id, session)
    session.delete(cred)
    session.commit()


@router.post("/{cred_id}/test")
async def test_credential(cred_id: int, session: Session = Depends(get_session)):
    """Test connectivity to the custody provider using this credential."""
    cred = _get_or_404(cred_id, session)
    try:
        client = client_from_credential(cred)
    except ConfigurationError as e:
        raise vault_error_to_http(e)
    try:
        return await client.test_connection()
    finally:
        await client.close()
