"""System API: health check, scheduler status, provisioning logs, manual wallet sync."""

from fastapi import APIRouter, Depends, Request
from sqlmodel import Session, select

from backend.database import get_session
from backend.models.provisioning_log import ProvisioningLog
from backend.services.custody_client import CustodyClient
from backend.api.deps import get_custody_client, get_workflow, require_role

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check(request: Request):
    client = getattr(request.app.state, "custody_client", None)
    return {
        "status": "ok",
        "custody_mode": None if client is None else ("mock" if client.mock_mode else "live"),
    }


@router.get("/scheduler", dependencies=[Depends(require_role("admin"))])
def scheduler_status():
    """Current scheduler state with job details."""
    from backend.engine.scheduler import get_scheduler_status
    return get_scheduler_status()


@router.get("/logs", dependencies=[Depends(require_role("admin"))])
def provisioning_logs(
    issuer_id: int | None = None,
    status: str | None = None,
    action: str | None = None,
    limit: int = 100,
    offset: int = 0,
    session: Session = Depends(get_session),
):
    stmt = select(ProvisioningLog).order_by(ProvisioningLog.timestamp.desc())
    if issuer_id is not None:
        stmt = stmt.where(ProvisioningLog.issuer_id == issuer_id)
    if status is not None:
        stmt = stmt.where(ProvisioningLog.status == status)
    if action is not None:
        stmt = stmt.where(ProvisioningLog.action == action)
    stmt = stmt.offset(offset).limit(limit)
    return session.exec(stmt).all()


@router.post("/wallet-sync", dependencies=[Depends(require_role("admin"))])
async def trigger_wallet_sync(
    client: CustodyClient = Depends(get_custody_client),
    workflow=Depends(get_workflow),
):
    """Run one wallet reconciliation pass now."""
    from backend.engine.wallet_sync import sync_wallets

    summary = await sync_wallets(client, workflow.wallets)
    return summary.as_dict()
