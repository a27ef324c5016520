"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.config import settings
from backend.database import create_db_and_tables, engine
from backend.utils.logging import setup_logging
from backend.api import auth, credentials, issuer, system, vaults, wallet

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()

    from backend.services.custody_factory import build_custody_client, build_workflow
    client = build_custody_client(engine)
    workflow = build_workflow(client, engine)
    app.state.custody_client = client
    app.state.workflow = workflow
    logger.info(f"Custody client ready ({'mock' if client.mock_mode else 'live'} mode)")

    # Resolve placeholder and mock wallets before serving requests
    from backend.engine.wallet_sync import sync_wallets
    await sync_wallets(client, workflow.wallets)

    from backend.engine.scheduler import start_scheduler, stop_scheduler
    start_scheduler(client, workflow.wallets, settings.wallet_sync_interval_minutes)

    yield

    stop_scheduler()
    await client.close()


app = FastAPI(
    title="Tokenization Platform",
    description="Issuer onboarding and custodial vault provisioning",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(auth.router)
app.include_router(issuer.router)
app.include_router(wallet.router)
app.include_router(vaults.router)
app.include_router(credentials.router)
app.include_router(system.router)
