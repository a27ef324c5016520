"""SQLModel database engine and session management."""

import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

from backend.config import settings

logger = logging.getLogger(__name__)

# SQLite needs check_same_thread=False; PostgreSQL does not
connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.database_url,
    echo=False,
    connect_args=connect_args,
)


def _run_migrations(db_engine: Engine):
    """Lightweight schema fixes for databases created by older versions."""
    inspector = inspect(db_engine)
    tables = inspector.get_table_names()

    if "user" in tables:
        columns = {col["name"] for col in inspector.get_columns("user")}
        if "role" not in columns:
            logger.info("Migrating: adding user.role")
            with db_engine.connect() as conn:
                conn.execute(text("ALTER TABLE \"user\" ADD COLUMN role VARCHAR DEFAULT 'issuer'"))
                conn.commit()

    # One wallet per issuer, enforced by the database as well as the workflow
    if "wallet" in tables:
        indexes = inspector.get_indexes("wallet")
        has_unique = any(
            idx.get("unique") and idx.get("column_names") == ["issuer_id"] for idx in indexes
        ) or any(
            uc.get("column_names") == ["issuer_id"] for uc in inspector.get_unique_constraints("wallet")
        )
        if not has_unique:
            logger.info("Migrating: adding unique index on wallet.issuer_id")
            with db_engine.connect() as conn:
                conn.execute(text(
                    "CREATE UNIQUE INDEX ix_wallet_issuer_id_unique ON wallet (issuer_id)"
                ))
                conn.commit()


def create_db_and_tables(db_engine: Engine | None = None):
    """Create all tables. Called on startup."""
    import backend.models  # noqa: F401  registers table metadata

    db_engine = db_engine or engine
    SQLModel.metadata.create_all(db_engine)
    _run_migrations(db_engine)


def get_session() -> Session:
    """Dependency that yields a database session."""
    with Session(engine) as session:
        yield session
