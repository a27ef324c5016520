"""Shared fixtures: signing keys, in-memory database, seeded issuer."""

import os

# Must be set before backend.config is imported
os.environ.setdefault("TK_DATABASE_URL", "sqlite://")
os.environ.setdefault("TK_ENCRYPTION_KEY", "m1eC8k3m2x0nXo7X9nq8cN2vJ4oKxYq0rQm6l0b1y2A=")

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import backend.models  # noqa: F401
from backend.models.issuer import Issuer
from backend.models.user import User


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def public_pem(rsa_key) -> str:
    return rsa_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


@pytest.fixture(scope="session")
def ec_pem() -> str:
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def key_file(tmp_path, private_pem) -> str:
    path = tmp_path / "custody_secret.key"
    path.write_text(private_pem)
    return str(path)


@pytest.fixture
def engine():
    db = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(db)
    yield db
    db.dispose()


@pytest.fixture
def issuer(engine) -> Issuer:
    """An issuer user with a profile and no wallet."""
    with Session(engine) as session:
        user = User(username="acme", hashed_password="x", totp_secret="BASE32SECRET3232", role="issuer")
        session.add(user)
        session.commit()
        session.refresh(user)
        issuer = Issuer(user_id=user.id, company_name="Acme Co")
        session.add(issuer)
        session.commit()
        session.refresh(issuer)
        return issuer
