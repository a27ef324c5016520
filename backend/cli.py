"""CLI tool for admin operations.

Usage:
    python -m backend.cli create-user [admin|issuer|investor]
    python -m backend.cli create-issuer <username> <company name>
    python -m backend.cli setup-wallet <issuer_id> <asset_type> <blockchain> <token_standard> [--force]
    python -m backend.cli check-wallet <issuer_id>
    python -m backend.cli sync-wallets
"""

import asyncio
import sys
import getpass

from sqlmodel import Session, select

from backend.database import engine, create_db_and_tables
from backend.models.issuer import Issuer
from backend.models.user import ROLES, User
from backend.services.auth import hash_password, generate_totp_secret, get_totp_uri
from backend.services.errors import ValidationError
from backend.utils.logging import setup_logging


def create_user(role: str = "admin"):
    """Create a user with TOTP setup."""
    if role not in ROLES:
        print(f"Role must be one of: {', '.join(ROLES)}")
        sys.exit(1)
    create_db_and_tables()

    username = input("Username: ").strip()
    if not username:
        print("Username cannot be empty.")
        sys.exit(1)

    with Session(engine) as session:
        existing = session.exec(select(User).where(User.username == username)).first()
        if existing:
            print(f"User '{username}' already exists.")
            sys.exit(1)

    email = input("Email (optional): ").strip() or None
    password = getpass.getpass("Password: ")
    password_confirm = getpass.getpass("Confirm password: ")
    if password != password_confirm:
        print("Passwords do not match.")
        sys.exit(1)

    totp_secret = generate_totp_secret()
    totp_uri = get_totp_uri(totp_secret, username)

    user = User(
        username=username,
        email=email,
        hashed_password=hash_password(password),
        totp_secret=totp_secret,
        role=role,
    )

    with Session(engine) as session:
        session.add(user)
        session.commit()

    print(f"\n{role.capitalize()} user '{username}' created successfully.")
    print(f"\nTOTP Secret: {totp_secret}")
    print(f"TOTP URI: {totp_uri}")
    print("\nScan the QR code below with your authenticator app:")

    try:
        import qrcode
        qr = qrcode.QRCode(box_size=1, border=1)
        qr.add_data(totp_uri)
        qr.make(fit=True)
        qr.print_ascii(invert=True)
    except ImportError:
        print("(Install qrcode[pil] to display QR code in terminal)")


def create_issuer(username: str, company_name: str):
    """Attach an issuer profile to an existing issuer user."""
    create_db_and_tables()
    with Session(engine) as session:
        user = session.exec(select(User).where(User.username == username)).first()
        if not user:
            print(f"User '{username}' not found.")
            sys.exit(1)
        if user.role != "issuer":
            print(f"User '{username}' has role '{user.role}', expected 'issuer'.")
            sys.exit(1)
        if session.exec(select(Issuer).where(Issuer.user_id == user.id)).first():
            print(f"User '{username}' already has an issuer profile.")
            sys.exit(1)
        issuer = Issuer(user_id=user.id, company_name=company_name)
        session.add(issuer)
        session.commit()
        session.refresh(issuer)
        print(f"Issuer {issuer.id} ('{company_name}') created for '{username}'.")


def _build():
    from backend.services.custody_factory import build_custody_client, build_workflow

    client = build_custody_client(engine)
    return client, build_workflow(client, engine)


def _print_wallet(wallet):
    print(f"  Wallet ID:       {wallet.id}")
    print(f"  Chain:           {wallet.chain} ({wallet.asset_id})")
    print(f"  Token standard:  {wallet.token_standard}")
    print(f"  Deposit address: {wallet.deposit_address}")
    print(f"  Vault ID:        {wallet.external_vault_id}")
    print(f"  Provider:        {wallet.provider}")


async def _setup_wallet(issuer_id: int, asset_type: str, blockchain: str, token_standard: str, force: bool):
    client, workflow = _build()
    try:
        with Session(engine) as session:
            issuer = session.get(Issuer, issuer_id)
            if not issuer:
                print(f"Issuer {issuer_id} not found.")
                sys.exit(1)
            user_id, company_name = issuer.user_id, issuer.company_name

        try:
            result = await workflow.setup(
                issuer_id, user_id, company_name, asset_type, blockchain, token_standard, force=force
            )
        except ValidationError as e:
            print(f"Invalid selection: {e.message}")
            sys.exit(1)

        if not result.success:
            print(f"Setup failed at step '{result.failed_step}': {result.error.message}")
            sys.exit(1)
        print("Wallet already set up:" if result.already_completed else "Wallet created:")
        _print_wallet(result.wallet)
    finally:
        await client.close()


async def _check_wallet(issuer_id: int):
    client, workflow = _build()
    try:
        status = workflow.check_status(issuer_id)
        if not status.completed:
            print(f"Issuer {issuer_id}: setup not completed.")
            return
        print(f"Issuer {issuer_id}: setup completed at {status.completed_at}")
        _print_wallet(status.wallet)
        balance = await client.get_vault_asset_balance(status.wallet.external_vault_id, status.wallet.asset_id)
        suffix = " (mock)" if balance.mock else ""
        print(f"  Balance:         {balance.total} total, {balance.available} available{suffix}")
    finally:
        await client.close()


async def _sync_wallets():
    from backend.engine.wallet_sync import sync_wallets

    client, workflow = _build()
    try:
        summary = await sync_wallets(client, workflow.wallets)
        print(f"Wallet sync: {summary.as_dict()}")
    finally:
        await client.close()


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m backend.cli <command>")
        print("Commands: create-user, create-issuer, setup-wallet, check-wallet, sync-wallets")
        sys.exit(1)

    setup_logging()
    command, args = sys.argv[1], sys.argv[2:]
    if command == "create-user":
        create_user(args[0] if args else "admin")
    elif command == "create-issuer" and len(args) >= 2:
        create_issuer(args[0], " ".join(args[1:]))
    elif command == "setup-wallet" and len(args) >= 4:
        create_db_and_tables()
        asyncio.run(_setup_wallet(int(args[0]), args[1], args[2], args[3], force="--force" in args[4:]))
    elif command == "check-wallet" and len(args) == 1:
        create_db_and_tables()
        asyncio.run(_check_wallet(int(args[0])))
    elif command == "sync-wallets":
        create_db_and_tables()
        asyncio.run(_sync_wallets())
    else:
        print(f"Unknown command or missing arguments: {' '.join(sys.argv[1:])}")
        print(__doc__)
        sys.exit(1)


if __name__ == "__main__":
    main()
