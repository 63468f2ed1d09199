#!/usr/bin/env python3
"""
Management CLI for the SaaS starter API.

Usage:
  python main.py serve [--host 127.0.0.1] [--port 8000] [--reload]
  python main.py seed-admin
  python main.py seed-dev
  python main.py wipe-db [--yes]

Environment variables (see core/config.py for the full list):
  ENVIRONMENT     development | staging | production | testing | ci
  DATABASE_URL    SQLAlchemy URL (default: SQLite file under auth/)
  ADMIN_EMAIL     Admin account created by seed-admin
  ADMIN_PASSWORD  Its password
"""

from __future__ import annotations

import argparse
import logging
import sys

from auth.models import AuthConfig, Role
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import Settings, get_settings

logger = logging.getLogger("starter.cli")

# Accounts created by seed-dev. Both use the same throwaway password.
DEV_ACCOUNTS = (
    ("admin_user@email.com", Role.ADMIN),
    ("user_local@email.com", Role.USER),
)
DEV_PASSWORD = "password"

_SEED_DEV_ENVIRONMENTS = ("development", "staging")


class CommandError(Exception):
    """A command refused to run. The message is shown to the operator."""


def _service(settings: Settings, store: UserStore) -> AuthService:
    # Seeding never sends email and never needs a configured secret.
    config = AuthConfig.from_settings(settings)
    return AuthService(store, TokenCodec(config), config)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def seed_admin(settings: Settings, store: UserStore) -> str:
    """Create the ADMIN_EMAIL account with ADMIN role if it does not exist yet."""
    if not settings.admin_email or not settings.admin_password:
        raise CommandError("ADMIN_EMAIL and ADMIN_PASSWORD must both be set.")
    user, created = _service(settings, store).ensure_user(settings.admin_email, settings.admin_password, Role.ADMIN)
    if not created:
        return f"Admin {user.email} already exists; left unchanged."
    return f"Admin {user.email} created."


def seed_dev(settings: Settings, store: UserStore) -> str:
    """Create the local development accounts (development/staging only)."""
    if settings.environment not in _SEED_DEV_ENVIRONMENTS:
        raise CommandError(f"seed-dev is not allowed in the {settings.environment} environment.")
    service = _service(settings, store)
    lines = []
    for email, role in DEV_ACCOUNTS:
        user, created = service.ensure_user(email, DEV_PASSWORD, role)
        lines.append(f"{'created' if created else 'exists '}  {role.value:<5}  {user.email}")
    return "\n".join(lines)


def wipe_db(settings: Settings, store: UserStore) -> str:
    """Delete every user and reset ticket. Refused in production."""
    if not settings.destructive_ops_allowed:
        raise CommandError(f"wipe-db is not allowed in the {settings.environment} environment.")
    store.wipe()
    logger.warning("Database wiped (environment=%s)", settings.environment)
    return "Database wiped."


def serve(host: str, port: int, reload: bool) -> None:
    import uvicorn

    uvicorn.run("api.main:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="saas-starter",
        description="Management commands for the SaaS starter auth API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  ADMIN_EMAIL=me@example.com ADMIN_PASSWORD=s3cret python main.py seed-admin
  ENVIRONMENT=development python main.py seed-dev
  python main.py wipe-db --yes
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve_p = sub.add_parser("serve", help="Run the API with uvicorn")
    serve_p.add_argument("--host", default="127.0.0.1")
    serve_p.add_argument("--port", type=int, default=8000)
    serve_p.add_argument("--reload", action="store_true", help="Restart on code changes")

    sub.add_parser("seed-admin", help="Create the ADMIN_EMAIL admin account")
    sub.add_parser("seed-dev", help="Create local development accounts")
    wipe_p = sub.add_parser("wipe-db", help="Delete all users and reset tickets")
    wipe_p.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(levelname)-5s %(name)s %(message)s")

    if args.command == "serve":
        serve(args.host, args.port, args.reload)
        return 0

    if args.command == "wipe-db" and not args.yes:
        answer = input(f"Wipe every user in the {settings.environment} database? [y/N] ")
        if answer.strip().lower() != "y":
            print("Aborted.")
            return 1

    commands = {"seed-admin": seed_admin, "seed-dev": seed_dev, "wipe-db": wipe_db}
    store = UserStore(settings.database_url)
    try:
        print(commands[args.command](settings, store))
    except CommandError as e:
        print(f"  [!] {e}", file=sys.stderr)
        return 2
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
