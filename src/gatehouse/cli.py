"""
Administrative commands.

  gatehouse-admin create-admin EMAIL PASSWORD
  gatehouse-admin purge-revoked-tokens

Registration over the API only ever grants the default role, so the first
administrator is created here.
"""

import argparse
import asyncio
import sys

import structlog

from gatehouse.config import settings
from gatehouse.db import close_db, get_db_context, init_db
from gatehouse.errors import GatehouseError, ValidationError
from gatehouse.log import configure_logging
from gatehouse.services import UserService
from gatehouse.store import RevocationStore

logger = structlog.get_logger()


async def create_admin(email: str, password: str) -> int:
    await init_db()
    try:
        async with get_db_context() as db:
            user = await UserService(db).register(
                email=email,
                password=password,
                roles={settings.default_role, settings.admin_role},
            )
        print(f"Created administrator '{user.email}' ({user.id}).")
        return 0
    except ValidationError as e:
        for violation in e.violations:
            print(violation.message, file=sys.stderr)
        return 1
    except GatehouseError as e:
        print(e.message, file=sys.stderr)
        return 1
    finally:
        await close_db()


async def purge_revoked_tokens() -> int:
    await init_db()
    try:
        async with get_db_context() as db:
            removed = await RevocationStore(db).purge_expired()
        print(f"Removed {removed} expired revocation entries.")
        return 0
    finally:
        await close_db()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="gatehouse-admin", description="Gatehouse administration.")
    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create-admin", help="Create a user holding the ADMIN role")
    create.add_argument("email")
    create.add_argument("password", help="Must satisfy the password policy")

    commands.add_parser("purge-revoked-tokens", help="Drop revocation entries for expired tokens")

    args = parser.parse_args(argv)
    configure_logging(settings.log_level, json=not settings.is_development)

    if args.command == "create-admin":
        return asyncio.run(create_admin(args.email, args.password))
    return asyncio.run(purge_revoked_tokens())


if __name__ == "__main__":
    sys.exit(main())
