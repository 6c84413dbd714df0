"""
Create the first admin account.

Usage:
    python -m tfootwear.scripts.create_admin --email admin@tfootwear.com --name "Admin"

The password is read from ``--password`` or prompted for.
"""

import argparse
import asyncio
import getpass
import sys

from loguru import logger

from tfootwear.core.database import create_database, init_db
from tfootwear.core.exceptions import ShopError
from tfootwear.core.logging import setup_logging
from tfootwear.modules.accounts import ensure_admin


async def create_admin(name: str, email: str, password: str) -> int:
    database = create_database()
    try:
        await init_db(database)
        async with database.session() as session:
            user = await ensure_admin(session, name, email, password)
        logger.info(f"Admin ready: {user.email} ({user.id})")
        return 0
    except ShopError as e:
        logger.error(f"Could not create admin: {e.detail}")
        return 1
    finally:
        await database.dispose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create or promote an admin account")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", default="Admin")
    parser.add_argument("--password")
    args = parser.parse_args(argv)

    setup_logging()
    password = args.password or getpass.getpass("Admin password: ")
    return asyncio.run(create_admin(args.name, args.email, password))


if __name__ == "__main__":
    sys.exit(main())
