"""
Grant or revoke admin privilege for an existing account.

Registration always creates STANDARD accounts; this is the only way to make
an admin.

Run from the backend/ directory:
    python scripts/promote_admin.py admin@example.com
    python scripts/promote_admin.py admin@example.com --revoke
"""
import argparse
import asyncio
import os
import sys

# Add backend/ to path so we can import config
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import async_session, init_db
from domain.enums import Role
from domain.errors import NotFoundError
from services import auth_service


async def main(email: str, revoke: bool) -> int:
    await init_db()
    role = Role.STANDARD if revoke else Role.ADMIN
    async with async_session() as db:
        try:
            user = await auth_service.set_role(db, email=email, role=role)
        except NotFoundError:
            print(f"No account registered with {email}")
            return 1
        await db.commit()
    print(f"{user.email} is now {role.name}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("email")
    parser.add_argument("--revoke", action="store_true", help="demote back to a standard account")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.email, args.revoke)))
