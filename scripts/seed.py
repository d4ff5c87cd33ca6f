"""Create tables, default operating hours and an admin account."""

import argparse
import asyncio
import uuid

from sqlalchemy import select

from app.db import close_db, get_db_context, init_db
from app.models import User, UserRole


async def seed_admin(email: str, name: str) -> None:
    await init_db()

    async with get_db_context() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user is None:
            user = User(id=str(uuid.uuid4()), email=email, name=name, role=UserRole.ADMIN.value)
            session.add(user)
            print(f"Created admin user {email}")
        else:
            user.role = UserRole.ADMIN.value
            print(f"Promoted existing user {email} to admin")
        token = user.generate_session_token()

    print(f"Session token (send as cookie session_token or Bearer): {token}")
    await close_db()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the shop status database")
    parser.add_argument("--email", default="admin@cloudshop.com")
    parser.add_argument("--name", default="Shop Admin")
    args = parser.parse_args()
    asyncio.run(seed_admin(args.email, args.name))
