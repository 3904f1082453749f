"""Seed or update a profile owner with one linked platform for Locust scenarios."""

from __future__ import annotations

import argparse
import asyncio

from sqlalchemy import func, select

from linkvault.db import get_session_factory
from linkvault.models.connection import Connection, Platform
from linkvault.models.user import User
from linkvault.schemas.connection import default_metadata, dump_metadata
from linkvault.services.user_service import UserService


async def seed_user(email: str, password: str) -> None:
    """Create or update the load-test owner and print the ids the scenarios need."""
    session_factory = get_session_factory()
    user_service = UserService()

    async with session_factory() as session:
        statement = select(User).where(func.lower(User.email) == email.lower())
        user = (await session.execute(statement)).scalar_one_or_none()

        password_hash = user_service.hash_password(password)
        if user is None:
            user = User(
                email=email.lower(),
                password_hash=password_hash,
                first_name="Load",
                last_name="Test",
            )
            session.add(user)
            await session.flush()
            print(f"created load-test user: {email}")
        else:
            user.password_hash = password_hash
            user.public_profile = True
            print(f"updated load-test user password: {email}")

        connection_statement = select(Connection).where(
            Connection.user_id == user.id,
            Connection.platform == Platform.LINKEDIN.value,
        )
        connection = (await session.execute(connection_statement)).scalar_one_or_none()
        if connection is None:
            connection = Connection(
                user_id=user.id,
                platform=Platform.LINKEDIN.value,
                username="loadtest",
                url="https://www.linkedin.com/in/loadtest",
                platform_metadata=dump_metadata(default_metadata(Platform.LINKEDIN)),
            )
            session.add(connection)
        connection.is_active = True
        await session.commit()

        print(f"LINKVAULT_LOAD_USER_ID={user.id}")
        print(f"LINKVAULT_LOAD_CONNECTION_ID={connection.id}")


def _parse_args() -> argparse.Namespace:
    """Parse CLI options."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--email", default="loadtest@example.com")
    parser.add_argument("--password", default="Password123!")
    return parser.parse_args()


def main() -> None:
    """Entrypoint."""
    args = _parse_args()
    asyncio.run(seed_user(email=args.email, password=args.password))


if __name__ == "__main__":
    main()
