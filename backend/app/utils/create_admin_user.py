"""
Script to create an admin user or promote an existing staff user to admin
"""
import asyncio
from getpass import getpass

from sqlalchemy import select

from app.core.database import SessionLocal, engine, Base
from app.core.security import get_password_hash
from app import models  # noqa: F401 register tables
from app.models.user import User, Role


async def create_admin_user(email: str, password: str):
    """Create an admin user if it doesn't exist, or promote the existing one"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as db:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user:
            user.role = Role.ADMIN
            await db.commit()
            print(f"User {email} promoted to admin")
        else:
            db.add(User(email=email, hashed_password=get_password_hash(password), role=Role.ADMIN))
            await db.commit()
            print(f"Admin user created: {email}")


def main():
    email = input("Enter admin email (default: admin@example.com): ").strip() or "admin@example.com"
    password = getpass("Enter admin password: ").strip()
    if len(password) < 8:
        raise SystemExit("Password must be at least 8 characters")
    asyncio.run(create_admin_user(email, password))


if __name__ == "__main__":
    main()
