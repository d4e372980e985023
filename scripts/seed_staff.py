"""
Seed the initial staff accounts (one admin, one compliance officer).
Run: python -m scripts.seed_staff (from the project root).
Passwords come from SEED_ADMIN_PASSWORD / SEED_OFFICER_PASSWORD; when unset a random
password is generated and printed once.
"""
import asyncio
import os
import secrets
import sys

from dotenv import load_dotenv

# Add parent so we can import from the project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
load_dotenv()

from database import AsyncSessionLocal, init_db
from domain.enums import UserRole
from repositories.sql import SqlRefreshTokenRepository, SqlStaffSessionRepository, SqlStaffUserRepository
from services.auth import AuthService
from services.hashing import BcryptHasher
from services.tokens import TokenService
from config import settings


STAFF_DATA = [
    {
        "username": "admin",
        "email": "admin@onboarding.local",
        "password_env": "SEED_ADMIN_PASSWORD",
        "role": UserRole.ADMIN,
    },
    {
        "username": "officer",
        "email": "officer@onboarding.local",
        "password_env": "SEED_OFFICER_PASSWORD",
        "role": UserRole.COMPLIANCE_OFFICER,
    },
]


def resolve_password(env_name: str) -> tuple[str, bool]:
    """Password from the environment, or a fresh random one. The flag tells whether it was generated."""
    password = os.environ.get(env_name)
    if password:
        return password, False
    return secrets.token_urlsafe(16), True


async def seed():
    await init_db()
    async with AsyncSessionLocal() as session:
        users = SqlStaffUserRepository(session)
        service = AuthService(
            users,
            SqlRefreshTokenRepository(session),
            SqlStaffSessionRepository(session),
            TokenService(),
            BcryptHasher(rounds=settings.bcrypt_rounds),
        )
        for data in STAFF_DATA:
            if await users.get_by_username(data["username"]) is not None:
                print(f"User {data['username']} already exists, skipping")
                continue
            password, generated = resolve_password(data["password_env"])
            await service.create_user(data["username"], data["email"], password, data["role"])
            print(f"Seeded {data['role'].value}: {data['username']}")
            if generated:
                print(f"  generated password (shown once): {password}")
        await session.commit()
    print("Seed complete.")


if __name__ == "__main__":
    asyncio.run(seed())
