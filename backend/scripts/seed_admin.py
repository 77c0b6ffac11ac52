#!/usr/bin/env python
"""Seed script to create the initial DocFlow administrator.

Creates an ADMIN user and prints a signed access token for it, so the
first templates can be created through the API. Run once during setup.

Usage:
    python backend/scripts/seed_admin.py

Environment Variables:
    DATABASE_URL: PostgreSQL connection string
    JWT_SECRET: Token signing secret (required)
    ADMIN_EMAIL: Email for admin user (default: admin@example.com)
    ADMIN_FIRST_NAME: First name (default: System)
    ADMIN_LAST_NAME: Last name (default: Administrator)
"""

import os
import sys
from pathlib import Path

# Add backend/src to Python path
backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

from sqlalchemy import select
from database import SessionLocal
from models.user import User
from auth.jwt import create_access_token


def main():
    """Create initial admin user."""
    if not os.getenv("JWT_SECRET"):
        print("ERROR: JWT_SECRET environment variable is required")
        sys.exit(1)

    admin_email = os.getenv("ADMIN_EMAIL", "admin@example.com").lower()
    first_name = os.getenv("ADMIN_FIRST_NAME", "System")
    last_name = os.getenv("ADMIN_LAST_NAME", "Administrator")

    session = SessionLocal()

    try:
        existing_user = session.execute(
            select(User).where(User.email == admin_email)
        ).scalar_one_or_none()

        if existing_user:
            print(f"ERROR: User with email {admin_email} already exists")
            sys.exit(1)

        admin_user = User(
            email=admin_email,
            first_name=first_name,
            last_name=last_name,
            role="ADMIN",
            is_active=True,
        )

        session.add(admin_user)
        session.commit()

        print("SUCCESS: Admin user created")
        print(f"  ID:    {admin_user.id}")
        print(f"  Email: {admin_user.email}")
        print(f"  Name:  {admin_user.full_name}")
        print(f"  Role:  {admin_user.role}")
        print(f"  Token: {create_access_token(user_id=admin_user.id, role=admin_user.role, email=admin_user.email)}")

    except Exception as e:
        session.rollback()
        print(f"ERROR: Failed to create admin user: {e}")
        sys.exit(1)

    finally:
        session.close()


if __name__ == "__main__":
    main()
