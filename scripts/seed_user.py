"""Seed script to create development users.

Creates a plain password user and an MFA-enabled user, then prints a fresh
SSO token for the plain user so the token exchange can be tried by hand.
"""

import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from deskauth.database import init_db, session_scope
from deskauth.models.user import User
from deskauth.services.mfa_service import TotpMfaProvider
from deskauth.services.sso_service import SsoTokenValidator
from deskauth.services.user_store import UserStore
from deskauth.utils.timezone import utcnow

DEV_PASSWORD = "DeskAuthDev2024!"


def _get_or_create(db, user_id, email, name, **fields):
    user = db.query(User).filter(User.email == email).first()
    if user:
        print(f"NOTICE: User already exists: {email}")
        return user

    user = User(
        id=user_id,
        email=email,
        name=name,
        is_active=True,
        confirmed_at=utcnow(),
        failed_login_attempts=0,
        sign_in_count=0,
        hashed_password=UserStore.hash_password(DEV_PASSWORD),
        **fields
    )
    db.add(user)
    db.commit()
    print(f"SUCCESS: Created {email}")
    return user


def seed_user():
    """Create the development accounts."""
    init_db()

    with session_scope() as db:
        agent = _get_or_create(db, "dev-agent-001", "agent@deskauth.local", "Support Agent", mfa_enabled=False)

        provider = TotpMfaProvider(db)
        mfa_user = _get_or_create(
            db,
            "dev-mfa-001",
            "mfa@deskauth.local",
            "MFA Agent",
            mfa_enabled=True,
            otp_secret=TotpMfaProvider.generate_secret()
        )
        backup_codes = provider.generate_backup_codes()
        provider.set_backup_codes(mfa_user, backup_codes)
        db.commit()

        sso_token = SsoTokenValidator(db).generate(agent)

        print("\nUser Accounts:")
        print("-" * 60)
        print(f"Password (both accounts): {DEV_PASSWORD}")
        print(f"1. {agent.email}")
        print(f"   SSO token (single use): {sso_token}")
        print(f"2. {mfa_user.email}")
        print(f"   Authenticator URI: {TotpMfaProvider.provisioning_uri(mfa_user)}")
        print(f"   Backup codes: {', '.join(backup_codes)}")
        print("-" * 60)


if __name__ == "__main__":
    seed_user()
