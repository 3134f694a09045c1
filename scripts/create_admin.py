"""
Create an admin account, or promote an existing user to admin.
Run: python -m scripts.create_admin alice --password 'SecurePass123'
"""
import argparse
import logging
import sys
from typing import Optional

from chatquota.core.errors import ChatQuotaError
from chatquota.db.models.user import ROLE_ADMIN
from chatquota.db.session import SessionLocal
from chatquota.services import user_service

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_admin(username: str, password: Optional[str] = None) -> bool:
    """Promote the user if it exists, otherwise register it as an admin."""
    db = SessionLocal()
    try:
        user = user_service.get_by_username(db, username)
        if user:
            user_service.set_role(db, user, ROLE_ADMIN)
            logger.info(f"User {username} promoted to {ROLE_ADMIN}")
            return True

        if not password:
            logger.error(f"User {username} not found and no --password given")
            return False

        user_service.register_user(db, username, password, ROLE_ADMIN)
        logger.info(f"Admin {username} created")
        return True
    except ChatQuotaError as e:
        logger.error(f"Admin setup failed for {username}: {e.message}")
        return False
    finally:
        db.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create or promote an admin account.")
    parser.add_argument("username")
    parser.add_argument("--password", help="Required when the user does not exist yet")
    args = parser.parse_args(argv)

    if create_admin(args.username, args.password):
        print(f"\n[SUCCESS] {args.username} is an admin")
        return 0
    print(f"\n[ERROR] Failed to make {args.username} an admin")
    return 1


if __name__ == "__main__":
    sys.exit(main())
