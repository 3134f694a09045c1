"""
Apply an admin subscription override to a user.
Run: python -m scripts.set_entitlement alice Premium --paid
"""
import argparse
import logging
import sys

from chatquota.core.errors import ChatQuotaError
from chatquota.db.session import SessionLocal
from chatquota.services import entitlement_store, user_service

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def set_user_entitlement(username: str, plan_type: str, is_paid: bool) -> bool:
    """Look the user up by username and apply the override."""
    db = SessionLocal()
    try:
        user = user_service.get_by_username(db, username)
        if not user:
            logger.error(f"User {username} not found")
            return False

        subscription = entitlement_store.set_entitlement(db, user.id, plan_type, is_paid)
        logger.info(
            f"User {username} is now on {subscription.plan_type} "
            f"(paid={subscription.is_paid}, limit={subscription.tokens_limit}, "
            f"expires_at={subscription.expires_at})"
        )
        return True
    except ChatQuotaError as e:
        logger.error(f"Override failed for {username}: {e.message}")
        return False
    finally:
        db.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Set a user's plan and paid flag.")
    parser.add_argument("username")
    parser.add_argument("plan_type", help="Free or a catalog plan name")
    paid = parser.add_mutually_exclusive_group()
    paid.add_argument("--paid", dest="is_paid", action="store_true", help="Mark the plan paid (default)")
    paid.add_argument("--unpaid", dest="is_paid", action="store_false", help="Mark the plan unpaid")
    parser.set_defaults(is_paid=True)
    args = parser.parse_args(argv)

    if set_user_entitlement(args.username, args.plan_type, args.is_paid):
        print(f"\n[SUCCESS] {args.username} set to {args.plan_type} (paid={args.is_paid})")
        return 0
    print(f"\n[ERROR] Failed to update {args.username}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
