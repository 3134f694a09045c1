"""
User registration and authentication.
"""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from chatquota.core.clock import utcnow
from chatquota.core.errors import PersistenceError, ValidationError
from chatquota.core.plan_catalog import PlanCatalog
from chatquota.core.security import hash_password, verify_password
from chatquota.db.models.user import ROLE_ADMIN, ROLE_USER, User
from chatquota.services import entitlement_store

logger = logging.getLogger(__name__)

VALID_ROLES = (ROLE_USER, ROLE_ADMIN)


def get_by_username(db: Session, username: str) -> Optional[User]:
    return db.query(User).filter(User.username == username).first()


def register_user(
    db: Session,
    username: str,
    password: str,
    role: str = ROLE_USER,
    catalog: Optional[PlanCatalog] = None,
) -> User:
    """
    Create a user and initialise their default Free entitlement.

    Raises:
        ValidationError: Username taken or unknown role
        PersistenceError: Store failure
    """
    logger.info(f"Registration attempt: username={username}, role={role}")
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role: {role}", {"role": role})
    if get_by_username(db, username):
        raise ValidationError("Username already registered", {"username": username})

    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role,
        created_at=utcnow(),
    )
    try:
        db.add(user)
        db.commit()
        db.refresh(user)
    except IntegrityError as e:
        db.rollback()
        raise ValidationError("Username already registered", {"username": username}) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"User registration failed: username={username}: {e}")
        raise PersistenceError("Failed to register user") from e

    entitlement_store.initialize_entitlement(db, user.id, catalog)
    logger.info(f"User registered: user_id={user.id}, role={user.role}")
    return user


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
    """The matching user, or None on unknown username or wrong password."""
    user = get_by_username(db, username)
    if not user or not verify_password(password, user.password_hash):
        logger.info(f"Login failed: username={username}")
        return None
    return user


def set_role(db: Session, user: User, role: str) -> User:
    """
    Change a user's role. Only reachable from operational tooling; the HTTP
    surface never lets a caller choose their own role.
    """
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role: {role}", {"role": role})
    user.role = role
    user.updated_at = utcnow()
    try:
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Role change failed: user_id={user.id}: {e}")
        raise PersistenceError("Failed to change user role") from e
    logger.info(f"Role changed: user_id={user.id}, role={role}")
    return user
