import logging

from chatquota.db.base import Base
from chatquota.db import models  # noqa: F401  (registers tables on Base.metadata)

logger = logging.getLogger(__name__)


def init_db(bind=None):
    """Create any missing tables. Alembic owns schema changes in production."""
    if bind is None:
        from chatquota.db.session import engine
        bind = engine
    Base.metadata.create_all(bind=bind)
    logger.info("Database tables ensured")
