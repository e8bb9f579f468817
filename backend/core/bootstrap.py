from __future__ import annotations

import logging

from sqlalchemy.exc import OperationalError

from core.database import ENGINE, is_transient_db_connectivity_error
from models import Base


logger = logging.getLogger(__name__)


def bootstrap_schema() -> None:
    """Create any missing block tables. Safe to run on every startup.

    Existing tables are left alone; column changes still need a migration.
    A database that is down at startup is logged, not fatal: /health reports it
    and requests return 503 until it comes back.
    """

    try:
        Base.metadata.create_all(ENGINE)
    except OperationalError as exc:
        if not is_transient_db_connectivity_error(exc):
            raise
        logger.warning("Database unreachable at startup; schema bootstrap skipped", exc_info=exc)
        return
    logger.info("Block schema ready (%s)", ", ".join(sorted(Base.metadata.tables)))
