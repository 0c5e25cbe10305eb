from __future__ import annotations

import os

from sqlalchemy import inspect

from services.storefront.app.db.database import get_engine
from services.storefront.app.db.models import Base
from services.storefront.app.utils.logging import get_logger

logger = get_logger(__name__)

_TRUTHY = {"1", "true", "yes", "y"}


def init_db() -> list[str]:
    """Create any missing tables. Returns the names of the tables created.

    Skipped when STOREFRONT_DB_AUTO_CREATE is off (schema managed elsewhere).
    """

    if os.getenv("STOREFRONT_DB_AUTO_CREATE", "true").strip().lower() not in _TRUTHY:
        logger.info("Skipping table creation", reason="STOREFRONT_DB_AUTO_CREATE is off")
        return []

    engine = get_engine()
    existing = set(inspect(engine).get_table_names())
    Base.metadata.create_all(bind=engine)

    created = [t for t in Base.metadata.tables if t not in existing]
    if created:
        logger.info("Created tables", tables=created, url=engine.url.render_as_string(hide_password=True))
    return created
