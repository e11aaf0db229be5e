import logging

from sqlalchemy import inspect

from cleansort.db.base import Base
from cleansort.db.session import engine

# Register tables on the shared metadata
from cleansort.reminders import models  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(bind=engine) -> None:
    existing_tables = set(inspect(bind).get_table_names())
    missing_tables = [t for t in Base.metadata.tables if t not in existing_tables]
    if missing_tables:
        logger.info(f"Creating missing database tables: {missing_tables}")
        Base.metadata.create_all(bind=bind)
    else:
        logger.info("All required database tables exist")
