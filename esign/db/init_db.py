"""Create the database schema"""

import logging
from pathlib import Path
from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from esign.db.base import Base

# Import all models explicitly to register them with SQLAlchemy
from esign.db.models import signing_session as _model_signing_session  # noqa: F401
from esign.db.models import staged_document as _model_staged_document  # noqa: F401

logger = logging.getLogger("esign.database")


def _ensure_sqlite_directory(engine: Engine) -> None:
    if engine.url.get_backend_name() != "sqlite":
        return
    database = engine.url.database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)


def init_database(engine: Optional[Engine] = None) -> List[str]:
    """Create all tables with proper schema; returns the table names"""
    if engine is None:
        from esign.db.session import engine as default_engine

        engine = default_engine

    try:
        _ensure_sqlite_directory(engine)
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        logger.error(
            f"Error initializing database: {e}",
            extra={"error_type": type(e).__name__, "database_url": "[REDACTED]"},
        )
        raise

    table_names = [table.name for table in Base.metadata.sorted_tables]
    logger.info("Database tables ready", extra={"table_count": len(table_names), "tables": table_names})
    return table_names


if __name__ == "__main__":
    init_database()
