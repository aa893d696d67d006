"""
Database helper utilities for the eSign service.

Provides database-agnostic health reporting for SQLite and PostgreSQL.
"""

import logging
from typing import Any, Dict

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


def get_database_type(database_url: str) -> str:
    """
    Get the database type from a database URL.

    Returns:
        str: Database type ('sqlite', 'postgresql', etc.)
    """
    url = database_url.lower()
    if url.startswith("sqlite"):
        return "sqlite"
    if url.startswith("postgresql"):
        return "postgresql"
    return url.split("://")[0] if "://" in url else "unknown"


def check_database_health(engine: Engine) -> Dict[str, Any]:
    """
    Perform a database health check.

    Returns:
        Dict containing status ('healthy', 'warning' or 'unhealthy'),
        database type, table names and the last error if any
    """
    health: Dict[str, Any] = {
        "status": "healthy",
        "database_type": get_database_type(str(engine.url)),
        "connected": False,
        "tables": [],
        "last_error": None,
    }

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            health["connected"] = True
        health["tables"] = inspect(engine).get_table_names()
    except SQLAlchemyError as e:
        logger.error("Database health check failed", extra={"error_type": type(e).__name__})
        health["status"] = "unhealthy"
        health["last_error"] = type(e).__name__
        return health

    if not health["tables"]:
        health["status"] = "warning"
        health["last_error"] = "No tables found - database may need initialization"

    return health
