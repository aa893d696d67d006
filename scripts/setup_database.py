#!/usr/bin/env python3
"""
Database setup script for the eSign service.

Creates the signing session and staged document tables on SQLite or PostgreSQL.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.exc import SQLAlchemyError

from esign.core.config import settings
from esign.core.utils.database_helpers import check_database_health, get_database_type
from esign.db.init_db import init_database
from esign.db.session import engine


def main():
    """Initialize database based on configuration"""
    print("🗄️  eSign Database Setup")
    print("=" * 40)

    print(f"Database Type: {get_database_type(settings.DATABASE_URL)}")

    health = check_database_health(engine)
    print(f"Connected: {health['connected']}")
    print(f"Existing Tables: {len(health['tables'])}")
    for table in sorted(health["tables"]):
        print(f"  - {table}")

    print("\n🔧 Initializing database...")

    try:
        init_database(engine)
    except SQLAlchemyError as e:
        print(f"❌ Database initialization failed: {type(e).__name__}")
        return False

    print("✅ Database initialized successfully!")

    health = check_database_health(engine)
    print(f"Health Status: {health['status']}")
    print(f"Table Count: {len(health['tables'])}")
    if health["status"] != "healthy":
        print(f"⚠️  Warning: {health['last_error']}")

    return health["status"] != "unhealthy"


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
