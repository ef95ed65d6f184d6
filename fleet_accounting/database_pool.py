"""
Database Connection Pool Manager
SQLAlchemy engine with connection pooling for migrations and health checks.
The accounting repository itself talks to MySQL through pymysql.
"""

import logging
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import QueuePool

from fleet_accounting.settings import get_settings

logger = logging.getLogger(__name__)

# Global engine instance (singleton)
_engine: Optional[Engine] = None


def get_engine(url: Optional[str] = None) -> Engine:
    """
    Get or create the global SQLAlchemy engine with connection pooling

    Pool Configuration:
    - pool_size: MYSQL_POOL_SIZE persistent connections
    - max_overflow: 2x pool_size additional connections under load
    - pool_recycle: MYSQL_POOL_RECYCLE seconds
    - pool_pre_ping: Test connection before use (detect stale connections)
    """
    global _engine

    if _engine is None:
        db = get_settings().database
        logger.info("🔌 Creating SQLAlchemy engine with connection pool...")

        _engine = create_engine(
            url or db.get_sqlalchemy_url(),
            poolclass=QueuePool,
            pool_size=db.pool_size,
            max_overflow=db.pool_size * 2,
            pool_timeout=30,
            pool_recycle=db.pool_recycle,
            pool_pre_ping=True,
            echo=False,
        )

        # Test connection
        try:
            with _engine.connect() as conn:
                conn.execute(text("SELECT 1"))
                logger.info(f"✅ Database connection pool initialized ({db.database})")
        except Exception as e:
            logger.error(f"❌ Failed to connect to MySQL: {e}")
            _engine = None
            raise

    return _engine


def dispose_engine() -> None:
    """Close all pooled connections (shutdown, tests)."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
        logger.info("🔌 Database connection pool disposed")
