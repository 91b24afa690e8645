"""
Database initialization module.
Creates the document table and verifies connectivity at startup.
"""
import logging

from sqlalchemy import text

from swingscore.core.config import settings
from swingscore.core.database import get_engine

logger = logging.getLogger(__name__)


def _masked_url(url: str) -> str:
    return url.split("@")[-1] if "@" in url else url


def initialize_database() -> bool:
    """
    Create tables and run a connectivity check.
    Idempotent. Failures are logged and reported, never raised, so the API can
    still start and report itself not ready.
    """
    logger.info("=" * 60)
    logger.info("Database initialization started")
    logger.info(f"DB_URL (masked): {_masked_url(settings.db_url)}")

    try:
        engine = get_engine()
        with engine.begin() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("✓ Database initialization finished successfully")
        return True
    except Exception as e:
        logger.error(f"✗ Database initialization failed: {e}", exc_info=True)
        logger.info("Continuing despite DB init failure (non-fatal).")
        return False
    finally:
        logger.info("=" * 60)
