"""Application startup validation."""
import logging
from sqlalchemy import inspect, text

from app.settings import settings
from app.db import engine

logger = logging.getLogger(__name__)

REQUIRED_TABLES = (
    'users',
    'items',
    'categories',
    'system_settings',
    'recommendation_overrides',
    'api_usage_logs',
)


def validate_settings() -> None:
    """
    Validate environment settings and the LLM configuration.

    Raises:
        ValueError: If required settings are missing or invalid
    """
    logger.info(f"Validating settings for ENV={settings.ENV}")

    settings.validate_required_for_env()
    settings.validate_llm_config()

    logger.info(f"✓ Settings validation passed (default LLM provider: {settings.LLM_PROVIDER})")


def get_missing_tables(bind=None) -> list[str]:
    """Required tables that do not exist in the connected database."""
    existing = set(inspect(bind or engine).get_table_names())
    return [t for t in REQUIRED_TABLES if t not in existing]


def validate_database() -> None:
    """
    Validate database connection and required tables.

    Raises:
        Exception: If database is unreachable or tables are missing
    """
    logger.info("Validating database connection...")

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("✓ Database connection successful")

        missing_tables = get_missing_tables()
        if missing_tables:
            raise ValueError(
                f"Missing required database tables: {', '.join(missing_tables)}. "
                "Run migrations with: alembic upgrade head"
            )

        logger.info(f"✓ All required tables present: {', '.join(REQUIRED_TABLES)}")

    except Exception as e:
        logger.error(f"✗ Database validation failed: {e}")
        raise


def run_startup_validation() -> None:
    """
    Run all startup validations.

    Fails fast with clear error messages if any validation fails.

    Raises:
        Exception: If any validation fails
    """
    logger.info("=" * 60)
    logger.info("Starting application startup validation")
    logger.info("=" * 60)

    try:
        validate_settings()
        validate_database()

        logger.info("✓ All startup validations passed")

    except Exception as e:
        logger.error("✗ Startup validation failed")
        logger.error(f"Error: {e}")
        logger.error("Application will not start until this is resolved.")
        raise
