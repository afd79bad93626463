"""Run Alembic migrations from inside the application."""

import asyncio
import pathlib

from alembic.config import Config

from alembic import command  # type: ignore[attr-defined]
from roleswitch.core.logging import get_logger

logger = get_logger(__name__)

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent.parent
MIGRATION_TIMEOUT_SECONDS = 60.0


def _upgrade_to_head(database_url: str) -> None:
    alembic_cfg = Config(str(BASE_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(BASE_DIR / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    # Keep the app's logging configuration intact
    alembic_cfg.attributes["configure_logging"] = False
    command.upgrade(alembic_cfg, "head")


async def run_migrations(database_url: str) -> None:
    """
    Upgrade the database to the latest revision.

    Runs in a worker thread because Alembic's env.py drives its own event loop.
    """
    logger.info("Starting database migrations...")
    await asyncio.wait_for(
        asyncio.to_thread(_upgrade_to_head, database_url),
        timeout=MIGRATION_TIMEOUT_SECONDS,
    )
    logger.info("Database migrations completed successfully")
