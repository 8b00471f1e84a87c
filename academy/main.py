"""
Academy - Application Bootstrap
===============================

Startup order
-------------
- Static config load and validation (environment / .env)
- Logging pipeline
- Database service (and schema, when asked)
- YAML gamification config
- Engine wiring over the SQL store

Shutdown runs in reverse and never raises.

Run `python -m academy.main` to boot against `DATABASE_URL`, print a health
report and exit.
"""

from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from academy.core.config.config import Config
from academy.core.config.manager import ConfigManager
from academy.core.database.service import DatabaseService
from academy.core.event.bus import EventBus
from academy.core.logging.logger import get_logger, setup_logging, shutdown_logging
from academy.engine import AcademyEngine

logger = get_logger(__name__)


@dataclass
class Application:
    """Running infrastructure plus the engine wired over it."""

    database: DatabaseService
    config_manager: ConfigManager
    engine: AcademyEngine

    async def health(self) -> Dict[str, Any]:
        return {
            "config": Config.get_config_summary(),
            "database_healthy": await self.database.health_check(),
            "engine": self.engine.get_health(),
        }


# ============================================================================
# Application Bootstrap
# ============================================================================

async def startup(
    config_dir: Optional[Union[str, Path]] = None,
    *,
    database_url: Optional[str] = None,
    create_schema: bool = False,
    event_bus: Optional[EventBus] = None,
) -> Application:
    """Initialize all infrastructure and return the wired application."""
    # Step 1: Validate configuration early
    try:
        Config.validate()
    except Exception as exc:
        logger.critical(f"Configuration validation failed: {exc}")
        raise

    setup_logging()
    logger.info("========== ACADEMY INITIALIZATION START ==========")
    logger.info("✓ Configuration validated", extra=Config.get_config_summary())

    # Step 2: Initialize database service
    database = DatabaseService(database_url)
    try:
        await database.initialize()
        if create_schema:
            await database.create_schema()
        logger.info("✓ Database service initialized")
    except Exception as exc:
        logger.critical(f"Database initialization failed: {exc}", exc_info=True)
        raise

    # Step 3: Load gamification tunables
    try:
        config_manager = ConfigManager.from_directory(config_dir or Config.CONFIG_DIR)
        logger.info(
            "✓ Config manager initialized",
            extra={"loaded_files": config_manager.health_snapshot()["loaded_files"]},
        )
    except Exception as exc:
        logger.critical(f"Config manager initialization failed: {exc}", exc_info=True)
        await database.shutdown()
        raise

    # Step 4: Wire the engine
    engine = AcademyEngine.for_database(database, config_manager, event_bus)
    logger.info("========== INFRASTRUCTURE INITIALIZED SUCCESSFULLY ==========")

    return Application(database=database, config_manager=config_manager, engine=engine)


# ============================================================================
# Application Shutdown
# ============================================================================

async def shutdown(app: Optional[Application]) -> None:
    """Gracefully release infrastructure."""
    logger.info("========== ACADEMY SHUTDOWN START ==========")

    if app is not None:
        try:
            await app.database.shutdown()
            logger.info("✓ Database service shut down")
        except Exception as exc:
            logger.error(f"Database service shutdown error: {exc}", exc_info=True)

    logger.info("========== SHUTDOWN COMPLETE ==========")
    shutdown_logging()


# ============================================================================
# Entrypoint
# ============================================================================

async def main() -> int:
    app: Optional[Application] = None
    try:
        app = await startup()
        report = await app.health()
        print(json.dumps(report, indent=2, default=str))
        return 0 if report["database_healthy"] else 1
    except asyncio.CancelledError:
        logger.warning("Startup cancelled; shutting down gracefully.")
        raise
    except Exception as exc:
        logger.critical(f"Fatal startup error: {exc}", exc_info=True)
        return 1
    finally:
        await shutdown(app)


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
