"""Database connection lifespan management."""

from __future__ import annotations

import logging

from chat_service.infra.database.session import close_database, init_database

from .registry import lifespan_registry

logger = logging.getLogger(__name__)


@lifespan_registry.register(
    name="database",
    startup_order=10,
    requires=["core"],
)
async def startup_database(
    db_settings: object,
    **kwargs: object,
) -> None:
    """Create the engine, verify connectivity and optionally create tables.

    The chat store is required: startup fails if the database stays
    unreachable after the configured retries.

    Args:
        db_settings: Database settings
        **kwargs: Additional settings (ignored)
    """
    from chat_service.core.settings import PostgresSettings

    db = (
        PostgresSettings.model_validate(db_settings)
        if not isinstance(db_settings, PostgresSettings)
        else db_settings
    )

    try:
        await init_database(db)
    except Exception as e:
        logger.exception(
            "Database unavailable, failing startup",
            extra={"error": str(e)},
        )
        raise
    logger.info(
        "Database connection initialized",
        extra={"is_sqlite": db.is_sqlite, "create_tables": db.should_create_tables},
    )


@lifespan_registry.register(name="database")
async def shutdown_database(**kwargs: object) -> None:
    """Dispose of the engine."""
    await close_database()
