"""Database commands."""

import click

from chat_service.cli.utils import coro, error, header, info, success


@click.group(name="db")
def db() -> None:
    """Database management commands."""


@db.command(name="init")
@coro
async def init_db() -> None:
    """Verify connectivity and create every missing table."""
    from chat_service.core.settings import get_db_settings
    from chat_service.infra.database import close_database, create_tables, init_database

    settings = get_db_settings()
    header("Initializing database")
    info(f"Backend: {'sqlite' if settings.is_sqlite else 'postgresql'}")

    try:
        engine = await init_database(settings)
        await create_tables(engine)
    except Exception as e:
        error(f"Database initialization failed: {e}")
        raise click.exceptions.Exit(1) from e
    finally:
        await close_database()

    success("Database schema is up to date")
