"""Server commands."""

import click


@click.command(name="serve")
@click.option("--host", default=None, help="Bind address (default: APP_HOST)")
@click.option("--port", default=None, type=int, help="Bind port (default: APP_PORT)")
@click.option("--reload/--no-reload", default=None, help="Auto-reload on code changes")
def serve(host: str | None, port: int | None, reload: bool | None) -> None:
    """Run the API and WebSocket server with uvicorn.

    Everything runs in one process on one event loop; presence and room
    subscriptions are held in memory, so run a single worker.
    """
    import uvicorn

    from chat_service.core.settings import get_app_settings, get_logging_settings

    settings = get_app_settings()
    log_settings = get_logging_settings()

    uvicorn.run(
        "chat_service.app.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=settings.reload if reload is None else reload,
        workers=1,
        access_log=settings.debug,
        log_level=log_settings.level.lower(),
    )
