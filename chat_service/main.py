"""Main entry point for chat-service.

Runs the CLI, or the server directly when ``--server`` is passed:

    python -m chat_service.main --server
    python -m chat_service.main users create alice
"""

from __future__ import annotations

import sys
from typing import NoReturn


def run_fastapi_server() -> NoReturn:
    """Run the ASGI server with settings from configuration."""
    import uvicorn

    from chat_service.core.settings import get_app_settings, get_logging_settings

    settings = get_app_settings()
    log_settings = get_logging_settings()

    uvicorn.run(
        "chat_service.app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        workers=1,
        access_log=settings.debug,
        log_level=log_settings.level.lower(),
    )
    sys.exit(0)


def run_cli() -> NoReturn:
    from chat_service.cli.main import main as cli_main

    cli_main()
    sys.exit(0)


def main() -> NoReturn:
    if "--server" in sys.argv:
        sys.argv.remove("--server")
        run_fastapi_server()
    else:
        run_cli()


if __name__ == "__main__":
    main()
