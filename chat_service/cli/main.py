"""Main CLI entry point for chat-service management commands."""

import click

from chat_service.cli.commands import db, server, users
from chat_service.infra.logging.config import setup_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="chat-service")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Chat Service CLI - run the realtime server and manage local data.

    \b
    Commands:
      serve      Run the API and WebSocket server
      db         Database management
      users      User and token management

    \b
    Quick Start:
      chat-service db init
      chat-service users create alice
      chat-service serve --reload
    """
    ctx.ensure_object(dict)


cli.add_command(server.serve)
cli.add_command(db.db)
cli.add_command(users.users)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
