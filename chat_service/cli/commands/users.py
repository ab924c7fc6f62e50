"""User and token commands for local development."""

from datetime import timedelta
from uuid import UUID

import click

from chat_service.cli.utils import coro, error, header, info, success


@click.group(name="users")
def users() -> None:
    """User management commands."""


@users.command(name="create")
@click.argument("username")
@click.option("--token/--no-token", default=True, help="Also print a signed access token")
@coro
async def create_user(username: str, token: bool) -> None:
    """Register USERNAME under a freshly generated session id."""
    from chat_service.core.exceptions import AppException
    from chat_service.core.settings import get_auth_settings
    from chat_service.features.chat.service import ChatService
    from chat_service.infra.auth import issue_token
    from chat_service.infra.database import close_database, get_async_session, init_database

    header("Creating user")
    await init_database()
    try:
        async with get_async_session() as session:
            user = await ChatService(session).create_user(username)
    except AppException as e:
        error(e.detail)
        raise click.exceptions.Exit(1) from e
    finally:
        await close_database()

    success(f"Created {user.username}")
    info(f"User id:    {user.id}")
    info(f"Session id: {user.session_id}")
    if token:
        click.echo(
            issue_token(
                get_auth_settings(),
                user.id,
                username=user.username,
                session_id=user.session_id,
            )
        )


@users.command(name="issue-token")
@click.argument("user_id", type=click.UUID)
@click.option("--username", default=None, help="Display name claim")
@click.option("--ttl", default=None, type=int, help="Lifetime in seconds (default: AUTH_TOKEN_TTL_SECONDS)")
def issue_token_command(user_id: UUID, username: str | None, ttl: int | None) -> None:
    """Mint a development token for USER_ID."""
    from chat_service.core.settings import get_auth_settings
    from chat_service.infra.auth import issue_token

    click.echo(
        issue_token(
            get_auth_settings(),
            user_id,
            username=username,
            ttl=timedelta(seconds=ttl) if ttl else None,
        )
    )
