"""FastAPI dependencies for route handlers.

This module re-exports commonly used dependencies for cleaner imports.

Usage:
    from chat_service.core.dependencies import CurrentIdentity, DBSessionDep

    @router.get("/conversations")
    async def list_conversations(identity: CurrentIdentity, session: DBSessionDep):
        ...
"""

from chat_service.core.dependencies.auth import CurrentIdentity, get_current_identity
from chat_service.core.dependencies.database import DBSessionDep, get_db_session
from chat_service.core.dependencies.realtime import (
    RealtimeServicesDep,
    get_optional_realtime_services,
    require_realtime_services,
)

__all__ = [
    "CurrentIdentity",
    "DBSessionDep",
    "RealtimeServicesDep",
    "get_current_identity",
    "get_db_session",
    "get_optional_realtime_services",
    "require_realtime_services",
]
