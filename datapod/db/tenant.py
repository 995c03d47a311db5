"""Request-scoped tenant context for database units of work.

Every tenant-scoped write runs inside ``tenant_session``: the acting user is
bound for exactly one transaction and unbound on every exit path, because
pooled connections are reused across tenants. On Postgres the user is also
published as the transaction-local setting ``app.current_user_id`` for
row-level security policies.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from contextvars import ContextVar

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

_current_user_id: ContextVar[str | None] = ContextVar("datapod_current_user_id", default=None)


def current_user_id() -> str | None:
    """Return the user bound by the innermost active tenant_session, if any."""
    return _current_user_id.get()


@asynccontextmanager
async def tenant_session(
    session_factory: async_sessionmaker[AsyncSession],
    user_id: str,
) -> AsyncGenerator[AsyncSession, None]:
    """Open a session + transaction scoped to ``user_id``.

    Commits on normal exit, rolls back on error. The context var and the
    structlog binding are reset in ``finally``.

    Example:
        async with tenant_session(factory, "user-1") as session:
            session.add(row)
    """
    token = _current_user_id.set(user_id)
    structlog.contextvars.bind_contextvars(tenant_user_id=user_id)
    try:
        async with session_factory() as session:
            async with session.begin():
                if session.get_bind().dialect.name == "postgresql":
                    # is_local=true: cleared automatically at transaction end
                    await session.execute(
                        text("SELECT set_config('app.current_user_id', :uid, true)"),
                        {"uid": user_id},
                    )
                yield session
    finally:
        structlog.contextvars.unbind_contextvars("tenant_user_id")
        _current_user_id.reset(token)
