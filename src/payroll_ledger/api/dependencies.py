"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_ledger.config import Settings, get_settings
from payroll_ledger.database import init_db
from payroll_ledger.errors import AuthenticationError


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_acting_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> str:
    """Identity of the authenticated principal, set by the auth gateway."""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError()
    return x_user_id.strip()


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
ActingUserId = Annotated[str, Depends(get_acting_user_id)]
AppSettings = Annotated[Settings, Depends(get_settings)]
