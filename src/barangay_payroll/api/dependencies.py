"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from barangay_payroll.database import async_session_factory
from barangay_payroll.exceptions import AuthorizationError
from barangay_payroll.models import Personnel


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


DbSession = Annotated[AsyncSession, Depends(get_db_session)]


async def get_current_admin(
    db: DbSession,
    x_user_id: Annotated[str | None, Header()] = None,
) -> Personnel:
    """Resolve the caller from the X-User-ID header and require an active admin."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required",
        )
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )

    user = await db.get(Personnel, user_id)
    if user is None or not user.is_admin:
        raise AuthorizationError(
            "Administrator access required", {"user_id": str(user_id)}
        )
    return user


# Type aliases for cleaner dependency injection
CurrentAdmin = Annotated[Personnel, Depends(get_current_admin)]
