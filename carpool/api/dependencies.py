"""FastAPI dependency injection helpers."""

from fastapi import Header
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.infrastructure.database import async_session_factory
from carpool.infrastructure.unit_of_work import UnitOfWork


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session for read-only routes."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_uow() -> UnitOfWork:
    """Unit of work for routes that mutate state (one transaction, retried)."""
    return UnitOfWork(async_session_factory)


async def get_actor_id(
    x_user_id: int = Header(
        ...,
        alias="X-User-Id",
        description="Authenticated user id, set by the authentication gateway.",
    ),
) -> int:
    return x_user_id
