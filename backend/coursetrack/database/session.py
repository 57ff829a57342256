from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.database.engine import engine


async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Return the session factory used by unit-of-work style services.

    Services that must own their transaction (progress writes, fan-out) open
    one session per operation from this factory instead of sharing the
    request session.
    """
    return async_session_maker


async def get_db_session(
    session_maker: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_maker)],
) -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session generator.

    Yields
    ------
        AsyncSession: Database session without automatic commit.
        The service layer should handle commits/rollbacks.
    """
    async with session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# Create reusable dependencies
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
SessionMaker = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_maker)]
