from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all database models."""


async def create_all_tables() -> None:
    """Create all tables in the database."""
    from .engine import engine

    # Import models so they register with Base.metadata
    from coursetrack.courses import models as _courses  # noqa: F401
    from coursetrack.notifications import models as _notifications  # noqa: F401
    from coursetrack.progress import models as _progress  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
