from .base import Base
from .engine import engine
from .session import DbSession, SessionMaker, async_session_maker, get_db_session, get_session_maker


__all__ = [
    "Base",
    "DbSession",
    "SessionMaker",
    "async_session_maker",
    "engine",
    "get_db_session",
    "get_session_maker",
]
