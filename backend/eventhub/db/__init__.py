from .base import Base
from .session import (
    ENGINE as engine,
    SessionLocal,
    get_db,
    get_engine,
    get_sessionmaker,
    init_db,
    session_scope,
)

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "get_engine",
    "get_sessionmaker",
    "init_db",
    "session_scope",
]
