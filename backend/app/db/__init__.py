"""Database package for ORM, session management, and the embedding cache store."""

from .base import Base, get_session
from .session import get_engine, get_session_factory

__all__ = [
    "Base",
    "get_engine",
    "get_session",
    "get_session_factory",
]
