"""Declarative base plus engine/session accessors for the budget tables."""
from .base import Base
from .session import get_db, get_engine, get_sessionmaker, init_db

__all__ = ["Base", "get_db", "get_engine", "get_sessionmaker", "init_db"]
