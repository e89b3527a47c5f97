"""
SQLAlchemy Base class for all storefront models.

Kept apart from database.py so models can be imported
without building an engine (needed for tests).
"""
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass
