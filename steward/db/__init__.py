"""Steward database layer - shared asyncpg pool."""

from .database import Database

__all__ = ["Database"]
