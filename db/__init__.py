"""
Database module for the accounts service.

Provides SQLAlchemy models, engine and session factory.
"""

from db.engine import Base, SessionLocal, init_db

__all__ = ["Base", "SessionLocal", "init_db"]
