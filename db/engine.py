"""
SQLAlchemy engine and session factory.

Usage:
    from db.engine import SessionLocal

    with SessionLocal() as db:
        user = db.execute(select(UserRecord)).scalars().first()
"""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from config import Config


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite gets a thread-shareable connection instead of a pool."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before use
        pool_size=Config.DB_POOL_SIZE,
        max_overflow=20,
        echo=echo,
    )


engine = build_engine(Config.DATABASE_URL, echo=Config.DB_ECHO)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)

# Base class for all models
Base = declarative_base()


def init_db(bind: Engine | None = None) -> None:
    """Create all tables that do not exist yet."""
    # Import models so they register on Base.metadata
    import db.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
