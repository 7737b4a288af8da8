"""
Database schema and connection management.

Entities live in SQLite via SQLAlchemy. Each entity points at one
platform channel or category through a "<name> (id: <uuid>)" string.
"""

from datetime import datetime
from pathlib import Path

from sqlalchemy import Boolean, Column, DateTime, String, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class Entity(Base):
    """Locally stored entity referencing a platform channel or category."""

    __tablename__ = "entities"

    id = Column(String, primary_key=True)
    status = Column(Boolean, nullable=False, default=True)  # True = published
    channel = Column(String, nullable=True)  # "<name> (id: <uuid>)"
    category = Column(String, nullable=True)
    created = Column(DateTime, nullable=False, default=datetime.now, index=True)
    updated = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def __repr__(self) -> str:
        return f"<Entity id={self.id!r} status={self.status!r}>"


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    engine.dispose()


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = create_engine(f"sqlite:///{db_path}")
    Session = sessionmaker(bind=engine)
    return Session()
