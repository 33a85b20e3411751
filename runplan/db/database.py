"""Engine and session handling for the runplan tables.

A ``Database`` is built once by the caller (the CLI, or a test fixture) and
passed to ``PlanService`` and ``AuthManager``. It owns the tokens, training
configs, cached plans and plan modifications defined in ``models``.
"""

from typing import Generator, Optional
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..config import config
from .models import Base


def build_engine(database_url: str) -> Engine:
    """Create an engine for ``database_url``.

    SQLite connections are shared through a single static pool so that an
    in-memory ``sqlite://`` database keeps its tables between sessions.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url)


class Database:
    """Runplan storage, injected into the services that read and write it."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or config.DATABASE_URL
        self.engine = build_engine(self.database_url)
        # Records stay readable after their session closes
        self.SessionLocal = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )

    def create_tables(self):
        """Create the token, config, plan cache and modification tables."""
        Base.metadata.create_all(bind=self.engine)

    def drop_tables(self):
        Base.metadata.drop_all(bind=self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Yield a session that commits on success and rolls back on error."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        """Release pooled connections."""
        self.engine.dispose()
