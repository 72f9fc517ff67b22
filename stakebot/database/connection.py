"""
Database Connection Management for StakeBot

Provides engine and session handling for the local cache store.
The store is a single SQLite file; one engine per opened store.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stakebot.errors import CacheIOError
from stakebot.utils.logger import get_logger

from .models import Base

logger = get_logger(__name__)

DATABASE_FILENAME = "confirmed_blocks.sqlite3"


class CacheDatabase:
    """
    SQLite-backed store

    Usage:
        >>> db = CacheDatabase.open(Path('~/.cache/stakebot'))
        >>> with db.session() as session:
        ...     session.query(ConfirmedBlock).count()
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine)

    @classmethod
    def open(cls, base_path: Path) -> "CacheDatabase":
        """
        Open (or create) the store under base_path

        Raises:
            CacheIOError: If the directory or database cannot be created
        """
        base_path = Path(base_path).expanduser()
        try:
            base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheIOError(f"Cannot create cache directory {base_path}: {e}") from e

        db_file = base_path / DATABASE_FILENAME
        try:
            engine = create_engine(f"sqlite:///{db_file}", echo=False)
            Base.metadata.create_all(engine)
        except SQLAlchemyError as e:
            raise CacheIOError(f"Cannot open cache database {db_file}: {e}") from e

        logger.debug(f"Cache database opened: {db_file}")
        return cls(engine)

    @classmethod
    def in_memory(cls) -> "CacheDatabase":
        """In-memory store (tests)"""
        engine = create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(engine)
        return cls(engine)

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Context manager for database sessions

        Session is committed on success and rolled back on error.

        Raises:
            CacheIOError: If the store cannot be read or written
        """
        session = self._session_factory()

        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Session rollback due to error: {e}", exc_info=True)
            raise CacheIOError(f"Cache store error: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()
