"""
Episode Sink: Database Connection and Batch Writes

DatabaseManager owns the SQLAlchemy engine (opened once at startup, pooled)
and hands out transactional sessions. EpisodeSink writes a series' episode
list through it as one batch.

TRANSACTION PATTERN:
1. Get session from pool
2. Perform database operations
3. Commit on success, rollback on any error
4. Return connection to pool

REPROCESSING A SERIES:
A plain batch insert is not idempotent: the second delivery of the same
series violates the (serieId, season, episode) unique constraint. The sink
supports two write modes:

- replace (default): DELETE the series' rows, then INSERT the batch, inside
  one transaction. Redelivery rewrites the same rows; costs one extra
  statement per message. An empty batch leaves the series with no rows.
- append: INSERT only. Reprocessing fails the whole batch with a
  StoreWriteError and leaves the earlier rows untouched.
"""

import logging
from contextlib import contextmanager
from typing import Generator, Iterable, List, Optional

from sqlalchemy import create_engine, delete, func, insert, select, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from src.enricher.models import Base, EpisodeRow
from src.shared.errors import StoreWriteError
from src.shared.messages import Episode

WRITE_MODES = ("replace", "append")


class DatabaseManager:
    """
    Manages the pooled SQLAlchemy engine and session lifecycle.

    Attributes:
        engine: SQLAlchemy engine with connection pool
        SessionLocal: Session factory for creating database sessions
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 2,
        logger: Optional[logging.Logger] = None,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.database_url = database_url
        self.engine = self._create_engine(database_url, pool_size)
        self.SessionLocal = sessionmaker(autoflush=False, bind=self.engine)

        self.logger.info(
            "Database manager initialized",
            extra={
                "database_url": self.masked_url,
                "pool_size": pool_size,
            },
        )

    @staticmethod
    def _create_engine(database_url: str, pool_size: int) -> Engine:
        return create_engine(
            database_url,
            pool_size=pool_size,
            max_overflow=2,
            pool_recycle=3600,  # Recycle connections after 1 hour
            pool_pre_ping=True,  # Test connection health before use
            echo=False,
        )

    @property
    def masked_url(self) -> str:
        """Database URL with the password hidden, for logging."""
        return make_url(self.database_url).render_as_string(hide_password=True)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Transactional session scope: commit on success, rollback on error.

        Usage:
            >>> with db_manager.get_session() as session:
            ...     session.execute(insert(EpisodeRow), rows)
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(
                "Database error, transaction rolled back",
                extra={"error_type": type(e).__name__},
            )
            raise
        except Exception as e:
            session.rollback()
            self.logger.error(
                "Application error, transaction rolled back",
                extra={"error_type": type(e).__name__},
            )
            raise
        finally:
            session.close()

    def check_health(self) -> bool:
        """Run ``SELECT 1``; False when the database is unreachable."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
                return True
        except SQLAlchemyError:
            self.logger.error("Database health check failed", exc_info=True)
            return False

    def close(self) -> None:
        """Close all pooled connections (shutdown)."""
        self.logger.info("Closing database connection pool")
        self.engine.dispose()


class EpisodeSink:
    """
    Writes a series' episodes into the ``episodes`` table as one batch.

    Attributes:
        db_manager: Engine/session owner
        write_mode: "replace" or "append" (see module docstring)
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        write_mode: str = "replace",
        logger: Optional[logging.Logger] = None,
    ):
        if write_mode not in WRITE_MODES:
            raise ValueError(f"write_mode must be one of {WRITE_MODES}, got {write_mode!r}")
        self.db_manager = db_manager
        self.write_mode = write_mode
        self.logger = logger or logging.getLogger(__name__)

    def ensure_schema(self) -> None:
        """Create the episodes table and its constraints if absent."""
        Base.metadata.create_all(self.db_manager.engine, checkfirst=True)
        self.logger.debug("Episode schema ensured", extra={"table": EpisodeRow.__tablename__})

    def insert_episodes(self, series_id: str, episodes: Iterable[Episode]) -> int:
        """
        Persist all episodes of one series in a single transaction.

        Returns:
            Number of rows inserted

        Raises:
            StoreWriteError: constraint violation or database failure; the
                transaction is rolled back, so no row of the batch remains
        """
        rows = [
            {"serie_id": series_id, "season": item.season, "episode": item.episode}
            for item in episodes
        ]
        if not rows and self.write_mode == "append":
            return 0

        try:
            with self.db_manager.get_session() as session:
                if self.write_mode == "replace":
                    session.execute(delete(EpisodeRow).where(EpisodeRow.serie_id == series_id))
                if rows:
                    session.execute(insert(EpisodeRow), rows)
        except SQLAlchemyError as exc:
            raise StoreWriteError(
                f"Episode batch insert failed: {exc}", store="postgresql", series_id=series_id
            ) from exc

        self.logger.debug(
            "Episode rows written",
            extra={"series_id": series_id, "rows": len(rows), "write_mode": self.write_mode},
        )
        return len(rows)

    def count_episodes(self, series_id: str) -> int:
        with self.db_manager.get_session() as session:
            return session.scalar(
                select(func.count()).select_from(EpisodeRow).where(EpisodeRow.serie_id == series_id)
            )

    def list_episodes(self, series_id: str) -> List[dict]:
        """Stored rows of a series in insertion order."""
        with self.db_manager.get_session() as session:
            rows = session.scalars(
                select(EpisodeRow).where(EpisodeRow.serie_id == series_id).order_by(EpisodeRow.id)
            ).all()
            return [row.to_dict() for row in rows]


def init_database(
    database_url: str,
    pool_size: int = 2,
    write_mode: str = "replace",
    logger: Optional[logging.Logger] = None,
) -> EpisodeSink:
    """
    Connect, verify connectivity and ensure the schema.

    Raises:
        RuntimeError: If the database is unreachable
    """
    db_manager = DatabaseManager(database_url, pool_size=pool_size, logger=logger)

    if not db_manager.check_health():
        db_manager.close()
        raise RuntimeError(f"Failed to connect to database at {db_manager.masked_url}")

    sink = EpisodeSink(db_manager, write_mode=write_mode, logger=logger)
    sink.ensure_schema()
    return sink
