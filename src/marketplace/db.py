import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from marketplace.core.config import DatabaseConfig
from marketplace.core.exceptions import (
    BaseAPIException,
    DatabaseError,
    DependencyError,
    RequestTimeoutError,
    TransactionError,
)
from marketplace.utils.timeouts import Deadline

logger = logging.getLogger(__name__)

Base = declarative_base()


QUERY_CANCELED = "57014"


def translate_db_error(
    error: SQLAlchemyError,
    operation: str,
    write: bool = True,
    deadline: Optional[Deadline] = None,
) -> BaseAPIException:
    """
    Map a SQLAlchemy failure onto the API taxonomy.

    A statement cancelled by statement_timeout is a request timeout. Pool
    exhaustion and lost connectivity are retryable dependency failures;
    anything else is a failed transaction (writes) or a failed query (reads).
    """
    if getattr(getattr(error, "orig", None), "pgcode", None) == QUERY_CANCELED:
        return RequestTimeoutError(operation, deadline.timeout_seconds if deadline else 0)
    if isinstance(error, (PoolTimeoutError, OperationalError, InterfaceError)):
        return DependencyError("database", f"{operation}: {error}")
    if write:
        return TransactionError(f"{operation}: {error}", operation)
    return DatabaseError(f"{operation}: {error}", operation)


class Database:
    """
    Owns the SQLAlchemy engine and its bounded connection pool.

    One instance is built per application at startup and handed to the
    repositories that need it.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.engine: Engine = self._create_engine(config)

    @staticmethod
    def _create_engine(config: DatabaseConfig) -> Engine:
        if config.url.startswith("sqlite"):
            # Single shared connection so in-memory databases survive across checkouts
            return create_engine(
                config.url,
                echo=config.echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )

        return create_engine(
            config.url,
            echo=config.echo,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_timeout=config.pool_timeout,
            pool_recycle=config.pool_recycle,
            pool_pre_ping=True,
        )

    @property
    def is_postgres(self) -> bool:
        return self.engine.dialect.name == "postgresql"

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        """Checkout a pooled connection for reads"""
        try:
            conn = self.engine.connect()
        except SQLAlchemyError as e:
            logger.error(f"Could not acquire database connection: {e}")
            raise translate_db_error(e, "connect") from e

        with conn:
            yield conn

    @contextmanager
    def transaction(self, deadline: Optional[Deadline] = None) -> Iterator[Connection]:
        """
        Open a transactional scope.

        Commits when the block exits normally; any exception raised inside
        the block (timeouts included) rolls the whole scope back before it
        propagates.
        """
        if deadline is not None:
            deadline.check("begin transaction")

        with self.connect() as conn:
            with conn.begin():
                if deadline is not None and self.is_postgres:
                    conn.execute(
                        text("SELECT set_config('statement_timeout', :ms, true)"),
                        {"ms": str(max(1, int(deadline.remaining * 1000)))},
                    )
                yield conn

    def ping(self) -> bool:
        """Liveness check used by /health"""
        try:
            with self.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, DependencyError) as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    def create_all(self) -> None:
        # Import for side effect: registers every table on Base.metadata
        import marketplace.tables  # noqa: F401

        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
