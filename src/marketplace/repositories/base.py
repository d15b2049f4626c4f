from abc import ABC, abstractmethod
from typing import TypeVar, Generic, Optional, List, Any, Dict
from contextlib import contextmanager
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import Executable
from marketplace.db import Database, translate_db_error
import logging

T = TypeVar('T')

logger = logging.getLogger(__name__)


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base repository providing common database operations.

    Every helper takes an optional connection: pass the connection of an
    open Database.transaction() to run inside that transaction, or leave it
    out to run on a fresh pooled connection.
    """

    def __init__(self, database: Database):
        self.db = database

    @contextmanager
    def get_db_connection(self, conn: Optional[Connection] = None):
        """Reuse the caller's connection or check one out of the pool"""
        if conn is not None:
            yield conn
            return
        with self.db.connect() as own:
            yield own

    def execute_query(
        self,
        statement: Executable,
        params: Optional[Dict[str, Any]] = None,
        conn: Optional[Connection] = None
    ) -> List[Dict[str, Any]]:
        """
        Execute SELECT statement and return results as list of dictionaries

        Raises:
            DatabaseError: When query execution fails
            DependencyError: When the database is unreachable or the pool is exhausted
        """
        try:
            with self.get_db_connection(conn) as c:
                result = c.execute(statement, params or {})
                return [dict(row._mapping) for row in result]
        except SQLAlchemyError as e:
            logger.error(f"Query execution failed: {statement}, Error: {str(e)}")
            raise translate_db_error(e, "SELECT", write=False) from e

    def execute_single_query(
        self,
        statement: Executable,
        params: Optional[Dict[str, Any]] = None,
        conn: Optional[Connection] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Execute query expecting single result

        Returns:
            Single row dictionary or None if not found
        """
        try:
            with self.get_db_connection(conn) as c:
                result = c.execute(statement, params or {}).first()
                return dict(result._mapping) if result else None
        except SQLAlchemyError as e:
            logger.error(f"Single query execution failed: {statement}, Error: {str(e)}")
            raise translate_db_error(e, "SELECT", write=False) from e

    def execute_scalar(
        self,
        statement: Executable,
        params: Optional[Dict[str, Any]] = None,
        conn: Optional[Connection] = None
    ) -> Any:
        """
        Execute query returning single scalar value (COUNT, SUM, etc.)
        """
        try:
            with self.get_db_connection(conn) as c:
                return c.execute(statement, params or {}).scalar()
        except SQLAlchemyError as e:
            logger.error(f"Scalar query execution failed: {statement}, Error: {str(e)}")
            raise translate_db_error(e, "SELECT", write=False) from e

    def execute_batch_returning(
        self,
        statement: Executable,
        params_list: List[Dict[str, Any]],
        conn: Connection
    ) -> List[Any]:
        """
        Execute a batch INSERT ... RETURNING inside the caller's transaction

        Returns:
            The returned scalar (usually the generated id) of every row, in
            the same order as params_list
        """
        if not params_list:
            return []
        return list(conn.execute(statement, params_list).scalars().all())

    def execute_batch_command(
        self,
        statement: Executable,
        params_list: List[Dict[str, Any]],
        conn: Connection
    ) -> int:
        """
        Execute a batch INSERT/UPDATE inside the caller's transaction

        Returns:
            Total number of affected rows
        """
        if not params_list:
            return 0
        return conn.execute(statement, params_list).rowcount

    # Abstract methods that concrete repositories must implement
    @abstractmethod
    def get_by_id(self, entity_id: int) -> Optional[T]:
        """Get entity by ID"""
        pass
