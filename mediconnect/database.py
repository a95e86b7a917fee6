"""
Database Layer

Database layer implementing the Repository Pattern with connection pooling.
Manages schema creation, table loading and connection lifecycle for the
clinic store that the report engine reads from.

Author: MediConnect Team
"""

import sqlite3
import pandas as pd
import logging
import threading
from pathlib import Path
from typing import List, Dict, Optional
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from dataclasses import dataclass

from .config import config
from .database_schema import get_schema_sql, TABLE_COLUMNS

# Register adapters for Python 3.12+ compatibility
sqlite3.register_adapter(datetime, lambda dt: dt.isoformat())
sqlite3.register_adapter(date, lambda d: d.isoformat())
sqlite3.register_adapter(Decimal, lambda d: str(d))
sqlite3.register_adapter(pd.Timestamp, lambda ts: ts.isoformat())


@dataclass
class LoadResult:
    """Outcome of loading rows into a table"""
    success: bool
    row_count: int = 0
    error_message: Optional[str] = None


class DatabaseConnectionPool:
    """Thread-safe SQLite connection pool"""

    def __init__(self, db_path: Path, max_connections: int = 10, timeout: float = 30.0,
                 journal_mode: str = "WAL"):
        self.db_path = db_path
        self.max_connections = max_connections
        self.timeout = timeout
        self.journal_mode = journal_mode
        self._pool: List[sqlite3.Connection] = []
        self._pool_lock = threading.Lock()
        self._created_connections = 0
        self.logger = logging.getLogger(self.__class__.__name__)

        db_path.parent.mkdir(parents=True, exist_ok=True)

    def _create_connection(self) -> sqlite3.Connection:
        """Create a new database connection"""
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.timeout,
            check_same_thread=False
        )

        conn.row_factory = sqlite3.Row  # Enable column access by name
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute(f"PRAGMA journal_mode = {self.journal_mode}")
        conn.execute("PRAGMA synchronous = NORMAL")

        return conn

    @contextmanager
    def get_connection(self):
        """Get a connection from the pool; a temporary one when the pool is exhausted"""
        conn = None
        temp_connection = False
        try:
            with self._pool_lock:
                if self._pool:
                    conn = self._pool.pop()
                elif self._created_connections < self.max_connections:
                    conn = self._create_connection()
                    self._created_connections += 1

            if conn is None:
                conn = self._create_connection()
                temp_connection = True

            yield conn

        except Exception as e:
            self.logger.error(f"Database error: {e}")
            if conn:
                try:
                    conn.rollback()
                except sqlite3.Error as rollback_error:
                    self.logger.warning(f"Rollback failed: {rollback_error}")
            raise
        finally:
            if conn:
                if not temp_connection:
                    with self._pool_lock:
                        self._pool.append(conn)
                else:
                    conn.close()

    def close_all(self):
        """Close all connections in the pool"""
        with self._pool_lock:
            for conn in self._pool:
                try:
                    conn.close()
                except sqlite3.Error as e:
                    self.logger.warning(f"Error closing connection: {e}")
            self._pool.clear()
            self._created_connections = 0


class Repository:
    """Loads rows into one clinic table"""

    def __init__(self, connection_pool: DatabaseConnectionPool, table_name: str):
        self.pool = connection_pool
        self.table_name = table_name
        self.logger = logging.getLogger(f"{self.__class__.__name__}[{table_name}]")

    def get_schema(self) -> List[str]:
        """Get expected column names for this table"""
        return TABLE_COLUMNS.get(self.table_name, [])

    def insert_dataframe(self, df: pd.DataFrame) -> LoadResult:
        """
        Append DataFrame rows to the table.

        Raises:
            ValueError: the frame carries columns the table does not declare
        """
        if df.empty:
            return LoadResult(success=True)

        unknown = [col for col in df.columns if col not in self.get_schema()]
        if unknown:
            raise ValueError(f"Unknown columns for {self.table_name}: {', '.join(unknown)}")

        try:
            with self.pool.get_connection() as conn:
                df.to_sql(
                    self.table_name,
                    conn,
                    if_exists='append',
                    index=False,
                    method='multi',
                    chunksize=50
                )
                conn.commit()

            self.logger.info(f"Inserted {len(df)} records into {self.table_name}")
            return LoadResult(success=True, row_count=len(df))

        except (sqlite3.Error, ValueError) as e:
            error_msg = f"Insert failed: {str(e)}"
            self.logger.error(error_msg)
            return LoadResult(success=False, error_message=error_msg)


class DatabaseManager:
    """
    Main database manager with repository pattern
    Owns the connection pool and one repository per clinic table
    """

    def __init__(self, db_path: Path = None):
        self.db_path = Path(db_path) if db_path else config.database.path
        self.pool = DatabaseConnectionPool(
            self.db_path,
            max_connections=config.database.max_connections,
            timeout=config.database.connection_timeout,
            journal_mode=config.database.journal_mode
        )

        self.logger = logging.getLogger(self.__class__.__name__)

        self._table_repos: Dict[str, Repository] = {
            table_name: Repository(self.pool, table_name)
            for table_name in TABLE_COLUMNS
        }

        self.initialize_database()

    def get_repository(self, table_name: str) -> Repository:
        """Get repository for a specific table"""
        if table_name not in self._table_repos:
            raise KeyError(f"Unknown table: {table_name}")
        return self._table_repos[table_name]

    def initialize_database(self):
        """Create the clinic schema if it does not exist"""
        try:
            with self.pool.get_connection() as conn:
                statement_count = 0
                for statement in get_schema_sql().split(';'):
                    statement = statement.strip()
                    if statement:
                        conn.execute(statement)
                        statement_count += 1

                conn.commit()
                self.logger.info(f"Database schema initialized ({statement_count} statements executed)")

        except sqlite3.Error as e:
            self.logger.error(f"Failed to initialize database: {e}", exc_info=True)
            raise

    def load_table(self, table_name: str, df: pd.DataFrame) -> LoadResult:
        """Load a DataFrame into one of the clinic tables"""
        return self.get_repository(table_name).insert_dataframe(df)

    def close(self):
        """Close all database connections and cleanup resources"""
        self.pool.close_all()
        self.logger.info("Database manager closed - all connections released")


_db_manager: Optional[DatabaseManager] = None
_db_manager_lock = threading.Lock()


def get_database_manager() -> DatabaseManager:
    """Get the global database manager instance"""
    global _db_manager
    with _db_manager_lock:
        if _db_manager is None:
            _db_manager = DatabaseManager()
        return _db_manager
