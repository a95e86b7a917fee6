"""
================================================================================
MediConnect Reports - Database Module Unit Tests
================================================================================
Description:
    Unit tests for the mediconnect.database module, testing the connection
    pool, table repositories and the database manager used by the report
    service.

Test Coverage:
    - DatabaseConnectionPool: connections, reuse, concurrency
    - Repository: DataFrame loading, column validation
    - DatabaseManager: schema initialization
================================================================================
"""
import pytest
import pandas as pd
import sqlite3
from concurrent.futures import ThreadPoolExecutor

from mediconnect.database import (
    DatabaseConnectionPool,
    DatabaseManager,
    LoadResult,
)
from mediconnect.database_schema import TABLE_COLUMNS, get_table_columns


def row_count(db_manager, table):
    with db_manager.pool.get_connection() as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


class TestDatabaseConnectionPool:
    """Test database connection pool functionality"""

    @pytest.fixture
    def pool(self, temp_dir):
        pool = DatabaseConnectionPool(temp_dir / 'pool.db', max_connections=2)
        yield pool
        pool.close_all()

    def test_pool_initialization(self, pool, temp_dir):
        """Test connection pool can be initialized"""
        assert pool.db_path == temp_dir / 'pool.db'
        assert pool.max_connections == 2

    def test_get_connection(self, pool):
        """Connections use row access by name"""
        with pool.get_connection() as conn:
            row = conn.execute("SELECT 1 AS value").fetchone()

        assert row['value'] == 1

    def test_connection_reused(self, pool):
        """Returned connections go back to the pool"""
        with pool.get_connection() as first:
            pass
        with pool.get_connection() as second:
            pass

        assert first is second

    def test_errors_propagate(self, pool):
        """SQL errors are re-raised to the caller"""
        with pytest.raises(sqlite3.OperationalError):
            with pool.get_connection() as conn:
                conn.execute("SELECT * FROM missing_table")

    def test_exhausted_pool_serves_temporary_connection(self, pool):
        """Borrowing past the pool size still yields a working connection"""
        with pool.get_connection() as first, pool.get_connection() as second:
            with pool.get_connection() as extra:
                assert extra is not first and extra is not second
                assert extra.execute("SELECT 3").fetchone()[0] == 3

        with pool.get_connection() as reused:
            assert reused in (first, second)

    def test_concurrent_access(self, pool):
        """Pool serves more threads than its size"""
        def read(_):
            with pool.get_connection() as conn:
                return conn.execute("SELECT 2").fetchone()[0]

        with ThreadPoolExecutor(max_workers=6) as executor:
            results = list(executor.map(read, range(12)))

        assert results == [2] * 12


class TestDatabaseManager:
    """Test database manager and repositories"""

    @pytest.fixture
    def db_manager(self, temp_dir):
        manager = DatabaseManager(temp_dir / 'manager.db')
        yield manager
        manager.close()

    def test_schema_initialized(self, db_manager):
        """All clinic tables exist and start empty"""
        for table in TABLE_COLUMNS:
            assert row_count(db_manager, table) == 0

    def test_schema_columns_match(self, db_manager):
        """Created tables carry the declared columns"""
        with db_manager.pool.get_connection() as conn:
            for table, columns in TABLE_COLUMNS.items():
                actual = [row['name'] for row in conn.execute(f"PRAGMA table_info({table})")]
                assert actual == columns

    def test_initialize_idempotent(self, db_manager, sample_health_insurances_data):
        """Re-running schema creation keeps existing rows"""
        db_manager.load_table('health_insurances', sample_health_insurances_data)

        db_manager.initialize_database()

        assert row_count(db_manager, 'health_insurances') == 2

    def test_load_table(self, db_manager, sample_health_insurances_data):
        """DataFrames are appended to the table"""
        result = db_manager.load_table('health_insurances', sample_health_insurances_data)

        assert isinstance(result, LoadResult)
        assert result.success
        assert result.row_count == 2
        assert row_count(db_manager, 'health_insurances') == 2

    def test_load_users(self, db_manager, sample_users_data):
        result = db_manager.load_table('users', sample_users_data)

        assert result.success
        assert row_count(db_manager, 'users') == 3

    def test_load_empty_frame(self, db_manager):
        """Empty frames insert nothing"""
        result = db_manager.load_table('patients', pd.DataFrame())

        assert result.success
        assert result.row_count == 0

    def test_unknown_columns_rejected(self, db_manager):
        """Columns outside the schema are refused"""
        df = pd.DataFrame({'id': ['x'], 'name': ['Unimed'], 'nickname': ['U']})

        with pytest.raises(ValueError, match='nickname'):
            db_manager.load_table('health_insurances', df)

    def test_unknown_table(self, db_manager):
        """Only schema tables have repositories"""
        with pytest.raises(KeyError):
            db_manager.get_repository('invoices')


class TestSchemaColumns:
    """Test schema column lookup"""

    def test_known_table(self):
        assert 'appointment_date' in get_table_columns('appointments')

    def test_users_table(self):
        assert get_table_columns('users') == ['id', 'name', 'email', 'role', 'is_active']

    def test_unknown_table(self):
        assert get_table_columns('sqlite_master') == []
