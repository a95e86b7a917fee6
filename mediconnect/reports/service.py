"""
Report Service (Data Access Layer)

Data access layer for report queries implementing the fetch contract the
report pipelines depend on: predicate-driven, optionally joined, sorted reads
plus SUM and COUNT aggregates. Related records are loaded with one batched
lookup per relation and attached as nested dictionaries.

Author: MediConnect Team
"""

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..database_schema import get_table_columns
from .filters import Condition, Predicate, build_where_clause

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Keys per batched relation lookup; stays under SQLite's bound-parameter limit
_JOIN_BATCH_SIZE = 500

# Direction suffix accepted in order specs, e.g. ("appointment_date", "DESC")
_DIRECTIONS = ("ASC", "DESC")


@dataclass(frozen=True)
class Join:
    """
    Related entity to load alongside the parent records.

    relation: key under which the related record is attached
    entity: related table
    foreign_key: column on the parent holding the related id
    attributes: projection of the related record (empty = all columns)
    joins: nested relations of the related record
    predicate: constraint on the related record
    required: when True, parents without a matching related record are excluded
    """
    relation: str
    entity: str
    foreign_key: str
    attributes: Tuple[str, ...] = ()
    joins: Tuple['Join', ...] = ()
    predicate: Optional[Predicate] = None
    required: bool = False


class ReportService:
    """Base service for executing report queries"""

    def __init__(self, db_manager):
        self.db_manager = db_manager

    @contextmanager
    def get_connection(self):
        """Get database connection from pool"""
        with self.db_manager.pool.get_connection() as conn:
            yield conn

    def execute_query(self, query: str, params: List[Any] = None) -> List[Tuple]:
        """
        Execute a query and return results.

        Args:
            query: SQL query string
            params: Query parameters

        Returns:
            List of result rows
        """
        params = params or []
        with self.get_connection() as conn:
            cursor = conn.execute(query, params)
            return cursor.fetchall()

    def execute_single(self, query: str, params: List[Any] = None) -> Optional[Tuple]:
        """Execute query and return single result"""
        params = params or []
        with self.get_connection() as conn:
            cursor = conn.execute(query, params)
            return cursor.fetchone()

    def format_table_data(self, results: List[Tuple], columns: List[str]) -> List[Dict[str, Any]]:
        """
        Format query results as list of dictionaries.

        Args:
            results: Query results
            columns: Column names

        Returns:
            List of dictionaries with column names as keys
        """
        return [
            {col: row[i] for i, col in enumerate(columns)}
            for row in results
        ]

    # ------------------------------------------------------------------
    # Fetch contract
    # ------------------------------------------------------------------

    def fetch(
        self,
        entity: str,
        predicate: Optional[Predicate] = None,
        projection: Sequence[str] = (),
        joins: Sequence[Join] = (),
        order: Sequence[Tuple[str, str]] = ()
    ) -> List[Dict[str, Any]]:
        """
        Read records of one entity.

        Args:
            entity: Table to read
            predicate: Row constraint (None matches all rows)
            projection: Columns to return (empty = all columns)
            joins: Related entities to attach to each record
            order: (column, direction) pairs

        Returns:
            Records as dictionaries, related records nested under their relation
        """
        columns = self._select_columns(entity, projection, joins)
        where_clause, params = self._where_with_joins(entity, predicate, joins)
        order_clause = self._order_clause(entity, order)

        query = f"SELECT {', '.join(columns)} FROM {entity} {where_clause} {order_clause}".strip()
        logger.debug(f"fetch {entity}: {query} {params}")

        rows = self.execute_query(query, params)
        records = self.format_table_data(rows, columns)
        self._attach_joins(records, joins)
        return records

    def sum(
        self,
        entity: str,
        field: str,
        predicate: Optional[Predicate] = None,
        joins: Sequence[Join] = ()
    ) -> Decimal:
        """Sum one numeric column over the matching rows (0 when none match)"""
        self._check_column(entity, field)
        where_clause, params = self._where_with_joins(entity, predicate, joins)
        query = f"SELECT COALESCE(SUM({field}), 0) FROM {entity} {where_clause}".strip()
        result = self.execute_single(query, params)
        total = result[0] if result else 0
        return Decimal(str(total or 0))

    def count(self, entity: str, predicate: Optional[Predicate] = None) -> int:
        """Count the matching rows"""
        where_clause, params = self._where_with_joins(entity, predicate, ())
        query = f"SELECT COUNT(*) FROM {entity} {where_clause}".strip()
        result = self.execute_single(query, params)
        return int(result[0]) if result else 0

    # ------------------------------------------------------------------
    # Query building
    # ------------------------------------------------------------------

    def _check_entity(self, entity: str):
        if not get_table_columns(entity):
            raise ValueError(f"Unknown entity: {entity}")

    def _check_column(self, entity: str, column: str):
        self._check_entity(entity)
        if not _IDENTIFIER.match(column) or column not in get_table_columns(entity):
            raise ValueError(f"Unknown column for {entity}: {column}")

    def _select_columns(self, entity: str, projection: Sequence[str], joins: Sequence[Join]) -> List[str]:
        """Projection plus the id and the foreign keys the joins need"""
        self._check_entity(entity)
        if not projection:
            return list(get_table_columns(entity))

        columns = ['id'] if 'id' not in projection else []
        columns.extend(projection)
        for join in joins:
            if join.foreign_key not in columns:
                columns.append(join.foreign_key)

        for column in columns:
            self._check_column(entity, column)
        return columns

    def _where_with_joins(
        self,
        entity: str,
        predicate: Optional[Predicate],
        joins: Sequence[Join]
    ) -> Tuple[str, List[Any]]:
        """WHERE clause for the parent, restricted by required joins as subqueries"""
        self._check_entity(entity)
        for condition in (predicate.conditions if predicate else ()):
            self._check_column(entity, condition.column)

        where_clause, params = build_where_clause(predicate)

        subqueries = []
        for join in joins:
            if not join.required:
                continue
            self._check_column(entity, join.foreign_key)
            sub_where, sub_params = self._where_with_joins(join.entity, join.predicate, join.joins)
            subquery = " ".join(part for part in (f"SELECT id FROM {join.entity}", sub_where) if part)
            subqueries.append(f"{join.foreign_key} IN ({subquery})")
            params.extend(sub_params)

        if subqueries:
            joined = " AND ".join(subqueries)
            where_clause = f"{where_clause} AND {joined}" if where_clause else f"WHERE {joined}"

        return where_clause, params

    def _order_clause(self, entity: str, order: Sequence[Tuple[str, str]]) -> str:
        if not order:
            return ""
        parts = []
        for column, direction in order:
            self._check_column(entity, column)
            direction = direction.upper()
            if direction not in _DIRECTIONS:
                raise ValueError(f"Invalid sort direction: {direction}")
            parts.append(f"{column} {direction}")
        return f"ORDER BY {', '.join(parts)}"

    def _attach_joins(self, records: List[Dict[str, Any]], joins: Sequence[Join]):
        """Load each relation with one batched lookup and nest it into the records"""
        for join in joins:
            keys = sorted({record[join.foreign_key] for record in records if record.get(join.foreign_key) is not None})
            related_by_id: Dict[Any, Dict[str, Any]] = {}

            base_predicate = join.predicate or Predicate()
            for start in range(0, len(keys), _JOIN_BATCH_SIZE):
                batch = tuple(keys[start:start + _JOIN_BATCH_SIZE])
                related = self.fetch(
                    join.entity,
                    base_predicate.where(Condition('id', 'in', batch)),
                    projection=join.attributes,
                    joins=join.joins
                )
                related_by_id.update((item['id'], item) for item in related)

            for record in records:
                record[join.relation] = related_by_id.get(record.get(join.foreign_key))
