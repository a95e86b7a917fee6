"""
Report Filters

Filtering utilities for reports: normalizes raw filter input into
ReportFilters, builds immutable query predicates per entity, and renders
predicates as parameterized SQL WHERE clauses.

Author: MediConnect Team
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from .errors import InvalidFilterError
from .models import ReportFilters

logger = logging.getLogger(__name__)


# Map table names to the date column a range filter applies to
DATE_COLUMN_MAP = {
    'appointments': 'appointment_date',
    'payments': 'payment_date',
    'medical_records': 'consultation_date',
}

# Tables that honor the entity (doctor) filter
ENTITY_COLUMN_MAP = {
    'appointments': 'doctor_id',
}

# Tables that honor the status filter
STATUS_COLUMN_MAP = {
    'appointments': 'status',
}

SUPPORTED_OPERATORS = ('eq', 'lt', 'between', 'in', 'not_in', 'not_null')


@dataclass(frozen=True)
class Condition:
    """Single column constraint"""
    column: str
    op: str = 'eq'
    value: Any = None

    def __post_init__(self):
        if self.op not in SUPPORTED_OPERATORS:
            raise ValueError(f"Unsupported operator: {self.op}")


@dataclass(frozen=True)
class Predicate:
    """Conjunction of conditions; an empty predicate matches everything"""
    conditions: Tuple[Condition, ...] = ()

    def where(self, *conditions: Condition) -> 'Predicate':
        """Return a new predicate with extra conditions appended"""
        return Predicate(self.conditions + tuple(conditions))

    def __bool__(self) -> bool:
        return bool(self.conditions)


def normalize_filters(raw: Union[None, Mapping[str, Any], ReportFilters] = None) -> ReportFilters:
    """
    Validate and shape raw filter input.

    Recognized keys pass through, unknown keys are ignored and missing keys
    impose no constraint. Empty strings count as missing.

    Raises:
        InvalidFilterError: a value is malformed (bad date, reversed range)
    """
    if raw is None:
        return ReportFilters()
    if isinstance(raw, ReportFilters):
        return raw

    cleaned = {key: value for key, value in dict(raw).items() if value not in (None, '')}
    try:
        filters = ReportFilters.model_validate(cleaned)
    except ValidationError as e:
        raise InvalidFilterError(f"Invalid report filters: {e.errors(include_url=False)}") from e

    if (filters.date_from is None) != (filters.date_to is None):
        logger.debug("Single date bound supplied; range filter requires both date_from and date_to")

    return filters


def has_date_range(filters: ReportFilters) -> bool:
    """A range filter is active only when both bounds are present"""
    return filters.date_from is not None and filters.date_to is not None


def date_range_condition(table: str, filters: ReportFilters) -> Optional[Condition]:
    """Inclusive BETWEEN condition on the table's date column, if a range is active"""
    if not has_date_range(filters):
        return None
    date_col = DATE_COLUMN_MAP.get(table, 'created_at')
    return Condition(date_col, 'between', (filters.date_from, filters.date_to))


def build_predicate(
    table: str,
    filters: ReportFilters,
    base_conditions: Optional[Iterable[Condition]] = None
) -> Predicate:
    """
    Build the predicate for a report query against one table.

    Args:
        table: Table the predicate applies to (selects the date/entity/status columns)
        filters: Normalized filters
        base_conditions: Conditions the report always applies (e.g. active only)

    Returns:
        Predicate combining base conditions with the applicable filters
    """
    conditions: List[Condition] = list(base_conditions or [])

    range_condition = date_range_condition(table, filters)
    if range_condition:
        conditions.append(range_condition)

    if filters.entity_id and table in ENTITY_COLUMN_MAP:
        conditions.append(Condition(ENTITY_COLUMN_MAP[table], 'eq', filters.entity_id))

    if filters.status and table in STATUS_COLUMN_MAP:
        conditions.append(Condition(STATUS_COLUMN_MAP[table], 'eq', filters.status))

    return Predicate(tuple(conditions))


def build_where_clause(predicate: Optional[Predicate], prefix: str = "WHERE") -> Tuple[str, List[Any]]:
    """
    Render a predicate as a parameterized SQL fragment.

    Args:
        predicate: Predicate to render (None or empty renders nothing)
        prefix: Keyword placed before the conditions

    Returns:
        Tuple of (where_clause, params_list)
        Example: ("WHERE status = ? AND appointment_date BETWEEN ? AND ?", ["completed", "2025-01-01", "2025-01-31"])
    """
    if not predicate:
        return "", []

    clauses = []
    params: List[Any] = []

    for condition in predicate.conditions:
        if condition.op == 'eq':
            clauses.append(f"{condition.column} = ?")
            params.append(condition.value)
        elif condition.op == 'lt':
            clauses.append(f"{condition.column} < ?")
            params.append(condition.value)
        elif condition.op == 'between':
            low, high = condition.value
            clauses.append(f"{condition.column} BETWEEN ? AND ?")
            params.extend([low, high])
        elif condition.op == 'in':
            values = list(condition.value)
            if not values:
                clauses.append("1 = 0")
                continue
            placeholders = ", ".join("?" for _ in values)
            clauses.append(f"{condition.column} IN ({placeholders})")
            params.extend(values)
        elif condition.op == 'not_in':
            values = list(condition.value)
            if not values:
                clauses.append("1 = 1")
                continue
            placeholders = ", ".join("?" for _ in values)
            clauses.append(f"{condition.column} NOT IN ({placeholders})")
            params.extend(values)
        elif condition.op == 'not_null':
            clauses.append(f"{condition.column} IS NOT NULL")

    return f"{prefix} {' AND '.join(clauses)}", params
