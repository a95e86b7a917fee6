"""
Report Aggregations

Pure aggregation helpers used by the report pipelines: grouped counts over an
enumerated set of grouping keys, ranked top-N views, age-band histograms and
decimal folds over amount fields.

Author: MediConnect Team
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union


NOT_AVAILABLE = "N/A"

# (label, inclusive upper bound); None marks the open-ended top band
AGE_BANDS: Tuple[Tuple[str, Optional[int]], ...] = (
    ('0-17', 17),
    ('18-30', 30),
    ('31-45', 45),
    ('46-60', 60),
    ('60+', None),
)

_CENTS = Decimal('0.01')

Record = Mapping[str, Any]


# ----------------------------------------------------------------------
# Grouping key accessors
# ----------------------------------------------------------------------

def status(record: Record):
    return record['status']


def appointment_type(record: Record):
    return record['appointment_type']


def doctor_name(record: Record):
    return record['doctor']['name']


def payment_method(record: Record):
    return record['payment_method']


def appointment_doctor_name(record: Record):
    return record['appointment']['doctor']['name']


def gender(record: Record):
    return record['gender']


def health_insurance(record: Record):
    return record['health_insurance']


def specialty(record: Record):
    return record['specialty']


def record_status(record: Record):
    return record['record_status']


def diagnosis_primary(record: Record):
    return record['diagnosis_primary']


GROUPING_KEYS: Dict[str, Callable[[Record], Any]] = {
    'status': status,
    'appointment_type': appointment_type,
    'doctor.name': doctor_name,
    'payment_method': payment_method,
    'appointment.doctor.name': appointment_doctor_name,
    'gender': gender,
    'health_insurance': health_insurance,
    'specialty': specialty,
    'record_status': record_status,
    'diagnosis_primary': diagnosis_primary,
}


def resolve_key(record: Record, key: str) -> str:
    """
    Resolve a grouping key for one record.

    A missing or null relation along the way, or a null/empty value, yields
    the "N/A" sentinel.
    """
    accessor = GROUPING_KEYS[key]
    try:
        value = accessor(record)
    except (KeyError, TypeError):
        return NOT_AVAILABLE
    if value is None or value == '':
        return NOT_AVAILABLE
    return str(value)


def group_by_field(records: Iterable[Record], key: str) -> Dict[str, int]:
    """
    Count records per resolved grouping key.

    Args:
        records: Records to group
        key: One of GROUPING_KEYS

    Returns:
        Mapping of resolved key to occurrence count, in first-seen order
    """
    if key not in GROUPING_KEYS:
        raise ValueError(f"Unsupported grouping key: {key}")

    counts: Dict[str, int] = {}
    for record in records:
        resolved = resolve_key(record, key)
        counts[resolved] = counts.get(resolved, 0) + 1
    return counts


def _rank_value(value) -> Union[int, Decimal]:
    if isinstance(value, Mapping):
        return value.get('count', 0)
    return value


def top_n(bucket: Mapping[str, Any], n: int) -> List[Tuple[str, Any]]:
    """
    Highest-valued bucket entries first.

    Ties keep the bucket's insertion order. Count/total buckets rank by count.
    """
    if n <= 0:
        return []
    ranked = sorted(bucket.items(), key=lambda item: _rank_value(item[1]), reverse=True)
    return ranked[:n]


# ----------------------------------------------------------------------
# Ages
# ----------------------------------------------------------------------

def _as_date(value) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def age_from_birth_date(birth_date, today: Optional[date] = None) -> Optional[int]:
    """Completed years since birth_date, or None when the date is missing or unparseable"""
    born = _as_date(birth_date)
    if born is None:
        return None
    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


def age_band(age: Optional[int], bands: Tuple[Tuple[str, Optional[int]], ...] = AGE_BANDS) -> str:
    """Label of the band an age falls into"""
    for label, upper in bands:
        if upper is None:
            return label
        # Unknown ages fall through to the open-ended band
        if age is not None and age <= upper:
            return label
    raise ValueError("Age bands must end with an open-ended band")


def age_histogram(
    records: Iterable[Record],
    age_fn: Callable[[Record], Optional[int]],
    bands: Tuple[Tuple[str, Optional[int]], ...] = AGE_BANDS
) -> Dict[str, int]:
    """Count records per age band; every band is present, even at zero"""
    histogram = {label: 0 for label, _ in bands}
    for record in records:
        histogram[age_band(age_fn(record), bands)] += 1
    return histogram


# ----------------------------------------------------------------------
# Amounts
# ----------------------------------------------------------------------

def parse_amount(value) -> Decimal:
    """Parse an amount field; absent, non-numeric or non-finite values are zero"""
    if value is None or isinstance(value, bool):
        return Decimal(0)
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal(0)
    if not amount.is_finite():
        return Decimal(0)
    return amount


def format_amount(value) -> str:
    """Two-decimal string rendering of an amount"""
    return str(parse_amount(value).quantize(_CENTS, rounding=ROUND_HALF_UP))


def sum_amounts(records: Iterable[Record], field: str) -> Decimal:
    """Decimal fold of one amount field over the records"""
    total = Decimal(0)
    for record in records:
        total += parse_amount(record.get(field))
    return total


def grouped_totals(
    records: Iterable[Record],
    key: str,
    amount_field: str,
    skip_missing: bool = False
) -> Dict[str, Dict[str, Any]]:
    """
    Count and amount total per grouping key.

    Args:
        records: Records to group
        key: One of GROUPING_KEYS
        amount_field: Field summed into each bucket's total
        skip_missing: Leave out records whose key resolves to "N/A"

    Returns:
        Mapping of key to {"count": int, "total": "0.00"}
    """
    if key not in GROUPING_KEYS:
        raise ValueError(f"Unsupported grouping key: {key}")

    buckets: Dict[str, Dict[str, Any]] = {}
    for record in records:
        resolved = resolve_key(record, key)
        if skip_missing and resolved == NOT_AVAILABLE:
            continue
        bucket = buckets.setdefault(resolved, {'count': 0, 'total': Decimal(0)})
        bucket['count'] += 1
        bucket['total'] += parse_amount(record.get(amount_field))

    return {
        name: {'count': bucket['count'], 'total': format_amount(bucket['total'])}
        for name, bucket in buckets.items()
    }
