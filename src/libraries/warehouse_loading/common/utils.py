"""
Utility functions for warehouse loading library.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from .exceptions import SchemaMismatchError

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


def normalize_timestamp(value: Any) -> Any:
    """
    Normalize a timestamp-like value so that values from different sources compare.

    ISO-8601 strings are parsed, dates become midnight datetimes and
    timezone-aware datetimes are converted to naive UTC. Other values
    (integer ids, decimals) are returned unchanged.

    Args:
        value: Timestamp, date, ISO string or id value

    Returns:
        Comparable value
    """
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Not an ISO-8601 timestamp: {value!r}")
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return value


def record_columns(records: Sequence[Record]) -> List[str]:
    """
    Get the ordered column list of a batch of records.

    Args:
        records: Input records

    Returns:
        Column names of the first record, in insertion order
    """
    if not records:
        return []
    return list(records[0].keys())


def find_schema_drift(actual_columns: Iterable[str],
                      expected_columns: Iterable[str]) -> Tuple[List[str], List[str]]:
    """
    Compare two column sets.

    Args:
        actual_columns: Columns present on the incoming data
        expected_columns: Columns the destination expects

    Returns:
        Tuple of (missing columns, unexpected columns), both sorted
    """
    actual = set(actual_columns)
    expected = set(expected_columns)
    return sorted(expected - actual), sorted(actual - expected)


def has_null_key(record: Record, key_columns: Sequence[str]) -> bool:
    """Check whether any natural-key column of a record is null or absent."""
    return any(record.get(column) is None for column in key_columns)


def natural_key(record: Record, key_columns: Sequence[str]) -> tuple:
    """Extract the natural key tuple of a record."""
    return tuple(record.get(column) for column in key_columns)


def key_sort_value(key: tuple) -> tuple:
    """
    Build a total ordering value for a natural key.

    Keys may mix types across columns, so each part is ordered by
    (is_null, type name, text) which is stable across runs.
    """
    return tuple(
        (part is None, type(part).__name__, "" if part is None else str(part))
        for part in key
    )


def max_timestamp(values: Iterable[Any]) -> Optional[Any]:
    """Return the largest non-null normalized value, or None."""
    result = None
    for value in values:
        value = normalize_timestamp(value)
        if value is not None and (result is None or value > result):
            result = value
    return result


def log_records_info(records: Sequence[Record], name: str) -> None:
    """
    Log record batch information for debugging.

    Args:
        records: Input records
        name: Name for logging
    """
    logger.info(f"{name} - Rows: {len(records)}, Columns: {len(record_columns(records))}")
    logger.debug(f"{name} - Columns: {record_columns(records)}")


def ensure_uniform_columns(records: Sequence[Record], entity: str = None) -> List[str]:
    """
    Check that every record of a batch carries the same columns.

    Args:
        records: Input records
        entity: Table name for error reporting

    Returns:
        Column names of the batch
    """
    columns = record_columns(records)
    for index, record in enumerate(records):
        missing, unexpected = find_schema_drift(record.keys(), columns)
        if missing or unexpected:
            raise SchemaMismatchError(
                f"Row {index} of {entity or 'extract'} does not match the extract's columns",
                entity=entity,
                missing_columns=missing,
                unexpected_columns=unexpected,
            )
    return columns
