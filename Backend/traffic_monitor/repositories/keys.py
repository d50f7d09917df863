"""
Natural-key helpers shared by repository implementations
"""
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Sequence, Tuple
from traffic_monitor.errors import StorageError


def validate_key_fields(key_fields: Sequence[str]) -> Tuple[str, ...]:
    """Reject empty or duplicated conflict targets"""
    fields = tuple(key_fields)
    if not fields:
        raise StorageError("Upsert requires at least one key field")
    if len(set(fields)) != len(fields):
        raise StorageError(f"Duplicate key fields in {fields}")
    return fields


def _normalize_value(value: Any) -> Any:
    # Naive datetimes are UTC; key equality must not depend on tzinfo representation
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return value


def build_key(record: Dict, key_fields: Sequence[str]) -> Tuple:
    """
    Build the natural key tuple of a record

    Raises:
        StorageError: if any key field is missing or null
    """
    missing = [name for name in key_fields if record.get(name) is None]
    if missing:
        raise StorageError(f"Record is missing key field(s) {missing}: {record!r}")
    return tuple(_normalize_value(record[name]) for name in key_fields)


def key_filter(record: Dict, key_fields: Sequence[str]) -> Dict:
    """Equality filter selecting the row with the record's natural key"""
    return dict(zip(key_fields, build_key(record, key_fields)))


def split_record(record: Dict, key_fields: Sequence[str]) -> Tuple[Dict, Dict]:
    """Split a record into (key part, non-key part)"""
    key_part = key_filter(record, key_fields)
    rest = {name: value for name, value in record.items() if name not in key_part}
    return key_part, rest


def build_keys(records: Iterable[Dict], key_fields: Sequence[str]) -> List[Tuple]:
    """Key every record up front so a bad record fails the batch before any write"""
    fields = validate_key_fields(key_fields)
    return [build_key(record, fields) for record in records]


def dedupe_by_key(records: Iterable[Dict], key_fields: Sequence[str]) -> List[Dict]:
    """
    Collapse records sharing a natural key; the last one wins

    Output keeps the position of each key's first occurrence.
    """
    fields = validate_key_fields(key_fields)
    by_key: Dict[Tuple, Dict] = {}
    for record in records:
        by_key[build_key(record, fields)] = record
    return list(by_key.values())
