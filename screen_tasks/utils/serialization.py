"""Conversion of records to JSON-compatible data."""

from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any


def to_jsonable(record: Any) -> Any:
    """Dataclasses, enums and datetimes to plain JSON-compatible data.

    Datetimes become ISO-8601 strings and enums their values.
    """
    if is_dataclass(record) and not isinstance(record, type):
        record = asdict(record)
    if isinstance(record, dict):
        return {key: to_jsonable(value) for key, value in record.items()}
    if isinstance(record, (list, tuple)):
        return [to_jsonable(value) for value in record]
    if isinstance(record, datetime):
        return record.isoformat()
    if isinstance(record, Enum):
        return record.value
    return record
