from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Union

from sqlalchemy.types import TypeEngine

from utils.errors import InvalidParameter

ALL_FIELDS = "*"

RESERVED = frozenset({"fields", "sort", "q", "page", "page_count"})


class Direction(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortKey:
    column: str
    direction: Direction = Direction.ASC


def select_fields(fields: Optional[str]) -> Union[List[str], str]:
    """Column projection from a ``fields`` CSV; ``ALL_FIELDS`` when absent."""
    if not fields or not fields.strip():
        return ALL_FIELDS
    return [x.strip() for x in fields.split(",") if x.strip()]


def parse_sorts(sort: Optional[str]) -> List[SortKey]:
    if not sort:
        return []
    sorts = []
    for token in sort.split(","):
        token = token.strip()
        if not token:
            continue
        if token.startswith("-"):
            sorts.append(SortKey(token[1:], Direction.DESC))
        else:
            sorts.append(SortKey(token, Direction.ASC))
    return sorts


def get_filters(query: Mapping[str, str], reserved: Iterable[str] = RESERVED) -> dict:
    """Equality filters: every query parameter that is not reserved."""
    reserved = set(reserved)
    return {k: v for k, v in query.items() if k not in reserved}


def _parse_int(name: str, value: Optional[str], default: int, minimum: int) -> int:
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidParameter(name, value, f"an integer >= {minimum}")
    if number < minimum:
        raise InvalidParameter(name, value, f"an integer >= {minimum}")
    return number


def parse_page(value: Optional[str]) -> int:
    return _parse_int("page", value, 0, 0)


def parse_page_count(value: Optional[str], default: int) -> int:
    return _parse_int("page_count", value, default, 1)


_TRUE = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE = frozenset({"0", "false", "f", "no", "n", "off"})


def coerce_value(name: str, value: Any, type_: Optional[TypeEngine]) -> Any:
    """Convert a path, query or body value to the Python type of its column.

    Strings from the URI are handed to the driver as the column's type
    expects them; untyped columns and already typed values pass through.
    """
    if value is None or type_ is None:
        return value
    try:
        python_type = type_.python_type
    except NotImplementedError:
        return value
    if isinstance(value, python_type):
        return value

    if python_type is bool:
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise InvalidParameter(name, value, "a boolean")
    try:
        if python_type in (datetime, date, time):
            return python_type.fromisoformat(str(value))
        if python_type in (int, float, Decimal):
            return python_type(value)
    except (TypeError, ValueError, ArithmeticError):
        raise InvalidParameter(name, value, f"a valid {python_type.__name__}")
    return value
