"""Encode Python row values as PostgreSQL literals.

Values arrive as the asyncpg driver decodes them.  The only escaping rule
for text is doubling the single quote.
"""

import json
import math
import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any

from asyncpg.types import (
    BitString,
    Box,
    Circle,
    Line,
    LineSegment,
    Path,
    Point,
    Range,
)


def quote_literal(text: str) -> str:
    """Quote text as a SQL string literal."""
    return "'" + text.replace("'", "''") + "'"


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _point_text(point: Point) -> str:
    return f"({point[0]!r},{point[1]!r})"


def _geometry_text(value: Any) -> str | None:
    """Text form of an asyncpg geometric value, or None for anything else."""
    # Point, Box, LineSegment, Line and Circle are tuple subclasses
    if isinstance(value, Point):
        return _point_text(value)
    if isinstance(value, Box):
        return f"({_point_text(value[0])},{_point_text(value[1])})"
    if isinstance(value, LineSegment):
        return f"[{_point_text(value[0])},{_point_text(value[1])}]"
    if isinstance(value, Line):
        return "{" + ",".join(repr(v) for v in value) + "}"
    if isinstance(value, Circle):
        return f"<{_point_text(value[0])},{value[1]!r}>"
    # Polygon is a closed Path
    if isinstance(value, Path):
        points = ",".join(_point_text(p) for p in value.points)
        return f"({points})" if value.is_closed else f"[{points}]"
    return None


def _range_bound(bound: Any) -> str:
    if bound is None:
        return ""
    if isinstance(bound, (int, float, Decimal)) and not isinstance(bound, bool):
        return str(bound)
    text = bound.isoformat() if isinstance(bound, (datetime, date, time)) else str(bound)
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _range_text(value: Range) -> str:
    if value.isempty:
        return "empty"
    # An unbounded side is always exclusive
    lower = "[" if value.lower_inc and value.lower is not None else "("
    upper = "]" if value.upper_inc and value.upper is not None else ")"
    return f"{lower}{_range_bound(value.lower)},{_range_bound(value.upper)}{upper}"


def to_literal(value: Any) -> str:
    """Encode one value as a SQL literal.

    Example:
        >>> to_literal(None)
        'NULL'
        >>> to_literal("O'Brien")
        "'O''Brien'"
        >>> to_literal([1, 2])
        'ARRAY[1, 2]'
    """
    if value is None:
        return "NULL"
    # bool is a subclass of int
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value):
            return repr(value)
        return quote_literal(str(value).replace("inf", "Infinity").replace("nan", "NaN"))
    if isinstance(value, Decimal):
        if value.is_finite():
            return str(value)
        return quote_literal("NaN" if value.is_nan() else str(value))
    if isinstance(value, (datetime, date, time)):
        return quote_literal(value.isoformat())
    if isinstance(value, timedelta):
        return quote_literal(f"{value.total_seconds()} seconds")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return quote_literal("\\x" + bytes(value).hex())
    if isinstance(value, dict):
        return quote_literal(json.dumps(value, default=_json_default))
    if isinstance(value, Range):
        return quote_literal(_range_text(value))
    if isinstance(value, BitString):
        # as_string() groups bits in fours
        return quote_literal(value.as_string().replace(" ", ""))
    geometry = _geometry_text(value)
    if geometry is not None:
        return quote_literal(geometry)
    if isinstance(value, (list, tuple)):
        if not value:
            return "'{}'"
        return "ARRAY[" + ", ".join(to_literal(v) for v in value) + "]"
    return quote_literal(str(value))
