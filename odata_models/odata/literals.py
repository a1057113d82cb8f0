"""
odata_models.odata.literals - OData literal rendering
======================================================

Renders Python values as OData URL literals for keys, function
parameters and filter expressions.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID


def escape_odata_literal(value: str) -> str:
    """
    Escape a string value for use in OData literals.

    Examples
    --------
    >>> escape_odata_literal("O'Brien")
    "O''Brien"
    """
    return value.replace("'", "''")


def format_literal(value: Any) -> str:
    """
    Render a scalar as an OData literal.

    Examples
    --------
    >>> format_literal("russellwhyte")
    "'russellwhyte'"
    >>> format_literal(42)
    '42'
    >>> format_literal(True)
    'true'
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat().replace("+00:00", "Z")
    if isinstance(value, (date, time)):
        return value.isoformat()
    return f"'{escape_odata_literal(str(value))}'"


def format_key(key: Any) -> str:
    """
    Render an entity key: a scalar, or ``Name=literal`` pairs for a
    composite key given as a mapping.

    >>> format_key({"OrderID": 1, "ItemNo": "A"})
    "OrderID=1,ItemNo='A'"
    """
    if isinstance(key, Mapping):
        return ",".join(f"{k}={format_literal(v)}" for k, v in key.items())
    return format_literal(key)
