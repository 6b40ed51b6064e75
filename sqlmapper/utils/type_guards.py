"""Type guards for the parameter shapes sqlmapper understands."""

import datetime
import decimal
import enum
import types
import uuid
from collections.abc import Mapping
from typing import Any, Final

from msgspec import Struct
from typing_extensions import TypeGuard

__all__ = (
    "SIMPLE_TYPES",
    "is_dataclass_instance",
    "is_mapping",
    "is_msgspec_struct",
    "is_plain_object",
    "is_sequence_parameter",
    "is_simple_value",
    "is_struct",
    "is_zero_time",
)

SIMPLE_TYPES: Final[tuple[type, ...]] = (
    bool,
    int,
    float,
    complex,
    str,
    bytes,
    bytearray,
    decimal.Decimal,
    datetime.date,
    datetime.time,
    datetime.timedelta,
    uuid.UUID,
    enum.Enum,
)

_NON_STRUCT_TYPES: Final[tuple[type, ...]] = (
    type,
    types.ModuleType,
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
    types.GeneratorType,
)


def is_simple_value(obj: Any) -> bool:
    """Check if a value is bound as-is rather than descended into.

    Args:
        obj: Value to check.

    Returns:
        True for None and scalar values (numbers, strings, bytes, temporal
        values, UUIDs, enum members).
    """
    return obj is None or isinstance(obj, SIMPLE_TYPES)


def is_dataclass_instance(obj: Any) -> bool:
    """Check if an object is a dataclass instance.

    Args:
        obj: An object to check.

    Returns:
        True if the object is a dataclass instance.
    """
    return not isinstance(obj, type) and hasattr(type(obj), "__dataclass_fields__")


def is_msgspec_struct(obj: Any) -> "TypeGuard[Struct]":
    """Check if a value is a msgspec struct.

    Args:
        obj: Value to check.

    Returns:
        bool
    """
    return isinstance(obj, Struct)


def is_mapping(obj: Any) -> "TypeGuard[Mapping[Any, Any]]":
    return isinstance(obj, Mapping)


def is_sequence_parameter(obj: Any) -> "TypeGuard[list[Any] | tuple[Any, ...]]":
    """Check if a value is flattened element by element.

    Only lists and tuples qualify; strings, bytes and unordered collections do not.
    """
    return isinstance(obj, (list, tuple))


def is_plain_object(obj: Any) -> bool:
    """Check if a value is an ordinary class instance carrying attributes."""
    if is_simple_value(obj) or isinstance(obj, _NON_STRUCT_TYPES):
        return False
    if isinstance(obj, (Mapping, list, tuple, set, frozenset)):
        return False
    return hasattr(obj, "__dict__") or bool(getattr(type(obj), "__slots__", ()))


def is_struct(obj: Any) -> bool:
    """Check if a value is flattened field by field."""
    return is_dataclass_instance(obj) or is_msgspec_struct(obj) or is_plain_object(obj)


def is_zero_time(obj: Any) -> bool:
    """Check if a value is the zero timestamp (``datetime.min`` or ``date.min``).

    The timezone is ignored so that an aware ``datetime.min`` also counts.
    """
    if isinstance(obj, datetime.datetime):
        return obj.replace(tzinfo=None) == datetime.datetime.min
    if isinstance(obj, datetime.date):
        return obj == datetime.date.min
    return False
