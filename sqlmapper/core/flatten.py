"""Parameter flattening.

Turns the arguments of a statement call into the flat ``name -> value``
dictionary that named placeholders are resolved against:

- A top-level scalar gets the next positional index as its key (``"0"``, ``"1"``, ...).
- A struct (dataclass, msgspec struct, plain object) contributes one entry
  per field keyed ``TypeName.FieldName``. Structs nested inside a struct are
  kept as field values and not descended into.
- A list or tuple has each element flattened under ``"{index}[{i}]."`` and its
  length stored under the positional index itself.
- A mapping contributes its string keys whose values are scalars.

Everything else is skipped. The dictionary is rebuilt on every call.
"""

import dataclasses
from typing import Any

from sqlmapper.utils.type_guards import (
    is_dataclass_instance,
    is_mapping,
    is_msgspec_struct,
    is_plain_object,
    is_sequence_parameter,
    is_simple_value,
    is_struct,
)

__all__ = ("ParamFlattener", "flatten_parameters", "struct_fields", "struct_key")


def struct_fields(obj: Any) -> "dict[str, Any]":
    """Return the public fields of a struct-like value, in declaration order.

    Args:
        obj: Dataclass instance, msgspec struct or plain object.

    Returns:
        Mapping of field name to value. Empty if ``obj`` has no fields.
    """
    if is_dataclass_instance(obj):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    if is_msgspec_struct(obj):
        return {name: getattr(obj, name) for name in obj.__struct_fields__}
    if is_plain_object(obj):
        values: dict[str, Any] = {}
        for klass in reversed(type(obj).__mro__):
            for slot in getattr(klass, "__slots__", ()):
                if not slot.startswith("_") and hasattr(obj, slot):
                    values[slot] = getattr(obj, slot)
        values.update({k: v for k, v in getattr(obj, "__dict__", {}).items() if not k.startswith("_")})
        return values
    return {}


def struct_key(obj: Any, field_name: str) -> str:
    return f"{type(obj).__name__}.{field_name}"


class ParamFlattener:
    """Single-use accumulator for one :func:`flatten_parameters` call."""

    __slots__ = ("index", "result")

    def __init__(self) -> None:
        self.result: dict[str, Any] = {}
        self.index = 0

    def flatten(self, *values: Any) -> "dict[str, Any]":
        for value in values:
            self._flatten_one("", value)
        return self.result

    def _flatten_one(self, parent_key: str, value: Any) -> None:
        if is_simple_value(value):
            if parent_key:
                self.result[parent_key[:-1]] = value
            else:
                self.result[str(self.index)] = value
                self.index += 1
        elif is_sequence_parameter(value):
            for i, elem in enumerate(value):
                self._flatten_one(f"{parent_key}{self.index}[{i}].", elem)
            # NOTE: stored without the parent prefix, so it can overwrite a scalar at the same index.
            self.result[str(self.index)] = len(value)
            self.index += 1
        elif is_mapping(value):
            for key, item in value.items():
                if isinstance(key, str) and is_simple_value(item):
                    self.result[parent_key + key] = item
        elif is_struct(value):
            for name, field_value in struct_fields(value).items():
                self.result[parent_key + struct_key(value, name)] = field_value


def flatten_parameters(*values: Any) -> "dict[str, Any]":
    """Flatten statement arguments into a name to value dictionary.

    Args:
        *values: Statement arguments, in call order.

    Returns:
        Fresh dictionary; later keys overwrite earlier ones on collision.

    Example:
        >>> flatten_parameters(100, "hello")
        {'0': 100, '1': 'hello'}
    """
    return ParamFlattener().flatten(*values)
