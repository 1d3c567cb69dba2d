from __future__ import annotations

import math
import re
from enum import Enum
from typing import Any


class DataType(str, Enum):
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    INT32 = "int32"
    INT16 = "int16"
    STRING = "string"
    BOOLEAN = "boolean"
    UNKNOWN = "unknown"

    @classmethod
    def coerce(cls, value: Any) -> "DataType":
        if isinstance(value, DataType):
            return value
        key = str(value).lower()
        if key == "float":
            return cls.FLOAT32
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"unknown data_type {value!r}") from None

    def __str__(self) -> str:
        return self.value


FLOATING_TYPES = frozenset({DataType.FLOAT32, DataType.FLOAT64})
INTEGER_TYPES = frozenset({DataType.INT32, DataType.INT16})


def is_floating(dtype: Any) -> bool:
    return DataType.coerce(dtype) in FLOATING_TYPES


def is_integer(dtype: Any) -> bool:
    return DataType.coerce(dtype) in INTEGER_TYPES


def detect_type(value: Any) -> DataType:
    """Best-effort dtype for a raw Python literal."""
    if isinstance(value, bool):
        return DataType.BOOLEAN
    if isinstance(value, str):
        return DataType.STRING
    if isinstance(value, int):
        return DataType.INT32
    if isinstance(value, (list, tuple)):
        for item in value:
            return detect_type(item)
        return DataType.FLOAT32
    return DataType.FLOAT32


def cast_dtype(value: Any, dtype: Any) -> Any:
    """Coerce ``value`` (scalar or nested list) to ``dtype``.

    Graph nodes found anywhere in ``value`` are returned untouched so that
    still-symbolic elements survive until they can be evaluated. Casting is
    idempotent for a fixed target dtype. Strings become numbers through their
    leading numeric prefix, or zero when they have none.
    """
    from .ir import Node

    if isinstance(value, Node):
        return value
    if isinstance(value, (list, tuple)):
        return [cast_dtype(item, dtype) for item in value]

    dtype = DataType.coerce(dtype)
    if dtype in FLOATING_TYPES:
        if isinstance(value, bool):
            return 1.0 if value else 0.0
        if isinstance(value, str):
            return _parse_number(value)
        return float(value)
    if dtype in INTEGER_TYPES:
        if isinstance(value, bool):
            return 1 if value else 0
        if isinstance(value, str):
            number = _parse_number(value)
            return int(number) if math.isfinite(number) else 0
        return int(value)
    if dtype is DataType.STRING:
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)
    if dtype is DataType.BOOLEAN:
        return bool(value)
    return value


_NUMBER_PREFIX = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def _parse_number(text: str) -> float:
    """Read the leading number of ``text``; 0.0 when there is none."""
    try:
        return float(text)
    except ValueError:
        pass
    match = _NUMBER_PREFIX.match(text)
    return float(match.group(0)) if match else 0.0


def zero_of(dtype: Any) -> Any:
    dtype = DataType.coerce(dtype)
    if dtype in INTEGER_TYPES:
        return 0
    if dtype is DataType.BOOLEAN:
        return False
    return 0.0


def one_of(dtype: Any) -> Any:
    dtype = DataType.coerce(dtype)
    if dtype in INTEGER_TYPES:
        return 1
    if dtype is DataType.BOOLEAN:
        return True
    return 1.0
