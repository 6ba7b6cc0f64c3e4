# =============================================================
#  config_keeper/coercion.py
#  Numeric widening / narrowing of decoded values
# =============================================================
"""Bring loosely typed decoded numbers back to a field's declared width.

Backends decode numbers as plain ``int`` / ``float``. A field may declare a
narrower kind through the ``Annotated`` aliases below; :func:`coerce` converts
the decoded number the way a fixed-width conversion would (wrap, truncate,
saturate, round to single precision) instead of raising.

```python
from config_keeper.coercion import Int8, coerce, NumericKind

coerce(300, NumericKind.INT8)   # -> 44
coerce(3.9, Int8)               # -> 3
coerce("abc", Int8)             # -> "abc"  (not a number, untouched)
```
"""

from __future__ import annotations

import math
import numbers
import struct
import types
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from pydantic import AfterValidator
from typing_extensions import Annotated, get_args, get_origin

__all__ = [
    "NumericKind",
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "Float32",
    "Float64",
    "numeric_kind_of",
    "coerce",
]


class NumericKind(str, Enum):
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    INTEGER = "integer"  # unbounded python int
    FLOAT32 = "float32"
    FLOAT64 = "float64"


# ------------------------------------------------------------------
# converters
# ------------------------------------------------------------------

def _fixed_int(bits: int) -> Callable[[Any], int]:
    lo = -(1 << (bits - 1))
    hi = (1 << (bits - 1)) - 1
    span = 1 << bits

    def convert(value: Any) -> int:
        if isinstance(value, numbers.Integral):
            # two's complement wrap
            return (int(value) - lo) % span + lo
        value = float(value)
        if math.isnan(value):
            return 0
        if value >= hi:
            return hi
        if value <= lo:
            return lo
        return int(value)

    return convert


_int64 = _fixed_int(64)


def _integer(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, numbers.Integral):
        return int(value)
    value = float(value)
    if not math.isfinite(value):
        return _int64(value)
    return int(value)


def _float32(value: Any) -> float:
    value = _float64(value)
    try:
        return struct.unpack("f", struct.pack("f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _float64(value: Any) -> float:
    try:
        return float(value)
    except OverflowError:
        return math.inf if value > 0 else -math.inf


_CONVERTERS: Dict[NumericKind, Callable[[Any], Any]] = {
    NumericKind.INT8: _fixed_int(8),
    NumericKind.INT16: _fixed_int(16),
    NumericKind.INT32: _fixed_int(32),
    NumericKind.INT64: _int64,
    NumericKind.INTEGER: _integer,
    NumericKind.FLOAT32: _float32,
    NumericKind.FLOAT64: _float64,
}


def _narrowed(base: type, kind: NumericKind) -> Any:
    # narrows on validation as well as on decode
    return Annotated[base, kind, AfterValidator(_CONVERTERS[kind])]


Int8 = _narrowed(int, NumericKind.INT8)
Int16 = _narrowed(int, NumericKind.INT16)
Int32 = _narrowed(int, NumericKind.INT32)
Int64 = _narrowed(int, NumericKind.INT64)
Float32 = _narrowed(float, NumericKind.FLOAT32)
Float64 = _narrowed(float, NumericKind.FLOAT64)


# ------------------------------------------------------------------
# annotation inspection
# ------------------------------------------------------------------

def _unwrap_optional(tp: Any) -> Any:
    if get_origin(tp) in (Union, types.UnionType):
        args = [a for a in get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def numeric_kind_of(annotation: Any, metadata: Any = ()) -> Optional[NumericKind]:
    """Return the numeric kind declared by ``annotation`` (or ``metadata``).

    ``metadata`` is the extra ``Annotated`` payload pydantic keeps apart from
    the bare annotation in ``FieldInfo.metadata``.
    """
    for item in metadata:
        if isinstance(item, NumericKind):
            return item

    tp = _unwrap_optional(annotation)
    if get_origin(tp) is Annotated:
        base, *extra = get_args(tp)
        return numeric_kind_of(base, extra)

    if tp is int:
        return NumericKind.INTEGER
    if tp is float:
        return NumericKind.FLOAT64
    return None


# ------------------------------------------------------------------
# public entry point
# ------------------------------------------------------------------

def coerce(value: Any, target: Any) -> Any:
    """Convert ``value`` to the numeric kind of ``target``.

    ``target`` is either a :class:`NumericKind` or a type annotation. ``None``,
    booleans, non-numbers and non-numeric targets are returned unchanged.
    """
    kind = target if isinstance(target, NumericKind) else numeric_kind_of(target)
    if kind is None or value is None or isinstance(value, bool):
        return value
    if not isinstance(value, numbers.Real):
        return value
    return _CONVERTERS[kind](value)
