"""Typed OSC argument values, ranges of them, and their arithmetic."""

from __future__ import annotations

import itertools
import math
import struct
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import ClassVar, Optional, Union

__all__ = [
    "ArgValTypeError",
    "ArgVal",
    "Range",
    "null",
    "from_int",
    "from_double",
    "negate",
    "round_value",
    "add",
    "sub",
    "mult",
    "div",
    "to_int",
    "range_arg",
    "iter_values",
]


class ArgValTypeError(TypeError):
    """An operation is not defined for the given argument type(s)."""


_SMALL_INTS = frozenset("ci")
_BOOLS = frozenset("TF")


def _wrap(number: int, bits: int) -> int:
    """Wrap an integer into a signed two's complement range of ``bits`` bits."""
    mask = (1 << bits) - 1
    number &= mask
    return number - (1 << bits) if number >> (bits - 1) else number


def _to_f32(number: float) -> float:
    """Round a number to the nearest single precision float."""
    try:
        return struct.unpack("<f", struct.pack("<f", number))[0]
    except OverflowError:
        return math.copysign(math.inf, number)


@dataclass(frozen=True)
class ArgVal:
    """A single OSC argument: a type tag character and its value.

    Value conventions: ``i``, ``c``, ``r``, ``h`` and ``t`` hold ints,
    ``f`` and ``d`` floats, ``T``/``F`` bools, ``N``/``I`` nothing,
    ``s``/``S`` a str or None, ``b`` and ``m`` bytes, and ``a`` a tuple of
    values (which may contain ranges).
    """

    type: str
    value: object = None

    def __post_init__(self) -> None:
        if not isinstance(self.type, str) or len(self.type) != 1:
            raise ValueError(f"type tag must be a single character, got {self.type!r}")
        if self.type == "a":
            object.__setattr__(self, "value", tuple(self.value or ()))

    @property
    def array_type(self) -> str:
        """Type tag of the elements of an array, or '' for an empty array."""
        if self.type != "a":
            raise ArgValTypeError(f"'{self.type}' is not an array")
        if not self.value:
            return ""
        first = self.value[0]
        return first.start.type if isinstance(first, Range) else first.type


@dataclass(frozen=True)
class Range:
    """A run of values: ``start``, ``start + delta``, ...

    ``num`` is the number of values; 0 means the range is endless.
    Without a delta every value equals ``start``.
    """

    type: ClassVar[str] = "-"

    start: ArgVal
    num: int = 0
    delta: Optional[ArgVal] = None

    def __post_init__(self) -> None:
        if self.num < 0:
            raise ValueError("range length must not be negative")

    @property
    def infinite(self) -> bool:
        return self.num == 0


Value = Union[ArgVal, Range]


def null(type_char: str) -> ArgVal:
    """Return the zero value of a type."""
    if type_char in ("h", "t", "c", "i", "r"):
        return ArgVal(type_char, 0)
    if type_char in ("s", "S"):
        return ArgVal(type_char, None)
    if type_char in ("d", "f"):
        return ArgVal(type_char, 0.0)
    if type_char in _BOOLS:
        return ArgVal("F", False)
    raise ArgValTypeError(f"type '{type_char}' has no zero value")


def _from_number(type_char: str, number) -> ArgVal:
    if type_char == "h":
        return ArgVal("h", _wrap(math.trunc(number), 64))
    if type_char == "d":
        return ArgVal("d", float(number))
    if type_char == "f":
        return ArgVal("f", _to_f32(float(number)))
    if type_char in _SMALL_INTS:
        return ArgVal(type_char, _wrap(math.trunc(number), 32))
    if type_char in _BOOLS:
        # the number decides between true and false, not the given tag
        flag = number != 0
        return ArgVal("T" if flag else "F", flag)
    raise ArgValTypeError(f"cannot convert a number to type '{type_char}'")


def from_int(type_char: str, number: int) -> ArgVal:
    """Build a value of the given type from an integer."""
    return _from_number(type_char, int(number))


def from_double(type_char: str, number: float) -> ArgVal:
    """Build a value of the given type from a floating point number."""
    return _from_number(type_char, float(number))


def negate(av: ArgVal) -> ArgVal:
    """Return the negated value; booleans are inverted."""
    t = av.type
    if t == "h":
        return ArgVal(t, _wrap(-av.value, 64))
    if t in ("d", "f"):
        return ArgVal(t, -av.value)
    if t in _SMALL_INTS:
        return ArgVal(t, _wrap(-av.value, 32))
    if t == "T":
        return ArgVal("F", False)
    if t == "F":
        return ArgVal("T", True)
    raise ArgValTypeError(f"cannot negate type '{t}'")


def round_value(av: ArgVal) -> ArgVal:
    """Truncate a float towards zero, rounding up fractions of at least 0.999."""
    t = av.type
    if t == "d":
        whole = math.trunc(av.value)
        return ArgVal(t, float(whole + (av.value - whole >= 0.999)))
    if t == "f":
        whole = math.trunc(av.value)
        bump = _to_f32(av.value - whole) >= _to_f32(0.999)
        return ArgVal(t, _to_f32(whole + bump))
    if t in ("h", "c", "i", "T", "F"):
        return av
    raise ArgValTypeError(f"cannot round type '{t}'")


def _is_bool_pair(lhs: ArgVal, rhs: ArgVal) -> bool:
    return {lhs.type, rhs.type} == {"T", "F"}


def _numeric(lhs: ArgVal, rhs: ArgVal, int_op, float_op) -> ArgVal:
    t = lhs.type
    if t == "d":
        return ArgVal(t, float_op(lhs.value, rhs.value))
    if t == "f":
        return ArgVal(t, _to_f32(float_op(lhs.value, rhs.value)))
    if t == "h":
        return ArgVal(t, _wrap(int_op(lhs.value, rhs.value), 64))
    if t in _SMALL_INTS:
        return ArgVal(t, _wrap(int_op(lhs.value, rhs.value), 32))
    raise ArgValTypeError(f"arithmetic is not defined for type '{t}'")


def add(lhs: ArgVal, rhs: ArgVal) -> ArgVal:
    """Sum of two values of one type; booleans add like xor."""
    if lhs.type != rhs.type:
        if _is_bool_pair(lhs, rhs):
            return ArgVal("T", True)
        raise ArgValTypeError(f"cannot add '{lhs.type}' and '{rhs.type}'")
    if lhs.type in _BOOLS:
        return ArgVal("F", False)
    return _numeric(lhs, rhs, lambda a, b: a + b, lambda a, b: a + b)


def sub(lhs: ArgVal, rhs: ArgVal) -> ArgVal:
    """Difference of two values of one type; booleans subtract like xor."""
    if lhs.type != rhs.type:
        return add(lhs, rhs)
    if lhs.type in _BOOLS:
        return ArgVal("F", False)
    return _numeric(lhs, rhs, lambda a, b: a - b, lambda a, b: a - b)


def mult(lhs: ArgVal, rhs: ArgVal) -> ArgVal:
    """Product of two values of one type; booleans multiply like and."""
    if lhs.type != rhs.type:
        if _is_bool_pair(lhs, rhs):
            return ArgVal("F", False)
        raise ArgValTypeError(f"cannot multiply '{lhs.type}' and '{rhs.type}'")
    if lhs.type == "T":
        return ArgVal("T", True)
    if lhs.type == "F":
        return ArgVal("F", False)
    return _numeric(lhs, rhs, lambda a, b: a * b, lambda a, b: a * b)


def _int_div(a: int, b: int) -> int:
    if b == 0:
        raise ZeroDivisionError("integer division by zero")
    quotient = abs(a) // abs(b)
    return -quotient if (a < 0) != (b < 0) else quotient


def _float_div(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, math.copysign(1.0, a) * math.copysign(1.0, b))
    return a / b


def div(lhs: ArgVal, rhs: ArgVal) -> ArgVal:
    """Quotient of two values of one type; integers truncate towards zero."""
    if lhs.type != rhs.type:
        raise ArgValTypeError(f"cannot divide '{lhs.type}' by '{rhs.type}'")
    if lhs.type == "T":
        return ArgVal("T", True)
    if lhs.type == "F":
        raise ZeroDivisionError("division by false")
    return _numeric(lhs, rhs, _int_div, _float_div)


def to_int(av: ArgVal) -> int:
    """Convert a value to a 32 bit integer, truncating floats."""
    t = av.type
    if t in ("d", "f"):
        return _wrap(math.trunc(av.value), 32)
    if t == "h":
        return _wrap(av.value, 32)
    if t in _SMALL_INTS:
        return av.value
    if t in _BOOLS:
        return 1 if av.value else 0
    raise ArgValTypeError(f"cannot convert type '{t}' to int")


def range_arg(rng: Range, ith: int) -> ArgVal:
    """Return the ``ith`` value of a range."""
    if rng.delta is None:
        return rng.start
    step = mult(from_int(rng.delta.type, ith), rng.delta)
    return add(rng.start, step)


def iter_values(values: Iterable[Value]) -> Iterator[ArgVal]:
    """Yield the values of a sequence with ranges expanded.

    An endless range yields values forever.
    """
    for item in values:
        if isinstance(item, Range):
            indices = itertools.count() if item.infinite else range(item.num)
            for ith in indices:
                yield range_arg(item, ith)
        else:
            yield item