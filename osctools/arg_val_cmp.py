"""Equality and three-way comparison of OSC argument values."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from osctools.argval import ArgVal, Range, Value, _to_f32, range_arg

__all__ = ["CmpOptions", "eq_single", "eq", "cmp_single", "cmp"]


@dataclass(frozen=True)
class CmpOptions:
    """Options for comparisons; floats within the tolerance are equal."""

    float_tolerance: float = 0.0


_DEFAULT_OPTIONS = CmpOptions()


def _cmp3(a, b) -> int:
    return (a > b) - (a < b)


def _sign(x: int) -> int:
    return (x > 0) - (x < 0)


def _array_types_compatible(lhs: ArgVal, rhs: ArgVal) -> bool:
    lt, rt = lhs.array_type, rhs.array_type
    return lt == rt or {lt, rt} == {"T", "F"}


def _reject_range(av: Value) -> None:
    if isinstance(av, Range):
        raise ValueError("ranges cannot be compared as single values")


def eq_single(lhs: ArgVal, rhs: ArgVal, opt: Optional[CmpOptions] = None) -> bool:
    """Whether two single values are equal; ranges are not allowed."""
    _reject_range(lhs)
    _reject_range(rhs)
    opt = opt or _DEFAULT_OPTIONS
    if lhs.type != rhs.type:
        return False
    t = lhs.type
    tol = opt.float_tolerance
    if t in ("i", "c", "r", "h", "t", "m"):
        return lhs.value == rhs.value
    if t in ("I", "T", "F", "N"):
        return True
    if t == "f":
        if tol == 0.0:
            return lhs.value == rhs.value
        return abs(_to_f32(lhs.value - rhs.value)) <= _to_f32(tol)
    if t == "d":
        if tol == 0.0:
            return lhs.value == rhs.value
        return abs(lhs.value - rhs.value) <= tol
    if t in ("s", "S"):
        return lhs.value == rhs.value
    if t == "b":
        return bytes(lhs.value) == bytes(rhs.value)
    if t == "a":
        if not _array_types_compatible(lhs, rhs):
            return False
        return eq(lhs.value, rhs.value, opt)
    raise ValueError(f"cannot compare values of type '{t}'")


def cmp_single(lhs: ArgVal, rhs: ArgVal, opt: Optional[CmpOptions] = None) -> int:
    """Three-way comparison of two single values: negative, 0 or positive."""
    _reject_range(lhs)
    _reject_range(rhs)
    opt = opt or _DEFAULT_OPTIONS
    if lhs.type != rhs.type:
        return 1 if lhs.type > rhs.type else -1
    t = lhs.type
    tol = opt.float_tolerance
    if t in ("i", "c", "r", "h"):
        return _cmp3(lhs.value, rhs.value)
    if t in ("I", "T", "F", "N"):
        return 0
    if t == "f":
        if tol == 0.0:
            return _cmp3(lhs.value, rhs.value)
        if abs(_to_f32(lhs.value - rhs.value)) <= _to_f32(tol):
            return 0
        return 1 if lhs.value > rhs.value else -1
    if t == "d":
        if tol == 0.0:
            return _cmp3(lhs.value, rhs.value)
        if abs(lhs.value - rhs.value) <= tol:
            return 0
        return 1 if lhs.value > rhs.value else -1
    if t == "t":
        # "immediately" (1) sorts before every other timestamp
        if lhs.value == 1:
            return 0 if rhs.value == 1 else -1
        if rhs.value == 1:
            return 1
        return _cmp3(lhs.value, rhs.value)
    if t == "m":
        return _cmp3(bytes(lhs.value), bytes(rhs.value))
    if t in ("s", "S"):
        if lhs.value is None or rhs.value is None:
            if lhs.value is rhs.value:
                return 0
            return -1 if lhs.value is None else 1
        return _cmp3(lhs.value, rhs.value)
    if t == "b":
        lb, rb = bytes(lhs.value), bytes(rhs.value)
        shorter = min(len(lb), len(rb))
        result = _cmp3(lb[:shorter], rb[:shorter])
        if result == 0 and len(lb) != len(rb):
            # equal so far: the byte after the common part decides
            result = _sign(lb[shorter]) if len(lb) > len(rb) else -_sign(rb[shorter])
        return result
    if t == "a":
        if not _array_types_compatible(lhs, rhs):
            return 1 if lhs.array_type > rhs.array_type else -1
        return cmp(lhs.value, rhs.value, opt)
    raise ValueError(f"cannot compare values of type '{t}'")


class _Cursor:
    """Walks a value sequence, stepping through the values of ranges."""

    def __init__(self, values: Sequence[Value]) -> None:
        self.values = values
        self.index = 0
        self.in_range = 0

    @property
    def exhausted(self) -> bool:
        return self.index >= len(self.values)

    @property
    def remaining(self) -> int:
        return len(self.values) - self.index

    @property
    def at_endless_range(self) -> bool:
        if self.exhausted:
            return False
        item = self.values[self.index]
        return isinstance(item, Range) and item.infinite

    def get(self) -> ArgVal:
        item = self.values[self.index]
        if isinstance(item, Range):
            return range_arg(item, self.in_range)
        return item

    def advance(self) -> None:
        item = self.values[self.index]
        if isinstance(item, Range):
            self.in_range += 1
            if not item.infinite and self.in_range >= item.num:
                self.index += 1
                self.in_range = 0
        else:
            self.index += 1


def _has_next(lcur: _Cursor, rcur: _Cursor) -> bool:
    # stop when one side is done, or when both sides are endless ranges
    return (
        not lcur.exhausted
        and not rcur.exhausted
        and not (lcur.at_endless_range and rcur.at_endless_range)
    )


def _finished_together(lcur: _Cursor, rcur: _Cursor) -> bool:
    return (lcur.exhausted or lcur.at_endless_range) and (
        rcur.exhausted or rcur.at_endless_range
    )


def eq(lhs: Sequence[Value], rhs: Sequence[Value], opt: Optional[CmpOptions] = None) -> bool:
    """Whether two value sequences, ranges included, are equal."""
    opt = opt or _DEFAULT_OPTIONS
    lcur, rcur = _Cursor(lhs), _Cursor(rhs)
    while _has_next(lcur, rcur):
        if not eq_single(lcur.get(), rcur.get(), opt):
            return False
        lcur.advance()
        rcur.advance()
    return _finished_together(lcur, rcur)


def cmp(lhs: Sequence[Value], rhs: Sequence[Value], opt: Optional[CmpOptions] = None) -> int:
    """Lexicographic three-way comparison of two value sequences."""
    opt = opt or _DEFAULT_OPTIONS
    lcur, rcur = _Cursor(lhs), _Cursor(rhs)
    while _has_next(lcur, rcur):
        result = cmp_single(lcur.get(), rcur.get(), opt)
        if result:
            return result
        lcur.advance()
        rcur.advance()
    if _finished_together(lcur, rcur):
        return 0
    # equal so far, so one side has elements left
    return 1 if lcur.remaining > rcur.remaining else -1