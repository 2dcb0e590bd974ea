"""printf-style formatting as done by the kernel and by user programs."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator
from typing import Any

_SPEC = re.compile(r"%(ll[dux]|l[dux]|.)?", re.DOTALL)


def _wrap(value: int, bits: int) -> int:
    return value & ((1 << bits) - 1)


def _signed(value: int, bits: int) -> int:
    value = _wrap(value, bits)
    return value - (1 << bits) if value >> (bits - 1) else value


def _int32(value: int) -> int:
    return _signed(value, 32)


def _int64(value: int) -> int:
    return _signed(value, 64)


def _uint32(value: int) -> int:
    return _wrap(value, 32)


def _uint64(value: int) -> int:
    return _wrap(value, 64)


def _int32_as_uint64(value: int) -> int:
    return _wrap(_signed(value, 32), 64)


_Conversions = dict[str, tuple[int, Callable[[int], int]]]

_KERNEL: _Conversions = {
    "d": (10, _int32),
    "ld": (10, _int64),
    "lld": (10, _int64),
    "u": (10, _int32_as_uint64),
    "lu": (10, _uint64),
    "llu": (10, _uint64),
    "x": (16, _int32_as_uint64),
    "lx": (16, _uint64),
    "llx": (16, _uint64),
}

_USER: _Conversions = {
    "d": (10, _int32),
    "ld": (10, _int32),
    "lld": (10, _int32),
    "u": (10, _uint32),
    "lu": (10, _uint32),
    "llu": (10, _uint32),
    "x": (16, _uint32),
    "lx": (16, _uint32),
    "llx": (16, _uint32),
}


def _render(value: int, base: int, upper: bool) -> str:
    spec = "d" if base == 10 else ("X" if upper else "x")
    if value < 0:
        return "-" + format(-value, spec)
    return format(value, spec)


def _format(fmt: str, args: tuple[Any, ...], conversions: _Conversions, upper: bool) -> str:
    pending: Iterator[Any] = iter(args)

    def take() -> Any:
        try:
            return next(pending)
        except StopIteration:
            raise TypeError("not enough arguments for format string") from None

    def replace(match: re.Match[str]) -> str:
        spec = match.group(1)
        if spec is None:
            return ""
        if spec in conversions:
            base, convert = conversions[spec]
            return _render(convert(int(take())), base, upper)
        if spec == "p":
            return "0x" + format(_uint64(int(take())), "016X" if upper else "016x")
        if spec == "s":
            text = take()
            return "(null)" if text is None else str(text)
        if spec == "%":
            return "%"
        return "%" + spec

    return _SPEC.sub(replace, fmt.split("\0", 1)[0])


def kformat(fmt: str, *args: Any) -> str:
    """Format as the kernel's printf does: 64-bit integers, lowercase hex."""
    return _format(fmt, args, _KERNEL, upper=False)


def uformat(fmt: str, *args: Any) -> str:
    """Format as the user library's printf does: 32-bit integers, uppercase hex."""
    return _format(fmt, args, _USER, upper=True)