"""Numeric lattice — storage size, nature, and lossless-conversion rating.

Every numeric kind is classified by ``(size, nature)`` with natures ranked
``UINT < INT < FLOAT < COMPLEX``.  ``rate(dst, src)`` says how well *dst* can
stand in for *src*:

* ``-1``  – *src* cannot be held losslessly by *dst*;
* ``n ≥ 0`` – a cost: the number of narrower representations skipped on the
  way from *src* to *dst*.  Lower is closer.

Ratings for every pair are computed once, at import time, into a read-only
table.  ``INT`` and ``UINT`` are sized by the host architecture and alias to
their fixed-width equivalent for rating and registry purposes.

Exports
-------
Nature, Descriptor, DESCRIPTORS, ARCH
    The lattice.

alias, is_numeric, rate
    Queries.

convert
    Lossless value conversion between numeric ``Value`` handles.

wrap_int, round_float32, normalize
    Representation helpers used by ``values.Value``.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from types import MappingProxyType
from typing import Any, Dict, Mapping

from .errors import ConversionError
from .kinds import COMPLEX_KINDS, FLOAT_KINDS, INTEGER_KINDS, Kind, NUMERIC_KINDS


class Nature(IntEnum):
    UINT = 0
    INT = 1
    FLOAT = 2
    COMPLEX = 3


@dataclass(frozen=True)
class Descriptor:
    size: int
    nature: Nature


# pointer width in bits
ARCH: int = 8 * struct.calcsize("P")

_KIND_INT = Kind.INT64 if ARCH == 64 else Kind.INT32
_KIND_UINT = Kind.UINT64 if ARCH == 64 else Kind.UINT32


def alias(kind: Kind) -> Kind:
    """Map ``INT``/``UINT`` to their fixed-width alias; other kinds unchanged."""
    if kind == Kind.INT:
        return _KIND_INT
    if kind == Kind.UINT:
        return _KIND_UINT
    return kind


def is_numeric(kind: Kind) -> bool:
    return kind in NUMERIC_KINDS


DESCRIPTORS: Mapping[Kind, Descriptor] = MappingProxyType({
    Kind.UINT8: Descriptor(1, Nature.UINT),
    Kind.UINT16: Descriptor(2, Nature.UINT),
    Kind.UINT32: Descriptor(4, Nature.UINT),
    Kind.UINT64: Descriptor(8, Nature.UINT),
    Kind.UINT: Descriptor(ARCH // 8, Nature.UINT),
    Kind.INT8: Descriptor(1, Nature.INT),
    Kind.INT16: Descriptor(2, Nature.INT),
    Kind.INT32: Descriptor(4, Nature.INT),
    Kind.INT64: Descriptor(8, Nature.INT),
    Kind.INT: Descriptor(ARCH // 8, Nature.INT),
    Kind.FLOAT32: Descriptor(4, Nature.FLOAT),
    Kind.FLOAT64: Descriptor(8, Nature.FLOAT),
    Kind.COMPLEX64: Descriptor(8, Nature.COMPLEX),
    Kind.COMPLEX128: Descriptor(16, Nature.COMPLEX),
})


# ─────────────────────────────────────────────────────────────────────────────
# Rating table
# ─────────────────────────────────────────────────────────────────────────────


def _build_ratings(descriptors: Mapping[Kind, Descriptor]) -> Dict[Kind, Dict[Kind, int]]:
    # distinct sizes available per nature
    sizes: Dict[Nature, set] = {}
    for d in descriptors.values():
        sizes.setdefault(d.nature, set()).add(d.size)

    table: Dict[Kind, Dict[Kind, int]] = {}
    for k0, d0 in descriptors.items():
        row: Dict[Kind, int] = {}
        for k1, d1 in descriptors.items():
            # a complex holds two components; integers only fill one of them
            c = 2 if d0.nature == Nature.COMPLEX and d1.nature < Nature.FLOAT else 1
            if (
                d0.nature < d1.nature
                or (d0.nature == d1.nature and d0.size // c < d1.size)
                or (d0.nature > d1.nature and d0.size // c <= d1.size)
            ):
                row[k1] = -1
                continue

            r = 0
            for n in range(d1.nature, d0.nature):
                r += sum(1 for s in sizes.get(Nature(n), ()) if s > d1.size)
            r += sum(1 for s in sizes[d0.nature] if d1.size < s <= d0.size // c)
            row[k1] = r
        table[k0] = row
    return table


_RATINGS = _build_ratings(DESCRIPTORS)


def rate(dst: Kind, src: Kind) -> int:
    """Rate *dst* as a lossless holder of *src* values (``-1`` = impossible)."""
    try:
        return _RATINGS[dst][src]
    except KeyError:
        return -1


# ─────────────────────────────────────────────────────────────────────────────
# Representation helpers
# ─────────────────────────────────────────────────────────────────────────────

_F32 = struct.Struct("<f")


def round_float32(x: float) -> float:
    """Round *x* to the nearest single-precision value."""
    try:
        return _F32.unpack(_F32.pack(x))[0]
    except OverflowError:
        return float("inf") if x > 0 else float("-inf")


def wrap_int(kind: Kind, x: int) -> int:
    """Wrap *x* into the range of integer *kind* (two's complement)."""
    d = DESCRIPTORS[kind]
    bits = 8 * d.size
    x &= (1 << bits) - 1
    if d.nature == Nature.INT and x >= 1 << (bits - 1):
        x -= 1 << bits
    return x


def normalize(kind: Kind, data: Any) -> Any:
    """Coerce raw *data* into the canonical representation of numeric *kind*."""
    if kind in INTEGER_KINDS:
        return wrap_int(kind, int(data))
    if kind == Kind.FLOAT32:
        return round_float32(float(data))
    if kind == Kind.FLOAT64:
        return float(data)
    if kind == Kind.COMPLEX64:
        z = complex(data)
        return complex(round_float32(z.real), round_float32(z.imag))
    if kind == Kind.COMPLEX128:
        return complex(data)
    return data


# ─────────────────────────────────────────────────────────────────────────────
# Conversion
# ─────────────────────────────────────────────────────────────────────────────


def convert(dst: Any, src: Any) -> None:
    """Convert numeric ``Value`` *src* into numeric ``Value`` *dst*.

    *src* must be losslessly representable by *dst*'s kind, otherwise
    ``ConversionError`` is raised.  Non-complex sources headed for a complex
    destination are first promoted to a float of the matching width with a
    zero imaginary part.
    """
    if dst is None or src is None:
        raise ConversionError("nil input")

    dst_kind = dst.type.kind
    src_kind = src.type.kind
    if not is_numeric(dst_kind):
        raise ConversionError("non-numeric destination")
    if not is_numeric(src_kind):
        raise ConversionError("non-numeric source")
    if rate(dst_kind, src_kind) == -1:
        raise ConversionError(f"invalid conversion: {src.type} -> {dst.type}")

    data = src.data
    if dst_kind in COMPLEX_KINDS and src_kind not in COMPLEX_KINDS:
        f = float(data)
        if dst_kind == Kind.COMPLEX64:
            f = round_float32(f)
        data = complex(f, 0.0)
    elif dst_kind in FLOAT_KINDS:
        data = float(data)

    dst.set(data)
