"""Kind tags — the coarse shape of a type.

The integer values are stable: they are written verbatim into Bases
(see ``base.py``), so reordering members changes every structural hash.
"""

from __future__ import annotations

from enum import IntEnum


class Kind(IntEnum):
    INVALID = 0
    BOOL = 1
    INT = 2
    INT8 = 3
    INT16 = 4
    INT32 = 5
    INT64 = 6
    UINT = 7
    UINT8 = 8
    UINT16 = 9
    UINT32 = 10
    UINT64 = 11
    UINTPTR = 12
    FLOAT32 = 13
    FLOAT64 = 14
    COMPLEX64 = 15
    COMPLEX128 = 16
    ARRAY = 17
    CHAN = 18
    FUNC = 19
    INTERFACE = 20
    MAP = 21
    POINTER = 22
    SLICE = 23
    STRING = 24
    STRUCT = 25
    UNSAFE_POINTER = 26

    # Generic numeric family key; never the kind of a concrete type.
    NUMERIC = 27

    def __str__(self) -> str:
        return self.name.lower()


class ChanDir(IntEnum):
    """Channel direction, as encoded in a Base."""

    RECV = 1
    SEND = 2
    BOTH = 3


INTEGER_KINDS = frozenset({
    Kind.INT, Kind.INT8, Kind.INT16, Kind.INT32, Kind.INT64,
    Kind.UINT, Kind.UINT8, Kind.UINT16, Kind.UINT32, Kind.UINT64,
})

FLOAT_KINDS = frozenset({Kind.FLOAT32, Kind.FLOAT64})

COMPLEX_KINDS = frozenset({Kind.COMPLEX64, Kind.COMPLEX128})

NUMERIC_KINDS = INTEGER_KINDS | FLOAT_KINDS | COMPLEX_KINDS

# kinds whose values have no inner structure
SIMPLE_KINDS = NUMERIC_KINDS | {Kind.BOOL, Kind.STRING, Kind.UINTPTR, Kind.UNSAFE_POINTER}

COMPOSITE_KINDS = frozenset({
    Kind.ARRAY, Kind.CHAN, Kind.FUNC, Kind.MAP, Kind.POINTER, Kind.SLICE, Kind.STRUCT,
})
