"""Structural descriptors ("Bases").

A Base is a canonical byte string describing the memory shape of a type,
independent of its name.  Two types with equal Bases are layout-equivalent
and can be converted into one another by a plain layout transfer (a "basic
conversion").

Encoding (recursive, one byte per entry)::

    <kind> [continuation]

    array    → length, elem
    slice    → elem
    pointer  → elem
    map      → key, elem
    struct   → field count, field shapes in declaration order
    chan     → direction, elem
    func     → #params, #results, variadic flag, params, results

Numeric kinds are aliased first (``INT`` → ``INT64`` on 64-bit hosts).

Known limitation: lengths and counts are single bytes, so arrays, structs
and function signatures with 256 or more entries cannot be encoded; they
raise ``BaseEncodingError`` instead of being truncated.
"""

from __future__ import annotations

import hashlib
from functools import lru_cache
from typing import List, Tuple

from . import numeric
from .errors import BaseEncodingError
from .kinds import ChanDir, Kind, SIMPLE_KINDS
from .typedesc import (
    ANY, TypeDescriptor, array_of, chan_of, func_of, map_of, pointer_to,
    simple_type, slice_of, struct_of,
)

Base = bytes

_LIMIT = 256


def _count(n: int, what: str, t: TypeDescriptor) -> int:
    if n >= _LIMIT:
        raise BaseEncodingError(f"{t}: {what} {n} exceeds the encodable limit of {_LIMIT - 1}")
    return n


def _encode(t: TypeDescriptor, out: List[int]) -> None:
    k = numeric.alias(t.kind)
    out.append(int(k))

    if k in SIMPLE_KINDS:
        return

    if k == Kind.ARRAY:
        out.append(_count(t.length, "length", t))
        _encode(t.elem, out)
    elif k in (Kind.SLICE, Kind.POINTER):
        _encode(t.elem, out)
    elif k == Kind.MAP:
        _encode(t.key, out)
        _encode(t.elem, out)
    elif k == Kind.STRUCT:
        out.append(_count(len(t.fields), "field count", t))
        for f in t.fields:
            _encode(f.type, out)
    elif k == Kind.CHAN:
        out.append(int(t.chan_dir))
        _encode(t.elem, out)
    elif k == Kind.FUNC:
        out.append(_count(len(t.params), "parameter count", t))
        out.append(_count(len(t.results), "result count", t))
        out.append(1 if t.variadic else 0)
        for p in t.params:
            _encode(p, out)
        for r in t.results:
            _encode(r, out)


@lru_cache(maxsize=None)
def base_of(t: TypeDescriptor) -> Base:
    """Encode the layout shape of *t*."""
    out: List[int] = []
    _encode(t, out)
    return bytes(out)


@lru_cache(maxsize=None)
def base_hash(base: Base) -> int:
    """64-bit digest of *base*, used as the basic-registry key."""
    return int.from_bytes(hashlib.blake2b(base, digest_size=8).digest(), "little")


def hash_of(t: TypeDescriptor) -> int:
    return base_hash(base_of(t))


# ─────────────────────────────────────────────────────────────────────────────
# Decoding
# ─────────────────────────────────────────────────────────────────────────────


def _decode(base: Base, i: int) -> Tuple[TypeDescriptor, int]:
    """Rebuild the type starting at offset *i*; return it and the next offset."""
    try:
        k = Kind(base[i])
    except (IndexError, ValueError):
        raise BaseEncodingError(f"malformed base at offset {i}: {base!r}") from None
    i += 1

    if k in SIMPLE_KINDS:
        return simple_type(k), i
    if k == Kind.INTERFACE:
        return ANY, i
    if k == Kind.ARRAY:
        n = base[i]
        elem, i = _decode(base, i + 1)
        return array_of(n, elem), i
    if k == Kind.SLICE:
        elem, i = _decode(base, i)
        return slice_of(elem), i
    if k == Kind.POINTER:
        elem, i = _decode(base, i)
        return pointer_to(elem), i
    if k == Kind.MAP:
        key, i = _decode(base, i)
        elem, i = _decode(base, i)
        return map_of(key, elem), i
    if k == Kind.STRUCT:
        n = base[i]
        i += 1
        fields = []
        for j in range(n):
            ft, i = _decode(base, i)
            fields.append((f"F{j}", ft))
        return struct_of(*fields), i
    if k == Kind.CHAN:
        direction = ChanDir(base[i])
        elem, i = _decode(base, i + 1)
        return chan_of(elem, direction), i
    if k == Kind.FUNC:
        n_in, n_out, variadic = base[i], base[i + 1], base[i + 2] == 1
        i += 3
        params, results = [], []
        for _ in range(n_in):
            p, i = _decode(base, i)
            params.append(p)
        for _ in range(n_out):
            r, i = _decode(base, i)
            results.append(r)
        return func_of(params, results, variadic), i

    raise BaseEncodingError(f"cannot reconstruct kind {k!s}")


@lru_cache(maxsize=None)
def reconstruct(base: Base) -> TypeDescriptor:
    """Return an unnamed type whose Base is exactly *base*."""
    t, i = _decode(base, 0)
    if i != len(base):
        raise BaseEncodingError(f"trailing bytes in base {base!r}")
    return t


def is_concrete(base: Base) -> bool:
    """True iff no interface appears anywhere in *base*."""
    return Kind.INTERFACE not in _kinds(base)


def _kinds(base: Base) -> List[Kind]:
    # walk tags only, skipping counts/lengths/flags
    out: List[Kind] = []
    i = 0
    while i < len(base):
        k = Kind(base[i])
        out.append(k)
        i += 1
        if k in (Kind.ARRAY, Kind.STRUCT, Kind.CHAN):
            i += 1
        elif k == Kind.FUNC:
            i += 3
    return out


# ─────────────────────────────────────────────────────────────────────────────
# Classification
# ─────────────────────────────────────────────────────────────────────────────


def is_basic(t: TypeDescriptor) -> bool:
    """True if *t* is unnamed and built only from unnamed, non-interface parts."""
    if t.is_named:
        return False

    k = t.kind
    if k in SIMPLE_KINDS:
        return True
    if k in (Kind.ARRAY, Kind.SLICE, Kind.POINTER):
        return is_basic(t.elem)
    if k == Kind.MAP:
        return is_basic(t.key) and is_basic(t.elem)
    if k == Kind.STRUCT:
        return all(is_basic(f.type) for f in t.fields)
    if k == Kind.FUNC:
        return all(is_basic(p) for p in t.params + t.results)
    return False
