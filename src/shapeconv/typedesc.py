"""Runtime type model.

Python values do not carry a static type, so the engine works against an
explicit descriptor instead: a ``TypeDescriptor`` is the identity of a type
(its kind plus its shape, and optionally a name).

Identity rules::

    named("Point", struct_of(...))   # defined type: equal only to itself
    slice_of(INT) == slice_of(INT)   # unnamed types compare structurally

Every call to ``named`` declares a distinct type, the same way two type
declarations with the same body are still two different types.  Descriptors
are immutable and hashable, so they can key registries and caches directly.

Exports
-------
TypeDescriptor, Field
    The model.

BOOL, STRING, INT … COMPLEX128, UINTPTR, UNSAFE_POINTER, ANY, NIL_TYPE
    Predeclared types.

array_of, slice_of, map_of, pointer_to, struct_of, func_of, chan_of,
interface_of, named
    Constructors.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from functools import cached_property
from typing import Dict, Iterable, Optional, Tuple, Union

from .kinds import ChanDir, Kind, NUMERIC_KINDS, SIMPLE_KINDS


@dataclass(frozen=True)
class Field:
    """A single struct field.

    A field is *exported* unless its name starts with an underscore.
    ``embedded`` marks an anonymous field whose own fields are promoted into
    the parent (see ``generic.Struct.fields``).
    """

    name: str
    type: 'TypeDescriptor'
    embedded: bool = False
    tag: str = ""

    @property
    def exported(self) -> bool:
        return not self.name.startswith("_")


@dataclass(frozen=True, eq=False)
class TypeDescriptor:
    """Opaque identity of a concrete type.

    Only the attributes relevant to ``kind`` are populated:

    * ``ARRAY``     – ``length``, ``elem``
    * ``SLICE``     – ``elem``
    * ``POINTER``   – ``elem``
    * ``MAP``       – ``key``, ``elem``
    * ``STRUCT``    – ``fields``
    * ``CHAN``      – ``chan_dir``, ``elem``
    * ``FUNC``      – ``params``, ``results``, ``variadic`` (the last param
      of a variadic function is a slice)
    * ``INTERFACE`` – ``methods`` (names only)
    """

    kind: Kind
    name: Optional[str] = None
    elem: Optional['TypeDescriptor'] = None
    key: Optional['TypeDescriptor'] = None
    length: int = 0
    fields: Tuple[Field, ...] = ()
    params: Tuple['TypeDescriptor', ...] = ()
    results: Tuple['TypeDescriptor', ...] = ()
    variadic: bool = False
    chan_dir: ChanDir = ChanDir.BOTH
    methods: Tuple[str, ...] = ()

    # -- identity -----------------------------------------------------------

    @cached_property
    def _shape(self) -> tuple:
        return (
            self.kind, self.elem, self.key, self.length, self.fields,
            self.params, self.results, self.variadic, self.chan_dir, self.methods,
        )

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, TypeDescriptor):
            return NotImplemented
        if self.name is not None or other.name is not None:
            return False
        return self._shape == other._shape

    def __hash__(self) -> int:
        if self.name is not None:
            return object.__hash__(self)
        return hash(self._shape)

    # -- introspection ------------------------------------------------------

    @property
    def is_named(self) -> bool:
        return self.name is not None

    @property
    def is_numeric(self) -> bool:
        return self.kind in NUMERIC_KINDS

    @property
    def underlying(self) -> 'TypeDescriptor':
        """The unnamed type sharing this type's shape."""
        if self.name is None:
            return self
        return _PREDECLARED.get(self.kind) or dataclasses.replace(self, name=None)

    def field_by_name(self, name: str) -> Field:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(f"{self} has no field {name!r}")

    # -- rendering ----------------------------------------------------------

    def __str__(self) -> str:
        if self.name is not None:
            return self.name
        k = self.kind
        if k in _SIMPLE_NAMES:
            return _SIMPLE_NAMES[k]
        if k == Kind.ARRAY:
            return f"[{self.length}]{self.elem}"
        if k == Kind.SLICE:
            return f"[]{self.elem}"
        if k == Kind.POINTER:
            return f"*{self.elem}"
        if k == Kind.MAP:
            return f"map[{self.key}]{self.elem}"
        if k == Kind.CHAN:
            prefix = {ChanDir.RECV: "<-chan ", ChanDir.SEND: "chan<- "}.get(self.chan_dir, "chan ")
            return f"{prefix}{self.elem}"
        if k == Kind.STRUCT:
            parts = []
            for f in self.fields:
                part = str(f.type) if f.embedded else f"{f.name} {f.type}"
                if f.tag:
                    part += f" `{f.tag}`"
                parts.append(part)
            return "struct{" + "; ".join(parts) + "}"
        if k == Kind.FUNC:
            params = [str(p) for p in self.params]
            if self.variadic and params:
                params[-1] = "..." + str(self.params[-1].elem)
            out = f"func({', '.join(params)})"
            if len(self.results) == 1:
                out += f" {self.results[0]}"
            elif self.results:
                out += " (" + ", ".join(str(r) for r in self.results) + ")"
            return out
        if k == Kind.INTERFACE:
            return "interface{" + "; ".join(self.methods) + "}"
        return "nil"

    def __repr__(self) -> str:
        return f"TypeDescriptor({self})"


_SIMPLE_NAMES: Dict[Kind, str] = {k: k.name.lower() for k in SIMPLE_KINDS}
_SIMPLE_NAMES[Kind.UNSAFE_POINTER] = "unsafe.Pointer"


# ─────────────────────────────────────────────────────────────────────────────
# Predeclared types
# ─────────────────────────────────────────────────────────────────────────────

BOOL = TypeDescriptor(Kind.BOOL)
STRING = TypeDescriptor(Kind.STRING)
INT = TypeDescriptor(Kind.INT)
INT8 = TypeDescriptor(Kind.INT8)
INT16 = TypeDescriptor(Kind.INT16)
INT32 = TypeDescriptor(Kind.INT32)
INT64 = TypeDescriptor(Kind.INT64)
UINT = TypeDescriptor(Kind.UINT)
UINT8 = TypeDescriptor(Kind.UINT8)
UINT16 = TypeDescriptor(Kind.UINT16)
UINT32 = TypeDescriptor(Kind.UINT32)
UINT64 = TypeDescriptor(Kind.UINT64)
UINTPTR = TypeDescriptor(Kind.UINTPTR)
FLOAT32 = TypeDescriptor(Kind.FLOAT32)
FLOAT64 = TypeDescriptor(Kind.FLOAT64)
COMPLEX64 = TypeDescriptor(Kind.COMPLEX64)
COMPLEX128 = TypeDescriptor(Kind.COMPLEX128)
UNSAFE_POINTER = TypeDescriptor(Kind.UNSAFE_POINTER)

ANY = TypeDescriptor(Kind.INTERFACE)

# type of an untyped nil source
NIL_TYPE = TypeDescriptor(Kind.INVALID)

_PREDECLARED: Dict[Kind, TypeDescriptor] = {
    t.kind: t for t in (
        BOOL, STRING, INT, INT8, INT16, INT32, INT64,
        UINT, UINT8, UINT16, UINT32, UINT64, UINTPTR,
        FLOAT32, FLOAT64, COMPLEX64, COMPLEX128, UNSAFE_POINTER,
    )
}

# lookup table used by the notation parser
BUILTINS: Dict[str, TypeDescriptor] = {str(t): t for t in _PREDECLARED.values()}
BUILTINS["byte"] = UINT8
BUILTINS["rune"] = INT32
BUILTINS["any"] = ANY


def simple_type(kind: Kind) -> TypeDescriptor:
    """Return the predeclared type of a simple *kind*."""
    try:
        return _PREDECLARED[kind]
    except KeyError:
        raise ValueError(f"{kind!s} is not a simple kind") from None


# ─────────────────────────────────────────────────────────────────────────────
# Constructors
# ─────────────────────────────────────────────────────────────────────────────


def array_of(length: int, elem: TypeDescriptor) -> TypeDescriptor:
    if length < 0:
        raise ValueError(f"negative array length {length}")
    return TypeDescriptor(Kind.ARRAY, elem=elem, length=length)


def slice_of(elem: TypeDescriptor) -> TypeDescriptor:
    return TypeDescriptor(Kind.SLICE, elem=elem)


def pointer_to(elem: TypeDescriptor) -> TypeDescriptor:
    return TypeDescriptor(Kind.POINTER, elem=elem)


def map_of(key: TypeDescriptor, elem: TypeDescriptor) -> TypeDescriptor:
    return TypeDescriptor(Kind.MAP, key=key, elem=elem)


def chan_of(elem: TypeDescriptor, direction: ChanDir = ChanDir.BOTH) -> TypeDescriptor:
    return TypeDescriptor(Kind.CHAN, elem=elem, chan_dir=ChanDir(direction))


def func_of(
        params: Iterable[TypeDescriptor] = (),
        results: Iterable[TypeDescriptor] = (),
        variadic: bool = False,
) -> TypeDescriptor:
    params = tuple(params)
    if variadic and (not params or params[-1].kind != Kind.SLICE):
        raise ValueError("variadic function must end with a slice parameter")
    return TypeDescriptor(Kind.FUNC, params=params, results=tuple(results), variadic=variadic)


def interface_of(*methods: str) -> TypeDescriptor:
    return TypeDescriptor(Kind.INTERFACE, methods=tuple(sorted(methods)))


def struct_of(*fields: Union[Field, Tuple[str, TypeDescriptor]], **named_fields: TypeDescriptor) -> TypeDescriptor:
    """Build an unnamed struct type.

    Fields may be given as ``Field`` objects, ``(name, type)`` pairs, or
    keyword arguments (appended after the positional ones)::

        struct_of(("X", INT), ("Y", INT))
        struct_of(X=INT, Y=INT)
    """
    out = []
    for f in fields:
        if not isinstance(f, Field):
            f = Field(f[0], f[1])
        out.append(f)
    out.extend(Field(name, t) for name, t in named_fields.items())

    seen = set()
    for f in out:
        if f.name in seen:
            raise ValueError(f"duplicate field {f.name!r}")
        seen.add(f.name)
    return TypeDescriptor(Kind.STRUCT, fields=tuple(out))


def named(name: str, underlying: TypeDescriptor) -> TypeDescriptor:
    """Declare a new defined type called *name* with *underlying*'s shape."""
    if not name:
        raise ValueError("type name must not be empty")
    return dataclasses.replace(underlying, name=name)
