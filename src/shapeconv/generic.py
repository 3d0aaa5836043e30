"""Generic accessor handles.

Rules registered against one of the marker classes below receive, instead
of a raw ``Value``, a handle exposing a uniform read/write capability over
every type of that kind::

    scheme.load(Struct, lambda dst, src: dst.set(sum(f.value().data for f in src.fields())))

Markers and the kind family they stand for:

=========  =====================================
Array      any array type
Slice      any slice type
Map        any map type
Pointer    any pointer type
Struct     any struct type
Number     any numeric type
Nil        an untyped nil source (schemes only)
=========  =====================================

Handles used on the destination side of an Inverse allocate nil maps and
nil pointers before the rule runs, so rules can write through them
directly.

Struct field iteration follows a ``FieldAccess`` policy fixed when the rule
is registered:

* ``EXPORTED`` – the visible exported fields, with fields of embedded
  structs promoted into the parent (the embedded struct itself is skipped);
* ``ALL``      – every direct field, exported or not, in declaration order.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from . import numeric
from .kinds import Kind
from .typedesc import Field, TypeDescriptor
from .values import Value, clone


class FieldAccess(Enum):
    EXPORTED = "exported"
    ALL = "all"


def _data_for(t: TypeDescriptor, v: Any) -> Any:
    """Raw data of type *t* taken from a ``Value`` or raw *v*."""
    if isinstance(v, Value):
        if v.type != t:
            raise TypeError(f"expected {t}, got {v.type}")
        return clone(t, v.data)
    return Value(t, v).data


class _Handle:
    kind: Kind

    def __init__(self, v: Value) -> None:
        if v.kind != self.kind:
            raise TypeError(f"{type(self).__name__} handle over {v.type}")
        self._v = v

    @property
    def type(self) -> TypeDescriptor:
        return self._v.type

    @property
    def target(self) -> Value:
        """The wrapped value."""
        return self._v

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._v!r})"


# ─────────────────────────────────────────────────────────────────────────────
# Sequences
# ─────────────────────────────────────────────────────────────────────────────


class Array(_Handle):
    """Fixed-length sequence."""

    kind = Kind.ARRAY

    @property
    def elem(self) -> TypeDescriptor:
        return self._v.type.elem

    def __len__(self) -> int:
        return len(self._v.data or ())

    def len(self) -> int:
        return len(self)

    def index(self, i: int) -> Value:
        return Value(self.elem, self._v.data[i])

    def set(self, i: int, v: Any) -> None:
        self._v.data[i] = _data_for(self.elem, v)

    def new(self) -> Value:
        """A fresh zero value of the element type."""
        return Value(self.elem)

    def __iter__(self) -> Iterator[Value]:
        for i in range(len(self)):
            yield self.index(i)


class Slice(Array):
    """Growable sequence.  A nil slice reads as empty."""

    kind = Kind.SLICE

    def cap(self) -> int:
        return len(self)

    def append(self, *values: Any) -> None:
        data = [_data_for(self.elem, v) for v in values]
        if self._v.data is None:
            self._v.set(data)
        else:
            self._v.data.extend(data)

    def resize(self, n: int) -> None:
        """Set the length to *n*, truncating or padding with zero values."""
        cur = list(self._v.data or ())
        if n < len(cur):
            cur = cur[:n]
        else:
            cur.extend(Value(self.elem).data for _ in range(n - len(cur)))
        self._v.set(cur)


# ─────────────────────────────────────────────────────────────────────────────
# Map
# ─────────────────────────────────────────────────────────────────────────────


class Map(_Handle):
    """Key/value mapping.  Key data must be hashable."""

    kind = Kind.MAP

    @property
    def key_type(self) -> TypeDescriptor:
        return self._v.type.key

    @property
    def elem_type(self) -> TypeDescriptor:
        return self._v.type.elem

    def __len__(self) -> int:
        return len(self._v.data or ())

    def len(self) -> int:
        return len(self)

    def get(self, key: Any) -> Value:
        k = _data_for(self.key_type, key)
        return Value(self.elem_type, self._v.data[k])

    def set(self, key: Any, val: Any) -> None:
        if self._v.data is None:
            self._v.set({})
        self._v.data[_data_for(self.key_type, key)] = _data_for(self.elem_type, val)

    def delete(self, key: Any) -> None:
        if self._v.data is not None:
            self._v.data.pop(_data_for(self.key_type, key), None)

    def clear(self) -> None:
        self._v.set({})

    def items(self) -> Iterator[Tuple[Value, Value]]:
        for k, e in (self._v.data or {}).items():
            yield Value(self.key_type, k), Value(self.elem_type, e)

    def new_key(self) -> Value:
        return Value(self.key_type)

    def new_value(self) -> Value:
        return Value(self.elem_type)


# ─────────────────────────────────────────────────────────────────────────────
# Pointer
# ─────────────────────────────────────────────────────────────────────────────


class Pointer(_Handle):
    kind = Kind.POINTER

    @property
    def elem_type(self) -> TypeDescriptor:
        return self._v.type.elem

    def is_nil(self) -> bool:
        return self._v.data is None

    def elem(self) -> Optional[Value]:
        """The value pointed at, or ``None``."""
        return self._v.data

    def set_elem(self, v: Any) -> None:
        """Write through the pointer, allocating it if nil."""
        if self._v.data is None:
            self._v.set(Value(self.elem_type))
        self._v.data.set(_data_for(self.elem_type, v))

    def new(self) -> Value:
        """A fresh pointer of the same type to a zero value."""
        return Value(self._v.type, Value(self.elem_type))

    def set(self, ptr: Optional[Value]) -> None:
        """Repoint to *ptr* (a pointer ``Value`` of the same type) or to nil."""
        if ptr is None:
            self._v.set(None)
            return
        if ptr.type != self._v.type:
            raise TypeError(f"expected {self._v.type}, got {ptr.type}")
        self._v.set(ptr.data)


# ─────────────────────────────────────────────────────────────────────────────
# Struct
# ─────────────────────────────────────────────────────────────────────────────


def _visible_fields(t: TypeDescriptor) -> List[Tuple[Tuple[int, ...], Field]]:
    """Exported fields reachable from *t*, embedded struct fields promoted.

    A name at a shallower depth hides deeper ones; names that collide at the
    same depth hide each other.
    """
    found: Dict[str, List[Tuple[int, Tuple[int, ...], Field]]] = {}
    order: List[str] = []

    def walk(st: TypeDescriptor, path: Tuple[int, ...]) -> None:
        for i, f in enumerate(st.fields):
            p = path + (i,)
            if f.name not in found:
                order.append(f.name)
            found.setdefault(f.name, []).append((len(p), p, f))
            if f.embedded and f.type.kind == Kind.STRUCT:
                walk(f.type, p)

    walk(t, ())

    out = []
    for name in order:
        entries = found[name]
        depth = min(e[0] for e in entries)
        shallow = [e for e in entries if e[0] == depth]
        if len(shallow) != 1:
            continue
        _, path, f = shallow[0]
        if not f.exported or (f.embedded and f.type.kind == Kind.STRUCT):
            continue
        out.append((path, f))
    return out


class StructField:
    """Cursor over one field of a struct value."""

    def __init__(self, owner: Value, path: Tuple[int, ...], field: Field) -> None:
        self._owner = owner
        self._path = path
        self.field = field

    @property
    def name(self) -> str:
        return self.field.name

    @property
    def tag(self) -> str:
        return self.field.tag

    @property
    def type(self) -> TypeDescriptor:
        return self.field.type

    def _parent(self) -> list:
        data = self._owner.data
        for i in self._path[:-1]:
            data = data[i]
        return data

    def value(self) -> Value:
        return Value(self.field.type, self._parent()[self._path[-1]])

    def set(self, v: Any) -> None:
        self._parent()[self._path[-1]] = _data_for(self.field.type, v)

    def new(self) -> Value:
        return Value(self.field.type)

    def __repr__(self) -> str:
        return f"StructField({self.name!r}, {self.type})"


class Struct(_Handle):
    kind = Kind.STRUCT

    def __init__(self, v: Value, access: FieldAccess = FieldAccess.EXPORTED) -> None:
        super().__init__(v)
        self.access = access

    def _index(self, name: str) -> int:
        for i, f in enumerate(self._v.type.fields):
            if f.name == name:
                return i
        raise KeyError(f"{self._v.type} has no field {name!r}")

    def field(self, name: str) -> Value:
        i = self._index(name)
        return Value(self._v.type.fields[i].type, self._v.data[i])

    def set_field(self, name: str, v: Any) -> None:
        i = self._index(name)
        self._v.data[i] = _data_for(self._v.type.fields[i].type, v)

    def field_new(self, name: str) -> Value:
        return Value(self._v.type.fields[self._index(name)].type)

    def fields(self) -> Iterator[StructField]:
        """Iterate fields according to the handle's ``FieldAccess`` policy."""
        if self.access == FieldAccess.ALL:
            for i, f in enumerate(self._v.type.fields):
                yield StructField(self._v, (i,), f)
            return
        for path, f in _visible_fields(self._v.type):
            yield StructField(self._v, path, f)

    def set(self, v: Value) -> None:
        """Replace the whole struct with *v* (same type)."""
        self._v.assign(v)


# ─────────────────────────────────────────────────────────────────────────────
# Number
# ─────────────────────────────────────────────────────────────────────────────


class Number(_Handle):
    """Any numeric value."""

    kind = Kind.NUMERIC

    def __init__(self, v: Value) -> None:
        if not v.type.is_numeric:
            raise TypeError(f"Number handle over {v.type}")
        self._v = v

    @property
    def num_kind(self) -> Kind:
        return self._v.kind

    @property
    def size(self) -> int:
        """Storage size in bytes."""
        return numeric.DESCRIPTORS[self._v.kind].size

    def value(self) -> Any:
        return self._v.data

    def set(self, data: Any) -> None:
        self._v.set(data)

    def convert_from(self, src: Value) -> None:
        """Losslessly convert numeric *src* into this number."""
        numeric.convert(self._v, src)


class Nil:
    """Marker for explicit handling of untyped nil sources.  Never instantiated."""

    def __init__(self) -> None:
        raise TypeError("Nil is a registration marker")


# ─────────────────────────────────────────────────────────────────────────────
# Handle factories used by the engine
# ─────────────────────────────────────────────────────────────────────────────


def _alloc(v: Value) -> Value:
    if v.data is None:
        if v.kind == Kind.MAP:
            v.set({})
        elif v.kind == Kind.POINTER:
            v.set(Value(v.type.elem))
        elif v.kind == Kind.SLICE:
            v.set([])
    return v


# marker → kind family key
MARKER_KINDS: Dict[type, Kind] = {
    Array: Kind.ARRAY,
    Map: Kind.MAP,
    Number: Kind.NUMERIC,
    Pointer: Kind.POINTER,
    Slice: Kind.SLICE,
    Struct: Kind.STRUCT,
}


def make_handle(marker: type, v: Value, *, allocate: bool = False, access: FieldAccess = FieldAccess.EXPORTED) -> _Handle:
    """Wrap *v* in the handle class *marker*; allocate nils when *allocate*."""
    if allocate:
        _alloc(v)
    if marker is Struct:
        return Struct(v, access)
    return marker(v)


def kind_family(t: TypeDescriptor) -> Kind:
    """Generic-registry key of *t*: its kind, or ``NUMERIC`` for numbers."""
    if t.is_numeric:
        return Kind.NUMERIC
    return t.kind
