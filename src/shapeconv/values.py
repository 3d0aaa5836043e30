"""Typed value handles.

A ``Value`` pairs a ``TypeDescriptor`` with raw Python data laid out
according to the type's shape:

=============  ==========================================================
kind           data
=============  ==========================================================
bool           ``bool``
integers       ``int`` wrapped to the kind's width
floats         ``float`` (float32 rounded to single precision)
complex        ``complex``
string         ``str``
array          ``list`` of exactly ``length`` element data
struct         ``list`` of field data, in declaration order
slice          ``list`` or ``None``
map            ``dict`` or ``None``
pointer        the pointed-to ``Value`` or ``None``
interface      a boxed ``Value`` or ``None``
func / chan    any object or ``None``
=============  ==========================================================

Two values of layout-equivalent types (equal Bases) therefore hold
interchangeable data; ``clone`` performs the transfer with the copy semantics
of each kind (arrays and structs by value, everything else by reference).
"""

from __future__ import annotations

from typing import Any, Optional

from . import numeric
from .errors import ConversionError
from .kinds import Kind, NUMERIC_KINDS
from .typedesc import (
    BOOL, COMPLEX128, FLOAT64, INT, NIL_TYPE, STRING, TypeDescriptor, pointer_to,
)

_MISSING = object()


def zero(t: TypeDescriptor) -> Any:
    """Return fresh zero data for *t*; composite zeros never share storage."""
    k = t.kind
    if k in NUMERIC_KINDS:
        return numeric.normalize(k, 0)
    if k == Kind.BOOL:
        return False
    if k == Kind.STRING:
        return ""
    if k == Kind.UINTPTR:
        return 0
    if k == Kind.ARRAY:
        return [zero(t.elem) for _ in range(t.length)]
    if k == Kind.STRUCT:
        return [zero(f.type) for f in t.fields]
    return None


def clone(t: TypeDescriptor, data: Any) -> Any:
    """Copy *data* of type *t* with value semantics for arrays and structs."""
    k = t.kind
    if data is None:
        return None
    if k == Kind.ARRAY:
        return [clone(t.elem, x) for x in data]
    if k == Kind.STRUCT:
        return [clone(f.type, x) for f, x in zip(t.fields, data)]
    return data


class Value:
    """A settable handle on data of a known type."""

    __slots__ = ("type", "data")

    def __init__(self, type: TypeDescriptor, data: Any = _MISSING) -> None:
        if not isinstance(type, TypeDescriptor):
            raise TypeError(f"expected TypeDescriptor, got {type!r}")
        self.type = type
        self.data = zero(type) if data is _MISSING else _coerce(type, data)

    @property
    def kind(self) -> Kind:
        return self.type.kind

    @property
    def is_nil(self) -> bool:
        return self.data is None

    def set(self, data: Any) -> None:
        """Replace the held data (numeric data is normalized to the kind)."""
        self.data = _coerce(self.type, data)

    def assign(self, other: 'Value') -> None:
        """Copy *other* into this value; both must have the same type."""
        if other.type != self.type:
            raise TypeError(f"cannot assign {other.type} to {self.type}")
        self.data = clone(self.type, other.data)

    def elem(self) -> Optional['Value']:
        """Dereference a pointer or unbox an interface (``None`` if nil)."""
        if self.kind not in (Kind.POINTER, Kind.INTERFACE):
            raise TypeError(f"elem of non-pointer type {self.type}")
        return self.data

    def copy(self) -> 'Value':
        return Value(self.type, clone(self.type, self.data))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        return self.type == other.type and self.data == other.data

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        return f"Value({self.type}, {self.data!r})"


def _coerce(t: TypeDescriptor, data: Any) -> Any:
    k = t.kind
    if k in NUMERIC_KINDS:
        return numeric.normalize(k, data)
    if k == Kind.ARRAY and data is not None and len(data) != t.length:
        raise ValueError(f"{t} needs {t.length} elements, got {len(data)}")
    if k == Kind.STRUCT and data is not None and len(data) != len(t.fields):
        raise ValueError(f"{t} needs {len(t.fields)} fields, got {len(data)}")
    return data


def new(t: TypeDescriptor) -> Value:
    """Return a pointer ``Value`` to a fresh zero value of *t*."""
    return Value(pointer_to(t), Value(t))


def value_of(obj: Any, t: Optional[TypeDescriptor] = None) -> Value:
    """Wrap *obj* in a ``Value``.

    A ``Value`` is returned as-is.  With *t* given, *obj* is taken as raw
    data of that type.  Otherwise the type is inferred for plain scalars:
    ``None`` → nil, ``bool``, ``int``, ``float`` → float64,
    ``complex`` → complex128, ``str`` → string.  A plain ``int`` outside
    the range of ``int`` raises ``ConversionError`` rather than wrapping.
    """
    if isinstance(obj, Value):
        return obj
    if t is not None:
        return Value(t, obj)
    if obj is None:
        return Value(NIL_TYPE, None)
    if isinstance(obj, bool):
        return Value(BOOL, obj)
    if isinstance(obj, int):
        if numeric.wrap_int(Kind.INT, obj) != obj:
            raise ConversionError(f"{obj} overflows int; wrap it in a typed Value")
        return Value(INT, obj)
    if isinstance(obj, float):
        return Value(FLOAT64, obj)
    if isinstance(obj, complex):
        return Value(COMPLEX128, obj)
    if isinstance(obj, str):
        return Value(STRING, obj)
    raise TypeError(f"cannot infer the type of {type(obj).__name__!r}; wrap it in a Value")
