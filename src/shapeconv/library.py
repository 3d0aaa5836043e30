"""Memoizing rule library and builder chains.

``Library`` maps a ``TypeDescriptor`` to a lazily built item.  The first
``get`` for a type runs the builder; every later ``get`` is a plain dict
read.  Locking is optimistic-read / pessimistic-write:

::

    get(t):
        items[t] hit              → return                  (no lock)
        else lock table briefly   → fetch/create per-key lock
        with per-key lock:
            re-check items[t]     → another thread may have finished
            build, store, return

Builds of *different* keys run in parallel; concurrent callers of the
*same* key wait for the one in-flight build, so a builder runs at most once
per key.  A builder reporting *not found* stores the library's default, so
misses are not retried either.  Exceptions raised by a builder propagate and
leave nothing cached.

On top of it, ``BuilderChain`` / ``Conversion`` / ``Inversion`` give the
builder-based front end::

    chain = BuilderChain()
    chain.use(int_builder)
    chain.use(slice_builder)
    conv = Conversion(chain.build)
    conv.call(Value(my_int_type, 44))
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from .errors import BuildError, InvalidConversionError
from .typedesc import TypeDescriptor
from .values import Value, value_of

logger = logging.getLogger(__name__)

T = TypeVar("T")

Builder = Callable[[TypeDescriptor], Tuple[Any, bool]]

# converter: typed value → T;  inverter: T → typed value
Converter = Callable[[Value], Any]
Inverter = Callable[[Any], Value]


class Library(Generic[T]):
    """Thread-safe, build-once cache keyed by type."""

    def __init__(self, builder: Callable[[TypeDescriptor], Tuple[T, bool]], default: Optional[T] = None) -> None:
        self._builder = builder
        self._default = default
        self._items: Dict[TypeDescriptor, T] = {}
        self._locks: Dict[TypeDescriptor, threading.Lock] = {}
        self._mux = threading.Lock()
        self._local = threading.local()

    def get(self, t: TypeDescriptor) -> T:
        """Return the item for *t*, building it on first request."""
        try:
            return self._items[t]
        except KeyError:
            pass

        building = self._in_progress()
        if t in building:
            raise BuildError(f"recursive build of {t}: the builder requested its own key")

        with self._mux:
            lock = self._locks.setdefault(t, threading.Lock())

        try:
            with lock:
                try:
                    return self._items[t]
                except KeyError:
                    pass

                building.add(t)
                try:
                    item, found = self._builder(t)
                finally:
                    building.discard(t)

                if not found:
                    logger.debug("no item for %s; caching default", t)
                    item = self._default
                self._items[t] = item
                return item
        finally:
            with self._mux:
                if self._locks.get(t) is lock and t in self._items:
                    del self._locks[t]

    def peek(self, t: TypeDescriptor, default: Any = None) -> Any:
        """Return the cached item for *t* without building it."""
        return self._items.get(t, default)

    def __contains__(self, t: object) -> bool:
        return t in self._items

    def __len__(self) -> int:
        return len(self._items)

    def _in_progress(self) -> set:
        building = getattr(self._local, "building", None)
        if building is None:
            building = self._local.building = set()
        return building


# ─────────────────────────────────────────────────────────────────────────────
# Builder chains
# ─────────────────────────────────────────────────────────────────────────────


class BuilderChain(Generic[T]):
    """Ordered list of builders; the first one to report *found* wins.

    ::

        chain = BuilderChain()
        chain.use(lambda t: (to_int, True) if t.kind == Kind.INT else (None, False))
        lib = Library(chain.build)
    """

    def __init__(self) -> None:
        self._builders: List[Callable[[TypeDescriptor], Tuple[T, bool]]] = []

    def use(self, builder: Callable[[TypeDescriptor], Tuple[T, bool]]) -> None:
        """Append *builder* to the chain."""
        if not callable(builder):
            raise TypeError(f"builder must be callable, got {builder!r}")
        self._builders.append(builder)

    def build(self, t: TypeDescriptor) -> Tuple[Optional[T], bool]:
        for builder in self._builders:
            item, found = builder(t)
            if found:
                return item, True
        return None, False

    def __len__(self) -> int:
        return len(self._builders)


class Conversion:
    """Convert values of any type into a single target, via per-type converters."""

    def __init__(self, build: Callable[[TypeDescriptor], Tuple[Optional[Converter], bool]]) -> None:
        self._lib: Library[Optional[Converter]] = Library(build)

    def call(self, obj: Any) -> Any:
        v = value_of(obj)
        fn = self._lib.get(v.type)
        if fn is None:
            raise InvalidConversionError(v.type, None)
        return fn(v)

    __call__ = call


class Inversion:
    """Convert a single source representation into values of any type."""

    def __init__(self, build: Callable[[TypeDescriptor], Tuple[Optional[Inverter], bool]]) -> None:
        self._lib: Library[Optional[Inverter]] = Library(build)

    def value(self, t: TypeDescriptor, obj: Any) -> Value:
        """Produce a ``Value`` of type *t* from *obj*."""
        fn = self._lib.get(t)
        if fn is None:
            raise InvalidConversionError(None, t)
        out = fn(obj)
        if out.type != t:
            # inverters may answer with any layout-equivalent value
            out = Value(t, out.data)
        return out

    def to(self, t: TypeDescriptor, obj: Any) -> Any:
        """Like ``value`` but returns the raw data."""
        return self.value(t, obj).data
