"""Resolution engine — ``Scheme`` (into a fixed type) and ``Inverse`` (from a
fixed type).

Lifecycle::

    scheme = Scheme(STRING)              # open: accepts rules
    scheme.load(INT, int_to_text)        # specific / generic / basic
    scheme.load(Struct, struct_to_text)
    conv = scheme.build()                # built: no more rules
    conv.convert(44)                     # → "44"

Registration (``load``) sorts a rule into one of four registries:

* ``basic``    – the counter-type is unnamed and made only of unnamed parts;
  keyed by its Base hash, so the rule serves every layout-equivalent type.
  Numeric basic rules are mirrored into ``numeric``.
* ``generic``  – the counter is a marker class from ``generic``
  (``Array``, ``Map``, ``Number``, ``Pointer``, ``Slice``, ``Struct``).
* ``specific`` – anything else: the rule serves exactly that type.

Dispatch, per counter-type ``t`` (the type of the non-fixed side)::

    cache[t]                    → hit: invoke
    specific[t]                 → cache, invoke
    generic[kind family of t]   → cache, invoke
    basic[hash(base(t))]        → cache, invoke
    t numeric:
        closest numeric[k] by rating → synthesize bridge t ↔ k,
                                       register under basic, cache, invoke
        none viable                  → mark the Base invalid
    → cache and raise InvalidConversionError

The per-type cache is a ``Library``, so concurrent first calls for the same
type resolve exactly once.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import inspect
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import numeric
from .base import base_hash, base_of, hash_of, is_basic, is_concrete, reconstruct
from .errors import (
    BaseEncodingError, BuildError, InvalidConversionError, RegistrationError,
)
from .generic import MARKER_KINDS, FieldAccess, Nil, kind_family, make_handle
from .kinds import Kind
from .library import Library
from .typedesc import NIL_TYPE, TypeDescriptor, simple_type
from .values import Value, clone, value_of

logger = logging.getLogger(__name__)

# rule(dst, src) -> None; raises on failure
Rule = Callable[[Any, Any], None]


# ─────────────────────────────────────────────────────────────────────────────
# Registration-time checks
# ─────────────────────────────────────────────────────────────────────────────


class _FuncEval:
    """Check that a rule matches the ``(dst, src)`` call shape.

    *fixed_index* is the parameter position holding the fixed type (0 for a
    Scheme's destination, 1 for an Inverse's source).  Parameter annotations
    that are ``TypeDescriptor`` objects or generic markers are checked
    against the fixed type and may supply the counter-type.
    """

    def __init__(self, fixed: TypeDescriptor, fixed_index: int) -> None:
        self.fixed = fixed
        self.fixed_index = fixed_index
        self.counter_index = 1 - fixed_index

    def check(self, fn: Any) -> Optional[inspect.Signature]:
        if fn is None:
            raise RegistrationError("nil input")
        if not callable(fn):
            raise RegistrationError(f"non-function input: {fn!r}")

        try:
            sig = self._signature(fn)
        except (TypeError, ValueError):
            return None  # builtins without introspectable signatures

        try:
            sig.bind(None, None)
        except TypeError:
            raise RegistrationError(f"expected function with 2 inputs, got {sig}") from None

        ann = self._annotation(sig, self.fixed_index)
        if isinstance(ann, TypeDescriptor) and ann != self.fixed:
            raise RegistrationError(f"expected input #{self.fixed_index} to be {self.fixed}, got {ann}")
        return sig

    def counter(self, sig: Optional[inspect.Signature]) -> Any:
        """Counter-type declared by annotation, if any."""
        if sig is None:
            return None
        ann = self._annotation(sig, self.counter_index)
        if isinstance(ann, TypeDescriptor) or ann is Nil:
            return ann
        if isinstance(ann, type) and ann in MARKER_KINDS:
            return ann
        return None

    @staticmethod
    def _signature(fn: Any) -> inspect.Signature:
        # modules using postponed annotations hand them over as strings
        try:
            return inspect.signature(fn, eval_str=True)
        except (NameError, AttributeError, SyntaxError):
            return inspect.signature(fn)

    @staticmethod
    def _annotation(sig: inspect.Signature, index: int) -> Any:
        params = [
            p for p in sig.parameters.values()
            if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        ]
        if index >= len(params):
            return None
        ann = params[index].annotation
        return None if ann is inspect.Parameter.empty else ann


class Reference:
    """Forward handle on a dispatch object that does not exist yet.

    Obtained from ``Scheme.reference()`` / ``Inverse.reference()`` so that a
    rule can call the finished dispatcher recursively.  Bound by ``build``.
    """

    def __init__(self, owner: str) -> None:
        self._owner = owner
        self._target: Any = None

    def _bind(self, target: Any) -> None:
        self._target = target

    def _get(self) -> Any:
        if self._target is None:
            raise BuildError(f"{self._owner} referenced before build")
        return self._target

    def __call__(self, dst: Any, src: Any) -> None:
        self._get()(dst, src)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._get(), name)


# ─────────────────────────────────────────────────────────────────────────────
# Shared engine
# ─────────────────────────────────────────────────────────────────────────────


class _Engine(ABC):
    """Registries, lifecycle and dispatch shared by both directions."""

    _label = "scheme"

    def __init__(self, fixed: TypeDescriptor, fixed_index: int) -> None:
        if not isinstance(fixed, TypeDescriptor):
            raise TypeError(f"expected TypeDescriptor, got {fixed!r}")
        self.fixed = fixed
        self._eval = _FuncEval(fixed, fixed_index)

        self._specific: Dict[TypeDescriptor, Rule] = {}
        self._generic: Dict[Kind, Rule] = {}
        self._basic: Dict[int, Rule] = {}
        self._numeric: Dict[Kind, Rule] = {}  # subset of basic

        self._cache: Optional[Library[Rule]] = None
        self._references: List[Reference] = []
        self._mux = threading.Lock()

    # -- registration -------------------------------------------------------

    def load(self, counter: Any, rule: Optional[Rule] = None, *, fields: FieldAccess = FieldAccess.EXPORTED) -> Rule:
        """Register *rule* for *counter*; later registrations for the same key win.

        *counter* is a ``TypeDescriptor`` or a generic marker class.  When
        *rule* is omitted, *counter* is taken as the rule and the
        counter-type is read from its parameter annotation.  *fields* sets
        the field policy handed to ``Struct`` rules.

        Returns *rule* (so ``load`` composes with decorators).
        """
        self._check_open()
        if rule is None:
            rule = counter
            counter = self._eval.counter(self._eval.check(rule))
            if counter is None:
                raise RegistrationError(f"cannot infer the counter-type of {rule!r}; pass it explicitly")
        else:
            self._eval.check(rule)

        if counter is Nil:
            self._load_nil(rule)
        elif isinstance(counter, type) and counter in MARKER_KINDS:
            self._load_generic(counter, rule, fields)
        elif isinstance(counter, TypeDescriptor):
            if is_basic(counter):
                self._load_basic(counter, rule, original=True)
            else:
                self._load_specific(counter, rule)
        else:
            raise RegistrationError(
                f"expected input #{self._eval.counter_index} to be a TypeDescriptor or generic marker, got {counter!r}"
            )
        return rule

    def rule(self, counter: Any, *, fields: FieldAccess = FieldAccess.EXPORTED) -> Callable[[Rule], Rule]:
        """Decorator form of ``load``::

            @scheme.rule(INT)
            def int_to_text(dst, src): ...
        """

        def decorator(fn: Rule) -> Rule:
            return self.load(counter, fn, fields=fields)

        return decorator

    def reference(self) -> Reference:
        """Return a forward handle on the dispatcher ``build`` will produce."""
        self._check_open()
        ref = Reference(repr(self))
        self._references.append(ref)
        return ref

    def _load_specific(self, t: TypeDescriptor, rule: Rule) -> None:
        self._specific[t] = rule

    def _load_nil(self, rule: Rule) -> None:
        raise RegistrationError(f"Nil cannot be used by an {self._label}")

    def _load_basic(self, t: TypeDescriptor, rule: Rule, original: bool) -> None:
        # the basic type itself needs no layout transfer
        self._load_specific(t, rule)

        self._basic[hash_of(t)] = self._wrap_basic(t, rule)

        # original=False marks synthesized bridges; they never feed further substitution
        if original and t.is_numeric:
            self._numeric[numeric.alias(t.kind)] = self._basic[hash_of(t)]
            self._drop_alias(t.kind)

    def _drop_alias(self, k: Kind) -> None:
        for plain in (Kind.INT, Kind.UINT):
            fixed = numeric.alias(plain)
            if k == plain:
                self._specific.pop(simple_type(fixed), None)
            elif k == fixed:
                self._specific.pop(simple_type(plain), None)

    def _load_generic(self, marker: type, rule: Rule, fields: FieldAccess) -> None:
        self._generic[MARKER_KINDS[marker]] = self._wrap_generic(marker, rule, fields)

    # -- direction hooks ----------------------------------------------------

    @abstractmethod
    def _wrap_basic(self, t: TypeDescriptor, rule: Rule) -> Rule:
        """Adapt a basic rule for *t* to any layout-equivalent counter-type."""

    @abstractmethod
    def _wrap_generic(self, marker: type, rule: Rule, fields: FieldAccess) -> Rule:
        """Adapt a marker rule so it receives a generic handle."""

    @abstractmethod
    def _implicit(self, t: TypeDescriptor) -> Rule:
        """Layout transfer between the fixed type and its basic form *t*."""

    @abstractmethod
    def _rate(self, counter: Kind, candidate: Kind) -> int:
        """Cost of reaching *counter* through a rule for *candidate*; -1 if lossy."""

    @abstractmethod
    def _bridge(self, num_type: TypeDescriptor, best_type: TypeDescriptor, best: Rule) -> Rule:
        """Rule for *num_type* that routes through the numeric rule *best*."""

    @abstractmethod
    def _invalid(self, dst: Any, src: Any) -> None:
        """Cached rule for counter-types with no conversion."""

    @abstractmethod
    def _dispatcher(self) -> Any:
        """Wrap the built engine in its public dispatch object."""

    # -- build --------------------------------------------------------------

    def build(self) -> Any:
        """Package all loaded rules into a single dispatch object.

        Installs the implicit layout conversion for the fixed type when its
        Base is concrete and no explicit basic rule covers it, then fails
        with ``BuildError`` if no rule of any kind is available.
        """
        self._check_open()
        self._fill()

        if not self._specific and not self._generic and not self._basic:
            raise BuildError(f"empty {self._label}")

        self._cache = Library(self._resolve)
        dispatcher = self._dispatcher()
        for ref in self._references:
            ref._bind(dispatcher)
        logger.debug(
            "%r built: %d specific, %d generic, %d basic, %d numeric",
            self, len(self._specific), len(self._generic), len(self._basic), len(self._numeric),
        )
        return dispatcher

    @property
    def built(self) -> bool:
        return self._cache is not None

    def _check_open(self) -> None:
        if self._cache is not None:
            raise BuildError(f"{self!r} is already built")

    def _fill(self) -> None:
        if self.fixed.kind == Kind.INVALID:
            return
        try:
            b = base_of(self.fixed)
        except BaseEncodingError as e:
            logger.debug("%r: no implicit conversion (%s)", self, e)
            return
        if not is_concrete(b):
            return  # interfaces have no fixed layout
        if base_hash(b) in self._basic:
            return  # explicit basic conversion already present

        t = reconstruct(b)
        self._load_basic(t, self._implicit(t), original=True)
        logger.debug("%r: implicit layout conversion via %s", self, t)

    # -- dispatch -----------------------------------------------------------

    def _lookup(self, t: TypeDescriptor) -> Rule:
        return self._cache.get(t)

    def _resolve(self, t: TypeDescriptor) -> Tuple[Rule, bool]:
        rule = self._specific.get(t)
        if rule is not None:
            logger.debug("%r: %s resolved as specific", self, t)
            return rule, True

        rule = self._generic.get(kind_family(t))
        if rule is not None:
            logger.debug("%r: %s resolved as generic %s", self, t, kind_family(t))
            return rule, True

        try:
            h = hash_of(t)
        except BaseEncodingError:
            h = None

        if h is not None:
            rule = self._basic.get(h)
            if rule is not None:
                logger.debug("%r: %s resolved as basic", self, t)
                return rule, True

            if t.is_numeric:
                return self._substitute(t, h), True

        logger.debug("%r: %s has no conversion", self, t)
        return self._invalid, True

    def _substitute(self, t: TypeDescriptor, h: int) -> Rule:
        with self._mux:
            # another layout-equivalent type may have synthesized it already
            rule = self._basic.get(h)
            if rule is not None:
                return rule

            best: Optional[Rule] = None
            best_rating = -1
            best_kind = Kind.INVALID
            for kk, fn in sorted(self._numeric.items()):
                r = self._rate(t.kind, kk)
                if r >= 0 and (best_rating == -1 or r < best_rating):
                    best, best_rating, best_kind = fn, r, kk

            if best is None:
                logger.debug("%r: no numeric substitute for %s", self, t)
                self._basic[h] = self._invalid
                return self._invalid

            logger.debug("%r: %s substituted by %s (rating %d)", self, t, best_kind, best_rating)
            num_type = simple_type(t.kind)
            self._load_basic(num_type, self._bridge(num_type, simple_type(best_kind), best), original=False)
            return self._basic[h]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.fixed})"


# ─────────────────────────────────────────────────────────────────────────────
# Scheme — many sources → one destination
# ─────────────────────────────────────────────────────────────────────────────


class Scheme(_Engine):
    """Conversions from various source types into *dst*.

    Rules have the shape ``rule(dst: Value, src)`` where *dst* is a settable
    ``Value`` of the destination type and *src* is a ``Value`` of the
    registered source type (or a generic handle for marker rules).  Marker
    rules see a ``clone`` of the source, so writes to arrays and structs
    through the handle never reach the caller.
    """

    _label = "scheme"

    def __init__(self, dst: TypeDescriptor) -> None:
        super().__init__(dst, 0)

    @property
    def dst(self) -> TypeDescriptor:
        return self.fixed

    def _load_nil(self, rule: Rule) -> None:
        self._specific[NIL_TYPE] = rule

    def _wrap_basic(self, t: TypeDescriptor, rule: Rule) -> Rule:
        def basic(dst: Value, src: Value) -> None:
            rule(dst, Value(t, clone(src.type, src.data)))

        return basic

    def _wrap_generic(self, marker: type, rule: Rule, fields: FieldAccess) -> Rule:
        def generic(dst: Value, src: Value) -> None:
            rule(dst, make_handle(marker, src.copy(), access=fields))

        return generic

    def _implicit(self, t: TypeDescriptor) -> Rule:
        def implicit(dst: Value, src: Value) -> None:
            dst.set(clone(t, src.data))

        return implicit

    def _rate(self, counter: Kind, candidate: Kind) -> int:
        # the candidate must hold the source
        return numeric.rate(candidate, counter)

    def _bridge(self, num_type: TypeDescriptor, best_type: TypeDescriptor, best: Rule) -> Rule:
        def bridge(dst: Value, src: Value) -> None:
            tmp = Value(best_type)
            numeric.convert(tmp, src)
            best(dst, tmp)

        return bridge

    def _invalid(self, dst: Any, src: Any) -> None:
        raise InvalidConversionError(getattr(src, "type", None), self.fixed)

    def _dispatcher(self) -> 'SchemeFunc':
        return SchemeFunc(self)


class SchemeFunc:
    """Built dispatcher of a ``Scheme``."""

    def __init__(self, scheme: Scheme) -> None:
        self._scheme = scheme

    @property
    def type(self) -> TypeDescriptor:
        return self._scheme.fixed

    def __call__(self, dst: Value, src: Any) -> None:
        """Convert *src* (a ``Value`` or plain scalar) into *dst*."""
        if dst.type != self._scheme.fixed:
            raise TypeError(f"destination must be {self._scheme.fixed}, got {dst.type}")
        src = value_of(src)
        self._scheme._lookup(src.type)(dst, src)

    def value(self, src: Any) -> Value:
        dst = Value(self._scheme.fixed)
        self(dst, src)
        return dst

    def convert(self, src: Any) -> Any:
        """Convert *src* and return the destination data."""
        return self.value(src).data

    def resolve(self, t: TypeDescriptor) -> Rule:
        """Return (and cache) the rule chosen for source type *t*."""
        return self._scheme._lookup(t)

    def __repr__(self) -> str:
        return f"SchemeFunc({self._scheme.fixed})"


# ─────────────────────────────────────────────────────────────────────────────
# Inverse — one source → many destinations
# ─────────────────────────────────────────────────────────────────────────────


class Inverse(_Engine):
    """Conversions from *src* into various destination types.

    Rules have the shape ``rule(dst, src: Value)`` where *dst* is a settable
    ``Value`` of the registered destination type (or an allocating generic
    handle for marker rules) and *src* a ``Value`` of the source type.
    """

    _label = "inverse"

    def __init__(self, src: TypeDescriptor) -> None:
        super().__init__(src, 1)

    @property
    def src(self) -> TypeDescriptor:
        return self.fixed

    def _wrap_basic(self, t: TypeDescriptor, rule: Rule) -> Rule:
        def basic(dst: Value, src: Value) -> None:
            tmp = Value(t)
            rule(tmp, src)
            dst.set(clone(t, tmp.data))

        return basic

    def _wrap_generic(self, marker: type, rule: Rule, fields: FieldAccess) -> Rule:
        def generic(dst: Value, src: Value) -> None:
            rule(make_handle(marker, dst, allocate=True, access=fields), src)

        return generic

    def _implicit(self, t: TypeDescriptor) -> Rule:
        def implicit(dst: Value, src: Value) -> None:
            dst.set(clone(src.type, src.data))

        return implicit

    def _rate(self, counter: Kind, candidate: Kind) -> int:
        # the destination must hold the candidate
        return numeric.rate(counter, candidate)

    def _bridge(self, num_type: TypeDescriptor, best_type: TypeDescriptor, best: Rule) -> Rule:
        def bridge(dst: Value, src: Value) -> None:
            tmp = Value(best_type)
            best(tmp, src)
            numeric.convert(dst, tmp)

        return bridge

    def _invalid(self, dst: Any, src: Any) -> None:
        raise InvalidConversionError(self.fixed, getattr(dst, "type", None))

    def _dispatcher(self) -> 'InverseFunc':
        return InverseFunc(self)


class InverseFunc:
    """Built dispatcher of an ``Inverse``."""

    def __init__(self, inverse: Inverse) -> None:
        self._inverse = inverse

    @property
    def type(self) -> TypeDescriptor:
        return self._inverse.fixed

    def __call__(self, dst: Value, src: Any) -> None:
        """Convert *src* (a ``Value`` or raw data of the source type) into *dst*."""
        fixed = self._inverse.fixed
        if not isinstance(src, Value):
            src = Value(fixed, src)
        elif src.type != fixed:
            raise TypeError(f"source must be {fixed}, got {src.type}")
        self._inverse._lookup(dst.type)(dst, src)

    def value(self, t: TypeDescriptor, src: Any) -> Value:
        dst = Value(t)
        self(dst, src)
        return dst

    def to(self, t: TypeDescriptor, src: Any) -> Any:
        """Convert *src* into a fresh value of type *t*; return its data."""
        return self.value(t, src).data

    def resolve(self, t: TypeDescriptor) -> Rule:
        """Return (and cache) the rule chosen for destination type *t*."""
        return self._inverse._lookup(t)

    def __repr__(self) -> str:
        return f"InverseFunc({self._inverse.fixed})"
