"""Scheme factory — the single place where the default rule set is assembled.

``build_default_scheme`` / ``build_default_inverse`` are the recommended
entry points for users who want a working dispatcher without hand-loading
the everyday text conversions.

Customisation points:

* **rules**   – mapping of counter-type (``TypeDescriptor`` or generic
                marker) to rule, loaded after the defaults so they win.
* **casters** – dict merged over ``BUILTIN_CASTERS``.
* **text**    – ``False`` skips the text rules entirely.
* **fields**  – ``FieldAccess`` policy for ``Struct`` rules in *rules*.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from .casters import BUILTIN_CASTERS, nature_caster
from .core import Inverse, InverseFunc, Rule, Scheme, SchemeFunc
from .errors import ConversionError
from .generic import FieldAccess
from .kinds import Kind, NUMERIC_KINDS
from .numeric import alias, wrap_int
from .typedesc import STRING, TypeDescriptor, simple_type
from .values import Value

logger = logging.getLogger(__name__)

Casters = Mapping[str, Callable[[Any], Any]]

# INT / UINT share the Base of their fixed-width alias, so one rule serves both
_TEXT_KINDS = [Kind.BOOL] + sorted(k for k in NUMERIC_KINDS if alias(k) == k)


# ─────────────────────────────────────────────────────────────────────────────
# Text rules
# ─────────────────────────────────────────────────────────────────────────────


def _parse(kind: Kind, casters: Casters, text: str) -> Any:
    name = "bool" if kind == Kind.BOOL else nature_caster(kind)
    try:
        out = casters[name](text)
    except (TypeError, ValueError) as e:
        raise ConversionError(f"cannot parse {text!r} as {kind!s}: {e}") from e

    if kind in NUMERIC_KINDS and kind not in (Kind.FLOAT32, Kind.FLOAT64, Kind.COMPLEX64, Kind.COMPLEX128):
        if wrap_int(kind, out) != out:
            raise ConversionError(f"{text!r} overflows {kind!s}")
    return out


def _parser(kind: Kind, casters: Casters) -> Rule:
    def parse(dst: Value, src: Value) -> None:
        dst.set(_parse(kind, casters, src.data))

    return parse


def _formatter(casters: Casters) -> Rule:
    def fmt(dst: Value, src: Value) -> None:
        dst.set(casters["str"](src.data))

    return fmt


def _load_scheme_text(scheme: Scheme, casters: Casters) -> int:
    dst = scheme.dst
    if dst.kind == Kind.STRING:
        fmt = _formatter(casters)
        for k in _TEXT_KINDS:
            scheme.load(simple_type(k), fmt)
        return len(_TEXT_KINDS)
    if dst.kind in _TEXT_KINDS or dst.kind in NUMERIC_KINDS:
        scheme.load(STRING, _parser(dst.kind, casters))
        return 1
    return 0


def _load_inverse_text(inverse: Inverse, casters: Casters) -> int:
    src = inverse.src
    if src.kind == Kind.STRING:
        for k in _TEXT_KINDS:
            inverse.load(simple_type(k), _parser(k, casters))
        return len(_TEXT_KINDS)
    if src.kind in _TEXT_KINDS or src.kind in NUMERIC_KINDS:
        inverse.load(STRING, _formatter(casters))
        return 1
    return 0


def _merge(casters: Casters | None) -> dict[str, Callable[[Any], Any]]:
    resolved = dict(BUILTIN_CASTERS)
    if casters:
        resolved.update(casters)
    return resolved


# ─────────────────────────────────────────────────────────────────────────────
# Factories
# ─────────────────────────────────────────────────────────────────────────────


def build_default_scheme(
        dst: TypeDescriptor,
        *,
        rules: Mapping[Any, Rule] | None = None,
        casters: Casters | None = None,
        text: bool = True,
        fields: FieldAccess = FieldAccess.EXPORTED,
) -> SchemeFunc:
    """Assemble and build a Scheme converting into *dst*.

    What gets wired
    ---------------
    text rules (``text=True``)
        * *dst* a string kind – every bool and numeric source is formatted
          with the ``str`` caster.
        * *dst* a numeric or bool kind – string sources are parsed with the
          caster for *dst*'s nature (``int``, ``uint``, ``float``,
          ``complex``) or ``bool``; integers that overflow *dst* raise
          ``ConversionError``.

    implicit layout conversion
        Installed by ``build`` for every layout-equivalent source.

    user rules
        Loaded last, so they override any default for the same key.
    """
    resolved = _merge(casters)
    scheme = Scheme(dst)

    n = _load_scheme_text(scheme, resolved) if text else 0
    for counter, rule in (rules or {}).items():
        scheme.load(counter, rule, fields=fields)

    logger.debug("default scheme for %s: %d text rules, %d user rules", dst, n, len(rules or {}))
    return scheme.build()


def build_default_inverse(
        src: TypeDescriptor,
        *,
        rules: Mapping[Any, Rule] | None = None,
        casters: Casters | None = None,
        text: bool = True,
        fields: FieldAccess = FieldAccess.EXPORTED,
) -> InverseFunc:
    """Assemble and build an Inverse converting out of *src*.

    Mirrors ``build_default_scheme``: a string *src* is parsed into every
    bool and numeric destination; a bool or numeric *src* is formatted into
    string destinations.  User *rules* are loaded last.
    """
    resolved = _merge(casters)
    inverse = Inverse(src)

    n = _load_inverse_text(inverse, resolved) if text else 0
    for counter, rule in (rules or {}).items():
        inverse.load(counter, rule, fields=fields)

    logger.debug("default inverse for %s: %d text rules, %d user rules", src, n, len(rules or {}))
    return inverse.build()
