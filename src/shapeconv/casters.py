"""Built-in text casters used by the default rule set.

This module defines the conversion functions ``build_default_scheme`` and
``build_default_inverse`` use to move values between text and the simple
kinds: parsing a string into a number or a boolean, and formatting any
simple value back into a string.

Exports
-------
BUILTIN_CASTERS
    Dictionary mapping caster names to caster functions.
    Default names: int, uint, float, complex, bool, str.

nature_caster
    Name of the parsing caster for a numeric kind.

Custom casters can be registered by passing a custom casters dict to
``build_default_scheme(casters=...)``; entries are merged over the
built-ins, so only the ones being replaced need to be given.
"""

from __future__ import annotations

from typing import Any, Callable

from .kinds import Kind
from .numeric import DESCRIPTORS, Nature

_TRUE = frozenset({"true", "t", "yes", "y", "on", "1"})
_FALSE = frozenset({"false", "f", "no", "n", "off", "0"})


def _to_uint(x: Any) -> int:
    n = int(x)
    if n < 0:
        raise ValueError(f"negative value {x!r} for an unsigned integer")
    return n


def _to_bool(x: Any) -> bool:
    if isinstance(x, str):
        s = x.strip().lower()
        if s in _TRUE:
            return True
        if s in _FALSE:
            return False
        raise ValueError(f"invalid boolean {x!r}")
    return bool(x)


def _to_str(x: Any) -> str:
    if isinstance(x, bool):
        return "true" if x else "false"
    return str(x)


# ─────────────────────────────────────────────────────────────────────────────
# Built-in casters
# ─────────────────────────────────────────────────────────────────────────────

BUILTIN_CASTERS: dict[str, Callable[[Any], Any]] = {
    "int": lambda x: int(x),
    "uint": _to_uint,
    "float": lambda x: float(x),
    "complex": lambda x: complex(x.replace(" ", "") if isinstance(x, str) else x),
    "bool": _to_bool,
    "str": _to_str,
}

_NATURE_NAMES = {
    Nature.UINT: "uint",
    Nature.INT: "int",
    Nature.FLOAT: "float",
    Nature.COMPLEX: "complex",
}


def nature_caster(kind: Kind) -> str:
    """Return the ``BUILTIN_CASTERS`` key that parses text into *kind*."""
    return _NATURE_NAMES[DESCRIPTORS[kind].nature]
