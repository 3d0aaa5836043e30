"""Exception hierarchy shared by every sub-system.

Registration and build problems are raised synchronously from ``load`` /
``build``.  Conversion-time problems are raised from the dispatch object on
the call that hit them; a failing counter-type never affects the others.

Exports
-------
ConvError
    Root of the hierarchy.

RegistrationError
    Malformed rule or counter-type passed to ``load``.

BuildError
    Empty ruleset or lifecycle misuse (load after build, build twice,
    unbound recursion reference).

ConversionError
    A conversion could not be carried out.

InvalidConversionError
    No rule resolves for a counter-type.

BaseEncodingError, TypeNotationError
    Type model problems.
"""

from __future__ import annotations

from typing import Any, Optional


class ConvError(Exception):
    """Base class for all errors raised by this package."""


class RegistrationError(ConvError, TypeError):
    """A rule does not satisfy the registration contract."""


class BuildError(ConvError, RuntimeError):
    """A scheme could not be packaged into a dispatch function."""


class ConversionError(ConvError, ValueError):
    """A value could not be converted."""


class InvalidConversionError(ConversionError):
    """No conversion is available between the two types.

    Attributes:
        src_type: Source type of the failed pairing (may be ``None``).
        dst_type: Destination type of the failed pairing (may be ``None``).
    """

    def __init__(self, src_type: Optional[Any] = None, dst_type: Optional[Any] = None) -> None:
        self.src_type = src_type
        self.dst_type = dst_type
        if src_type is None and dst_type is None:
            msg = "invalid conversion"
        else:
            msg = f"invalid conversion: {src_type} -> {dst_type}"
        super().__init__(msg)


class BaseEncodingError(ConvError, ValueError):
    """A type shape cannot be encoded as a Base."""


class TypeNotationError(ConvError, ValueError):
    """Type notation text could not be parsed.

    Attributes:
        text:     The full input.
        position: Offset of the offending token.
    """

    def __init__(self, message: str, text: str, position: int) -> None:
        self.text = text
        self.position = position
        super().__init__(f"{message} at position {position} in {text!r}")
