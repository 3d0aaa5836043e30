"""shapeconv — runtime-resolved conversions between typed values.

A ``Scheme`` collects rules converting *into* one fixed type, an ``Inverse``
rules converting *out of* one.  Once built, the dispatcher picks a rule per
counter-type on first use (specific, then generic, then layout-equivalent,
then the closest lossless numeric substitute) and caches the choice.

    from shapeconv import Scheme, STRING, INT

    scheme = Scheme(STRING)
    scheme.load(INT, lambda dst, src: dst.set(str(src.data)))
    conv = scheme.build()
    conv.convert(44)   # "44"
"""

from .base import base_of, hash_of, is_basic, is_concrete, reconstruct
from .casters import BUILTIN_CASTERS
from .core import Inverse, InverseFunc, Reference, Rule, Scheme, SchemeFunc
from .errors import (
    BaseEncodingError,
    BuildError,
    ConvError,
    ConversionError,
    InvalidConversionError,
    RegistrationError,
    TypeNotationError,
)
from .factory import build_default_inverse, build_default_scheme
from .generic import Array, FieldAccess, Map, Nil, Number, Pointer, Slice, Struct, StructField
from .kinds import ChanDir, Kind
from .library import BuilderChain, Conversion, Converter, Inversion, Inverter, Library
from .notation import parse_type
from .typedesc import (
    ANY, BOOL, COMPLEX64, COMPLEX128, FLOAT32, FLOAT64,
    INT, INT8, INT16, INT32, INT64, NIL_TYPE, STRING,
    UINT, UINT8, UINT16, UINT32, UINT64, UINTPTR, UNSAFE_POINTER,
    Field, TypeDescriptor,
    array_of, chan_of, func_of, interface_of, map_of, named, pointer_to, slice_of, struct_of,
)
from .values import Value, new, value_of

__all__ = [
    # engine
    "Scheme",
    "SchemeFunc",
    "Inverse",
    "InverseFunc",
    "Reference",
    "Rule",
    "build_default_scheme",
    "build_default_inverse",
    "BUILTIN_CASTERS",
    # library
    "Library",
    "BuilderChain",
    "Conversion",
    "Inversion",
    "Converter",
    "Inverter",
    # generic accessors
    "Array",
    "Slice",
    "Map",
    "Pointer",
    "Struct",
    "StructField",
    "Number",
    "Nil",
    "FieldAccess",
    # type model
    "Kind",
    "ChanDir",
    "TypeDescriptor",
    "Field",
    "parse_type",
    "array_of",
    "slice_of",
    "map_of",
    "pointer_to",
    "struct_of",
    "func_of",
    "chan_of",
    "interface_of",
    "named",
    "ANY",
    "BOOL",
    "STRING",
    "INT",
    "INT8",
    "INT16",
    "INT32",
    "INT64",
    "UINT",
    "UINT8",
    "UINT16",
    "UINT32",
    "UINT64",
    "UINTPTR",
    "FLOAT32",
    "FLOAT64",
    "COMPLEX64",
    "COMPLEX128",
    "UNSAFE_POINTER",
    "NIL_TYPE",
    # values
    "Value",
    "new",
    "value_of",
    # bases
    "base_of",
    "hash_of",
    "is_basic",
    "is_concrete",
    "reconstruct",
    # errors
    "ConvError",
    "RegistrationError",
    "BuildError",
    "ConversionError",
    "InvalidConversionError",
    "BaseEncodingError",
    "TypeNotationError",
]
