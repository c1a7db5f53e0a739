"""
Library to bind flat string key/value data to Python interfaces in a type-safe way.
"""

from ._errors import (
    CoercionError,
    InterfaceBinderError,
    InvalidCharacterError,
    InvalidSignatureError,
    MissingValueError,
    NumericFormatError,
    OverrideTypeMismatchError,
    UnimplementedGenericOperationError,
    UnsupportedTypeError,
)
from ._impl import (
    Binder,
    BoundInstance,
    Char,
    Float32,
    Int8,
    Int16,
    Int32,
    Int64,
    Override,
    bind,
    generate_template,
)

__all__ = [
    "Binder",
    "BoundInstance",
    "Char",
    "CoercionError",
    "Float32",
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "InterfaceBinderError",
    "InvalidCharacterError",
    "InvalidSignatureError",
    "MissingValueError",
    "NumericFormatError",
    "Override",
    "OverrideTypeMismatchError",
    "UnimplementedGenericOperationError",
    "UnsupportedTypeError",
    "bind",
    "generate_template",
]
