"""Implementation module."""

from __future__ import annotations

import logging
import math
import re
import struct
from collections.abc import Callable, Iterable, Iterator, Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from functools import partial, wraps
from inspect import Parameter, get_annotations, signature
from types import FunctionType, MappingProxyType, NoneType, UnionType, new_class
from typing import (
    Any,
    ClassVar,
    Generic,
    NewType,
    NoReturn,
    SupportsIndex,
    TextIO,
    TypeVar,
    Union,
    get_args,
    get_origin,
)
from weakref import WeakKeyDictionary

from ._errors import (
    InvalidCharacterError,
    InvalidSignatureError,
    MissingValueError,
    NumericFormatError,
    OverrideTypeMismatchError,
    UnimplementedGenericOperationError,
    UnsupportedTypeError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Int8 = NewType("Int8", int)
Int16 = NewType("Int16", int)
Int32 = NewType("Int32", int)
Int64 = NewType("Int64", int)
Float32 = NewType("Float32", float)
Char = NewType("Char", str)

Override = Callable[[str | None], Any]
"""
Parser for one specific qualified key, used instead of the built-in coercion.

It receives the raw value from the store, or None if the key is absent.
"""


def _coerce_str(value: str | None, key: str) -> str | None:
    # Absence is not an error here: there is nothing to parse.
    return value


_INTEGER = re.compile(r"[+-]?\d+")


def _coerce_integer(type_name: str, bits: int | None, value: str | None, key: str) -> int:
    if value is None:
        raise NumericFormatError(f"Value for '{key}' is missing, expected '{type_name}'")
    if _INTEGER.fullmatch(value) is None:
        raise NumericFormatError(f"Value for '{key}' is not a valid '{type_name}': {value!r}")
    try:
        number = int(value)
    except ValueError:
        # Exceeds the interpreter's limit on integer string conversion.
        raise NumericFormatError(f"Value for '{key}' is not a valid '{type_name}': {value!r}") from None
    if bits is not None:
        limit = 1 << (bits - 1)
        if not -limit <= number < limit:
            raise NumericFormatError(f"Value for '{key}' is out of range for '{type_name}': {value!r}")
    return number


def _coerce_float(value: str | None, key: str, type_name: str = "float") -> float:
    if value is None:
        raise NumericFormatError(f"Value for '{key}' is missing, expected '{type_name}'")
    if "_" in value:
        # float() accepts digit grouping, the integer coercion does not.
        raise NumericFormatError(f"Value for '{key}' is not a valid '{type_name}': {value!r}")
    try:
        return float(value)
    except ValueError:
        raise NumericFormatError(f"Value for '{key}' is not a valid '{type_name}': {value!r}") from None


def _coerce_float32(value: str | None, key: str) -> float:
    number = _coerce_float(value, key, "Float32")
    try:
        (single,) = struct.unpack("f", struct.pack("f", number))
    except OverflowError:
        return math.copysign(math.inf, number)
    return float(single)


def _coerce_bool(value: str | None, key: str) -> bool:
    return value is not None and value.lower() == "true"


def _coerce_char(value: str | None, key: str) -> str:
    if value is None:
        raise InvalidCharacterError(f"Value for '{key}' is missing, expected a single character")
    if len(value) != 1:
        raise InvalidCharacterError(f"Value for '{key}' has {len(value)} characters, expected a single character")
    return value


_HEX_BYTE = re.compile(r"[0-9A-Fa-f]{2}")


def _coerce_bytes(value: str | None, key: str) -> bytes:
    """
    Collect every pair of hex digits as one byte.

    Anything that is not part of such a pair, like separators or a trailing odd digit, is skipped.
    """
    if value is None:
        raise MissingValueError(f"Value for '{key}' is missing, expected hex digits")
    return bytes(int(match.group(), 16) for match in _HEX_BYTE.finditer(value))


_COERCIONS: Mapping[object, Callable[[str | None, str], object]] = MappingProxyType(
    {
        str: _coerce_str,
        int: partial(_coerce_integer, "int", None),
        Int8: partial(_coerce_integer, "Int8", 8),
        Int16: partial(_coerce_integer, "Int16", 16),
        Int32: partial(_coerce_integer, "Int32", 32),
        Int64: partial(_coerce_integer, "Int64", 64),
        float: _coerce_float,
        Float32: _coerce_float32,
        bool: _coerce_bool,
        Char: _coerce_char,
        bytes: _coerce_bytes,
    }
)


def _is_assignable(value: object, annotation: object) -> bool:
    """
    Check whether a value produced by an override matches an accessor's return annotation.

    Parameterized generics are checked against their origin only, so `list[str]` accepts any list.
    """
    if annotation is Any or annotation is object:
        return True
    supertype = getattr(annotation, "__supertype__", None)
    if supertype is not None:
        # NewType
        return _is_assignable(value, supertype)
    origin = get_origin(annotation)
    if origin in (UnionType, Union):
        return any(_is_assignable(value, arg) for arg in get_args(annotation))
    if annotation is NoneType:
        return value is None
    target = annotation if origin is None else origin
    if not isinstance(target, type):
        return False
    if type(value) is bool and target is not bool:
        # Python considers 'bool' a subclass of 'int', but a flag is not a number.
        return False
    try:
        return isinstance(value, target)
    except TypeError:
        # Protocols that are not runtime checkable.
        return False


def _format_type_name(annotation: object) -> str:
    origin = get_origin(annotation)
    if origin is None:
        if annotation is NoneType:
            return "None"
        elif annotation is Any:
            return "Any"
        elif annotation is Ellipsis:
            return "..."
        elif isinstance(annotation, list):
            return f"[{', '.join(_format_type_name(arg) for arg in annotation)}]"
        else:
            return getattr(annotation, "__name__", repr(annotation))
    elif origin in (UnionType, Union):
        return " | ".join(_format_type_name(arg) for arg in get_args(annotation))
    else:
        return f"{_format_type_name(origin)}[{', '.join(_format_type_name(arg) for arg in get_args(annotation))}]"


def _get_methods(interface: type) -> Iterator[tuple[str, type, FunctionType]]:
    """
    Iterates through the public methods of an interface.

    This includes methods declared by base interfaces. A method that is redefined in a subclass
    keeps the position of its first declaration.
    """

    methods: dict[str, tuple[type, FunctionType]] = {}
    for container in reversed(interface.__mro__):
        for name, member in vars(container).items():
            if name.startswith("_"):
                continue
            if isinstance(member, FunctionType):
                methods[name] = (container, member)
            else:
                # Shadowed by an attribute, static method, property etc.
                methods.pop(name, None)

    for name, (container, method) in methods.items():
        yield name, container, method


def _check_signature(method: FunctionType, context: str) -> None:
    """Verify that a method takes no parameters besides 'self'."""
    parameters = list(signature(method).parameters.values())
    if not parameters or parameters[0].kind not in (Parameter.POSITIONAL_ONLY, Parameter.POSITIONAL_OR_KEYWORD):
        raise InvalidSignatureError(f"Accessor '{context}' does not take 'self'")
    if len(parameters) > 1:
        names = ", ".join(f"'{parameter.name}'" for parameter in parameters[1:])
        raise InvalidSignatureError(f"Accessor '{context}' has parameters: {names}")


def _get_return_type(container: type, method: FunctionType, context: str) -> object:
    """
    Return the evaluated return annotation of a method.

    Raises InvalidSignatureError if the method has no usable return annotation.
    """
    try:
        annotation = get_annotations(method)["return"]
        if isinstance(annotation, str):
            annotation = eval(annotation, method.__globals__, vars(container))  # noqa: PGH001
    except KeyError:
        raise InvalidSignatureError(f"Accessor '{context}' has no return annotation") from None
    except NameError as ex:
        raise InvalidSignatureError(f"Failed to parse return annotation of '{context}': {ex}") from None
    if annotation is None or annotation is NoneType:
        raise InvalidSignatureError(f"Accessor '{context}' returns None")
    return annotation


@dataclass(frozen=True, slots=True)
class _Accessor:
    name: str
    key: str
    return_type: object
    method: FunctionType


@dataclass(slots=True)
class _InterfaceInfo(Generic[T]):

    _cache: ClassVar[MutableMapping[type[Any], _InterfaceInfo[Any]]] = WeakKeyDictionary()

    interface: type[T]
    accessors: Sequence[_Accessor]
    _bound_class: type[T] | None = None

    @classmethod
    def get(cls, interface: type[T]) -> _InterfaceInfo[T]:
        try:
            return cls._cache[interface]
        except KeyError:
            # Validate every accessor before caching, so an invalid interface leaves nothing behind.
            prefix = interface.__name__.lower()
            accessors = []
            for name, container, method in _get_methods(interface):
                context = f"{interface.__name__}.{name}"
                _check_signature(method, context)
                return_type = _get_return_type(container, method, context)
                accessors.append(_Accessor(name, f"{prefix}.{name}", return_type, method))
            # Abstract methods that are not accessors would remain abstract in the bound class.
            accessor_names = {accessor.name for accessor in accessors}
            for name in sorted(getattr(interface, "__abstractmethods__", ())):
                if name not in accessor_names:
                    raise InvalidSignatureError(
                        f"Method '{interface.__name__}.{name}' is abstract but is not an accessor that can be bound"
                    )
            info = cls(interface, tuple(accessors))
            cls._cache[interface] = info
            return info

    @property
    def bound_class(self) -> type[T]:
        bound_class = self._bound_class
        if bound_class is None:
            self._bound_class = bound_class = _make_bound_class(self.interface, self.accessors)
        return bound_class


class BoundInstance:
    """
    Base class of the objects returned by `Binder.bind()`.

    The accessors of the bound interface return values that were resolved when binding.
    Beyond that, bound instances are compared and hashed by identity and their `repr()` lists
    the resolved values. They are immutable: any other generic operation, such as assigning
    an attribute or pickling, raises UnimplementedGenericOperationError.
    """

    __slots__ = ()

    _values: Mapping[str, object]

    def __init__(self, values: Mapping[str, object]) -> None:
        object.__setattr__(self, "_values", MappingProxyType(values))

    def __eq__(self, other: object) -> bool:
        return self is other

    __hash__ = object.__hash__

    def __repr__(self) -> str:
        values = ", ".join(f"{name}={value!r}" for name, value in self._values.items())
        return f"{type(self).__name__}({values})"

    # Otherwise a __str__ defined by the interface would hide the resolved values.
    __str__ = __repr__

    def __getattr__(self, name: str) -> NoReturn:
        raise UnimplementedGenericOperationError(f"'{type(self).__name__}' object does not implement '{name}'")

    def __setattr__(self, name: str, value: object) -> NoReturn:
        raise UnimplementedGenericOperationError(f"Cannot assign attribute '{name}' of '{type(self).__name__}'")

    def __delattr__(self, name: str) -> NoReturn:
        raise UnimplementedGenericOperationError(f"Cannot delete attribute '{name}' of '{type(self).__name__}'")

    def __reduce_ex__(self, protocol: SupportsIndex) -> NoReturn:
        raise UnimplementedGenericOperationError(f"'{type(self).__name__}' object cannot be pickled or copied")


def _make_accessor(name: str, method: FunctionType) -> Callable[[BoundInstance], object]:
    # Don't copy the method's __dict__: that would carry over '__isabstractmethod__'.
    @wraps(method, updated=())
    def accessor(self: BoundInstance) -> object:
        return self._values[name]

    return accessor


def _make_bound_class(interface: type[T], accessors: Iterable[_Accessor]) -> type[T]:
    """Create a class that implements the interface by returning resolved values."""

    def exec_body(namespace: dict[str, Any]) -> None:
        namespace["__module__"] = interface.__module__
        namespace["__doc__"] = interface.__doc__
        for accessor in accessors:
            namespace[accessor.name] = _make_accessor(accessor.name, accessor.method)

    # new_class() picks the most derived metaclass, which is ABCMeta for ABCs and protocols.
    return new_class(f"Bound{interface.__name__}", (BoundInstance, interface), exec_body=exec_body)


class Binder(Generic[T]):
    """
    Binds flat string key/value data to a specific interface.
    """

    __slots__ = ("_interface", "_info")
    _interface: type[T]
    _info: _InterfaceInfo[T]

    def __init__(self, interface: type[T]) -> None:
        if not isinstance(interface, type):
            raise TypeError(f"Expected an interface class, got '{type(interface).__name__}'")
        self._interface = interface
        self._info = _InterfaceInfo.get(interface)

    @property
    def keys(self) -> Sequence[str]:
        """The qualified keys that binding looks up in the store, in declaration order."""
        return [accessor.key for accessor in self._info.accessors]

    def _resolve(self, accessor: _Accessor, store: Mapping[str, str], overrides: Mapping[str, Override]) -> object:
        """
        Compute the value that an accessor will return.

        Raises an InterfaceBinderError if the raw value cannot be converted to the return type.
        """
        key = accessor.key
        value = store.get(key)

        override = overrides.get(key)
        if override is not None:
            logger.debug("Resolving '%s' using override", key)
            result = override(value)
            if not _is_assignable(result, accessor.return_type):
                raise OverrideTypeMismatchError(
                    f"Override for '{key}' returned '{type(result).__name__}', "
                    f"expected '{_format_type_name(accessor.return_type)}'"
                )
            return result

        try:
            coerce = _COERCIONS[accessor.return_type]
        except KeyError:
            raise UnsupportedTypeError(
                f"Accessor '{self._interface.__name__}.{accessor.name}' has unsupported return type "
                f"'{_format_type_name(accessor.return_type)}' and there is no override for '{key}'"
            ) from None
        logger.debug("Resolving '%s' as '%s'", key, _format_type_name(accessor.return_type))
        return coerce(value, key)

    def bind(self, store: Mapping[str, str], overrides: Mapping[str, Override] | None = None) -> T:
        """
        Return an object implementing the interface, with every accessor resolved from the store.

        The value for an accessor is looked up under the key formed by the lower case interface name,
        a dot and the method name. If `overrides` contains a parser for that key, it is used instead
        of the built-in coercion for the accessor's return type. Keys in `overrides` that do not
        belong to any accessor are ignored.

        The first value that cannot be resolved aborts binding with an InterfaceBinderError.
        """
        if overrides is None:
            overrides = {}
        values = {accessor.name: self._resolve(accessor, store, overrides) for accessor in self._info.accessors}
        logger.debug("Bound %d accessor(s) of interface '%s'", len(values), self._interface.__name__)
        return self._info.bound_class(values)  # type: ignore[call-arg]

    def format_template(self) -> Iterator[str]:
        """
        Yield lines of text as a template for the store entries that the interface reads.

        The template is documentation for the person filling in the store: it lists each key and
        the name of its type, it is not meant to be bound as-is.
        """
        yield from _format_template(self._interface)


def _describe_return_type(container: type, method: FunctionType) -> str:
    """
    Return the name of a method's return type without validating it.

    Unannotated methods are described as 'Any'; string annotations that cannot be evaluated are shown as written.
    """
    try:
        annotation = get_annotations(method).get("return", Any)
    except NameError:
        # Lazily evaluated annotation referring to an undefined name.
        return "?"
    if isinstance(annotation, str):
        try:
            annotation = eval(annotation, method.__globals__, vars(container))  # noqa: PGH001
        except NameError:
            return annotation
    return "None" if annotation is None else _format_type_name(annotation)


def _format_template(interface: type[Any]) -> Iterator[str]:
    # Reads only method metadata, so interfaces that cannot be bound still get a template.
    yield f"# Auto-generated property file for test interface {interface.__name__} in package {interface.__module__}"
    prefix = interface.__name__.lower()
    for name, container, method in _get_methods(interface):
        yield f"{prefix}.{name}: <{_describe_return_type(container, method)}>"


def bind(store: Mapping[str, str], interface: type[T], overrides: Mapping[str, Override] | None = None) -> T:
    """Bind the store to the interface; shorthand for `Binder(interface).bind(store, overrides)`."""
    return Binder(interface).bind(store, overrides)


def generate_template(interface: type[Any], sink: TextIO) -> None:
    """Write the template for the interface to a text stream, one line per store entry."""
    for line in _format_template(interface):
        sink.write(f"{line}\n")
