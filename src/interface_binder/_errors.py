"""Exceptions raised while binding a store to an interface."""


class InterfaceBinderError(Exception):
    """
    Base class for all errors raised by this library.

    Every concrete error also derives from the builtin exception that Python code would normally
    expect for that kind of failure, so catching `TypeError` or `ValueError` keeps working.
    """


class InvalidSignatureError(InterfaceBinderError, TypeError):
    """
    An interface method is not an accessor.

    Accessors take no parameters besides `self` and have a return annotation other than `None`.
    """


class UnsupportedTypeError(InterfaceBinderError, TypeError):
    """An accessor returns a type without a built-in coercion and no override was given for it."""


class OverrideTypeMismatchError(InterfaceBinderError, TypeError):
    """An override returned an object that does not match the accessor's return annotation."""


class CoercionError(InterfaceBinderError, ValueError):
    """A built-in coercion rejected the raw value from the store."""


class NumericFormatError(CoercionError):
    pass


class InvalidCharacterError(CoercionError):
    pass


class MissingValueError(CoercionError):
    pass


class UnimplementedGenericOperationError(InterfaceBinderError, AttributeError):
    """
    A bound instance was asked to do something other than answer its accessors.

    Bound instances support identity comparison, hashing and `repr()`; everything else that is not
    declared by the interface, such as assigning attributes or pickling, ends up here.
    """
