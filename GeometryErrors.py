"""
GeometryErrors.py: Error kinds raised by the beam, disk and snapshot geometry

- InvalidArgument: caller supplied an out-of-range value (step <= 0, fewer
  than 3 disk points, non-positive slice thickness, ...)
- DegenerateGeometry: the inputs describe no usable geometry (coincident
  isocenter and source, zero-length axis)
- UnsupportedDirection: an arc direction outside ArcDirection. This is a
  programming error and is never turned into a GeometryResult.

The `try_*` helpers of the geometry modules wrap InvalidArgument and
DegenerateGeometry into a GeometryResult so that batch callers can keep
processing the remaining items.
"""

from collections import namedtuple


class GeometryError(Exception):
    """Base class for recoverable geometry construction errors."""


class InvalidArgument(GeometryError, ValueError):
    pass


class DegenerateGeometry(GeometryError, ArithmeticError):
    pass


class UnsupportedDirection(TypeError):
    """Raised for arc directions that are not an ArcDirection member."""


class GeometryResult(namedtuple("GeometryResult", ["value", "error"])):
    """
    Explicit success/failure result.

    Exactly one of `value` and `error` is meaningful: `error` is None on
    success and holds the error message otherwise.
    """

    __slots__ = ()

    @property
    def ok(self):
        return self.error is None

    @classmethod
    def success(cls, value):
        return cls(value, None)

    @classmethod
    def failure(cls, message):
        return cls(None, message)


def capture(func, *args, **kwargs):
    """
    Call `func` and convert recoverable geometry errors into a GeometryResult.

    Args:
        func: Callable to invoke
        *args, **kwargs: Arguments forwarded to func

    Returns:
        GeometryResult: success with the return value, or failure with a message
    """
    try:
        return GeometryResult.success(func(*args, **kwargs))
    except GeometryError as exc:
        return GeometryResult.failure(f"{type(exc).__name__}: {exc}")
