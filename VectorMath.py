"""
VectorMath.py: Minimal 3-vector arithmetic for beam and disk geometry

All vectors are numpy arrays of shape (3,) holding float64 coordinates in
millimeters. Vectors returned by this module are marked read-only so they can
be shared between threads and stored inside immutable snapshot objects.

Functions follow the conventional definitions (right-hand rule for the cross
product) and work equally on any array-like input of length 3.
"""

import numpy as np

# Below this length a vector has no usable direction
NORM_EPSILON = 1e-10


def vector(x, y, z):
    """
    Build a read-only 3-vector.

    Args:
        x (float): X coordinate (mm)
        y (float): Y coordinate (mm)
        z (float): Z coordinate (mm)

    Returns:
        np.ndarray: Read-only float64 array [x, y, z]
    """
    return as_vector((x, y, z))


def as_vector(values):
    """
    Convert any array-like of length 3 into a read-only float64 vector.

    Args:
        values: Sequence or array with exactly 3 components

    Returns:
        np.ndarray: Read-only copy of the input as float64
    """
    v = np.array(values, dtype=np.float64).reshape(-1)
    if v.shape != (3,):
        raise ValueError(f"Expected 3 components, got shape {np.shape(values)}")
    v.setflags(write=False)
    return v


def freeze(array):
    """Return a read-only float64 copy of an array of any shape."""
    frozen = np.array(array, dtype=np.float64)
    frozen.setflags(write=False)
    return frozen


def vadd(a, b):
    return as_vector(np.add(a, b))


def vsub(a, b):
    return as_vector(np.subtract(a, b))


def vscale(a, s):
    return as_vector(np.multiply(a, s))


def vdot(a, b):
    return float(np.dot(a, b))


def vcross(a, b):
    return as_vector(np.cross(a, b))


def vlen(a):
    return float(np.linalg.norm(a))


def vnormalize(a):
    """
    Return the unit vector pointing along `a`.

    Returns a vector of NaN when `a` has no direction (length below
    NORM_EPSILON), mirroring an undefined vector; callers check with
    `is_undefined`.
    """
    length = vlen(a)
    if length < NORM_EPSILON:
        return as_vector((np.nan, np.nan, np.nan))
    return as_vector(np.divide(a, length))


def vdist(a, b):
    return float(np.linalg.norm(np.subtract(a, b)))


def is_undefined(a):
    """True when any component is NaN or infinite."""
    return not bool(np.all(np.isfinite(a)))


def vequal(a, b, epsilon=1e-9):
    """
    Epsilon equality, component-wise.

    Args:
        a, b: Vectors to compare
        epsilon (float): Maximum absolute difference allowed per component

    Returns:
        bool: True if every component differs by at most epsilon
    """
    return bool(np.all(np.abs(np.subtract(a, b)) <= epsilon))
