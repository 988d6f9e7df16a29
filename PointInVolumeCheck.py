"""
PointInVolumeCheck.py: Point-in-body tests against a SnapshotVolume

Determines whether 3D points lie inside a structure using its pre-extracted,
read-only axial snapshot. Every function here is pure, so any number of
threads can test points against the same volume at once.

Notes:
    - Assumes axial z-slice segmentation of the volume.
    - 2D inclusion uses the even-odd rule on the slice's outer loop (holes
      are not represented in the snapshot).
    - Slice lookup defaults to the half-spacing slab around each slice; a
      z tolerance switches to nearest-slice matching. Both are deterministic.
    - A point with no matching slice is reported outside. This is the only
      case where missing data silently yields "outside"; it is not an error.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

import numpy as np

logger = logging.getLogger(__name__)

# Keeps the edge intersection finite on horizontal edges
DENOMINATOR_EPSILON = 1e-12

# Below this many points all_inside runs on the calling thread
PARALLEL_THRESHOLD = 256


# -------------------------------------------------------------------
# 2D inclusion
# -------------------------------------------------------------------

def is_point_in_polygon_2d(x, y, polygon):
    """
    Even-odd ray casting test of (x, y) against a closed polygon.

    A horizontal ray is cast from the point toward +x; each edge it crosses
    toggles membership. The last vertex connects back to the first.

    Edge convention: an edge is crossed when exactly one of its endpoints lies
    strictly above y and the point is strictly left of the intersection.
    Points on the left or bottom edge of an axis-aligned square therefore
    report inside, points on the right or top edge report outside.

    Args:
        x (float): Test point x
        y (float): Test point y
        polygon (array-like): (M, 2) or (M, 3) vertices, z ignored

    Returns:
        bool: True if the point is inside
    """
    xs = [float(v) for v in np.asarray(polygon)[:, 0]]
    ys = [float(v) for v in np.asarray(polygon)[:, 1]]
    n = len(xs)

    inside = False
    for i in range(n):
        x1, y1 = xs[i], ys[i]
        x2, y2 = xs[(i + 1) % n], ys[(i + 1) % n]
        if (y1 > y) != (y2 > y) and \
                x < (x2 - x1) * (y - y1) / (y2 - y1 + DENOMINATOR_EPSILON) + x1:
            inside = not inside
    return inside


# -------------------------------------------------------------------
# Slice lookup
# -------------------------------------------------------------------

def find_slice_for_z(volume, z, spacing=None):
    """
    Slice whose z-slab [s.z - spacing/2, s.z + spacing/2) contains z.

    When two slabs touch z (non-uniform spacing), the lower slice wins.

    Args:
        volume (SnapshotVolume): Snapshot to search
        z (float): Point z (mm)
        spacing (float, optional): Slab thickness, defaults to the volume's
            slice thickness

    Returns:
        AxialSlice or None
    """
    if volume.is_empty:
        return None

    half = (volume.slice_thickness if spacing is None else spacing) / 2.0
    idx = int(np.searchsorted(volume.z_values, z - half, side='right'))
    if idx < len(volume.slices) and volume.z_values[idx] <= z + half:
        candidate = volume.slices[idx]
        if candidate.z - half <= z < candidate.z + half:
            return candidate
    return None


def find_nearest_slice(volume, z, z_tolerance):
    """
    Slice closest to z among those within z_tolerance.

    Ties between two equally distant slices go to the lower one.

    Args:
        volume (SnapshotVolume): Snapshot to search
        z (float): Point z (mm)
        z_tolerance (float): Maximum |slice.z - z| (mm)

    Returns:
        AxialSlice or None
    """
    if volume.is_empty:
        return None

    idx = int(np.searchsorted(volume.z_values, z))
    best = None
    best_distance = None
    for candidate in (idx - 1, idx):
        if 0 <= candidate < len(volume.slices):
            distance = abs(volume.z_values[candidate] - z)
            if distance <= z_tolerance and (best_distance is None or distance < best_distance):
                best, best_distance = candidate, distance
    return None if best is None else volume.slices[best]


def _lookup_slice(volume, z, z_tolerance):
    if z_tolerance is None:
        return find_slice_for_z(volume, z)
    return find_nearest_slice(volume, z, z_tolerance)


# -------------------------------------------------------------------
# Point tests
# -------------------------------------------------------------------

def is_inside(volume, point, z_tolerance=None):
    """
    Whether a single 3D point lies inside the snapshot volume.

    Args:
        volume (SnapshotVolume): Snapshot to test against
        point (array-like): (x, y, z) in mm
        z_tolerance (float, optional): Use nearest-slice matching within this
            tolerance instead of the half-spacing slab

    Returns:
        bool: False when no slice matches the point's z
    """
    x, y, z = float(point[0]), float(point[1]), float(point[2])
    if not volume.bounds.contains_xy(x, y):
        return False

    axial_slice = _lookup_slice(volume, z, z_tolerance)
    if axial_slice is None or not axial_slice.bounds.contains(x, y):
        return False
    return is_point_in_polygon_2d(x, y, axial_slice.loop)


def any_inside(volume, points, z_tolerance=None):
    """
    Fail-fast check: True as soon as one point is inside.

    Args:
        volume (SnapshotVolume): Snapshot to test against
        points (array-like): (N, 3) points
        z_tolerance (float, optional): See `is_inside`

    Returns:
        bool
    """
    return any(is_inside(volume, p, z_tolerance) for p in np.asarray(points, dtype=np.float64).reshape(-1, 3))


def all_inside(volume, points, z_tolerance=None, max_workers=None):
    """
    Element-wise inside test for a batch of points.

    Points are evaluated independently on a thread pool; the result order
    matches the input order.

    Args:
        volume (SnapshotVolume): Snapshot to test against
        points (array-like): (N, 3) points
        z_tolerance (float, optional): See `is_inside`
        max_workers (int, optional): Thread pool size; 1 disables the pool

    Returns:
        np.ndarray: Boolean array of length N
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if len(points) == 0:
        return np.zeros(0, dtype=bool)

    if max_workers == 1 or len(points) < PARALLEL_THRESHOLD:
        results = [is_inside(volume, p, z_tolerance) for p in points]
    else:
        logger.debug("Testing %d points on a thread pool (max_workers=%s)", len(points), max_workers)
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(lambda p: is_inside(volume, p, z_tolerance), points))

    return np.array(results, dtype=bool)
