"""
StructureSnapshot.py: Thread-safe axial snapshot of a structure outline

Planning-system structures are not safe to query from several threads. This
module copies a structure's outer contour on each axial image plane into an
immutable in-memory volume that many workers can read concurrently.

Notes:
    - Only the first (outer) loop of each plane is kept; inner loops (holes)
      are discarded. This trades hole accuracy for speed and is a known
      approximation.
    - Planes without contours are left out instead of stored as empty slices.
    - Per-slice 2D and global 3D bounding boxes are computed from the points
      themselves, never taken from the data source.
    - Snapshots can be saved to / loaded from CSV for offline screening.
"""

import logging

import numpy as np
import pandas as pd

from GeometryErrors import InvalidArgument
from VectorMath import as_vector, freeze

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# Bounding boxes
# -------------------------------------------------------------------

class BoundingBox2D:
    """Axis-aligned box in the XY plane."""

    __slots__ = ("min_x", "max_x", "min_y", "max_y")

    def __init__(self, min_x, max_x, min_y, max_y):
        object.__setattr__(self, "min_x", float(min_x))
        object.__setattr__(self, "max_x", float(max_x))
        object.__setattr__(self, "min_y", float(min_y))
        object.__setattr__(self, "max_y", float(max_y))

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def contains(self, x, y):
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y

    def __eq__(self, other):
        if not isinstance(other, BoundingBox2D):
            return NotImplemented
        return (self.min_x, self.max_x, self.min_y, self.max_y) == \
            (other.min_x, other.max_x, other.min_y, other.max_y)

    def __hash__(self):
        return hash((self.min_x, self.max_x, self.min_y, self.max_y))

    def __repr__(self):
        return f"BoundingBox2D(x=[{self.min_x}, {self.max_x}], y=[{self.min_y}, {self.max_y}])"


class BoundingBox3D:
    """
    Axis-aligned box in 3D.

    The empty box (see `empty()`) has min = +inf and max = -inf on every axis
    and contains no point.
    """

    __slots__ = ("min", "max")

    def __init__(self, min_corner, max_corner):
        object.__setattr__(self, "min", as_vector(min_corner))
        object.__setattr__(self, "max", as_vector(max_corner))

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    @classmethod
    def empty(cls):
        return cls((np.inf, np.inf, np.inf), (-np.inf, -np.inf, -np.inf))

    @property
    def is_empty(self):
        return bool(np.any(self.min > self.max))

    def contains(self, point):
        return bool(np.all(self.min <= point) and np.all(point <= self.max))

    def contains_xy(self, x, y):
        return self.min[0] <= x <= self.max[0] and self.min[1] <= y <= self.max[1]

    def __eq__(self, other):
        if not isinstance(other, BoundingBox3D):
            return NotImplemented
        return np.array_equal(self.min, other.min) and np.array_equal(self.max, other.max)

    def __hash__(self):
        return hash((self.min.tobytes(), self.max.tobytes()))

    def __repr__(self):
        return f"BoundingBox3D(min={self.min.tolist()}, max={self.max.tolist()})"


def compute_bounding_box_2d(loop):
    """
    XY bounding box of a contour loop.

    Used to quickly rule out points that lie outside the slice contour.

    Args:
        loop (np.ndarray): (M, 2) or (M, 3) points, M >= 1

    Returns:
        BoundingBox2D
    """
    xs = loop[:, 0]
    ys = loop[:, 1]
    return BoundingBox2D(xs.min(), xs.max(), ys.min(), ys.max())


def compute_bounding_box_3d(slices):
    """
    3D bounding box enclosing all loop points (x, y) and slice z values.

    Args:
        slices (sequence of AxialSlice): Retained slices

    Returns:
        BoundingBox3D: The empty box if there are no slices
    """
    if len(slices) == 0:
        return BoundingBox3D.empty()

    all_points = np.vstack([s.loop for s in slices])
    zs = np.array([s.z for s in slices])
    return BoundingBox3D(
        (all_points[:, 0].min(), all_points[:, 1].min(), zs.min()),
        (all_points[:, 0].max(), all_points[:, 1].max(), zs.max()),
    )


# -------------------------------------------------------------------
# Slices and volume
# -------------------------------------------------------------------

class AxialSlice:
    """One axial plane of the structure: outer loop and its 2D bounds."""

    __slots__ = ("z", "loop", "bounds")

    def __init__(self, z, loop, bounds=None):
        """
        Args:
            z (float): Plane z coordinate (mm)
            loop (array-like): Outer contour points (M, 3)
            bounds (BoundingBox2D, optional): Computed from the loop when omitted
        """
        loop = freeze(loop).reshape(-1, 3)
        object.__setattr__(self, "z", float(z))
        object.__setattr__(self, "loop", loop)
        object.__setattr__(self, "bounds", bounds if bounds is not None else compute_bounding_box_2d(loop))

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __repr__(self):
        return f"AxialSlice(z={self.z}, points={len(self.loop)}, bounds={self.bounds!r})"


class SnapshotVolume:
    """
    Immutable stack of axial slices, ordered by z.

    Built once per structure and never mutated afterwards, so it can be shared
    by reference between threads without locking.
    """

    __slots__ = ("slices", "slice_thickness", "bounds", "z_values")

    def __init__(self, slices, slice_thickness, bounds=None):
        """
        Args:
            slices (iterable of AxialSlice): Slices, sorted by z on construction
            slice_thickness (float): Distance between image planes (mm)
            bounds (BoundingBox3D, optional): Computed from the slices when omitted
        """
        ordered = tuple(sorted(slices, key=lambda s: s.z))
        object.__setattr__(self, "slices", ordered)
        object.__setattr__(self, "slice_thickness", float(slice_thickness))
        object.__setattr__(self, "bounds", bounds if bounds is not None else compute_bounding_box_3d(ordered))
        object.__setattr__(self, "z_values", freeze([s.z for s in ordered]))

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __len__(self):
        return len(self.slices)

    @property
    def is_empty(self):
        return len(self.slices) == 0

    def __repr__(self):
        return (f"SnapshotVolume(slices={len(self.slices)}, slice_thickness={self.slice_thickness}, "
                f"bounds={self.bounds!r})")


# -------------------------------------------------------------------
# Extraction
# -------------------------------------------------------------------

def _outer_loop(contours, z):
    """First loop of a plane as an (M, 3) array, or None if there is none."""
    if contours is None or len(contours) == 0:
        return None

    outer = np.asarray(contours[0], dtype=np.float64)
    if outer.size == 0:
        return None

    if outer.ndim != 2 or outer.shape[1] not in (2, 3):
        raise InvalidArgument(f"Contour loop must have shape (M, 2) or (M, 3), got {outer.shape}")
    if outer.shape[1] == 2:
        outer = np.column_stack((outer, np.full(len(outer), z)))
    return outer


def extract_snapshot_volume(contour_provider, z_origin, z_count, slice_thickness):
    """
    Extract a thread-safe snapshot of a structure.

    Args:
        contour_provider (callable): z_index -> list of closed loops on that
            image plane, outer loop first; an empty list means no structure
        z_origin (float): z of image plane 0 (mm)
        z_count (int): Number of image planes
        slice_thickness (float): Distance between image planes (mm), > 0

    Returns:
        SnapshotVolume: Slices for every plane with a non-empty outer loop

    Raises:
        InvalidArgument: If slice_thickness <= 0 or z_count < 0
    """
    if not slice_thickness > 0:
        raise InvalidArgument(f"Slice thickness must be positive, got {slice_thickness!r}")
    if z_count < 0:
        raise InvalidArgument(f"Plane count must not be negative, got {z_count!r}")

    slices = []
    holes_dropped = 0
    for z_index in range(int(z_count)):
        z = z_origin + z_index * slice_thickness
        contours = contour_provider(z_index)
        outer = _outer_loop(contours, z)
        if outer is None:
            continue

        holes_dropped += len(contours) - 1
        slices.append(AxialSlice(z, outer))

    volume = SnapshotVolume(slices, slice_thickness)
    logger.info("Extracted snapshot with %d of %d planes (%d inner loops ignored)",
                len(volume), z_count, holes_dropped)
    return volume


# -------------------------------------------------------------------
# Persistence
# -------------------------------------------------------------------

SNAPSHOT_COLUMNS = ["Slice", "Z", "X", "Y", "PointZ", "SliceThickness"]


def snapshot_to_dataframe(volume):
    """One row per loop point, with slice index, plane z and slice thickness."""
    frames = [
        pd.DataFrame({
            'Slice': idx,
            'Z': s.z,
            'X': s.loop[:, 0],
            'Y': s.loop[:, 1],
            'PointZ': s.loop[:, 2],
            'SliceThickness': volume.slice_thickness,
        })
        for idx, s in enumerate(volume.slices)
    ]
    if not frames:
        return pd.DataFrame(columns=SNAPSHOT_COLUMNS)
    return pd.concat(frames, ignore_index=True)[SNAPSHOT_COLUMNS]


def save_snapshot_volume(volume, output_path):
    snapshot_to_dataframe(volume).to_csv(output_path, index=False)
    logger.info("Snapshot with %d slices saved to: %s", len(volume), output_path)


def load_snapshot_volume(file_path, slice_thickness=None):
    """
    Load a snapshot written by `save_snapshot_volume`.

    Args:
        file_path (str): CSV path
        slice_thickness (float, optional): Overrides the stored thickness. An
            empty file stores no thickness, so it must be given there.

    Returns:
        SnapshotVolume
    """
    data = pd.read_csv(file_path)
    missing = set(SNAPSHOT_COLUMNS) - set(data.columns)
    if missing:
        raise InvalidArgument(f"Snapshot file {file_path} lacks columns {sorted(missing)}")

    if slice_thickness is None:
        if data.empty:
            raise InvalidArgument(f"Snapshot file {file_path} is empty; pass slice_thickness explicitly")
        slice_thickness = float(data['SliceThickness'].iloc[0])

    slices = [
        AxialSlice(group['Z'].iloc[0], group[['X', 'Y', 'PointZ']].values)
        for _, group in data.groupby('Slice', sort=True)
    ]
    return SnapshotVolume(slices, slice_thickness)
