"""
DiskCreation.py: Collision disks along the isocenter -> source axis

The treatment head is modeled as a flat disk of fixed radius (390 mm),
perpendicular to the line from isocenter to source and centered on it at a
given offset from the isocenter. One disk is built per sampled gantry angle;
its perimeter points are what gets tested against the patient body.

Components:
   - HeadDisk: geometric parameters of the head proxy (radius, offset, resolution)
   - CollisionDisk: one constructed disk (center + perimeter)
   - build_disk / build_disks_for_arc: disk construction for one pose or a whole arc
   - disks_to_dataframe / save_disks: tabular export for downstream tools

All distances are in millimeters.
"""

import logging
import math

import numpy as np
import pandas as pd

from BeamGeometry import extract_source_positions
from GeometryErrors import DegenerateGeometry, InvalidArgument, capture
from VectorMath import NORM_EPSILON, as_vector, freeze, is_undefined, vcross, vlen, vnormalize, vscale, vadd, vsub

logger = logging.getLogger(__name__)

HEAD_DISK_RADIUS_MM = 390.0  # machine head clearance radius (39 cm)

# Above this |dir.z| the z axis is too close to the beam axis to build a basis from
UP_PARALLEL_LIMIT = 0.99

MIN_DISK_POINTS = 3


# -------------------------------------------------------------------
# CollisionDisk Class
# -------------------------------------------------------------------

class CollisionDisk:
    """
    One collision disk: its center and its perimeter samples.

    Perimeter points are ordered counter-clockwise in the disk's own
    {v1, v2} frame. The arrays are read-only.
    """

    __slots__ = ("center", "perimeter", "axis", "angle")

    def __init__(self, center, perimeter, axis, angle=None):
        """
        Args:
            center (array-like): Disk center (3,)
            perimeter (array-like): Perimeter points (N, 3)
            axis (array-like): Unit isocenter -> source direction (3,)
            angle (float, optional): Gantry angle the disk was built for
        """
        self.center = as_vector(center)
        self.perimeter = freeze(perimeter).reshape(-1, 3)
        self.axis = as_vector(axis)
        self.angle = None if angle is None else float(angle)

    @property
    def point_count(self):
        return len(self.perimeter)

    def points(self, include_center=False):
        """
        Points to test for this disk.

        Args:
            include_center (bool): Prepend the disk center to the perimeter

        Returns:
            np.ndarray: (N, 3) or (N + 1, 3) array
        """
        if include_center:
            return np.vstack((self.center, self.perimeter))
        return self.perimeter

    def __eq__(self, other):
        if not isinstance(other, CollisionDisk):
            return NotImplemented
        return (self.angle == other.angle
                and np.array_equal(self.center, other.center)
                and np.array_equal(self.perimeter, other.perimeter))

    def __hash__(self):
        return hash((self.angle, self.center.tobytes(), self.perimeter.tobytes()))

    def __repr__(self):
        return f"CollisionDisk(angle={self.angle}, center={self.center.tolist()}, points={self.point_count})"


# -------------------------------------------------------------------
# HeadDisk Class
# -------------------------------------------------------------------

class HeadDisk:
    """
    Simplified model of the treatment head for collision screening.

    The head is a flat disk of `radius` placed `offset` millimeters from the
    isocenter along the beam axis, sampled with `point_count` perimeter points.
    """

    def __init__(self, radius=HEAD_DISK_RADIUS_MM, offset=0.0, point_count=36):
        """
        Args:
            radius (float): Disk radius (mm)
            offset (float): Distance from isocenter toward the source (+) or away (-) (mm)
            point_count (int): Number of perimeter samples, at least 3
        """
        if point_count < MIN_DISK_POINTS:
            raise InvalidArgument(f"A disk needs at least {MIN_DISK_POINTS} perimeter points, got {point_count}")
        if not radius > 0:
            raise InvalidArgument(f"Disk radius must be positive, got {radius!r}")
        if not math.isfinite(offset):
            raise InvalidArgument(f"Disk offset must be finite, got {offset!r}")
        self.radius = float(radius)
        self.offset = float(offset)
        self.point_count = int(point_count)

    def get_disk_center(self, isocenter, beam_direction):
        """
        Center of the disk on the beam axis.

        Args:
            isocenter (np.ndarray): Isocenter position (3,)
            beam_direction (np.ndarray): Unit isocenter -> source vector (3,)

        Returns:
            np.ndarray: Disk center (3,)
        """
        return vadd(isocenter, vscale(beam_direction, self.offset))

    @staticmethod
    def get_plane_basis(beam_direction):
        """
        Orthonormal vectors spanning the plane perpendicular to the beam axis.

        The z axis is used as reference unless the beam runs nearly along it,
        in which case the y axis is used instead.

        Returns:
            tuple: (v1, v2) unit vectors, both orthogonal to beam_direction
        """
        if abs(beam_direction[2]) < UP_PARALLEL_LIMIT:
            up = (0.0, 0.0, 1.0)
        else:
            up = (0.0, 1.0, 0.0)
        v1 = vnormalize(vcross(beam_direction, up))
        v2 = vnormalize(vcross(beam_direction, v1))
        return v1, v2

    def build(self, isocenter, source, angle=None):
        """
        Build the disk for one (isocenter, source) pose.

        Raises:
            DegenerateGeometry: If isocenter and source coincide or are not finite
        """
        isocenter = as_vector(isocenter)
        source = as_vector(source)
        if is_undefined(isocenter) or is_undefined(source):
            raise DegenerateGeometry("Isocenter and source positions must be finite")

        axis = vsub(source, isocenter)
        if vlen(axis) < NORM_EPSILON:
            raise DegenerateGeometry(
                f"Isocenter and source coincide at {isocenter.tolist()}; beam axis is undefined")

        beam_direction = vnormalize(axis)
        center = self.get_disk_center(isocenter, beam_direction)
        v1, v2 = self.get_plane_basis(beam_direction)

        theta = 2.0 * math.pi * np.arange(self.point_count) / self.point_count
        perimeter = (center
                     + np.outer(self.radius * np.cos(theta), v1)
                     + np.outer(self.radius * np.sin(theta), v2))

        return CollisionDisk(center, perimeter, beam_direction, angle)


# -------------------------------------------------------------------
# Disk construction
# -------------------------------------------------------------------

def build_disk(isocenter, source, offset, point_count, angle=None, radius=HEAD_DISK_RADIUS_MM):
    """
    Create a collision disk orthogonal to the isocenter -> source axis.

    Args:
        isocenter (array-like): Isocenter position (3,)
        source (array-like): Source position (3,)
        offset (float): Distance of the disk center from the isocenter along
            the axis, toward the source when positive (mm)
        point_count (int): Number of perimeter points, at least 3
        angle (float, optional): Gantry angle recorded on the disk
        radius (float): Disk radius (mm)

    Returns:
        CollisionDisk

    Raises:
        InvalidArgument: If point_count < 3
        DegenerateGeometry: If isocenter and source coincide
    """
    return HeadDisk(radius=radius, offset=offset, point_count=point_count).build(isocenter, source, angle)


def try_build_disk(isocenter, source, offset, point_count, angle=None, radius=HEAD_DISK_RADIUS_MM):
    """`build_disk` returning a GeometryResult instead of raising."""
    return capture(build_disk, isocenter, source, offset, point_count, angle, radius)


def build_disks_for_arc(arc, resolve_pose, step, offset, point_count, radius=HEAD_DISK_RADIUS_MM):
    """
    Build one collision disk per sampled gantry angle of an arc.

    Args:
        arc (GantryArc): Beam arc (a static beam yields a single disk)
        resolve_pose (callable): angle -> (isocenter, source)
        step (float): Angular step in degrees
        offset (float): Disk offset from isocenter (mm)
        point_count (int): Perimeter points per disk
        radius (float): Disk radius (mm)

    Returns:
        list of CollisionDisk: In delivery-time order
    """
    head = HeadDisk(radius=radius, offset=offset, point_count=point_count)
    disks = [head.build(pose.isocenter, pose.source, pose.angle)
             for pose in extract_source_positions(arc, resolve_pose, step)]
    logger.debug("Built %d disks for %r", len(disks), arc)
    return disks


def try_build_disks_for_arc(arc, resolve_pose, step, offset, point_count, radius=HEAD_DISK_RADIUS_MM):
    """`build_disks_for_arc` returning a GeometryResult instead of raising."""
    return capture(build_disks_for_arc, arc, resolve_pose, step, offset, point_count, radius)


# -------------------------------------------------------------------
# Export
# -------------------------------------------------------------------

DISK_COLUMNS = ["Disk", "Angle", "Point", "Kind", "X", "Y", "Z"]


def disks_to_dataframe(disks):
    """
    Flatten disks into one row per point.

    Columns:
        - Disk: index of the disk in the input sequence
        - Angle: gantry angle (NaN when unknown)
        - Point: -1 for the center, perimeter index otherwise
        - Kind: 'center' or 'perimeter'
        - X, Y, Z: coordinates (mm)
    """
    frames = []
    for disk_idx, disk in enumerate(disks):
        points = disk.points(include_center=True)
        n_perimeter = disk.point_count
        frames.append(pd.DataFrame({
            'Disk': disk_idx,
            'Angle': np.nan if disk.angle is None else disk.angle,
            'Point': np.arange(-1, n_perimeter),
            'Kind': ['center'] + ['perimeter'] * n_perimeter,
            'X': points[:, 0],
            'Y': points[:, 1],
            'Z': points[:, 2],
        }))

    if not frames:
        return pd.DataFrame(columns=DISK_COLUMNS)
    return pd.concat(frames, ignore_index=True)[DISK_COLUMNS]


def save_disks(disks, output_path):
    """Write disks to CSV using the `disks_to_dataframe` layout."""
    disks_to_dataframe(disks).to_csv(output_path, index=False)
    logger.info("Saved %d disks to %s", len(disks), output_path)
