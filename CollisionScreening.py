"""
CollisionScreening.py: Gantry head collision screening for arc deliveries

This module checks whether the treatment head, modeled as a disk on the beam
axis, enters the patient body while the gantry travels along an arc. It
provides tools for:

1. Disk generation:
   - Sampling of the arc into gantry poses
   - One collision disk per pose, built from the injected pose provider

2. Collision detection:
   - Quick rejection of disks whose bounding box misses the body
   - Fast detection: fail-fast test per disk, one flag per gantry angle
   - Exhaustive detection: every disk point tested, colliding points kept

3. Reporting:
   - Per-angle results as arrays or a DataFrame
   - Summary of collision counts and timing over several beams

Usage:
    screening = CollisionScreening(volume=body_snapshot, config=ScreeningConfig())
    result = screening.screen_arc(arc, resolve_pose, exhaustive=True)
    print(result.collision_angles)
"""

import logging
import time

import numpy as np
import pandas as pd

from BeamGeometry import extract_source_positions
from DiskCreation import HeadDisk
from GeometryErrors import GeometryError
from PointInVolumeCheck import all_inside, any_inside
from ScreeningConfig import ScreeningConfig

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# ArcScreeningResult Class
# -------------------------------------------------------------------

class ArcScreeningResult:
    """
    Outcome of screening one arc, indexed by sampled gantry angle.

    Angles whose disk could not be built are kept with `disks[i] = None`,
    an entry in `failed_angles` and no collision flag.
    """

    def __init__(self, arc, angles, disks, collision_flags, inside_counts=None,
                 collision_points=None, failed_angles=None, exhaustive=False):
        """
        Args:
            arc (GantryArc): Screened arc
            angles (list of float): Sampled gantry angles, delivery-time order
            disks (list): CollisionDisk per angle, None where construction failed
            collision_flags (np.ndarray): True where the disk enters the body
            inside_counts (np.ndarray, optional): Number of disk points inside
                per angle (exhaustive mode only)
            collision_points (dict, optional): Angle index -> colliding points (K, 3)
            failed_angles (dict, optional): Angle index -> error message
            exhaustive (bool): Whether every disk point was tested
        """
        self.arc = arc
        self.angles = list(angles)
        self.disks = list(disks)
        self.collision_flags = np.asarray(collision_flags, dtype=bool)
        self.inside_counts = inside_counts
        self.collision_points = collision_points or {}
        self.failed_angles = failed_angles or {}
        self.exhaustive = exhaustive

    def get_collision_indices(self):
        return np.where(self.collision_flags)[0]

    @property
    def collision_angles(self):
        return [self.angles[i] for i in self.get_collision_indices()]

    @property
    def is_collision_free(self):
        return not bool(np.any(self.collision_flags))

    @property
    def is_complete(self):
        """True if every sampled angle could be screened."""
        return not self.failed_angles

    def to_dataframe(self):
        """
        Per-angle table.

        Columns: Angle, Screened, Collision, InsideCount (NaN in fast mode or
        for unscreened angles).
        """
        counts = (self.inside_counts.astype(float) if self.inside_counts is not None
                  else np.full(len(self.angles), np.nan))
        screened = np.array([i not in self.failed_angles for i in range(len(self.angles))], dtype=bool)
        counts = np.where(screened, counts, np.nan)
        return pd.DataFrame({
            'Angle': self.angles,
            'Screened': screened,
            'Collision': self.collision_flags,
            'InsideCount': counts,
        })

    def __repr__(self):
        return (f"ArcScreeningResult(arc={self.arc!r}, angles={len(self.angles)}, "
                f"collisions={int(self.collision_flags.sum())}, failed={len(self.failed_angles)})")


# -------------------------------------------------------------------
# CollisionScreening Class
# -------------------------------------------------------------------

class CollisionScreening:
    """
    Main class for screening gantry head collisions against a patient body snapshot.

    The snapshot is shared read-only; a single instance can screen any number
    of arcs, each with its own pose provider.
    """

    def __init__(self, volume, config=None):
        """
        Args:
            volume (SnapshotVolume): Body outline to test disk points against
            config (ScreeningConfig, optional): Screening parameters, defaults if omitted
        """
        self.volume = volume
        self.config = config or ScreeningConfig()
        self.head = HeadDisk(radius=self.config.DISK_RADIUS_MM,
                             offset=self.config.DISK_OFFSET_MM,
                             point_count=self.config.DISK_POINT_COUNT)

    # ----------------------------------------------------------------------------------
    # Disk generation
    # ----------------------------------------------------------------------------------

    def generate_disks(self, arc, resolve_pose):
        """
        Sample the arc and build one disk per gantry angle.

        A pose whose disk cannot be built (e.g. source at the isocenter) is
        logged and recorded as failed; the other angles are still processed.

        Args:
            arc (GantryArc): Arc to sample
            resolve_pose (callable): angle -> (isocenter, source)

        Returns:
            tuple: (angles, disks, failed_angles)
        """
        poses = extract_source_positions(arc, resolve_pose, self.config.ARC_STEP_DEG)
        angles = []
        disks = []
        failed_angles = {}

        for idx, pose in enumerate(poses):
            angles.append(pose.angle)
            try:
                disks.append(self.head.build(pose.isocenter, pose.source, pose.angle))
            except GeometryError as exc:
                logger.warning("Gantry angle %.2f°: no disk built (%s)", pose.angle, exc)
                disks.append(None)
                failed_angles[idx] = str(exc)

        return angles, disks, failed_angles

    # ----------------------------------------------------------------------------------
    # Collision detection
    # ----------------------------------------------------------------------------------

    def _slice_margin(self):
        if self.config.Z_TOLERANCE_MM is not None:
            return self.config.Z_TOLERANCE_MM
        return self.volume.slice_thickness / 2.0

    def disk_may_collide(self, points):
        """
        Quick rejection using the body's bounding box.

        The z range is widened by the slice matching margin, since a point may
        belong to a slice slightly above or below the outermost contour.

        Args:
            points (np.ndarray): Disk points (N, 3)

        Returns:
            bool: False only if no point can lie inside the body
        """
        bounds = self.volume.bounds
        if bounds.is_empty:
            return False

        margin = np.array([0.0, 0.0, self._slice_margin()])
        lower = bounds.min - margin
        upper = bounds.max + margin
        within = np.all((points >= lower) & (points <= upper), axis=1)
        return bool(np.any(within))

    def detect_collisions_fast(self, arc, resolve_pose):
        """
        Fail-fast detection: stops testing a disk at its first point inside the body.

        Returns:
            ArcScreeningResult: One flag per angle, no point details
        """
        angles, disks, failed_angles = self.generate_disks(arc, resolve_pose)
        collision_flags = np.zeros(len(angles), dtype=bool)

        for idx, disk in enumerate(disks):
            if disk is None:
                continue
            points = disk.points(include_center=self.config.INCLUDE_DISK_CENTER)
            if not self.disk_may_collide(points):
                continue
            collision_flags[idx] = any_inside(self.volume, points, self.config.Z_TOLERANCE_MM)

        return ArcScreeningResult(arc, angles, disks, collision_flags,
                                  failed_angles=failed_angles, exhaustive=False)

    def detect_collisions_exhaustive(self, arc, resolve_pose):
        """
        Exhaustive detection: every point of every disk is tested.

        Colliding points are stored per angle, e.g. for visualization.

        Returns:
            ArcScreeningResult: Flags, inside counts and colliding points per angle
        """
        angles, disks, failed_angles = self.generate_disks(arc, resolve_pose)
        collision_flags = np.zeros(len(angles), dtype=bool)
        inside_counts = np.zeros(len(angles), dtype=int)
        collision_points = {}

        for idx, disk in enumerate(disks):
            if disk is None:
                continue
            points = disk.points(include_center=self.config.INCLUDE_DISK_CENTER)
            if not self.disk_may_collide(points):
                continue

            inside = all_inside(self.volume, points, self.config.Z_TOLERANCE_MM, self.config.MAX_WORKERS)
            inside_counts[idx] = int(inside.sum())
            if np.any(inside):
                collision_flags[idx] = True
                collision_points[idx] = points[inside]

        return ArcScreeningResult(arc, angles, disks, collision_flags, inside_counts=inside_counts,
                                  collision_points=collision_points, failed_angles=failed_angles,
                                  exhaustive=True)

    def screen_arc(self, arc, resolve_pose, exhaustive=False):
        """
        Screen one arc in fast or exhaustive mode.

        Args:
            arc (GantryArc): Arc to screen
            resolve_pose (callable): angle -> (isocenter, source)
            exhaustive (bool): Test every disk point instead of stopping at the first hit

        Returns:
            ArcScreeningResult
        """
        if exhaustive:
            return self.detect_collisions_exhaustive(arc, resolve_pose)
        return self.detect_collisions_fast(arc, resolve_pose)

    def process_arcs(self, beams, exhaustive=False):
        """
        Screen several beams and log a summary.

        Args:
            beams (dict): beam id -> (GantryArc, resolve_pose)
            exhaustive (bool): See `screen_arc`

        Returns:
            dict: beam id -> ArcScreeningResult
        """
        logger.info("Screening %d beam(s)...", len(beams))
        start_time = time.time()

        results = {}
        total_angles = 0
        total_collisions = 0
        for beam_id, (arc, resolve_pose) in beams.items():
            result = self.screen_arc(arc, resolve_pose, exhaustive=exhaustive)
            results[beam_id] = result

            n_collisions = int(result.collision_flags.sum())
            total_angles += len(result.angles)
            total_collisions += n_collisions

            if result.is_collision_free:
                logger.info("Beam %s: CLEAR (%d angles)", beam_id, len(result.angles))
            else:
                logger.warning("Beam %s: COLLISION at %d/%d angles: %s", beam_id, n_collisions,
                               len(result.angles), ", ".join(f"{a:.1f}°" for a in result.collision_angles))
            if not result.is_complete:
                logger.warning("Beam %s: %d angle(s) could not be screened", beam_id, len(result.failed_angles))

        if total_angles:
            logger.info("Collision rate: %.1f%% of %d gantry angles",
                        100.0 * total_collisions / total_angles, total_angles)
        logger.info("Total execution time: %.2f seconds", time.time() - start_time)
        return results
