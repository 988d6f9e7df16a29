"""
BeamGeometry.py: Gantry arc discretization and source position extraction

This module turns a treatment beam's gantry motion into the ordered set of
gantry poses used for collision screening. It provides tools for:

1. Arc description:
   - ArcDirection: static, clockwise or counter-clockwise gantry motion
   - GantryArc: start/stop angles with a direction, built directly or from
     the gantry angles of the beam's control points
   - Classification of arcs into right, left and 0°/360° crossing arcs

2. Angle sampling:
   - Fixed-step sampling aligned to a 0°-based grid so that angle sets of
     different arcs sharing a step size can be merged
   - Wrap-around handling through 0°/360°
   - Exact start/stop angles always included

3. Pose extraction:
   - Mapping each sampled angle to an (isocenter, source) pair through an
     injected pose provider
   - Consecutive source segments and their deduplication across beams

All angles are in degrees. Counter-clockwise arcs are handled by swapping
start and stop and sampling as if the gantry moved clockwise.

Usage:
    arc = GantryArc(350.0, 10.0, ArcDirection.CLOCKWISE)
    angles = sample_angles(arc, step=5.0)   # [350, 355, 0, 5, 10]
    poses = extract_source_positions(arc, resolve_pose, step=5.0)
"""

import logging
import math
from enum import Enum

from GeometryErrors import InvalidArgument, UnsupportedDirection, capture
from VectorMath import as_vector, vequal

logger = logging.getLogger(__name__)

# Two angles closer than this (degrees) are the same gantry pose
ANGLE_EPSILON = 1e-6

# Grid angles are rounded to this many decimals so that arcs sampled with the
# same step produce bit-identical values
GRID_DECIMALS = 9


# -------------------------------------------------------------------
# Arc description
# -------------------------------------------------------------------

class ArcDirection(Enum):
    """Gantry rotation direction, named after the planning system enumeration."""
    NONE = "None"
    CLOCKWISE = "Clockwise"
    COUNTER_CLOCKWISE = "CounterClockwise"


class ArcType(Enum):
    """Region of the gantry circle covered by an arc (as if clockwise)."""
    RIGHT = "right"  # starts in [0°, 180°), no wrap
    LEFT = "left"  # starts in [180°, 360°), no wrap
    CROSSING = "crossing"  # wraps through 0°/360°


def coerce_direction(direction):
    """
    Convert a direction given as enum member, enum value or name into ArcDirection.

    Args:
        direction: ArcDirection, its value ("Clockwise"), its name ("CLOCKWISE")
            or None for a static beam

    Returns:
        ArcDirection: The matching member

    Raises:
        UnsupportedDirection: If the value matches no member
    """
    if isinstance(direction, ArcDirection):
        return direction
    if direction is None:
        return ArcDirection.NONE
    if isinstance(direction, str):
        for member in ArcDirection:
            if direction in (member.value, member.name):
                return member
    raise UnsupportedDirection(f"Unsupported gantry direction: {direction!r}")


def normalize_angle(angle):
    """
    Map an angle into [0, 360).

    Values within ANGLE_EPSILON below 360 are mapped to 0 so that 359.9999999
    and 0 denote the same pose.
    """
    a = float(angle) % 360.0
    if 360.0 - a < ANGLE_EPSILON:
        return 0.0
    return a


def angles_equal(a, b):
    """True if two angles denote the same gantry pose, modulo 360."""
    diff = abs(normalize_angle(a) - normalize_angle(b))
    return diff < ANGLE_EPSILON or 360.0 - diff < ANGLE_EPSILON


class GantryArc:
    """
    Gantry motion of one beam: start angle, stop angle and direction.

    A static beam (ArcDirection.NONE) has identical start and stop angles.
    """

    def __init__(self, start_angle, stop_angle, direction=ArcDirection.NONE):
        """
        Args:
            start_angle (float): Gantry angle of the first control point (degrees)
            stop_angle (float): Gantry angle of the last control point (degrees)
            direction: ArcDirection (or its value/name)

        Raises:
            UnsupportedDirection: If direction is not an ArcDirection
            InvalidArgument: If an angle is not finite, or a static beam has
                different start and stop angles
        """
        self.direction = coerce_direction(direction)
        self.start_angle = float(start_angle)
        self.stop_angle = float(stop_angle)

        if not (math.isfinite(self.start_angle) and math.isfinite(self.stop_angle)):
            raise InvalidArgument(f"Gantry angles must be finite, got {start_angle!r}, {stop_angle!r}")
        if self.direction is ArcDirection.NONE and not angles_equal(self.start_angle, self.stop_angle):
            raise InvalidArgument(
                f"Static beam must have start == stop, got {self.start_angle} and {self.stop_angle}")

    @classmethod
    def from_control_points(cls, gantry_angles, direction):
        """
        Build an arc from the gantry angles of a beam's control points.

        The first control point gives the start angle and the last one the
        stop angle.

        Args:
            gantry_angles (sequence of float): Gantry angle per control point
            direction: ArcDirection of the beam

        Returns:
            GantryArc
        """
        gantry_angles = list(gantry_angles)
        if not gantry_angles:
            raise InvalidArgument("A beam needs at least one control point")
        return cls(gantry_angles[0], gantry_angles[-1], direction)

    @property
    def is_static(self):
        return self.direction is ArcDirection.NONE

    def as_if_clockwise(self):
        """
        Return the normalized (start, stop) pair as a clockwise traversal would visit it.

        Counter-clockwise arcs get their start and stop swapped.
        """
        start = normalize_angle(self.start_angle)
        stop = normalize_angle(self.stop_angle)
        if self.direction is ArcDirection.COUNTER_CLOCKWISE:
            return stop, start
        return start, stop

    def arc_type(self):
        start, stop = self.as_if_clockwise()
        return classify_arc(start, stop)

    def __repr__(self):
        return (f"GantryArc(start_angle={self.start_angle}, stop_angle={self.stop_angle}, "
                f"direction={self.direction.name})")


def classify_arc(start, stop):
    """
    Classify a clockwise arc by the region of the gantry circle it covers.

    Args:
        start (float): Start angle as if clockwise (degrees)
        stop (float): Stop angle as if clockwise (degrees)

    Returns:
        ArcType: CROSSING if the arc wraps through 0°/360°, LEFT if it starts
            in [180°, 360°), RIGHT otherwise
    """
    start = normalize_angle(start)
    stop = normalize_angle(stop)
    if start > stop + ANGLE_EPSILON:
        return ArcType.CROSSING
    if start >= 180.0:
        return ArcType.LEFT
    return ArcType.RIGHT


# -------------------------------------------------------------------
# Angle sampling
# -------------------------------------------------------------------

def _grid_steps(lower, upper, step):
    """
    Multiples of `step` lying strictly between `lower` and `upper`.

    Values within ANGLE_EPSILON of either bound are left out; the bounds
    themselves are added by the caller as exact endpoints.
    """
    k_first = math.floor(lower / step) + 1
    while (k_first - 1) * step > lower + ANGLE_EPSILON:
        k_first -= 1
    while k_first * step <= lower + ANGLE_EPSILON:
        k_first += 1

    steps = []
    k = k_first
    while k * step < upper - ANGLE_EPSILON:
        steps.append(round(k * step, GRID_DECIMALS))
        k += 1
    return steps


def _deduplicate(angles):
    """Drop consecutive angles equal within ANGLE_EPSILON, keeping the first."""
    unique = []
    for angle in angles:
        if unique and abs(unique[-1] - angle) < ANGLE_EPSILON:
            continue
        unique.append(angle)
    return unique


def _validate_step(step):
    # `not step >= ANGLE_EPSILON` also rejects NaN
    if not step >= ANGLE_EPSILON:
        raise InvalidArgument(f"Angle step must be at least {ANGLE_EPSILON}°, got {step!r}")
    return float(step)


def sample_angles(arc, step):
    """
    Sample gantry angles along an arc at a fixed step.

    For rotating arcs the output starts with the exact (as-if-clockwise) start
    angle and ends with the exact stop angle. Intermediate angles lie on the
    0°-based grid {k * step}, so angle sets of different arcs sampled with the
    same step can be merged. Arcs crossing 0°/360° are sampled as two runs,
    [start, 360) then [0, stop].

    A rotating arc whose start equals its stop is treated as a single pose.

    Args:
        arc (GantryArc): Arc to sample
        step (float): Angular step in degrees, at least ANGLE_EPSILON

    Returns:
        list of float: Angles in clockwise traversal order

    Raises:
        InvalidArgument: If step < ANGLE_EPSILON or is NaN
        UnsupportedDirection: If the arc carries an unknown direction
    """
    step = _validate_step(step)
    direction = arc.direction

    if direction is ArcDirection.NONE:
        return [arc.start_angle]

    if direction not in (ArcDirection.CLOCKWISE, ArcDirection.COUNTER_CLOCKWISE):
        raise UnsupportedDirection(f"Unsupported gantry direction: {direction!r}")

    start, stop = arc.as_if_clockwise()

    if angles_equal(start, stop):
        logger.warning("Arc %r has identical start and stop angles; sampled as a single pose", arc)
        return [start]

    if classify_arc(start, stop) is ArcType.CROSSING:
        first_part = [start] + _grid_steps(start, 360.0, step)
        second_part = ([0.0] if stop > ANGLE_EPSILON else []) + _grid_steps(0.0, stop, step)
        angles = first_part + second_part + [stop]
    else:
        angles = [start] + _grid_steps(start, stop, step) + [stop]

    angles = _deduplicate(angles)
    logger.debug("Sampled %d gantry angles for %r with step %.3f°", len(angles), arc, step)
    return angles


def sample_delivery_angles(arc, step):
    """
    Sample gantry angles in delivery-time order.

    Same angles as `sample_angles`, reversed for counter-clockwise arcs so
    that the first angle is the one the gantry visits first.
    """
    angles = sample_angles(arc, step)
    if arc.direction is ArcDirection.COUNTER_CLOCKWISE:
        angles.reverse()
    return angles


def merge_angle_steps(*angle_lists):
    """
    Merge angle sets of several arcs into one sorted list without duplicates.

    Args:
        *angle_lists: Any number of angle sequences (degrees)

    Returns:
        list of float: Normalized angles in [0, 360), ascending
    """
    merged = sorted(normalize_angle(a) for angles in angle_lists for a in angles)
    return _deduplicate(merged)


def generate_angle_pairs(angles):
    """Consecutive (a, b) pairs from an ordered angle list."""
    return list(zip(angles[:-1], angles[1:]))


# -------------------------------------------------------------------
# Source positions
# -------------------------------------------------------------------

class SampledPose:
    """Isocenter and source position of the beam at one gantry angle."""

    __slots__ = ("isocenter", "source", "angle")

    def __init__(self, isocenter, source, angle):
        self.isocenter = as_vector(isocenter)
        self.source = as_vector(source)
        self.angle = float(angle)

    def __iter__(self):
        return iter((self.isocenter, self.source))

    def __repr__(self):
        return f"SampledPose(angle={self.angle}, isocenter={self.isocenter.tolist()}, source={self.source.tolist()})"


def extract_source_positions(arc, resolve_pose, step):
    """
    Resolve the (isocenter, source) pair of each sampled gantry angle.

    The isocenter is constant across an arc: the one returned for the first
    angle is kept for every pose, and a drifting isocenter is logged.

    Args:
        arc (GantryArc): Beam arc
        resolve_pose (callable): angle -> (isocenter, source), supplied by the
            planning system layer
        step (float): Angular step in degrees

    Returns:
        list of SampledPose: One pose per angle, in delivery-time order
    """
    poses = []
    isocenter = None
    for angle in sample_delivery_angles(arc, step):
        iso, source = resolve_pose(angle)
        iso = as_vector(iso)
        if isocenter is None:
            isocenter = iso
        elif not vequal(iso, isocenter, 1e-6):
            logger.warning("Isocenter moved at gantry angle %.2f°; keeping %s", angle, isocenter.tolist())
        poses.append(SampledPose(isocenter, source, angle))
    return poses


def try_extract_source_positions(arc, resolve_pose, step):
    """`extract_source_positions` returning a GeometryResult instead of raising."""
    return capture(extract_source_positions, arc, resolve_pose, step)


def generate_arc_segments(arc, resolve_pose, step):
    """
    Consecutive source-position segments along an arc.

    A static beam yields a single degenerate segment (source, source).

    Returns:
        list of tuple: (source_a, source_b) pairs in delivery-time order
    """
    sources = [pose.source for pose in extract_source_positions(arc, resolve_pose, step)]
    if len(sources) == 1:
        return [(sources[0], sources[0])]
    return list(zip(sources[:-1], sources[1:]))


def _segment_key(a, b, decimals=6):
    ka = tuple(round(float(c), decimals) for c in a)
    kb = tuple(round(float(c), decimals) for c in b)
    return (ka, kb) if ka <= kb else (kb, ka)


def extract_all_segments(beams, step):
    """
    Collect unique source segments across several beams.

    Segments are direction independent: (a, b) and (b, a) are the same
    segment. The first occurrence is kept.

    Args:
        beams (iterable): (GantryArc, resolve_pose) pairs
        step (float): Angular step in degrees

    Returns:
        list of tuple: Unique (source_a, source_b) segments
    """
    seen = set()
    unique = []
    for arc, resolve_pose in beams:
        for a, b in generate_arc_segments(arc, resolve_pose, step):
            key = _segment_key(a, b)
            if key in seen:
                continue
            seen.add(key)
            unique.append((a, b))
    return unique
