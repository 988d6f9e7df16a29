import math
import sys
import unittest
from pathlib import Path

import numpy as np

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from BeamGeometry import (ArcDirection, ArcType, GantryArc, classify_arc, coerce_direction,
                          extract_all_segments, extract_source_positions, generate_angle_pairs,
                          generate_arc_segments, merge_angle_steps, normalize_angle, sample_angles,
                          sample_delivery_angles, try_extract_source_positions)
from GeometryErrors import GeometryResult, InvalidArgument, UnsupportedDirection, capture
from VectorMath import as_vector, is_undefined, vcross, vdist, vdot, vector, vequal, vlen, vnormalize


def isocentric_pose(angle, sad=1000.0):
    g = math.radians(angle)
    return (0.0, 0.0, 0.0), (sad * math.sin(g), -sad * math.cos(g), 0.0)


class TestVectorMath(unittest.TestCase):
    def test_cross_follows_right_hand_rule(self):
        np.testing.assert_allclose(vcross((1, 0, 0), (0, 1, 0)), [0, 0, 1])
        np.testing.assert_allclose(vcross((0, 1, 0), (1, 0, 0)), [0, 0, -1])

    def test_dot_length_distance(self):
        self.assertEqual(vdot((1, 2, 3), (4, 5, 6)), 32.0)
        self.assertAlmostEqual(vlen((3, 4, 0)), 5.0)
        self.assertAlmostEqual(vdist((1, 1, 1), (1, 1, 4)), 3.0)

    def test_normalize(self):
        np.testing.assert_allclose(vnormalize((0, 0, 7)), [0, 0, 1])
        self.assertTrue(is_undefined(vnormalize((0, 0, 0))))
        self.assertFalse(is_undefined(vector(1, 2, 3)))

    def test_vectors_are_read_only(self):
        v = as_vector([1, 2, 3])
        with self.assertRaises(ValueError):
            v[0] = 5.0

    def test_as_vector_rejects_wrong_shape(self):
        with self.assertRaises(ValueError):
            as_vector([1, 2])

    def test_epsilon_equality(self):
        self.assertTrue(vequal((1, 1, 1), (1, 1, 1 + 1e-12)))
        self.assertFalse(vequal((1, 1, 1), (1, 1, 1.1)))


class TestGeometryResult(unittest.TestCase):
    def test_capture_success_and_failure(self):
        ok = capture(lambda: 42)
        self.assertTrue(ok.ok)
        self.assertEqual(ok.value, 42)

        def fail():
            raise InvalidArgument("bad step")

        failed = capture(fail)
        self.assertFalse(failed.ok)
        self.assertIsNone(failed.value)
        self.assertEqual(failed.error, "InvalidArgument: bad step")

    def test_programming_errors_propagate(self):
        def fail():
            raise UnsupportedDirection("nope")

        with self.assertRaises(UnsupportedDirection):
            capture(fail)

    def test_factories(self):
        self.assertEqual(GeometryResult.success(1), (1, None))
        self.assertEqual(GeometryResult.failure("x"), (None, "x"))


class TestGantryArc(unittest.TestCase):
    def test_direction_coercion(self):
        self.assertIs(coerce_direction("Clockwise"), ArcDirection.CLOCKWISE)
        self.assertIs(coerce_direction("COUNTER_CLOCKWISE"), ArcDirection.COUNTER_CLOCKWISE)
        self.assertIs(coerce_direction(None), ArcDirection.NONE)
        with self.assertRaises(UnsupportedDirection):
            coerce_direction("Sideways")
        with self.assertRaises(UnsupportedDirection):
            GantryArc(0.0, 10.0, 3)

    def test_static_beam_requires_equal_angles(self):
        with self.assertRaises(InvalidArgument):
            GantryArc(90.0, 100.0, ArcDirection.NONE)
        self.assertTrue(GantryArc(90.0, 90.0).is_static)

    def test_non_finite_angles_rejected(self):
        with self.assertRaises(InvalidArgument):
            GantryArc(float("nan"), 10.0, ArcDirection.CLOCKWISE)

    def test_from_control_points(self):
        arc = GantryArc.from_control_points([10.0, 20.0, 30.0], ArcDirection.CLOCKWISE)
        self.assertEqual((arc.start_angle, arc.stop_angle), (10.0, 30.0))
        with self.assertRaises(InvalidArgument):
            GantryArc.from_control_points([], ArcDirection.CLOCKWISE)

    def test_arc_types(self):
        self.assertIs(GantryArc(350.0, 10.0, ArcDirection.CLOCKWISE).arc_type(), ArcType.CROSSING)
        self.assertIs(GantryArc(200.0, 250.0, ArcDirection.CLOCKWISE).arc_type(), ArcType.LEFT)
        self.assertIs(GantryArc(20.0, 60.0, ArcDirection.CLOCKWISE).arc_type(), ArcType.RIGHT)
        self.assertIs(GantryArc(60.0, 20.0, ArcDirection.COUNTER_CLOCKWISE).arc_type(), ArcType.RIGHT)
        self.assertIs(classify_arc(359.9999999, 0.0), ArcType.RIGHT)

    def test_normalize_angle(self):
        self.assertEqual(normalize_angle(360.0), 0.0)
        self.assertEqual(normalize_angle(-10.0), 350.0)
        self.assertEqual(normalize_angle(359.9999999), 0.0)


class TestAngleSampling(unittest.TestCase):
    def test_wrap_around_clockwise(self):
        arc = GantryArc(350.0, 10.0, ArcDirection.CLOCKWISE)
        self.assertEqual(sample_angles(arc, 5.0), [350.0, 355.0, 0.0, 5.0, 10.0])

    def test_wrap_to_zero(self):
        arc = GantryArc(350.0, 0.0, ArcDirection.CLOCKWISE)
        self.assertEqual(sample_angles(arc, 5.0), [350.0, 355.0, 0.0])

    def test_grid_alignment_and_exact_endpoints(self):
        arc = GantryArc(273.0, 302.0, ArcDirection.CLOCKWISE)
        angles = sample_angles(arc, 5.0)
        self.assertEqual(angles, [273.0, 275.0, 280.0, 285.0, 290.0, 295.0, 300.0, 302.0])

    def test_fractional_endpoints(self):
        arc = GantryArc(10.3, 20.7, ArcDirection.CLOCKWISE)
        angles = sample_angles(arc, 1.0)
        self.assertEqual(angles[0], 10.3)
        self.assertEqual(angles[-1], 20.7)
        self.assertEqual(angles[1:-1], [float(k) for k in range(11, 21)])
        self.assertTrue(all(b > a for a, b in zip(angles, angles[1:])))

    def test_crossing_arc_is_monotonic_and_unique(self):
        arc = GantryArc(181.0, 179.0, ArcDirection.CLOCKWISE)
        angles = sample_angles(arc, 2.0)
        unwrapped = np.degrees(np.unwrap(np.radians(angles)))
        steps = np.diff(unwrapped)
        self.assertTrue(np.all(steps > 0))
        self.assertTrue(np.all(steps <= 2.0 + 1e-9))
        self.assertEqual(len(set(angles)), len(angles))
        self.assertEqual(angles.count(0.0), 1)

    def test_counter_clockwise_uses_clockwise_order(self):
        ccw = GantryArc(10.0, 350.0, ArcDirection.COUNTER_CLOCKWISE)
        cw = GantryArc(350.0, 10.0, ArcDirection.CLOCKWISE)
        self.assertEqual(sample_angles(ccw, 5.0), sample_angles(cw, 5.0))
        self.assertEqual(sample_delivery_angles(ccw, 5.0), [10.0, 5.0, 0.0, 355.0, 350.0])
        self.assertEqual(sample_delivery_angles(cw, 5.0), sample_angles(cw, 5.0))

    def test_static_beam_single_angle(self):
        self.assertEqual(sample_angles(GantryArc(90.0, 90.0), 2.0), [90.0])

    def test_full_circle_is_single_pose(self):
        arc = GantryArc(0.0, 0.0, ArcDirection.CLOCKWISE)
        with self.assertLogs("BeamGeometry", level="WARNING"):
            self.assertEqual(sample_angles(arc, 2.0), [0.0])

    def test_invalid_step(self):
        arc = GantryArc(0.0, 10.0, ArcDirection.CLOCKWISE)
        for step in (0.0, -1.0, float("nan")):
            with self.assertRaises(InvalidArgument):
                sample_angles(arc, step)

    def test_step_below_angle_resolution_rejected(self):
        arc = GantryArc(0.0, 0.001, ArcDirection.CLOCKWISE)
        for step in (4e-7, 1e-9):
            with self.assertRaises(InvalidArgument):
                sample_angles(arc, step)
        angles = sample_angles(GantryArc(0.0, 1e-5, ArcDirection.CLOCKWISE), 2e-6)
        self.assertEqual(len(angles), 6)

    def test_unknown_direction_on_arc(self):
        arc = GantryArc(0.0, 10.0, ArcDirection.CLOCKWISE)
        arc.direction = "Sideways"
        with self.assertRaises(UnsupportedDirection):
            sample_angles(arc, 1.0)

    def test_merge_and_pairs(self):
        merged = merge_angle_steps([0.0, 2.0, 4.0], [4.0, 6.0], [358.0, 360.0])
        self.assertEqual(merged, [0.0, 2.0, 4.0, 6.0, 358.0])
        self.assertEqual(generate_angle_pairs([1.0, 2.0, 3.0]), [(1.0, 2.0), (2.0, 3.0)])
        self.assertEqual(generate_angle_pairs([1.0]), [])


class TestSourcePositions(unittest.TestCase):
    def test_one_pose_per_angle(self):
        arc = GantryArc(0.0, 90.0, ArcDirection.CLOCKWISE)
        poses = extract_source_positions(arc, isocentric_pose, 30.0)
        self.assertEqual([p.angle for p in poses], [0.0, 30.0, 60.0, 90.0])
        np.testing.assert_allclose(poses[0].source, [0.0, -1000.0, 0.0], atol=1e-9)
        np.testing.assert_allclose(poses[-1].source, [1000.0, 0.0, 0.0], atol=1e-9)
        for pose in poses:
            np.testing.assert_array_equal(pose.isocenter, [0.0, 0.0, 0.0])

    def test_isocenter_drift_is_logged(self):
        def drifting(angle):
            return (angle, 0.0, 0.0), (angle, 1000.0, 0.0)

        arc = GantryArc(0.0, 10.0, ArcDirection.CLOCKWISE)
        with self.assertLogs("BeamGeometry", level="WARNING"):
            poses = extract_source_positions(arc, drifting, 5.0)
        for pose in poses:
            np.testing.assert_array_equal(pose.isocenter, [0.0, 0.0, 0.0])

    def test_try_variant(self):
        arc = GantryArc(0.0, 10.0, ArcDirection.CLOCKWISE)
        self.assertTrue(try_extract_source_positions(arc, isocentric_pose, 5.0).ok)
        failed = try_extract_source_positions(arc, isocentric_pose, 0.0)
        self.assertFalse(failed.ok)
        self.assertTrue(failed.error.startswith("InvalidArgument"))

    def test_segments(self):
        static = generate_arc_segments(GantryArc(45.0, 45.0), isocentric_pose, 5.0)
        self.assertEqual(len(static), 1)
        np.testing.assert_array_equal(static[0][0], static[0][1])

        arc = GantryArc(0.0, 10.0, ArcDirection.CLOCKWISE)
        self.assertEqual(len(generate_arc_segments(arc, isocentric_pose, 5.0)), 2)

    def test_segments_deduplicated_across_beams(self):
        beams = [
            (GantryArc(0.0, 10.0, ArcDirection.CLOCKWISE), isocentric_pose),
            (GantryArc(10.0, 0.0, ArcDirection.COUNTER_CLOCKWISE), isocentric_pose),
            (GantryArc(10.0, 20.0, ArcDirection.CLOCKWISE), isocentric_pose),
        ]
        self.assertEqual(len(extract_all_segments(beams, 5.0)), 4)


if __name__ == "__main__":
    unittest.main()
