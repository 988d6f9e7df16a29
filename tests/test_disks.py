import math
import sys
import tempfile
import unittest
from pathlib import Path

import numpy as np
import pandas as pd

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from BeamGeometry import ArcDirection, GantryArc
from DiskCreation import (DISK_COLUMNS, HEAD_DISK_RADIUS_MM, HeadDisk, build_disk, build_disks_for_arc,
                          disks_to_dataframe, save_disks, try_build_disk, try_build_disks_for_arc)
from GeometryErrors import DegenerateGeometry, InvalidArgument


def isocentric_pose(angle, sad=1000.0):
    g = math.radians(angle)
    return (0.0, 0.0, 0.0), (sad * math.sin(g), -sad * math.cos(g), 0.0)


class TestBuildDisk(unittest.TestCase):
    def test_static_beam_end_to_end(self):
        arc = GantryArc(0.0, 0.0, ArcDirection.NONE)
        disks = build_disks_for_arc(arc, lambda a: ((0, 0, 0), (0, 1000, 0)), 2.0, 900.0, 4)

        self.assertEqual(len(disks), 1)
        disk = disks[0]
        np.testing.assert_allclose(disk.center, [0.0, 900.0, 0.0], atol=1e-9)
        np.testing.assert_allclose(disk.perimeter, [
            [390.0, 900.0, 0.0],
            [0.0, 900.0, -390.0],
            [-390.0, 900.0, 0.0],
            [0.0, 900.0, 390.0],
        ], atol=1e-9)

    def test_radius_and_planarity(self):
        for source in [(0, -1000, 0), (700, 700, 100), (0, 0, 1000), (1, 2, -999)]:
            disk = build_disk((10, 20, 30), source, 400.0, 36)
            offsets = disk.perimeter - disk.center
            np.testing.assert_allclose(np.linalg.norm(offsets, axis=1), HEAD_DISK_RADIUS_MM, rtol=1e-9)
            np.testing.assert_allclose(offsets @ disk.axis, 0.0, atol=1e-6)
            self.assertAlmostEqual(np.linalg.norm(disk.center - np.array([10, 20, 30])), 400.0, places=6)

    def test_negative_offset_goes_away_from_source(self):
        disk = build_disk((0, 0, 0), (0, 1000, 0), -100.0, 8)
        np.testing.assert_allclose(disk.center, [0.0, -100.0, 0.0], atol=1e-9)

    def test_idempotent(self):
        a = build_disk((0, 0, 0), (300, -900, 50), 400.0, 36, angle=12.0)
        b = build_disk((0, 0, 0), (300, -900, 50), 400.0, 36, angle=12.0)
        self.assertEqual(a, b)
        self.assertEqual(hash(a), hash(b))

    def test_points_with_center(self):
        disk = build_disk((0, 0, 0), (0, 1000, 0), 900.0, 4)
        self.assertEqual(disk.points().shape, (4, 3))
        points = disk.points(include_center=True)
        self.assertEqual(points.shape, (5, 3))
        np.testing.assert_allclose(points[0], disk.center)

    def test_disk_is_read_only(self):
        disk = build_disk((0, 0, 0), (0, 1000, 0), 900.0, 4)
        with self.assertRaises(ValueError):
            disk.perimeter[0, 0] = 1.0

    def test_invalid_inputs(self):
        with self.assertRaises(InvalidArgument):
            build_disk((0, 0, 0), (0, 1000, 0), 900.0, 2)
        with self.assertRaises(InvalidArgument):
            HeadDisk(radius=0.0)
        with self.assertRaises(DegenerateGeometry):
            build_disk((5, 5, 5), (5, 5, 5), 100.0, 8)
        with self.assertRaises(DegenerateGeometry):
            build_disk((0, 0, 0), (np.nan, 0, 0), 100.0, 8)

    def test_non_finite_offset_rejected(self):
        for offset in (float("nan"), float("inf"), -float("inf")):
            with self.assertRaises(InvalidArgument):
                build_disk((0, 0, 0), (0, 1000, 0), offset, 4)
            self.assertFalse(try_build_disk((0, 0, 0), (0, 1000, 0), offset, 4).ok)

    def test_try_variants(self):
        result = try_build_disk((5, 5, 5), (5, 5, 5), 100.0, 8)
        self.assertFalse(result.ok)
        self.assertTrue(result.error.startswith("DegenerateGeometry"))
        self.assertTrue(try_build_disk((0, 0, 0), (0, 1000, 0), 100.0, 8).ok)

        arc = GantryArc(0.0, 10.0, ArcDirection.CLOCKWISE)
        failed = try_build_disks_for_arc(arc, isocentric_pose, 5.0, 400.0, 2)
        self.assertFalse(failed.ok)
        self.assertTrue(failed.error.startswith("InvalidArgument"))

    def test_arc_disks_follow_delivery_order(self):
        arc = GantryArc(10.0, 0.0, ArcDirection.COUNTER_CLOCKWISE)
        disks = build_disks_for_arc(arc, isocentric_pose, 5.0, 400.0, 12)
        self.assertEqual([d.angle for d in disks], [10.0, 5.0, 0.0])
        np.testing.assert_allclose(disks[-1].center, [0.0, -400.0, 0.0], atol=1e-9)


class TestDiskExport(unittest.TestCase):
    def test_dataframe_layout(self):
        disks = [build_disk((0, 0, 0), (0, 1000, 0), 900.0, 4, angle=0.0),
                 build_disk((0, 0, 0), (1000, 0, 0), 900.0, 4)]
        df = disks_to_dataframe(disks)
        self.assertEqual(list(df.columns), DISK_COLUMNS)
        self.assertEqual(len(df), 10)
        self.assertEqual((df['Kind'] == 'center').sum(), 2)
        self.assertEqual(df.loc[df['Disk'] == 0, 'Point'].tolist(), [-1, 0, 1, 2, 3])
        self.assertTrue(df.loc[df['Disk'] == 1, 'Angle'].isna().all())

    def test_empty(self):
        df = disks_to_dataframe([])
        self.assertEqual(list(df.columns), DISK_COLUMNS)
        self.assertEqual(len(df), 0)

    def test_save(self):
        disks = [build_disk((0, 0, 0), (0, 1000, 0), 900.0, 6, angle=0.0)]
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "disks.csv"
            save_disks(disks, path)
            loaded = pd.read_csv(path)
        self.assertEqual(len(loaded), 7)
        np.testing.assert_allclose(loaded[['X', 'Y', 'Z']].values[1:], disks[0].perimeter, atol=1e-9)


if __name__ == "__main__":
    unittest.main()
