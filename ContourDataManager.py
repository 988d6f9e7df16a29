"""
ContourDataManager: Class for loading structure contours exported from a planning system.

This class handles:
- Loading and saving per-plane contour loops (CSV)
- Recovering the image plane geometry (origin, count, thickness)
- Serving loops plane by plane as a contour provider for snapshot extraction
"""

import logging

import numpy as np
import pandas as pd

from GeometryErrors import InvalidArgument
from StructureSnapshot import extract_snapshot_volume

logger = logging.getLogger(__name__)

CONTOUR_COLUMNS = ['Slice', 'Loop', 'X', 'Y', 'Z']


class ContourDataManager:
    """
    Manages the contours of one structure on the image planes of its image.

    The CSV holds one row per contour point:
    - Slice: image plane index
    - Loop: loop index on that plane, 0 being the outer loop
    - X, Y, Z: point coordinates (mm)

    Instances are callable with a plane index and return that plane's loops,
    so they can be passed directly to `extract_snapshot_volume`.
    """

    def __init__(self, file_path=None, slice_thickness=None, z_origin=None, z_count=None):
        """
        Initialize ContourDataManager with an optional contour file.

        Args:
            file_path (str, optional): Path to the contour CSV file
            slice_thickness (float, optional): Plane spacing (mm); inferred from the file if omitted
            z_origin (float, optional): z of plane 0 (mm); inferred if omitted
            z_count (int, optional): Number of planes; defaults to the highest plane index + 1
        """
        self.contour_data = None  # Complete contour DataFrame
        self.loops_by_slice = {}  # plane index -> list of (M, 3) arrays

        # Image plane geometry
        self.slice_thickness = slice_thickness
        self.z_origin = z_origin
        self.z_count = z_count

        if file_path:
            self.load_contours(file_path)

    def load_contours(self, file_path):
        """
        Load contour points from CSV and group them by plane and loop.

        Args:
            file_path (str): Path to the contour CSV file
        """
        data = pd.read_csv(file_path)
        missing = set(CONTOUR_COLUMNS) - set(data.columns)
        if missing:
            raise InvalidArgument(f"Contour file {file_path} lacks columns {sorted(missing)}")

        self.contour_data = data
        self.loops_by_slice = {}
        for (slice_idx, _), group in data.groupby(['Slice', 'Loop'], sort=True):
            self.loops_by_slice.setdefault(int(slice_idx), []).append(group[['X', 'Y', 'Z']].values)

        self.identify_image_geometry()
        logger.info("Loaded %d contour points on %d planes from %s",
                    len(data), len(self.loops_by_slice), file_path)

    def identify_image_geometry(self):
        """
        Fill in plane spacing, origin and count not given by the caller.

        Spacing is taken from the z difference between the lowest and highest
        contoured planes, which needs at least two planes.
        """
        plane_z = self.contour_data.groupby('Slice')['Z'].first()

        if self.slice_thickness is None:
            if len(plane_z) < 2:
                raise InvalidArgument("Slice thickness cannot be inferred from fewer than two planes")
            first_idx, last_idx = plane_z.index.min(), plane_z.index.max()
            self.slice_thickness = float((plane_z.loc[last_idx] - plane_z.loc[first_idx]) / (last_idx - first_idx))

        if self.z_origin is None:
            if len(plane_z) == 0:
                self.z_origin = 0.0
            else:
                first_idx = plane_z.index.min()
                self.z_origin = float(plane_z.loc[first_idx] - first_idx * self.slice_thickness)

        if self.z_count is None:
            self.z_count = int(plane_z.index.max()) + 1 if len(plane_z) else 0

    def get_contours_on_image_plane(self, z_index):
        """
        Loops on one image plane, outer loop first.

        Args:
            z_index (int): Image plane index

        Returns:
            list of np.ndarray: (M, 3) loops; empty if the plane has no contour
        """
        return self.loops_by_slice.get(int(z_index), [])

    __call__ = get_contours_on_image_plane

    def extract_snapshot(self):
        """Build the thread-safe SnapshotVolume of the loaded structure."""
        return extract_snapshot_volume(self, self.z_origin, self.z_count, self.slice_thickness)

    @staticmethod
    def format_contour_data(loops_by_slice):
        """
        Create a contour DataFrame from per-plane loops.

        Args:
            loops_by_slice (dict): plane index -> list of (M, 3) loops

        Returns:
            pd.DataFrame: Columns Slice, Loop, X, Y, Z
        """
        frames = []
        for slice_idx in sorted(loops_by_slice):
            for loop_idx, loop in enumerate(loops_by_slice[slice_idx]):
                loop = np.asarray(loop, dtype=np.float64)
                frames.append(pd.DataFrame({
                    'Slice': int(slice_idx),
                    'Loop': loop_idx,
                    'X': loop[:, 0],
                    'Y': loop[:, 1],
                    'Z': loop[:, 2],
                }))
        if not frames:
            return pd.DataFrame(columns=CONTOUR_COLUMNS)
        return pd.concat(frames, ignore_index=True)

    def save_contours(self, output_path):
        """Save the loaded loops back to CSV."""
        self.format_contour_data(self.loops_by_slice).to_csv(output_path, index=False)
        logger.info("Contours saved to: %s", output_path)
