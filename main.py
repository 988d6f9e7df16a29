"""
Main script for gantry head collision screening of arc treatment plans.

This script orchestrates the complete workflow for:
1. Loading the patient body contours and extracting a thread-safe snapshot
2. Sampling each beam's gantry arc and building the head collision disks
3. Detecting the gantry angles where the head enters the body
4. Exporting and visualizing the results

The body used here is a synthetic elliptic cylinder written to INPUT_FILE on
first run, and the gantry poses come from a simple isocentric model; both
stand in for the data a planning system would supply.
"""

import math
import os

import numpy as np
import pandas as pd

from BeamGeometry import ArcDirection, GantryArc, extract_all_segments
from CollisionScreening import CollisionScreening
from ContourDataManager import ContourDataManager
from DiskCreation import save_disks
from LoggingConfig import setup_logging
from MetricsVisualizer import MetricsVisualizer
from ScreeningConfig import ScreeningConfig
from StructureSnapshot import save_snapshot_volume
from Visualizer import ArcScreeningVisualizer

# -------------------------------------------------------------------
# Input / Output
# -------------------------------------------------------------------

INPUT_FILE = "Body_Contours.csv"
SNAPSHOT_FILE = "Body_Snapshot.csv"
DISKS_FILE = "Arc_Disks.csv"
RESULTS_FILE = "Screening_Results.csv"
LOG_FILE = None  # e.g. "screening.log"

# -------------------------------------------------------------------
# Synthetic body (mm)
# -------------------------------------------------------------------

body_half_width = 250.0      # Lateral semi-axis (x)
body_half_depth = 150.0      # Anterior-posterior semi-axis (y)
body_length = 1000.0         # Cranio-caudal extent (z)
slice_thickness = 5.0        # Image plane spacing
contour_points = 64          # Points per contour loop

# -------------------------------------------------------------------
# Machine model (mm)
# -------------------------------------------------------------------

source_axis_distance = 1000.0    # Isocenter to source
isocenter = (0.0, 0.0, 0.0)

# -------------------------------------------------------------------
# Screening parameters
# -------------------------------------------------------------------

arc_step = 2.0            # Gantry sampling step (degrees)
disk_offset = 200.0       # Disk center distance from isocenter
disk_points = 36          # Perimeter samples per disk
exhaustive = True         # Test every disk point and keep colliding points

# Visualization options
show_plots = True
disk_stride = 2           # Draw every n-th disk
slice_stride = 10         # Draw every n-th body slice


def write_synthetic_body(path):
    """Write an elliptic cylinder body, one outer loop per image plane."""
    z_count = int(round(body_length / slice_thickness)) + 1
    z_origin = -body_length / 2.0
    theta = np.linspace(0.0, 2.0 * np.pi, contour_points, endpoint=False)

    loops_by_slice = {}
    for z_index in range(z_count):
        z = z_origin + z_index * slice_thickness
        loops_by_slice[z_index] = [np.column_stack((
            body_half_width * np.cos(theta),
            body_half_depth * np.sin(theta),
            np.full(contour_points, z),
        ))]

    ContourDataManager.format_contour_data(loops_by_slice).to_csv(path, index=False)
    print(f"Synthetic body written to: {path}")


def isocentric_pose(gantry_angle):
    """
    Isocentric gantry model: the source circles the isocenter in the axial
    plane, at (0, -SAD, 0) for gantry 0° and (+SAD, 0, 0) for gantry 90°.
    """
    g = math.radians(gantry_angle)
    source = (isocenter[0] + source_axis_distance * math.sin(g),
              isocenter[1] - source_axis_distance * math.cos(g),
              isocenter[2])
    return isocenter, source


def main():
    setup_logging(log_file=LOG_FILE)

    # -------------------------------------------------------------------
    # Body snapshot
    # -------------------------------------------------------------------

    print("\n=== Loading body contours and extracting snapshot ===")

    if not os.path.exists(INPUT_FILE):
        write_synthetic_body(INPUT_FILE)

    contour_manager = ContourDataManager(INPUT_FILE)
    volume = contour_manager.extract_snapshot()
    save_snapshot_volume(volume, SNAPSHOT_FILE)
    print(f"Snapshot: {volume!r}")

    # -------------------------------------------------------------------
    # Beams
    # -------------------------------------------------------------------

    beams = {
        "Arc1": (GantryArc(330.0, 30.0, ArcDirection.CLOCKWISE), isocentric_pose),
        "Arc2": (GantryArc(120.0, 60.0, ArcDirection.COUNTER_CLOCKWISE), isocentric_pose),
        "Static270": (GantryArc(270.0, 270.0, ArcDirection.NONE), isocentric_pose),
    }

    segments = extract_all_segments(beams.values(), arc_step)
    print(f"{len(segments)} unique source segments over {len(beams)} beams")

    # -------------------------------------------------------------------
    # Collision screening
    # -------------------------------------------------------------------

    print("\n=== Running collision screening ===")

    config = ScreeningConfig(
        ARC_STEP_DEG=arc_step,
        DISK_OFFSET_MM=disk_offset,
        DISK_POINT_COUNT=disk_points,
    )
    screening = CollisionScreening(volume=volume, config=config)
    results = screening.process_arcs(beams, exhaustive=exhaustive)

    # -------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------

    print("\n=== Exporting results ===")

    all_disks = [disk for result in results.values() for disk in result.disks if disk is not None]
    save_disks(all_disks, DISKS_FILE)

    tables = []
    for beam_id, result in results.items():
        table = result.to_dataframe()
        table.insert(0, 'Beam', beam_id)
        tables.append(table)
    if tables:
        pd.concat(tables, ignore_index=True).to_csv(RESULTS_FILE, index=False)
        print(f"Per-angle results saved to: {RESULTS_FILE}")

    for beam_id, result in results.items():
        status = "CLEAR" if result.is_collision_free else f"{len(result.collision_angles)} colliding angles"
        print(f"  {beam_id}: {status}")

    if not show_plots:
        return results

    # -------------------------------------------------------------------
    # Metrics Visualization
    # -------------------------------------------------------------------

    print("\n=== Visualizing Metrics ===")

    metrics_visualizer = MetricsVisualizer(results)
    print("Generating collision map...")
    metrics_visualizer.visualize_collisions_polar()
    print("Generating collisions by angle...")
    metrics_visualizer.visualize_collisions_by_angle()

    # -------------------------------------------------------------------
    # 3D Visualization
    # -------------------------------------------------------------------

    print("\n=== Visualizing Arcs ===")

    for beam_id, result in results.items():
        print(f"Beam {beam_id} (left/right: step, c: next collision)")
        visualizer = ArcScreeningVisualizer(volume, result, slice_stride=slice_stride, disk_stride=disk_stride)
        visualizer.setup_visualization(show_body=True, show_disks=True, show_collision_points=exhaustive,
                                       show_centers=True)
        visualizer.create_figure()
        visualizer.visualize()
        visualizer.show()

    return results


if __name__ == "__main__":
    main()
