"""
3D Arc Screening Visualization
==============================

Displays the result of a gantry head collision screening in 3D:

* Body outline as stacked axial contour loops
* Collision disks along the arc, colliding disks in red
* Colliding disk points (exhaustive screening only)
* Keyboard navigation through gantry angles with the current disk highlighted

Technical Details:
----------------
* Uses Matplotlib for 3D visualization
* Orthographic projection and equal axis scaling
* Slices and disks can be thinned with a stride for large data sets
"""

import logging

import matplotlib.pyplot as plt
import numpy as np

logger = logging.getLogger(__name__)


def close_loop(points):
    """Append the first point so that a loop plots as a closed line."""
    return np.vstack([points, points[:1]])


class ArcScreeningVisualizer:
    """
    Main visualization manager for arc screening results.
    Handles the display of the body snapshot, the disks and the collisions.
    """

    def __init__(self, volume, result=None, slice_stride=1, disk_stride=1):
        """
        Initialize the visualizer.

        Args:
            volume: SnapshotVolume of the body
            result: ArcScreeningResult to display (optional)
            slice_stride: Draw every n-th slice
            disk_stride: Draw every n-th disk
        """
        self.volume = volume
        self.result = result
        self.slice_stride = max(1, int(slice_stride))
        self.disk_stride = max(1, int(disk_stride))

        # Visualization states
        self.show_body = True
        self.show_disks = True
        self.show_collision_points = True
        self.show_centers = False

        # Navigation control
        self.current_disk = 0
        self.highlight_artists = []

        # Matplotlib figure
        self.fig = None
        self.ax = None

    def setup_visualization(self, show_body=True, show_disks=True, show_collision_points=True,
                            show_centers=False):
        """
        Configure visualization options.

        Args:
            show_body: Toggle body slices
            show_disks: Toggle disk perimeters
            show_collision_points: Toggle colliding points
            show_centers: Toggle disk center path
        """
        self.show_body = show_body
        self.show_disks = show_disks
        self.show_collision_points = show_collision_points
        self.show_centers = show_centers

    def create_figure(self):
        """
        Create and configure the matplotlib 3D figure.
        """
        self.fig = plt.figure(figsize=(12, 8), dpi=100)
        self.ax = self.fig.add_subplot(111, projection='3d')

        self.ax.set_xlabel('X (mm)')
        self.ax.set_ylabel('Y (mm)')
        self.ax.set_zlabel('Z (mm)')

        self.ax.xaxis.pane.fill = False
        self.ax.yaxis.pane.fill = False
        self.ax.zaxis.pane.fill = False
        self.ax.grid(False)
        self.ax.set_proj_type('ortho')

        self.fig.canvas.mpl_connect('key_press_event', self.handle_keyboard)

    def visualize(self):
        """
        Draw all enabled elements.
        """
        if not self.fig:
            self.create_figure()

        if self.show_body:
            self._draw_body()
        if self.result is not None:
            if self.show_disks:
                self._draw_disks()
            if self.show_centers:
                self._draw_centers()
            if self.show_collision_points:
                self._draw_collision_points()
            self.update_highlight()

        self._setup_plot_limits()

    def _draw_body(self):
        for i, axial_slice in enumerate(self.volume.slices[::self.slice_stride]):
            loop = close_loop(axial_slice.loop)
            self.ax.plot(loop[:, 0], loop[:, 1], loop[:, 2], color='tan', linewidth=0.5,
                         label='Body' if i == 0 else "")

    def _valid_disks(self):
        return [(idx, disk) for idx, disk in enumerate(self.result.disks) if disk is not None]

    def _draw_disks(self):
        clear_labeled = False
        collision_labeled = False
        for idx, disk in self._valid_disks()[::self.disk_stride]:
            perimeter = close_loop(disk.perimeter)
            if self.result.collision_flags[idx]:
                label = 'Colliding disk' if not collision_labeled else ""
                collision_labeled = True
                self.ax.plot(perimeter[:, 0], perimeter[:, 1], perimeter[:, 2], 'r-', linewidth=1.0, label=label)
            else:
                label = 'Clear disk' if not clear_labeled else ""
                clear_labeled = True
                self.ax.plot(perimeter[:, 0], perimeter[:, 1], perimeter[:, 2], color='gray',
                             linewidth=0.5, alpha=0.6, label=label)

    def _draw_centers(self):
        centers = np.array([disk.center for _, disk in self._valid_disks()])
        if len(centers) > 0:
            self.ax.plot(centers[:, 0], centers[:, 1], centers[:, 2], 'k--', linewidth=0.8, label='Disk centers')

    def _draw_collision_points(self):
        if not self.result.collision_points:
            return
        points = np.vstack(list(self.result.collision_points.values()))
        self.ax.scatter(points[:, 0], points[:, 1], points[:, 2], c='red', marker='x', s=8,
                        label='Collision points')

    def update_highlight(self):
        """
        Highlight the disk at the current navigation position.
        """
        for artist in self.highlight_artists:
            artist.remove()
        self.highlight_artists.clear()

        valid = self._valid_disks()
        if not valid:
            return

        self.current_disk = min(max(self.current_disk, 0), len(valid) - 1)
        idx, disk = valid[self.current_disk]
        perimeter = close_loop(disk.perimeter)
        line = self.ax.plot(perimeter[:, 0], perimeter[:, 1], perimeter[:, 2], 'b-', linewidth=2.0)[0]
        self.highlight_artists.append(line)

        status = "COLLISION" if self.result.collision_flags[idx] else "clear"
        self.ax.set_title(f"Gantry {self.result.angles[idx]:.1f}° - {status}")
        self.fig.canvas.draw_idle()

    def _setup_plot_limits(self):
        """
        Equal aspect limits around everything drawn.
        """
        clouds = [s.loop for s in self.volume.slices]
        if self.result is not None:
            clouds.extend(disk.perimeter for _, disk in self._valid_disks())
        if not clouds:
            return

        points = np.vstack(clouds)
        max_range = float(np.max(np.ptp(points, axis=0)))
        center = (points.min(axis=0) + points.max(axis=0)) / 2.0

        self.ax.set_xlim(center[0] - max_range / 2, center[0] + max_range / 2)
        self.ax.set_ylim(center[1] - max_range / 2, center[1] + max_range / 2)
        self.ax.set_zlim(center[2] - max_range / 2, center[2] + max_range / 2)
        self.ax.set_box_aspect([1, 1, 1])

    def handle_keyboard(self, event):
        """
        Handle keyboard input for interactive navigation.

        Supported keys:
        - Left/4: Previous gantry angle
        - Right/6: Next gantry angle
        - Ctrl+Left/Ctrl+Right: Jump 10 angles
        - c: Jump to the next colliding angle

        Args:
            event: Matplotlib keyboard event
        """
        if self.result is None or event.key is None:
            return

        if event.key in ['left', '4']:
            self.current_disk -= 1
        elif event.key in ['right', '6']:
            self.current_disk += 1
        elif event.key.startswith('ctrl+'):
            if 'left' in event.key or '4' in event.key:
                self.current_disk -= 10
            elif 'right' in event.key or '6' in event.key:
                self.current_disk += 10
        elif event.key == 'c':
            self._jump_to_next_collision()
        else:
            return
        self.update_highlight()

    def _jump_to_next_collision(self):
        valid = self._valid_disks()
        for offset in range(1, len(valid) + 1):
            position = (self.current_disk + offset) % len(valid)
            if self.result.collision_flags[valid[position][0]]:
                self.current_disk = position
                return
        logger.info("No colliding gantry angle to jump to")

    def show(self):
        """
        Display the visualization.
        """
        if not self.fig:
            self.visualize()
        self.ax.legend(loc='upper left')
        plt.show()
