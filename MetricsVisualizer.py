"""
MetricsVisualizer: Plots of collision screening results per gantry angle.

Provides:
- Collision flags along the delivery order
- Number of disk points inside the body per angle (exhaustive screening)
- Polar map of colliding gantry angles for one or more beams
"""

import matplotlib.pyplot as plt
import numpy as np


class MetricsVisualizer:
    """
    Visualization tool for analyzing arc screening results.
    """

    def __init__(self, results):
        """
        Initialize the metrics visualizer.

        Args:
            results (dict): beam id -> ArcScreeningResult
        """
        self.results = results

    def visualize_collisions_by_angle(self, show=True):
        """
        Plot collision flags along the delivery order of each beam.

        Gantry angles are unwrapped so that arcs crossing 0°/360° plot as a
        continuous line.

        Returns:
            matplotlib.figure.Figure
        """
        fig, ax = plt.subplots(figsize=(12, 6))
        cmap = plt.get_cmap("tab10")

        for i, (beam_id, result) in enumerate(self.results.items()):
            angles = unwrap_angles(result.angles)
            ax.step(angles, result.collision_flags.astype(int) + 1.5 * i, where='mid',
                    color=cmap(i % 10), label=f'Beam {beam_id}')

            collisions = result.get_collision_indices()
            if len(collisions) > 0:
                ax.scatter(angles[collisions], np.ones(len(collisions)) + 1.5 * i,
                           color='red', marker='x', s=30)

        ax.set_xlabel('Gantry Angle (°, unwrapped)')
        ax.set_ylabel('Collision (per beam)')
        ax.set_yticks([])
        ax.set_title('Head Collisions Along Each Arc')
        ax.legend(loc='upper left', bbox_to_anchor=(1, 1))
        ax.grid(True, linestyle="--", alpha=0.5)
        fig.tight_layout()
        if show:
            plt.show()
        return fig

    def visualize_inside_counts(self, beam_id, show=True):
        """
        Bar plot of the number of disk points inside the body per gantry angle.

        Only meaningful for exhaustive screening results.

        Returns:
            matplotlib.figure.Figure
        """
        result = self.results[beam_id]
        if result.inside_counts is None:
            raise ValueError(f"Beam {beam_id} was screened in fast mode; no inside counts available")

        angles = unwrap_angles(result.angles)
        colors = np.where(result.collision_flags, 'red', 'dodgerblue')

        fig, ax = plt.subplots(figsize=(12, 6))
        width = np.min(np.abs(np.diff(angles))) * 0.8 if len(angles) > 1 else 1.0
        ax.bar(angles, result.inside_counts, width=width, color=colors)
        ax.set_xlabel('Gantry Angle (°, unwrapped)')
        ax.set_ylabel('Disk points inside body')
        ax.set_title(f'Beam {beam_id}: Penetration per Gantry Angle')
        ax.grid(True, linestyle="--", alpha=0.5)
        if show:
            plt.show()
        return fig

    def visualize_collisions_polar(self, show=True):
        """
        Polar map of screened and colliding gantry angles.

        Each beam gets its own ring; 0° is at the top and angles increase
        clockwise, as on the gantry scale.

        Returns:
            matplotlib.figure.Figure
        """
        fig, ax = plt.subplots(subplot_kw={'projection': 'polar'}, figsize=(8, 8))
        ax.set_theta_zero_location("N")
        ax.set_theta_direction(-1)

        for ring, (beam_id, result) in enumerate(self.results.items(), start=1):
            theta = np.radians(result.angles)
            radii = np.full(len(theta), ring)
            ax.scatter(theta, radii, c='blue', s=8, alpha=0.5,
                       label="Screened angles" if ring == 1 else None)

            collisions = result.get_collision_indices()
            if len(collisions) > 0:
                ax.scatter(theta[collisions], radii[collisions], c='red', s=30, marker='x',
                           label="Collisions" if ring == 1 else None)

        ax.set_rticks(range(1, len(self.results) + 1))
        ax.set_yticklabels([str(beam_id) for beam_id in self.results])
        ax.set_title("Gantry Angle Collision Map", fontsize=14, fontweight='bold')
        ax.legend(loc="upper right", bbox_to_anchor=(1.3, 1.1))
        if show:
            plt.show()
        return fig


def unwrap_angles(angles):
    """
    Unwrap gantry angles so that consecutive values never jump by more than 180°.

    Returns:
        np.ndarray: Unwrapped angles in degrees
    """
    if len(angles) == 0:
        return np.array([], dtype=float)
    return np.degrees(np.unwrap(np.radians(np.asarray(angles, dtype=float))))
