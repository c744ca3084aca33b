"""
plot_galaxy.py
==============
Matplotlib display surface for the spiral-galaxy point cloud.

Shows:
  • Every point of the current cloud, tinted by its own vertex colour
  • A dark background with translucent, depth-unsorted markers so dense arm
    regions glow brighter (the closest matplotlib gets to additive blending)
  • Optional slow rotation about the galaxy's vertical axis

The galaxy is generated in a Y-up frame (the disk lies in XZ).  Matplotlib's
3-D axes are Z-up, so points are drawn at ``(x, -z, y)``, a proper rotation
that keeps the spiral's handedness.

Usage
-----
    from spiralgen import GalaxyParams, GalaxyGenerator
    from plot_galaxy import make_surface

    params = GalaxyParams(seed=7)
    fig, surface = make_surface()
    GalaxyGenerator(surface).generate(params)   # swaps the cloud in
    fig.savefig("galaxy.png")
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation

from spiralgen import GalaxyParams, PointCloud


BG = "#000000"

# Marker diameter in points per scene unit; size=0.01 → ~1 pt markers.
POINT_SCALE = 100.0

# Translucency stands in for additive blending.
POINT_ALPHA = 0.6

# Frame interval for the render loop (ms).
FRAME_MS = 16


def marker_area(size: float) -> float:
    """Scatter marker area (pt²) for a point *size* in scene units."""
    return (size * POINT_SCALE) ** 2


# ---------------------------------------------------------------------------
# Display surface
# ---------------------------------------------------------------------------

class CloudSurface:
    """Owns at most one point cloud and the matplotlib artist that draws it.

    ``replace`` is the only way to put a cloud on screen: it detaches and
    releases the previous cloud first, so two clouds are never attached at
    the same time.
    """

    def __init__(self, ax) -> None:
        self.ax = ax
        self._cloud:  Optional[PointCloud] = None
        self._artist = None

    @property
    def current(self) -> Optional[PointCloud]:
        return self._cloud

    @property
    def artist(self):
        return self._artist

    def clear(self) -> None:
        """Detach the current artist and release the cloud's buffers."""
        if self._artist is not None:
            self._artist.remove()
            self._artist = None
        if self._cloud is not None:
            self._cloud.release()
            self._cloud = None

    def replace(self, cloud: PointCloud, size: float) -> None:
        """Swap *cloud* in for the current one."""
        self.clear()

        pos = cloud.positions
        self._artist = self.ax.scatter(
            pos[:, 0], -pos[:, 2], pos[:, 1],
            c=cloud.colors,
            s=marker_area(size),
            alpha=POINT_ALPHA,
            linewidths=0,
            depthshade=False,
        )
        self._cloud = cloud
        self._fit_limits(cloud)

    def set_point_size(self, size: float) -> None:
        """Restyle the current cloud without regenerating it."""
        if self._artist is not None:
            self._artist.set_sizes([marker_area(size)])

    def rotate(self, params: GalaxyParams) -> bool:
        """Advance the rotation by one frame.  Returns True if the view moved.

        Spinning the galaxy by +θ about its vertical axis looks the same as
        moving the camera azimuth by −θ.
        """
        if not params.rotation_active:
            return False
        step = math.degrees(params.rotation_speed)
        if params.rotation_clockwise:
            step = -step
        self.ax.view_init(elev=self.ax.elev, azim=self.ax.azim - step)
        return True

    def _fit_limits(self, cloud: PointCloud) -> None:
        extent = float(cloud.radii.max()) if len(cloud) else 1.0
        margin = max(extent, 1e-6) * 1.08
        self.ax.set_xlim(-margin, margin)
        self.ax.set_ylim(-margin, margin)
        self.ax.set_zlim(-margin * 0.5, margin * 0.5)


# ---------------------------------------------------------------------------
# Figure helpers
# ---------------------------------------------------------------------------

def make_surface(figsize: Tuple[float, float] = (9, 9)) -> Tuple[plt.Figure, CloudSurface]:
    """Create a dark 3-D figure and an empty surface bound to its axes."""
    fig = plt.figure(figsize=figsize)
    fig.patch.set_facecolor(BG)

    ax = fig.add_subplot(projection="3d")
    ax.set_facecolor(BG)
    ax.set_box_aspect((1.0, 1.0, 0.5))
    ax.set_axis_off()
    # Camera roughly at (3, 3, 3) looking at the origin
    ax.view_init(elev=35.0, azim=-45.0)
    fig.subplots_adjust(left=0, right=1, bottom=0, top=1)

    return fig, CloudSurface(ax)


def draw_cloud(cloud: PointCloud, params: GalaxyParams) -> plt.Figure:
    """Draw *cloud* on a fresh figure and return it.

    The figure's surface takes ownership of *cloud*.
    """
    fig, surface = make_surface()
    surface.replace(cloud, params.size)
    surface.ax.set_title(
        f"{len(cloud):,} points  |  {params.branches} branches  |  "
        f"spin {params.spin:g}",
        color="white", fontsize=11, pad=10,
    )
    return fig


def animate(
    fig: plt.Figure,
    surface: CloudSurface,
    params: GalaxyParams,
) -> FuncAnimation:
    """Render loop: rotate the current cloud every frame.

    Keep a reference to the returned animation for as long as it should run.
    """
    def _tick(_frame: int):
        surface.rotate(params)
        return ()

    return FuncAnimation(
        fig, _tick, interval=FRAME_MS, blit=False, cache_frame_data=False,
    )
