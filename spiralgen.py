"""
spiralgen.py
============
Core procedural generator for a spiral-galaxy point cloud.

Scatters ``count`` points along ``branches`` spiral arms in the XZ plane.
Every point gets a radius drawn uniformly in ``[0, radius)``, an angular
twist proportional to that radius (``spin``), and an independent per-axis
scatter whose magnitude follows a power law::

    offset = ±1 · u**randomness_power · randomness · r        u ~ U[0, 1)

Higher ``randomness_power`` pulls the scatter tighter onto the arm curve.
Colours are interpolated channel-by-channel from ``inside_color`` (centre)
to ``outside_color`` (rim) by ``r / radius``.

The generator is a one-shot synthesis: every call builds a brand-new cloud
from an immutable parameter snapshot.  When a display surface is attached,
the new cloud replaces the previous one in a single step, so two clouds are
never on screen at once.

Usage (importable)
------------------
    from spiralgen import GalaxyParams, generate
    params = GalaxyParams(count=50_000, branches=5, seed=7)
    cloud  = generate(params)
    cloud.positions.shape   # (50000, 3)

Usage (script, uses all defaults)
---------------------------------
    python spiralgen.py
"""

from __future__ import annotations

import dataclasses
import math
import numbers
import time
from typing import Any, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
from matplotlib.colors import to_rgb


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class InvalidParameter(ValueError):
    """Raised when a parameter snapshot cannot produce a galaxy."""


# ---------------------------------------------------------------------------
# Parameter snapshot
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class GalaxyParams:
    """Immutable snapshot of every tunable galaxy parameter.

    The parameter panel owns the live, editable values and produces a fresh
    snapshot each time an edit is finished; the generator only ever reads a
    snapshot.  Use ``dataclasses.replace`` to derive an edited copy.

    Spatial units
    -------------
    Arbitrary.  The default radius of 5 and point size of 0.01 match a camera
    sitting roughly 5 units from the origin.
    """

    # ---- point count ----
    count: int = 100_000

    # ---- appearance (display surface only) ----
    size: float = 0.01          # point diameter in scene units

    # ---- spiral structure ----
    radius: float = 5.0         # maximum galaxy radius
    branches: int = 3           # number of spiral arms
    spin: float = 1.0           # angular twist per unit radius (radians)

    # ---- scatter ----
    randomness: float = 0.2         # scatter amplitude, relative to r
    randomness_power: float = 3.0   # concentration exponent; larger → tighter arms

    # ---- colour gradient ----
    inside_color: str = "#ff6030"
    outside_color: str = "#1b3984"

    # ---- render loop (not read by the generator) ----
    rotation_active: bool = False
    rotation_speed: float = 0.001   # radians per frame
    rotation_clockwise: bool = True

    # ---- reproducibility ----
    seed: Optional[int] = None      # None → fresh entropy on every run

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], **overrides: Any) -> "GalaxyParams":
        """Build a snapshot from a (possibly partial) mapping.

        Unknown keys are ignored so that presets written by older versions
        keep loading.  ``overrides`` win over ``data``.
        """
        names = {f.name for f in dataclasses.fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in names}
        kwargs.update({k: v for k, v in overrides.items() if k in names})
        return cls(**kwargs)


# Fields consumed only by the display surface / render loop.  Changing any of
# these must never trigger a regeneration.
RENDER_ONLY_FIELDS = frozenset({
    "size",
    "rotation_active",
    "rotation_speed",
    "rotation_clockwise",
})


def needs_regeneration(old: Optional[GalaxyParams], new: GalaxyParams) -> bool:
    """True when *new* differs from *old* in any field the generator reads."""
    if old is None:
        return True
    for field in dataclasses.fields(GalaxyParams):
        if field.name in RENDER_ONLY_FIELDS:
            continue
        if getattr(old, field.name) != getattr(new, field.name):
            return True
    return False


class RegenerationQueue:
    """Decides what a finished edit needs while at most one build runs.

    ``submit`` returns one of:

    ``GENERATE``
        start a build for the snapshot now (it becomes ``running``);
    ``QUEUED``
        a build is already running; the snapshot replaces any earlier
        pending one and is re-submitted by ``finish``;
    ``RESTYLE``
        only render-only fields changed; apply them to the current cloud.

    Keeps no reference to any widget, so the panel's scheduling can be
    exercised without a display.
    """

    GENERATE = "generate"
    QUEUED   = "queued"
    RESTYLE  = "restyle"

    def __init__(self) -> None:
        self.shown:   Optional[GalaxyParams] = None   # params of the attached cloud
        self.running: Optional[GalaxyParams] = None   # params being built
        self.pending: Optional[GalaxyParams] = None   # latest edit during a build
        self._pending_force = False

    @property
    def busy(self) -> bool:
        return self.running is not None

    def submit(self, params: GalaxyParams, force: bool = False) -> str:
        if self.running is not None:
            self.pending = params
            self._pending_force = force or self._pending_force
            return self.QUEUED
        if force or needs_regeneration(self.shown, params):
            self.running = params
            return self.GENERATE
        self.shown = params
        return self.RESTYLE

    def finish(self, succeeded: bool) -> Tuple[Optional[str], Optional[GalaxyParams]]:
        """Close the running build and re-submit the pending edit, if any.

        On failure the previously shown snapshot stays current.  Returns
        ``(action, params)`` for the pending edit, or ``(None, None)``.
        """
        if succeeded:
            self.shown = self.running
        self.running = None
        pending, self.pending = self.pending, None
        force, self._pending_force = self._pending_force, False
        if pending is None:
            return None, None
        return self.submit(pending, force=force), pending


# ---------------------------------------------------------------------------
# Point cloud container
# ---------------------------------------------------------------------------

class PointCloud:
    """Parallel position / colour buffers for one generated galaxy.

    Attributes
    ----------
    positions : float32 ndarray, shape ``(N, 3)``
    colors    : float32 ndarray, shape ``(N, 3)``, components in [0, 1]
    radii     : float64 ndarray, shape ``(N,)`` – drawn radius of each point
    branch    : int64 ndarray, shape ``(N,)``   – arm index of each point
    """

    def __init__(
        self,
        positions: np.ndarray,
        colors: np.ndarray,
        radii: np.ndarray,
        branch: np.ndarray,
    ) -> None:
        self.positions = positions
        self.colors    = colors
        self.radii     = radii
        self.branch    = branch
        self._released = False

    def __len__(self) -> int:
        return 0 if self._released else len(self.positions)

    def __repr__(self) -> str:
        state = "released" if self._released else f"{len(self):,} points"
        return f"<PointCloud {state}>"

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Drop the buffers.  Safe to call more than once."""
        self.positions = np.empty((0, 3), dtype=np.float32)
        self.colors    = np.empty((0, 3), dtype=np.float32)
        self.radii     = np.empty(0, dtype=np.float64)
        self.branch    = np.empty(0, dtype=np.int64)
        self._released = True

    def to_frame(self) -> pd.DataFrame:
        """Tabular view (one row per point) for inspection and statistics."""
        return pd.DataFrame({
            "x":      self.positions[:, 0],
            "y":      self.positions[:, 1],
            "z":      self.positions[:, 2],
            "r":      self.colors[:, 0],
            "g":      self.colors[:, 1],
            "b":      self.colors[:, 2],
            "radius": self.radii,
            "branch": self.branch,
        })


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def parse_color(value: Any) -> np.ndarray:
    """Return an RGB float triple in [0, 1] for any matplotlib colour spec."""
    try:
        return np.array(to_rgb(value), dtype=np.float64)
    except (ValueError, TypeError) as exc:
        raise InvalidParameter(f"Invalid colour {value!r}: {exc}") from exc


def _is_int(value: Any) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _is_finite(value: Any) -> bool:
    return (isinstance(value, numbers.Real) and not isinstance(value, bool)
            and math.isfinite(value))


def validate_params(params: GalaxyParams) -> Tuple[np.ndarray, np.ndarray]:
    """Raise ``InvalidParameter`` if *params* cannot produce a galaxy.

    Returns the parsed ``(inside, outside)`` RGB triples so callers do not
    parse the colours a second time.
    """
    for name in ("count", "branches"):
        value = getattr(params, name)
        if not _is_int(value):
            raise InvalidParameter(f"{name} must be an integer (got {value!r})")
        if value < 1:
            raise InvalidParameter(f"{name} must be >= 1 (got {value})")
    for name in ("radius", "spin", "randomness", "randomness_power"):
        value = getattr(params, name)
        if not _is_finite(value):
            raise InvalidParameter(f"{name} must be a finite number (got {value!r})")
    if not params.radius > 0:
        raise InvalidParameter(f"radius must be > 0 (got {params.radius})")
    if params.seed is not None and not (_is_int(params.seed) and params.seed >= 0):
        raise InvalidParameter(
            f"seed must be None or a non-negative integer (got {params.seed!r})")
    return parse_color(params.inside_color), parse_color(params.outside_color)


def branch_sizes(count: int, branches: int) -> np.ndarray:
    """Split *count* points across *branches* arms as evenly as possible.

    The first ``count % branches`` arms receive one extra point, so the
    sizes always sum to exactly *count*::

        branch_sizes(10, 3)  →  array([4, 3, 3])
    """
    if branches < 1:
        raise InvalidParameter(f"branches must be >= 1 (got {branches})")
    base, extra = divmod(int(count), int(branches))
    sizes = np.full(branches, base, dtype=np.int64)
    sizes[:extra] += 1
    return sizes


def lerp_colors(
    inside: np.ndarray,
    outside: np.ndarray,
    t: np.ndarray,
) -> np.ndarray:
    """Per-channel linear interpolation between two RGB triples.

    Written as ``inside·(1−t) + outside·t`` so that ``t = 0`` and ``t = 1``
    reproduce the endpoints exactly.

    Parameters
    ----------
    inside, outside : array-like, shape ``(3,)``
    t               : array-like, shape ``(N,)`` – interpolation factors

    Returns
    -------
    ndarray of shape ``(N, 3)``
    """
    t = np.asarray(t, dtype=np.float64)[:, None]
    inside  = np.asarray(inside,  dtype=np.float64)
    outside = np.asarray(outside, dtype=np.float64)
    return inside * (1.0 - t) + outside * t


def scatter_offsets(
    rng: np.random.Generator,
    radii: np.ndarray,
    randomness: float,
    randomness_power: float,
) -> np.ndarray:
    """Signed power-law scatter for every point along x, y and z.

    Returns an ``(N, 3)`` array.  The uniform draws and the sign flips are
    taken in a fixed order, independent of *randomness_power*, so two runs
    with the same seed differ only through the exponent.
    """
    n = len(radii)
    u     = rng.random((n, 3))
    signs = np.where(rng.random((n, 3)) < 0.5, 1.0, -1.0)
    return signs * np.power(u, randomness_power) * randomness * radii[:, None]


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

def build_point_cloud(
    params: GalaxyParams,
    rng: Optional[np.random.Generator] = None,
) -> PointCloud:
    """Build a new point cloud from *params*.  Pure; touches no display.

    Algorithm
    ---------
    1. Arm *i* has base angle ``i · 2π / branches``.
    2. Points are assigned to arms in contiguous blocks given by
       ``branch_sizes(count, branches)``.
    3. For every point: ``r ~ U[0, radius)``, ``spin_angle = r · spin`` and a
       per-axis offset from ``scatter_offsets``.
    4. ``x = cos(θ + spin_angle)·r + ox``, ``y = oy``,
       ``z = sin(θ + spin_angle)·r + oz``.
    5. Colour = ``lerp_colors(inside, outside, r / radius)``.

    Parameters
    ----------
    params : GalaxyParams
    rng    : numpy Generator; defaults to ``default_rng(params.seed)``

    Raises
    ------
    InvalidParameter
        Before any allocation, when *params* fails ``validate_params``.
    """
    inside, outside = validate_params(params)
    return _synthesize(params, rng, inside, outside)


def _synthesize(
    params: GalaxyParams,
    rng: Optional[np.random.Generator],
    inside: np.ndarray,
    outside: np.ndarray,
) -> PointCloud:
    # params already validated; inside/outside are the parsed colours
    if rng is None:
        rng = np.random.default_rng(params.seed)

    spacing      = 2.0 * math.pi / params.branches
    branch_angle = np.arange(params.branches, dtype=np.float64) * spacing
    branch       = np.repeat(
        np.arange(params.branches, dtype=np.int64),
        branch_sizes(params.count, params.branches),
    )

    r          = rng.uniform(0.0, params.radius, params.count)
    spin_angle = r * params.spin
    offsets    = scatter_offsets(rng, r, params.randomness, params.randomness_power)

    angle = branch_angle[branch] + spin_angle
    positions = np.empty((params.count, 3), dtype=np.float32)
    positions[:, 0] = np.cos(angle) * r + offsets[:, 0]
    positions[:, 1] = offsets[:, 1]
    positions[:, 2] = np.sin(angle) * r + offsets[:, 2]

    # r < radius by construction, the clip only guards float rounding
    t = np.clip(r / params.radius, 0.0, 1.0)
    colors = np.ascontiguousarray(
        lerp_colors(inside, outside, t), dtype=np.float32
    )

    return PointCloud(positions, colors, r, branch)


class GalaxyGenerator:
    """Regenerates the galaxy and hands each new cloud to a display surface.

    Parameters
    ----------
    surface : object with a ``replace(cloud, size)`` method, or None
        The display surface that owns the current cloud.  ``replace`` must
        detach and release the previous cloud before attaching the new one.
    rng : numpy Generator, optional
        Injected random source.  When omitted each call seeds a fresh
        generator from ``params.seed``.
    """

    def __init__(self, surface=None, rng: Optional[np.random.Generator] = None) -> None:
        self.surface = surface
        self._rng = rng

    def generate(self, params: GalaxyParams) -> PointCloud:
        """Validate, build, and swap in a new cloud.

        Validation happens first; on ``InvalidParameter`` the surface keeps
        whatever cloud it was showing.
        """
        inside, outside = validate_params(params)

        print(f"Generating {params.count:,} points on {params.branches} branches …")
        t0 = time.perf_counter()
        cloud = _synthesize(params, self._rng, inside, outside)
        print(f"  {len(cloud):,} points built in {time.perf_counter() - t0:.2f}s")

        if self.surface is not None:
            self.surface.replace(cloud, params.size)
        return cloud


def generate(
    params: GalaxyParams,
    rng: Optional[np.random.Generator] = None,
) -> PointCloud:
    """Convenience wrapper: build a cloud without any display surface."""
    return GalaxyGenerator(rng=rng).generate(params)


# ---------------------------------------------------------------------------
# Acceptance checks
# ---------------------------------------------------------------------------

def check_cloud(cloud: PointCloud, params: GalaxyParams) -> bool:
    """Print acceptance test results to stdout; return True if all pass."""
    sep = "─" * 52
    print(f"\n{sep}")
    print("  ACCEPTANCE TESTS")
    print(sep)

    frame = cloud.to_frame()
    results = []

    # Point count
    ok = len(cloud) == params.count and len(cloud.colors) == params.count
    results.append(ok)
    print(f"  Point count : {len(cloud):>8,}  (target {params.count:,})  "
          f"{'✓' if ok else '✗ FAIL'}")

    # Branch distribution
    expected = branch_sizes(params.count, params.branches)
    actual = (frame.groupby("branch").size()
                   .reindex(range(params.branches), fill_value=0)
                   .to_numpy())
    ok = bool(np.array_equal(actual, expected))
    results.append(ok)
    print(f"  Branches    : {params.branches:>8}  "
          f"sizes {int(actual.min()):,}–{int(actual.max()):,}  "
          f"{'✓' if ok else '✗ FAIL'}")

    # Colour range
    rgb = frame[["r", "g", "b"]].to_numpy()
    ok = bool(len(rgb) == 0 or (rgb.min() >= 0.0 and rgb.max() <= 1.0))
    results.append(ok)
    print(f"  Colour range: [{rgb.min() if len(rgb) else 0.0:.3f}, "
          f"{rgb.max() if len(rgb) else 0.0:.3f}]  ⊂ [0, 1]  "
          f"{'✓' if ok else '✗ FAIL'}")

    # Drawn radii
    ok = bool((frame["radius"] >= 0).all() and (frame["radius"] <= params.radius).all())
    results.append(ok)
    print(f"  Max radius  : {frame['radius'].max():>9.4f}  <= {params.radius}  "
          f"{'✓' if ok else '✗ FAIL'}")

    # XZ spread (informational – scatter may push points past radius)
    xz = np.hypot(frame["x"].to_numpy(), frame["z"].to_numpy())
    beyond = int((xz > params.radius).sum())
    print(f"\n  XZ distance : median={np.median(xz):.3f}  max={xz.max():.3f}")
    print(f"    {beyond:,} points scattered beyond r={params.radius}")
    print(f"    |y| mean={frame['y'].abs().mean():.4f}")

    print(sep + "\n")
    return all(results)


# ---------------------------------------------------------------------------
# Script entry point (uses all GalaxyParams defaults)
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    params = GalaxyParams()
    check_cloud(generate(params), params)
