"""
Pytest configuration and shared fixtures
========================================

- Forces the non-interactive Agg backend before pyplot is imported anywhere.
- Puts the repository root on ``sys.path`` so the flat modules import
  without an install.
- Provides small, seeded parameter snapshots and a throw-away display
  surface.
"""

import os
import sys

import matplotlib
matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pytest


# ---------------------------------------------------------------------------
# Path setup
# ---------------------------------------------------------------------------

_repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _repo_root not in sys.path:
    sys.path.insert(0, _repo_root)


# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def small_params():
    """A seeded 3-branch snapshot small enough for exact checks."""
    from spiralgen import GalaxyParams
    return GalaxyParams(count=1_000, branches=3, radius=5.0, seed=7)


@pytest.fixture
def flat_params():
    """Scatter-free, spin-free snapshot: every point sits on its arm ray."""
    from spiralgen import GalaxyParams
    return GalaxyParams(
        count=12, branches=3, radius=5.0, spin=0.0, randomness=0.0, seed=3,
    )


@pytest.fixture
def surface():
    """Empty display surface on an Agg figure; closed after the test."""
    from plot_galaxy import make_surface
    fig, surf = make_surface(figsize=(4, 4))
    yield surf
    plt.close(fig)
