"""
Tests for the point-cloud generator core
========================================

Run with: pytest tests/test_spiralgen.py -v
"""

import dataclasses
import math

import numpy as np
import pandas as pd
import pytest

import spiralgen
from spiralgen import (
    RENDER_ONLY_FIELDS,
    GalaxyGenerator,
    GalaxyParams,
    InvalidParameter,
    PointCloud,
    RegenerationQueue,
    branch_sizes,
    build_point_cloud,
    check_cloud,
    generate,
    lerp_colors,
    needs_regeneration,
    parse_color,
    validate_params,
)


class ExplodingRng:
    """Stand-in random source that fails on any draw."""

    def __getattr__(self, name):
        raise AssertionError(f"random source touched ({name})")


class RecordingSurface:
    """Minimal display surface that records every replace call."""

    def __init__(self):
        self.calls = []

    def replace(self, cloud, size):
        self.calls.append((cloud, size))


# ---------------------------------------------------------------------------
# Branch distribution
# ---------------------------------------------------------------------------

class TestBranchSizes:

    def test_uneven_split_front_loads_extra_points(self):
        np.testing.assert_array_equal(branch_sizes(10, 3), [4, 3, 3])

    def test_even_split(self):
        np.testing.assert_array_equal(branch_sizes(12, 3), [4, 4, 4])

    def test_fewer_points_than_branches(self):
        np.testing.assert_array_equal(branch_sizes(2, 5), [1, 1, 0, 0, 0])

    @pytest.mark.parametrize("count,branches", [
        (1, 1), (7, 2), (100, 7), (99_991, 20), (5, 5), (3, 20),
    ])
    def test_sizes_sum_to_count(self, count, branches):
        sizes = branch_sizes(count, branches)
        assert len(sizes) == branches
        assert sizes.sum() == count
        assert sizes.max() - sizes.min() <= 1

    def test_zero_branches_rejected(self):
        with pytest.raises(InvalidParameter):
            branch_sizes(10, 0)


# ---------------------------------------------------------------------------
# Colour helpers
# ---------------------------------------------------------------------------

class TestColors:

    def test_parse_hex(self):
        np.testing.assert_allclose(parse_color("#ff0000"), [1.0, 0.0, 0.0])

    def test_parse_invalid(self):
        with pytest.raises(InvalidParameter):
            parse_color("#nothex")

    def test_endpoints_are_exact(self):
        inside = parse_color("#ff6030")
        outside = parse_color("#1b3984")
        out = lerp_colors(inside, outside, np.array([0.0, 1.0]))
        assert np.array_equal(out[0], inside)
        assert np.array_equal(out[1], outside)

    def test_midpoint_is_channel_average(self):
        inside = np.array([1.0, 0.0, 0.2])
        outside = np.array([0.0, 1.0, 0.6])
        out = lerp_colors(inside, outside, np.array([0.5, 0.25]))
        np.testing.assert_allclose(out[0], [0.5, 0.5, 0.4])
        np.testing.assert_allclose(out[1], [0.75, 0.25, 0.3])


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestValidation:

    @pytest.mark.parametrize("overrides", [
        {"count": 0},
        {"count": -5},
        {"branches": 0},
        {"radius": 0.0},
        {"radius": -1.0},
        {"inside_color": "not-a-colour"},
        {"outside_color": "#12"},
        {"count": 1000.5},
        {"count": "500"},
        {"count": True},
        {"branches": 2.0},
        {"radius": math.inf},
        {"radius": math.nan},
        {"radius": "5"},
        {"spin": math.inf},
        {"randomness_power": math.nan},
        {"seed": "abc"},
        {"seed": 1.5},
        {"seed": -1},
    ])
    def test_invalid_params_raise(self, overrides):
        params = dataclasses.replace(GalaxyParams(count=10), **overrides)
        with pytest.raises(InvalidParameter):
            validate_params(params)

    def test_numpy_scalars_accepted(self):
        params = GalaxyParams(count=np.int64(10), branches=np.int32(2),
                              radius=np.float64(3.0), seed=np.int64(4))
        inside, outside = validate_params(params)
        np.testing.assert_allclose(inside, [1.0, 96 / 255, 48 / 255])
        np.testing.assert_allclose(outside, [27 / 255, 57 / 255, 132 / 255])

    def test_invalid_parameter_is_value_error(self):
        assert issubclass(InvalidParameter, ValueError)

    def test_no_random_draws_on_invalid_input(self):
        with pytest.raises(InvalidParameter):
            build_point_cloud(GalaxyParams(count=0), rng=ExplodingRng())
        with pytest.raises(InvalidParameter):
            build_point_cloud(GalaxyParams(branches=0), rng=ExplodingRng())
        with pytest.raises(InvalidParameter):
            build_point_cloud(GalaxyParams(radius=0.0), rng=ExplodingRng())


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class TestBuildPointCloud:

    @pytest.mark.parametrize("count,branches", [
        (1, 1), (10, 3), (12, 3), (2, 5), (1_001, 7),
    ])
    def test_lengths_match_count(self, count, branches):
        cloud = build_point_cloud(GalaxyParams(count=count, branches=branches, seed=0))
        assert cloud.positions.shape == (count, 3)
        assert cloud.colors.shape == (count, 3)
        assert len(cloud.radii) == count
        assert len(cloud.branch) == count
        assert len(cloud) == count

    def test_buffers_fully_populated(self, small_params):
        cloud = build_point_cloud(small_params)
        assert np.isfinite(cloud.positions).all()
        assert np.isfinite(cloud.colors).all()
        assert cloud.positions.dtype == np.float32
        assert cloud.colors.dtype == np.float32
        assert cloud.positions.flags["C_CONTIGUOUS"]
        assert cloud.colors.flags["C_CONTIGUOUS"]

    def test_branch_assignment_is_contiguous(self):
        cloud = build_point_cloud(GalaxyParams(count=10, branches=3, seed=1))
        np.testing.assert_array_equal(
            cloud.branch, [0, 0, 0, 0, 1, 1, 1, 2, 2, 2])

    def test_radii_within_bounds(self, small_params):
        cloud = build_point_cloud(small_params)
        assert cloud.radii.min() >= 0.0
        assert cloud.radii.max() <= small_params.radius

    def test_colors_in_unit_range(self, small_params):
        cloud = build_point_cloud(small_params)
        assert cloud.colors.min() >= 0.0
        assert cloud.colors.max() <= 1.0

    def test_colors_follow_radius(self, small_params):
        cloud = build_point_cloud(small_params)
        expected = lerp_colors(
            parse_color(small_params.inside_color),
            parse_color(small_params.outside_color),
            cloud.radii / small_params.radius,
        )
        np.testing.assert_allclose(cloud.colors, expected, atol=1e-6)

    def test_zero_randomness_lies_on_arm_rays(self, flat_params):
        cloud = build_point_cloud(flat_params)
        theta = cloud.branch * (2.0 * math.pi / flat_params.branches)
        r = cloud.radii

        assert np.all(cloud.positions[:, 1] == 0.0)
        np.testing.assert_allclose(cloud.positions[:, 0], np.cos(theta) * r, atol=1e-5)
        np.testing.assert_allclose(cloud.positions[:, 2], np.sin(theta) * r, atol=1e-5)

    def test_end_to_end_twelve_points(self, flat_params):
        cloud = build_point_cloud(flat_params)
        np.testing.assert_array_equal(np.bincount(cloud.branch), [4, 4, 4])

        angles = {0: 0.0, 1: 2.0 * math.pi / 3.0, 2: 4.0 * math.pi / 3.0}
        for (x, y, z), r, b in zip(cloud.positions, cloud.radii, cloud.branch):
            assert 0.0 <= r <= 5.0
            assert y == 0.0
            assert x == pytest.approx(math.cos(angles[int(b)]) * r, abs=1e-5)
            assert z == pytest.approx(math.sin(angles[int(b)]) * r, abs=1e-5)

    def test_zero_randomness_with_spin_follows_spiral(self):
        params = GalaxyParams(count=300, branches=4, spin=1.5, randomness=0.0, seed=11)
        cloud = build_point_cloud(params)
        theta = cloud.branch * (2.0 * math.pi / 4) + cloud.radii * 1.5
        np.testing.assert_allclose(cloud.positions[:, 0], np.cos(theta) * cloud.radii, atol=1e-5)
        np.testing.assert_allclose(cloud.positions[:, 2], np.sin(theta) * cloud.radii, atol=1e-5)
        assert np.all(cloud.positions[:, 1] == 0.0)

    def test_scatter_bounded_by_randomness_times_radius(self):
        params = GalaxyParams(count=2_000, randomness=0.5, randomness_power=1.0, seed=5)
        cloud = build_point_cloud(params)
        bound = params.randomness * cloud.radii + 1e-5
        assert np.all(np.abs(cloud.positions[:, 1]) <= bound)

    def test_higher_power_concentrates_scatter(self):
        base = GalaxyParams(count=5_000, randomness=1.0, seed=42)
        magnitudes = []
        previous = None
        for power in (1.0, 2.0, 4.0, 8.0):
            cloud = build_point_cloud(dataclasses.replace(base, randomness_power=power))
            y = np.abs(cloud.positions[:, 1])
            if previous is not None:
                assert np.all(y <= previous)
            previous = y
            magnitudes.append(y.mean())
        assert all(a > b for a, b in zip(magnitudes, magnitudes[1:]))

    def test_scatter_signs_are_balanced(self):
        cloud = build_point_cloud(GalaxyParams(count=20_000, seed=9))
        positive = (cloud.positions[:, 1] > 0).mean()
        assert 0.45 < positive < 0.55

    def test_same_seed_same_cloud(self, small_params):
        a = build_point_cloud(small_params)
        b = build_point_cloud(small_params)
        np.testing.assert_array_equal(a.positions, b.positions)
        np.testing.assert_array_equal(a.colors, b.colors)

    def test_injected_rng_matches_seed(self, small_params):
        a = build_point_cloud(small_params)
        b = build_point_cloud(
            dataclasses.replace(small_params, seed=None),
            rng=np.random.default_rng(small_params.seed),
        )
        np.testing.assert_array_equal(a.positions, b.positions)

    def test_each_call_allocates_new_buffers(self, small_params):
        a = build_point_cloud(small_params)
        b = build_point_cloud(small_params)
        assert not np.shares_memory(a.positions, b.positions)
        assert not np.shares_memory(a.colors, b.colors)


# ---------------------------------------------------------------------------
# Point cloud container
# ---------------------------------------------------------------------------

class TestPointCloud:

    def test_release_drops_buffers(self, small_params):
        cloud = build_point_cloud(small_params)
        cloud.release()
        assert cloud.released
        assert len(cloud) == 0
        assert cloud.positions.shape == (0, 3)
        cloud.release()
        assert cloud.released

    def test_release_gives_each_buffer_its_own_array(self, small_params):
        cloud = build_point_cloud(small_params)
        cloud.release()
        assert cloud.positions is not cloud.colors
        assert cloud.colors.shape == (0, 3)

    def test_to_frame(self, small_params):
        cloud = build_point_cloud(small_params)
        frame = cloud.to_frame()
        assert isinstance(frame, pd.DataFrame)
        assert list(frame.columns) == ["x", "y", "z", "r", "g", "b", "radius", "branch"]
        assert len(frame) == small_params.count
        counts = frame.groupby("branch").size().to_numpy()
        np.testing.assert_array_equal(counts, branch_sizes(small_params.count, 3))

    def test_repr(self, small_params):
        cloud = build_point_cloud(small_params)
        assert "1,000 points" in repr(cloud)
        cloud.release()
        assert "released" in repr(cloud)


# ---------------------------------------------------------------------------
# Parameter snapshot
# ---------------------------------------------------------------------------

class TestGalaxyParams:

    def test_defaults_match_reference_scene(self):
        p = GalaxyParams()
        assert p.count == 100_000
        assert p.branches == 3
        assert p.radius == 5.0
        assert p.inside_color == "#ff6030"
        assert p.outside_color == "#1b3984"

    def test_snapshot_is_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            GalaxyParams().count = 5

    def test_from_dict_ignores_unknown_keys(self):
        p = GalaxyParams.from_dict({"count": 500, "legacy_field": 1})
        assert p.count == 500

    def test_from_dict_overrides_win(self):
        p = GalaxyParams.from_dict({"count": 500, "spin": 2.0}, spin=-1.0)
        assert p.count == 500
        assert p.spin == -1.0

    def test_round_trip_dict(self):
        p = GalaxyParams(count=42, seed=3)
        assert GalaxyParams.from_dict(p.to_dict()) == p


class TestNeedsRegeneration:

    def test_first_run(self):
        assert needs_regeneration(None, GalaxyParams())

    @pytest.mark.parametrize("field,value", [
        ("size", 0.05),
        ("rotation_active", True),
        ("rotation_speed", 0.004),
        ("rotation_clockwise", False),
    ])
    def test_render_only_fields_ignored(self, field, value):
        old = GalaxyParams()
        assert field in RENDER_ONLY_FIELDS
        assert not needs_regeneration(old, dataclasses.replace(old, **{field: value}))

    @pytest.mark.parametrize("field,value", [
        ("count", 200_000),
        ("radius", 7.5),
        ("branches", 5),
        ("spin", -1.0),
        ("randomness", 0.5),
        ("randomness_power", 2.0),
        ("inside_color", "#ffffff"),
        ("outside_color", "#000000"),
        ("seed", 1),
    ])
    def test_generator_fields_trigger(self, field, value):
        old = GalaxyParams()
        assert needs_regeneration(old, dataclasses.replace(old, **{field: value}))


class TestRegenerationQueue:
    """Scheduling of finished edits while at most one build runs."""

    def test_first_edit_generates(self):
        queue = RegenerationQueue()
        params = GalaxyParams()
        assert queue.submit(params) == RegenerationQueue.GENERATE
        assert queue.running == params
        assert queue.busy

    def test_render_only_edit_restyles_when_idle(self):
        queue = RegenerationQueue()
        first = GalaxyParams()
        queue.submit(first)
        queue.finish(succeeded=True)
        bigger = dataclasses.replace(first, size=0.05)
        assert queue.submit(bigger) == RegenerationQueue.RESTYLE
        assert queue.shown == bigger
        assert not queue.busy

    def test_edit_during_build_is_queued(self):
        queue = RegenerationQueue()
        queue.submit(GalaxyParams())
        edit = GalaxyParams(count=500)
        assert queue.submit(edit) == RegenerationQueue.QUEUED
        assert queue.pending == edit

    def test_size_edit_during_build_is_restyled_afterwards(self):
        queue = RegenerationQueue()
        first = GalaxyParams()
        queue.submit(first)
        bigger = dataclasses.replace(first, size=0.05)
        queue.submit(bigger)
        action, params = queue.finish(succeeded=True)
        assert action == RegenerationQueue.RESTYLE
        assert params == bigger
        assert queue.shown.size == 0.05
        assert not queue.busy

    def test_generator_edit_during_build_runs_next(self):
        queue = RegenerationQueue()
        queue.submit(GalaxyParams())
        edit = GalaxyParams(branches=5)
        queue.submit(edit)
        action, params = queue.finish(succeeded=True)
        assert action == RegenerationQueue.GENERATE
        assert params == edit
        assert queue.running == edit

    def test_only_latest_pending_edit_is_kept(self):
        queue = RegenerationQueue()
        queue.submit(GalaxyParams())
        queue.submit(GalaxyParams(branches=4))
        queue.submit(GalaxyParams(branches=6))
        action, params = queue.finish(succeeded=True)
        assert action == RegenerationQueue.GENERATE
        assert params.branches == 6
        assert queue.finish(succeeded=True) == (None, None)

    def test_failed_build_keeps_previous_snapshot(self):
        queue = RegenerationQueue()
        good = GalaxyParams()
        queue.submit(good)
        queue.finish(succeeded=True)
        queue.submit(GalaxyParams(branches=7))
        assert queue.finish(succeeded=False) == (None, None)
        assert queue.shown == good
        assert not queue.busy

    def test_force_regenerates_unchanged_params(self):
        queue = RegenerationQueue()
        params = GalaxyParams()
        queue.submit(params)
        queue.finish(succeeded=True)
        assert queue.submit(params, force=True) == RegenerationQueue.GENERATE

    def test_force_during_build_is_kept_for_next_run(self):
        queue = RegenerationQueue()
        params = GalaxyParams()
        queue.submit(params)
        assert queue.submit(params, force=True) == RegenerationQueue.QUEUED
        action, _ = queue.finish(succeeded=True)
        assert action == RegenerationQueue.GENERATE


# ---------------------------------------------------------------------------
# Generator with a display surface
# ---------------------------------------------------------------------------

class TestGalaxyGenerator:

    def test_hands_cloud_to_surface(self, small_params):
        surface = RecordingSurface()
        cloud = GalaxyGenerator(surface).generate(small_params)
        assert surface.calls == [(cloud, small_params.size)]

    def test_invalid_params_leave_surface_untouched(self, small_params):
        surface = RecordingSurface()
        gen = GalaxyGenerator(surface)
        gen.generate(small_params)
        with pytest.raises(InvalidParameter):
            gen.generate(dataclasses.replace(small_params, radius=0.0))
        assert len(surface.calls) == 1
        assert not surface.calls[0][0].released

    def test_prints_progress(self, small_params, capsys):
        generate(small_params)
        out = capsys.readouterr().out
        assert "Generating 1,000 points on 3 branches" in out

    def test_colours_parsed_once_per_run(self, small_params, monkeypatch):
        seen = []
        real = spiralgen.parse_color

        def counting(value):
            seen.append(value)
            return real(value)

        monkeypatch.setattr(spiralgen, "parse_color", counting)
        GalaxyGenerator(RecordingSurface()).generate(small_params)
        assert seen == [small_params.inside_color, small_params.outside_color]

    def test_generate_without_surface(self, small_params):
        cloud = generate(small_params)
        assert isinstance(cloud, PointCloud)
        assert len(cloud) == small_params.count


class TestCheckCloud:

    def test_valid_cloud_passes(self, small_params, capsys):
        cloud = build_point_cloud(small_params)
        assert check_cloud(cloud, small_params)
        out = capsys.readouterr().out
        assert "ACCEPTANCE TESTS" in out
        assert "FAIL" not in out

    def test_wrong_count_fails(self, small_params, capsys):
        cloud = build_point_cloud(small_params)
        bigger = dataclasses.replace(small_params, count=small_params.count + 1)
        assert not check_cloud(cloud, bigger)
        assert "FAIL" in capsys.readouterr().out
