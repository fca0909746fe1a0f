import logging

import numpy as np
import pytest

from liquid2d import (ConfigurationError, LevelSet, LiquidSimulation, ScalarGrid,
                      SimulationStateError, StaggeredGrid, Transform, square_mesh)
from liquid2d.solver import open_cells, weighted_divergence


@pytest.fixture
def sim(xform):
    return LiquidSimulation(xform, (40, 40), 5, seed=0)


@pytest.fixture
def pool(make_levelset):
    return make_levelset(square_mesh((0.5, 0.3), 0.2))


@pytest.fixture
def configured(sim, pool, container):
    sim.set_collision_volume(container)
    sim.set_surface_volume(pool)
    return sim


# ── Configuration ───────────────────────────────────────────────────────────

def test_mismatched_resolution_rejected(sim, xform):
    other = LevelSet(xform, (32, 32), 5)
    with pytest.raises(ConfigurationError):
        sim.set_collision_volume(other)
    with pytest.raises(ConfigurationError):
        sim.set_surface_volume(other)
    with pytest.raises(ConfigurationError):
        sim.set_surface_velocity(StaggeredGrid(xform, (32, 32)))
    assert not sim.is_configured


def test_mismatched_transform_rejected(sim, pool):
    shifted = LevelSet(Transform(0.025, (0.5, 0.0)), (40, 40), 5)
    coarse = StaggeredGrid(Transform(0.05), (40, 40))
    with pytest.raises(ConfigurationError):
        sim.set_surface_volume(shifted)
    with pytest.raises(ConfigurationError):
        sim.set_collision_velocity(coarse)
    with pytest.raises(ConfigurationError):
        sim.set_viscosity(ScalarGrid(Transform(0.05), (40, 40), 1.0))
    assert not sim.moving_solids
    assert sim.viscosity is None


def test_rejection_leaves_state_untouched(configured, xform):
    before = configured.surface.data.copy()
    with pytest.raises(ConfigurationError):
        configured.set_surface_volume(LevelSet(xform, (20, 20), 5))
    assert np.array_equal(configured.surface.data, before)


def test_negative_settings_rejected(sim):
    with pytest.raises(ConfigurationError):
        sim.set_surface_tension(-1.0)
    with pytest.raises(ConfigurationError):
        sim.set_viscosity(-0.5)


def test_feature_toggles(configured):
    configured.set_enforce_bubbles()
    configured.set_enforce_bubbles()
    configured.set_viscosity()
    configured.set_surface_tension(2.0)
    assert configured.enforce_bubbles
    assert np.all(configured.viscosity.data == 1.0)
    assert configured.st_scale == 2.0


def test_volume_correction_captures_target(configured):
    configured.set_volume_correction()
    assert configured.volume_correction
    assert configured.target_volume == pytest.approx(configured.compute_volume(True))
    assert configured.accum_error == 0.0


def test_add_surface_volume(configured, make_levelset):
    n_before = len(configured.particles)
    configured.add_surface_volume(make_levelset(square_mesh((0.5, 0.8), 0.1)))
    assert configured.compute_volume(True) == pytest.approx(0.16 + 0.04, rel=0.02)
    assert len(configured.particles) > n_before


def test_air_volume_is_complement(configured):
    configured.set_air_volume()
    assert np.allclose(configured.air_surface.data, -configured.surface.data)
    assert len(configured.air_particles) > 0


def test_stepping_requires_geometry(sim, pool):
    with pytest.raises(SimulationStateError):
        sim.run_simulation(0.001)
    sim.set_surface_volume(pool)
    with pytest.raises(SimulationStateError):
        sim.run_simulation(0.001)


def test_structural_changes_locked_after_stepping(configured, pool, container):
    configured.run_simulation(0.001)
    assert configured.is_stepping

    with pytest.raises(SimulationStateError):
        configured.set_collision_volume(container)
    with pytest.raises(SimulationStateError):
        configured.set_surface_volume(pool)
    with pytest.raises(SimulationStateError):
        configured.set_enforce_bubbles()
    with pytest.raises(SimulationStateError):
        configured.set_air_volume()

    # Tuning and animated solids stay allowed
    configured.set_surface_tension(1.0)
    configured.set_collision_velocity(StaggeredGrid(configured.xform, (40, 40)))
    configured.disable_moving_solids()


# ── Volume, forces, velocity ────────────────────────────────────────────────

def test_compute_volume(sim, make_levelset, no_solid):
    sim.set_collision_volume(no_solid)
    sim.set_surface_volume(make_levelset(square_mesh((0.5, 0.5), 0.2)))
    assert sim.compute_volume(True) == pytest.approx(0.16, rel=0.01)
    assert sim.compute_volume(False) == pytest.approx(0.84, rel=0.01)


def test_volume_excludes_solid(sim, make_levelset, container):
    # Liquid square overlapping the left wall
    sim.set_collision_volume(container)
    sim.set_surface_volume(make_levelset(square_mesh((0.1, 0.5), 0.1)))
    assert sim.compute_volume(True) == pytest.approx(0.15 * 0.2, rel=0.03)


def test_add_force_skips_domain_walls(configured):
    configured.add_force((0.0, -1.0), 0.5)
    v = configured.vel.v.data
    assert np.all(v[:, 0] == 0.0)
    assert v[20, 20] == -0.5


def test_add_force_sampler(configured):
    configured.add_force(lambda p: np.tile([2.0, 0.0], (len(p), 1)), 0.25)
    assert configured.vel.u.data[20, 20] == 0.5
    assert configured.max_vel_mag() == pytest.approx(configured.vel.max_magnitude())


def test_advect_velocity_and_surface(configured):
    configured.set_surface_velocity(StaggeredGrid(configured.xform, (40, 40), (0.0, 0.5)))
    configured.advect_surface(0.1, "euler")
    configured.advect_velocity(0.1, "rk3")
    configured.advect_viscosity(0.1)
    # The pool top moved from y=0.5 to y=0.55
    assert configured.surface.interp(np.array([[0.5, 0.52]]))[0] < 0.0
    assert np.allclose(configured.vel.v.data, 0.5)


# ── Substeps ────────────────────────────────────────────────────────────────

def test_substep_under_gravity(configured):
    for _ in range(3):
        configured.add_force((0.0, -1.0), 0.002)
        configured.run_simulation(0.002)

    assert configured.vel.is_finite()
    assert len(configured.perf_log) == 3
    assert configured.substep == 3
    for metrics in configured.perf_log:
        assert metrics["divergence_max"] < 1e-6

    # The pool is in free fall; deep cells stay divergence free after extrapolation
    weights_u, weights_v = configured.solid_weights()
    deep = (configured.surface.data < -3 * configured.dx) & open_cells(weights_u, weights_v)
    div = weighted_divergence(configured.vel, weights_u, weights_v)
    assert np.abs(div[deep]).max() < 1e-6


def test_substep_with_all_features(configured):
    configured.set_enforce_bubbles()
    configured.set_air_volume()
    configured.set_viscosity(0.1)
    configured.set_volume_correction()
    configured.set_surface_tension(0.1)

    area = configured.compute_volume(True)
    for _ in range(3):
        configured.add_force((0.0, -1.0), 0.002)
        configured.run_simulation(0.002)

    assert configured.vel.is_finite()
    assert abs(configured.compute_volume(True) - area) / area < 0.02
    assert configured.perf_log[-1]["volume"] is not None


def test_sealed_volume_correction_is_reported_once(configured, caplog):
    configured.set_enforce_bubbles()
    configured.set_volume_correction()
    configured.target_volume *= 1.1

    with caplog.at_level(logging.WARNING, logger="liquid2d.simulation"):
        for _ in range(2):
            configured.run_simulation(0.002)

    assert all(m["source_cancelled"] for m in configured.perf_log)
    assert all(m["divergence_max"] < 1e-6 for m in configured.perf_log)
    assert caplog.text.count("Volume correction has no effect") == 1


def test_open_pool_keeps_volume_correction(configured, caplog):
    configured.set_volume_correction()
    configured.target_volume *= 1.1

    with caplog.at_level(logging.WARNING, logger="liquid2d.simulation"):
        configured.run_simulation(0.002)

    assert not configured.perf_log[-1]["source_cancelled"]
    assert "Volume correction has no effect" not in caplog.text


def test_draw_calls(configured):
    from liquid2d import RecordingRenderer

    configured.set_air_volume()
    renderer = RecordingRenderer()
    configured.draw_grid(renderer)
    configured.draw_surface(renderer)
    configured.draw_air(renderer)
    configured.draw_collision(renderer)
    configured.draw_velocity(renderer, 0.1)
    configured.draw_velocity(renderer, 0.1, from_particles=True)
    configured.draw_collision_vel(renderer, 0.1)

    assert renderer.count("contour") == 3
    assert renderer.count("grid") == 1
    assert renderer.count("vectors") == 3
    assert renderer.count("points") == 2
