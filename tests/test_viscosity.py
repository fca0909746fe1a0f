import numpy as np

from liquid2d import LevelSet, ScalarGrid, StaggeredGrid
from liquid2d.solver import compute_solid_weights
from liquid2d.viscosity import solve_viscosity, strain_operator


def _stack(vel):
    return np.concatenate([vel.u.data.ravel(), vel.v.data.ravel()])


def test_strain_operator_shape():
    g = strain_operator(4, 3, 0.1)
    assert g.shape == (2 * 12 + 3 * 2, 5 * 3 + 4 * 4)


def test_rigid_motions_have_no_strain(xform):
    g = strain_operator(40, 40, xform.dx)

    uniform = StaggeredGrid(xform, (40, 40), (0.7, -0.3))
    assert np.abs(g @ _stack(uniform)).max() < 1e-12

    rotation = StaggeredGrid(xform, (40, 40))
    rotation.u.data = -rotation.u.sample_positions()[..., 1]
    rotation.v.data = rotation.v.sample_positions()[..., 0].copy()
    assert np.abs(g @ _stack(rotation)).max() < 1e-9


def test_uniform_velocity_unchanged(drop, no_solid, xform):
    weights_u, weights_v = compute_solid_weights(no_solid)
    vel = StaggeredGrid(xform, (40, 40), (0.4, -0.2))
    solid = StaggeredGrid(xform, (40, 40))
    mu = ScalarGrid(xform, (40, 40), 2.0)

    metrics = solve_viscosity(vel, drop, mu, weights_u, weights_v, solid, 0.01)

    assert metrics["unknowns"] > 0
    assert np.allclose(vel.u.data[1:-1, :], 0.4, atol=1e-8)
    assert np.allclose(vel.v.data[:, 1:-1], -0.2, atol=1e-8)


def test_shear_is_smoothed(no_solid, xform):
    full = LevelSet(xform, (40, 40), 5)
    full.data = -np.full((40, 40), full.band_width)
    weights_u, weights_v = compute_solid_weights(no_solid)

    vel = StaggeredGrid(xform, (40, 40))
    vel.u.data = np.where(vel.u.sample_positions()[..., 1] > 0.5, 1.0, 0.0)
    vel.u.data[[0, -1], :] = 0.0
    solid = StaggeredGrid(xform, (40, 40))
    mu = ScalarGrid(xform, (40, 40), 1.0)

    jump_before = vel.u.data[20, 20] - vel.u.data[20, 19]
    solve_viscosity(vel, full, mu, weights_u, weights_v, solid, 0.01)
    jump_after = vel.u.data[20, 20] - vel.u.data[20, 19]

    assert jump_before == 1.0
    assert 0.0 < jump_after < 0.5
    assert vel.is_finite()


def test_no_liquid_is_a_no_op(no_solid, xform):
    weights_u, weights_v = compute_solid_weights(no_solid)
    empty = LevelSet(xform, (40, 40), 5)
    vel = StaggeredGrid(xform, (40, 40), (1.0, 1.0))
    metrics = solve_viscosity(vel, empty, ScalarGrid(xform, (40, 40), 1.0),
                              weights_u, weights_v, StaggeredGrid(xform, (40, 40)), 0.01)
    assert metrics["unknowns"] == 0
    assert np.all(vel.u.data == 1.0)
