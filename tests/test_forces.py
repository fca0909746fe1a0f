import numpy as np
import pytest

from liquid2d import ConstantForce, FieldForce, StaggeredGrid
from liquid2d.forces import apply_force, as_force_sampler


def test_constant_force(xform):
    vel = StaggeredGrid(xform, (10, 10))
    apply_force(vel, (0.0, -1.0), 0.5)
    assert np.allclose(vel.v.data, -0.5)
    assert np.allclose(vel.u.data, 0.0)


def test_closed_faces_are_skipped(xform):
    vel = StaggeredGrid(xform, (10, 10))
    weights_u = np.ones(vel.u.shape)
    weights_v = np.ones(vel.v.shape)
    weights_v[:, 0] = 0.0
    weights_v[:, -1] = 0.0

    apply_force(vel, ConstantForce((0.0, -2.0)), 0.1, weights_u, weights_v)
    assert np.allclose(vel.v.data[:, 0], 0.0)
    assert np.allclose(vel.v.data[:, -1], 0.0)
    assert np.allclose(vel.v.data[:, 1:-1], -0.2)


def test_position_dependent_force(xform):
    vel = StaggeredGrid(xform, (10, 10))

    def pull_right(points):
        return np.stack([points[:, 0], np.zeros(len(points))], axis=1)

    apply_force(vel, pull_right, 2.0)
    expected = 2.0 * vel.u.sample_positions()[..., 0]
    assert np.allclose(vel.u.data, expected)
    assert np.allclose(vel.v.data, 0.0)


def test_per_point_force(xform):
    force = FieldForce(lambda p: np.array([0.0, p[1]]), vectorized=False)
    points = np.array([[0.1, 0.2], [0.3, 0.4]])
    assert np.allclose(force(points), [[0.0, 0.2], [0.0, 0.4]])


def test_as_force_sampler():
    assert isinstance(as_force_sampler((1.0, 2.0)), ConstantForce)
    assert isinstance(as_force_sampler(lambda p: p), FieldForce)
    with pytest.raises(ValueError):
        as_force_sampler((1.0, 2.0, 3.0))
