import numpy as np
import pytest

from liquid2d import SampleType, ScalarGrid, StaggeredGrid, Transform


def test_transform_round_trip():
    xform = Transform(0.1, (1.0, -2.0))
    idx = np.array([[0.0, 0.0], [3.5, 7.25]])
    world = xform.idx_to_world(idx)
    assert np.allclose(world[0], [1.0, -2.0])
    assert np.allclose(xform.world_to_idx(world), idx)


def test_transform_rejects_non_positive_spacing():
    with pytest.raises(ValueError):
        Transform(0.0)


def test_transform_equality():
    assert Transform(0.025) == Transform(0.025, (0.0, 0.0))
    assert Transform(0.025) != Transform(0.05)
    assert Transform(0.025) != Transform(0.025, (0.1, 0.0))


@pytest.mark.parametrize("sample, shape", [
    (SampleType.CENTER, (4, 3)),
    (SampleType.X_FACE, (5, 3)),
    (SampleType.Y_FACE, (4, 4)),
    (SampleType.NODE, (5, 4)),
])
def test_sample_shapes(sample, shape):
    grid = ScalarGrid(Transform(1.0), (4, 3), 0.0, sample)
    assert grid.shape == shape
    assert grid.sample_positions().shape == shape + (2,)


def test_face_positions():
    grid = ScalarGrid(Transform(0.5), (2, 2), 0.0, SampleType.X_FACE)
    pos = grid.sample_positions()
    assert np.allclose(pos[0, 0], [0.0, 0.25])
    assert np.allclose(pos[2, 1], [1.0, 0.75])


def test_wrong_data_shape_raises():
    with pytest.raises(ValueError):
        ScalarGrid(Transform(1.0), (4, 4), np.zeros((5, 4)), SampleType.CENTER)


def test_linear_field_interpolates_exactly(xform):
    grid = ScalarGrid(xform, (40, 40))
    pos = grid.sample_positions()
    grid.data = 2.0 * pos[..., 0] + 3.0 * pos[..., 1]

    points = np.array([[0.2, 0.3], [0.51, 0.77], [0.8, 0.25]])
    assert np.allclose(grid.interp(points), 2.0 * points[:, 0] + 3.0 * points[:, 1])


def test_interp_clamps_outside_lattice(xform):
    grid = ScalarGrid(xform, (40, 40), 7.0)
    assert np.allclose(grid.interp(np.array([[-1.0, -1.0], [5.0, 0.5]])), 7.0)


def test_divergence_of_expanding_flow(xform):
    vel = StaggeredGrid(xform, (40, 40))
    vel.u.data = vel.u.sample_positions()[..., 0].copy()
    assert np.allclose(vel.divergence(), 1.0)


def test_uniform_velocity_magnitude(xform):
    vel = StaggeredGrid(xform, (40, 40), (3.0, 4.0))
    assert vel.max_magnitude() == pytest.approx(5.0)
    assert np.allclose(vel.interp(np.array([[0.5, 0.5]])), [[3.0, 4.0]])
    assert vel.is_finite()


def test_matching(xform):
    grid = ScalarGrid(xform, (40, 40))
    assert grid.is_matched(StaggeredGrid(xform, (40, 40)))
    assert not grid.is_matched(ScalarGrid(xform, (40, 41)))
    assert not grid.is_matched(ScalarGrid(Transform(0.05), (40, 40)))


def test_copy_is_independent(xform):
    vel = StaggeredGrid(xform, (4, 4), (1.0, 0.0))
    other = vel.copy()
    other.u.data[:] = 5.0
    assert np.all(vel.u.data == 1.0)
