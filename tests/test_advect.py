import numpy as np
import pytest

from liquid2d import IntegrationOrder, ScalarGrid, StaggeredGrid
from liquid2d.advect import advect_levelset, advect_scalar, advect_velocity
from liquid2d.integrator import integrate


@pytest.mark.parametrize("order", list(IntegrationOrder))
def test_constant_velocity_is_exact(order):
    points = np.array([[0.0, 0.0], [1.0, 2.0]])
    out = integrate(points, 0.5, lambda p: np.tile([2.0, -1.0], (len(p), 1)), order)
    assert np.allclose(out, points + [1.0, -0.5])


def test_higher_order_is_more_accurate_on_rotation():
    def rotation(p):
        return np.stack([-p[:, 1], p[:, 0]], axis=1)

    start = np.array([[1.0, 0.0]])
    exact = np.array([[np.cos(0.1), np.sin(0.1)]])
    err_euler = np.abs(integrate(start, 0.1, rotation, IntegrationOrder.FORWARD_EULER) - exact).max()
    err_rk3 = np.abs(integrate(start, 0.1, rotation, IntegrationOrder.RK3) - exact).max()
    err_rk4 = np.abs(integrate(start, 0.1, rotation, IntegrationOrder.RK4) - exact).max()
    assert err_rk3 < err_euler / 10
    assert err_rk4 < err_euler / 100


def test_parse_order():
    assert IntegrationOrder.parse("RK3") is IntegrationOrder.RK3
    assert IntegrationOrder.parse(IntegrationOrder.RK4) is IntegrationOrder.RK4
    with pytest.raises(ValueError):
        IntegrationOrder.parse("midpoint")


def test_linear_field_shifts_exactly(xform):
    grid = ScalarGrid(xform, (40, 40))
    grid.data = grid.sample_positions()[..., 0].copy()
    vel = StaggeredGrid(xform, (40, 40), (0.1, 0.0))

    out = advect_scalar(grid, vel, 0.5, IntegrationOrder.RK3)
    interior = slice(4, -4)
    assert np.allclose(out.data[interior, :], grid.data[interior, :] - 0.05)
    assert out is not grid


def test_uniform_velocity_is_preserved(xform):
    vel = StaggeredGrid(xform, (40, 40), (0.3, -0.2))
    out = advect_velocity(vel, 0.1, IntegrationOrder.RK4)
    assert np.allclose(out.u.data, 0.3)
    assert np.allclose(out.v.data, -0.2)


def test_levelset_advection_moves_surface(drop, xform):
    vel = StaggeredGrid(xform, (40, 40), (0.0, 0.5))
    moved = advect_levelset(drop, vel, 0.1)

    assert moved is not drop
    # The top of the disc moves from y=0.7 to y=0.75
    assert drop.interp(np.array([[0.5, 0.72]]))[0] > 0.0
    assert moved.interp(np.array([[0.5, 0.72]]))[0] < 0.0
