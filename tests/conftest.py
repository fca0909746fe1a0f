import numpy as np
import pytest

from liquid2d import LevelSet, Transform, circle_mesh, square_mesh

DX = 0.025
SIZE = (40, 40)


@pytest.fixture
def xform():
    return Transform(DX, (0.0, 0.0))


@pytest.fixture
def make_levelset(xform):
    """Factory: level set on the shared 40x40 grid from a mesh."""
    def _make(mesh, band=5, inverted=False, size=SIZE):
        ls = LevelSet(xform, size, band, inverted=inverted)
        ls.init(mesh)
        return ls
    return _make


@pytest.fixture
def container(make_levelset):
    """Solid everywhere outside the square [0.05, 0.95]^2."""
    mesh = square_mesh((0.5, 0.5), 0.45)
    mesh.reverse()
    return make_levelset(mesh, inverted=True)


@pytest.fixture
def no_solid(xform):
    """Collision level set with no solid inside the domain."""
    return LevelSet(xform, SIZE, 5)


@pytest.fixture
def drop(make_levelset):
    """Liquid disc of radius 0.2 in the middle of the domain."""
    return make_levelset(circle_mesh((0.5, 0.5), 0.2, 64))


@pytest.fixture
def holed_square(make_levelset):
    """Liquid square of half-size 0.25 with an enclosed square hole of half-size 0.1."""
    mesh = square_mesh((0.5, 0.5), 0.25)
    hole = square_mesh((0.5, 0.5), 0.1)
    hole.reverse()
    mesh.insert_mesh(hole)
    return make_levelset(mesh)


def box_samples(lo, hi, dx=DX, per_cell=4):
    """Super-sample points covering the axis-aligned box [lo, hi]."""
    step = dx / per_cell
    xs = np.arange(lo[0] + 0.5 * step, hi[0], step)
    ys = np.arange(lo[1] + 0.5 * step, hi[1], step)
    x, y = np.meshgrid(xs, ys, indexing='ij')
    return np.stack([x, y], axis=-1).reshape(-1, 2), step * step
