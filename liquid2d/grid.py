"""
grid.py: Transforms, Sampled Grids and the 2D MAC Grid
=======================================================
The foundation of the whole simulation.

Layout on a single cell (index space, cell (i, j) spans [i, i+1] x [j, j+1]):
  - Level sets / viscosity live at CELL CENTERS  -> shape (nx,   ny)
  - Velocity `u` lives on X-FACES                -> shape (nx+1, ny)
  - Velocity `v` lives on Y-FACES                -> shape (nx,   ny+1)
  - Corner quantities live on NODES              -> shape (nx+1, ny+1)

Every grid carries a Transform (spacing + world origin). Two grids can only
be combined when they share the transform and the cell resolution.
"""

from enum import Enum

import numpy as np


class SampleType(Enum):
    CENTER = "center"
    X_FACE = "x_face"
    Y_FACE = "y_face"
    NODE = "node"


# Offset of sample (0, 0) from the cell corner, in index units
_SAMPLE_OFFSET = {
    SampleType.CENTER: (0.5, 0.5),
    SampleType.X_FACE: (0.0, 0.5),
    SampleType.Y_FACE: (0.5, 0.0),
    SampleType.NODE:   (0.0, 0.0),
}

# Extra samples along each axis relative to the cell count
_SAMPLE_PAD = {
    SampleType.CENTER: (0, 0),
    SampleType.X_FACE: (1, 0),
    SampleType.Y_FACE: (0, 1),
    SampleType.NODE:   (1, 1),
}


class Transform:
    """Uniform grid spacing plus the world-space position of index (0, 0)."""

    def __init__(self, dx: float, offset=(0.0, 0.0)):
        if dx <= 0.0:
            raise ValueError(f"Grid spacing must be positive, got {dx}")
        self.dx = float(dx)
        self.offset = np.asarray(offset, dtype=np.float64).reshape(2)

    def idx_to_world(self, idx: np.ndarray) -> np.ndarray:
        return self.offset + np.asarray(idx, dtype=np.float64) * self.dx

    def world_to_idx(self, pos: np.ndarray) -> np.ndarray:
        return (np.asarray(pos, dtype=np.float64) - self.offset) / self.dx

    def __eq__(self, other):
        if not isinstance(other, Transform):
            return NotImplemented
        return (np.isclose(self.dx, other.dx, rtol=1e-12, atol=0.0)
                and np.allclose(self.offset, other.offset, rtol=0.0, atol=1e-12 * self.dx))

    def __repr__(self):
        return f"Transform(dx={self.dx}, offset=({self.offset[0]}, {self.offset[1]}))"


def _bilinear_interpolate(field: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Bilinear interpolation of a 2D array at fractional sample coordinates.

    Positions outside [0, n-1] are clamped to the edge samples, which gives a
    constant extension of the field beyond the lattice.

    Args:
        field : 2D array to sample from
        x, y  : Query positions in sample-index units (same shape)

    Returns:
        Interpolated values, same shape as x/y
    """
    Nx, Ny = field.shape

    x = np.clip(x, 0.0, Nx - 1.0)
    y = np.clip(y, 0.0, Ny - 1.0)

    x0 = np.minimum(np.floor(x).astype(np.int64), max(Nx - 2, 0))
    y0 = np.minimum(np.floor(y).astype(np.int64), max(Ny - 2, 0))
    x1 = np.minimum(x0 + 1, Nx - 1)
    y1 = np.minimum(y0 + 1, Ny - 1)

    tx = x - x0
    ty = y - y0

    c00 = field[x0, y0]
    c10 = field[x1, y0]
    c01 = field[x0, y1]
    c11 = field[x1, y1]

    c0 = c00 * (1 - tx) + c10 * tx
    c1 = c01 * (1 - tx) + c11 * tx
    return c0 * (1 - ty) + c1 * ty


class ScalarGrid:
    """
    A scalar field sampled on one of the MAC lattices (centers, faces, nodes).

    Args:
        xform  : Shared spatial transform
        size   : Cell resolution (nx, ny); the array shape follows `sample`
        value  : Initial value (scalar) or an array of the right shape
        sample : Where the samples live
    """

    def __init__(self, xform: Transform, size, value=0.0, sample: SampleType = SampleType.CENTER):
        self.xform = xform
        self.size = (int(size[0]), int(size[1]))
        self.sample = sample
        pad = _SAMPLE_PAD[sample]
        shape = (self.size[0] + pad[0], self.size[1] + pad[1])

        if np.isscalar(value):
            self.data = np.full(shape, float(value), dtype=np.float64)
        else:
            data = np.asarray(value, dtype=np.float64)
            if data.shape != shape:
                raise ValueError(f"Expected data of shape {shape} for {sample.value} samples, got {data.shape}")
            self.data = data.copy()

    @property
    def dx(self) -> float:
        return self.xform.dx

    @property
    def shape(self) -> tuple:
        return self.data.shape

    def sample_positions(self) -> np.ndarray:
        """World positions of every sample, shape (*self.shape, 2)."""
        ox, oy = _SAMPLE_OFFSET[self.sample]
        i, j = np.meshgrid(
            np.arange(self.shape[0], dtype=np.float64) + ox,
            np.arange(self.shape[1], dtype=np.float64) + oy,
            indexing='ij'
        )
        return self.xform.idx_to_world(np.stack([i, j], axis=-1))

    def world_to_sample(self, points: np.ndarray) -> tuple:
        """Convert world points (N, 2) to fractional sample coordinates."""
        idx = self.xform.world_to_idx(points)
        ox, oy = _SAMPLE_OFFSET[self.sample]
        return idx[..., 0] - ox, idx[..., 1] - oy

    def interp(self, points: np.ndarray) -> np.ndarray:
        """Bilinear interpolation at world points of shape (..., 2)."""
        sx, sy = self.world_to_sample(points)
        return _bilinear_interpolate(self.data, sx, sy)

    def is_matched(self, other) -> bool:
        """True when `other` lives on the same transform and cell resolution."""
        return (getattr(other, "xform", None) == self.xform
                and tuple(getattr(other, "size", ())) == self.size)

    def max_abs(self) -> float:
        return float(np.abs(self.data).max()) if self.data.size else 0.0

    def copy(self) -> "ScalarGrid":
        return ScalarGrid(self.xform, self.size, self.data, self.sample)

    def __repr__(self):
        return f"ScalarGrid({self.sample.value}, size={self.size}, {self.xform})"


class StaggeredGrid:
    """
    2D MAC velocity grid: `u` on x-faces, `v` on y-faces.

    Used both for the simulated liquid velocity and for the prescribed solid
    velocity that acts as a boundary condition.
    """

    def __init__(self, xform: Transform, size, value=(0.0, 0.0)):
        self.xform = xform
        self.size = (int(size[0]), int(size[1]))
        vx, vy = value
        self.u = ScalarGrid(xform, self.size, vx, SampleType.X_FACE)
        self.v = ScalarGrid(xform, self.size, vy, SampleType.Y_FACE)

    @property
    def dx(self) -> float:
        return self.xform.dx

    def components(self) -> tuple:
        return self.u, self.v

    def interp(self, points: np.ndarray) -> np.ndarray:
        """Velocity at world points (..., 2), each component from its own faces."""
        points = np.asarray(points, dtype=np.float64)
        return np.stack([self.u.interp(points), self.v.interp(points)], axis=-1)

    def velocity_at_center(self) -> tuple:
        """Average face velocities to cell centers. Returns (uc, vc), each (nx, ny)."""
        u, v = self.u.data, self.v.data
        uc = 0.5 * (u[:-1, :] + u[1:, :])
        vc = 0.5 * (v[:, :-1] + v[:, 1:])
        return uc, vc

    def divergence(self) -> np.ndarray:
        """
        Cell-centred divergence du/dx + dv/dy.

        For an incompressible liquid this should be ~0 in every liquid cell.
        """
        u, v = self.u.data, self.v.data
        return ((u[1:, :] - u[:-1, :]) + (v[:, 1:] - v[:, :-1])) / self.dx

    def max_magnitude(self) -> float:
        """
        Largest speed over all face samples.

        The transverse component at a face is the average of the four
        surrounding opposite-component faces.
        """
        u, v = self.u.data, self.v.data
        if u.size == 0 or v.size == 0:
            return 0.0

        # v averaged to x-faces (edge padded at the domain sides)
        vp = np.pad(v, ((1, 1), (0, 0)), mode='edge')
        v_at_u = 0.25 * (vp[:-1, :-1] + vp[1:, :-1] + vp[:-1, 1:] + vp[1:, 1:])
        # u averaged to y-faces
        up = np.pad(u, ((0, 0), (1, 1)), mode='edge')
        u_at_v = 0.25 * (up[:-1, :-1] + up[1:, :-1] + up[:-1, 1:] + up[1:, 1:])

        mag_u = np.sqrt(u * u + v_at_u * v_at_u)
        mag_v = np.sqrt(v * v + u_at_v * u_at_v)
        return float(max(mag_u.max(), mag_v.max()))

    def is_matched(self, other) -> bool:
        return (getattr(other, "xform", None) == self.xform
                and tuple(getattr(other, "size", ())) == self.size)

    def copy(self) -> "StaggeredGrid":
        out = StaggeredGrid(self.xform, self.size)
        out.u = self.u.copy()
        out.v = self.v.copy()
        return out

    def is_finite(self) -> bool:
        return bool(np.isfinite(self.u.data).all() and np.isfinite(self.v.data).all())

    def __repr__(self):
        return (
            f"StaggeredGrid(size={self.size}, {self.xform})\n"
            f"  velocity  : max_magnitude={self.max_magnitude():.4f}\n"
            f"  divergence: max={np.abs(self.divergence()).max():.6f}"
        )
