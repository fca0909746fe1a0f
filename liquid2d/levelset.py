"""
levelset.py: Signed-Distance Level Sets at Cell Centers
=======================================================
A level set stores, at every cell center, the signed distance to a closed
boundary: negative inside the region, positive outside, zero on the surface.

Used for the liquid surface, the solid collision geometry and (optionally)
the air phase. Solid geometry is usually "inverted": the solid is everything
OUTSIDE a container shape, so the inside/outside sign is flipped.

Only cells within `narrow_band` cells of the surface hold exact distances;
values further out are clamped to +-narrow_band * dx.
"""

import numpy as np
from scipy.spatial import cKDTree

from .grid import ScalarGrid, SampleType, Transform
from .mesh import Mesh2D


class LevelSet:
    """
    Args:
        xform       : Shared spatial transform
        size        : Cell resolution (nx, ny)
        narrow_band : Half-width of the maintained band, in cells
        inverted    : Flip inside/outside (solid = complement of the shape)
    """

    def __init__(self, xform: Transform, size, narrow_band: int = 5, inverted: bool = False):
        self.narrow_band = int(narrow_band)
        self.inverted = False
        self.phi = ScalarGrid(xform, size, self.narrow_band * xform.dx, SampleType.CENTER)
        if inverted:
            self.set_inverted()

    # ── Properties ───────────────────────────────────────────────────────────

    @property
    def xform(self) -> Transform:
        return self.phi.xform

    @property
    def size(self) -> tuple:
        return self.phi.size

    @property
    def dx(self) -> float:
        return self.phi.dx

    @property
    def data(self) -> np.ndarray:
        return self.phi.data

    @data.setter
    def data(self, values: np.ndarray):
        self.phi.data = np.asarray(values, dtype=np.float64)

    @property
    def band_width(self) -> float:
        """Narrow band half-width in world units."""
        return self.narrow_band * self.phi.dx

    # ── Construction ─────────────────────────────────────────────────────────

    def set_inverted(self):
        """Flip the inside/outside convention of this level set."""
        self.inverted = not self.inverted
        self.phi.data = -self.phi.data

    def init(self, mesh: Mesh2D):
        """
        Build the signed distance field from a closed polygonal mesh.

        Inside is decided by the even-odd rule, so holes work regardless of
        loop orientation. The inverted flag is applied afterwards.
        """
        if not mesh.unit_test():
            raise ValueError("Level set initialisation needs a closed mesh")

        points = self.phi.sample_positions().reshape(-1, 2)
        px, py = points[:, 0], points[:, 1]

        dist = np.full(len(points), np.inf)
        inside = np.zeros(len(points), dtype=bool)

        for a, b in mesh.segments():
            # Exact distance to the segment
            ab = b - a
            denom = float(ab @ ab)
            t = np.clip(((px - a[0]) * ab[0] + (py - a[1]) * ab[1]) / denom, 0.0, 1.0) if denom > 0 else 0.0
            cx = a[0] + t * ab[0]
            cy = a[1] + t * ab[1]
            dist = np.minimum(dist, np.hypot(px - cx, py - cy))

            # Even-odd ray cast towards +x
            straddles = (a[1] > py) != (b[1] > py)
            if np.any(straddles):
                with np.errstate(divide='ignore', invalid='ignore'):
                    x_cross = a[0] + (py - a[1]) * ab[0] / ab[1]
                inside ^= straddles & (px < x_cross)

        phi = np.where(inside, -dist, dist)
        if self.inverted:
            phi = -phi
        self.phi.data = np.clip(phi, -self.band_width, self.band_width).reshape(self.phi.shape)

    # ── Queries ──────────────────────────────────────────────────────────────

    def interp(self, points: np.ndarray) -> np.ndarray:
        return self.phi.interp(points)

    def gradient(self) -> tuple:
        """Central-difference gradient at cell centers."""
        gx, gy = np.gradient(self.phi.data, self.dx)
        return gx, gy

    def normal(self, points: np.ndarray) -> np.ndarray:
        """Unit outward normal (direction of increasing phi) at world points."""
        gx, gy = self.gradient()
        nx = ScalarGrid(self.xform, self.size, gx).interp(points)
        ny = ScalarGrid(self.xform, self.size, gy).interp(points)
        n = np.stack([nx, ny], axis=-1)
        norm = np.linalg.norm(n, axis=-1, keepdims=True)
        return np.where(norm > 1e-12, n / np.maximum(norm, 1e-12), 0.0)

    def curvature(self) -> np.ndarray:
        """
        Mean curvature div(grad phi / |grad phi|) at cell centers.

        Positive for convex regions (a disc of radius R gives ~1/R).
        Clamped to +-1/dx, the largest curvature the grid can resolve.
        """
        dx = self.dx
        phi = self.phi.data
        px, py = np.gradient(phi, dx)
        pxx, pxy = np.gradient(px, dx)
        _, pyy = np.gradient(py, dx)

        grad_sq = px * px + py * py
        num = pxx * py * py - 2.0 * px * py * pxy + pyy * px * px
        kappa = num / (grad_sq * np.sqrt(grad_sq) + 1e-12)
        return np.clip(kappa, -1.0 / dx, 1.0 / dx)

    def inside_mask(self) -> np.ndarray:
        return self.phi.data < 0.0

    def is_matched(self, other) -> bool:
        return self.phi.is_matched(other)

    # ── Modification ─────────────────────────────────────────────────────────

    def union(self, other: "LevelSet"):
        """Merge another region into this one (minimum of the distances)."""
        self.phi.data = np.minimum(self.phi.data, other.phi.data)

    def reinit(self):
        """
        Redistance the field from its current zero crossing.

        Interface points are located by linear interpolation along every
        cell edge with a sign change; each cell then takes the distance to
        the nearest interface point, keeping its own sign.
        """
        phi = self.phi.data
        dx = self.dx
        centers = self.phi.sample_positions()

        neg = phi < 0.0
        points = []

        cross_x = neg[:-1, :] != neg[1:, :]
        if np.any(cross_x):
            a, b = phi[:-1, :][cross_x], phi[1:, :][cross_x]
            t = a / (a - b)
            p = centers[:-1, :][cross_x].copy()
            p[:, 0] += t * dx
            points.append(p)

        cross_y = neg[:, :-1] != neg[:, 1:]
        if np.any(cross_y):
            a, b = phi[:, :-1][cross_y], phi[:, 1:][cross_y]
            t = a / (a - b)
            p = centers[:, :-1][cross_y].copy()
            p[:, 1] += t * dx
            points.append(p)

        band = self.band_width
        if not points:
            self.phi.data = np.where(neg, -band, band)
            return

        tree = cKDTree(np.concatenate(points, axis=0))
        dist, _ = tree.query(centers.reshape(-1, 2), distance_upper_bound=band)
        dist = np.minimum(dist, band).reshape(phi.shape)
        self.phi.data = np.where(neg, -dist, dist)

    def copy(self) -> "LevelSet":
        out = LevelSet(self.xform, self.size, self.narrow_band)
        out.inverted = self.inverted
        out.phi = self.phi.copy()
        return out

    def __repr__(self):
        return (f"LevelSet(size={self.size}, band={self.narrow_band}, "
                f"inverted={self.inverted}, inside_cells={int(self.inside_mask().sum())})")
