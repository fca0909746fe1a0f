"""
mesh.py: Closed polygonal boundaries for building initial geometry
==================================================================
A Mesh2D is a list of vertices plus directed edges. Closed loops describe
regions (a square, a circle) and several loops can live in one mesh, e.g. a
square with a square hole. Level sets are initialised from these meshes.
"""

import numpy as np


class Mesh2D:
    def __init__(self, vertices=None, edges=None):
        self.vertices = np.zeros((0, 2)) if vertices is None else np.asarray(vertices, dtype=np.float64).reshape(-1, 2)
        self.edges = np.zeros((0, 2), dtype=np.int64) if edges is None else np.asarray(edges, dtype=np.int64).reshape(-1, 2)

    def reverse(self):
        """Flip the orientation of every edge."""
        self.edges = self.edges[:, ::-1].copy()

    def insert_mesh(self, other: "Mesh2D"):
        """Append another mesh's loops to this one."""
        base = len(self.vertices)
        self.vertices = np.vstack([self.vertices, other.vertices])
        self.edges = np.vstack([self.edges, other.edges + base])

    def segments(self) -> np.ndarray:
        """Edge end points, shape (n_edges, 2, 2)."""
        return self.vertices[self.edges]

    def unit_test(self) -> bool:
        """
        Check that every vertex has exactly one incoming and one outgoing edge
        and that no edge is degenerate, i.e. the mesh is a set of closed loops.
        """
        if len(self.edges) == 0:
            return False
        n = len(self.vertices)
        if self.edges.min() < 0 or self.edges.max() >= n:
            return False
        if np.any(self.edges[:, 0] == self.edges[:, 1]):
            return False
        out_degree = np.bincount(self.edges[:, 0], minlength=n)
        in_degree = np.bincount(self.edges[:, 1], minlength=n)
        return bool(np.all(out_degree == 1) and np.all(in_degree == 1))

    def signed_area(self) -> float:
        """Shoelace area over all loops (positive for counter-clockwise loops)."""
        seg = self.segments()
        return float(0.5 * np.sum(seg[:, 0, 0] * seg[:, 1, 1] - seg[:, 1, 0] * seg[:, 0, 1]))

    def __len__(self):
        return len(self.edges)


def _loop_edges(n: int) -> np.ndarray:
    idx = np.arange(n)
    return np.stack([idx, (idx + 1) % n], axis=1)


def square_mesh(center=(0.0, 0.0), scale=(1.0, 1.0)) -> Mesh2D:
    """Counter-clockwise square spanning center +- scale."""
    c = np.asarray(center, dtype=np.float64)
    s = np.broadcast_to(np.asarray(scale, dtype=np.float64), (2,))
    corners = np.array([[-1.0, -1.0], [1.0, -1.0], [1.0, 1.0], [-1.0, 1.0]]) * s + c
    return Mesh2D(corners, _loop_edges(4))


def circle_mesh(center=(0.0, 0.0), radius: float = 1.0, divisions: int = 20) -> Mesh2D:
    """Counter-clockwise polygonal circle."""
    theta = np.linspace(0.0, 2.0 * np.pi, divisions, endpoint=False)
    pts = np.stack([np.cos(theta), np.sin(theta)], axis=1) * radius + np.asarray(center, dtype=np.float64)
    return Mesh2D(pts, _loop_edges(divisions))
