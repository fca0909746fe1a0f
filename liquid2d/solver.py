"""
solver.py: Pressure Projection for a Free-Surface Liquid
========================================================
The pressure projection step enforces INCOMPRESSIBILITY inside the liquid:
  div(v) = 0 in every liquid cell

We fix the velocity by:
  1. Measuring the net flux out of every liquid cell.
  2. Solving a Poisson equation for pressure,  dt * lap(p) = div(v).
  3. Subtracting the pressure gradient:  v = v - dt * grad(p).

Boundary conditions handled here:
  - Solid walls: every face carries an "open fraction" computed from the
    solid level set (cut cells). Closed parts of a face move with the solid,
    so the solid's normal velocity is matched (no-flux for static solids).
  - Free surface: air is at (ambient) zero pressure. The surface position
    between a liquid and an air cell is found from the level set (theta),
    and a ghost pressure is placed there (ghost fluid method).
  - Surface tension: the surface pressure becomes sigma * curvature.
  - Bubbles: an air pocket that cannot reach the atmosphere gets ONE shared
    pressure unknown whose equation says "net flux into the pocket is zero",
    so enclosed air keeps its area instead of collapsing.
  - Volume correction: a uniform divergence target in the liquid.

The matrix is symmetric positive (semi-)definite and is solved with
Jacobi-preconditioned conjugate gradient.
"""

import logging
import time

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla
from scipy.sparse.csgraph import connected_components

from .errors import SolverError
from .grid import ScalarGrid, SampleType, StaggeredGrid
from .levelset import LevelSet

logger = logging.getLogger(__name__)

THETA_MIN = 1e-2

_X_SIDES = ((slice(None, -1), slice(None)), (slice(1, None), slice(None)))
_Y_SIDES = ((slice(None), slice(None, -1)), (slice(None), slice(1, None)))


# ── Solid face weights ──────────────────────────────────────────────────────

def fraction_inside(phi_a: np.ndarray, phi_b: np.ndarray) -> np.ndarray:
    """Fraction of the segment [a, b] where the linearly interpolated phi < 0."""
    a_in = phi_a < 0.0
    b_in = phi_b < 0.0
    with np.errstate(divide='ignore', invalid='ignore'):
        frac_a = phi_a / (phi_a - phi_b)
        frac_b = phi_b / (phi_b - phi_a)
    return np.where(a_in & b_in, 1.0,
           np.where(a_in, frac_a,
           np.where(b_in, frac_b, 0.0)))


def compute_solid_weights(collision: LevelSet) -> tuple:
    """
    Open (non-solid) fraction of every x-face and y-face.

    Collision distances are interpolated to the grid nodes; each face is a
    segment between two nodes. Faces on the domain boundary are closed.

    Returns:
        (weights_u (nx+1, ny), weights_v (nx, ny+1))
    """
    nodes = ScalarGrid(collision.xform, collision.size, 0.0, SampleType.NODE)
    phi_n = collision.interp(nodes.sample_positions())

    weights_u = 1.0 - fraction_inside(phi_n[:, :-1], phi_n[:, 1:])
    weights_v = 1.0 - fraction_inside(phi_n[:-1, :], phi_n[1:, :])

    weights_u[0, :] = 0.0
    weights_u[-1, :] = 0.0
    weights_v[:, 0] = 0.0
    weights_v[:, -1] = 0.0
    return np.clip(weights_u, 0.0, 1.0), np.clip(weights_v, 0.0, 1.0)


def open_cells(weights_u: np.ndarray, weights_v: np.ndarray) -> np.ndarray:
    """Cells with at least one face not closed by the solid."""
    return ((weights_u[:-1, :] + weights_u[1:, :] + weights_v[:, :-1] + weights_v[:, 1:]) > 0.0)


def enforce_solid_velocity(vel: StaggeredGrid, solid_vel: StaggeredGrid,
                           weights_u: np.ndarray, weights_v: np.ndarray):
    """Closed faces take the solid velocity (zero relative normal velocity)."""
    vel.u.data = np.where(weights_u > 0.0, vel.u.data, solid_vel.u.data)
    vel.v.data = np.where(weights_v > 0.0, vel.v.data, solid_vel.v.data)


def weighted_divergence(vel: StaggeredGrid, weights_u: np.ndarray, weights_v: np.ndarray,
                        solid_vel: StaggeredGrid = None) -> np.ndarray:
    """
    Net outflow per cell (divided by dx), counting the open part of each
    face with the liquid velocity and the closed part with the solid one.
    """
    u, v = vel.u.data, vel.v.data
    us = 0.0 if solid_vel is None else solid_vel.u.data
    vs = 0.0 if solid_vel is None else solid_vel.v.data
    flux_u = weights_u * u + (1.0 - weights_u) * us
    flux_v = weights_v * v + (1.0 - weights_v) * vs
    return ((flux_u[1:, :] - flux_u[:-1, :]) + (flux_v[:, 1:] - flux_v[:, :-1])) / vel.dx


# ── Bubbles ─────────────────────────────────────────────────────────────────

def find_bubbles(liquid: np.ndarray, weights_u: np.ndarray, weights_v: np.ndarray) -> np.ndarray:
    """
    Label enclosed air pockets.

    Air cells (open, not liquid) are joined through open faces. A component
    that reaches the edge of the domain is open to the atmosphere; every
    other component is a bubble.

    Returns:
        Integer array (nx, ny): bubble id (0..n-1) for bubble cells, -1 elsewhere
    """
    nx, ny = liquid.shape
    air = open_cells(weights_u, weights_v) & ~liquid
    labels = np.full((nx, ny), -1, dtype=np.int64)
    n_air = int(air.sum())
    if n_air == 0:
        return labels

    index = np.full((nx, ny), -1, dtype=np.int64)
    index[air] = np.arange(n_air)

    links_x = air[:-1, :] & air[1:, :] & (weights_u[1:-1, :] > 0.0)
    links_y = air[:, :-1] & air[:, 1:] & (weights_v[:, 1:-1] > 0.0)
    a = np.concatenate([index[:-1, :][links_x], index[:, :-1][links_y]])
    b = np.concatenate([index[1:, :][links_x], index[:, 1:][links_y]])

    graph = sp.coo_matrix((np.ones(len(a)), (a, b)), shape=(n_air, n_air))
    n_comp, comp = connected_components(graph, directed=False)

    edge = np.zeros((nx, ny), dtype=bool)
    edge[0, :] = edge[-1, :] = edge[:, 0] = edge[:, -1] = True
    reaches_edge = np.zeros(n_comp, dtype=bool)
    reaches_edge[comp[index[air & edge]]] = True

    bubble_ids = np.full(n_comp, -1, dtype=np.int64)
    enclosed = np.flatnonzero(~reaches_edge)
    bubble_ids[enclosed] = np.arange(len(enclosed))
    labels[air] = bubble_ids[comp]
    return labels


# ── Volume correction ───────────────────────────────────────────────────────

def volume_correction_divergence(relative_error: float, accumulated_error: float, dt: float) -> float:
    """
    Divergence target that steers the liquid area back to its target.

    A PI controller on the relative area error e = (V - V0) / V0:
        c = -(kp * e + ki * E) / (1 + e),   kp = 2.3 / (25 dt),  ki = kp^2 / 16
    where E is the time-integrated error. A positive c makes the liquid expand.
    """
    if dt <= 0.0:
        return 0.0
    kp = 2.3 / (25.0 * dt)
    ki = kp * kp / 16.0
    return -(kp * relative_error + ki * accumulated_error) / (1.0 + relative_error)


# ── Linear solve ────────────────────────────────────────────────────────────

def solve_spd(a_mat: sp.csr_matrix, b: np.ndarray, tol: float, max_iter: int) -> tuple:
    """Jacobi-preconditioned CG with a direct fallback. Returns (x, iterations, method)."""
    diag = a_mat.diagonal()
    precond = spla.LinearOperator(a_mat.shape, matvec=lambda x: x / diag)

    iterations = [0]

    def _count(_):
        iterations[0] += 1

    x, info = spla.cg(a_mat, b, rtol=tol, atol=0.0, maxiter=max_iter, M=precond, callback=_count)
    if info == 0 and np.all(np.isfinite(x)):
        return x, iterations[0], "cg"

    logger.warning("CG did not converge (info=%d, %d iterations); falling back to spsolve", info, iterations[0])
    x = spla.spsolve(a_mat.tocsc(), b)
    if not np.all(np.isfinite(x)):
        raise SolverError("Pressure/viscosity system could not be solved")
    return x, iterations[0], "spsolve"


def solve_with_nullspace(a_mat: sp.csr_matrix, b: np.ndarray, tol: float = 1e-10,
                         max_iter: int = None) -> tuple:
    """
    Solve a symmetric system whose connected blocks may be pure Neumann.

    Rows with an empty diagonal are dropped (their unknowns stay 0). A block
    with no Dirichlet contribution (every row sums to zero) only determines
    its solution up to a constant: its right-hand side is made mean-free and
    one unknown is pinned to zero.

    Returns:
        (x, iterations, method, blocks) where `blocks` labels every unknown of
        a floating block with its block id and every other unknown with -1
    """
    n = a_mat.shape[0]
    x_full = np.zeros(n)
    blocks = np.full(n, -1, dtype=np.int64)
    if n == 0:
        return x_full, 0, "none", blocks

    diag = a_mat.diagonal()
    active = diag > 0.0
    a_act = a_mat[active][:, active].tocsr()
    b_act = np.array(b[active], dtype=np.float64)
    if a_act.shape[0] == 0:
        return x_full, 0, "none", blocks

    n_comp, labels = connected_components(a_act, directed=False)
    row_sum = np.asarray(a_act.sum(axis=1)).ravel()
    grounded_rows = row_sum > 1e-12 * a_act.diagonal()
    grounded = np.bincount(labels, weights=grounded_rows.astype(np.float64), minlength=n_comp) > 0.0
    floating = ~grounded

    keep = np.ones(a_act.shape[0], dtype=bool)
    if floating.any():
        sizes = np.bincount(labels, minlength=n_comp)
        means = np.bincount(labels, weights=b_act, minlength=n_comp) / np.maximum(sizes, 1)
        b_act = b_act - np.where(floating[labels], means[labels], 0.0)
        _, first = np.unique(labels, return_index=True)
        keep[first[floating]] = False
        logger.debug("Pinned %d floating pressure block(s)", int(floating.sum()))
        blocks[np.flatnonzero(active)] = np.where(floating[labels], labels, -1)

    x_act = np.zeros(a_act.shape[0])
    iterations, method = 0, "none"
    if keep.any():
        a_red = a_act[keep][:, keep].tocsr()
        x_act[keep], iterations, method = solve_spd(a_red, b_act[keep], tol, max_iter)
    x_full[active] = x_act
    return x_full, iterations, method, blocks


# ── Projection ──────────────────────────────────────────────────────────────

def _axis_faces(sides, weights, phi, liquid, kappa, st_scale, theta_min):
    """
    Classify the interior faces along one axis.

    Side A is the lower-index cell, side B the upper one. Returns the masks
    for liquid-liquid, liquid-air and air-liquid faces, the surface fraction
    theta (from the liquid cell) and the surface pressure on interface faces.
    """
    side_a, side_b = sides
    phi_a, phi_b = phi[side_a], phi[side_b]
    liq_a, liq_b = liquid[side_a], liquid[side_b]
    open_ = weights > 0.0

    both = liq_a & liq_b & open_
    a_only = liq_a & ~liq_b & open_
    b_only = liq_b & ~liq_a & open_

    with np.errstate(divide='ignore', invalid='ignore'):
        theta = np.where(a_only, phi_a / (phi_a - phi_b),
                np.where(b_only, phi_b / (phi_b - phi_a), 1.0))
    theta = np.clip(np.nan_to_num(theta, nan=1.0), theta_min, 1.0)

    surface_p = np.zeros_like(phi_a)
    if st_scale != 0.0 and kappa is not None:
        kap_a, kap_b = kappa[side_a], kappa[side_b]
        surface_p = np.where(a_only, kap_a + theta * (kap_b - kap_a),
                    np.where(b_only, kap_b + theta * (kap_a - kap_b), 0.0)) * st_scale
    return both, a_only, b_only, theta, surface_p


def project(vel: StaggeredGrid, surface: LevelSet, weights_u: np.ndarray, weights_v: np.ndarray,
            solid_vel: StaggeredGrid, dt: float, curvature: np.ndarray = None, st_scale: float = 0.0,
            enforce_bubbles: bool = False, divergence_source: float = 0.0,
            tol: float = 1e-10, max_iter: int = None, theta_min: float = THETA_MIN) -> dict:
    """
    Pressure projection: make the liquid velocity divergence-free.

    Args:
        vel               : Velocity to correct (modified in place)
        surface           : Liquid level set
        weights_u/v       : Open face fractions from compute_solid_weights()
        solid_vel         : Prescribed solid velocity (boundary condition)
        dt                : Substep length
        curvature         : Cell-centred curvature of `surface` (surface tension)
        st_scale          : Surface tension coefficient (0 disables)
        enforce_bubbles   : Keep enclosed air pockets incompressible
        divergence_source : Uniform divergence target in liquid cells
        tol               : Relative CG tolerance

    Returns:
        dict with the pressure field, face validity masks and metrics
    """
    t_start = time.perf_counter()

    dx = vel.dx
    nx, ny = surface.size
    phi = surface.data
    scale = dt / (dx * dx)

    liquid = (phi < 0.0) & open_cells(weights_u, weights_v)
    bubbles = find_bubbles(liquid, weights_u, weights_v) if enforce_bubbles else np.full((nx, ny), -1)

    n_liquid = int(liquid.sum())
    n_bubbles = int(bubbles.max()) + 1 if bubbles.size else 0
    n = n_liquid + n_bubbles

    row = np.full((nx, ny), -1, dtype=np.int64)
    row[liquid] = np.arange(n_liquid)
    in_bubble = bubbles >= 0
    row[in_bubble] = n_liquid + bubbles[in_bubble]

    # Step 1: right-hand side from the current net outflow
    divergence_before = weighted_divergence(vel, weights_u, weights_v, solid_vel)
    rhs = np.zeros(n)
    rhs[:n_liquid] = -divergence_before[liquid] + divergence_source
    if n_bubbles:
        np.add.at(rhs, row[in_bubble], -divergence_before[in_bubble])

    # Step 2: matrix entries face by face
    rows, cols, vals = [], [], []

    def _add(r, c, v):
        rows.append(r)
        cols.append(c)
        vals.append(v)

    faces = []
    for sides, weights in ((_X_SIDES, weights_u[1:-1, :]), (_Y_SIDES, weights_v[:, 1:-1])):
        both, a_only, b_only, theta, surface_p = _axis_faces(
            sides, weights, phi, liquid, curvature, st_scale, theta_min)
        faces.append((both, a_only, b_only, theta, surface_p))
        row_a, row_b = row[sides[0]], row[sides[1]]

        c = weights[both] * scale
        ra, rb = row_a[both], row_b[both]
        _add(ra, ra, c)
        _add(rb, rb, c)
        _add(ra, rb, -c)
        _add(rb, ra, -c)

        for mask, liq_rows, air_rows in ((a_only, row_a, row_b), (b_only, row_b, row_a)):
            c = weights[mask] * scale / theta[mask]
            rl, ra_ = liq_rows[mask], air_rows[mask]
            pt = surface_p[mask]
            _add(rl, rl, c)
            np.add.at(rhs, rl, c * pt)

            bub = ra_ >= 0
            if np.any(bub):
                _add(rl[bub], ra_[bub], -c[bub])
                _add(ra_[bub], rl[bub], -c[bub])
                _add(ra_[bub], ra_[bub], c[bub])
                np.add.at(rhs, ra_[bub], -c[bub] * pt[bub])

    if rows:
        a_mat = sp.coo_matrix(
            (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))), shape=(n, n)
        ).tocsr()
    else:
        a_mat = sp.csr_matrix((n, n))

    # Step 3: solve
    p, iterations, method, blocks = solve_with_nullspace(a_mat, rhs, tol=tol, max_iter=max_iter)

    # A floating block keeps its total volume, so its share of the source is removed
    target = np.full(n_liquid, float(divergence_source))
    liquid_blocks = blocks[:n_liquid]
    in_floating = liquid_blocks >= 0
    source_cancelled = bool(divergence_source != 0.0 and in_floating.any())
    if source_cancelled:
        sizes = np.bincount(blocks[blocks >= 0])
        liquid_rows = np.bincount(liquid_blocks[in_floating], minlength=len(sizes))
        removed = divergence_source * liquid_rows / np.maximum(sizes, 1)
        target[in_floating] -= removed[liquid_blocks[in_floating]]

    pressure = np.zeros((nx, ny))
    pressure[liquid] = p[:n_liquid]
    bubble_pressure = p[n_liquid:]
    if n_bubbles:
        pressure[in_bubble] = bubble_pressure[bubbles[in_bubble]]

    # Step 4: subtract the pressure gradient on faces touching liquid
    valid = []
    for comp, weights_full, (both, a_only, b_only, theta, surface_p), sides in (
            (vel.u, weights_u, faces[0], _X_SIDES), (vel.v, weights_v, faces[1], _Y_SIDES)):
        p_a, p_b = pressure[sides[0]], pressure[sides[1]]
        bub_a, bub_b = bubbles[sides[0]], bubbles[sides[1]]
        air_a = surface_p + np.where(bub_a >= 0, pressure[sides[0]], 0.0)
        air_b = surface_p + np.where(bub_b >= 0, pressure[sides[1]], 0.0)

        grad = np.zeros_like(p_a)
        grad = np.where(both, (p_b - p_a) / dx, grad)
        grad = np.where(a_only, (air_b - p_a) / (theta * dx), grad)
        grad = np.where(b_only, (p_b - air_a) / (theta * dx), grad)

        inner = (slice(1, -1), slice(None)) if comp is vel.u else (slice(None), slice(1, -1))
        comp.data[inner] -= dt * grad

        face_valid = np.zeros(weights_full.shape, dtype=bool)
        face_valid[inner] = both | a_only | b_only
        valid.append(face_valid)

    enforce_solid_velocity(vel, solid_vel, weights_u, weights_v)

    divergence_after = weighted_divergence(vel, weights_u, weights_v, solid_vel)
    t_end = time.perf_counter()

    return {
        "pressure"              : pressure,
        "bubble_pressure"       : bubble_pressure,
        "valid_u"               : valid[0],
        "valid_v"               : valid[1],
        "liquid_cells"          : n_liquid,
        "bubbles"               : n_bubbles,
        "iterations"            : iterations,
        "method"                : method,
        "time_ms"               : (t_end - t_start) * 1000,
        "divergence_before_max" : float(np.abs(divergence_before[liquid]).max()) if n_liquid else 0.0,
        "divergence_after_max"  : float(np.abs(divergence_after[liquid] - target).max()) if n_liquid else 0.0,
        "source_cancelled"      : source_cancelled,
    }
