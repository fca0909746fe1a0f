"""
advect.py: Semi-Lagrangian Advection
====================================
Moves grid-backed quantities (level sets, viscosity, velocity) along the
current velocity field.

The algorithm (per sample):
  1. Take the world position of the sample (cell center or face center).
  2. Trace BACKWARD along the velocity field by one timestep (dt)
     using the requested integration order.
     -> "Where did the stuff at this sample come FROM?"
  3. Bilinearly interpolate the old field at the back-traced position.
  4. That value becomes the new value of the sample.

Unconditionally stable, at the price of some numerical diffusion; the
marker particles in particles.py win back the detail lost at the surface.

Key reference: Jos Stam, "Stable Fluids" (SIGGRAPH 1999)
"""

import numpy as np

from .grid import ScalarGrid, StaggeredGrid
from .integrator import IntegrationOrder, integrate
from .levelset import LevelSet


def _backtrace(positions: np.ndarray, vel: StaggeredGrid, dt: float,
               order: IntegrationOrder) -> np.ndarray:
    flat = positions.reshape(-1, 2)
    return integrate(flat, -dt, vel.interp, order).reshape(positions.shape)


def advect_scalar(grid: ScalarGrid, vel: StaggeredGrid, dt: float,
                  order: IntegrationOrder = IntegrationOrder.FORWARD_EULER) -> ScalarGrid:
    """
    Advect any sampled scalar field through `vel`.

    Returns a new grid; the input is left untouched so it can still be
    sampled while the whole field is being rebuilt.
    """
    back = _backtrace(grid.sample_positions(), vel, dt, order)
    return ScalarGrid(grid.xform, grid.size, grid.interp(back), grid.sample)


def advect_velocity(vel: StaggeredGrid, dt: float,
                    order: IntegrationOrder = IntegrationOrder.FORWARD_EULER) -> StaggeredGrid:
    """
    Self-advection of the MAC velocity.

    Each component lives on its own faces, so each is traced back from its
    own face-center positions, always through the OLD velocity field.
    """
    out = StaggeredGrid(vel.xform, vel.size)
    out.u = advect_scalar(vel.u, vel, dt, order)
    out.v = advect_scalar(vel.v, vel, dt, order)
    return out


def advect_levelset(surface: LevelSet, vel: StaggeredGrid, dt: float,
                    order: IntegrationOrder = IntegrationOrder.FORWARD_EULER) -> LevelSet:
    """Advect a level set; the result is NOT redistanced."""
    out = surface.copy()
    out.phi = advect_scalar(surface.phi, vel, dt, order)
    return out
