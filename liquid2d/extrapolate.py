"""
extrapolate.py: Velocity Extrapolation
======================================
After the pressure solve only faces touching liquid carry meaningful
velocities. Particle advection, level-set advection and velocity
self-advection all sample slightly outside the liquid, so valid values are
pushed outward layer by layer:

  each pass, every invalid sample with at least one valid 4-neighbour takes
  the average of those neighbours and becomes valid itself.
"""

import numpy as np

from .grid import StaggeredGrid


def extrapolate(values: np.ndarray, valid: np.ndarray, max_layers: int = None) -> tuple:
    """
    Fill invalid samples of a 2D array from their valid neighbours.

    Args:
        values     : 2D array of samples
        valid      : Boolean mask of trusted samples (same shape)
        max_layers : Stop after this many passes (None = until covered)

    Returns:
        (new values, new valid mask)
    """
    out = np.array(values, dtype=np.float64, copy=True)
    done = np.array(valid, dtype=bool, copy=True)

    if not done.any():
        return out, done

    layers = max_layers if max_layers is not None else sum(out.shape)
    for _ in range(layers):
        if done.all():
            break

        vals = np.pad(np.where(done, out, 0.0), 1)
        mask = np.pad(done, 1).astype(np.float64)

        total = vals[2:, 1:-1] + vals[:-2, 1:-1] + vals[1:-1, 2:] + vals[1:-1, :-2]
        count = mask[2:, 1:-1] + mask[:-2, 1:-1] + mask[1:-1, 2:] + mask[1:-1, :-2]

        frontier = (~done) & (count > 0)
        if not frontier.any():
            break
        out[frontier] = total[frontier] / count[frontier]
        done = done | frontier

    return out, done


def extrapolate_velocity(vel: StaggeredGrid, valid_u: np.ndarray, valid_v: np.ndarray,
                         max_layers: int = None):
    """Extrapolate both MAC components in place."""
    vel.u.data, _ = extrapolate(vel.u.data, valid_u, max_layers)
    vel.v.data, _ = extrapolate(vel.v.data, valid_v, max_layers)
