"""
forces.py: External Body Forces (Gravity, Spatially Varying Fields)
===================================================================
Applies accelerations to the MAC velocity for a duration dt:

  u_face += dt * a_x(face position)
  v_face += dt * a_y(face position)

A force is anything that can evaluate an acceleration at world positions
(the ForceSampler protocol). A plain 2-vector becomes a ConstantForce.
Faces closed by the solid are skipped, their velocity is prescribed.
"""

from typing import Callable, Protocol

import numpy as np

from .grid import StaggeredGrid


class ForceSampler(Protocol):
    def __call__(self, points: np.ndarray) -> np.ndarray:
        """Acceleration (N, 2) at world positions (N, 2)."""
        ...


class ConstantForce:
    """The same acceleration everywhere (e.g. gravity)."""

    def __init__(self, acceleration=(0.0, -1.0)):
        self.acceleration = np.asarray(acceleration, dtype=np.float64).reshape(2)

    def __call__(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points)
        return np.broadcast_to(self.acceleration, points.shape).copy()

    def __repr__(self):
        return f"ConstantForce({self.acceleration[0]}, {self.acceleration[1]})"


class FieldForce:
    """
    Wraps any position -> acceleration function.

    The function may be vectorised (points (N, 2) -> (N, 2)); otherwise set
    vectorized=False and it is called once per point with a length-2 array.
    """

    def __init__(self, func: Callable, vectorized: bool = True):
        self.func = func
        self.vectorized = vectorized

    def __call__(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64)
        if self.vectorized:
            return np.asarray(self.func(points), dtype=np.float64).reshape(points.shape)
        flat = points.reshape(-1, 2)
        out = np.array([self.func(p) for p in flat], dtype=np.float64).reshape(flat.shape)
        return out.reshape(points.shape)


def as_force_sampler(force) -> ForceSampler:
    """Accept a 2-vector, a ForceSampler object or a plain callable."""
    if isinstance(force, (ConstantForce, FieldForce)):
        return force
    if callable(force):
        return FieldForce(force)
    arr = np.asarray(force, dtype=np.float64)
    if arr.shape != (2,):
        raise ValueError(f"A constant force needs 2 components, got shape {arr.shape}")
    return ConstantForce(arr)


def apply_force(vel: StaggeredGrid, force, dt: float,
                weights_u: np.ndarray = None, weights_v: np.ndarray = None):
    """
    Add dt * acceleration to every open face of `vel` (in place).

    Args:
        vel       : Velocity field to modify
        force     : 2-vector, ForceSampler or callable
        dt        : Duration the force acts for
        weights_u : Open fraction of each x-face (0 = closed by solid)
        weights_v : Open fraction of each y-face
    """
    sampler = as_force_sampler(force)

    for comp, axis, weights in ((vel.u, 0, weights_u), (vel.v, 1, weights_v)):
        pos = comp.sample_positions()
        accel = sampler(pos.reshape(-1, 2))[:, axis].reshape(comp.shape)
        if weights is not None:
            accel = np.where(weights > 0.0, accel, 0.0)
        comp.data += dt * accel
