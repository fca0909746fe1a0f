"""
integrator.py: Time Integration Schemes for Tracing Points
==========================================================
Used both for moving marker particles forward and for semi-Lagrangian
back-tracing (pass a negative dt).
"""

from enum import Enum
from typing import Callable

import numpy as np


class IntegrationOrder(Enum):
    FORWARD_EULER = "euler"
    RK3 = "rk3"
    RK4 = "rk4"

    @classmethod
    def parse(cls, value) -> "IntegrationOrder":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            names = ", ".join(o.value for o in cls)
            raise ValueError(f"Unknown integration order: {value}. Use one of: {names}") from None


def integrate(points: np.ndarray, dt: float, velocity: Callable[[np.ndarray], np.ndarray],
              order: IntegrationOrder = IntegrationOrder.FORWARD_EULER) -> np.ndarray:
    """
    Advance world points (N, 2) through a velocity field for one step.

    Args:
        points   : Start positions
        dt       : Step length (negative to trace backwards)
        velocity : Function mapping positions (N, 2) to velocities (N, 2)
        order    : Integration scheme

    Returns:
        New positions, same shape as `points`
    """
    x = np.asarray(points, dtype=np.float64)

    if order == IntegrationOrder.FORWARD_EULER:
        return x + dt * velocity(x)

    if order == IntegrationOrder.RK3:
        # Ralston's third-order scheme
        k1 = velocity(x)
        k2 = velocity(x + 0.5 * dt * k1)
        k3 = velocity(x + 0.75 * dt * k2)
        return x + dt * (2.0 * k1 + 3.0 * k2 + 4.0 * k3) / 9.0

    if order == IntegrationOrder.RK4:
        k1 = velocity(x)
        k2 = velocity(x + 0.5 * dt * k1)
        k3 = velocity(x + 0.5 * dt * k2)
        k4 = velocity(x + dt * k3)
        return x + dt * (k1 + 2.0 * k2 + 2.0 * k3 + k4) / 6.0

    raise ValueError(f"Unsupported integration order: {order}")
