"""
errors.py: Exception types raised by the simulation core
========================================================
Configuration problems are rejected before any state changes. Numerical
throttling is not an error (it is logged and reported by the controller),
and a degenerate substep is ordinary control flow (see controller.py).
"""


class ConfigurationError(ValueError):
    """A level set, field or setting does not fit the simulation it is given to."""


class SimulationStateError(ConfigurationError):
    """An operation was requested in a lifecycle state that does not allow it."""


class SolverError(RuntimeError):
    """A linear solve failed with both the iterative and the direct method."""
