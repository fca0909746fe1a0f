"""
controller.py: Adaptive CFL Substepping
=======================================
A rendered frame covers a fixed interval F, but a stable substep depends on
how fast the liquid moves. The controller splits each frame into substeps:

  dt = k * h^2 / |v|max        (k = 3, h = grid spacing)

clamped so the frame is never overshot. The very first substep of a
controller has no velocity history, so a speed of 1 is assumed.

Outcomes are explicit: throttling (dt clamped to the remaining time) is an
informational diagnostic, and a non-positive dt ends the frame early as
normal control flow, never as an error.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)

VELOCITY_EPSILON = 1e-10


class Steppable(Protocol):
    dx: float

    def max_vel_mag(self) -> float: ...

    def add_force(self, force, dt: float): ...

    def run_simulation(self, dt: float, renderer=None) -> None: ...


class FrameOutcome(Enum):
    COMPLETED = "completed"
    DEGENERATE_STEP = "degenerate_step"


@dataclass
class SubstepReport:
    dt: float
    velocity: float
    throttled: bool = False


@dataclass
class FrameReport:
    frame_time: float
    substeps: list = field(default_factory=list)
    outcome: FrameOutcome = FrameOutcome.COMPLETED

    @property
    def elapsed(self) -> float:
        return sum(s.dt for s in self.substeps)

    @property
    def throttled(self) -> bool:
        return any(s.throttled for s in self.substeps)

    def __len__(self):
        return len(self.substeps)


class CflController:
    """
    Args:
        frame_time : Interval F covered by one call to advance_frame()
        force      : Per-substep body force (2-vector or sampler), None for none
        cfl_factor : k in dt = k * h^2 / |v|max
        max_substeps : Safety cap on substeps per frame (None = unlimited)
    """

    def __init__(self, frame_time: float, force=(0.0, -1.0), cfl_factor: float = 3.0,
                 max_substeps: int = None):
        self.frame_time = float(frame_time)
        self.force = force
        self.cfl_factor = float(cfl_factor)
        self.max_substeps = max_substeps
        self._first_step = True

    def substep_size(self, speed: float, dx: float, remaining: float) -> tuple:
        """
        CFL substep for the given maximum speed.

        Returns:
            (dt, throttled)
        """
        if speed > VELOCITY_EPSILON:
            dt = self.cfl_factor * dx * dx / speed
        else:
            dt = remaining

        throttled = False
        if dt > remaining:
            dt = remaining
            throttled = True
        return dt, throttled

    def advance_frame(self, sim: Steppable, renderer=None) -> FrameReport:
        """
        Run substeps until the frame interval is covered.

        Args:
            sim      : Engine exposing max_vel_mag / add_force / run_simulation
            renderer : Passed through to run_simulation

        Returns:
            FrameReport with every substep taken and the outcome
        """
        report = FrameReport(self.frame_time)
        elapsed = 0.0

        if not self.frame_time > 0.0:
            report.outcome = FrameOutcome.DEGENERATE_STEP
            logger.debug("Frame interval %.3e is not positive, nothing to do", self.frame_time)
            return report

        while elapsed < self.frame_time:
            if self.max_substeps is not None and len(report) >= self.max_substeps:
                logger.warning("Stopping frame after %d substeps (%.3e of %.3e s covered)",
                               len(report), elapsed, self.frame_time)
                break

            if self._first_step:
                speed = 1.0
                self._first_step = False
            else:
                speed = sim.max_vel_mag()

            remaining = self.frame_time - elapsed
            dt, throttled = self.substep_size(speed, sim.dx, remaining)
            if throttled:
                logger.info("Throttling timestep: CFL step exceeds remaining frame time, using %.3e", dt)

            if not dt > 0.0:
                report.outcome = FrameOutcome.DEGENERATE_STEP
                logger.debug("Non-positive substep %.3e, ending frame", dt)
                break

            if self.force is not None:
                sim.add_force(self.force, dt)
            sim.run_simulation(dt, renderer)

            # A step spanning the remaining time lands exactly on the frame end
            elapsed = self.frame_time if dt >= remaining else elapsed + dt
            report.substeps.append(SubstepReport(dt, speed, throttled))

        return report
