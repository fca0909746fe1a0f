"""
simulation.py: Free-Surface Liquid Engine
=========================================
LiquidSimulation owns every grid, level set and particle set of one
simulation and advances them together. One call to `run_simulation(dt)`
advances the liquid by one substep.

Physics pipeline per substep:
  1. Advect marker particles (liquid and air), then self-advect velocity
  2. Rebuild the level sets from the particles, reseed the particles
  3. Enforce the solid boundary condition (static or moving solids)
  4. Implicit viscosity solve (optional)
  5. Pressure projection (surface tension, bubbles, volume correction)
  6. Extrapolate velocity out of the liquid, re-apply the solid condition
  7. Advect the level sets and the viscosity field

External forces are added by the caller (usually the CFL controller) with
add_force() before each substep.

Lifecycle:
  unconfigured -> configured (surface and collision volumes set)
               -> stepping (first run_simulation call)
Structural configuration is rejected once stepping has begun; solid
velocity and surface tension may still be changed.
"""

import logging
import time

import numpy as np

from .advect import advect_levelset, advect_scalar
from .advect import advect_velocity as _advect_velocity
from .errors import ConfigurationError, SimulationStateError
from .extrapolate import extrapolate_velocity
from .forces import apply_force
from .grid import ScalarGrid, StaggeredGrid, Transform
from .integrator import IntegrationOrder
from .levelset import LevelSet
from .particles import MarkerParticles
from .solver import (compute_solid_weights, enforce_solid_velocity, project,
                     volume_correction_divergence)
from .viscosity import solve_viscosity

logger = logging.getLogger(__name__)

SUPERSAMPLE = 4


class LiquidSimulation:
    """
    The complete 2D free-surface liquid simulation.

    Usage:
        sim = LiquidSimulation(Transform(0.025), (200, 200), narrow_band=10)
        sim.set_surface_volume(liquid)       # LevelSet, negative in liquid
        sim.set_collision_volume(container)  # LevelSet, negative in solid
        sim.set_enforce_bubbles()
        for _ in range(n):
            sim.add_force((0.0, -1.0), dt)
            sim.run_simulation(dt)
    """

    def __init__(self, xform: Transform, size, narrow_band: int = 5,
                 order: IntegrationOrder = IntegrationOrder.RK3, seed=None):
        """
        Args:
            xform       : Grid spacing and world origin shared by all fields
            size        : Cell resolution (nx, ny)
            narrow_band : Level set band half-width, in cells
            order       : Integration scheme for all advection
            seed        : Random seed for particle jitter
        """
        self.xform = xform
        self.size = (int(size[0]), int(size[1]))
        self.narrow_band = int(narrow_band)
        self.order = IntegrationOrder.parse(order)
        self.seed = seed

        self.vel = StaggeredGrid(xform, self.size)
        self.collision_vel = StaggeredGrid(xform, self.size)
        self._static_vel = StaggeredGrid(xform, self.size)

        self.surface = LevelSet(xform, self.size, self.narrow_band)
        self.collision = LevelSet(xform, self.size, self.narrow_band)
        self.viscosity = None

        self.particles = MarkerParticles(self.dx / 2.0, 4, 2.0, seed=seed)
        self.air_surface = None
        self.air_particles = None

        self.moving_solids = False
        self.enforce_bubbles = False
        self.volume_correction = False
        self.st_scale = 0.0
        self.target_volume = 0.0
        self.accum_error = 0.0

        self.pressure = np.zeros(self.size)
        self.substep = 0
        self.perf_log = []

        self._weights = None
        self._surface_set = False
        self._collision_set = False
        self._stepping = False
        self._source_cancel_logged = False

    @property
    def dx(self) -> float:
        return self.xform.dx

    @property
    def is_configured(self) -> bool:
        return self._surface_set and self._collision_set

    @property
    def is_stepping(self) -> bool:
        return self._stepping

    # ── Validation ───────────────────────────────────────────────────────────

    def _check_matched(self, other, what: str):
        if tuple(getattr(other, "size", ())) != self.size:
            raise ConfigurationError(
                f"{what} has resolution {getattr(other, 'size', None)}, expected {self.size}")
        if getattr(other, "xform", None) != self.xform:
            raise ConfigurationError(
                f"{what} has transform {getattr(other, 'xform', None)}, expected {self.xform}")

    def _check_configurable(self, what: str):
        if self._stepping:
            raise SimulationStateError(f"{what} is not allowed once the simulation has started stepping")

    # ── Configuration ────────────────────────────────────────────────────────

    def set_collision_volume(self, collision: LevelSet):
        """Replace the solid geometry (negative inside the solid)."""
        self._check_matched(collision, "Collision volume")
        self._check_configurable("set_collision_volume")
        self.collision = collision.copy()
        self._weights = None
        self._collision_set = True

    def set_collision_velocity(self, collision_vel: StaggeredGrid):
        """Prescribe a solid velocity and enable moving solids."""
        self._check_matched(collision_vel, "Collision velocity")
        self.collision_vel = collision_vel.copy()
        self.moving_solids = True

    def disable_moving_solids(self):
        self.moving_solids = False

    def set_surface_volume(self, surface: LevelSet):
        """Replace the liquid and seed marker particles in it."""
        self._check_matched(surface, "Surface volume")
        self._check_configurable("set_surface_volume")
        self.surface = surface.copy()
        self.particles.init(self.surface, self.collision)
        if self.air_surface is not None:
            self._init_air()
        self._surface_set = True

    def add_surface_volume(self, surface: LevelSet):
        """Union more liquid into the existing surface."""
        self._check_matched(surface, "Surface volume")
        self._check_configurable("add_surface_volume")
        self.surface.union(surface)
        self.surface.reinit()
        self.particles.add(surface, self.collision)
        if self.air_surface is not None:
            self._init_air()
        self._surface_set = True

    def set_surface_velocity(self, vel: StaggeredGrid):
        self._check_matched(vel, "Surface velocity")
        self.vel = vel.copy()

    def set_surface_tension(self, st_scale: float):
        """Curvature pressure coefficient; 0 disables surface tension."""
        if st_scale < 0.0:
            raise ConfigurationError(f"Surface tension must be non-negative, got {st_scale}")
        self.st_scale = float(st_scale)

    def set_enforce_bubbles(self):
        self._check_configurable("set_enforce_bubbles")
        self.enforce_bubbles = True

    def set_volume_correction(self):
        """Capture the current liquid area as the target and reset the error."""
        self._check_configurable("set_volume_correction")
        self.volume_correction = True
        self.target_volume = self.compute_volume(True)
        self.accum_error = 0.0
        logger.info("Volume correction enabled, target area %.6f", self.target_volume)

    def set_viscosity(self, coefficient=1.0):
        """Enable viscosity with a uniform coefficient or a cell-centred ScalarGrid."""
        if isinstance(coefficient, ScalarGrid):
            self._check_matched(coefficient, "Viscosity field")
            field = coefficient.copy()
        else:
            field = ScalarGrid(self.xform, self.size, float(coefficient))
        if np.any(field.data < 0.0):
            raise ConfigurationError("Viscosity coefficients must be non-negative")
        self._check_configurable("set_viscosity")
        self.viscosity = field

    def set_air_volume(self):
        """Track the air phase with its own level set and marker particles."""
        self._check_configurable("set_air_volume")
        if self.air_surface is None:
            self.air_particles = MarkerParticles(self.dx / 2.0, 4, 2.0, seed=self.seed)
            self._init_air()

    def _init_air(self):
        self.air_surface = LevelSet(self.xform, self.size, self.narrow_band)
        self.air_surface.data = -self.surface.data
        self.air_particles.init(self.air_surface, self.collision)

    # ── Forces and advection ────────────────────────────────────────────────

    def solid_weights(self) -> tuple:
        """Open face fractions of the current collision geometry (cached)."""
        if self._weights is None:
            self._weights = compute_solid_weights(self.collision)
        return self._weights

    def _solid_velocity(self) -> StaggeredGrid:
        return self.collision_vel if self.moving_solids else self._static_vel

    def add_force(self, force, dt: float):
        """
        Accelerate the liquid for `dt`.

        Args:
            force : 2-vector (constant), ForceSampler or position -> acceleration callable
            dt    : Duration the force acts for
        """
        weights_u, weights_v = self.solid_weights()
        apply_force(self.vel, force, dt, weights_u, weights_v)

    def advect_surface(self, dt: float, order: IntegrationOrder = None):
        order = self.order if order is None else IntegrationOrder.parse(order)
        self.surface = advect_levelset(self.surface, self.vel, dt, order)
        self.surface.reinit()
        if self.air_surface is not None:
            self.air_surface = advect_levelset(self.air_surface, self.vel, dt, order)
            self.air_surface.reinit()

    def advect_viscosity(self, dt: float, order: IntegrationOrder = None):
        if self.viscosity is None:
            return
        order = self.order if order is None else IntegrationOrder.parse(order)
        self.viscosity = advect_scalar(self.viscosity, self.vel, dt, order)

    def advect_velocity(self, dt: float, order: IntegrationOrder = None):
        order = self.order if order is None else IntegrationOrder.parse(order)
        self.vel = _advect_velocity(self.vel, dt, order)

    # ── Diagnostics ──────────────────────────────────────────────────────────

    def compute_volume(self, liquid: bool = True) -> float:
        """
        Area of the liquid (or air) phase, super-sampled 4x4 per cell.

        Samples inside the solid never count. Without air tracking the air
        phase is everything outside the liquid.
        """
        nx, ny = self.size
        sub = (np.arange(SUPERSAMPLE) + 0.5) / SUPERSAMPLE
        fi = (np.arange(nx)[:, None] + sub[None, :]).ravel()
        fj = (np.arange(ny)[:, None] + sub[None, :]).ravel()
        ii, jj = np.meshgrid(fi, fj, indexing='ij')
        points = self.xform.idx_to_world(np.stack([ii, jj], axis=-1))

        outside_solid = self.collision.interp(points) > 0.0
        if liquid:
            phase = self.surface.interp(points) < 0.0
        elif self.air_surface is not None:
            phase = self.air_surface.interp(points) < 0.0
        else:
            phase = self.surface.interp(points) > 0.0

        sample_area = (self.dx / SUPERSAMPLE) ** 2
        return float(np.count_nonzero(phase & outside_solid) * sample_area)

    def max_vel_mag(self) -> float:
        return self.vel.max_magnitude()

    # ── Substep ──────────────────────────────────────────────────────────────

    def run_simulation(self, dt: float, renderer=None) -> None:
        """
        Advance the liquid by one substep of length dt.

        Args:
            dt       : Substep length (> 0), normally chosen by the CFL controller
            renderer : Optional renderer; unused by the numerics
        """
        if not self.is_configured:
            raise SimulationStateError("Set both the surface and the collision volume before stepping")
        if dt <= 0.0:
            raise ValueError(f"Substep length must be positive, got {dt}")

        self._stepping = True
        t_total_start = time.perf_counter()
        weights_u, weights_v = self.solid_weights()
        solid_vel = self._solid_velocity()

        # ── Step 1: Advect particles and velocity ───────────────────────────
        t0 = time.perf_counter()
        self.particles.advect(self.vel, dt, self.order, self.collision)
        if self.air_particles is not None:
            self.air_particles.advect(self.vel, dt, self.order, self.collision)
        self.advect_velocity(dt)
        t_advect_particles = (time.perf_counter() - t0) * 1000

        # ── Step 2: Particle surface correction ─────────────────────────────
        t0 = time.perf_counter()
        self.particles.correct_surface(self.surface)
        if self.air_surface is not None:
            self.air_particles.correct_surface(self.air_surface)
            # Air particles carve the liquid; a cell claimed by both stays air
            self.surface.data = np.maximum(self.surface.data, -self.air_surface.data)
            self.surface.reinit()
        self.particles.reseed(self.surface, self.collision)
        if self.air_surface is not None:
            self.air_particles.reseed(self.air_surface, self.collision)
        t_surface = (time.perf_counter() - t0) * 1000

        # ── Step 3: Solid boundary condition ────────────────────────────────
        enforce_solid_velocity(self.vel, solid_vel, weights_u, weights_v)

        # ── Step 4: Viscosity ───────────────────────────────────────────────
        t0 = time.perf_counter()
        visc_metrics = None
        if self.viscosity is not None:
            visc_metrics = solve_viscosity(self.vel, self.surface, self.viscosity,
                                           weights_u, weights_v, solid_vel, dt)
        t_viscosity = (time.perf_counter() - t0) * 1000

        # ── Step 5: Pressure projection ─────────────────────────────────────
        t0 = time.perf_counter()
        curvature = self.surface.curvature() if self.st_scale > 0.0 else None

        source = 0.0
        volume = None
        if self.volume_correction and self.target_volume > 0.0:
            volume = self.compute_volume(True)
            error = (volume - self.target_volume) / self.target_volume
            source = volume_correction_divergence(error, self.accum_error, dt)
            self.accum_error += error * dt

        proj = project(self.vel, self.surface, weights_u, weights_v, solid_vel, dt,
                       curvature=curvature, st_scale=self.st_scale,
                       enforce_bubbles=self.enforce_bubbles, divergence_source=source)
        self.pressure = proj["pressure"]
        if proj["source_cancelled"] and not self._source_cancel_logged:
            logger.warning("Volume correction has no effect: the liquid and its bubbles fill a sealed "
                           "region whose total volume cannot change")
            self._source_cancel_logged = True
        t_project = (time.perf_counter() - t0) * 1000

        # ── Step 6: Extrapolation ───────────────────────────────────────────
        t0 = time.perf_counter()
        extrapolate_velocity(self.vel, proj["valid_u"], proj["valid_v"])
        enforce_solid_velocity(self.vel, solid_vel, weights_u, weights_v)
        t_extrapolate = (time.perf_counter() - t0) * 1000

        # ── Step 7: Advect level sets and viscosity ─────────────────────────
        t0 = time.perf_counter()
        self.advect_surface(dt)
        self.advect_viscosity(dt)
        t_advect_fields = (time.perf_counter() - t0) * 1000

        # ── Substep bookkeeping ─────────────────────────────────────────────
        self.substep += 1
        t_total = (time.perf_counter() - t_total_start) * 1000

        metrics = {
            "substep"          : self.substep,
            "dt"               : dt,
            "total_ms"         : t_total,
            "advect_ms"        : t_advect_particles,
            "surface_ms"       : t_surface,
            "viscosity_ms"     : t_viscosity,
            "project_ms"       : t_project,
            "extrapolate_ms"   : t_extrapolate,
            "advect_fields_ms" : t_advect_fields,
            "cg_iterations"    : proj["iterations"],
            "viscosity_iters"  : visc_metrics["iterations"] if visc_metrics else 0,
            "liquid_cells"     : proj["liquid_cells"],
            "bubbles"          : proj["bubbles"],
            "divergence_max"   : proj["divergence_after_max"],
            "source_cancelled" : proj["source_cancelled"],
            "particles"        : len(self.particles),
            "volume"           : volume,
            "max_velocity"     : self.max_vel_mag(),
        }
        self.perf_log.append(metrics)
        logger.debug("Substep %d: dt=%.3e, %d CG iterations, divergence %.2e",
                     self.substep, dt, proj["iterations"], proj["divergence_after_max"])

    # ── Rendering ────────────────────────────────────────────────────────────

    def draw_grid(self, renderer):
        renderer.draw_grid_lines(self.xform.offset, self.dx, self.size, color=(0.8, 0.8, 0.8))

    def draw_surface(self, renderer):
        renderer.draw_contour(self.surface.phi.sample_positions(), self.surface.data, color=(0.0, 0.2, 1.0))
        if len(self.particles):
            renderer.draw_points(self.particles.positions, color=(0.3, 0.5, 1.0), size=1.0)

    def draw_air(self, renderer):
        if self.air_surface is None:
            return
        renderer.draw_contour(self.air_surface.phi.sample_positions(), self.air_surface.data, color=(1.0, 0.3, 0.0))
        if len(self.air_particles):
            renderer.draw_points(self.air_particles.positions, color=(1.0, 0.6, 0.3), size=1.0)

    def draw_collision(self, renderer):
        renderer.draw_contour(self.collision.phi.sample_positions(), self.collision.data, color=(0.3, 0.3, 0.3))

    def _draw_field(self, renderer, vel: StaggeredGrid, points: np.ndarray, length: float, color):
        values = vel.interp(points)
        renderer.draw_vectors(points, points + length * values, color=color)

    def draw_collision_vel(self, renderer, length: float):
        points = self.collision.phi.sample_positions().reshape(-1, 2)
        near = np.abs(self.collision.interp(points)) < 2.0 * self.dx
        self._draw_field(renderer, self.collision_vel, points[near], length, (0.0, 0.6, 0.0))

    def draw_velocity(self, renderer, length: float, from_particles: bool = False):
        if from_particles:
            points = self.particles.positions
        else:
            points = self.surface.phi.sample_positions().reshape(-1, 2)
            points = points[self.surface.interp(points) < 0.0]
        self._draw_field(renderer, self.vel, points, length, (0.8, 0.0, 0.0))

    def print_status(self):
        """Pretty-print the current simulation state."""
        print(f"\n{'='*50}")
        print(f"  Substep   : {self.substep}  |  Grid: {self.size[0]}x{self.size[1]}, dx={self.dx}")
        print(f"  Liquid    : area={self.compute_volume(True):.5f}, particles={len(self.particles)}")
        print(f"  Velocity  : max={self.max_vel_mag():.4f}")
        if self.perf_log:
            last = self.perf_log[-1]
            print(f"  Divergence: max={last['divergence_max']:.2e}")
            print(f"  Perf      : {last['total_ms']:.1f}ms/substep ({last['cg_iterations']} CG iterations)")
        print(f"{'='*50}")
