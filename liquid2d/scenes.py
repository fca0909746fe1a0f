"""
scenes.py: Initial Conditions
=============================
Builders that turn a SimulationConfig into a ready-to-step LiquidSimulation.
"""

import logging

import numpy as np

from .config import SimulationConfig
from .grid import Transform
from .levelset import LevelSet
from .mesh import square_mesh
from .simulation import LiquidSimulation

logger = logging.getLogger(__name__)


def domain_center(xform: Transform, size) -> np.ndarray:
    return xform.offset + xform.dx * np.asarray(size, dtype=np.float64) / 2.0


def build_hole_scene(config: SimulationConfig = None) -> LiquidSimulation:
    """
    A liquid square (half-size 1) with a square hole (half-size 0.5) inside a
    static square container (half-size 2, solid everywhere outside it).

    The hole is an air pocket enclosed by liquid, the case bubble
    enforcement exists for.
    """
    config = config or SimulationConfig()
    config.validate()

    xform = Transform(config.dx, (0.0, 0.0))
    size = config.resolution
    center = domain_center(xform, size)

    surface_mesh = square_mesh(center, 1.0)
    hole_mesh = square_mesh(center, 0.5)
    hole_mesh.reverse()
    surface_mesh.insert_mesh(hole_mesh)

    solid_mesh = square_mesh(center, 2.0)
    solid_mesh.reverse()

    surface = LevelSet(xform, size, config.narrow_band)
    surface.init(surface_mesh)

    solid = LevelSet(xform, size, config.narrow_band)
    solid.set_inverted()
    solid.init(solid_mesh)

    sim = LiquidSimulation(xform, size, config.narrow_band, order=config.order, seed=config.seed)
    sim.set_collision_volume(solid)
    sim.set_surface_volume(surface)

    if config.enforce_bubbles:
        sim.set_enforce_bubbles()
    if config.air_volume:
        sim.set_air_volume()
    if config.viscosity is not None:
        sim.set_viscosity(config.viscosity)
    sim.set_surface_tension(config.surface_tension)
    if config.volume_correction:
        sim.set_volume_correction()

    logger.info("Hole scene ready: %dx%d cells, dx=%g, liquid area %.4f",
                size[0], size[1], config.dx, sim.compute_volume(True))
    return sim
