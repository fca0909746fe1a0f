"""
liquid2d/: 2D Free-Surface Liquid Package
=========================================
Exports the interfaces the CLI, the visualizer and scene scripts use.

Scene setup     : Transform, LevelSet, square_mesh / circle_mesh
Engine          : LiquidSimulation -> set_*(), add_force(), run_simulation()
Frame stepping  : CflController -> advance_frame()
Interactive loop: SimulationContext + a Renderer
"""

from .config import SimulationConfig
from .controller import CflController, FrameOutcome, FrameReport, SubstepReport
from .driver import ControlSignal, SimulationContext
from .errors import ConfigurationError, SimulationStateError, SolverError
from .forces import ConstantForce, FieldForce
from .grid import SampleType, ScalarGrid, StaggeredGrid, Transform
from .integrator import IntegrationOrder
from .levelset import LevelSet
from .mesh import Mesh2D, circle_mesh, square_mesh
from .renderer import RecordingRenderer, Renderer
from .scenes import build_hole_scene
from .simulation import LiquidSimulation

__all__ = [
    "SimulationConfig",
    "CflController", "FrameOutcome", "FrameReport", "SubstepReport",
    "ControlSignal", "SimulationContext",
    "ConfigurationError", "SimulationStateError", "SolverError",
    "ConstantForce", "FieldForce",
    "SampleType", "ScalarGrid", "StaggeredGrid", "Transform",
    "IntegrationOrder",
    "LevelSet",
    "Mesh2D", "circle_mesh", "square_mesh",
    "RecordingRenderer", "Renderer",
    "build_hole_scene",
    "LiquidSimulation",
]
