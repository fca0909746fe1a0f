"""
config.py: Simulation Configuration
===================================
Every process parameter of the demo in one dataclass, with defaults that
reproduce the classic scene (200x200 cells of 0.025, 1/120 s frames).
Values can come from a JSON file; the CLI then overrides individual fields.

JSON layout (all sections and keys optional):
  {
    "grid":       {"dx": 0.025, "resolution": [200, 200], "narrow_band": 10},
    "time":       {"frame_time": 0.008333, "cfl_factor": 3.0, "order": "rk3"},
    "physics":    {"surface_tension": 10.0, "enforce_bubbles": true, "air_volume": true,
                   "volume_correction": false, "viscosity": null, "gravity": [0, -1]},
    "output":     {"screenshot_dir": "output", "screenshot_format": "png"},
    "seed": 0
  }
"""

import json
from dataclasses import dataclass, field

from .errors import ConfigurationError
from .integrator import IntegrationOrder


@dataclass
class SimulationConfig:
    dx: float = 0.025
    resolution: tuple = (200, 200)
    narrow_band: int = 10
    frame_time: float = 1.0 / 120.0
    surface_tension: float = 10.0
    enforce_bubbles: bool = True
    air_volume: bool = True
    volume_correction: bool = False
    viscosity: float = None
    gravity: tuple = field(default=(0.0, -1.0))
    cfl_factor: float = 3.0
    order: str = "rk3"
    screenshot_dir: str = "output"
    screenshot_format: str = "png"
    seed: int = 0

    @classmethod
    def from_json(cls, path: str) -> "SimulationConfig":
        """Load a configuration file; missing keys keep their defaults."""
        with open(path, 'r') as f:
            data = json.load(f)

        grid = data.get("grid", {})
        timing = data.get("time", {})
        physics = data.get("physics", {})
        output = data.get("output", {})
        defaults = cls()

        config = cls(
            dx=float(grid.get("dx", defaults.dx)),
            resolution=tuple(int(n) for n in grid.get("resolution", defaults.resolution)),
            narrow_band=int(grid.get("narrow_band", defaults.narrow_band)),
            frame_time=float(timing.get("frame_time", defaults.frame_time)),
            cfl_factor=float(timing.get("cfl_factor", defaults.cfl_factor)),
            order=str(timing.get("order", defaults.order)),
            surface_tension=float(physics.get("surface_tension", defaults.surface_tension)),
            enforce_bubbles=bool(physics.get("enforce_bubbles", defaults.enforce_bubbles)),
            air_volume=bool(physics.get("air_volume", defaults.air_volume)),
            volume_correction=bool(physics.get("volume_correction", defaults.volume_correction)),
            viscosity=physics.get("viscosity", defaults.viscosity),
            gravity=tuple(float(g) for g in physics.get("gravity", defaults.gravity)),
            screenshot_dir=str(output.get("screenshot_dir", defaults.screenshot_dir)),
            screenshot_format=str(output.get("screenshot_format", defaults.screenshot_format)),
            seed=int(data.get("seed", defaults.seed)),
        )
        config.validate()
        return config

    def validate(self):
        """Raise ConfigurationError on values the simulation cannot run with."""
        if self.dx <= 0.0:
            raise ConfigurationError(f"dx must be positive, got {self.dx}")
        if len(self.resolution) != 2 or min(self.resolution) < 2:
            raise ConfigurationError(f"resolution needs two sizes >= 2, got {self.resolution}")
        if self.narrow_band < 1:
            raise ConfigurationError(f"narrow_band must be at least 1 cell, got {self.narrow_band}")
        if self.frame_time < 0.0:
            raise ConfigurationError(f"frame_time must not be negative, got {self.frame_time}")
        if self.surface_tension < 0.0:
            raise ConfigurationError(f"surface_tension must not be negative, got {self.surface_tension}")
        if self.viscosity is not None and self.viscosity < 0.0:
            raise ConfigurationError(f"viscosity must not be negative, got {self.viscosity}")
        if self.cfl_factor <= 0.0:
            raise ConfigurationError(f"cfl_factor must be positive, got {self.cfl_factor}")
        if len(self.gravity) != 2:
            raise ConfigurationError(f"gravity needs 2 components, got {self.gravity}")
        try:
            IntegrationOrder.parse(self.order)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from None
