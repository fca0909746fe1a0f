import json

import pytest

from liquid2d import ConfigurationError, SimulationConfig


def _write(tmp_path, data):
    path = tmp_path / "scene.json"
    path.write_text(json.dumps(data))
    return str(path)


def test_defaults():
    config = SimulationConfig()
    assert config.dx == 0.025
    assert config.resolution == (200, 200)
    assert config.narrow_band == 10
    assert config.frame_time == pytest.approx(1.0 / 120.0)
    assert config.surface_tension == 10.0
    assert config.enforce_bubbles and config.air_volume
    assert not config.volume_correction
    assert config.viscosity is None
    config.validate()


def test_partial_json(tmp_path):
    path = _write(tmp_path, {
        "grid": {"resolution": [64, 32]},
        "physics": {"surface_tension": 0.0, "viscosity": 0.5, "gravity": [0, -9.8]},
        "seed": 4,
    })
    config = SimulationConfig.from_json(path)

    assert config.resolution == (64, 32)
    assert config.dx == 0.025
    assert config.surface_tension == 0.0
    assert config.viscosity == 0.5
    assert config.gravity == (0.0, -9.8)
    assert config.seed == 4
    assert config.order == "rk3"


def test_empty_json(tmp_path):
    assert SimulationConfig.from_json(_write(tmp_path, {})) == SimulationConfig()


@pytest.mark.parametrize("field, value", [
    ("dx", 0.0),
    ("resolution", (1, 10)),
    ("narrow_band", 0),
    ("frame_time", -1.0),
    ("surface_tension", -0.1),
    ("viscosity", -2.0),
    ("cfl_factor", 0.0),
    ("gravity", (0.0, -1.0, 0.0)),
    ("order", "midpoint"),
])
def test_invalid_values(field, value):
    config = SimulationConfig(**{field: value})
    with pytest.raises(ConfigurationError):
        config.validate()


def test_invalid_file_rejected(tmp_path):
    with pytest.raises(ConfigurationError):
        SimulationConfig.from_json(_write(tmp_path, {"time": {"order": "leapfrog"}}))
