# MIT License (see LICENSE)
import json

import numpy as np
import pytest

from cooling_sim import ConfigurationError, GridField, OneShotSource, Oven, QuadrupoleField, Simulation, SumField
from cooling_sim.io import config_from_dict, config_to_dict, load_config, save_config
from cooling_sim.volumes import Cylinder, Union, VolumeRole

MOT = {
    "timestep": 1e-6,
    "steps": 10,
    "seed": 3,
    "integrator": "verlet",
    "zeeman_mode": "additive",
    "max_atoms": 5000,
    "gravity": [0.0, 0.0, -9.81],
    "sources": [
        {"type": "one_shot", "species": "Rb87", "number": 100, "size": 1e-3, "temperature": 1e-4},
        {"type": "oven", "species": "Rb87", "rate": 2.5, "poisson": True, "name": "oven",
         "position": [-0.02, 0.0, 0.0], "direction": [1.0, 0.0, 0.0],
         "temperature": 400.0, "max_angle": 0.05, "max_speed": 500.0},
    ],
    "beams": [
        {"direction": [1.0, 0.0, 0.0], "waist": 0.005, "saturation": 1.0, "detuning_mhz": -6.0, "species": "Rb87"},
        {"direction": [-1.0, 0.0, 0.0], "waist": 0.005, "saturation": 1.0, "detuning_mhz": -6.0, "species": "Rb87"},
    ],
    "magnetic_field": {"type": "sum", "fields": [
        {"type": "quadrupole", "gradient": 0.15},
        {"type": "uniform", "field": [0.0, 0.0, 1e-5]},
    ]},
    "regions": [
        {"role": "bounding", "volume": {"type": "union", "members": [
            {"type": "box", "half_extents": [0.01, 0.01, 0.01]},
            {"type": "cylinder", "center": [-0.015, 0.0, 0.0], "axis": [1.0, 0.0, 0.0],
             "radius": 0.002, "half_length": 0.006},
        ]}},
        {"role": "detecting", "name": "mcp", "volume": {"type": "sphere", "center": [0.0, 0.0, -0.009], "radius": 0.001}},
    ],
}


def test_load_mot_config(tmp_path):
    path = tmp_path / "mot.json"
    path.write_text(json.dumps(MOT), encoding="utf-8")
    config = load_config(str(path))

    assert config.integrator == "verlet"
    assert config.max_atoms == 5000
    assert isinstance(config.sources[0], OneShotSource)
    assert isinstance(config.sources[1], Oven)
    assert config.sources[1].rate.poisson
    assert isinstance(config.magnetic_field, SumField)
    assert isinstance(config.magnetic_field.fields[0], QuadrupoleField)
    assert np.isclose(config.beams[0].detuning, -2 * np.pi * 6e6)
    s = config.beams[0].peak_intensity / config.sources[0].species.transition.saturation_intensity
    assert np.isclose(s, 1.0)
    assert isinstance(config.regions[0].volume, Union)
    assert isinstance(config.regions[0].volume.members[1], Cylinder)
    assert config.regions[1].role is VolumeRole.DETECTING

    with Simulation(config) as sim:
        report = sim.run()
    assert report.steps_executed == 10


def test_round_trip(tmp_path):
    """config_to_dict -> config_from_dict rebuilds an equivalent config."""
    config = config_from_dict(MOT)
    path = tmp_path / "copy.json"
    save_config(config, str(path))
    again = load_config(str(path))

    assert again.sources == config.sources
    assert again.beams[0].direction == config.beams[0].direction
    assert np.isclose(again.beams[0].power, config.beams[0].power)
    assert np.isclose(again.beams[0].detuning, config.beams[0].detuning)
    assert again.regions == config.regions
    for key in ("regions", "magnetic_field", "sources", "gravity", "steps", "integrator"):
        assert config_to_dict(again)[key] == config_to_dict(config)[key]


def test_grid_field_path_is_relative_to_config(tmp_path):
    field = np.zeros((3, 3, 3, 3))
    field[..., 2] = 1e-4
    np.savez(tmp_path / "bias.npz", field=field, origin=[-1.0, -1.0, -1.0], spacing=[1.0, 1.0, 1.0])
    data = {"timestep": 1e-6, "magnetic_field": {"type": "grid", "path": "bias.npz"}}
    path = tmp_path / "grid.json"
    path.write_text(json.dumps(data), encoding="utf-8")

    config = load_config(str(path))
    assert isinstance(config.magnetic_field, GridField)
    assert np.allclose(config.magnetic_field.sample(np.zeros((1, 3))), [0.0, 0.0, 1e-4])


@pytest.mark.parametrize("data, component", [
    ({"steps": 3}, "timestep"),
    ({"timestep": 1.0, "tiemstep": 2.0}, "config"),
    ({"timestep": -1.0}, "timestep"),
    ({"timestep": 1.0, "workers": 0}, "workers"),
    ({"timestep": 1.0, "sources": [{"type": "laser", "species": "Rb87"}]}, "sources"),
    ({"timestep": 1.0, "sources": [{"type": "oven", "species": "Xe"}]}, "species"),
    ({"timestep": 1.0, "sources": [{"type": "oven", "species": "Rb87", "rate": -1.0, "speed": 1.0}]},
     "EmissionRate"),
    ({"timestep": 1.0, "regions": [{"role": "mirror", "volume": {"type": "box", "half_extents": [1, 1, 1]}}]},
     "regions"),
    ({"timestep": 1.0, "regions": [{"volume": {"type": "box", "half_extents": [1, 0, 1]}}]}, "Box"),
    ({"timestep": 1.0, "magnetic_field": {"type": "grid", "path": "/nonexistent/field.npz"}}, "GridField"),
    ({"timestep": 1.0, "beams": [{"direction": [1, 0, 0], "waist": 0.01}]}, "config"),
])
def test_invalid_configs_name_the_component(data, component):
    with pytest.raises(ConfigurationError) as exc:
        config_from_dict(data)
    print(exc.value)
    assert exc.value.component == component


def test_missing_and_malformed_files(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(str(tmp_path / "nope.json"))
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(str(bad))
