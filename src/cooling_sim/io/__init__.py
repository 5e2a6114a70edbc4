# MIT License (see LICENSE)
"""
Input/Output utilities for simulation configurations.

This subpackage provides:
    - JSON configuration: load and save SimulationConfig objects.
    - Round-trip support: saved configs load back to equivalent objects.

Typical usage:
    from cooling_sim.io import load_config, save_config

    config = load_config("mot.json")
    save_config(config, "mot_copy.json")
"""
from .json_io import (
    load_config,
    load_config_raw,
    config_from_dict,
    config_to_dict,
    save_config,
)

__all__ = [
    # Loading
    "load_config",
    "load_config_raw",
    "config_from_dict",
    # Saving
    "config_to_dict",
    "save_config",
]
