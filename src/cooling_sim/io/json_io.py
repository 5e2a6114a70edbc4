# MIT License (see LICENSE)
"""
JSON serialization and deserialization for simulation configurations.

The JSON format is a declarative mirror of SimulationConfig. Unknown keys
are rejected so that typos surface as ConfigurationError instead of being
silently ignored.

JSON Schema Overview:
---------------------
{
  "timestep": float,                  # Required, s
  "steps": int, "until_time": float, "wall_clock": float,
  "integrator": "euler" | "verlet",   # Default: "euler"
  "adaptive_dt": bool, "max_displacement": float, "dt_min": float,
  "seed": int, "workers": int, "chunk_size": int,
  "gravity": [gx, gy, gz],            # Default: [0, 0, -9.80665]
  "recoil": bool,                     # Default: true
  "zeeman_mode": "additive" | "off",
  "max_atoms": int,
  "strict_numerics": bool,
  "species": [SPECIES, ...],          # Extra species for hand-placed atoms
  "sources": [
    {"type": "oven", "species": SPECIES, "rate": float, "poisson": bool,
     "start_step": int, "stop_step": int, "name": str,
     "position": [..], "direction": [..], "temperature": float,
     "aperture_radius": float, "max_angle": float,
     "speed": float, "max_speed": float},
    {"type": "surface", ..., "center": [..], "normal": [..],
     "half_size": [hu, hv], "temperature": float},
    {"type": "one_shot", ..., "number": int, "center": [..],
     "size": float | [..], "temperature": float, "mean_velocity": [..]}
  ],
  "beams": [
    {"direction": [..], "waist": float,
     "power": float | "saturation": float,   # saturation needs "species"
     "detuning_mhz": float,                  # detuning / 2 pi, MHz
     "wavelength": float, "polarization": 1 | -1,
     "intercept": [..], "mask_radius": float, "species": SPECIES}
  ],
  "dipole_beams": [{"direction": [..], "waist": float, "power": float,
                    "wavelength": float, "intercept": [..]}],
  "magnetic_field": FIELD,
  "regions": [{"role": "bounding" | "absorbing" | "detecting",
               "name": str, "volume": VOLUME}]
}

SPECIES is a preset name ("Rb87", "Sr88", "Er168") or
{"name", "mass", "mass_unit", "magnetic_moment",
 "transition": preset name ("rubidium", "strontium", "erbium", "erbium_401")
               or {"frequency", "linewidth", "saturation_intensity",
                   "mu_plus", "mu_minus", "mu_pi"}}.

FIELD is one of
{"type": "uniform", "field": [..]},
{"type": "quadrupole", "gradient": float, "center": [..], "axis": [..]},
{"type": "anti_helmholtz", "radius", "separation", "current", "turns", "center", "axis"},
{"type": "grid", "path": str, "origin": [..], "spacing": [..], "default": [..]},
{"type": "sum", "fields": [FIELD, ...]}.
Grid paths are resolved relative to the JSON file.

VOLUME is one of
{"type": "box", "center": [..], "half_extents": [..]},
{"type": "sphere", "center": [..], "radius": float},
{"type": "cylinder", "center": [..], "axis": [..], "radius": float, "half_length": float},
{"type": "union", "members": [VOLUME, ...]}.
"""
from __future__ import annotations
from typing import Any
import json
import logging
import os

import numpy as np

from ..config import SimulationConfig
from ..errors import ConfigurationError
from ..fields.light import DipoleBeam, GaussianBeam
from ..fields.magnetic import (
    AntiHelmholtzField,
    GridField,
    MagneticField,
    QuadrupoleField,
    SumField,
    UniformField,
)
from ..sources import EmissionRate, OneShotSource, Oven, Source, SurfaceSource
from ..types import SPECIES_PRESETS, AtomicTransition, AtomSpecies
from ..volumes import Box, Cylinder, Region, Sphere, Union, Volume, VolumeRole

logger = logging.getLogger(__name__)

TRANSITION_PRESETS = {
    "rubidium": AtomicTransition.rubidium,
    "strontium": AtomicTransition.strontium,
    "erbium": AtomicTransition.erbium,
    "erbium_401": AtomicTransition.erbium_401,
}

_SCALAR_KEYS = (
    "timestep", "steps", "until_time", "wall_clock", "integrator", "adaptive_dt",
    "max_displacement", "dt_min", "seed", "workers", "chunk_size", "recoil",
    "zeeman_mode", "max_atoms", "strict_numerics",
)
_TOP_LEVEL_KEYS = set(_SCALAR_KEYS) | {
    "gravity", "species", "sources", "beams", "dipole_beams", "magnetic_field", "regions",
}
_MHZ = 2.0 * np.pi * 1e6


# ----------------------------------------------------------------------
# Loading
# ----------------------------------------------------------------------

def load_config_raw(path: str) -> dict[str, Any]:
    """
    Load raw JSON data from a config file without object construction.

    Raises:
        ConfigurationError: If the file is missing or not valid JSON.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"config file not found: {path}", component="config") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"invalid JSON in {path}: {exc}", component="config") from exc


def load_config(path: str) -> SimulationConfig:
    """
    Load and validate a SimulationConfig from a JSON file.

    Args:
        path: Path to the JSON config file.

    Returns:
        A validated, immutable SimulationConfig.

    Raises:
        ConfigurationError: On any missing, malformed or invalid entry.
    """
    data = load_config_raw(path)
    config = config_from_dict(data, base_dir=os.path.dirname(os.path.abspath(path)))
    logger.info("Loaded config %s", path)
    return config


def config_from_dict(data: dict[str, Any], base_dir: str | None = None) -> SimulationConfig:
    """
    Build a SimulationConfig from a JSON-compatible dictionary.

    Args:
        data: Parsed JSON.
        base_dir: Directory against which relative grid paths are resolved.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("config must be a JSON object", component="config")
    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        raise ConfigurationError(f"unknown keys: {sorted(unknown)}", component="config")
    if "timestep" not in data:
        raise ConfigurationError("missing required key 'timestep'", component="timestep")

    kwargs: dict[str, Any] = {k: data[k] for k in _SCALAR_KEYS if k in data}
    try:
        if "gravity" in data:
            kwargs["gravity"] = tuple(float(g) for g in data["gravity"])
        kwargs["species"] = tuple(species_from_json(s) for s in data.get("species", []))
        kwargs["sources"] = tuple(source_from_json(s) for s in data.get("sources", []))
        kwargs["beams"] = tuple(beam_from_json(b) for b in data.get("beams", []))
        kwargs["dipole_beams"] = tuple(dipole_beam_from_json(b) for b in data.get("dipole_beams", []))
        if data.get("magnetic_field") is not None:
            kwargs["magnetic_field"] = field_from_json(data["magnetic_field"], base_dir)
        kwargs["regions"] = tuple(region_from_json(r) for r in data.get("regions", []))
        return SimulationConfig(**kwargs)
    except ConfigurationError:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        detail = f"missing key {exc}" if isinstance(exc, KeyError) else str(exc)
        raise ConfigurationError(f"invalid config: {detail}", component="config") from exc


def species_from_json(d: str | dict[str, Any]) -> AtomSpecies:
    if isinstance(d, str):
        if d not in SPECIES_PRESETS:
            raise ConfigurationError(
                f"unknown species preset '{d}', expected one of {sorted(SPECIES_PRESETS)}", component="species"
            )
        return SPECIES_PRESETS[d]()
    transition = d.get("transition")
    if isinstance(transition, str):
        if transition not in TRANSITION_PRESETS:
            raise ConfigurationError(f"unknown transition preset '{transition}'", component="species")
        transition = TRANSITION_PRESETS[transition]()
    elif isinstance(transition, dict):
        transition = AtomicTransition(**{k: float(v) for k, v in transition.items()})
    kwargs: dict[str, Any] = {
        "name": str(d["name"]),
        "mass": float(d["mass"]),
        "transition": transition,
        "magnetic_moment": float(d.get("magnetic_moment", 0.0)),
    }
    if "mass_unit" in d:
        kwargs["mass_unit"] = float(d["mass_unit"])
    return AtomSpecies(**kwargs)


def source_from_json(d: dict[str, Any]) -> Source:
    kind = d.get("type")
    common: dict[str, Any] = {
        "species": species_from_json(d["species"]),
        "rate": EmissionRate(float(d.get("rate", 0.0)), poisson=bool(d.get("poisson", False))),
        "start_step": int(d.get("start_step", 0)),
        "stop_step": None if d.get("stop_step") is None else int(d["stop_step"]),
        "name": str(d.get("name", "")),
    }
    if kind == "oven":
        return Oven(
            **common,
            position=tuple(d.get("position", (0.0, 0.0, 0.0))),
            direction=tuple(d.get("direction", (1.0, 0.0, 0.0))),
            temperature=float(d.get("temperature", 0.0)),
            aperture_radius=float(d.get("aperture_radius", 0.0)),
            max_angle=float(d.get("max_angle", 0.0)),
            speed=None if d.get("speed") is None else float(d["speed"]),
            max_speed=None if d.get("max_speed") is None else float(d["max_speed"]),
        )
    if kind == "surface":
        return SurfaceSource(
            **common,
            center=tuple(d.get("center", (0.0, 0.0, 0.0))),
            normal=tuple(d.get("normal", (0.0, 0.0, 1.0))),
            half_size=tuple(d.get("half_size", (0.0, 0.0))),
            temperature=float(d.get("temperature", 300.0)),
        )
    if kind == "one_shot":
        size = d.get("size", 0.0)
        return OneShotSource(
            **common,
            number=int(d["number"]),
            center=tuple(d.get("center", (0.0, 0.0, 0.0))),
            size=tuple(size) if isinstance(size, list) else float(size),
            temperature=float(d.get("temperature", 0.0)),
            mean_velocity=tuple(d.get("mean_velocity", (0.0, 0.0, 0.0))),
        )
    raise ConfigurationError(f"unknown source type '{kind}'", component="sources")


def beam_from_json(d: dict[str, Any]) -> GaussianBeam:
    detuning = float(d["detuning_mhz"]) * _MHZ
    intercept = tuple(d.get("intercept", (0.0, 0.0, 0.0)))
    polarization = int(d.get("polarization", 1))
    if "saturation" in d:
        if "species" not in d:
            raise ConfigurationError("a beam given by saturation needs a species", component="beams")
        transition = species_from_json(d["species"]).transition
        if transition is None:
            raise ConfigurationError("beam species has no cooling transition", component="beams")
        beam = GaussianBeam.from_saturation(
            d["direction"], float(d["saturation"]), detuning, transition,
            waist=float(d["waist"]), polarization=polarization, intercept=intercept,
        )
        if d.get("mask_radius"):
            beam = GaussianBeam(beam.direction, beam.waist, beam.power, beam.detuning, beam.wavelength,
                                beam.polarization, beam.intercept, float(d["mask_radius"]))
        return beam
    return GaussianBeam(
        direction=tuple(d["direction"]),
        waist=float(d["waist"]),
        power=float(d["power"]),
        detuning=detuning,
        wavelength=float(d["wavelength"]),
        polarization=polarization,
        intercept=intercept,
        mask_radius=float(d.get("mask_radius", 0.0)),
    )


def dipole_beam_from_json(d: dict[str, Any]) -> DipoleBeam:
    return DipoleBeam(
        direction=tuple(d["direction"]),
        waist=float(d["waist"]),
        power=float(d["power"]),
        wavelength=float(d["wavelength"]),
        intercept=tuple(d.get("intercept", (0.0, 0.0, 0.0))),
    )


def field_from_json(d: dict[str, Any], base_dir: str | None = None) -> MagneticField:
    kind = d.get("type")
    if kind == "uniform":
        return UniformField(d.get("field", (0.0, 0.0, 0.0)))
    if kind == "quadrupole":
        return QuadrupoleField(float(d["gradient"]), d.get("center", (0.0, 0.0, 0.0)), d.get("axis", (0.0, 0.0, 1.0)))
    if kind == "anti_helmholtz":
        return AntiHelmholtzField(
            radius=float(d["radius"]),
            separation=float(d["separation"]),
            current=float(d["current"]),
            turns=int(d.get("turns", 1)),
            center=d.get("center", (0.0, 0.0, 0.0)),
            axis=d.get("axis", (0.0, 0.0, 1.0)),
        )
    if kind == "grid":
        path = str(d["path"])
        if base_dir is not None and not os.path.isabs(path):
            path = os.path.join(base_dir, path)
        return GridField.from_file(path, origin=d.get("origin"), spacing=d.get("spacing"),
                                   default=d.get("default", (0.0, 0.0, 0.0)))
    if kind == "sum":
        return SumField([field_from_json(f, base_dir) for f in d["fields"]])
    raise ConfigurationError(f"unknown field type '{kind}'", component="magnetic_field")


def volume_from_json(d: dict[str, Any]) -> Volume:
    kind = d.get("type")
    if kind == "box":
        return Box(center=tuple(d.get("center", (0.0, 0.0, 0.0))), half_extents=tuple(d["half_extents"]))
    if kind == "sphere":
        return Sphere(center=tuple(d.get("center", (0.0, 0.0, 0.0))), radius=float(d["radius"]))
    if kind == "cylinder":
        return Cylinder(
            center=tuple(d.get("center", (0.0, 0.0, 0.0))),
            axis=tuple(d.get("axis", (0.0, 0.0, 1.0))),
            radius=float(d["radius"]),
            half_length=float(d["half_length"]),
        )
    if kind == "union":
        return Union(tuple(volume_from_json(m) for m in d["members"]))
    raise ConfigurationError(f"unknown volume type '{kind}'", component="regions")


def region_from_json(d: dict[str, Any]) -> Region:
    role = d.get("role", "bounding")
    try:
        role = VolumeRole(role)
    except ValueError as exc:
        raise ConfigurationError(f"unknown region role '{role}'", component="regions") from exc
    return Region(volume=volume_from_json(d["volume"]), role=role, name=str(d.get("name", "")))


# ----------------------------------------------------------------------
# Saving
# ----------------------------------------------------------------------

def species_to_json(sp: AtomSpecies) -> str | dict[str, Any]:
    """Preset name when ``sp`` equals a preset, full description otherwise."""
    preset = SPECIES_PRESETS.get(sp.name)
    if preset is not None and preset() == sp:
        return sp.name
    result: dict[str, Any] = {"name": sp.name, "mass": sp.mass}
    if sp.mass_unit != AtomSpecies.__dataclass_fields__["mass_unit"].default:
        result["mass_unit"] = sp.mass_unit
    if sp.magnetic_moment != 0.0:
        result["magnetic_moment"] = sp.magnetic_moment
    if sp.transition is not None:
        named = [k for k, make in TRANSITION_PRESETS.items() if make() == sp.transition]
        if named:
            result["transition"] = named[0]
        else:
            t = sp.transition
            result["transition"] = {
                "frequency": t.frequency,
                "linewidth": t.linewidth,
                "saturation_intensity": t.saturation_intensity,
                "mu_plus": t.mu_plus,
                "mu_minus": t.mu_minus,
                "mu_pi": t.mu_pi,
            }
    return result


def source_to_json(src: Source) -> dict[str, Any]:
    result: dict[str, Any] = {"species": species_to_json(src.species), "rate": src.rate.rate}
    if src.rate.poisson:
        result["poisson"] = True
    if src.start_step:
        result["start_step"] = src.start_step
    if src.stop_step is not None:
        result["stop_step"] = src.stop_step
    if src.name:
        result["name"] = src.name

    if isinstance(src, Oven):
        result.update(type="oven", position=list(src.position), direction=list(src.direction),
                      temperature=src.temperature, aperture_radius=src.aperture_radius, max_angle=src.max_angle)
        if src.speed is not None:
            result["speed"] = src.speed
        if src.max_speed is not None:
            result["max_speed"] = src.max_speed
    elif isinstance(src, SurfaceSource):
        result.update(type="surface", center=list(src.center), normal=list(src.normal),
                      half_size=list(src.half_size), temperature=src.temperature)
    elif isinstance(src, OneShotSource):
        size = list(src.size) if isinstance(src.size, tuple) else src.size
        result.update(type="one_shot", number=src.number, center=list(src.center), size=size,
                      temperature=src.temperature, mean_velocity=list(src.mean_velocity))
    else:
        raise ConfigurationError(f"cannot serialize source type {type(src).__name__}", component="sources")
    return result


def beam_to_json(beam: GaussianBeam) -> dict[str, Any]:
    result = {
        "direction": list(beam.direction),
        "waist": beam.waist,
        "power": beam.power,
        "detuning_mhz": beam.detuning / _MHZ,
        "wavelength": beam.wavelength,
        "polarization": beam.polarization,
    }
    if any(beam.intercept):
        result["intercept"] = list(beam.intercept)
    if beam.mask_radius:
        result["mask_radius"] = beam.mask_radius
    return result


def dipole_beam_to_json(beam: DipoleBeam) -> dict[str, Any]:
    return {
        "direction": list(beam.direction),
        "waist": beam.waist,
        "power": beam.power,
        "wavelength": beam.wavelength,
        "intercept": list(beam.intercept),
    }


def field_to_json(f: MagneticField) -> dict[str, Any]:
    if isinstance(f, UniformField):
        return {"type": "uniform", "field": f.field.tolist()}
    if isinstance(f, QuadrupoleField):
        return {"type": "quadrupole", "gradient": f.gradient, "center": f.center.tolist(), "axis": f.axis.tolist()}
    if isinstance(f, AntiHelmholtzField):
        return {
            "type": "anti_helmholtz",
            "radius": f.radius,
            "separation": 2.0 * f.half_separation,
            "current": f.current,
            "turns": f.turns,
            "center": f.center.tolist(),
            "axis": f.axis.tolist(),
        }
    if isinstance(f, GridField):
        if f.path is None:
            raise ConfigurationError("only grid fields loaded from a file can be serialized", component="magnetic_field")
        return {
            "type": "grid",
            "path": f.path,
            "origin": f.origin.tolist(),
            "spacing": f.spacing.tolist(),
            "default": f.default.tolist(),
        }
    if isinstance(f, SumField):
        return {"type": "sum", "fields": [field_to_json(m) for m in f.fields]}
    raise ConfigurationError(f"cannot serialize field type {type(f).__name__}", component="magnetic_field")


def volume_to_json(v: Volume) -> dict[str, Any]:
    if isinstance(v, Box):
        return {"type": "box", "center": list(v.center), "half_extents": list(v.half_extents)}
    if isinstance(v, Sphere):
        return {"type": "sphere", "center": list(v.center), "radius": v.radius}
    if isinstance(v, Cylinder):
        return {"type": "cylinder", "center": list(v.center), "axis": list(v.axis),
                "radius": v.radius, "half_length": v.half_length}
    if isinstance(v, Union):
        return {"type": "union", "members": [volume_to_json(m) for m in v.members]}
    raise ConfigurationError(f"cannot serialize volume type {type(v).__name__}", component="regions")


def config_to_dict(config: SimulationConfig) -> dict[str, Any]:
    """
    Serialize a SimulationConfig to a JSON-compatible dictionary.

    Scalar settings equal to their defaults are omitted to keep the output
    concise. ``config_from_dict(config_to_dict(c))`` rebuilds an equivalent
    configuration.
    """
    result: dict[str, Any] = {"timestep": config.timestep}
    defaults = SimulationConfig.__dataclass_fields__
    for key in _SCALAR_KEYS[1:]:
        value = getattr(config, key)
        if value != defaults[key].default:
            result[key] = value
    if config.gravity != defaults["gravity"].default:
        result["gravity"] = list(config.gravity)
    if config.species:
        result["species"] = [species_to_json(s) for s in config.species]
    if config.sources:
        result["sources"] = [source_to_json(s) for s in config.sources]
    if config.beams:
        result["beams"] = [beam_to_json(b) for b in config.beams]
    if config.dipole_beams:
        result["dipole_beams"] = [dipole_beam_to_json(b) for b in config.dipole_beams]
    if config.magnetic_field is not None:
        result["magnetic_field"] = field_to_json(config.magnetic_field)
    if config.regions:
        result["regions"] = [
            {"role": r.role.value, "name": r.name, "volume": volume_to_json(r.volume)} for r in config.regions
        ]
    return result


def save_config(config: SimulationConfig, path: str, indent: int = 2) -> None:
    """Save a SimulationConfig to a JSON file on disk."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config_to_dict(config), f, indent=indent)
