# MIT License (see LICENSE)
"""
Declarative, immutable description of a simulation run.

A SimulationConfig is validated once on construction; any problem raises
ConfigurationError naming the offending component before a single step
runs. The scheduler never mutates it.
"""
from __future__ import annotations
from dataclasses import dataclass

import numpy as np

from .constants import G_EARTH
from .core.integrators import INTEGRATORS
from .errors import ConfigurationError
from .fields.light import DipoleBeam, GaussianBeam
from .fields.magnetic import MagneticField
from .sources import Source
from .types import AtomSpecies
from .volumes import Region

ZEEMAN_MODES = ("additive", "off")


@dataclass(frozen=True)
class SimulationConfig:
    """
    Attributes:
        timestep: Step duration (the maximum step when ``adaptive_dt``), s.
        steps: Default number of steps for ``Simulation.run``.
        until_time: Default physical-time budget for ``Simulation.run``, s.
        wall_clock: Default wall-clock budget for ``Simulation.run``, s.
        integrator: "euler" (semi-implicit) or "verlet".
        adaptive_dt: Shrink the step so no atom moves further than
                     ``max_displacement`` in one step.
        max_displacement: Displacement limit for adaptive stepping, m.
        dt_min: Lower bound for adaptive stepping, s.
        seed: Seed of all random streams (non-negative).
        workers: Size of the worker thread pool.
        chunk_size: Atoms per work item. Fixed so results do not depend on
                    the number of workers.
        gravity: Gravitational acceleration vector, m/s².
        recoil: Enable stochastic photon absorption and emission recoil.
        zeeman_mode: "additive" or "off" (see core.forces).
        max_atoms: Hard cap on live atoms, or None.
        strict_numerics: Abort the run on any non-finite atom state instead
                         of removing the atom.
        sources, beams, dipole_beams, magnetic_field, regions: Physical setup.
        species: Extra species for atoms allocated by hand; species of the
                 sources are registered automatically.
    """
    timestep: float
    steps: int | None = None
    until_time: float | None = None
    wall_clock: float | None = None
    integrator: str = "euler"
    adaptive_dt: bool = False
    max_displacement: float | None = None
    dt_min: float | None = None
    seed: int = 0
    workers: int = 1
    chunk_size: int = 4096
    gravity: tuple[float, float, float] = (0.0, 0.0, -G_EARTH)
    recoil: bool = True
    zeeman_mode: str = "additive"
    max_atoms: int | None = None
    strict_numerics: bool = False
    sources: tuple[Source, ...] = ()
    beams: tuple[GaussianBeam, ...] = ()
    dipole_beams: tuple[DipoleBeam, ...] = ()
    magnetic_field: MagneticField | None = None
    regions: tuple[Region, ...] = ()
    species: tuple[AtomSpecies, ...] = ()

    def __post_init__(self) -> None:
        for name in ("sources", "beams", "dipole_beams", "regions", "species"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

        if not (np.isfinite(self.timestep) and self.timestep > 0):
            raise ConfigurationError(f"timestep must be positive, got {self.timestep}", component="timestep")
        if self.steps is not None and self.steps < 0:
            raise ConfigurationError("steps must be non-negative", component="steps")
        if self.until_time is not None and self.until_time < 0:
            raise ConfigurationError("until_time must be non-negative", component="until_time")
        if self.wall_clock is not None and self.wall_clock <= 0:
            raise ConfigurationError("wall_clock must be positive", component="wall_clock")
        if self.integrator not in INTEGRATORS:
            raise ConfigurationError(
                f"unknown integrator '{self.integrator}', expected one of {sorted(INTEGRATORS)}",
                component="integrator",
            )
        if self.adaptive_dt:
            if self.max_displacement is None or not self.max_displacement > 0:
                raise ConfigurationError("adaptive_dt needs a positive max_displacement", component="adaptive_dt")
            if self.dt_min is not None and not (0 < self.dt_min <= self.timestep):
                raise ConfigurationError("dt_min must be in (0, timestep]", component="adaptive_dt")
        if int(self.seed) < 0:
            raise ConfigurationError("seed must be non-negative", component="seed")
        if self.workers < 1:
            raise ConfigurationError("workers must be >= 1", component="workers")
        if self.chunk_size < 1:
            raise ConfigurationError("chunk_size must be >= 1", component="chunk_size")
        g = np.asarray(self.gravity, dtype=np.float64)
        if g.shape != (3,) or not np.all(np.isfinite(g)):
            raise ConfigurationError("gravity must be a finite 3-vector", component="gravity")
        object.__setattr__(self, "gravity", tuple(g.tolist()))
        if self.zeeman_mode not in ZEEMAN_MODES:
            raise ConfigurationError(
                f"zeeman_mode must be one of {ZEEMAN_MODES}, got '{self.zeeman_mode}'", component="zeeman_mode"
            )
        if self.max_atoms is not None and self.max_atoms < 0:
            raise ConfigurationError("max_atoms must be non-negative", component="max_atoms")

        for src in self.sources:
            if not isinstance(src, Source):
                raise ConfigurationError(f"not a source: {src!r}", component="sources")
        for beam in self.beams:
            if not isinstance(beam, GaussianBeam):
                raise ConfigurationError(f"not a GaussianBeam: {beam!r}", component="beams")
        for beam in self.dipole_beams:
            if not isinstance(beam, DipoleBeam):
                raise ConfigurationError(f"not a DipoleBeam: {beam!r}", component="dipole_beams")
        for region in self.regions:
            if not isinstance(region, Region):
                raise ConfigurationError(f"not a Region: {region!r}", component="regions")
        if self.magnetic_field is not None and not isinstance(self.magnetic_field, MagneticField):
            raise ConfigurationError("magnetic_field must be a MagneticField", component="magnetic_field")

    def all_species(self) -> list[AtomSpecies]:
        """Registered species in index order: explicit ones first, then sources'."""
        out: list[AtomSpecies] = []
        for sp in list(self.species) + [s.species for s in self.sources]:
            if sp not in out:
                out.append(sp)
        return out
