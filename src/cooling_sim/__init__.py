# MIT License (see LICENSE)
"""
cooling_sim - Semiclassical laser-cooling simulation of neutral atoms.

Atoms are independent point particles stored in a dense entity store and
advanced by a per-step pipeline of field sampling, force accumulation
(Doppler scattering, photon recoil, magnetic, dipole and gravity forces),
integration and lifecycle handling (sources and removal regions).

Main entry points:
    - SimulationConfig: Immutable, validated description of a run.
    - Simulation: The world container; step(), run(), snapshot().
    - AtomSpecies, AtomicTransition: Atom properties and presets.
    - GaussianBeam, QuadrupoleField, ...: Light and magnetic field models.
    - Oven, SurfaceSource, OneShotSource: Atom sources.
    - Box, Sphere, Cylinder, Union, Region: Bounding, absorbing and
      detecting regions.

Submodules:
    - core: Force systems, recoil, integrators and temperature diagnostics.
    - fields: Magnetic and light field models.
    - io: JSON configuration load/save.

Example:
    from cooling_sim import Simulation, SimulationConfig, AtomSpecies, OneShotSource
    from cooling_sim.fields import molasses_beams

    rb = AtomSpecies.rubidium87()
    gamma = rb.transition.gamma
    config = SimulationConfig(
        timestep=1e-6,
        beams=molasses_beams(rb.transition, -gamma / 2, 0.1, waist=0.01),
        sources=[OneShotSource(rb, number=1000, temperature=1e-3)],
        gravity=(0.0, 0.0, 0.0),
    )
    with Simulation(config) as sim:
        report = sim.run(steps=1000)
"""
from .config import SimulationConfig
from .errors import (
    CoolingSimError,
    ConfigurationError,
    InvalidEntity,
    NumericalError,
    ResourceExhaustion,
)
from .fields import (
    AntiHelmholtzField,
    DipoleBeam,
    GaussianBeam,
    GridField,
    QuadrupoleField,
    SumField,
    UniformField,
)
from .logging_config import setup_logging
from .profiler import Profiler
from .scheduler import RunReport, Simulation, Stage
from .snapshot import AtomSnapshot, BufferedSink, NullSink, SnapshotSink, TextSink
from .sources import EmissionRate, OneShotSource, Oven, SurfaceSource
from .store import EntityStore
from .types import AtomicTransition, AtomSpecies
from .volumes import Box, Cylinder, Region, Sphere, Union, VolumeRole

__all__ = [
    # Simulation
    "Simulation",
    "SimulationConfig",
    "RunReport",
    "Stage",
    "EntityStore",
    # Atoms
    "AtomSpecies",
    "AtomicTransition",
    # Fields
    "GaussianBeam",
    "DipoleBeam",
    "UniformField",
    "QuadrupoleField",
    "AntiHelmholtzField",
    "GridField",
    "SumField",
    # Sources
    "EmissionRate",
    "Oven",
    "SurfaceSource",
    "OneShotSource",
    # Regions
    "Box",
    "Sphere",
    "Cylinder",
    "Union",
    "Region",
    "VolumeRole",
    # Output
    "AtomSnapshot",
    "SnapshotSink",
    "NullSink",
    "BufferedSink",
    "TextSink",
    # Errors
    "CoolingSimError",
    "ConfigurationError",
    "NumericalError",
    "InvalidEntity",
    "ResourceExhaustion",
    # Utilities
    "Profiler",
    "setup_logging",
]
