# MIT License (see LICENSE)
"""
Per-atom systems run by the scheduler.

This subpackage provides:
    - Field sampling: sample_fields.
    - Force systems: Doppler scattering, magnetic, dipole, gravity.
    - Stochastic recoil from spontaneous emission.
    - Integrators: semi-implicit Euler, velocity Verlet.
    - Diagnostics: kinetic temperature, molasses and Doppler limits.

Every system has the signature ``system(ctx, lo, hi)`` and works on the
store rows ``[lo, hi)``:

    from cooling_sim.core import apply_doppler_force

    apply_doppler_force(ctx, 0, len(ctx.store))
"""
from .context import StepContext, SpeciesTable
from .forces import (
    sample_fields,
    scattering_rates,
    apply_doppler_force,
    apply_magnetic_force,
    apply_dipole_force,
    apply_gravity,
    FORCE_SYSTEMS,
)
from .recoil import apply_recoil, emission_kicks
from .integrators import integrate, semi_implicit_euler, velocity_verlet, INTEGRATORS
from .invariants import (
    kinetic_temperature,
    axis_temperatures,
    doppler_temperature,
    molasses_temperature,
    damping_coefficient,
)

__all__ = [
    "StepContext",
    "SpeciesTable",
    # Fields and forces
    "sample_fields",
    "scattering_rates",
    "apply_doppler_force",
    "apply_magnetic_force",
    "apply_dipole_force",
    "apply_gravity",
    "FORCE_SYSTEMS",
    # Recoil
    "apply_recoil",
    "emission_kicks",
    # Integrators
    "integrate",
    "semi_implicit_euler",
    "velocity_verlet",
    "INTEGRATORS",
    # Diagnostics
    "kinetic_temperature",
    "axis_temperatures",
    "doppler_temperature",
    "molasses_temperature",
    "damping_coefficient",
]
