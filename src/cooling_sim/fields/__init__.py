# MIT License (see LICENSE)
"""
Field samplers queried by the force systems.

This subpackage provides:
    - Magnetic field models: UniformField, QuadrupoleField,
      AntiHelmholtzField, GridField, SumField.
    - Light: GaussianBeam (cooling), DipoleBeam (optical dipole trap).

Typical usage:
    from cooling_sim.fields import QuadrupoleField, molasses_beams

    field = QuadrupoleField(gradient=0.15)
    beams = molasses_beams(AtomicTransition.rubidium(), detuning=-2 * np.pi * 3e6,
                           saturation=1.0, waist=0.01)
"""
from .magnetic import (
    MagneticField,
    UniformField,
    QuadrupoleField,
    AntiHelmholtzField,
    GridField,
    SumField,
)
from .light import (
    GaussianBeam,
    DipoleBeam,
    gaussian_intensity,
    gaussian_intensity_gradient,
    molasses_beams,
)

__all__ = [
    # Magnetic
    "MagneticField",
    "UniformField",
    "QuadrupoleField",
    "AntiHelmholtzField",
    "GridField",
    "SumField",
    # Light
    "GaussianBeam",
    "DipoleBeam",
    "gaussian_intensity",
    "gaussian_intensity_gradient",
    "molasses_beams",
]
