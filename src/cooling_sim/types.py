# MIT License (see LICENSE)
"""
Atomic species and the laser-cooling transition they are driven on.

The scattering physics only needs a handful of numbers per species:
  - the transition frequency and natural linewidth,
  - the saturation intensity,
  - the Zeeman coefficients of the sigma+, sigma- and pi components,
  - the mass.

Presets use the values from Steck's Rubidium 87 D line data and
Nosske et al., PRA 97, 039901 (2018) for strontium.
"""
from __future__ import annotations
from dataclasses import dataclass

import numpy as np

from .constants import AMU, BOHR_MAGNETON, C, HBAR, K_B


@dataclass(frozen=True)
class AtomicTransition:
    """
    Two-level cooling transition with linear Zeeman shifts.

    The sigma+ component is shifted by ``mu_plus * |B| / h`` Hz, and likewise
    for sigma- and pi. Shifts raise the atomic resonance, i.e. they lower
    the laser detuning seen by the atom.

    Attributes:
        frequency: Transition frequency in Hz.
        linewidth: Natural linewidth in Hz (Gamma / 2 pi).
        saturation_intensity: Saturation intensity in W/m².
        mu_plus: Zeeman coefficient of the sigma+ component, J/T.
        mu_minus: Zeeman coefficient of the sigma- component, J/T.
        mu_pi: Zeeman coefficient of the pi component, J/T.
    """
    frequency: float
    linewidth: float
    saturation_intensity: float
    mu_plus: float = BOHR_MAGNETON
    mu_minus: float = -BOHR_MAGNETON
    mu_pi: float = 0.0

    @property
    def gamma(self) -> float:
        """Natural linewidth as an angular frequency (rad/s)."""
        return 2.0 * np.pi * self.linewidth

    @property
    def omega(self) -> float:
        """Transition angular frequency (rad/s)."""
        return 2.0 * np.pi * self.frequency

    @property
    def wavelength(self) -> float:
        return C / self.frequency

    @property
    def wavenumber(self) -> float:
        """|k| of resonant light, rad/m."""
        return 2.0 * np.pi * self.frequency / C

    @property
    def doppler_temperature(self) -> float:
        """Doppler cooling limit T_D = hbar Gamma / 2 k_B, in kelvin."""
        return HBAR * self.gamma / (2.0 * K_B)

    def zeeman_coefficients(self) -> np.ndarray:
        """(mu_plus, mu_minus, mu_pi) as an array, J/T."""
        return np.array([self.mu_plus, self.mu_minus, self.mu_pi], dtype=np.float64)

    @classmethod
    def rubidium(cls) -> "AtomicTransition":
        """Rubidium-87 D2 cycling transition."""
        return cls(
            frequency=C / 780.0e-9,
            linewidth=6.065e6,
            saturation_intensity=16.69,
        )

    @classmethod
    def strontium(cls) -> "AtomicTransition":
        """Strontium-88 blue 461 nm transition."""
        return cls(
            frequency=650759219088937.0,
            linewidth=32e6,
            saturation_intensity=430.0,
        )

    @classmethod
    def erbium(cls) -> "AtomicTransition":
        """Erbium 583 nm narrow-line transition."""
        return cls(
            frequency=5.142e14,
            linewidth=190e3,
            saturation_intensity=0.13,
        )

    @classmethod
    def erbium_401(cls) -> "AtomicTransition":
        """Erbium 401 nm broad transition."""
        return cls(
            frequency=7.476e14,
            linewidth=30e6,
            saturation_intensity=56.0,
            mu_plus=1.1372 * BOHR_MAGNETON,
            mu_minus=-1.1372 * BOHR_MAGNETON,
        )


@dataclass(frozen=True)
class AtomSpecies:
    """
    Properties shared by every atom a source creates.

    Attributes:
        name: Human readable label, also used by the JSON config.
        mass: Mass in atomic mass units. Must be > 0.
        transition: Cooling transition, or None for atoms that do not
                    interact with light (useful for ballistic tests in
                    arbitrary units).
        magnetic_moment: Effective moment m_eff in J/T for the magnetic force;
                         the potential is U = m_eff |B|, so m_eff > 0 means a
                         weak-field seeker.
        mass_unit: Multiplier converting ``mass`` to kg. Use 1.0 together with
                   unit-free scenarios.
    """
    name: str
    mass: float
    transition: AtomicTransition | None = None
    magnetic_moment: float = 0.0
    mass_unit: float = AMU

    def __post_init__(self) -> None:
        if not self.mass > 0:
            raise ValueError(f"species '{self.name}' mass must be positive, got {self.mass}")

    @property
    def mass_kg(self) -> float:
        return self.mass * self.mass_unit

    @property
    def recoil_velocity(self) -> float:
        """Velocity change hbar k / m for one photon of the cooling transition."""
        if self.transition is None:
            return 0.0
        return HBAR * self.transition.wavenumber / self.mass_kg

    @classmethod
    def rubidium87(cls) -> "AtomSpecies":
        return cls(name="Rb87", mass=87.0, transition=AtomicTransition.rubidium())

    @classmethod
    def strontium88(cls) -> "AtomSpecies":
        return cls(name="Sr88", mass=88.0, transition=AtomicTransition.strontium())

    @classmethod
    def erbium168(cls) -> "AtomSpecies":
        return cls(name="Er168", mass=168.0, transition=AtomicTransition.erbium())


SPECIES_PRESETS = {
    "Rb87": AtomSpecies.rubidium87,
    "Sr88": AtomSpecies.strontium88,
    "Er168": AtomSpecies.erbium168,
}
