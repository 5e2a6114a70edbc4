# MIT License (see LICENSE)
"""
Read-only inputs shared by every per-atom system during one step.

A StepContext is built by the scheduler at the start of each step and handed
to every system together with the atom range ``[lo, hi)`` it must process.
Systems only write the store components they own for that range.
"""
from __future__ import annotations
from dataclasses import dataclass, field

import numpy as np

from ..constants import HBAR
from ..fields.light import DipoleBeam, GaussianBeam
from ..fields.magnetic import MagneticField
from ..store import EntityStore
from ..types import AtomSpecies
from ..util import stream_rng

# Random stream identifiers, one per stochastic system
STREAM_PHOTONS = 1
STREAM_RECOIL = 2


@dataclass(frozen=True)
class SpeciesTable:
    """
    Per-species transition parameters as arrays indexed by species id.

    Species without a transition get zeros and ``has_transition == False``.
    """
    has_transition: np.ndarray
    gamma: np.ndarray
    omega: np.ndarray
    saturation_intensity: np.ndarray
    zeeman: np.ndarray
    wavenumber: np.ndarray

    @classmethod
    def build(cls, species: list[AtomSpecies]) -> "SpeciesTable":
        n = max(len(species), 1)
        has = np.zeros(n, dtype=bool)
        gamma = np.zeros(n)
        omega = np.zeros(n)
        isat = np.ones(n)
        zeeman = np.zeros((n, 3))
        k = np.zeros(n)
        for i, sp in enumerate(species):
            t = sp.transition
            if t is None:
                continue
            has[i] = True
            gamma[i] = t.gamma
            omega[i] = t.omega
            isat[i] = t.saturation_intensity
            zeeman[i] = t.zeeman_coefficients()
            k[i] = t.wavenumber
        return cls(has, gamma, omega, isat, zeeman, k)


@dataclass
class StepContext:
    """
    Everything a system may read during one step.

    Attributes:
        store: The entity store (systems write only their own components).
        species: Per-species parameter table.
        beams: Cooling beams, in the order of the store's per-beam columns.
        dipole_beams: Optical dipole beams.
        magnetic_field: Magnetic field model, or None.
        gravity: Gravitational acceleration vector, m/s².
        dt: Timestep of this step, s.
        step: Index of the step being computed.
        seed: Base seed for the random streams.
        recoil: Sample photon numbers and apply recoil kicks.
        zeeman_mode: "additive" or "off".
        magnetic_force: Whether any atom carries a magnetic moment.
    """
    store: EntityStore
    species: SpeciesTable
    beams: tuple[GaussianBeam, ...] = ()
    dipole_beams: tuple[DipoleBeam, ...] = ()
    magnetic_field: MagneticField | None = None
    gravity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    dt: float = 1e-6
    step: int = 0
    seed: int = 0
    recoil: bool = True
    zeeman_mode: str = "additive"
    magnetic_force: bool = False

    def rng(self, stream: int, lo: int) -> np.random.Generator:
        """Generator for one system's stream on the chunk starting at row ``lo``."""
        return stream_rng(self.seed, self.step, stream, lo)

    @property
    def hbar_k(self) -> np.ndarray:
        """Photon momentum vector of each cooling beam, shape (B, 3)."""
        if not self.beams:
            return np.zeros((0, 3))
        return HBAR * np.stack([b.wavevector for b in self.beams])
