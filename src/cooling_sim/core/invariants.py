# MIT License (see LICENSE)
"""
Ensemble diagnostics used to check the simulation against known limits.

The key check is optical molasses: with Poisson absorption and isotropic
emission, the steady-state kinetic temperature must approach

    k_B T = (hbar Gamma / 4) (1 + s + (2 delta / Gamma)²) / (2 |delta| / Gamma)

per beam saturation s, which at delta = -Gamma / 2 and s -> 0 is the Doppler
limit T_D = hbar Gamma / 2 k_B for three orthogonal beam pairs.
"""
from __future__ import annotations

import numpy as np

from ..constants import HBAR, K_B
from ..types import AtomicTransition


def kinetic_temperature(velocities: np.ndarray, masses) -> float:
    """
    Kinetic temperature of an ensemble from its velocity spread.

    T = sum_i m_i |v_i - <v>|² / (3 N k_B), with <v> the mean velocity, so
    bulk motion does not count as heat.

    Returns:
        Temperature in kelvin; 0 for fewer than two atoms.
    """
    v = np.asarray(velocities, dtype=np.float64).reshape(-1, 3)
    n = v.shape[0]
    if n < 2:
        return 0.0
    m = np.broadcast_to(np.asarray(masses, dtype=np.float64), (n,))
    dv = v - v.mean(axis=0)
    return float(np.sum(m * np.einsum("ij,ij->i", dv, dv)) / (3.0 * n * K_B))


def axis_temperatures(velocities: np.ndarray, masses) -> np.ndarray:
    """Kinetic temperature along x, y and z separately, kelvin."""
    v = np.asarray(velocities, dtype=np.float64).reshape(-1, 3)
    n = v.shape[0]
    if n < 2:
        return np.zeros(3)
    m = np.broadcast_to(np.asarray(masses, dtype=np.float64), (n,))
    dv = v - v.mean(axis=0)
    return (m[:, None] * dv * dv).sum(axis=0) / (n * K_B)


def doppler_temperature(transition: AtomicTransition) -> float:
    """T_D = hbar Gamma / 2 k_B."""
    return HBAR * transition.gamma / (2.0 * K_B)


def molasses_temperature(transition: AtomicTransition, detuning: float, saturation: float, axes: int = 3) -> float:
    """
    Steady-state temperature of optical molasses with ``axes`` beam pairs.

    Emission is isotropic, so each axis receives 1/3 of the emission
    heating from every pair: the absorption-plus-emission heating along one
    axis scales as (1 + axes / 3) / 2 relative to the three-pair case.

    Args:
        transition: Cooling transition.
        detuning: Angular detuning, rad/s (must be negative).
        saturation: Peak saturation parameter of each beam.
        axes: Number of orthogonal counter-propagating pairs (1 to 3).
    """
    if detuning >= 0:
        raise ValueError("molasses only cools for red detuning (detuning < 0)")
    gamma = transition.gamma
    x = 2.0 * detuning / gamma
    kT = (HBAR * gamma / 4.0) * (1.0 + saturation + x * x) / abs(x)
    return float(kT * (1.0 + axes / 3.0) / 2.0 / K_B)


def damping_coefficient(transition: AtomicTransition, detuning: float, saturation: float, wavenumber: float | None = None) -> float:
    """
    Low-velocity slope dF/dv of one counter-propagating pair, kg/s.

    dF/dv = 8 hbar k² s delta / (Gamma (1 + s + (2 delta / Gamma)²)²),
    negative (damping) for red detuning.
    """
    gamma = transition.gamma
    k = transition.wavenumber if wavenumber is None else wavenumber
    denom = 1.0 + saturation + (2.0 * detuning / gamma) ** 2
    return float(8.0 * HBAR * k * k * saturation * detuning / (gamma * denom * denom))
