# MIT License (see LICENSE)
"""
Per-atom force systems.

Every system has the signature ``system(ctx, lo, hi)`` and processes the
store rows ``[lo, hi)``. Force systems only add into ``store.force``, so they
commute and can run in any order before integration.

Physics (Gamma natural linewidth, s = I / I_sat):

    Scattering rate from one beam, one polarization component q:
        R_q = (Gamma / 2) s / (1 + s + (2 delta_q / Gamma)²)
        delta_q = delta - k·v - mu_q |B| / hbar      (zeeman_mode "additive")
        delta_q = delta - k·v                       (zeeman_mode "off")

    Polarization weights with c = k̂·B̂ (c = 0 where B = 0) and beam
    polarization p = ±1:
        w+ = (1 + p c)² / 4,  w- = (1 - p c)² / 4,  wpi = (1 - c²) / 2
    The weights sum to one, so without a field every component sees the
    same detuning and the rate reduces to the single Lorentzian.

    Doppler force:   F = sum_beams hbar k R          (deterministic)
                     F = sum_beams hbar k N / dt     (N ~ Poisson(R dt))
    Magnetic force:  F = -m_eff grad |B|
    Dipole force:    F = (3 pi c² / 2 w0³) (Gamma / (w0 - w) + Gamma / (w0 + w)) grad I
    Gravity:         F = m g
"""
from __future__ import annotations

import numpy as np

from ..constants import C, HBAR
from ..util import row_norms
from .context import STREAM_PHOTONS, StepContext


def sample_fields(ctx: StepContext, lo: int, hi: int) -> None:
    """
    Sample magnetic field, grad |B| and beam intensities at atom positions.

    Writes the ``field``, ``field_gradient`` and ``intensity`` components.
    """
    store = ctx.store
    pos = store.position[lo:hi]
    if ctx.magnetic_field is not None:
        store.field[lo:hi] = ctx.magnetic_field.sample(pos)
        if ctx.magnetic_force:
            store.field_gradient[lo:hi] = ctx.magnetic_field.gradient_magnitude(pos)
    for b, beam in enumerate(ctx.beams):
        store.intensity[lo:hi, b] = beam.intensity(pos)


def polarization_weights(cos_theta: np.ndarray, polarization: int) -> np.ndarray:
    """
    Fraction of the beam driving sigma+, sigma- and pi, shape (N, 3).

    Args:
        cos_theta: Cosine of the angle between beam direction and local field.
        polarization: Beam polarization, ±1.
    """
    pc = polarization * cos_theta
    return np.column_stack((
        0.25 * (1.0 + pc) ** 2,
        0.25 * (1.0 - pc) ** 2,
        0.5 * (1.0 - cos_theta * cos_theta),
    ))


def lorentzian_rate(gamma, saturation, detuning):
    """(Gamma/2) s / (1 + s + (2 delta / Gamma)²); zero where Gamma == 0."""
    gamma = np.asarray(gamma, dtype=np.float64)
    safe = np.where(gamma > 0, gamma, 1.0)
    x = 2.0 * detuning / safe
    rate = 0.5 * safe * saturation / (1.0 + saturation + x * x)
    return np.where(gamma > 0, rate, 0.0)


def scattering_rates(ctx: StepContext, lo: int, hi: int) -> np.ndarray:
    """
    Scattering rate of every atom in ``[lo, hi)`` from every beam, shape (N, B).

    Reads velocity, field and intensity; does not write the store.
    """
    store = ctx.store
    n = hi - lo
    rates = np.zeros((n, len(ctx.beams)))
    if n == 0 or not ctx.beams:
        return rates

    sp = store.species[lo:hi]
    table = ctx.species
    active = table.has_transition[sp]
    if not active.any():
        return rates
    gamma = table.gamma[sp]
    isat = table.saturation_intensity[sp]
    vel = store.velocity[lo:hi]

    additive = ctx.zeeman_mode == "additive" and ctx.magnetic_field is not None
    if additive:
        B = store.field[lo:hi]
        bmag = row_norms(B)
        bhat = np.zeros_like(B)
        nz = bmag > 0
        bhat[nz] = B[nz] / bmag[nz, None]
        shifts = table.zeeman[sp] * bmag[:, None] / HBAR

    for b, beam in enumerate(ctx.beams):
        s = store.intensity[lo:hi, b] / isat
        if additive:
            cos_theta = bhat @ beam.unit_direction
            w = polarization_weights(cos_theta, beam.polarization)
            delta = beam.effective_detuning(vel, shifts)
            r = (w * lorentzian_rate(gamma[:, None], s[:, None], delta)).sum(axis=1)
        else:
            delta = beam.effective_detuning(vel)
            r = lorentzian_rate(gamma, s, delta)
        rates[:, b] = np.where(active, r, 0.0)
    return rates


def apply_doppler_force(ctx: StepContext, lo: int, hi: int) -> None:
    """
    Radiation pressure of all cooling beams.

    Writes ``scattering_rate`` and ``photons`` and adds into ``force``. With
    ``ctx.recoil`` the absorbed photon numbers are Poisson-sampled, which
    carries the absorption shot noise; otherwise the mean force is used.
    """
    store = ctx.store
    if not ctx.beams or hi <= lo:
        return
    rates = scattering_rates(ctx, lo, hi)
    store.scattering_rate[lo:hi] = rates
    hbar_k = ctx.hbar_k
    if ctx.recoil:
        rng = ctx.rng(STREAM_PHOTONS, lo)
        photons = rng.poisson(rates * ctx.dt)
        store.photons[lo:hi] = photons.sum(axis=1)
        store.force[lo:hi] += (photons @ hbar_k) / ctx.dt
    else:
        store.photons[lo:hi] = 0
        store.force[lo:hi] += rates @ hbar_k


def apply_gravity(ctx: StepContext, lo: int, hi: int) -> None:
    """F = m g."""
    if not np.any(ctx.gravity):
        return
    store = ctx.store
    store.force[lo:hi] += store.mass[lo:hi, None] * ctx.gravity


def apply_magnetic_force(ctx: StepContext, lo: int, hi: int) -> None:
    """F = -m_eff grad |B| for atoms with a non-zero magnetic moment."""
    if ctx.magnetic_field is None or not ctx.magnetic_force:
        return
    store = ctx.store
    moment = store.magnetic_moment[lo:hi]
    nz = moment != 0.0
    if not nz.any():
        return
    grad = store.field_gradient[lo:hi]
    store.force[lo:hi] -= np.where(nz[:, None], moment[:, None] * grad, 0.0)


def dipole_prefactor(omega0, gamma, omega_light: float):
    """
    Coefficient a in F = a grad I for a two-level atom.

    Positive (attractive towards high intensity) for red-detuned light.
    """
    omega0 = np.asarray(omega0, dtype=np.float64)
    safe = np.where(omega0 > 0, omega0, 1.0)
    a = 3.0 * np.pi * C * C / (2.0 * safe ** 3) * (
        gamma / (safe - omega_light) + gamma / (safe + omega_light)
    )
    return np.where(omega0 > 0, a, 0.0)


def apply_dipole_force(ctx: StepContext, lo: int, hi: int) -> None:
    """Optical dipole force from every dipole beam."""
    if not ctx.dipole_beams or hi <= lo:
        return
    store = ctx.store
    sp = store.species[lo:hi]
    omega0 = ctx.species.omega[sp]
    gamma = ctx.species.gamma[sp]
    pos = store.position[lo:hi]
    for beam in ctx.dipole_beams:
        a = dipole_prefactor(omega0, gamma, beam.omega)
        store.force[lo:hi] += a[:, None] * beam.intensity_gradient(pos)


FORCE_SYSTEMS = (
    apply_doppler_force,
    apply_magnetic_force,
    apply_dipole_force,
    apply_gravity,
)
