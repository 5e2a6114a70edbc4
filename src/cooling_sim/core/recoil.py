# MIT License (see LICENSE)
"""
Stochastic recoil from spontaneous emission.

Each photon scattered during the step (``store.photons``, sampled by the
Doppler force system) is re-emitted in a uniformly random direction, giving
the atom a velocity kick of magnitude hbar k / m. The kicks of one atom are
summed before being applied.

Together with the Poisson-sampled absorption this is the heating process
that balances Doppler cooling at T_D = hbar Gamma / 2 k_B.
"""
from __future__ import annotations

import numpy as np

from ..constants import HBAR
from ..util import random_unit_vectors
from .context import STREAM_RECOIL, StepContext


def emission_kicks(rng: np.random.Generator, counts: np.ndarray) -> np.ndarray:
    """
    Sum of ``counts[i]`` isotropic unit vectors for every atom i, shape (N, 3).
    """
    counts = np.asarray(counts, dtype=np.int64)
    n = counts.shape[0]
    total = int(counts.sum())
    if total == 0:
        return np.zeros((n, 3))
    dirs = random_unit_vectors(rng, total)
    owner = np.repeat(np.arange(n), counts)
    return np.column_stack([np.bincount(owner, weights=dirs[:, axis], minlength=n) for axis in range(3)])


def apply_recoil(ctx: StepContext, lo: int, hi: int) -> None:
    """Perturb velocities in ``[lo, hi)`` by the spontaneous-emission kicks."""
    if not ctx.recoil or not ctx.beams or hi <= lo:
        return
    store = ctx.store
    counts = store.photons[lo:hi]
    if not counts.any():
        return
    k = ctx.species.wavenumber[store.species[lo:hi]]
    v_recoil = HBAR * k / store.mass[lo:hi]
    kicks = emission_kicks(ctx.rng(STREAM_RECOIL, lo), counts)
    store.velocity[lo:hi] += v_recoil[:, None] * kicks
