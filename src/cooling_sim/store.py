# MIT License (see LICENSE)
"""
Entity store holding every live atom.

Atoms are rows in a fixed set of dense component arrays (arena layout):

    position        (N, 3)  m
    velocity        (N, 3)  m/s
    force           (N, 3)  N, accumulated per step
    mass            (N,)    kg
    species         (N,)    index into the simulation's species table
    magnetic_moment (N,)    J/T
    field           (N, 3)  sampled magnetic field, T
    field_gradient  (N, 3)  sampled grad |B|, T/m
    intensity       (N, B)  sampled intensity of each cooling beam, W/m²
    scattering_rate (N, B)  photon scattering rate from each beam, 1/s
    photons         (N,)    photons scattered during the last step

Rows [0, len(store)) are live. Identifiers map to rows through a dictionary;
destroying an atom moves the last row into the hole (swap-remove), so rows
stay dense and systems can process contiguous ``[lo:hi]`` slices.

Allocation and destruction reallocate or reorder rows; they must only run at
stage barriers, never while a worker holds a slice.
"""
from __future__ import annotations

import logging
from typing import Iterable

import numpy as np

from .errors import InvalidEntity
from .util import f64

logger = logging.getLogger(__name__)

_MIN_CAPACITY = 64


class EntityStore:
    """
    Arena of atom components addressed by reusable integer identifiers.

    Args:
        n_beams: Number of cooling beams; sets the width of the per-beam
                 ``intensity`` and ``scattering_rate`` components.
        capacity: Initial row capacity. Grows by doubling.
    """

    def __init__(self, n_beams: int = 0, capacity: int = _MIN_CAPACITY) -> None:
        self.n_beams = int(n_beams)
        self._n = 0
        self._next_id = 0
        self._free_ids: list[int] = []
        self._slot_of: dict[int, int] = {}
        self._layout = {
            "position": ((3,), np.float64),
            "velocity": ((3,), np.float64),
            "force": ((3,), np.float64),
            "mass": ((), np.float64),
            "species": ((), np.int64),
            "magnetic_moment": ((), np.float64),
            "field": ((3,), np.float64),
            "field_gradient": ((3,), np.float64),
            "intensity": ((self.n_beams,), np.float64),
            "scattering_rate": ((self.n_beams,), np.float64),
            "photons": ((), np.int64),
        }
        self._arrays: dict[str, np.ndarray] = {}
        self._ids = np.empty(0, dtype=np.int64)
        self._reserve(max(int(capacity), _MIN_CAPACITY))

    # ------------------------------------------------------------------
    # Capacity
    # ------------------------------------------------------------------

    def _reserve(self, capacity: int) -> None:
        old = self._ids.shape[0]
        if capacity <= old:
            return
        for name, (tail, dtype) in self._layout.items():
            new = np.zeros((capacity,) + tail, dtype=dtype)
            if name in self._arrays:
                new[: self._n] = self._arrays[name][: self._n]
            self._arrays[name] = new
        ids = np.full(capacity, -1, dtype=np.int64)
        ids[: self._n] = self._ids[: self._n]
        self._ids = ids
        if old:
            logger.debug("Entity store grown from %d to %d rows", old, capacity)

    @property
    def capacity(self) -> int:
        return self._ids.shape[0]

    def __len__(self) -> int:
        return self._n

    # ------------------------------------------------------------------
    # Component views (live rows only)
    # ------------------------------------------------------------------

    def component(self, name: str) -> np.ndarray:
        """Dense view of a component over the live rows."""
        return self._arrays[name][: self._n]

    @property
    def ids(self) -> np.ndarray:
        return self._ids[: self._n]

    @property
    def position(self) -> np.ndarray:
        return self._arrays["position"][: self._n]

    @property
    def velocity(self) -> np.ndarray:
        return self._arrays["velocity"][: self._n]

    @property
    def force(self) -> np.ndarray:
        return self._arrays["force"][: self._n]

    @property
    def mass(self) -> np.ndarray:
        return self._arrays["mass"][: self._n]

    @property
    def species(self) -> np.ndarray:
        return self._arrays["species"][: self._n]

    @property
    def magnetic_moment(self) -> np.ndarray:
        return self._arrays["magnetic_moment"][: self._n]

    @property
    def field(self) -> np.ndarray:
        return self._arrays["field"][: self._n]

    @property
    def field_gradient(self) -> np.ndarray:
        return self._arrays["field_gradient"][: self._n]

    @property
    def intensity(self) -> np.ndarray:
        return self._arrays["intensity"][: self._n]

    @property
    def scattering_rate(self) -> np.ndarray:
        return self._arrays["scattering_rate"][: self._n]

    @property
    def photons(self) -> np.ndarray:
        return self._arrays["photons"][: self._n]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def allocate(
        self,
        positions,
        velocities,
        masses,
        species: int | Iterable[int] = 0,
        magnetic_moment: float | Iterable[float] = 0.0,
    ) -> np.ndarray:
        """
        Create atoms in bulk.

        Args:
            positions: (k, 3) initial positions.
            velocities: (k, 3) initial velocities.
            masses: (k,) masses in kg, or a scalar applied to all. Must be > 0.
            species: Species index (scalar or per atom).
            magnetic_moment: Effective magnetic moment (scalar or per atom).

        Returns:
            Array of the k new identifiers, valid until the atom is destroyed.

        Raises:
            ValueError: On shape mismatch or non-positive mass.
        """
        pos = f64(positions).reshape(-1, 3)
        vel = f64(velocities).reshape(-1, 3)
        k = pos.shape[0]
        if vel.shape[0] != k:
            raise ValueError(f"got {k} positions but {vel.shape[0]} velocities")
        m = np.broadcast_to(f64(masses), (k,))
        if k and not np.all(m > 0):
            raise ValueError("atom mass must be positive")
        if k == 0:
            return np.empty(0, dtype=np.int64)

        if self._n + k > self.capacity:
            cap = self.capacity
            while cap < self._n + k:
                cap *= 2
            self._reserve(cap)

        new_ids = np.empty(k, dtype=np.int64)
        reuse = min(k, len(self._free_ids))
        for i in range(reuse):
            new_ids[i] = self._free_ids.pop()
        new_ids[reuse:] = np.arange(self._next_id, self._next_id + (k - reuse))
        self._next_id += k - reuse

        lo, hi = self._n, self._n + k
        for name, (tail, dtype) in self._layout.items():
            self._arrays[name][lo:hi] = 0
        self._arrays["position"][lo:hi] = pos
        self._arrays["velocity"][lo:hi] = vel
        self._arrays["mass"][lo:hi] = m
        self._arrays["species"][lo:hi] = np.broadcast_to(np.asarray(species, dtype=np.int64), (k,))
        self._arrays["magnetic_moment"][lo:hi] = np.broadcast_to(f64(magnetic_moment), (k,))
        self._ids[lo:hi] = new_ids
        for slot, atom_id in zip(range(lo, hi), new_ids.tolist()):
            self._slot_of[atom_id] = slot
        self._n = hi
        return new_ids

    def slots(self, ids) -> np.ndarray:
        """
        Row indices of the given identifiers.

        Raises:
            InvalidEntity: If any identifier is not alive.
        """
        ids = np.atleast_1d(np.asarray(ids, dtype=np.int64))
        out = np.empty(ids.shape[0], dtype=np.int64)
        missing = []
        for i, atom_id in enumerate(ids.tolist()):
            slot = self._slot_of.get(atom_id)
            if slot is None:
                missing.append(atom_id)
            else:
                out[i] = slot
        if missing:
            raise InvalidEntity(missing)
        return out

    def is_alive(self, atom_id: int) -> bool:
        return int(atom_id) in self._slot_of

    def destroy(self, ids) -> int:
        """
        Destroy atoms in bulk. Identifiers become available for reuse.

        Returns:
            Number of atoms destroyed.

        Raises:
            InvalidEntity: If any identifier is not alive. Nothing is destroyed
                           in that case.
        """
        ids = np.unique(np.atleast_1d(np.asarray(ids, dtype=np.int64)))
        if ids.size == 0:
            return 0
        slots = self.slots(ids)
        # Descending order keeps not-yet-processed slots below the moving tail
        for slot in np.sort(slots)[::-1].tolist():
            last = self._n - 1
            dead_id = int(self._ids[slot])
            del self._slot_of[dead_id]
            self._free_ids.append(dead_id)
            if slot != last:
                for arr in self._arrays.values():
                    arr[slot] = arr[last]
                moved_id = int(self._ids[last])
                self._ids[slot] = moved_id
                self._slot_of[moved_id] = slot
            self._ids[last] = -1
            self._n = last
        return int(ids.size)

    def clear_forces(self, lo: int = 0, hi: int | None = None) -> None:
        hi = self._n if hi is None else hi
        self._arrays["force"][lo:hi] = 0.0
