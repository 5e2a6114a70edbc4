# MIT License (see LICENSE)
"""
Read-only views of the atom ensemble for output collaborators.

The scheduler builds an AtomSnapshot between steps and hands it to a
SnapshotSink. Sinks never run inside a pipeline stage, so they may block on
I/O freely. File formats live outside the core; the sinks here cover
testing and debugging.

Usage:
    sink = BufferedSink()
    sim.run(steps=100, sink=sink, snapshot_every=10)
    for snap in sink.frames:
        for atom_id, pos, vel, internal in snap.records():
            ...
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, TextIO
import sys

import numpy as np

from .store import EntityStore


def _frozen(a: np.ndarray) -> np.ndarray:
    a = np.array(a, copy=True)
    a.flags.writeable = False
    return a


@dataclass(frozen=True, eq=False)
class AtomSnapshot:
    """
    State of every live atom at the end of a step, ordered by identifier.

    Attributes:
        step: Number of completed steps.
        time: Simulation time, s.
        ids: (N,) atom identifiers, ascending.
        positions: (N, 3) positions.
        velocities: (N, 3) velocities.
        internal: Per-atom internal state arrays: 'scattering_rate' (total
                  over beams, 1/s), 'photons', 'species', 'magnetic_moment'.
    """
    step: int
    time: float
    ids: np.ndarray
    positions: np.ndarray
    velocities: np.ndarray
    internal: dict[str, np.ndarray]

    @classmethod
    def from_store(cls, store: EntityStore, step: int, time: float) -> "AtomSnapshot":
        order = np.argsort(store.ids, kind="stable")
        rate = store.scattering_rate.sum(axis=1) if store.n_beams else np.zeros(len(store))
        internal = {
            "scattering_rate": _frozen(rate[order]),
            "photons": _frozen(store.photons[order]),
            "species": _frozen(store.species[order]),
            "magnetic_moment": _frozen(store.magnetic_moment[order]),
        }
        return cls(
            step=step,
            time=time,
            ids=_frozen(store.ids[order]),
            positions=_frozen(store.position[order]),
            velocities=_frozen(store.velocity[order]),
            internal=internal,
        )

    def __len__(self) -> int:
        return int(self.ids.shape[0])

    def records(self) -> Iterator[tuple[int, np.ndarray, np.ndarray, dict[str, float]]]:
        """Yield (id, position, velocity, internal) for every atom in id order."""
        for i in range(len(self)):
            internal = {k: v[i].item() for k, v in self.internal.items()}
            yield int(self.ids[i]), self.positions[i], self.velocities[i], internal


class SnapshotSink(ABC):
    """
    Consumer of snapshots.

    Subclasses serialise or collect snapshots. ``close`` is called once
    when the run ends.
    """

    @abstractmethod
    def write(self, snapshot: AtomSnapshot) -> None:
        ...

    def close(self) -> None:
        pass


class NullSink(SnapshotSink):
    """Discards every snapshot."""

    def write(self, snapshot: AtomSnapshot) -> None:
        pass


class BufferedSink(SnapshotSink):
    """Keeps snapshots in memory."""

    def __init__(self) -> None:
        self.frames: list[AtomSnapshot] = []

    def write(self, snapshot: AtomSnapshot) -> None:
        self.frames.append(snapshot)

    def clear(self) -> None:
        self.frames.clear()


class TextSink(SnapshotSink):
    """
    Human-readable dump to a text stream (stdout by default).

    Output:
        === Step 10 t=1.000e-05 atoms=2 ===
        [0] x=(0.000e+00, 1.000e-03, 0.000e+00) v=(1.20e-01, 0.00e+00, 0.00e+00) R=1.23e+06
    """

    def __init__(self, output: TextIO | None = None, verbose: bool = True) -> None:
        self.output = output or sys.stdout
        self.verbose = verbose

    def write(self, snapshot: AtomSnapshot) -> None:
        out = self.output
        out.write(f"=== Step {snapshot.step} t={snapshot.time:.3e} atoms={len(snapshot)} ===\n")
        if self.verbose:
            for atom_id, pos, vel, internal in snapshot.records():
                out.write(
                    f"[{atom_id}] x=({pos[0]:.3e}, {pos[1]:.3e}, {pos[2]:.3e})"
                    f" v=({vel[0]:.2e}, {vel[1]:.2e}, {vel[2]:.2e})"
                    f" R={internal['scattering_rate']:.2e}\n"
                )
        out.flush()
