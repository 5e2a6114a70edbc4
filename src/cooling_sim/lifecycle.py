# MIT License (see LICENSE)
"""
Atom removal.

Once per step, after integration, every atom position is tested against the
configured regions. Atoms that left all bounding regions, entered an
absorber or hit a detector are collected, together with atoms flagged by
numerical checks, and destroyed in a single batch at the end of the step.
"""
from __future__ import annotations
from dataclasses import dataclass, field
import logging

import numpy as np

from .store import EntityStore
from .volumes import Region, removal_mask

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Detection:
    """An atom captured by a detector region."""
    step: int
    detector: str
    atom_id: int
    position: tuple[float, float, float]
    velocity: tuple[float, float, float]


@dataclass
class SinkManager:
    """
    Evaluates removal criteria and records detector hits.

    Attributes:
        regions: Configured regions with their roles.
        record_detections: Keep a Detection record for every captured atom.
        detected: Detector name -> number of atoms captured so far.
        detections: Captured atom records (when enabled).
        removed: Atoms removed for leaving bounds or hitting absorbers/detectors.
    """
    regions: list[Region]
    record_detections: bool = True
    detected: dict[str, int] = field(default_factory=dict)
    detections: list[Detection] = field(default_factory=list)
    removed: int = 0

    def mark(self, store: EntityStore, step: int, skip: np.ndarray | None = None) -> np.ndarray:
        """
        Identifiers of atoms that must leave the simulation this step.

        Args:
            store: The entity store.
            step: Current step index.
            skip: Optional boolean row mask of atoms already scheduled for
                  removal for another reason; they are neither counted nor
                  reported to detectors.

        Does not modify the store; destruction happens in the caller's batch.
        """
        if not self.regions or len(store) == 0:
            return np.empty(0, dtype=np.int64)
        remove, hits = removal_mask(self.regions, store.position)
        if skip is not None:
            remove &= ~skip
            hits = {name: hit & ~skip for name, hit in hits.items()}
        for name, hit in hits.items():
            count = int(hit.sum())
            if count == 0:
                continue
            self.detected[name] = self.detected.get(name, 0) + count
            if self.record_detections:
                for row in np.flatnonzero(hit).tolist():
                    self.detections.append(Detection(
                        step=step,
                        detector=name,
                        atom_id=int(store.ids[row]),
                        position=tuple(store.position[row].tolist()),
                        velocity=tuple(store.velocity[row].tolist()),
                    ))
            logger.debug("Detector '%s' captured %d atoms at step %d", name, count, step)
        ids = store.ids[remove].copy()
        self.removed += int(ids.size)
        return ids
