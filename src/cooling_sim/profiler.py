# MIT License (see LICENSE)
"""
Stage timing for the simulation pipeline.

The scheduler wraps every pipeline stage in ``profiler.section(<stage>)``
when a Profiler is attached, so the cost of field sampling, force
accumulation, integration and lifecycle handling can be compared.

Example:
    profiler = Profiler()
    sim = Simulation(config, profiler=profiler)
    sim.run(steps=1000)
    for stage, row in profiler.stats.summary().items():
        print(stage, row["mean_ms"])
"""
from __future__ import annotations
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator


@dataclass
class ProfileStats:
    """Raw timing samples per stage name, in seconds."""
    samples: dict[str, list[float]] = field(default_factory=dict)

    def add(self, name: str, dt: float) -> None:
        self.samples.setdefault(name, []).append(dt)

    def clear(self) -> None:
        self.samples.clear()

    def summary(self) -> dict[str, dict[str, float]]:
        """
        Summary statistics for every recorded stage.

        Returns:
            Dict mapping stage name to a dict with keys
            'n', 'total_ms', 'mean_ms' and 'max_ms'.
        """
        out = {}
        for name, times in self.samples.items():
            n = len(times)
            total = sum(times)
            out[name] = {
                "n": n,
                "total_ms": 1e3 * total,
                "mean_ms": 1e3 * total / n,
                "max_ms": 1e3 * max(times),
            }
        return out


class Profiler:
    """Context-manager based timer keyed by stage name."""

    def __init__(self) -> None:
        self.stats = ProfileStats()

    @contextmanager
    def section(self, name: str) -> Iterator[None]:
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self.stats.add(name, time.perf_counter() - t0)
