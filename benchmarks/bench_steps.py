"""
Microbenchmark: time per step vs number of atoms and worker threads.
Run:
  python benchmarks/bench_steps.py
"""
import time
import numpy as np
from cooling_sim import AtomSpecies, OneShotSource, Simulation, SimulationConfig
from cooling_sim.fields import QuadrupoleField, molasses_beams
from cooling_sim.profiler import Profiler

def run(n: int, workers: int, steps: int = 200):
    prof = Profiler()
    rb = AtomSpecies.rubidium87()
    t = rb.transition
    config = SimulationConfig(
        timestep=1e-6,
        seed=12345,
        workers=workers,
        chunk_size=4096,
        beams=molasses_beams(t, -t.gamma, 1.0, waist=5e-3),
        magnetic_field=QuadrupoleField(0.1),
        sources=[OneShotSource(rb, number=n, size=1e-3, temperature=1e-3)],
    )

    with Simulation(config, profiler=prof) as sim:
        # warmup
        for _ in range(10):
            sim.step()
        prof.stats.clear()

        t0 = time.perf_counter()
        for _ in range(steps):
            sim.step()
        t1 = time.perf_counter()

    per_step = (t1 - t0) / steps
    return per_step, prof.stats.summary()

if __name__ == "__main__":
    for n in [1_000, 10_000, 100_000]:
        for workers in [1, 4]:
            per_step, summary = run(n, workers)
            print(f"N={n:7d} workers={workers}  step={1e3*per_step:8.3f} ms  atom-steps/s={n/per_step:10.3e}")
            # print per-stage cost
            for k in ["samples_fields", "accumulates_forces", "integrates", "evaluates_sinks_and_sources"]:
                if k in summary:
                    print(" ", k, f"{summary[k]['mean_ms']:.3f} ms")
            print()
