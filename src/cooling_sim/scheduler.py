# MIT License (see LICENSE)
"""
The simulation pipeline and run loop.

The Simulation class is the world container and controller. It owns:
- The entity store with every live atom.
- The source and sink managers.
- The simulation clock.
- A fixed-size worker pool shared by all steps.

Each step runs five stages with a full barrier between them:
    1. SAMPLES_FIELDS: sources create this step's atoms, then magnetic
       field, grad |B| and beam intensities are sampled.
    2. ACCUMULATES_FORCES: Doppler, magnetic, dipole and gravity forces,
       then stochastic recoil kicks.
    3. INTEGRATES: position/velocity update, force reset, finite checks.
    4. EVALUATES_SINKS_AND_SOURCES: batch removal by bounding, absorbing
       and detecting regions and of non-finite atoms.
    5. ADVANCES_CLOCK.

A snapshot taken between steps therefore holds only atoms that survived
removal.

Within stages 1-3 the atoms are cut into fixed-size chunks and each chunk is
processed by one worker through every system of the stage, so no two
workers ever write the same atom. Chunking does not depend on the number of
workers and every chunk draws from its own seeded random stream, so a run
is reproducible for a given seed whatever the pool size.

Structure:
    - User builds a SimulationConfig.
    - User creates a Simulation and calls run() (or step() in a loop).
    - Output collaborators read snapshot() or receive snapshots via a sink.
"""
from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator
import logging
import threading
import time

import numpy as np

from .config import SimulationConfig
from .core.context import SpeciesTable, StepContext
from .core.forces import FORCE_SYSTEMS, sample_fields
from .core.integrators import integrate
from .core.recoil import apply_recoil
from .errors import ConfigurationError, InvalidEntity, NumericalError
from .lifecycle import SinkManager
from .profiler import Profiler
from .snapshot import AtomSnapshot, SnapshotSink
from .sources import SourceManager
from .store import EntityStore
from .types import AtomSpecies
from .util import finite_rows, row_norms

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    SAMPLES_FIELDS = "samples_fields"
    ACCUMULATES_FORCES = "accumulates_forces"
    INTEGRATES = "integrates"
    EVALUATES_SINKS_AND_SOURCES = "evaluates_sinks_and_sources"
    ADVANCES_CLOCK = "advances_clock"


class WorkerPool:
    """
    Fixed-size thread pool for data-parallel dispatch over atom ranges.

    ``map_ranges`` returns only when every chunk has finished, which makes
    each call a barrier. Exceptions raised by a chunk are re-raised in the
    caller after all chunks complete.
    """

    def __init__(self, workers: int = 1) -> None:
        self.workers = int(workers)
        self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="cooling-sim") \
            if self.workers > 1 else None

    @staticmethod
    def chunks(n: int, chunk_size: int) -> list[tuple[int, int]]:
        return [(lo, min(lo + chunk_size, n)) for lo in range(0, n, chunk_size)]

    def map_ranges(self, fn: Callable[[int, int], None], n: int, chunk_size: int) -> None:
        ranges = self.chunks(n, chunk_size)
        if self._executor is None or len(ranges) <= 1:
            for lo, hi in ranges:
                fn(lo, hi)
            return
        futures = [self._executor.submit(fn, lo, hi) for lo, hi in ranges]
        errors = [f.exception() for f in futures]
        for exc in errors:
            if exc is not None:
                raise exc

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None


@dataclass
class SimulationClock:
    """Monotonic step counter and simulation time."""
    dt: float
    step: int = 0
    time: float = 0.0

    def advance(self, dt: float) -> None:
        self.step += 1
        self.time += dt


@dataclass(frozen=True)
class NumericalEvent:
    """An atom removed because its state became non-finite."""
    step: int
    atom_id: int
    stage: str


@dataclass
class RunReport:
    """
    Outcome of ``Simulation.run``.

    Attributes:
        final_atom_count: Live atoms at the end of the run.
        steps_executed: Steps completed during this run call.
        status: "completed", "stopped" (request_stop) or "numerical_error".
        error_step: Step index of the fatal error, if any.
        error: Message of the fatal error, if any.
        time: Simulation time at the end of the run, s.
        emitted: Atoms created by sources so far.
        removed: Atoms removed by bounds, absorbers and detectors so far.
        detected: Detector name -> atoms captured so far.
        numerical_errors: Atoms removed for non-finite state so far.
        wall_time: Wall-clock duration of this run call, s.
    """
    final_atom_count: int
    steps_executed: int
    status: str = "completed"
    error_step: int | None = None
    error: str | None = None
    time: float = 0.0
    emitted: int = 0
    removed: int = 0
    detected: dict[str, int] = field(default_factory=dict)
    numerical_errors: int = 0
    wall_time: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status != "numerical_error"


class Simulation:
    """
    Laser-cooling simulation built from an immutable SimulationConfig.

    Args:
        config: Validated configuration.
        profiler: Optional Profiler timing every stage.
    """

    def __init__(self, config: SimulationConfig, profiler: Profiler | None = None) -> None:
        self.config = config
        self.profiler = profiler
        self.species = config.all_species()
        self.species_index = {sp: i for i, sp in enumerate(self.species)}
        self._table = SpeciesTable.build(self.species)
        self._gravity = np.asarray(config.gravity, dtype=np.float64)

        self.store = EntityStore(n_beams=len(config.beams))
        self.sources = SourceManager(config.sources, self.species_index, config.max_atoms)
        self.sinks = SinkManager(list(config.regions))
        self.clock = SimulationClock(dt=config.timestep)
        self.pool = WorkerPool(config.workers)

        self.numerical_events: list[NumericalEvent] = []
        self.stage: Stage | None = None
        self._stop = threading.Event()
        self._pending = np.zeros(0, dtype=bool)

        logger.info(
            "Simulation configured: %d sources, %d beams, %d dipole beams, %d regions, %d workers",
            len(config.sources), len(config.beams), len(config.dipole_beams), len(config.regions), config.workers,
        )

    # ------------------------------------------------------------------
    # Setup helpers
    # ------------------------------------------------------------------

    def add_atoms(self, positions, velocities, species: AtomSpecies, magnetic_moment: float | None = None) -> np.ndarray:
        """
        Create atoms directly, outside of any source. Call between steps only.

        Args:
            positions: (k, 3) positions.
            velocities: (k, 3) velocities.
            species: A species registered in the config (its own or a source's).
            magnetic_moment: Overrides the species' moment.

        Returns:
            Identifiers of the new atoms.
        """
        if species not in self.species_index:
            raise ConfigurationError(f"species '{species.name}' is not registered in the config", component="species")
        moment = species.magnetic_moment if magnetic_moment is None else magnetic_moment
        return self.store.allocate(
            positions, velocities, species.mass_kg,
            species=self.species_index[species], magnetic_moment=moment,
        )

    def remove_atoms(self, ids) -> int:
        """Destroy atoms by identifier between steps. Raises InvalidEntity for unknown ids."""
        return self.store.destroy(ids)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    @contextmanager
    def _enter(self, stage: Stage) -> Iterator[None]:
        self.stage = stage
        with self.profiler.section(stage.value) if self.profiler else nullcontext():
            yield

    def _choose_dt(self) -> float:
        cfg = self.config
        dt = cfg.timestep
        if cfg.adaptive_dt and len(self.store):
            vmax = float(np.max(row_norms(self.store.velocity)))
            if not np.isfinite(vmax):
                # Non-finite atoms are removed at integration; ignore them here
                speeds = row_norms(self.store.velocity)
                finite = speeds[np.isfinite(speeds)]
                vmax = float(finite.max()) if finite.size else 0.0
            if vmax > 0:
                dt_min = cfg.dt_min if cfg.dt_min is not None else 1e-3 * cfg.timestep
                dt = min(cfg.timestep, max(dt_min, cfg.max_displacement / vmax))
        if not (np.isfinite(dt) and dt > 0):
            raise NumericalError(f"invalid timestep {dt}", step=self.clock.step, stage="advances_clock")
        return dt

    def _context(self, dt: float) -> StepContext:
        cfg = self.config
        return StepContext(
            store=self.store,
            species=self._table,
            beams=cfg.beams,
            dipole_beams=cfg.dipole_beams,
            magnetic_field=cfg.magnetic_field,
            gravity=self._gravity,
            dt=dt,
            step=self.clock.step,
            seed=int(cfg.seed),
            recoil=cfg.recoil,
            zeeman_mode=cfg.zeeman_mode,
            magnetic_force=bool(len(self.store)) and bool(np.any(self.store.magnetic_moment != 0.0)),
        )

    def _flag_non_finite(self, bad: np.ndarray, stage: Stage) -> None:
        """Record and schedule removal of atoms whose rows in ``bad`` are True."""
        new = bad & ~self._pending
        if not new.any():
            return
        step = self.clock.step
        ids = self.store.ids[new]
        for atom_id in ids.tolist():
            self.numerical_events.append(NumericalEvent(step=step, atom_id=int(atom_id), stage=stage.value))
        logger.warning("Step %d: %d atom(s) with non-finite state in stage %s removed (ids %s)",
                       step, ids.size, stage.value, ids[:8].tolist())
        if self.config.strict_numerics:
            raise NumericalError(
                f"non-finite state for atom {int(ids[0])} in stage {stage.value}",
                step=step, atom_id=int(ids[0]), stage=stage.value,
            )
        self._pending |= new

    def step(self) -> None:
        """
        Advance the simulation by one step.

        Raises:
            NumericalError: When the step cannot be completed (invalid
                            timestep, or any non-finite atom under
                            ``strict_numerics``).
            InvalidEntity: On store misuse; indicates a bug.
        """
        cfg = self.config
        chunk = cfg.chunk_size

        with self._enter(Stage.SAMPLES_FIELDS):
            # Serial point: this step's atoms enter before any per-atom work
            created = self.sources.emit(self.store, self.clock.step, int(cfg.seed))
            dt = self._choose_dt()
            ctx = self._context(dt)
            n = len(self.store)
            self._pending = np.zeros(n, dtype=bool)
            self.pool.map_ranges(lambda lo, hi: sample_fields(ctx, lo, hi), n, chunk)

        def accumulate(lo: int, hi: int) -> None:
            for system in FORCE_SYSTEMS:
                system(ctx, lo, hi)
            apply_recoil(ctx, lo, hi)

        with self._enter(Stage.ACCUMULATES_FORCES):
            self.pool.map_ranges(accumulate, n, chunk)
            if n:
                self._flag_non_finite(~finite_rows(self.store.force, self.store.velocity), Stage.ACCUMULATES_FORCES)

        scheme = cfg.integrator
        with self._enter(Stage.INTEGRATES):
            self.pool.map_ranges(lambda lo, hi: integrate(ctx, lo, hi, scheme), n, chunk)
            if n:
                self._flag_non_finite(~finite_rows(self.store.position, self.store.velocity), Stage.INTEGRATES)

        with self._enter(Stage.EVALUATES_SINKS_AND_SOURCES):
            doomed = self.sinks.mark(self.store, self.clock.step, skip=self._pending)
            if self._pending.any():
                doomed = np.concatenate((doomed, self.store.ids[self._pending]))
            if doomed.size:
                self.store.destroy(doomed)
            self._pending = np.zeros(0, dtype=bool)
            if doomed.size or created:
                logger.debug("Step %d: removed %d, created %d, live %d",
                             self.clock.step, doomed.size, created, len(self.store))

        with self._enter(Stage.ADVANCES_CLOCK):
            self.clock.advance(dt)
        self.stage = None

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    def request_stop(self) -> None:
        """Ask a running ``run`` to stop after the current step completes."""
        self._stop.set()

    def snapshot(self) -> AtomSnapshot:
        """Read-only state of all live atoms at the current step boundary."""
        return AtomSnapshot.from_store(self.store, self.clock.step, self.clock.time)

    def run(
        self,
        steps: int | None = None,
        until_time: float | None = None,
        wall_clock: float | None = None,
        sink: SnapshotSink | None = None,
        snapshot_every: int | None = None,
    ) -> RunReport:
        """
        Step until a stopping condition is met.

        Conditions default to the config's ``steps``, ``until_time`` and
        ``wall_clock``; the first one reached ends the run. Snapshots go to
        ``sink`` every ``snapshot_every`` steps and once at the end.

        Returns:
            RunReport describing the outcome.

        Raises:
            ConfigurationError: If no stopping condition is given.
            InvalidEntity: Store misuse during a step (aborts the run).
        """
        cfg = self.config
        steps = cfg.steps if steps is None else steps
        until_time = cfg.until_time if until_time is None else until_time
        wall_clock = cfg.wall_clock if wall_clock is None else wall_clock
        if steps is None and until_time is None and wall_clock is None:
            raise ConfigurationError("run needs steps, until_time or wall_clock", component="run")
        if snapshot_every is not None and snapshot_every < 1:
            raise ConfigurationError("snapshot_every must be >= 1", component="run")

        self._stop.clear()
        start_step = self.clock.step
        t0 = time.perf_counter()
        status, error, error_step = "completed", None, None
        last_written = None
        logger.info("Run started at step %d with %d atoms", start_step, len(self.store))

        try:
            while True:
                done = self.clock.step - start_step
                if steps is not None and done >= steps:
                    break
                if until_time is not None and self.clock.time >= until_time * (1.0 - 1e-12):
                    break
                if wall_clock is not None and time.perf_counter() - t0 >= wall_clock:
                    break
                if self._stop.is_set():
                    status = "stopped"
                    break
                self.step()
                if sink is not None and snapshot_every and self.clock.step % snapshot_every == 0:
                    sink.write(self.snapshot())
                    last_written = self.clock.step
        except NumericalError as exc:
            status, error = "numerical_error", str(exc)
            error_step = exc.step if exc.step is not None else self.clock.step
            logger.error("Run aborted by numerical error at step %d: %s", error_step, exc)
        except InvalidEntity as exc:
            logger.error("Run aborted at step %d in stage %s: %s",
                         self.clock.step, self.stage.value if self.stage else "-", exc)
            raise
        finally:
            if sink is not None:
                if last_written != self.clock.step:
                    sink.write(self.snapshot())
                sink.close()

        report = RunReport(
            final_atom_count=len(self.store),
            steps_executed=self.clock.step - start_step,
            status=status,
            error_step=error_step,
            error=error,
            time=self.clock.time,
            emitted=self.sources.emitted,
            removed=self.sinks.removed,
            detected=dict(self.sinks.detected),
            numerical_errors=len(self.numerical_events),
            wall_time=time.perf_counter() - t0,
        )
        logger.info("Run finished (%s): %d steps, %d atoms, t=%.3e s",
                    report.status, report.steps_executed, report.final_atom_count, report.time)
        return report

    def close(self) -> None:
        """Shut down the worker pool."""
        self.pool.shutdown()

    def __enter__(self) -> "Simulation":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
