# MIT License (see LICENSE)
"""
Atom sources.

A source decides how many atoms to create each step (its EmissionRate) and
samples their initial positions and velocities:

- Oven: effusive beam from a circular aperture. Speeds follow the flux
  weighted Maxwell-Boltzmann distribution f(v) ~ v³ exp(-m v² / 2 k_B T),
  directions are cosine weighted and truncated to a collimation cone.
- SurfaceSource: atoms leaving a rectangular surface patch with a Lambert
  (cosine) angular distribution and the same flux-weighted speeds.
- OneShotSource: a thermal Gaussian cloud created once.

The SourceManager owns the per-run emission state and enforces the global
atom cap.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import logging
import warnings

import numpy as np

from .constants import K_B
from .errors import ConfigurationError, ResourceExhaustion
from .store import EntityStore
from .types import AtomSpecies
from .util import orthonormal_basis, stream_rng, unit, vec3

logger = logging.getLogger(__name__)

# Random stream offset for sources; source i uses stream _SOURCE_STREAM + i
_SOURCE_STREAM = 100
_MAX_REJECTION_ROUNDS = 64


@dataclass(frozen=True)
class EmissionRate:
    """
    Number of atoms created per step.

    Attributes:
        rate: Mean atoms per step, >= 0.
        poisson: Draw the count from Poisson(rate). Otherwise the count is
                 deterministic, with the fractional part carried over to
                 later steps (rate 0.25 emits one atom every 4 steps).
    """
    rate: float
    poisson: bool = False

    def __post_init__(self) -> None:
        if not (np.isfinite(self.rate) and self.rate >= 0):
            raise ConfigurationError(f"emission rate must be non-negative, got {self.rate}", component="EmissionRate")

    def draw(self, rng: np.random.Generator, carry: float = 0.0) -> tuple[int, float]:
        """
        Number of atoms to emit this step.

        Returns:
            Tuple (count, new_carry).
        """
        if self.poisson:
            return int(rng.poisson(self.rate)), carry
        total = self.rate + carry
        count = int(np.floor(total))
        return count, total - count


def flux_weighted_speeds(rng: np.random.Generator, n: int, temperature: float, mass: float,
                         max_speed: float | None = None) -> np.ndarray:
    """
    Speeds from f(v) ~ v³ exp(-m v² / 2 k_B T).

    m v² / 2 k_B T is Gamma(2, 1) distributed, so v = sqrt(2 k_B T X / m).
    Speeds above ``max_speed`` are redrawn.
    """
    scale = 2.0 * K_B * temperature / mass
    speeds = np.sqrt(scale * rng.gamma(2.0, 1.0, n))
    if max_speed is not None:
        for _ in range(_MAX_REJECTION_ROUNDS):
            bad = speeds > max_speed
            if not bad.any():
                break
            speeds[bad] = np.sqrt(scale * rng.gamma(2.0, 1.0, int(bad.sum())))
        else:
            speeds = np.minimum(speeds, max_speed)
    return speeds


def cosine_cone_directions(rng: np.random.Generator, n: int, axis: np.ndarray, max_angle: float) -> np.ndarray:
    """
    Directions with density ~ cos(theta) about ``axis``, theta <= max_angle.

    For the cosine-weighted cap, sin² theta is uniform on [0, sin² max_angle].
    """
    s2max = np.sin(min(max_angle, np.pi / 2)) ** 2
    sin_t = np.sqrt(rng.uniform(0.0, s2max, n))
    cos_t = np.sqrt(1.0 - sin_t * sin_t)
    phi = rng.uniform(0.0, 2.0 * np.pi, n)
    e1, e2 = orthonormal_basis(axis)
    return (cos_t[:, None] * axis
            + (sin_t * np.cos(phi))[:, None] * e1
            + (sin_t * np.sin(phi))[:, None] * e2)


@dataclass(frozen=True)
class Source(ABC):
    """
    Base class for sources.

    Attributes:
        species: Species of the emitted atoms.
        rate: Emission rate.
        start_step: First step at which the source emits.
        stop_step: Step at which the source stops emitting (exclusive), or None.
        name: Label used in logs.
    """
    species: AtomSpecies
    rate: EmissionRate = field(default_factory=lambda: EmissionRate(0.0))
    start_step: int = 0
    stop_step: int | None = None
    name: str = ""

    def active(self, step: int) -> bool:
        if step < self.start_step:
            return False
        return self.stop_step is None or step < self.stop_step

    def emission_count(self, step: int, rng: np.random.Generator, carry: float) -> tuple[int, float]:
        if not self.active(step):
            return 0, carry
        return self.rate.draw(rng, carry)

    @abstractmethod
    def sample(self, rng: np.random.Generator, n: int) -> tuple[np.ndarray, np.ndarray]:
        """Initial (positions, velocities) for n new atoms, each (n, 3)."""
        ...


@dataclass(frozen=True)
class Oven(Source):
    """
    Effusive oven.

    Attributes:
        position: Center of the aperture.
        direction: Beam axis.
        temperature: Oven temperature, K. Ignored when ``speed`` is set.
        aperture_radius: Radius of the circular exit aperture.
        max_angle: Collimation half-angle, rad (0 = perfectly collimated).
        speed: Fixed emission speed instead of a thermal distribution.
        max_speed: Upper speed cut-off for thermal speeds.
    """
    position: tuple[float, float, float] = (0.0, 0.0, 0.0)
    direction: tuple[float, float, float] = (1.0, 0.0, 0.0)
    temperature: float = 0.0
    aperture_radius: float = 0.0
    max_angle: float = 0.0
    speed: float | None = None
    max_speed: float | None = None

    def __post_init__(self) -> None:
        try:
            pos = vec3(self.position, "position")
            d = vec3(self.direction, "direction")
        except ValueError as exc:
            raise ConfigurationError(str(exc), component="Oven") from exc
        if np.linalg.norm(d) == 0:
            raise ConfigurationError("direction must be non-zero", component="Oven")
        if self.speed is None and not self.temperature > 0:
            raise ConfigurationError("oven needs a positive temperature or a fixed speed", component="Oven")
        if self.speed is not None and self.speed < 0:
            raise ConfigurationError("speed must be non-negative", component="Oven")
        if self.aperture_radius < 0 or not (0 <= self.max_angle <= np.pi / 2):
            raise ConfigurationError("aperture_radius must be >= 0 and max_angle in [0, pi/2]", component="Oven")
        object.__setattr__(self, "position", tuple(pos.tolist()))
        object.__setattr__(self, "direction", tuple(unit(d).tolist()))

    def sample(self, rng: np.random.Generator, n: int) -> tuple[np.ndarray, np.ndarray]:
        axis = np.asarray(self.direction)
        e1, e2 = orthonormal_basis(axis)
        r = self.aperture_radius * np.sqrt(rng.uniform(0.0, 1.0, n))
        phi = rng.uniform(0.0, 2.0 * np.pi, n)
        positions = (np.asarray(self.position)
                     + (r * np.cos(phi))[:, None] * e1
                     + (r * np.sin(phi))[:, None] * e2)

        if self.speed is not None:
            speeds = np.full(n, float(self.speed))
        else:
            speeds = flux_weighted_speeds(rng, n, self.temperature, self.species.mass_kg, self.max_speed)
        directions = cosine_cone_directions(rng, n, axis, self.max_angle)
        return positions, speeds[:, None] * directions


@dataclass(frozen=True)
class SurfaceSource(Source):
    """
    Atoms desorbing from a rectangular surface patch.

    Attributes:
        center: Center of the patch.
        normal: Outward surface normal; atoms leave along this side.
        half_size: Half widths of the patch along its two in-plane axes.
        temperature: Surface temperature, K.
    """
    center: tuple[float, float, float] = (0.0, 0.0, 0.0)
    normal: tuple[float, float, float] = (0.0, 0.0, 1.0)
    half_size: tuple[float, float] = (0.0, 0.0)
    temperature: float = 300.0

    def __post_init__(self) -> None:
        try:
            c = vec3(self.center, "center")
            nrm = vec3(self.normal, "normal")
        except ValueError as exc:
            raise ConfigurationError(str(exc), component="SurfaceSource") from exc
        if np.linalg.norm(nrm) == 0:
            raise ConfigurationError("normal must be non-zero", component="SurfaceSource")
        if not self.temperature > 0:
            raise ConfigurationError("temperature must be positive", component="SurfaceSource")
        if len(self.half_size) != 2 or min(self.half_size) < 0:
            raise ConfigurationError("half_size must be two non-negative numbers", component="SurfaceSource")
        object.__setattr__(self, "center", tuple(c.tolist()))
        object.__setattr__(self, "normal", tuple(unit(nrm).tolist()))
        object.__setattr__(self, "half_size", tuple(float(h) for h in self.half_size))

    def sample(self, rng: np.random.Generator, n: int) -> tuple[np.ndarray, np.ndarray]:
        normal = np.asarray(self.normal)
        e1, e2 = orthonormal_basis(normal)
        hu, hv = self.half_size
        u = rng.uniform(-hu, hu, n) if hu > 0 else np.zeros(n)
        v = rng.uniform(-hv, hv, n) if hv > 0 else np.zeros(n)
        positions = np.asarray(self.center) + u[:, None] * e1 + v[:, None] * e2
        speeds = flux_weighted_speeds(rng, n, self.temperature, self.species.mass_kg)
        directions = cosine_cone_directions(rng, n, normal, np.pi / 2)
        return positions, speeds[:, None] * directions


@dataclass(frozen=True)
class OneShotSource(Source):
    """
    Thermal cloud created once at ``start_step``.

    Attributes:
        number: Number of atoms to create.
        center: Cloud center.
        size: Gaussian rms radius along each axis (scalar or 3 values).
        temperature: Cloud temperature, K; 0 gives atoms at rest.
        mean_velocity: Bulk velocity of the cloud.
    """
    number: int = 0
    center: tuple[float, float, float] = (0.0, 0.0, 0.0)
    size: float | tuple[float, float, float] = 0.0
    temperature: float = 0.0
    mean_velocity: tuple[float, float, float] = (0.0, 0.0, 0.0)

    def __post_init__(self) -> None:
        try:
            center = vec3(self.center, "center")
            mean_velocity = vec3(self.mean_velocity, "mean_velocity")
            size = np.broadcast_to(np.asarray(self.size, dtype=np.float64), (3,))
        except ValueError as exc:
            raise ConfigurationError(str(exc), component="OneShotSource") from exc
        if self.number < 0 or self.temperature < 0 or np.any(size < 0):
            raise ConfigurationError("number, size and temperature must be non-negative", component="OneShotSource")
        object.__setattr__(self, "center", tuple(center.tolist()))
        object.__setattr__(self, "mean_velocity", tuple(mean_velocity.tolist()))

    def emission_count(self, step: int, rng: np.random.Generator, carry: float) -> tuple[int, float]:
        if step != self.start_step or not self.active(step):
            return 0, carry
        return int(self.number), carry

    def sample(self, rng: np.random.Generator, n: int) -> tuple[np.ndarray, np.ndarray]:
        size = np.broadcast_to(np.asarray(self.size, dtype=np.float64), (3,))
        positions = np.asarray(self.center, dtype=np.float64) + rng.normal(0.0, 1.0, (n, 3)) * size
        sigma_v = np.sqrt(K_B * self.temperature / self.species.mass_kg) if self.temperature > 0 else 0.0
        velocities = np.asarray(self.mean_velocity, dtype=np.float64) + rng.normal(0.0, 1.0, (n, 3)) * sigma_v
        return positions, velocities


class SourceManager:
    """
    Runs all sources once per step and enforces the atom cap.

    Args:
        sources: Configured sources.
        species_index: Maps each species to its index in the simulation's
                       species table.
        max_atoms: Hard cap on live atoms, or None for no cap.
    """

    def __init__(self, sources, species_index: dict[AtomSpecies, int], max_atoms: int | None = None) -> None:
        self.sources = tuple(sources)
        self.species_index = dict(species_index)
        self.max_atoms = max_atoms
        self._carry = [0.0] * len(self.sources)
        self.emitted = 0
        self.truncated = 0

    def emit(self, store: EntityStore, step: int, seed: int) -> int:
        """
        Create this step's atoms in the store.

        Returns:
            Number of atoms created.
        """
        created = 0
        for i, src in enumerate(self.sources):
            rng = stream_rng(seed, step, _SOURCE_STREAM + i)
            n, self._carry[i] = src.emission_count(step, rng, self._carry[i])
            if n <= 0:
                continue
            if self.max_atoms is not None:
                room = max(self.max_atoms - len(store), 0)
                if n > room:
                    dropped = n - room
                    self.truncated += dropped
                    label = src.name or type(src).__name__
                    msg = (f"source '{label}' wanted {n} atoms at step {step} but the cap of "
                           f"{self.max_atoms} live atoms allows {room}; {dropped} dropped")
                    logger.warning(msg)
                    warnings.warn(ResourceExhaustion(msg), stacklevel=2)
                    n = room
                if n == 0:
                    continue
            positions, velocities = src.sample(rng, n)
            sp = src.species
            store.allocate(
                positions,
                velocities,
                sp.mass_kg,
                species=self.species_index[sp],
                magnetic_moment=sp.magnetic_moment,
            )
            created += n
        self.emitted += created
        return created
