# MIT License (see LICENSE)
"""
Static regions of space used as simulation bounds, absorbers and detectors.

Every shape implements a vectorised, side-effect free ``contains(positions)``
returning a boolean mask. Points on the surface count as inside.

Each configured region is wrapped in a ``Region`` carrying its role:
  - BOUNDING:  atoms outside every bounding region are removed.
  - ABSORBING: atoms inside are removed.
  - DETECTING: atoms inside are removed and counted by the detector.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

import numpy as np

from .errors import ConfigurationError
from .util import f64, unit, vec3


class VolumeRole(str, Enum):
    BOUNDING = "bounding"
    ABSORBING = "absorbing"
    DETECTING = "detecting"


class Volume(ABC):
    """A static geometric region."""

    @abstractmethod
    def contains(self, positions: np.ndarray) -> np.ndarray:
        """Boolean mask, True where the (N, 3) positions lie inside."""
        ...


@dataclass(frozen=True)
class Box(Volume):
    """
    Axis-aligned box.

    Attributes:
        center: Box center (x, y, z).
        half_extents: Half widths along x, y, z. All must be > 0.
    """
    center: tuple[float, float, float]
    half_extents: tuple[float, float, float]

    def __post_init__(self) -> None:
        try:
            c = vec3(self.center, "center")
            h = vec3(self.half_extents, "half_extents")
        except ValueError as exc:
            raise ConfigurationError(str(exc), component="Box") from exc
        if not np.all(h > 0):
            raise ConfigurationError(f"half extents must be positive, got {tuple(h)}", component="Box")
        object.__setattr__(self, "center", tuple(c.tolist()))
        object.__setattr__(self, "half_extents", tuple(h.tolist()))

    def contains(self, positions: np.ndarray) -> np.ndarray:
        rel = np.abs(positions - np.asarray(self.center))
        return np.all(rel <= np.asarray(self.half_extents), axis=1)


@dataclass(frozen=True)
class Sphere(Volume):
    center: tuple[float, float, float]
    radius: float

    def __post_init__(self) -> None:
        try:
            c = vec3(self.center, "center")
        except ValueError as exc:
            raise ConfigurationError(str(exc), component="Sphere") from exc
        if not self.radius > 0:
            raise ConfigurationError(f"radius must be positive, got {self.radius}", component="Sphere")
        object.__setattr__(self, "center", tuple(c.tolist()))

    def contains(self, positions: np.ndarray) -> np.ndarray:
        rel = positions - np.asarray(self.center)
        return np.einsum("ij,ij->i", rel, rel) <= self.radius * self.radius


@dataclass(frozen=True)
class Cylinder(Volume):
    """
    Finite cylinder.

    Attributes:
        center: Center of the cylinder.
        axis: Direction of the symmetry axis (normalised on construction).
        radius: Radius, > 0.
        half_length: Half of the length along the axis, > 0.
    """
    center: tuple[float, float, float]
    axis: tuple[float, float, float]
    radius: float
    half_length: float

    def __post_init__(self) -> None:
        try:
            c = vec3(self.center, "center")
            a = vec3(self.axis, "axis")
        except ValueError as exc:
            raise ConfigurationError(str(exc), component="Cylinder") from exc
        if np.linalg.norm(a) == 0:
            raise ConfigurationError("axis must be non-zero", component="Cylinder")
        if not (self.radius > 0 and self.half_length > 0):
            raise ConfigurationError("radius and half_length must be positive", component="Cylinder")
        object.__setattr__(self, "center", tuple(c.tolist()))
        object.__setattr__(self, "axis", tuple(unit(a).tolist()))

    def contains(self, positions: np.ndarray) -> np.ndarray:
        rel = positions - np.asarray(self.center)
        axis = np.asarray(self.axis)
        along = rel @ axis
        perp2 = np.einsum("ij,ij->i", rel, rel) - along * along
        return (np.abs(along) <= self.half_length) & (perp2 <= self.radius * self.radius)


@dataclass(frozen=True)
class Union(Volume):
    """Composite region: inside if inside any member."""
    members: tuple[Volume, ...]

    def __post_init__(self) -> None:
        if not self.members:
            raise ConfigurationError("union needs at least one member", component="Union")
        object.__setattr__(self, "members", tuple(self.members))

    def contains(self, positions: np.ndarray) -> np.ndarray:
        inside = np.zeros(positions.shape[0], dtype=bool)
        for member in self.members:
            inside |= member.contains(positions)
        return inside


@dataclass(frozen=True)
class Region:
    """
    A volume together with its role in the simulation.

    Attributes:
        volume: The geometry.
        role: BOUNDING, ABSORBING or DETECTING.
        name: Label used in logs and detector counts.
    """
    volume: Volume
    role: VolumeRole = VolumeRole.BOUNDING
    name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", VolumeRole(self.role))


def removal_mask(regions: list[Region], positions: np.ndarray) -> tuple[np.ndarray, dict[str, np.ndarray]]:
    """
    Decide which atoms leave the simulation.

    Pure function of positions: calling it twice on unchanged positions
    gives the same answer.

    Args:
        regions: Configured regions.
        positions: (N, 3) atom positions.

    Returns:
        Tuple (remove, detected):
        - remove: Boolean mask of atoms to destroy.
        - detected: Detector name -> boolean mask of atoms it captured.
    """
    positions = f64(positions).reshape(-1, 3)
    n = positions.shape[0]
    bounding = [r for r in regions if r.role is VolumeRole.BOUNDING]
    if bounding:
        contained = np.zeros(n, dtype=bool)
        for r in bounding:
            contained |= r.volume.contains(positions)
        remove = ~contained
    else:
        remove = np.zeros(n, dtype=bool)

    detected: dict[str, np.ndarray] = {}
    for i, r in enumerate(regions):
        if r.role is VolumeRole.ABSORBING:
            remove |= r.volume.contains(positions)
        elif r.role is VolumeRole.DETECTING:
            hit = r.volume.contains(positions)
            detected[r.name or f"detector{i}"] = hit
            remove |= hit
    return remove, detected
