# MIT License (see LICENSE)
"""
Magnetic field models.

Every model maps (N, 3) positions to (N, 3) field vectors in tesla and the
gradient of the field magnitude, grad |B|, in T/m. Models hold no mutable
state after construction, so one instance can be sampled from any number of
worker threads.

Available models:
- UniformField: constant bias field.
- QuadrupoleField: linear MOT quadrupole, B = g (x, y, -2z) in the coil frame.
- AntiHelmholtzField: coil pair with opposing currents (on-axis Biot-Savart,
  first-order off-axis expansion).
- GridField: trilinear interpolation of a sampled lattice.
- SumField: superposition of other models.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
import logging
import os

import numpy as np

from ..constants import MU_0
from ..errors import ConfigurationError
from ..util import f64, row_norms, unit, vec3

logger = logging.getLogger(__name__)


class MagneticField(ABC):
    """
    Base class for field models.

    Subclasses implement ``sample``; ``gradient_magnitude`` defaults to central
    finite differences of |B| with step ``fd_step`` and may be overridden with
    a closed form.
    """

    fd_step: float = 1e-6

    @abstractmethod
    def sample(self, positions: np.ndarray) -> np.ndarray:
        """Field vectors (N, 3) at the given (N, 3) positions."""
        ...

    def magnitude(self, positions: np.ndarray) -> np.ndarray:
        return row_norms(self.sample(positions))

    def gradient_magnitude(self, positions: np.ndarray) -> np.ndarray:
        """grad |B| at each position, shape (N, 3)."""
        positions = f64(positions).reshape(-1, 3)
        h = self.fd_step
        grad = np.empty_like(positions)
        for axis in range(3):
            offset = np.zeros(3)
            offset[axis] = h
            grad[:, axis] = (self.magnitude(positions + offset) - self.magnitude(positions - offset)) / (2.0 * h)
        return grad


class UniformField(MagneticField):
    """Spatially constant field."""

    def __init__(self, field=(0.0, 0.0, 0.0)) -> None:
        self.field = vec3(field, "field")
        self.field.flags.writeable = False

    def sample(self, positions: np.ndarray) -> np.ndarray:
        n = np.shape(positions)[0]
        return np.broadcast_to(self.field, (n, 3)).copy()

    def gradient_magnitude(self, positions: np.ndarray) -> np.ndarray:
        return np.zeros((np.shape(positions)[0], 3))


class QuadrupoleField(MagneticField):
    """
    Linear quadrupole field of a MOT coil pair.

    In the coil frame (z along ``axis``): B = g (x, y, -2z), which is
    B = g (r - 3 (r·a) a) for unit axis a and r measured from ``center``.

    Args:
        gradient: Radial gradient g in T/m (axial gradient is -2g).
        center: Field zero.
        axis: Coil symmetry axis.
    """

    def __init__(self, gradient: float, center=(0.0, 0.0, 0.0), axis=(0.0, 0.0, 1.0)) -> None:
        self.gradient = float(gradient)
        self.center = vec3(center, "center")
        a = vec3(axis, "axis")
        if np.linalg.norm(a) == 0:
            raise ConfigurationError("axis must be non-zero", component="QuadrupoleField")
        self.axis = unit(a)

    def sample(self, positions: np.ndarray) -> np.ndarray:
        rel = f64(positions).reshape(-1, 3) - self.center
        z = rel @ self.axis
        return self.gradient * (rel - 3.0 * z[:, None] * self.axis)

    def gradient_magnitude(self, positions: np.ndarray) -> np.ndarray:
        # |B|² = g² (|r|² + 3 z²)  ->  grad |B| = g² (r + 3 z a) / |B|
        rel = f64(positions).reshape(-1, 3) - self.center
        z = rel @ self.axis
        mag = np.abs(self.gradient) * np.sqrt(np.einsum("ij,ij->i", rel, rel) + 3.0 * z * z)
        out = np.zeros_like(rel)
        nz = mag > 0
        out[nz] = (self.gradient ** 2) * (rel[nz] + 3.0 * z[nz, None] * self.axis) / mag[nz, None]
        return out


class AntiHelmholtzField(MagneticField):
    """
    Pair of coaxial circular coils carrying opposite currents.

    The axial component uses the exact on-axis Biot-Savart expression for
    both loops; the radial component follows from div B = 0 to first order
    in the distance from the axis, B_rho = -(rho / 2) dB_z/dz. Accurate
    well inside the coil radius, which is where MOT atoms live.

    Args:
        radius: Coil radius R, m.
        separation: Distance between the coils, m (coils at z = ±separation/2).
        current: Current per turn, A.
        turns: Number of turns per coil.
        center: Midpoint between the coils.
        axis: Coil axis.
    """

    def __init__(
        self,
        radius: float,
        separation: float,
        current: float,
        turns: int = 1,
        center=(0.0, 0.0, 0.0),
        axis=(0.0, 0.0, 1.0),
    ) -> None:
        if not (radius > 0 and separation > 0):
            raise ConfigurationError("radius and separation must be positive", component="AntiHelmholtzField")
        self.radius = float(radius)
        self.half_separation = 0.5 * float(separation)
        self.current = float(current)
        self.turns = int(turns)
        self.center = vec3(center, "center")
        self.axis = unit(vec3(axis, "axis"))

    def _loop_bz(self, z: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """On-axis field and its z-derivative of the coil pair."""
        R2 = self.radius ** 2
        pref = 0.5 * MU_0 * self.turns * self.current * R2
        zu = z - self.half_separation
        zl = z + self.half_separation
        du = (R2 + zu * zu) ** -1.5
        dl = (R2 + zl * zl) ** -1.5
        # Upper loop at +A carries +I, lower loop at -A carries -I
        bz = pref * (du - dl)
        dbz = pref * (-3.0 * zu * (R2 + zu * zu) ** -2.5 + 3.0 * zl * (R2 + zl * zl) ** -2.5)
        return bz, dbz

    def sample(self, positions: np.ndarray) -> np.ndarray:
        rel = f64(positions).reshape(-1, 3) - self.center
        z = rel @ self.axis
        perp = rel - z[:, None] * self.axis
        bz, dbz = self._loop_bz(z)
        return bz[:, None] * self.axis - 0.5 * dbz[:, None] * perp

    @property
    def axial_gradient(self) -> float:
        """dB_z/dz at the center, T/m."""
        return float(self._loop_bz(np.zeros(1))[1][0])


class GridField(MagneticField):
    """
    Field sampled on a regular lattice, trilinearly interpolated.

    Lattice point (i, j, k) sits at ``origin + (i, j, k) * spacing``. Queries
    outside the lattice return ``default`` (field) and zero (gradient).

    grad |B| is computed once at construction by finite differences of |B|
    between neighbouring lattice samples and then interpolated like the field.

    Args:
        field: Array of shape (nx, ny, nz, 3) with nx, ny, nz >= 2.
        origin: Position of lattice point (0, 0, 0).
        spacing: Lattice spacing along x, y, z (all > 0).
        default: Field returned outside the lattice.
    """

    def __init__(self, field, origin=(0.0, 0.0, 0.0), spacing=(1.0, 1.0, 1.0), default=(0.0, 0.0, 0.0)) -> None:
        data = f64(field)
        if data.ndim != 4 or data.shape[3] != 3 or min(data.shape[:3]) < 2:
            raise ConfigurationError(
                f"grid field must have shape (nx, ny, nz, 3) with n >= 2, got {data.shape}",
                component="GridField",
            )
        spacing = vec3(spacing, "spacing")
        if not np.all(spacing > 0):
            raise ConfigurationError("grid spacing must be positive", component="GridField")
        if not np.all(np.isfinite(data)):
            raise ConfigurationError("grid field contains non-finite samples", component="GridField")

        self.field = data
        self.origin = vec3(origin, "origin")
        self.spacing = spacing
        self.default = vec3(default, "default")
        self.shape = np.array(data.shape[:3])
        self.path: str | None = None

        magnitude = np.sqrt(np.einsum("ijkl,ijkl->ijk", data, data))
        self.magnitude_gradient = np.stack(np.gradient(magnitude, *spacing), axis=-1)

        for arr in (self.field, self.origin, self.spacing, self.default, self.magnitude_gradient):
            arr.flags.writeable = False

    @classmethod
    def from_file(cls, path: str, origin=None, spacing=None, default=(0.0, 0.0, 0.0)) -> "GridField":
        """
        Load a lattice from an ``.npz`` file with arrays ``field`` and
        optionally ``origin`` and ``spacing``. Explicit arguments override
        the stored values.

        Raises:
            ConfigurationError: If the file is missing or lacks ``field``.
        """
        if not os.path.exists(path):
            raise ConfigurationError(f"grid file not found: {path}", component="GridField")
        with np.load(path) as data:
            if "field" not in data:
                raise ConfigurationError(f"grid file {path} has no 'field' array", component="GridField")
            field = data["field"]
            if origin is None:
                origin = data["origin"] if "origin" in data else (0.0, 0.0, 0.0)
            if spacing is None:
                spacing = data["spacing"] if "spacing" in data else (1.0, 1.0, 1.0)
        logger.info("Loaded field grid %s with shape %s", path, field.shape[:3])
        grid = cls(field, origin=origin, spacing=spacing, default=default)
        grid.path = str(path)
        return grid

    def _interpolate(self, lattice: np.ndarray, positions: np.ndarray, outside: np.ndarray) -> np.ndarray:
        positions = f64(positions).reshape(-1, 3)
        idx = (positions - self.origin) / self.spacing
        inside = np.all((idx >= 0.0) & (idx <= self.shape - 1), axis=1)
        out = np.broadcast_to(outside, (positions.shape[0], 3)).copy()
        if not inside.any():
            return out

        p = idx[inside]
        i0 = np.clip(np.floor(p).astype(np.int64), 0, self.shape - 2)
        t = p - i0
        i, j, k = i0[:, 0], i0[:, 1], i0[:, 2]
        tx, ty, tz = t[:, 0:1], t[:, 1:2], t[:, 2:3]

        c000 = lattice[i, j, k]
        c100 = lattice[i + 1, j, k]
        c010 = lattice[i, j + 1, k]
        c110 = lattice[i + 1, j + 1, k]
        c001 = lattice[i, j, k + 1]
        c101 = lattice[i + 1, j, k + 1]
        c011 = lattice[i, j + 1, k + 1]
        c111 = lattice[i + 1, j + 1, k + 1]

        c00 = c000 * (1 - tx) + c100 * tx
        c10 = c010 * (1 - tx) + c110 * tx
        c01 = c001 * (1 - tx) + c101 * tx
        c11 = c011 * (1 - tx) + c111 * tx
        c0 = c00 * (1 - ty) + c10 * ty
        c1 = c01 * (1 - ty) + c11 * ty
        out[inside] = c0 * (1 - tz) + c1 * tz
        return out

    def sample(self, positions: np.ndarray) -> np.ndarray:
        return self._interpolate(self.field, positions, self.default)

    def gradient_magnitude(self, positions: np.ndarray) -> np.ndarray:
        return self._interpolate(self.magnitude_gradient, positions, np.zeros(3))


class SumField(MagneticField):
    """Superposition of several field models, e.g. quadrupole plus bias."""

    def __init__(self, fields: list[MagneticField]) -> None:
        if not fields:
            raise ConfigurationError("SumField needs at least one field", component="SumField")
        self.fields = tuple(fields)

    def sample(self, positions: np.ndarray) -> np.ndarray:
        total = self.fields[0].sample(positions)
        for f in self.fields[1:]:
            total = total + f.sample(positions)
        return total
