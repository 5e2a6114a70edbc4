# MIT License (see LICENSE)
"""
Gaussian laser beams.

Intensity profile of a collimated Gaussian beam (Rayleigh range ignored):

    I(r) = I0 exp(-2 r_perp² / w0²),   I0 = 2 P / (pi w0²)

where r_perp is the distance from the beam axis. Cooling beams additionally
carry a detuning and a circular polarization; the effective detuning seen by
an atom with velocity v is

    delta_eff = delta - k·v - zeeman_shift

Beams are frozen after construction and safe to sample concurrently.
"""
from __future__ import annotations
from dataclasses import dataclass

import numpy as np

from ..constants import C
from ..errors import ConfigurationError
from ..types import AtomicTransition
from ..util import f64, perpendicular_distance2, unit, vec3


def gaussian_intensity(positions: np.ndarray, intercept: np.ndarray, direction: np.ndarray,
                       waist: float, peak: float) -> np.ndarray:
    """Intensity of a Gaussian beam at (N, 3) positions."""
    r2 = perpendicular_distance2(f64(positions).reshape(-1, 3), intercept, direction)
    return peak * np.exp(-2.0 * r2 / (waist * waist))


def gaussian_intensity_gradient(positions: np.ndarray, intercept: np.ndarray, direction: np.ndarray,
                                waist: float, peak: float) -> np.ndarray:
    """grad I of a Gaussian beam: -4 I r_perp_vec / w0², shape (N, 3)."""
    rel = f64(positions).reshape(-1, 3) - intercept
    r_perp = rel - (rel @ direction)[:, None] * direction
    r2 = np.einsum("ij,ij->i", r_perp, r_perp)
    intensity = peak * np.exp(-2.0 * r2 / (waist * waist))
    return (-4.0 / (waist * waist)) * intensity[:, None] * r_perp


def _check_axis(component: str, direction, intercept) -> tuple[np.ndarray, np.ndarray]:
    try:
        d = vec3(direction, "direction")
        p = vec3(intercept, "intercept")
    except ValueError as exc:
        raise ConfigurationError(str(exc), component=component) from exc
    if np.linalg.norm(d) == 0:
        raise ConfigurationError("direction must be non-zero", component=component)
    return unit(d), p


@dataclass(frozen=True)
class GaussianBeam:
    """
    Near-resonant cooling beam.

    Attributes:
        direction: Propagation direction (normalised on construction).
        waist: 1/e² intensity radius w0, m.
        power: Total power P, W.
        detuning: Angular detuning from the atomic resonance, rad/s
                  (negative = red detuned).
        wavelength: Vacuum wavelength, m.
        polarization: +1 for sigma+, -1 for sigma-, relative to the
                      propagation direction.
        intercept: Any point on the beam axis.
        mask_radius: Intensity is zero within this distance of the axis
                     (hollow beams); 0 disables the mask.
    """
    direction: tuple[float, float, float]
    waist: float
    power: float
    detuning: float
    wavelength: float
    polarization: int = 1
    intercept: tuple[float, float, float] = (0.0, 0.0, 0.0)
    mask_radius: float = 0.0

    def __post_init__(self) -> None:
        d, p = _check_axis("GaussianBeam", self.direction, self.intercept)
        if not self.waist > 0:
            raise ConfigurationError(f"waist must be positive, got {self.waist}", component="GaussianBeam")
        if not self.power >= 0:
            raise ConfigurationError(f"power must be non-negative, got {self.power}", component="GaussianBeam")
        if not self.wavelength > 0:
            raise ConfigurationError(f"wavelength must be positive, got {self.wavelength}", component="GaussianBeam")
        if self.polarization not in (1, -1):
            raise ConfigurationError(f"polarization must be +1 or -1, got {self.polarization}", component="GaussianBeam")
        if not np.isfinite(self.detuning):
            raise ConfigurationError("detuning must be finite", component="GaussianBeam")
        if self.mask_radius < 0:
            raise ConfigurationError("mask_radius must be non-negative", component="GaussianBeam")
        object.__setattr__(self, "direction", tuple(d.tolist()))
        object.__setattr__(self, "intercept", tuple(p.tolist()))

    @classmethod
    def from_saturation(
        cls,
        direction,
        saturation: float,
        detuning: float,
        transition: AtomicTransition,
        waist: float,
        polarization: int = 1,
        intercept=(0.0, 0.0, 0.0),
    ) -> "GaussianBeam":
        """
        Build a resonant-wavelength beam whose peak saturation parameter
        I0 / I_sat equals ``saturation``.
        """
        power = saturation * transition.saturation_intensity * np.pi * waist * waist / 2.0
        return cls(
            direction=direction,
            waist=waist,
            power=power,
            detuning=detuning,
            wavelength=transition.wavelength,
            polarization=polarization,
            intercept=intercept,
        )

    @property
    def unit_direction(self) -> np.ndarray:
        return np.asarray(self.direction, dtype=np.float64)

    @property
    def peak_intensity(self) -> float:
        """I0 = 2 P / (pi w0²), W/m²."""
        return 2.0 * self.power / (np.pi * self.waist * self.waist)

    @property
    def wavevector(self) -> np.ndarray:
        """k = (2 pi / lambda) * direction, rad/m."""
        return (2.0 * np.pi / self.wavelength) * self.unit_direction

    @property
    def frequency(self) -> float:
        return C / self.wavelength

    def intensity(self, positions: np.ndarray) -> np.ndarray:
        """Intensity at each of the (N, 3) positions, W/m²."""
        positions = f64(positions).reshape(-1, 3)
        intercept = np.asarray(self.intercept)
        direction = self.unit_direction
        out = gaussian_intensity(positions, intercept, direction, self.waist, self.peak_intensity)
        if self.mask_radius > 0:
            r2 = perpendicular_distance2(positions, intercept, direction)
            out[r2 < self.mask_radius * self.mask_radius] = 0.0
        return out

    def doppler_shift(self, velocities: np.ndarray) -> np.ndarray:
        """k·v for each velocity, rad/s."""
        return f64(velocities).reshape(-1, 3) @ self.wavevector

    def effective_detuning(self, velocities: np.ndarray, zeeman_shift=0.0) -> np.ndarray:
        """
        Detuning seen by atoms moving with the given velocities.

        Args:
            velocities: (N, 3) atom velocities.
            zeeman_shift: Angular shift of the driven transition, rad/s,
                          scalar or (N,) (or broadcastable, e.g. (N, 3) when
                          evaluated for all three polarization components).
        """
        doppler = self.doppler_shift(velocities)
        zeeman = np.asarray(zeeman_shift, dtype=np.float64)
        if zeeman.ndim == 2:
            doppler = doppler[:, None]
        return self.detuning - doppler - zeeman


@dataclass(frozen=True)
class DipoleBeam:
    """
    Far-detuned beam exerting an optical dipole force.

    Attributes:
        direction: Propagation direction.
        waist: 1/e² intensity radius, m.
        power: Power, W.
        wavelength: Vacuum wavelength, m.
        intercept: Any point on the beam axis.
    """
    direction: tuple[float, float, float]
    waist: float
    power: float
    wavelength: float
    intercept: tuple[float, float, float] = (0.0, 0.0, 0.0)

    def __post_init__(self) -> None:
        d, p = _check_axis("DipoleBeam", self.direction, self.intercept)
        if not (self.waist > 0 and self.wavelength > 0 and self.power >= 0):
            raise ConfigurationError("waist and wavelength must be positive, power non-negative",
                                     component="DipoleBeam")
        object.__setattr__(self, "direction", tuple(d.tolist()))
        object.__setattr__(self, "intercept", tuple(p.tolist()))

    @property
    def peak_intensity(self) -> float:
        return 2.0 * self.power / (np.pi * self.waist * self.waist)

    @property
    def omega(self) -> float:
        """Angular frequency of the light, rad/s."""
        return 2.0 * np.pi * C / self.wavelength

    def intensity(self, positions: np.ndarray) -> np.ndarray:
        return gaussian_intensity(positions, np.asarray(self.intercept), np.asarray(self.direction),
                                  self.waist, self.peak_intensity)

    def intensity_gradient(self, positions: np.ndarray) -> np.ndarray:
        return gaussian_intensity_gradient(positions, np.asarray(self.intercept), np.asarray(self.direction),
                                           self.waist, self.peak_intensity)


def molasses_beams(transition: AtomicTransition, detuning: float, saturation: float, waist: float,
                   axes: int = 3) -> list[GaussianBeam]:
    """
    Counter-propagating beam pairs along x (and y, z for axes=2, 3).

    Polarizations follow the MOT convention for a QuadrupoleField with
    positive gradient along z: +1 on the x and y pairs, -1 on the z pair.
    With no magnetic field the polarization has no effect.
    """
    if axes not in (1, 2, 3):
        raise ConfigurationError(f"axes must be 1, 2 or 3, got {axes}", component="molasses_beams")
    beams = []
    for axis in range(axes):
        pol = -1 if axis == 2 else 1
        for sign in (1.0, -1.0):
            d = np.zeros(3)
            d[axis] = sign
            beams.append(GaussianBeam.from_saturation(d, saturation, detuning, transition, waist, polarization=pol))
    return beams
