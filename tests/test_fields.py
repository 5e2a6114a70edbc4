# MIT License (see LICENSE)
import numpy as np
import pytest

from cooling_sim.constants import MU_0
from cooling_sim.errors import ConfigurationError
from cooling_sim.fields import (
    AntiHelmholtzField,
    GaussianBeam,
    GridField,
    QuadrupoleField,
    SumField,
    UniformField,
)


def _lattice(fn, shape=(5, 6, 7), origin=(-1.0, -1.0, -1.0), spacing=(0.5, 0.5, 0.5)):
    origin = np.asarray(origin)
    spacing = np.asarray(spacing)
    idx = np.stack(np.meshgrid(*[np.arange(n) for n in shape], indexing="ij"), axis=-1)
    points = origin + idx * spacing
    return fn(points.reshape(-1, 3)).reshape(shape + (3,)), origin, spacing


def _linear(p):
    return np.column_stack((p[:, 0] + 0.1, 2.0 * p[:, 1], 3.0 * p[:, 2] - 0.5))


def test_grid_trilinear_is_exact_for_linear_fields():
    """
    Trilinear interpolation reproduces any field linear in x, y, z exactly.
    """
    data, origin, spacing = _lattice(_linear)
    grid = GridField(data, origin=origin, spacing=spacing)
    rng = np.random.default_rng(3)
    pts = origin + rng.uniform(0.0, 1.0, (50, 3)) * spacing * (np.array([5, 6, 7]) - 1)
    assert np.allclose(grid.sample(pts), _linear(pts), atol=1e-12)


def test_grid_outside_returns_default():
    data, origin, spacing = _lattice(_linear)
    grid = GridField(data, origin=origin, spacing=spacing, default=(0.0, 0.0, 1e-4))
    outside = np.array([[-2.0, 0.0, 0.0], [0.0, 10.0, 0.0], [0.0, 0.0, 2.5]])
    inside_corners = np.array([origin, origin + spacing * (np.array([5, 6, 7]) - 1)])
    assert np.allclose(grid.sample(outside), [0.0, 0.0, 1e-4])
    assert np.allclose(grid.gradient_magnitude(outside), 0.0)
    # Lattice boundary counts as inside
    assert np.allclose(grid.sample(inside_corners), _linear(inside_corners))


def test_grid_magnitude_gradient():
    """
    For B = (0, 0, 2 + x) with x >= -1, |B| = 2 + x and grad |B| = (1, 0, 0).
    """
    data, origin, spacing = _lattice(lambda p: np.column_stack((0 * p[:, 0], 0 * p[:, 0], 2.0 + p[:, 0])))
    grid = GridField(data, origin=origin, spacing=spacing)
    pts = np.array([[0.1, 0.2, 0.3], [0.9, 1.1, 0.0]])
    assert np.allclose(grid.gradient_magnitude(pts), [1.0, 0.0, 0.0])


def test_grid_is_read_only_and_validated():
    data, origin, spacing = _lattice(_linear)
    grid = GridField(data, origin=origin, spacing=spacing)
    with pytest.raises(ValueError):
        grid.field[0, 0, 0, 0] = 1.0
    with pytest.raises(ConfigurationError):
        GridField(np.zeros((1, 3, 3, 3)))
    with pytest.raises(ConfigurationError):
        GridField(np.zeros((3, 3, 3, 3)), spacing=(1.0, 0.0, 1.0))


def test_grid_from_file(tmp_path):
    data, origin, spacing = _lattice(_linear)
    path = tmp_path / "field.npz"
    np.savez(path, field=data, origin=origin, spacing=spacing)
    grid = GridField.from_file(str(path))
    assert grid.path == str(path)
    assert np.allclose(grid.sample(np.zeros((1, 3))), _linear(np.zeros((1, 3))))

    with pytest.raises(ConfigurationError, match="not found"):
        GridField.from_file(str(tmp_path / "missing.npz"))
    np.savez(tmp_path / "empty.npz", other=np.zeros(3))
    with pytest.raises(ConfigurationError, match="no 'field'"):
        GridField.from_file(str(tmp_path / "empty.npz"))


def test_quadrupole_field_and_gradient():
    """
    B = g (x, y, -2z); |B| = g sqrt(x² + y² + 4z²).
    The analytic grad |B| must match the central finite-difference default.
    """
    g = 0.2
    quad = QuadrupoleField(g)
    pts = np.array([[1e-3, 2e-3, -1e-3], [-3e-3, 0.0, 2e-3]])
    assert np.allclose(quad.sample(pts), g * pts * np.array([1.0, 1.0, -2.0]))

    numeric = super(QuadrupoleField, quad).gradient_magnitude(pts)
    assert np.allclose(quad.gradient_magnitude(pts), numeric, rtol=1e-5)
    assert np.allclose(quad.gradient_magnitude(np.zeros((1, 3))), 0.0)


def test_quadrupole_tilted_axis():
    quad = QuadrupoleField(1.0, axis=(1.0, 0.0, 0.0))
    b = quad.sample(np.array([[1.0, 1.0, 1.0]]))
    assert np.allclose(b, [[-2.0, 1.0, 1.0]])


def test_anti_helmholtz_center_gradient():
    """
    Anti-Helmholtz pair (R, separation 2A): B(0) = 0 and
    dBz/dz(0) = 3 mu0 N I R² A / (R² + A²)^(5/2).
    """
    R, sep, current, turns = 0.05, 0.05, 2.0, 100
    coils = AntiHelmholtzField(R, sep, current, turns)
    A = sep / 2
    expected = 3 * MU_0 * turns * current * R * R * A / (R * R + A * A) ** 2.5
    print("axial gradient", coils.axial_gradient, "expected", expected)
    assert np.allclose(coils.sample(np.zeros((1, 3))), 0.0, atol=1e-15)
    assert abs(abs(coils.axial_gradient) - expected) / expected < 1e-9
    # Near the center it looks like a quadrupole with radial gradient -Gz/2
    b = coils.sample(np.array([[1e-4, 0.0, 0.0]]))
    assert np.isclose(b[0, 0], -0.5 * coils.axial_gradient * 1e-4, rtol=1e-6)


def test_sum_field_superposition():
    total = SumField([UniformField((0.0, 0.0, 1e-4)), QuadrupoleField(0.1)])
    p = np.array([[1e-3, 0.0, 0.0]])
    assert np.allclose(total.sample(p), [[1e-4, 0.0, 1e-4]])


def test_gaussian_intensity_profile():
    """
    I(r) = I0 exp(-2 r² / w0²), I0 = 2P / (pi w0²), independent of the
    position along the beam.
    """
    w0, P = 2e-3, 0.01
    beam = GaussianBeam(direction=(0.0, 0.0, 1.0), waist=w0, power=P, detuning=0.0, wavelength=780e-9)
    I0 = 2 * P / (np.pi * w0 * w0)
    pts = np.array([[0.0, 0.0, 0.0], [w0, 0.0, 5.0], [0.0, w0 / 2, -1.0]])
    expected = I0 * np.exp(-2.0 * np.array([0.0, 1.0, 0.25]))
    assert np.isclose(beam.peak_intensity, I0)
    assert np.allclose(beam.intensity(pts), expected)


def test_gaussian_mask_blanks_core():
    beam = GaussianBeam(direction=(1.0, 0.0, 0.0), waist=1e-2, power=0.01, detuning=0.0,
                        wavelength=780e-9, mask_radius=1e-3)
    pts = np.array([[0.0, 0.0, 0.0], [0.0, 2e-3, 0.0]])
    inten = beam.intensity(pts)
    assert inten[0] == 0.0
    assert inten[1] > 0.0


def test_beam_validation():
    with pytest.raises(ConfigurationError):
        GaussianBeam(direction=(0.0, 0.0, 0.0), waist=1e-3, power=1.0, detuning=0.0, wavelength=780e-9)
    with pytest.raises(ConfigurationError):
        GaussianBeam(direction=(1.0, 0.0, 0.0), waist=-1.0, power=1.0, detuning=0.0, wavelength=780e-9)
    with pytest.raises(ConfigurationError):
        GaussianBeam(direction=(1.0, 0.0, 0.0), waist=1e-3, power=1.0, detuning=0.0,
                     wavelength=780e-9, polarization=0)
