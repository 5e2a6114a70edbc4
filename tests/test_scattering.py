# MIT License (see LICENSE)
import numpy as np
import pytest

from cooling_sim.constants import BOHR_MAGNETON, HBAR
from cooling_sim.core import (
    SpeciesTable,
    StepContext,
    apply_doppler_force,
    damping_coefficient,
    sample_fields,
)
from cooling_sim.core.forces import lorentzian_rate, polarization_weights
from cooling_sim.fields import GaussianBeam, UniformField, molasses_beams
from cooling_sim.store import EntityStore
from cooling_sim.types import AtomSpecies

RB = AtomSpecies.rubidium87()
T = RB.transition
GAMMA = T.gamma


def _context(beams, velocities, field=None, zeeman_mode="additive", recoil=False, dt=1e-6):
    v = np.atleast_2d(np.asarray(velocities, dtype=float))
    store = EntityStore(n_beams=len(beams))
    store.allocate(np.zeros_like(v), v, RB.mass_kg)
    ctx = StepContext(
        store=store,
        species=SpeciesTable.build([RB]),
        beams=tuple(beams),
        magnetic_field=field,
        gravity=np.zeros(3),
        dt=dt,
        recoil=recoil,
        zeeman_mode=zeeman_mode,
    )
    sample_fields(ctx, 0, len(store))
    return ctx


def test_effective_detuning_formula():
    """
    delta_eff = delta - k.v - zeeman_shift.
    """
    delta = -GAMMA / 2
    beam = GaussianBeam.from_saturation((1.0, 0.0, 0.0), 1.0, delta, T, waist=1e-2)
    v = np.array([[0.5, 3.0, -2.0], [-1.0, 0.0, 0.0]])
    k = T.wavenumber
    assert np.allclose(beam.effective_detuning(v), delta - k * v[:, 0])
    shift = np.array([1e6, -2e6])
    assert np.allclose(beam.effective_detuning(v, shift), delta - k * v[:, 0] - shift)


def test_polarization_weights_sum_to_one():
    c = np.linspace(-1.0, 1.0, 11)
    for pol in (1, -1):
        w = polarization_weights(c, pol)
        assert np.allclose(w.sum(axis=1), 1.0)
    # Field along the beam: a sigma+ beam drives only sigma+
    assert np.allclose(polarization_weights(np.array([1.0]), 1), [[1.0, 0.0, 0.0]])
    assert np.allclose(polarization_weights(np.array([1.0]), -1), [[0.0, 1.0, 0.0]])


def test_rate_at_rest_without_field():
    """
    Atom at rest on the beam axis, no field:
      R = (Gamma/2) s / (1 + s + (2 delta / Gamma)²)
    """
    s, delta = 0.5, -GAMMA
    beam = GaussianBeam.from_saturation((0.0, 0.0, 1.0), s, delta, T, waist=1e-2)
    ctx = _context([beam], [0.0, 0.0, 0.0])
    apply_doppler_force(ctx, 0, 1)
    expected = 0.5 * GAMMA * s / (1 + s + 4.0)
    assert np.isclose(ctx.store.scattering_rate[0, 0], expected, rtol=1e-12)
    assert np.allclose(ctx.store.force[0], [0.0, 0.0, HBAR * T.wavenumber * expected], rtol=1e-12, atol=0.0)


@pytest.mark.parametrize("mode", ["additive", "off"])
def test_zeeman_modes(mode):
    """
    Field B0 along a sigma+ beam: the atom sees only the sigma+ component.
      additive: delta_eff = delta - mu_B B0 / hbar
      off:      delta_eff = delta
    """
    s, delta, B0 = 1.0, -GAMMA / 2, 5e-4
    beam = GaussianBeam.from_saturation((0.0, 0.0, 1.0), s, delta, T, waist=1e-2, polarization=1)
    ctx = _context([beam], [0.0, 0.0, 0.0], field=UniformField((0.0, 0.0, B0)), zeeman_mode=mode)
    apply_doppler_force(ctx, 0, 1)

    shifted = delta - BOHR_MAGNETON * B0 / HBAR
    expected = float(lorentzian_rate(GAMMA, s, shifted if mode == "additive" else delta))
    rate = ctx.store.scattering_rate[0, 0]
    print(mode, "rate", rate, "expected", expected)
    assert np.isclose(rate, expected, rtol=1e-12)


def test_zero_field_matches_off_mode():
    """With |B| = 0 the polarization weights sum to one and the two modes agree."""
    beam = GaussianBeam.from_saturation((1.0, 0.0, 0.0), 0.3, -GAMMA, T, waist=1e-2)
    v = [[0.3, 0.0, 0.0], [-0.2, 0.1, 0.0]]
    a = _context([beam], v, field=UniformField((0.0, 0.0, 0.0)), zeeman_mode="additive")
    b = _context([beam], v, zeeman_mode="off")
    apply_doppler_force(a, 0, 2)
    apply_doppler_force(b, 0, 2)
    assert np.allclose(a.store.scattering_rate, b.store.scattering_rate, rtol=1e-12)


def test_linear_damping_of_counterpropagating_pair():
    """
    For small v, F(v) ~ beta v with
      beta = 8 hbar k² s delta / (Gamma (1 + s + (2 delta / Gamma)²)²) < 0.
    """
    s, delta = 0.1, -GAMMA / 2
    beams = molasses_beams(T, delta, s, waist=1e-2, axes=1)
    vx = np.arange(-10, 11) * 0.01
    v = np.column_stack((vx, np.zeros_like(vx), np.zeros_like(vx)))
    ctx = _context(beams, v)
    apply_doppler_force(ctx, 0, len(vx))

    fx = ctx.store.force[:, 0]
    slope = np.polyfit(vx, fx, 1)[0]
    beta = damping_coefficient(T, delta, s)
    print("damping slope", slope, "expected", beta)

    assert beta < 0
    assert abs(slope - beta) / abs(beta) < 0.03
    moving = vx != 0
    assert np.all(fx[moving] * vx[moving] < 0), "force must oppose velocity"
    assert abs(fx[~moving][0]) < 1e-30


def test_poisson_force_matches_mean_force():
    """
    With recoil the photon number is Poisson(R dt); averaged over many atoms
    the force approaches hbar k R and <photons> approaches R dt.
    """
    s, delta, dt = 1.0, -GAMMA / 2, 1e-5
    beam = GaussianBeam.from_saturation((1.0, 0.0, 0.0), s, delta, T, waist=1e-2)
    ctx = _context([beam], np.zeros((2000, 3)), recoil=True, dt=dt)
    apply_doppler_force(ctx, 0, 2000)

    rate = float(lorentzian_rate(GAMMA, s, delta))
    mean_force = ctx.store.force[:, 0].mean()
    assert abs(mean_force - HBAR * T.wavenumber * rate) / (HBAR * T.wavenumber * rate) < 0.02
    assert abs(ctx.store.photons.mean() - rate * dt) / (rate * dt) < 0.02


def test_species_without_transition_does_not_scatter():
    dummy = AtomSpecies("dummy", mass=1.0, mass_unit=1.0)
    beam = GaussianBeam.from_saturation((1.0, 0.0, 0.0), 1.0, -GAMMA, T, waist=1e-2)
    store = EntityStore(n_beams=1)
    store.allocate(np.zeros((1, 3)), np.zeros((1, 3)), 1.0)
    ctx = StepContext(store=store, species=SpeciesTable.build([dummy]), beams=(beam,), recoil=False)
    sample_fields(ctx, 0, 1)
    apply_doppler_force(ctx, 0, 1)
    assert ctx.store.scattering_rate[0, 0] == 0.0
    assert np.all(ctx.store.force == 0.0)
