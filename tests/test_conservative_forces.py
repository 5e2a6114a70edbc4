# MIT License (see LICENSE)
import numpy as np

from cooling_sim import AtomSpecies, Simulation, SimulationConfig
from cooling_sim.constants import BOHR_MAGNETON, C, K_B
from cooling_sim.core import SpeciesTable, StepContext, apply_dipole_force, apply_magnetic_force, sample_fields
from cooling_sim.fields import DipoleBeam, QuadrupoleField
from cooling_sim.store import EntityStore

RB = AtomSpecies.rubidium87()


def _ctx(positions, moment=0.0, field=None, dipole_beams=()):
    pos = np.atleast_2d(np.asarray(positions, dtype=float))
    store = EntityStore()
    store.allocate(pos, np.zeros_like(pos), RB.mass_kg, magnetic_moment=moment)
    ctx = StepContext(
        store=store,
        species=SpeciesTable.build([RB]),
        magnetic_field=field,
        dipole_beams=tuple(dipole_beams),
        gravity=np.zeros(3),
        magnetic_force=bool(moment),
    )
    sample_fields(ctx, 0, len(store))
    return ctx


def test_magnetic_force_in_quadrupole():
    """
    U = m_eff |B|, |B| = g sqrt(x² + y² + 4 z²):
      on the x axis F = -m_eff g x̂, on the z axis F = -2 m_eff g ẑ sign(z).
    """
    g, moment = 0.2, BOHR_MAGNETON
    ctx = _ctx([[1e-3, 0.0, 0.0], [0.0, 0.0, -2e-3]], moment=moment, field=QuadrupoleField(g))
    apply_magnetic_force(ctx, 0, 2)
    f = ctx.store.force
    assert np.allclose(f[0], [-moment * g, 0.0, 0.0], rtol=1e-12, atol=0.0)
    assert np.allclose(f[1], [0.0, 0.0, 2.0 * moment * g], rtol=1e-12, atol=0.0)


def test_no_moment_no_magnetic_force():
    ctx = _ctx([[1e-3, 0.0, 0.0]], moment=0.0, field=QuadrupoleField(0.2))
    ctx.magnetic_force = True
    apply_magnetic_force(ctx, 0, 1)
    assert np.all(ctx.store.force == 0.0)


def test_weak_field_seekers_are_trapped():
    """
    Atoms with m_eff > 0 oscillate in |B|; energy 1/2 m v² + m_eff |B| is
    conserved to integrator accuracy and the atom stays near the zero.
    """
    g = 1.0
    species = AtomSpecies("Rb87-trapped", mass=87.0, magnetic_moment=BOHR_MAGNETON)
    config = SimulationConfig(timestep=1e-6, gravity=(0.0, 0.0, 0.0), integrator="verlet",
                              magnetic_field=QuadrupoleField(g), species=[species])
    x0 = 1e-4
    with Simulation(config) as sim:
        sim.add_atoms([[x0, 0.0, 0.0]], [[0.0, 0.0, 0.0]], species)
        xs = []
        for _ in range(5000):
            sim.step()
            xs.append(sim.store.position[0, 0])
        v = sim.store.velocity[0]
        x = sim.store.position[0]
    e0 = BOHR_MAGNETON * g * x0
    e1 = 0.5 * species.mass_kg * v @ v + BOHR_MAGNETON * g * np.sqrt(x[0] ** 2 + x[1] ** 2 + 4 * x[2] ** 2)
    print("energy start", e0, "end", e1, "min x", min(xs))
    assert max(np.abs(xs)) <= x0 * 1.01
    assert min(xs) < 0.0
    assert abs(e1 - e0) / e0 < 1e-2


def test_dipole_force_points_to_intensity_maximum():
    """
    Red-detuned dipole beam along z:
      F = a grad I, a = (3 pi c² / 2 w0³)(Gamma/(w0 - w) + Gamma/(w0 + w)) > 0
      grad I = -4 I r_perp / w0²  ->  force towards the axis.
    """
    beam = DipoleBeam(direction=(0.0, 0.0, 1.0), waist=50e-6, power=1.0, wavelength=1064e-9)
    r = 20e-6
    ctx = _ctx([[r, 0.0, 0.0]], dipole_beams=[beam])
    apply_dipole_force(ctx, 0, 1)

    t = RB.transition
    w0, w = t.omega, 2 * np.pi * C / 1064e-9
    a = 3 * np.pi * C ** 2 / (2 * w0 ** 3) * (t.gamma / (w0 - w) + t.gamma / (w0 + w))
    intensity = beam.peak_intensity * np.exp(-2 * r * r / beam.waist ** 2)
    expected = -a * 4 * intensity * r / beam.waist ** 2
    fx = ctx.store.force[0, 0]
    print("dipole force", fx, "expected", expected)
    assert fx < 0
    assert np.isclose(fx, expected, rtol=1e-10, atol=0.0)
    assert ctx.store.force[0, 1] == 0.0
    assert ctx.store.force[0, 2] == 0.0


def test_dipole_trap_depth_scale():
    """U0 = a I0 for 1 W focused to 50 um at 1064 nm is a few tens of microkelvin for Rb."""
    t = RB.transition
    beam = DipoleBeam(direction=(0.0, 0.0, 1.0), waist=50e-6, power=1.0, wavelength=1064e-9)
    w0, w = t.omega, beam.omega
    a = 3 * np.pi * C ** 2 / (2 * w0 ** 3) * (t.gamma / (w0 - w) + t.gamma / (w0 + w))
    depth_uk = a * beam.peak_intensity / K_B * 1e6
    print("trap depth uK", depth_uk)
    assert 20.0 < depth_uk < 200.0
