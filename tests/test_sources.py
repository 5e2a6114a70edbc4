# MIT License (see LICENSE)
import numpy as np
import pytest

from cooling_sim.constants import K_B
from cooling_sim.errors import ConfigurationError, ResourceExhaustion
from cooling_sim.sources import (
    EmissionRate,
    OneShotSource,
    Oven,
    SourceManager,
    SurfaceSource,
    flux_weighted_speeds,
)
from cooling_sim.store import EntityStore
from cooling_sim.types import AtomSpecies

RB = AtomSpecies.rubidium87()
TOKEN = AtomSpecies("token", mass=1.0, mass_unit=1.0)


def _emit(source, steps, max_atoms=None, seed=0):
    store = EntityStore()
    manager = SourceManager([source], {source.species: 0}, max_atoms=max_atoms)
    counts = [manager.emit(store, step, seed) for step in range(steps)]
    return store, manager, np.array(counts)


def test_deterministic_rate_carries_fraction():
    """Rate 0.25 atoms/step emits exactly one atom every fourth step."""
    oven = Oven(TOKEN, rate=EmissionRate(0.25), speed=1.0)
    store, manager, counts = _emit(oven, 8)
    assert counts.tolist() == [0, 0, 0, 1, 0, 0, 0, 1]
    assert manager.emitted == 2 == len(store)


def test_emission_mean_is_rate_times_steps():
    """Deterministic rate lambda over M steps emits lambda M atoms (up to the carry)."""
    oven = Oven(TOKEN, rate=EmissionRate(2.7), speed=1.0)
    store, _, counts = _emit(oven, 100)
    assert abs(counts.sum() - 270) <= 1


def test_poisson_emission_statistics():
    """
    Poisson(lambda) counts: mean lambda and variance lambda.
    """
    lam, steps = 4.0, 4000
    oven = Oven(TOKEN, rate=EmissionRate(lam, poisson=True), speed=1.0)
    _, _, counts = _emit(oven, steps, seed=5)
    mean, var = counts.mean(), counts.var()
    print("poisson mean", mean, "var", var)
    # Standard errors: sqrt(lam / M) for the mean, ~lam sqrt(2 / M) for the variance
    assert abs(mean - lam) < 5 * np.sqrt(lam / steps)
    assert abs(var - lam) < 5 * lam * np.sqrt(2.0 / steps)


def test_emission_is_reproducible_for_a_seed():
    oven = Oven(RB, rate=EmissionRate(3.0, poisson=True), temperature=400.0, max_angle=0.1)
    a, _, _ = _emit(oven, 20, seed=9)
    b, _, _ = _emit(oven, 20, seed=9)
    assert np.array_equal(a.position, b.position)
    assert np.array_equal(a.velocity, b.velocity)


def test_resource_cap_truncates_and_warns():
    oven = Oven(TOKEN, rate=EmissionRate(3.0), speed=1.0, name="main")
    store = EntityStore()
    manager = SourceManager([oven], {TOKEN: 0}, max_atoms=5)
    assert manager.emit(store, 0, 0) == 3
    with pytest.warns(ResourceExhaustion, match="main"):
        assert manager.emit(store, 1, 0) == 2
    with pytest.warns(ResourceExhaustion):
        assert manager.emit(store, 2, 0) == 0
    assert len(store) == 5
    assert manager.truncated == 4


def test_oven_collimation_and_aperture():
    oven = Oven(RB, rate=EmissionRate(1.0), position=(0.0, 0.0, 1.0), direction=(0.0, 0.0, 1.0),
                temperature=450.0, aperture_radius=1e-3, max_angle=0.05, max_speed=600.0)
    rng = np.random.default_rng(1)
    pos, vel = oven.sample(rng, 5000)
    speed = np.linalg.norm(vel, axis=1)
    cos_theta = vel[:, 2] / speed
    assert np.all(cos_theta >= np.cos(0.05) - 1e-12)
    assert np.all(np.hypot(pos[:, 0], pos[:, 1]) <= 1e-3 + 1e-15)
    assert np.allclose(pos[:, 2], 1.0)
    assert speed.max() <= 600.0


def test_flux_weighted_mean_speed():
    """
    f(v) ~ v³ exp(-m v² / 2 k_B T) has mean speed (3/4) sqrt(2 pi k_B T / m).
    """
    T, m = 400.0, RB.mass_kg
    speeds = flux_weighted_speeds(np.random.default_rng(4), 40000, T, m)
    expected = 0.75 * np.sqrt(2.0 * np.pi * K_B * T / m)
    print("mean speed", speeds.mean(), "expected", expected)
    assert abs(speeds.mean() - expected) / expected < 0.01


def test_surface_source_emits_away_from_surface():
    src = SurfaceSource(RB, rate=EmissionRate(1.0), center=(0.0, 0.0, 0.0), normal=(0.0, -1.0, 0.0),
                        half_size=(0.01, 0.02), temperature=300.0)
    pos, vel = src.sample(np.random.default_rng(2), 2000)
    assert np.all(vel[:, 1] <= 0.0)
    assert np.allclose(pos[:, 1], 0.0)
    assert np.linalg.norm(pos, axis=1).max() <= np.hypot(0.01, 0.02) + 1e-15


def test_one_shot_source_window():
    cloud = OneShotSource(RB, number=50, start_step=2, size=1e-4, temperature=1e-4)
    store, _, counts = _emit(cloud, 5)
    assert counts.tolist() == [0, 0, 50, 0, 0]


def test_start_stop_window():
    oven = Oven(TOKEN, rate=EmissionRate(1.0), speed=1.0, start_step=2, stop_step=4)
    _, _, counts = _emit(oven, 6)
    assert counts.tolist() == [0, 0, 1, 1, 0, 0]


def test_source_validation():
    with pytest.raises(ConfigurationError):
        EmissionRate(-1.0)
    with pytest.raises(ConfigurationError):
        Oven(TOKEN, direction=(0.0, 0.0, 0.0), speed=1.0)
    with pytest.raises(ConfigurationError):
        Oven(TOKEN, temperature=0.0)
    with pytest.raises(ConfigurationError):
        SurfaceSource(TOKEN, half_size=(1.0, -1.0))


def test_one_shot_respects_stop_step():
    cloud = OneShotSource(RB, number=10, start_step=2, stop_step=2, temperature=1e-4)
    _, _, counts = _emit(cloud, 4)
    assert counts.tolist() == [0, 0, 0, 0]


@pytest.mark.parametrize("kwargs", [
    dict(center=(0.0, 0.0)),
    dict(mean_velocity=(1.0, 2.0, 3.0, 4.0)),
    dict(size=(1e-3, 1e-3)),
    dict(number=-1),
])
def test_one_shot_validation(kwargs):
    with pytest.raises(ConfigurationError) as exc:
        OneShotSource(RB, **kwargs)
    assert exc.value.component == "OneShotSource"
