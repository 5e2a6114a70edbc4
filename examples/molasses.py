# examples/molasses.py
# Rubidium cloud in 3D optical molasses cooling towards the Doppler limit.
import numpy as np
from cooling_sim import AtomSpecies, BufferedSink, OneShotSource, Simulation, SimulationConfig, setup_logging
from cooling_sim.core import kinetic_temperature, molasses_temperature
from cooling_sim.fields import molasses_beams

setup_logging()

rb = AtomSpecies.rubidium87()
t = rb.transition
detuning = -t.gamma / 2
saturation = 0.1

config = SimulationConfig(
    timestep=1e-6,
    seed=1,
    gravity=(0.0, 0.0, 0.0),
    beams=molasses_beams(t, detuning, saturation, waist=1e-2),
    sources=[OneShotSource(rb, number=2000, size=5e-4, temperature=1e-3)],
)

sink = BufferedSink()
with Simulation(config) as sim:
    report = sim.run(steps=3000, sink=sink, snapshot_every=250)

for snap in sink.frames:
    masses = np.full(len(snap), rb.mass_kg)
    print(f"t={1e3 * snap.time:6.3f} ms  T={1e6 * kinetic_temperature(snap.velocities, masses):8.1f} uK")
print("expected:", 1e6 * molasses_temperature(t, detuning, saturation), "uK")
print("Doppler limit:", 1e6 * t.doppler_temperature, "uK")
