# examples/oven_beam.py
# Strontium oven beam slowed by a counter-propagating beam, counted by a detector.
import numpy as np
from cooling_sim import (
    AtomSpecies, Box, EmissionRate, GaussianBeam, Oven, Region, Simulation, SimulationConfig,
    VolumeRole, setup_logging,
)

setup_logging()

sr = AtomSpecies.strontium88()
t = sr.transition

config = SimulationConfig(
    timestep=2e-6,
    seed=7,
    sources=[Oven(sr, rate=EmissionRate(5.0, poisson=True), position=(-0.1, 0.0, 0.0),
                  direction=(1.0, 0.0, 0.0), temperature=800.0, aperture_radius=1e-3,
                  max_angle=0.01, name="oven")],
    beams=[GaussianBeam.from_saturation((-1.0, 0.0, 0.0), 2.0, -2 * np.pi * 200e6, t, waist=5e-3)],
    regions=[
        Region(Box((0.0, 0.0, 0.0), (0.11, 0.01, 0.01)), VolumeRole.BOUNDING),
        Region(Box((0.1, 0.0, 0.0), (0.005, 0.01, 0.01)), VolumeRole.DETECTING, name="probe"),
    ],
)

with Simulation(config) as sim:
    report = sim.run(steps=5000)
    speeds = np.linalg.norm(sim.store.velocity, axis=1)

print("status:", report.status, "atoms:", report.final_atom_count)
print("emitted:", report.emitted, "detected:", report.detected)
print("mean speed in flight:", speeds.mean() if speeds.size else 0.0, "m/s")
