# MIT License (see LICENSE)
"""
Numerical integrators for atom trajectories.

Both schemes hold the accumulated force constant over the step and are
deterministic: identical inputs give bit-identical outputs. All randomness
lives in the recoil system, which runs before integration.

Available integrators:
- semi_implicit_euler: v += a dt, then x += v dt (symplectic Euler)
- velocity_verlet: x += v dt + a dt² / 2, then v += a dt

Reference:
    Semi-implicit Euler: https://en.wikipedia.org/wiki/Semi-implicit_Euler_method
    Velocity Verlet: https://en.wikipedia.org/wiki/Verlet_integration#Velocity_Verlet
"""
from __future__ import annotations
from typing import Callable

import numpy as np

from .context import StepContext


def semi_implicit_euler(pos: np.ndarray, vel: np.ndarray, force: np.ndarray, mass: np.ndarray, dt: float) -> None:
    """
    Advance (N, 3) position and velocity slices in place.

    Args:
        pos: Positions, modified in place.
        vel: Velocities, modified in place.
        force: Accumulated forces.
        mass: (N,) masses.
        dt: Timestep.
    """
    vel += (force / mass[:, None]) * dt
    pos += vel * dt


def velocity_verlet(pos: np.ndarray, vel: np.ndarray, force: np.ndarray, mass: np.ndarray, dt: float) -> None:
    """
    Velocity Verlet with the force held over the step.

    Reduces to the exact ballistic solution for constant force.
    """
    acc = force / mass[:, None]
    pos += vel * dt + 0.5 * acc * dt * dt
    vel += acc * dt


INTEGRATORS: dict[str, Callable[..., None]] = {
    "euler": semi_implicit_euler,
    "verlet": velocity_verlet,
}


def integrate(ctx: StepContext, lo: int, hi: int, scheme: str = "euler") -> None:
    """Integrate rows ``[lo, hi)`` and reset their force accumulator."""
    store = ctx.store
    try:
        step_fn = INTEGRATORS[scheme]
    except KeyError:
        raise ValueError(f"Unknown integrator: {scheme}") from None
    step_fn(store.position[lo:hi], store.velocity[lo:hi], store.force[lo:hi], store.mass[lo:hi], ctx.dt)
    store.clear_forces(lo, hi)
