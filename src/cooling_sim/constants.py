# MIT License (see LICENSE)
"""
Physical constants used throughout the simulation.

All values are SI (CODATA 2018). Angular frequencies are in rad/s,
plain frequencies in Hz.
"""
from __future__ import annotations

# Reduced Planck constant, J·s
HBAR: float = 1.054571817e-34

# Boltzmann constant, J/K
K_B: float = 1.380649e-23

# Speed of light in vacuum, m/s
C: float = 299792458.0

# Atomic mass unit, kg
AMU: float = 1.66053906660e-27

# Bohr magneton, J/T
BOHR_MAGNETON: float = 9.2740100783e-24

# Vacuum permeability, N/A²
MU_0: float = 1.25663706212e-6

# Standard gravity, m/s²
G_EARTH: float = 9.80665
