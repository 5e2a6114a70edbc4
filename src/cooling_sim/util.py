# MIT License (see LICENSE)
"""
Vector helpers for per-atom arrays and seeded random streams.

Per-atom vectors are stored as float64 arrays of shape (N, 3); the helpers
here operate row-wise so systems can work on whole atom ranges at once.
"""
from __future__ import annotations

import numpy as np


def f64(x) -> np.ndarray:
    """Convert any array-like to a float64 numpy array."""
    return np.array(x, dtype=np.float64)


def vec3(x, name: str = "vector") -> np.ndarray:
    """Convert an array-like to a float64 3-vector, raising ValueError on bad shape."""
    v = f64(x)
    if v.shape != (3,):
        raise ValueError(f"{name} must have 3 components, got shape {v.shape}")
    return v


def unit(v: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    """
    Return the unit vector along v.

    Returns the zero vector if |v| < eps to avoid division by zero.
    """
    n = float(np.linalg.norm(v))
    if n < eps:
        return np.zeros_like(v, dtype=np.float64)
    return v / n


def row_norms(v: np.ndarray) -> np.ndarray:
    """Euclidean norm of every row of an (N, 3) array."""
    return np.sqrt(np.einsum("ij,ij->i", v, v))


def perpendicular_distance2(points: np.ndarray, origin: np.ndarray, direction: np.ndarray) -> np.ndarray:
    """
    Squared distance of each point from the line through origin along direction.

    ``direction`` must be a unit vector.
    """
    rel = points - origin
    along = rel @ direction
    return np.maximum(np.einsum("ij,ij->i", rel, rel) - along * along, 0.0)


def orthonormal_basis(direction: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Two unit vectors perpendicular to ``direction`` and to each other.

    Used to build directions in a cone or on a surface around an axis.
    """
    d = unit(direction)
    helper = np.array([1.0, 0.0, 0.0]) if abs(d[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
    e1 = unit(np.cross(d, helper))
    e2 = np.cross(d, e1)
    return e1, e2


def random_unit_vectors(rng: np.random.Generator, n: int) -> np.ndarray:
    """
    Draw n directions uniformly distributed on the unit sphere.

    Uses cos(theta) uniform in [-1, 1] and phi uniform in [0, 2 pi).
    """
    cos_t = rng.uniform(-1.0, 1.0, n)
    phi = rng.uniform(0.0, 2.0 * np.pi, n)
    sin_t = np.sqrt(1.0 - cos_t * cos_t)
    return np.column_stack((sin_t * np.cos(phi), sin_t * np.sin(phi), cos_t))


def finite_rows(*arrays: np.ndarray) -> np.ndarray:
    """Boolean mask of rows that are finite in every given (N, k) array."""
    ok = None
    for a in arrays:
        row_ok = np.isfinite(a).all(axis=1) if a.ndim == 2 else np.isfinite(a)
        ok = row_ok if ok is None else ok & row_ok
    return ok


def stream_rng(seed: int, step: int, stream: int, chunk: int = 0) -> np.random.Generator:
    """
    Deterministic generator for one (step, stream, chunk) work item.

    Every stochastic system draws from its own stream per chunk of atoms, so
    results are reproducible for a fixed seed regardless of how chunks are
    scheduled across worker threads.
    """
    return np.random.default_rng([seed, step, stream, chunk])
