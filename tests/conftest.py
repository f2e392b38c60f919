"""Shared synthetic geometry for the test suite."""

import numpy as np
import pytest


def random_rotation(seed):
    """Proper 3D rotation matrix drawn from a fixed seed."""
    rng = np.random.default_rng(seed)
    q, r = np.linalg.qr(rng.normal(size=(3, 3)))
    q = q * np.sign(np.diag(r))
    if np.linalg.det(q) < 0:
        q[:, 0] *= -1
    return q


def surface_points(radii, n_points, seed):
    """Points on the surface of an axis-aligned ellipsoid centered at the origin."""
    rng = np.random.default_rng(seed)
    directions = rng.normal(size=(n_points, 3))
    directions /= np.linalg.norm(directions, axis=1, keepdims=True)
    return directions * np.asarray(radii, dtype=float)


@pytest.fixture
def ellipsoid_cloud():
    """Factory for ellipsoid surface clouds: ellipsoid_cloud(radii, n_points, seed)."""

    def make(radii=(3.0, 2.0, 1.2), n_points=4000, seed=0):
        return surface_points(radii, n_points, seed)

    return make


@pytest.fixture
def small_config():
    """Pipeline configuration sized for fast tests."""
    from lithic_morph import PipelineConfig

    return PipelineConfig(slice_count=6, slice_half_width=0.3, harmonic_count=6)
