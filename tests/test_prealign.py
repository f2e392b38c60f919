"""Tests for prealign module."""

import logging

import numpy as np
import pytest
import trimesh

from conftest import random_rotation
from lithic_morph import prealign_batch, prealign_to_reference, principal_axes


@pytest.fixture
def anisotropic_cloud():
    rng = np.random.default_rng(7)
    points = rng.normal(size=(3000, 3)) * np.array([4.0, 2.0, 1.0])
    # Skew so that no axis flip is a symmetry of the cloud
    points[:, 0] += 0.3 * points[:, 1] ** 2
    points[:, 2] += 0.2 * points[:, 0] ** 2 / 4.0
    return points + np.array([10.0, -5.0, 2.0])


class TestPrincipalAxes:
    def test_axes_are_orthonormal(self, anisotropic_cloud):
        _, axes, _ = principal_axes(anisotropic_cloud)

        np.testing.assert_array_almost_equal(np.dot(axes, axes.T), np.eye(3))

    def test_variances_descending(self, anisotropic_cloud):
        _, _, variances = principal_axes(anisotropic_cloud)

        assert variances[0] >= variances[1] >= variances[2] > 0

    def test_centroid(self, anisotropic_cloud):
        centroid, _, _ = principal_axes(anisotropic_cloud)

        np.testing.assert_array_almost_equal(centroid, anisotropic_cloud.mean(axis=0))

    def test_dominant_axis_of_elongated_cloud(self):
        rng = np.random.default_rng(1)
        points = rng.normal(size=(2000, 3)) * np.array([1.0, 6.0, 2.0])

        _, axes, _ = principal_axes(points)

        assert abs(axes[0, 1]) > 0.99


class TestPrealignToReference:
    def test_reference_onto_itself_is_identity(self, anisotropic_cloud):
        aligned = prealign_to_reference(anisotropic_cloud, anisotropic_cloud)

        np.testing.assert_allclose(aligned, anisotropic_cloud, atol=1e-8)

    def test_recovers_rotated_and_translated_copy(self, anisotropic_cloud):
        centroid = anisotropic_cloud.mean(axis=0)
        moved = np.dot(anisotropic_cloud - centroid, random_rotation(11)) + 50.0

        aligned = prealign_to_reference(moved, anisotropic_cloud)

        np.testing.assert_allclose(aligned, anisotropic_cloud, atol=1e-6)

    def test_recovers_mirrored_copy_with_reflection(self, anisotropic_cloud):
        mirrored = anisotropic_cloud * np.array([-1.0, 1.0, 1.0])

        aligned = prealign_to_reference(mirrored, anisotropic_cloud, reflection=True)

        np.testing.assert_allclose(aligned, anisotropic_cloud, atol=1e-6)

    def test_no_reflection_keeps_handedness(self, anisotropic_cloud):
        mirrored = anisotropic_cloud * np.array([-1.0, 1.0, 1.0])

        aligned = prealign_to_reference(mirrored, anisotropic_cloud, reflection=False)

        # A proper rotation cannot undo a mirror image
        assert not np.allclose(aligned, anisotropic_cloud, atol=1e-3)
        # Rigid motion preserves pairwise distances
        np.testing.assert_allclose(
            np.linalg.norm(aligned[1:] - aligned[0], axis=1),
            np.linalg.norm(mirrored[1:] - mirrored[0], axis=1),
            atol=1e-8,
        )

    def test_idempotent(self, anisotropic_cloud):
        rng = np.random.default_rng(5)
        other = rng.normal(size=(2500, 3)) * np.array([3.0, 1.5, 0.7])
        other[:, 0] += 0.4 * other[:, 1] ** 2
        other = np.dot(other, random_rotation(2))

        once = prealign_to_reference(other, anisotropic_cloud)
        twice = prealign_to_reference(once, anisotropic_cloud)

        np.testing.assert_allclose(twice, once, atol=1e-8)

    def test_does_not_modify_input(self, anisotropic_cloud):
        moved = np.dot(anisotropic_cloud, random_rotation(4))
        original = moved.copy()

        prealign_to_reference(moved, anisotropic_cloud)

        np.testing.assert_array_equal(moved, original)

    def test_near_isotropic_cloud_warns(self, anisotropic_cloud, caplog):
        # Icosphere vertices have an exactly isotropic covariance
        blob = trimesh.creation.icosphere(subdivisions=2).vertices * 2.0

        with caplog.at_level(logging.WARNING, logger="lithic_morph.prealign"):
            prealign_to_reference(blob, anisotropic_cloud)

        assert "Near-isotropic" in caplog.text


class TestPrealignBatch:
    def test_reference_left_unmodified(self, anisotropic_cloud):
        clouds = [
            np.dot(anisotropic_cloud, random_rotation(1)),
            anisotropic_cloud,
            np.dot(anisotropic_cloud, random_rotation(2)),
        ]

        aligned = prealign_batch(clouds, reference_index=1)

        assert aligned[1] is clouds[1]
        for cloud in aligned:
            np.testing.assert_allclose(cloud, anisotropic_cloud, atol=1e-6)

    def test_negative_reference_index(self, anisotropic_cloud):
        clouds = [np.dot(anisotropic_cloud, random_rotation(3)), anisotropic_cloud]

        aligned = prealign_batch(clouds, reference_index=-1)

        assert aligned[1] is clouds[1]

    def test_reference_index_out_of_range(self, anisotropic_cloud):
        with pytest.raises(IndexError):
            prealign_batch([anisotropic_cloud], reference_index=3)
