"""Tests for landmarks module."""

import numpy as np
import pytest

from lithic_morph import (
    DegenerateSliceError,
    PipelineConfig,
    assemble_landmark_stack,
    extract_landmark_array,
    extract_landmark_stacks,
    extract_landmarks,
    slice_positions,
    stack_specimens,
)


class TestAssembleLandmarkStack:
    def test_slab_major_order(self):
        outlines = np.arange(2 * 3 * 2, dtype=float).reshape(2, 3, 2)
        coordinates = np.array([-1.0, 1.0])

        stack = assemble_landmark_stack(outlines, coordinates)

        assert stack.shape == (6, 3)
        np.testing.assert_array_equal(stack[:3, :2], outlines[0])
        np.testing.assert_array_equal(stack[3:, :2], outlines[1])
        np.testing.assert_array_equal(stack[:, 2], [-1, -1, -1, 1, 1, 1])

    def test_rejects_3d_outlines(self):
        with pytest.raises(ValueError, match="2D"):
            assemble_landmark_stack(np.zeros((2, 4, 3)), np.zeros(2))

    def test_rejects_coordinate_count_mismatch(self):
        with pytest.raises(ValueError, match="slab coordinates"):
            assemble_landmark_stack(np.zeros((2, 4, 2)), np.zeros(3))


class TestStackSpecimens:
    def test_stack_shape(self):
        stacks = [np.full((5, 3), float(i)) for i in range(4)]

        landmarks = stack_specimens(stacks)

        assert landmarks.shape == (5, 3, 4)
        np.testing.assert_array_equal(landmarks[:, :, 2], stacks[2])

    def test_inconsistent_shapes_raise(self):
        with pytest.raises(ValueError, match="Inconsistent"):
            stack_specimens([np.zeros((5, 3)), np.zeros((6, 3))])

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            stack_specimens([])

    def test_two_column_stacks_raise(self):
        with pytest.raises(ValueError, match="3 columns"):
            stack_specimens([np.zeros((5, 2))])


class TestExtractLandmarks:
    def test_stack_shape(self, ellipsoid_cloud, small_config):
        stack = extract_landmarks(ellipsoid_cloud(), small_config)

        assert stack.shape == (small_config.landmark_count, 3)
        assert small_config.landmark_count == 6 * 12

    def test_third_column_holds_slice_positions(self, ellipsoid_cloud, small_config):
        points = ellipsoid_cloud()

        stack = extract_landmarks(points, small_config, axis=0)

        expected = slice_positions(points[:, 0].min(), points[:, 0].max(), 6)
        np.testing.assert_array_almost_equal(stack[:, 2], np.repeat(expected, 12))

    def test_outlines_lie_within_cross_sections(self, ellipsoid_cloud, small_config):
        points = ellipsoid_cloud(radii=(3.0, 2.0, 1.2))

        stack = extract_landmarks(points, small_config, axis=0)

        # In-plane columns are (y, z); nothing may leave the ellipsoid's bounds
        assert np.all(np.abs(stack[:, 0]) < 2.1)
        assert np.all(np.abs(stack[:, 1]) < 1.3)

    def test_planar_cloud_raises(self):
        rng = np.random.default_rng(3)
        points = np.column_stack([rng.uniform(0, 4, 500), rng.uniform(0, 2, 500), np.zeros(500)])

        with pytest.raises(DegenerateSliceError) as excinfo:
            extract_landmarks(points, PipelineConfig(slice_count=4, slice_half_width=0.3), axis=0)

        assert excinfo.value.slab_index == 0


class TestBatchExtraction:
    def test_parallel_matches_sequential(self, ellipsoid_cloud):
        clouds = [ellipsoid_cloud(seed=seed) for seed in range(4)]
        sequential = PipelineConfig(slice_count=6, slice_half_width=0.3, harmonic_count=6)
        parallel = PipelineConfig(slice_count=6, slice_half_width=0.3, harmonic_count=6, workers=3)

        np.testing.assert_array_equal(
            extract_landmark_array(clouds, parallel, axis=0),
            extract_landmark_array(clouds, sequential, axis=0),
        )

    def test_order_follows_input(self, ellipsoid_cloud, small_config):
        clouds = [ellipsoid_cloud(seed=seed) for seed in range(3)]

        forward = extract_landmark_array(clouds, small_config, axis=0)
        backward = extract_landmark_array(clouds[::-1], small_config, axis=0)

        np.testing.assert_array_equal(backward, forward[:, :, ::-1])

    def test_failure_reported_at_its_position(self, ellipsoid_cloud, small_config):
        rng = np.random.default_rng(5)
        planar = np.column_stack([rng.uniform(-3, 3, 800), rng.uniform(-2, 2, 800), np.zeros(800)])
        clouds = [ellipsoid_cloud(seed=0), planar, ellipsoid_cloud(seed=1)]

        results = extract_landmark_stacks(clouds, small_config, axis=0)

        assert isinstance(results[1], DegenerateSliceError)
        assert results[0].shape == (small_config.landmark_count, 3)
        assert results[2].shape == (small_config.landmark_count, 3)

    def test_landmark_array_raises_first_failure(self, ellipsoid_cloud, small_config):
        rng = np.random.default_rng(5)
        planar = np.column_stack([rng.uniform(-3, 3, 800), rng.uniform(-2, 2, 800), np.zeros(800)])

        with pytest.raises(DegenerateSliceError):
            extract_landmark_array([ellipsoid_cloud(), planar], small_config, axis=0)
