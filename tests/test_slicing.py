"""Tests for slicing module."""

import numpy as np
import pytest

from lithic_morph import DegenerateSliceError, dominant_axis, slice_point_cloud, slice_positions


class TestSlicePositions:
    def test_endpoints_are_exact(self):
        positions = slice_positions(-3.7, 12.1, 50)

        assert positions[0] == -3.7
        assert positions[-1] == 12.1

    def test_strictly_increasing(self):
        positions = slice_positions(0.0, 1.0, 50)

        assert len(positions) == 50
        assert np.all(np.diff(positions) > 0)

    def test_interior_positions(self):
        positions = slice_positions(0.0, 10.0, 5)

        # c_i = min + i * (max - min) / N for 1 < i < N (1-based)
        np.testing.assert_array_almost_equal(positions, [0.0, 4.0, 6.0, 8.0, 10.0])

    def test_two_slices(self):
        np.testing.assert_array_equal(slice_positions(1.0, 2.0, 2), [1.0, 2.0])

    def test_single_slice_raises(self):
        with pytest.raises(ValueError):
            slice_positions(0.0, 1.0, 1)


class TestSlicePointCloud:
    def test_slab_count_and_order(self, ellipsoid_cloud):
        points = ellipsoid_cloud()

        slabs = slice_point_cloud(points, slice_count=12, half_width=0.3)

        assert len(slabs) == 12
        assert [s.index for s in slabs] == list(range(12))
        coordinates = np.array([s.coordinate for s in slabs])
        assert np.all(np.diff(coordinates) > 0)

    def test_first_and_last_match_extremes(self, ellipsoid_cloud):
        points = ellipsoid_cloud()

        slabs = slice_point_cloud(points, slice_count=8, half_width=0.3)

        assert slabs[0].coordinate == points[:, 0].min()
        assert slabs[-1].coordinate == points[:, 0].max()

    def test_boundary_windows_are_one_sided(self, ellipsoid_cloud):
        points = ellipsoid_cloud()
        lo, hi = points[:, 0].min(), points[:, 0].max()

        slabs = slice_point_cloud(points, slice_count=8, half_width=0.3)

        assert (slabs[0].lower, slabs[0].upper) == (lo, lo + 0.3)
        assert (slabs[-1].lower, slabs[-1].upper) == (hi - 0.3, hi)

    def test_interior_windows_are_centered(self, ellipsoid_cloud):
        points = ellipsoid_cloud()

        slabs = slice_point_cloud(points, slice_count=8, half_width=0.3)

        for slab in slabs[1:-1]:
            assert slab.lower == pytest.approx(slab.coordinate - 0.3)
            assert slab.upper == pytest.approx(slab.coordinate + 0.3)

    def test_slab_points_lie_in_window(self, ellipsoid_cloud):
        points = ellipsoid_cloud()

        slabs = slice_point_cloud(points, slice_count=8, half_width=0.3)

        for slab in slabs:
            mask = (points[:, 0] >= slab.lower) & (points[:, 0] <= slab.upper)
            assert slab.points.shape == (mask.sum(), 2)
            np.testing.assert_array_equal(slab.points, points[mask][:, 1:])

    def test_default_axis_is_largest_extent(self, ellipsoid_cloud):
        points = ellipsoid_cloud(radii=(1.0, 1.5, 4.0))

        assert dominant_axis(points) == 2
        slabs = slice_point_cloud(points, slice_count=5, half_width=0.3)
        assert slabs[-1].coordinate == points[:, 2].max()

    def test_explicit_axis(self, ellipsoid_cloud):
        points = ellipsoid_cloud()

        slabs = slice_point_cloud(points, slice_count=5, half_width=0.3, axis=1)

        assert slabs[0].coordinate == points[:, 1].min()
        mask = (points[:, 1] >= slabs[2].lower) & (points[:, 1] <= slabs[2].upper)
        np.testing.assert_array_equal(slabs[2].points, points[mask][:, [0, 2]])

    def test_overlapping_windows_are_kept(self, ellipsoid_cloud):
        points = ellipsoid_cloud()

        # Spacing is 6 / 10 = 0.6 and windows are 2.0 wide
        slabs = slice_point_cloud(points, slice_count=10, half_width=1.0)

        assert slabs[3].upper > slabs[4].lower
        shared = set(map(tuple, slabs[3].points)) & set(map(tuple, slabs[4].points))
        assert shared

    def test_does_not_modify_input(self, ellipsoid_cloud):
        points = ellipsoid_cloud()
        original = points.copy()

        slice_point_cloud(points, slice_count=6, half_width=0.3)

        np.testing.assert_array_equal(points, original)


class TestDegenerateSlices:
    def test_planar_cloud_raises(self):
        rng = np.random.default_rng(0)
        points = np.zeros((2000, 3))
        points[:, 0] = rng.uniform(0.0, 10.0, 2000)
        points[:, 1] = rng.uniform(0.0, 4.0, 2000)

        with pytest.raises(DegenerateSliceError):
            slice_point_cloud(points, slice_count=10, half_width=0.5)

    def test_zero_extent_along_axis_raises(self):
        rng = np.random.default_rng(0)
        points = np.zeros((500, 3))
        points[:, :2] = rng.uniform(-1.0, 1.0, (500, 2))

        with pytest.raises(DegenerateSliceError, match="zero extent") as excinfo:
            slice_point_cloud(points, slice_count=10, half_width=0.5, axis=2)

        assert excinfo.value.slab_index is None

    def test_empty_slab_raises_with_index(self, ellipsoid_cloud):
        points = ellipsoid_cloud()
        # Split the cloud into two lumps far apart along x
        points[:, 0] += np.where(points[:, 0] > 0, 20.0, 0.0)

        with pytest.raises(DegenerateSliceError, match="no points") as excinfo:
            slice_point_cloud(points, slice_count=10, half_width=0.3)

        assert excinfo.value.slab_index is not None
        assert 0 < excinfo.value.slab_index < 9

    def test_non_positive_half_width_raises(self, ellipsoid_cloud):
        with pytest.raises(ValueError):
            slice_point_cloud(ellipsoid_cloud(), slice_count=5, half_width=0.0)
