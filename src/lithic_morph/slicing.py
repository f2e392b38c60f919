"""
Cross-sectional slicing of point clouds.

A point cloud is cut into a fixed number of parallel slabs along one
coordinate axis. Slab ``i`` (1-based) of ``N`` is represented by the
coordinate::

    c_1 = min
    c_N = max
    c_i = min + i * (max - min) / N      for 1 < i < N

The first and last slabs use one-sided windows anchored at the extremes
(``[min, min + w]`` and ``[max - w, max]``); interior slabs use
``[c_i - w, c_i + w]``. Interior windows are not checked against the slice
spacing, so neighbouring slabs may share points when ``2 * w`` exceeds it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from lithic_morph.errors import DegenerateSliceError

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Slab:
    """One cross-sectional slab of a point cloud.

    Attributes:
        index: Position of the slab along the slicing axis (0-based)
        coordinate: Representative coordinate along the slicing axis
        lower: Lower window bound along the slicing axis
        upper: Upper window bound along the slicing axis
        points: Points inside the window projected on the two remaining
            axes, shape (n_points, 2)
    """

    index: int
    coordinate: float
    lower: float
    upper: float
    points: NDArray[np.floating]


def dominant_axis(points: NDArray[np.floating]) -> int:
    """Index of the coordinate axis with the largest extent."""
    return int(np.argmax(np.ptp(points, axis=0)))


def slice_positions(
    minimum: float,
    maximum: float,
    slice_count: int,
) -> NDArray[np.floating]:
    """Representative coordinates of ``slice_count`` slabs over [minimum, maximum].

    Args:
        minimum: Lower end of the slicing range
        maximum: Upper end of the slicing range
        slice_count: Number of slabs, at least 2

    Returns:
        Strictly increasing coordinates, shape (slice_count,); the first and
        last equal ``minimum`` and ``maximum`` exactly
    """
    if slice_count < 2:
        raise ValueError(f"slice_count must be >= 2, got {slice_count}")

    step = (maximum - minimum) / slice_count
    positions = minimum + np.arange(1, slice_count + 1) * step
    positions[0] = minimum
    positions[-1] = maximum
    return positions


def slice_point_cloud(
    points: NDArray[np.floating],
    slice_count: int,
    half_width: float,
    axis: int | None = None,
) -> list[Slab]:
    """Partition a point cloud into parallel slabs.

    Args:
        points: Point cloud, shape (n_points, 3)
        slice_count: Number of slabs (N)
        half_width: Window half-width (w), in point cloud units
        axis: Slicing axis (0, 1 or 2). If None, the axis of largest extent.

    Returns:
        List of exactly ``slice_count`` slabs ordered along the axis

    Raises:
        DegenerateSliceError: If the cloud has no extent along the axis, or a
            slab holds fewer than 3 distinct or only collinear points
    """
    if half_width <= 0:
        raise ValueError(f"half_width must be positive, got {half_width}")
    if axis is None:
        axis = dominant_axis(points)

    values = points[:, axis]
    plane = np.delete(points, axis, axis=1)
    minimum = float(values.min())
    maximum = float(values.max())

    if not maximum > minimum:
        raise DegenerateSliceError(
            f"Point cloud has zero extent along axis {axis}; cannot slice"
        )

    positions = slice_positions(minimum, maximum, slice_count)
    slabs = []
    for i, coordinate in enumerate(positions):
        if i == 0:
            lower, upper = minimum, minimum + half_width
        elif i == slice_count - 1:
            lower, upper = maximum - half_width, maximum
        else:
            lower, upper = coordinate - half_width, coordinate + half_width

        mask = (values >= lower) & (values <= upper)
        subset = plane[mask]
        check_slab_points(subset, i)

        slabs.append(
            Slab(
                index=i,
                coordinate=float(coordinate),
                lower=float(lower),
                upper=float(upper),
                points=subset,
            )
        )
        logger.debug(
            "Slab %d at %.4f: %d points in [%.4f, %.4f]",
            i, coordinate, len(subset), lower, upper,
        )

    return slabs


def check_slab_points(points: NDArray[np.floating], slab_index: int | None = None) -> None:
    """Raise ``DegenerateSliceError`` unless ``points`` span an area.

    Args:
        points: 2D points, shape (n_points, 2)
        slab_index: Slab index reported in the error
    """
    if len(points) == 0:
        raise DegenerateSliceError(f"Slab {slab_index} contains no points", slab_index)

    distinct = np.unique(points, axis=0)
    if len(distinct) < 3:
        raise DegenerateSliceError(
            f"Slab {slab_index} has {len(distinct)} distinct points, need at least 3",
            slab_index,
        )

    centered = distinct - distinct.mean(axis=0)
    extent = np.abs(centered).max()
    if np.linalg.matrix_rank(centered, tol=extent * 1e-9) < 2:
        raise DegenerateSliceError(f"Slab {slab_index} points are collinear", slab_index)
