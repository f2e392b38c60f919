"""
Outline extraction from noisy cross-sections.

Each slab's 2D points are reduced to a closed, ordered outline in two steps:

1. A concave hull (shapely) gives an ordered, non-self-intersecting
   perimeter with an arbitrary number of vertices.
2. An elliptical Fourier fit of that perimeter, followed by reconstruction,
   re-expresses it as a fixed number of points sampled uniformly in the
   curve parameter.

The perimeter is oriented counter-clockwise and starts where the ray from the
hull centroid along the first in-plane axis crosses it, so outlines of
different slabs and specimens share direction and start phase.

Elliptical Fourier analysis follows Kuhl and Giardina (1982) "Elliptic
Fourier features of a closed contour".
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import shapely
from shapely.geometry import LineString, MultiPoint, Point, Polygon
from shapely.geometry.polygon import orient

from lithic_morph.errors import DegenerateSliceError
from lithic_morph.slicing import check_slab_points

if TYPE_CHECKING:
    from numpy.typing import NDArray


def concave_hull(
    points: NDArray[np.floating],
    ratio: float = 0.5,
    slab_index: int | None = None,
) -> NDArray[np.floating]:
    """Compute the concave hull perimeter of a 2D point set.

    Args:
        points: 2D points, shape (n_points, 2)
        ratio: Concavity in [0, 1]; 1 gives the convex hull, smaller values
            follow the points more closely
        slab_index: Slab index reported in errors

    Returns:
        Hull vertices in counter-clockwise order without the closing
        duplicate, starting on the +x ray from the hull centroid,
        shape (n_vertices, 2)

    Raises:
        DegenerateSliceError: If the points are fewer than 3 distinct, are
            collinear, or the hull encloses no area
    """
    check_slab_points(points, slab_index)

    hull = shapely.concave_hull(MultiPoint(points), ratio=ratio, allow_holes=False)
    if hull.geom_type != "Polygon" or hull.area <= 0:
        raise DegenerateSliceError(
            f"Slab {slab_index} hull is a {hull.geom_type} without area", slab_index
        )

    return _start_at_first_axis(orient(hull, sign=1.0))


def elliptical_fourier(
    contour: NDArray[np.floating],
    harmonics: int = 12,
) -> tuple[NDArray[np.floating], NDArray[np.floating]]:
    """Fit elliptical Fourier descriptors to a closed contour.

    Args:
        contour: Ordered contour vertices, shape (n_vertices, 2). The contour
            is closed implicitly; a repeated first vertex at the end is
            accepted.
        harmonics: Number of harmonics (H)

    Returns:
        Tuple of (coefficients with shape (harmonics, 4) holding
        ``[a_n, b_n, c_n, d_n]`` per row, locus ``[A0, C0]`` with shape (2,))

    Raises:
        ValueError: If the contour has fewer than 3 distinct vertices
    """
    if harmonics < 1:
        raise ValueError(f"harmonics must be >= 1, got {harmonics}")

    closed = _close_contour(contour)
    dxy = np.diff(closed, axis=0)
    dt = np.sqrt((dxy**2).sum(axis=1))

    # Zero-length segments carry no direction
    keep = dt > 0
    dxy = dxy[keep]
    dt = dt[keep]
    if len(dt) < 3:
        raise ValueError("Contour needs at least 3 distinct vertices")

    t = np.concatenate([[0.0], np.cumsum(dt)])
    period = t[-1]

    orders = np.arange(1, harmonics + 1)
    phi = (2 * np.pi * t / period) * orders[:, np.newaxis]
    d_cos = np.cos(phi[:, 1:]) - np.cos(phi[:, :-1])
    d_sin = np.sin(phi[:, 1:]) - np.sin(phi[:, :-1])

    dx_dt = dxy[:, 0] / dt
    dy_dt = dxy[:, 1] / dt
    consts = period / (2 * orders**2 * np.pi**2)

    coeffs = np.zeros((harmonics, 4))
    coeffs[:, 0] = consts * np.sum(dx_dt * d_cos, axis=1)
    coeffs[:, 1] = consts * np.sum(dx_dt * d_sin, axis=1)
    coeffs[:, 2] = consts * np.sum(dy_dt * d_cos, axis=1)
    coeffs[:, 3] = consts * np.sum(dy_dt * d_sin, axis=1)

    # Locus (DC component)
    xi = np.cumsum(dxy[:, 0]) - dx_dt * t[1:]
    delta = np.cumsum(dxy[:, 1]) - dy_dt * t[1:]
    dt2 = np.diff(t**2)
    a0 = np.sum(dx_dt / 2 * dt2 + xi * dt) / period + closed[0, 0]
    c0 = np.sum(dy_dt / 2 * dt2 + delta * dt) / period + closed[0, 1]

    return coeffs, np.array([a0, c0])


def reconstruct_outline(
    coeffs: NDArray[np.floating],
    locus: NDArray[np.floating],
    n_points: int,
) -> NDArray[np.floating]:
    """Evaluate elliptical Fourier descriptors at uniformly spaced parameters.

    Args:
        coeffs: Coefficients, shape (harmonics, 4)
        locus: ``[A0, C0]``, shape (2,)
        n_points: Number of points to reconstruct

    Returns:
        Outline points at t = 0, 1/n, ..., (n-1)/n of the period,
        shape (n_points, 2)
    """
    t = np.arange(n_points) / n_points
    orders = np.arange(1, coeffs.shape[0] + 1)
    angles = 2 * np.pi * np.outer(t, orders)
    cos, sin = np.cos(angles), np.sin(angles)

    outline = np.empty((n_points, 2))
    outline[:, 0] = locus[0] + np.dot(cos, coeffs[:, 0]) + np.dot(sin, coeffs[:, 1])
    outline[:, 1] = locus[1] + np.dot(cos, coeffs[:, 2]) + np.dot(sin, coeffs[:, 3])
    return outline


def extract_outline(
    points: NDArray[np.floating],
    harmonics: int = 12,
    ratio: float = 0.5,
    slab_index: int | None = None,
) -> NDArray[np.floating]:
    """Extract a fixed-size outline from a slab's 2D points.

    Args:
        points: 2D points of one slab, shape (n_points, 2)
        harmonics: Elliptical Fourier harmonics (H)
        ratio: Concave hull ratio
        slab_index: Slab index reported in errors

    Returns:
        Closed, ordered outline of K = 2 * harmonics points, shape (K, 2)

    Raises:
        DegenerateSliceError: If no hull can be computed from ``points``
    """
    hull = concave_hull(points, ratio=ratio, slab_index=slab_index)
    coeffs, locus = elliptical_fourier(hull, harmonics=harmonics)
    return reconstruct_outline(coeffs, locus, 2 * harmonics)


def _start_at_first_axis(hull: Polygon) -> NDArray[np.floating]:
    """Open vertex ring of ``hull`` starting where the ray from the centroid
    along +x leaves the polygon.

    Falls back to the vertex closest to polar angle zero if the ray misses
    the perimeter (centroid outside a strongly concave hull).
    """
    ring = hull.exterior
    vertices = np.asarray(ring.coords)[:-1]
    centroid = np.array(hull.centroid.coords[0])

    reach = 2 * np.ptp(vertices, axis=0).max() + 1.0
    ray = LineString([centroid, centroid + [reach, 0.0]])
    crossings = shapely.get_coordinates(ring.intersection(ray))

    if len(crossings) == 0:
        offsets = vertices - centroid
        angles = np.arctan2(offsets[:, 1], offsets[:, 0])
        return np.roll(vertices, -int(np.argmin(np.abs(angles))), axis=0)

    start = crossings[np.argmax(crossings[:, 0])]
    start_distance = ring.project(Point(start))

    segment_lengths = np.linalg.norm(np.diff(np.asarray(ring.coords), axis=0), axis=1)
    distances = np.concatenate([[0.0], np.cumsum(segment_lengths)[:-1]])

    after = vertices[distances > start_distance]
    before = vertices[distances < start_distance]
    return np.vstack([start, after, before])


def _close_contour(contour: NDArray[np.floating]) -> NDArray[np.floating]:
    """Append the first vertex unless the contour is already closed."""
    contour = np.asarray(contour, dtype=float)
    if np.array_equal(contour[0], contour[-1]):
        return contour
    return np.vstack([contour, contour[:1]])
