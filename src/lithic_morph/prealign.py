"""
Coarse orientation of raw point clouds onto a reference specimen.

Before slicing there is no landmark correspondence between specimens, so the
only orientation cue is the variance structure of each cloud. Every specimen
is rotated so that its principal axes coincide with those of the reference;
the sign of each axis is chosen by the smallest nearest-neighbour residual
against the reference cloud.

Known limitation: a specimen whose variance is nearly isotropic (e.g. a
rounded blank) has no stable principal axes, and its alignment is arbitrary.
Such specimens are reported with a warning, not corrected.
"""

from __future__ import annotations

import itertools
import logging
from typing import TYPE_CHECKING

import numpy as np
import scipy.linalg as sp
from scipy.spatial import cKDTree

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

# Ratio of consecutive principal variances above which axes are ambiguous
ISOTROPY_RATIO = 0.95

# Points used to score each sign candidate
MAX_RESIDUAL_POINTS = 5000


def principal_axes(
    points: NDArray[np.floating],
) -> tuple[NDArray[np.floating], NDArray[np.floating], NDArray[np.floating]]:
    """Compute the centroid and principal variance axes of a point cloud.

    Args:
        points: Point coordinates, shape (n_points, 3)

    Returns:
        Tuple of (centroid with shape (3,), axes with shape (3, 3) holding one
        unit axis per row in descending variance order, variances with
        shape (3,))
    """
    centroid = points.mean(axis=0)
    centered = points - centroid
    cov = np.dot(centered.T, centered) / len(points)
    variances, vectors = sp.eigh(cov)

    idx = np.argsort(variances)[::-1]
    return centroid, vectors[:, idx].T, variances[idx]


def is_near_isotropic(variances: NDArray[np.floating]) -> bool:
    """True if two consecutive principal variances are nearly equal."""
    if variances[0] <= 0:
        return True
    ratios = variances[1:] / np.maximum(variances[:-1], np.finfo(float).tiny)
    return bool(np.any(ratios > ISOTROPY_RATIO))


def prealign_to_reference(
    points: NDArray[np.floating],
    reference: NDArray[np.floating],
    reflection: bool = True,
) -> NDArray[np.floating]:
    """Rotate a point cloud onto the principal axes of a reference cloud.

    The cloud is centered, rotated so its principal axes map onto the
    reference's, and moved to the reference centroid. Of the eight axis sign
    combinations, the one with the smallest mean squared nearest-neighbour
    distance to the reference is kept. Combinations that mirror the cloud are
    skipped unless ``reflection`` is True.

    Args:
        points: Point cloud to align, shape (n_points, 3)
        reference: Reference point cloud, shape (m_points, 3)
        reflection: Allow mirrored solutions

    Returns:
        Aligned copy of ``points``
    """
    ref_centroid, ref_axes, _ = principal_axes(reference)
    centroid, axes, variances = principal_axes(points)

    if is_near_isotropic(variances):
        logger.warning(
            "Near-isotropic point cloud (variances %s): principal axes are "
            "ambiguous and the pre-alignment may be arbitrary",
            np.array2string(variances, precision=4),
        )

    # Coordinates in the cloud's own principal frame
    local = np.dot(points - centroid, axes.T)

    tree = cKDTree(reference - ref_centroid)
    sample = local[_sample_indices(len(local), MAX_RESIDUAL_POINTS)]
    base_det = np.linalg.det(axes) * np.linalg.det(ref_axes)

    best_signs = None
    best_residual = np.inf
    for signs in itertools.product((1.0, -1.0), repeat=3):
        signs = np.array(signs)
        if not reflection and base_det * np.prod(signs) < 0:
            continue
        candidate = np.dot(sample * signs, ref_axes)
        distances, _ = tree.query(candidate)
        residual = float(np.mean(distances**2))
        if residual < best_residual:
            best_residual = residual
            best_signs = signs

    logger.debug("Pre-alignment signs %s, residual %.6g", best_signs, best_residual)
    return np.dot(local * best_signs, ref_axes) + ref_centroid


def prealign_batch(
    clouds: Sequence[NDArray[np.floating]],
    reference_index: int,
    reflection: bool = True,
) -> list[NDArray[np.floating]]:
    """Pre-align every point cloud of a batch onto one reference specimen.

    Args:
        clouds: Point clouds, each of shape (n_points_i, 3)
        reference_index: Index of the reference specimen in ``clouds``
        reflection: Allow mirrored solutions

    Returns:
        List of aligned clouds in input order; the reference is returned
        unmodified

    Raises:
        IndexError: If ``reference_index`` is out of range
    """
    if not -len(clouds) <= reference_index < len(clouds):
        raise IndexError(
            f"Reference index {reference_index} out of range for {len(clouds)} specimens"
        )
    reference_index %= len(clouds)
    reference = clouds[reference_index]

    aligned = []
    for i, cloud in enumerate(clouds):
        if i == reference_index:
            aligned.append(reference)
        else:
            aligned.append(prealign_to_reference(cloud, reference, reflection=reflection))
    return aligned


def _sample_indices(n: int, limit: int) -> NDArray[np.integer]:
    """Evenly strided indices, at most ``limit`` of them."""
    if n <= limit:
        return np.arange(n)
    return np.linspace(0, n - 1, limit).astype(int)
