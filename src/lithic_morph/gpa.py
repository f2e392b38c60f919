"""
Procrustes alignment of landmark stacks.

Two steps run in sequence over a landmark array of shape
(n_landmarks, 3, n_specimens):

1. ``rigid_align`` superimposes every specimen onto one reference specimen
   (or onto the group average) by least-squares rotation, removing the roll
   around the slicing axis that pre-alignment leaves unresolved.
2. ``generalized_procrustes`` iterates alignment to a consensus shape until
   the consensus stabilizes.

Landmark indices encode correspondence by construction, so no
correspondence search is done. Based on Dryden and Mardia (2016)
"Statistical Shape Analysis".
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
import scipy.linalg as sp

from lithic_morph.errors import AlignmentNonconvergence

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


@dataclass
class GPAResult:
    """Result of Generalized Procrustes Analysis.

    Attributes:
        aligned: Aligned landmark coordinates, shape (n_landmarks, n_dims, n_specimens)
        mean_shape: Consensus shape after alignment, shape (n_landmarks, n_dims)
        centroid_sizes: Centroid size of each specimen before alignment
        converged: False if the iteration cap was reached first
        iterations: Number of consensus updates performed
    """

    aligned: NDArray[np.floating]
    mean_shape: NDArray[np.floating]
    centroid_sizes: NDArray[np.floating]
    converged: bool
    iterations: int


def center(shape: NDArray[np.floating]) -> NDArray[np.floating]:
    """Center a shape by subtracting the centroid."""
    return shape - shape.mean(axis=0)


def scale(shape: NDArray[np.floating]) -> NDArray[np.floating]:
    """Scale a shape to unit Frobenius norm; all-zero shapes are returned as is."""
    norm = np.linalg.norm(shape)
    if norm == 0:
        return shape
    return shape / norm


def centroid_size(shape: NDArray[np.floating]) -> float:
    """Square root of the summed squared landmark distances to the centroid."""
    return float(np.linalg.norm(center(shape)))


def align(
    shape: NDArray[np.floating],
    reference: NDArray[np.floating],
    reflection: bool = False,
    scaling: bool = False,
) -> NDArray[np.floating]:
    """Rotate (and optionally scale) a shape onto a reference shape.

    Both shapes are expected to be centered. The rotation minimizing the
    summed squared landmark distances comes from the SVD of the
    cross-covariance matrix; without ``reflection`` the solution is
    restricted to proper rotations.

    Args:
        shape: Shape to align, shape (n_landmarks, n_dims)
        reference: Reference shape to align to, shape (n_landmarks, n_dims)
        reflection: Allow an improper rotation (mirror image)
        scaling: Also apply the least-squares isotropic scale factor

    Returns:
        Aligned copy of ``shape``
    """
    u, s, vt = sp.svd(np.dot(reference.T, shape))
    signs = np.ones(len(s))
    if not reflection and np.linalg.det(np.dot(vt.T, u.T)) < 0:
        signs[-1] = -1.0
    rotation = np.dot(vt.T * signs, u.T)
    aligned = np.dot(shape, rotation)

    if scaling:
        norm = np.sum(shape**2)
        if norm > 0:
            aligned *= np.sum(s * signs) / norm
    return aligned


def mean_shape(landmarks: NDArray[np.floating]) -> NDArray[np.floating]:
    """Mean configuration over the specimen axis (n_landmarks, n_dims, n_specimens)."""
    return landmarks.mean(axis=2)


def procrustes_distance(
    landmarks: NDArray[np.floating],
    reference: NDArray[np.floating],
) -> NDArray[np.floating]:
    """Compute Procrustes distances from each specimen to a reference shape.

    Args:
        landmarks: Aligned coordinates, shape (n_landmarks, n_dims, n_specimens)
        reference: Reference shape (e.g. the consensus), shape (n_landmarks, n_dims)

    Returns:
        Array of Procrustes distances, shape (n_specimens,)
    """
    diff = landmarks - reference[:, :, np.newaxis]
    return np.sqrt(np.sum(diff**2, axis=(0, 1)))


def rigid_align(
    landmarks: NDArray[np.floating],
    reference: int | None = None,
    scaling: bool = False,
    reflection: bool = False,
) -> NDArray[np.floating]:
    """Superimpose all specimens onto one reference configuration.

    Each specimen is centered and rotated (optionally scaled) onto the
    centered reference, then moved to the reference centroid. With
    ``reference=None`` the target is the average of the centered
    specimens, placed at the origin.

    Args:
        landmarks: Landmark coordinates, shape (n_landmarks, n_dims, n_specimens).
            Will be copied, not modified in place.
        reference: Index of the reference specimen, or None for the group average
        scaling: Also fit an isotropic scale factor
        reflection: Allow mirror images

    Returns:
        Aligned landmark coordinates, same shape as ``landmarks``

    Raises:
        IndexError: If ``reference`` is out of range
    """
    aligned = landmarks.copy()
    n_specimens = aligned.shape[2]

    if reference is None:
        centered = aligned - aligned.mean(axis=0, keepdims=True)
        target = mean_shape(centered)
        origin = np.zeros(aligned.shape[1])
    else:
        if not -n_specimens <= reference < n_specimens:
            raise IndexError(
                f"Reference index {reference} out of range for {n_specimens} specimens"
            )
        reference %= n_specimens
        origin = aligned[:, :, reference].mean(axis=0)
        target = center(aligned[:, :, reference])

    for i in range(n_specimens):
        if i == reference:
            continue
        shape = center(aligned[:, :, i])
        aligned[:, :, i] = (
            align(shape, target, reflection=reflection, scaling=scaling) + origin
        )

    return aligned


def generalized_procrustes(
    landmarks: NDArray[np.floating],
    scale: bool = True,
    reflection: bool = False,
    max_iterations: int = 100,
    tolerance: float = 1e-6,
    rescale: bool = True,
) -> GPAResult:
    """Perform Generalized Procrustes Analysis on a set of landmark configurations.

    The algorithm iteratively:
    1. Centers (and optionally scales) each specimen
    2. Aligns all specimens to the current consensus shape
    3. Recomputes the consensus shape
    4. Repeats until the consensus changes by less than ``tolerance``

    Reaching ``max_iterations`` first is not an error: the last result is
    returned with ``converged=False`` and an ``AlignmentNonconvergence``
    warning is issued.

    Args:
        landmarks: Landmark coordinates, shape (n_landmarks, n_dims, n_specimens).
            Will be copied, not modified in place.
        scale: If True (default), scale specimens to unit centroid size.
            If False, sizes are kept.
        reflection: Allow mirror images during alignment
        max_iterations: Maximum number of consensus updates
        tolerance: Convergence threshold for consensus shape change
        rescale: With ``scale``, multiply the output by the mean centroid
            size so coordinates stay in specimen units

    Returns:
        GPAResult containing aligned coordinates, consensus shape, centroid
        sizes and convergence status
    """
    aligned = landmarks.copy()
    n_landmarks, n_dims, n_specimens = aligned.shape

    centroid_sizes = np.array(
        [centroid_size(aligned[:, :, i]) for i in range(n_specimens)]
    )

    for i in range(n_specimens):
        aligned[:, :, i] = center(aligned[:, :, i])
        if scale:
            aligned[:, :, i] = _scale_shape(aligned[:, :, i])

    # Initial alignment to first specimen
    aligned = _procrustes_align_all(aligned[:, :, 0], aligned, scale=scale, reflection=reflection)
    current_mean = _normalize_mean(mean_shape(aligned), scale)

    converged = False
    iterations = 0
    diff = np.inf
    while iterations < max_iterations:
        aligned = _procrustes_align_all(
            current_mean, aligned, scale=scale, reflection=reflection
        )
        new_mean = _normalize_mean(mean_shape(aligned), scale)

        diff = np.linalg.norm(current_mean - new_mean)
        current_mean = new_mean
        iterations += 1
        logger.debug("GPA iteration %d: consensus change %.3g", iterations, diff)

        if diff < tolerance:
            converged = True
            break

    if not converged:
        message = (
            f"Procrustes alignment did not converge within {max_iterations} "
            f"iterations (last consensus change {diff:.3g}, tolerance {tolerance:.3g})"
        )
        logger.warning(message)
        warnings.warn(message, AlignmentNonconvergence, stacklevel=2)

    if scale and rescale:
        size = centroid_sizes.mean()
        aligned *= size
        current_mean = current_mean * size

    return GPAResult(
        aligned=aligned,
        mean_shape=current_mean,
        centroid_sizes=centroid_sizes,
        converged=converged,
        iterations=iterations,
    )


def _scale_shape(shape: NDArray[np.floating]) -> NDArray[np.floating]:
    """Internal scale function (avoids name collision with scale parameter)."""
    norm = np.linalg.norm(shape)
    if norm == 0:
        return shape
    return shape / norm


def _normalize_mean(
    shape: NDArray[np.floating],
    scale: bool,
) -> NDArray[np.floating]:
    if scale:
        return _scale_shape(center(shape))
    return center(shape)


def _procrustes_align_all(
    reference: NDArray[np.floating],
    landmarks: NDArray[np.floating],
    scale: bool = True,
    reflection: bool = False,
) -> NDArray[np.floating]:
    """Align all specimens to a reference shape."""
    n_specimens = landmarks.shape[2]
    ref = _normalize_mean(reference, scale)

    for i in range(n_specimens):
        landmarks[:, :, i] = center(
            align(landmarks[:, :, i], ref, reflection=reflection)
        )

    return landmarks
