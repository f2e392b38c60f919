"""
Principal Component Analysis (PCA) of aligned landmark stacks.

Projects Procrustes-aligned specimens into a low-dimensional shape space.
The resulting scores are what group-difference tests (e.g. PERMANOVA in an
external statistics package) consume; ``scores_table`` packages them with
specimen names and group labels.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
import scipy.linalg as sp

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray


@dataclass
class PCAResult:
    """Result of Principal Component Analysis on shape data.

    Attributes:
        scores: PC scores for each specimen, shape (n_specimens, n_components)
        vectors: Principal component vectors (loadings), shape (n_coords, n_components)
        values: Eigenvalues in descending order, shape (n_components,)
        variance_explained: Proportion of variance explained by each PC
        mean: Mean shape used for centering, shape (n_landmarks, n_dims)
    """

    scores: NDArray[np.floating]
    vectors: NDArray[np.floating]
    values: NDArray[np.floating]
    variance_explained: NDArray[np.floating]
    mean: NDArray[np.floating]


def flatten_landmarks(
    landmarks: NDArray[np.floating],
) -> NDArray[np.floating]:
    """Flatten a landmark array to one row per specimen.

    Args:
        landmarks: Shape (n_landmarks, n_dims, n_specimens)

    Returns:
        Array of shape (n_specimens, n_landmarks * n_dims); each row lists
        x, y, z of landmark 0, then of landmark 1, and so on
    """
    n_landmarks, n_dims, n_specimens = landmarks.shape
    return np.moveaxis(landmarks, 2, 0).reshape(n_specimens, n_landmarks * n_dims)


def pca(
    landmarks: NDArray[np.floating],
    n_components: int | None = None,
) -> PCAResult:
    """Perform Principal Component Analysis on aligned landmark data.

    Components are ordered by decreasing explained variance (PC1 first).
    Each component's sign is fixed so that its largest-magnitude loading is
    positive, which makes the projection deterministic.

    Args:
        landmarks: Aligned coordinates, shape (n_landmarks, n_dims, n_specimens)
        n_components: Number of components to retain. If None, retains
            min(n_specimens, n_landmarks * n_dims) components.

    Returns:
        PCAResult containing scores, loadings, eigenvalues, and variance explained
    """
    n_landmarks, n_dims, n_specimens = landmarks.shape
    n_coords = n_landmarks * n_dims

    if n_components is None:
        n_components = min(n_specimens, n_coords)

    flat = flatten_landmarks(landmarks)
    mean_vec = flat.mean(axis=0)
    centered = flat - mean_vec

    # Right singular vectors of the centered data are the covariance eigenvectors
    _, singular, vt = sp.svd(centered, full_matrices=False)
    eigenvalues = singular**2 / n_specimens
    eigenvectors = vt.T

    pivots = np.argmax(np.abs(eigenvectors), axis=0)
    signs = np.sign(eigenvectors[pivots, np.arange(eigenvectors.shape[1])])
    signs[signs == 0] = 1.0
    eigenvectors = eigenvectors * signs

    total_variance = eigenvalues.sum()
    eigenvalues = eigenvalues[:n_components]
    eigenvectors = eigenvectors[:, :n_components]

    if total_variance > 0:
        variance_explained = eigenvalues / total_variance
    else:
        variance_explained = np.zeros_like(eigenvalues)

    return PCAResult(
        scores=np.dot(centered, eigenvectors),
        vectors=eigenvectors,
        values=eigenvalues,
        variance_explained=variance_explained,
        mean=mean_vec.reshape(n_landmarks, n_dims),
    )


def warp_along_pc(
    mean_shape: NDArray[np.floating],
    pca_result: PCAResult,
    pc: int,
    magnitude: float,
) -> NDArray[np.floating]:
    """Warp the mean shape along a principal component.

    Args:
        mean_shape: Mean shape, shape (n_landmarks, n_dims)
        pca_result: PCA result containing eigenvectors
        pc: Principal component number (1-indexed, like PC1, PC2, etc.)
        magnitude: How far to warp along the PC (in units of standard deviation)

    Returns:
        Warped shape, shape (n_landmarks, n_dims)

    Raises:
        ValueError: If ``pc`` is not a retained component
    """
    pc_index = _component_index(pc, pca_result)

    value = pca_result.values[pc_index]
    std = np.sqrt(value) if value > 0 else 1.0
    shift = pca_result.vectors[:, pc_index] * magnitude * std

    return mean_shape + shift.reshape(mean_shape.shape)


def project_to_pc_space(
    landmarks: NDArray[np.floating],
    pca_result: PCAResult,
    components: Sequence[int] = (1, 2),
) -> NDArray[np.floating]:
    """Project landmark configurations onto selected principal components.

    Args:
        landmarks: Landmark coordinates, shape (n_landmarks, n_dims, n_specimens)
        pca_result: PCA result to use for projection
        components: PC numbers (1-indexed) to project on

    Returns:
        Coordinates, shape (n_specimens, len(components))
    """
    indices = [_component_index(pc, pca_result) for pc in components]
    centered = flatten_landmarks(landmarks) - pca_result.mean.reshape(-1)
    return np.dot(centered, pca_result.vectors[:, indices])


def scores_table(
    pca_result: PCAResult,
    names: Sequence[str],
    groups: Sequence[str] | None = None,
) -> pd.DataFrame:
    """Tabulate PC scores with specimen names and group labels.

    Args:
        pca_result: PCA result
        names: Specimen names, in the order of ``pca_result.scores``
        groups: Optional group label for each specimen

    Returns:
        DataFrame with columns ``specimen``, ``group`` (if given) and
        ``PC1`` ... ``PCn``
    """
    n_specimens, n_components = pca_result.scores.shape
    if len(names) != n_specimens:
        raise ValueError(f"Expected {n_specimens} specimen names, got {len(names)}")

    df = pd.DataFrame(
        pca_result.scores,
        columns=[f"PC{i + 1}" for i in range(n_components)],
    )
    if groups is not None:
        if len(groups) != n_specimens:
            raise ValueError(f"Expected {n_specimens} group labels, got {len(groups)}")
        df.insert(0, "group", list(groups))
    df.insert(0, "specimen", list(names))
    return df


def _component_index(pc: int, pca_result: PCAResult) -> int:
    """Convert a 1-indexed PC number to a column index."""
    n_components = pca_result.vectors.shape[1]
    if pc < 1 or pc > n_components:
        raise ValueError(f"PC {pc} is out of range. Available: 1-{n_components}")
    return pc - 1
