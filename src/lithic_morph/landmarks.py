"""
Landmark stacks built from slab outlines.

A specimen's landmark stack holds the K outline points of each of its N
slabs, slab after slab, with the slab coordinate as the third column.
Landmark ``i`` therefore sits at the same outline phase of the same relative
slab in every specimen, which is the correspondence the Procrustes step
relies on.

Stacks of all specimens are joined into one array of shape
(n_landmarks, 3, n_specimens).
"""

from __future__ import annotations

import concurrent.futures
import logging
from typing import TYPE_CHECKING

import numpy as np

from lithic_morph.config import PipelineConfig
from lithic_morph.errors import DegenerateSliceError
from lithic_morph.outline import extract_outline
from lithic_morph.slicing import slice_point_cloud

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


def assemble_landmark_stack(
    outlines: NDArray[np.floating],
    coordinates: NDArray[np.floating],
) -> NDArray[np.floating]:
    """Combine per-slab outlines into one 3D landmark configuration.

    Args:
        outlines: Outline points per slab, shape (n_slabs, n_points, 2)
        coordinates: Representative coordinate of each slab, shape (n_slabs,)

    Returns:
        Landmark stack, shape (n_slabs * n_points, 3), slab-major
    """
    outlines = np.asarray(outlines, dtype=float)
    coordinates = np.asarray(coordinates, dtype=float)
    n_slabs, n_points, n_dims = outlines.shape

    if n_dims != 2:
        raise ValueError(f"Outlines must be 2D, got {n_dims} columns")
    if coordinates.shape != (n_slabs,):
        raise ValueError(
            f"Expected {n_slabs} slab coordinates, got shape {coordinates.shape}"
        )

    stack = np.empty((n_slabs * n_points, 3))
    stack[:, :2] = outlines.reshape(-1, 2)
    stack[:, 2] = np.repeat(coordinates, n_points)
    return stack


def extract_landmarks(
    points: NDArray[np.floating],
    config: PipelineConfig,
    axis: int | None = None,
) -> NDArray[np.floating]:
    """Run slicing and outline extraction for one specimen.

    Args:
        points: Pre-aligned point cloud, shape (n_points, 3)
        config: Slicing and outline parameters
        axis: Slicing axis; if None, the axis of largest extent

    Returns:
        Landmark stack, shape (slice_count * 2 * harmonic_count, 3)

    Raises:
        DegenerateSliceError: If any slab cannot produce an outline
    """
    slabs = slice_point_cloud(
        points,
        slice_count=config.slice_count,
        half_width=config.slice_half_width,
        axis=axis,
    )

    outlines = np.empty((config.slice_count, config.points_per_outline, 2))
    coordinates = np.empty(config.slice_count)
    for slab in slabs:
        outlines[slab.index] = extract_outline(
            slab.points,
            harmonics=config.harmonic_count,
            ratio=config.hull_ratio,
            slab_index=slab.index,
        )
        coordinates[slab.index] = slab.coordinate

    return assemble_landmark_stack(outlines, coordinates)


def stack_specimens(
    stacks: Sequence[NDArray[np.floating]],
) -> NDArray[np.floating]:
    """Join per-specimen landmark stacks into one landmark array.

    Args:
        stacks: Landmark stacks, each of shape (n_landmarks, 3)

    Returns:
        Landmark array, shape (n_landmarks, 3, n_specimens)

    Raises:
        ValueError: If no stacks are given or their shapes differ
    """
    if not stacks:
        raise ValueError("No landmark stacks to join")

    n_landmarks, n_dims = stacks[0].shape
    if n_dims != 3:
        raise ValueError(f"Landmark stacks must have 3 columns, got {n_dims}")

    landmarks = np.zeros((n_landmarks, n_dims, len(stacks)))
    for i, stack in enumerate(stacks):
        if stack.shape != (n_landmarks, n_dims):
            raise ValueError(
                f"Inconsistent landmark stack shape for specimen {i}: "
                f"expected {(n_landmarks, n_dims)}, got {stack.shape}"
            )
        landmarks[:, :, i] = stack

    return landmarks


def extract_landmark_stacks(
    clouds: Sequence[NDArray[np.floating]],
    config: PipelineConfig,
    axis: int | None = None,
) -> list[NDArray[np.floating] | DegenerateSliceError]:
    """Extract landmark stacks for many specimens.

    Specimens are independent, so the work is mapped over a thread pool
    when ``config.workers > 1``. Results are joined by input position, so the
    output does not depend on completion order.

    Args:
        clouds: Pre-aligned point clouds
        config: Slicing and outline parameters
        axis: Slicing axis shared by all specimens

    Returns:
        For each cloud, in input order, either its landmark stack or the
        DegenerateSliceError its extraction raised
    """
    results: list[NDArray[np.floating] | DegenerateSliceError] = [None] * len(clouds)

    def extract_single(idx):
        try:
            return idx, extract_landmarks(clouds[idx], config, axis=axis)
        except DegenerateSliceError as exc:
            return idx, exc

    if config.workers == 1:
        for i in range(len(clouds)):
            _, results[i] = extract_single(i)
        return results

    with concurrent.futures.ThreadPoolExecutor(max_workers=config.workers) as executor:
        futures = [executor.submit(extract_single, i) for i in range(len(clouds))]
        for future in concurrent.futures.as_completed(futures):
            idx, result = future.result()
            results[idx] = result
            logger.debug("Specimen %d extracted", idx)

    return results


def extract_landmark_array(
    clouds: Sequence[NDArray[np.floating]],
    config: PipelineConfig,
    axis: int | None = None,
) -> NDArray[np.floating]:
    """Extract and join landmark stacks for a batch, failing on any error.

    Args:
        clouds: Pre-aligned point clouds
        config: Slicing and outline parameters
        axis: Slicing axis shared by all specimens

    Returns:
        Landmark array, shape (n_landmarks, 3, n_specimens)

    Raises:
        DegenerateSliceError: If any specimen cannot be sliced or outlined
    """
    results = extract_landmark_stacks(clouds, config, axis=axis)
    for result in results:
        if isinstance(result, DegenerateSliceError):
            raise result
    return stack_specimens(results)
