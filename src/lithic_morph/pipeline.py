"""
Batch pipeline from mesh files to Procrustes-aligned landmark stacks.

Stages:
    read_mesh -> prealign_batch -> slice / outline / stack (per specimen)
    -> stack_specimens -> rigid_align -> generalized_procrustes

Per-specimen stages are independent and may run in parallel; the batch only
synchronizes before alignment. Specimens that fail ingestion, slicing or
outline extraction either abort the batch (``on_error="raise"``) or are left
out with an ``Exclusion`` record (``on_error="exclude"``). The reference
specimen can never be excluded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from lithic_morph.config import PipelineConfig
from lithic_morph.errors import DegenerateSliceError, FormatError
from lithic_morph.gpa import GPAResult, generalized_procrustes, rigid_align
from lithic_morph.io import find_mesh_files, get_specimen_names, group_labels, read_mesh
from lithic_morph.landmarks import extract_landmark_stacks, stack_specimens
from lithic_morph.prealign import prealign_batch
from lithic_morph.slicing import dominant_axis

if TYPE_CHECKING:
    from collections.abc import Sequence

    import numpy as np
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Exclusion:
    """Record of a specimen left out of the batch.

    Attributes:
        name: Specimen name
        stage: ``"ingest"`` or ``"landmarks"``
        reason: Error message of the failure
    """

    name: str
    stage: str
    reason: str


@dataclass
class PipelineResult:
    """Output of one batch run.

    Attributes:
        names: Names of the specimens kept, in array order
        landmarks: Landmark stacks before alignment, shape
            (n_landmarks, 3, n_specimens)
        alignment: Procrustes alignment of ``landmarks``
        reference: Name of the reference specimen
        axis: Coordinate axis used for slicing
        groups: Group label per kept specimen, if a pattern was given
        exclusions: Specimens left out and why
    """

    names: list[str]
    landmarks: NDArray[np.floating]
    alignment: GPAResult
    reference: str
    axis: int
    groups: list[str] | None = None
    exclusions: list[Exclusion] = field(default_factory=list)


def resolve_reference(names: Sequence[str], reference: str | int) -> int:
    """Index of the reference specimen, given by name or by index."""
    if isinstance(reference, str):
        if reference in names:
            return list(names).index(reference)
        if reference.lstrip("-").isdigit():
            reference = int(reference)
        else:
            raise ValueError(f"Reference specimen {reference!r} not found")
    if not -len(names) <= reference < len(names):
        raise IndexError(
            f"Reference index {reference} out of range for {len(names)} specimens"
        )
    return reference % len(names)


def process_clouds(
    clouds: Sequence[NDArray[np.floating]],
    names: Sequence[str],
    reference: str | int,
    config: PipelineConfig,
    exclusions: list[Exclusion] | None = None,
) -> PipelineResult:
    """Turn raw point clouds into aligned landmark stacks.

    Args:
        clouds: Raw point clouds, each of shape (n_points_i, 3)
        names: Specimen name for each cloud
        reference: Reference specimen name or index
        config: Run configuration
        exclusions: Exclusions recorded by earlier stages, extended in place

    Returns:
        PipelineResult without group labels

    Raises:
        DegenerateSliceError: If the reference fails, or any specimen fails
            with ``on_error="raise"``
    """
    if len(clouds) != len(names):
        raise ValueError(f"Got {len(clouds)} point clouds for {len(names)} names")
    exclusions = [] if exclusions is None else exclusions
    ref_index = resolve_reference(names, reference)
    ref_name = names[ref_index]

    logger.info("Pre-aligning %d specimens to %s", len(clouds), ref_name)
    prealigned = prealign_batch(
        clouds, ref_index, reflection=config.allow_prealign_reflection
    )
    axis = dominant_axis(clouds[ref_index])

    logger.info(
        "Extracting landmarks: %d slabs x %d points along axis %d",
        config.slice_count, config.points_per_outline, axis,
    )
    results = extract_landmark_stacks(prealigned, config, axis=axis)

    kept_names = []
    stacks = []
    for name, result in zip(names, results):
        if isinstance(result, DegenerateSliceError):
            if name == ref_name or config.on_error == "raise":
                raise result
            _exclude(exclusions, name, "landmarks", result)
            continue
        kept_names.append(name)
        stacks.append(result)

    landmarks = stack_specimens(stacks)

    logger.info("Aligning %d specimens", len(kept_names))
    # Rotation only: GPA measures centroid sizes on its input
    rigid = rigid_align(
        landmarks,
        reference=kept_names.index(ref_name),
        reflection=config.procrustes_reflection,
    )
    alignment = generalized_procrustes(
        rigid,
        scale=config.procrustes_scale,
        reflection=config.procrustes_reflection,
        max_iterations=config.max_iterations,
        tolerance=config.tolerance,
        rescale=config.procrustes_rescale,
    )

    return PipelineResult(
        names=kept_names,
        landmarks=landmarks,
        alignment=alignment,
        reference=ref_name,
        axis=axis,
        exclusions=exclusions,
    )


def run_pipeline(
    source: str | Path | Sequence[str | Path],
    reference: str | int,
    config: PipelineConfig | None = None,
    group_pattern: str | None = None,
) -> PipelineResult:
    """Run the full pipeline over a directory or list of mesh files.

    Args:
        source: Directory of mesh files, or a list of mesh file paths
        reference: Reference specimen, by name (file name without
            extension) or by index into the sorted file list
        config: Run configuration; defaults to ``PipelineConfig()``
        group_pattern: Regular expression deriving group labels from
            specimen names (see ``group_labels``)

    Returns:
        PipelineResult

    Raises:
        FormatError: If the reference cannot be read, or any file fails with
            ``on_error="raise"``
        DegenerateSliceError: See ``process_clouds``
    """
    config = config or PipelineConfig()

    if isinstance(source, (str, Path)):
        files = find_mesh_files(source)
    else:
        files = sorted(Path(f) for f in source)
    names = get_specimen_names(files)
    ref_name = names[resolve_reference(names, reference)]

    exclusions: list[Exclusion] = []
    clouds = []
    kept_names = []
    for name, filepath in zip(names, files):
        try:
            clouds.append(read_mesh(filepath))
        except FormatError as exc:
            if name == ref_name or config.on_error == "raise":
                raise
            _exclude(exclusions, name, "ingest", exc)
            continue
        kept_names.append(name)
    logger.info("Read %d of %d mesh files", len(clouds), len(files))

    result = process_clouds(clouds, kept_names, ref_name, config, exclusions=exclusions)

    if group_pattern is not None:
        result.groups = group_labels(result.names, group_pattern)
    return result


def _exclude(exclusions: list[Exclusion], name: str, stage: str, exc: Exception) -> None:
    exclusions.append(Exclusion(name=name, stage=stage, reason=str(exc)))
    logger.warning("Excluding specimen %s (%s): %s", name, stage, exc)
