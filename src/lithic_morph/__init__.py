"""
lithic-morph - 3D geometric morphometrics of stone tools.

Turns unoriented 3D scans of lithic artifacts into comparable landmark
configurations: each scan is pre-aligned to a reference specimen, cut into
parallel slabs, and every slab outline is re-sampled to a fixed number of
points with elliptical Fourier analysis. The stacked outlines are aligned
with Generalized Procrustes Analysis (GPA) and can be projected into a shape
space with Principal Component Analysis (PCA).

Example usage:
    >>> import lithic_morph as lm
    >>>
    >>> # Slice, outline and align all scans of a directory
    >>> config = lm.PipelineConfig(slice_count=50, harmonic_count=12)
    >>> result = lm.run_pipeline("scans/", reference="arch_017", config=config)
    >>>
    >>> # Shape space for external group-difference tests
    >>> pca_result = lm.pca(result.alignment.aligned)
    >>> table = lm.scores_table(pca_result, result.names)
"""

from lithic_morph.config import PipelineConfig
from lithic_morph.errors import (
    AlignmentNonconvergence,
    DegenerateSliceError,
    FormatError,
    LithicMorphError,
)
from lithic_morph.gpa import (
    GPAResult,
    align,
    center,
    centroid_size,
    generalized_procrustes,
    mean_shape,
    procrustes_distance,
    rigid_align,
    scale,
)
from lithic_morph.io import (
    find_mesh_files,
    get_specimen_names,
    group_labels,
    read_landmark_array,
    read_mesh,
    write_landmark_array,
)
from lithic_morph.landmarks import (
    assemble_landmark_stack,
    extract_landmark_array,
    extract_landmark_stacks,
    extract_landmarks,
    stack_specimens,
)
from lithic_morph.outline import (
    concave_hull,
    elliptical_fourier,
    extract_outline,
    reconstruct_outline,
)
from lithic_morph.pca import (
    PCAResult,
    flatten_landmarks,
    pca,
    project_to_pc_space,
    scores_table,
    warp_along_pc,
)
from lithic_morph.pipeline import Exclusion, PipelineResult, process_clouds, run_pipeline
from lithic_morph.prealign import prealign_batch, prealign_to_reference, principal_axes
from lithic_morph.slicing import Slab, dominant_axis, slice_point_cloud, slice_positions

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Configuration and errors
    "PipelineConfig",
    "LithicMorphError",
    "FormatError",
    "DegenerateSliceError",
    "AlignmentNonconvergence",
    # I/O functions
    "read_mesh",
    "find_mesh_files",
    "get_specimen_names",
    "group_labels",
    "write_landmark_array",
    "read_landmark_array",
    # Pre-alignment
    "principal_axes",
    "prealign_to_reference",
    "prealign_batch",
    # Slicing and outlines
    "Slab",
    "dominant_axis",
    "slice_positions",
    "slice_point_cloud",
    "concave_hull",
    "elliptical_fourier",
    "reconstruct_outline",
    "extract_outline",
    # Landmark stacks
    "assemble_landmark_stack",
    "extract_landmarks",
    "extract_landmark_stacks",
    "extract_landmark_array",
    "stack_specimens",
    # GPA functions
    "GPAResult",
    "generalized_procrustes",
    "rigid_align",
    "center",
    "scale",
    "align",
    "mean_shape",
    "centroid_size",
    "procrustes_distance",
    # PCA functions
    "PCAResult",
    "pca",
    "flatten_landmarks",
    "warp_along_pc",
    "project_to_pc_space",
    "scores_table",
    # Pipeline
    "Exclusion",
    "PipelineResult",
    "process_clouds",
    "run_pipeline",
]
