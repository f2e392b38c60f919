"""
I/O functions for mesh ingestion and landmark array serialization.

Supports reading surface meshes through trimesh:
- STL (.stl), PLY (.ply), Wavefront (.obj), OFF (.off), glTF (.glb, .gltf)

Only the vertex array of a mesh is used. Vertex order and duplicate vertices
are preserved.

Landmark arrays are written either as NumPy archives (.npz) or as long-format
CSV tables (.csv), both with specimens on the first axis.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
import trimesh

from lithic_morph.errors import FormatError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

MESH_FORMATS = ("stl", "ply", "obj", "off", "glb", "gltf")

ARRAY_FORMATS = (".npz", ".csv")

CSV_COLUMNS = ["specimen", "group", "landmark", "x", "y", "z"]


def read_mesh(
    filepath: str | Path,
    file_format: str | None = None,
) -> NDArray[np.floating]:
    """Read the vertex point cloud of a mesh file.

    Args:
        filepath: Path to the mesh file
        file_format: One of ``MESH_FORMATS``. If None, detected from the
            file extension.

    Returns:
        Vertex coordinates, shape (n_points, 3)

    Raises:
        FileNotFoundError: If file does not exist
        FormatError: If the format is not supported, the file cannot be
            parsed, or it holds no vertices
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    if file_format is None:
        file_format = filepath.suffix.lower().lstrip(".")
    file_format = file_format.lower()

    if file_format not in MESH_FORMATS:
        raise FormatError(
            f"Unsupported mesh format: {file_format!r}. "
            f"Supported formats: {', '.join(MESH_FORMATS)}"
        )

    try:
        loaded = trimesh.load(str(filepath), file_type=file_format, process=False)
    except Exception as exc:
        raise FormatError(f"Could not parse {filepath}: {exc}") from exc

    if isinstance(loaded, trimesh.Scene):
        vertices = _scene_vertices(loaded)
        if len(vertices) == 0:
            raise FormatError(f"No geometry found in {filepath}")
    else:
        vertices = getattr(loaded, "vertices", None)
        if vertices is None:
            raise FormatError(f"No vertex array found in {filepath}")
        vertices = np.asarray(vertices)

    if vertices.ndim != 2 or vertices.shape[1] != 3 or len(vertices) == 0:
        raise FormatError(
            f"Invalid vertex array in {filepath}: shape {vertices.shape}"
        )

    logger.debug("Read %d vertices from %s", len(vertices), filepath)
    return np.array(vertices, dtype=float)


def _scene_vertices(scene: trimesh.Scene) -> NDArray[np.floating]:
    """Vertices of every geometry instance in a scene, in scene coordinates."""
    chunks = []
    for node_name in scene.graph.nodes_geometry:
        transform, geometry_name = scene.graph[node_name]
        vertices = getattr(scene.geometry[geometry_name], "vertices", None)
        if vertices is None or len(vertices) == 0:
            continue
        chunks.append(trimesh.transformations.transform_points(np.asarray(vertices), transform))
    if not chunks:
        return np.empty((0, 3))
    return np.vstack(chunks)


def find_mesh_files(directory: str | Path) -> list[Path]:
    """List the supported mesh files of a directory, sorted by name.

    Args:
        directory: Directory containing mesh files

    Returns:
        Sorted list of mesh file paths

    Raises:
        ValueError: If the directory holds no supported mesh files
    """
    directory = Path(directory)
    files = []
    if directory.is_dir():
        files = [
            f
            for f in directory.iterdir()
            if f.is_file() and f.suffix.lower().lstrip(".") in MESH_FORMATS
        ]

    if not files:
        raise ValueError(f"No mesh files found: {directory}")

    return sorted(files)


def get_specimen_names(files: Sequence[str | Path]) -> list[str]:
    """Get specimen names (file names without extension) for labeling."""
    return [Path(f).stem for f in files]


def group_labels(names: Sequence[str], pattern: str) -> list[str]:
    """Derive group labels from specimen names.

    The group is the first capture group of ``pattern`` or, if it has
    none, the whole match. E.g. ``r"^([A-Za-z]+)_"`` maps ``"exp_012"`` to
    ``"exp"``.

    Args:
        names: Specimen names
        pattern: Regular expression searched in each name

    Returns:
        Group label for each name

    Raises:
        ValueError: If a name does not match the pattern
    """
    regex = re.compile(pattern)
    labels = []
    for name in names:
        match = regex.search(name)
        if match is None:
            raise ValueError(f"Specimen name {name!r} does not match {pattern!r}")
        labels.append(match.group(1) if regex.groups else match.group(0))
    return labels


def write_landmark_array(
    landmarks: NDArray[np.floating],
    filepath: str | Path,
    names: Sequence[str],
    groups: Sequence[str] | None = None,
) -> None:
    """Write a landmark array to a file.

    Args:
        landmarks: Landmark coordinates, shape (n_landmarks, 3, n_specimens)
        filepath: Output file path (.npz or .csv)
        names: Specimen names, one per specimen
        groups: Optional group label for each specimen

    Raises:
        ValueError: If file format is not supported or labels do not match
            the number of specimens
    """
    filepath = Path(filepath)
    n_landmarks, n_dims, n_specimens = landmarks.shape

    if len(names) != n_specimens:
        raise ValueError(
            f"Expected {n_specimens} specimen names, got {len(names)}"
        )
    if groups is not None and len(groups) != n_specimens:
        raise ValueError(f"Expected {n_specimens} group labels, got {len(groups)}")

    # (n_specimens, n_landmarks, 3) on disk
    by_specimen = np.moveaxis(landmarks, 2, 0)

    suffix = filepath.suffix.lower()
    if suffix == ".npz":
        arrays = {"landmarks": by_specimen, "names": np.asarray(names, dtype=str)}
        if groups is not None:
            arrays["groups"] = np.asarray(groups, dtype=str)
        np.savez(filepath, **arrays)
    elif suffix == ".csv":
        labels = list(groups) if groups is not None else [""] * n_specimens
        df = pd.DataFrame(
            {
                "specimen": np.repeat(np.asarray(names, dtype=object), n_landmarks),
                "group": np.repeat(np.asarray(labels, dtype=object), n_landmarks),
                "landmark": np.tile(np.arange(n_landmarks), n_specimens),
                "x": by_specimen[:, :, 0].ravel(),
                "y": by_specimen[:, :, 1].ravel(),
                "z": by_specimen[:, :, 2].ravel(),
            },
            columns=CSV_COLUMNS,
        )
        df.to_csv(filepath, index=False)
    else:
        raise ValueError(
            f"Unsupported file format: {suffix}. Supported formats: {', '.join(ARRAY_FORMATS)}"
        )

    logger.info("Wrote %d specimens x %d landmarks to %s", n_specimens, n_landmarks, filepath)


def read_landmark_array(
    filepath: str | Path,
) -> tuple[NDArray[np.floating], list[str], list[str] | None]:
    """Read a landmark array written by ``write_landmark_array``.

    Args:
        filepath: Path to a .npz or .csv file

    Returns:
        Tuple of (landmarks with shape (n_landmarks, 3, n_specimens),
        specimen names, group labels or None)

    Raises:
        FileNotFoundError: If file does not exist
        ValueError: If file format is not supported or the table is ragged
    """
    filepath = Path(filepath)

    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")

    suffix = filepath.suffix.lower()
    if suffix == ".npz":
        with np.load(filepath) as archive:
            by_specimen = archive["landmarks"]
            names = [str(n) for n in archive["names"]]
            groups = [str(g) for g in archive["groups"]] if "groups" in archive.files else None
    elif suffix == ".csv":
        df = pd.read_csv(filepath, keep_default_na=False, dtype={"specimen": str, "group": str})
        missing = set(CSV_COLUMNS) - set(df.columns)
        if missing:
            raise ValueError(f"Missing columns in {filepath}: {sorted(missing)}")

        # Keep specimen order as written
        names = list(pd.unique(df["specimen"]))
        counts = df.groupby("specimen", sort=False).size()
        if counts.nunique() != 1:
            raise ValueError(f"Inconsistent landmark counts in {filepath}")
        n_landmarks = int(counts.iloc[0])

        df["order"] = pd.Categorical(df["specimen"], categories=names, ordered=True)
        df = df.sort_values(["order", "landmark"], kind="stable")
        by_specimen = df[["x", "y", "z"]].to_numpy(dtype=float).reshape(
            len(names), n_landmarks, 3
        )
        group_by_name = df.groupby("specimen", sort=False)["group"].first()
        groups = [str(group_by_name[n]) for n in names]
        if all(g == "" for g in groups):
            groups = None
    else:
        raise ValueError(
            f"Unsupported file format: {suffix}. Supported formats: {', '.join(ARRAY_FORMATS)}"
        )

    return np.moveaxis(by_specimen, 0, 2), names, groups
