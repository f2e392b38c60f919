"""
Run configuration for the slicing, outline and alignment stages.

All parameters are explicit fields of one immutable ``PipelineConfig``;
config files (JSON or YAML) map one-to-one onto those fields.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

ON_ERROR_CHOICES = ("raise", "exclude")


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable parameter set for one batch run.

    Attributes:
        slice_count: Number of slabs along the dominant axis (N).
        slice_half_width: Half-width of each slab window, in mesh units.
        harmonic_count: Elliptical Fourier harmonics per outline (H).
        hull_ratio: Concave hull ratio in [0, 1]; 1 gives the convex hull.
        allow_prealign_reflection: Allow mirrored principal axes when
            pre-aligning point clouds to the reference.
        procrustes_scale: Remove size during generalized alignment.
        procrustes_reflection: Allow reflections during landmark alignment.
        procrustes_rescale: Express aligned output in units of the mean
            centroid size instead of unit centroid size.
        tolerance: Convergence threshold on the change of the consensus shape.
        max_iterations: Iteration cap for generalized Procrustes alignment.
        on_error: ``"raise"`` aborts the batch on the first failing specimen,
            ``"exclude"`` drops it and records why.
        workers: Number of threads for the per-specimen landmark extraction.
    """

    slice_count: int = 50
    slice_half_width: float = 0.25
    harmonic_count: int = 12
    hull_ratio: float = 0.5
    allow_prealign_reflection: bool = True
    procrustes_scale: bool = True
    procrustes_reflection: bool = False
    procrustes_rescale: bool = True
    tolerance: float = 1e-6
    max_iterations: int = 100
    on_error: str = "raise"
    workers: int = 1

    def __post_init__(self) -> None:
        if self.slice_count < 2:
            raise ValueError(f"slice_count must be >= 2, got {self.slice_count}")
        if self.slice_half_width <= 0:
            raise ValueError(
                f"slice_half_width must be positive, got {self.slice_half_width}"
            )
        if self.harmonic_count < 1:
            raise ValueError(
                f"harmonic_count must be >= 1, got {self.harmonic_count}"
            )
        if not 0.0 <= self.hull_ratio <= 1.0:
            raise ValueError(f"hull_ratio must be in [0, 1], got {self.hull_ratio}")
        if self.tolerance < 0:
            raise ValueError(f"tolerance must be >= 0, got {self.tolerance}")
        if self.max_iterations < 1:
            raise ValueError(
                f"max_iterations must be >= 1, got {self.max_iterations}"
            )
        if self.on_error not in ON_ERROR_CHOICES:
            raise ValueError(
                f"on_error must be one of {ON_ERROR_CHOICES}, got {self.on_error!r}"
            )
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")

    @property
    def points_per_outline(self) -> int:
        """Outline points per slab (K = 2 * harmonic_count)."""
        return 2 * self.harmonic_count

    @property
    def landmark_count(self) -> int:
        """Landmarks per specimen (N * K)."""
        return self.slice_count * self.points_per_outline

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @staticmethod
    def from_dict(d: dict[str, Any]) -> PipelineConfig:
        """Build from a plain mapping; unknown keys are rejected."""
        known = {f.name: f for f in fields(PipelineConfig)}
        unknown = sorted(set(d) - set(known))
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

        values = {key: _coerce(key, known[key].type, value) for key, value in d.items()}
        return PipelineConfig(**values)

    @staticmethod
    def from_json(path: str | Path) -> PipelineConfig:
        """Load config from a JSON file."""
        with open(path, encoding="utf-8") as fh:
            d = json.load(fh)
        return PipelineConfig.from_dict(d or {})

    @staticmethod
    def from_yaml(path: str | Path) -> PipelineConfig:
        """Load config from a YAML file."""
        import yaml

        with open(path, encoding="utf-8") as fh:
            d = yaml.safe_load(fh)
        return PipelineConfig.from_dict(d or {})

    @staticmethod
    def load(path: str | Path) -> PipelineConfig:
        """Load config from a ``.json``, ``.yaml`` or ``.yml`` file."""
        suffix = Path(path).suffix.lower()
        if suffix == ".json":
            return PipelineConfig.from_json(path)
        if suffix in (".yaml", ".yml"):
            return PipelineConfig.from_yaml(path)
        raise ValueError(
            f"Unsupported config format: {suffix}. Supported formats: .json, .yaml"
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise back to a plain dictionary."""
        return asdict(self)


def _coerce(key: str, type_name: str, value: Any) -> Any:
    """Check a raw config value against its field type; bools are never numbers."""
    if type_name == "bool":
        if isinstance(value, bool):
            return value
    elif type_name == "int":
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
    elif type_name == "float":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif isinstance(value, str):
        return value
    raise ValueError(
        f"Configuration key {key!r} expects {type_name}, got {type(value).__name__} {value!r}"
    )
