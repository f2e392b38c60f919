"""
Exception types raised by the lithic-morph pipeline.

Per-specimen failures (``FormatError``, ``DegenerateSliceError``) are fatal
for the specimen they occur in. ``AlignmentNonconvergence`` is a warning
category: the aligner still returns its best result.
"""

from __future__ import annotations


class LithicMorphError(Exception):
    """Base class for all lithic-morph errors."""


class FormatError(LithicMorphError, ValueError):
    """A mesh file could not be parsed or exposes no usable vertex array."""


class DegenerateSliceError(LithicMorphError):
    """A slab cannot produce an outline.

    Attributes:
        slab_index: Index of the failing slab, or None when the failure
            concerns the whole point cloud (e.g. zero extent along the
            slicing axis).
    """

    def __init__(self, message: str, slab_index: int | None = None):
        super().__init__(message)
        self.slab_index = slab_index


class AlignmentNonconvergence(LithicMorphError, UserWarning):
    """Generalized Procrustes alignment hit its iteration cap."""
