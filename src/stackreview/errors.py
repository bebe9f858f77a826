# src/stackreview/errors.py
"""
Error taxonomy for the stack review core.

Extraction and export failures are terminal: the caller receives either a
complete success value or one of these errors, never a partial result.
An archive with zero recognized images is NOT an error (see
ExtractionResult.is_empty).
"""
from __future__ import annotations


class StackReviewError(RuntimeError):
    """Base class for all terminal stack review failures."""


class ArchiveReadError(StackReviewError):
    """Raised when an archive cannot be decompressed or read."""

    def __init__(self, cause: str):
        self.cause = cause
        super().__init__(f"Failed to read archive: {cause}")


class ExportUnavailable(StackReviewError):
    """Raised when an edit session cannot produce its export."""


class HandoffError(StackReviewError):
    """Raised when a batch violates its modality template."""


class ConfigError(ValueError):
    """Raised when a configuration struct is built with invalid values."""
