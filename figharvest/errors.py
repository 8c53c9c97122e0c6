"""Failure taxonomy for the extraction pipeline.

None of these abort a batch: they are raised inside a stage and absorbed at
the job or document boundary, where they become log lines and result records.
"""

from __future__ import annotations


class FigureHarvestError(Exception):
    """Base error for everything raised by the pipeline stages."""


class ToolUnavailable(FigureHarvestError):
    """Raised when a strategy needs a tool the capability probe did not find."""


class ToolExecutionFailure(FigureHarvestError):
    """Raised when an external job exits non-zero or leaves no output behind."""


class UndecodableImage(FigureHarvestError):
    """Raised when a raster cannot be loaded for classification."""


class OCRUnavailable(FigureHarvestError):
    """Raised when the OCR engine cannot be initialised."""


class UnsupportedFileType(FigureHarvestError):
    """Raised when no acquisition strategy applies to a document."""
