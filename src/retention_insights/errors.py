"""Exceptions raised by the retention analyzer.

- RetentionAnalysisError: base for every analyzer failure
- MalformedRetentionData: the export cannot be read as a retention table
- AnalysisExecutionError: unexpected failure while computing the analysis

Too few usable rows is not an error; the analyzer returns an empty result.
"""

from __future__ import annotations


class RetentionAnalysisError(Exception):
    """Base exception for all retention-analysis failures."""


class MalformedRetentionData(RetentionAnalysisError):
    """The raw export has no usable time/retention columns or values."""


class AnalysisExecutionError(RetentionAnalysisError):
    """Unexpected failure during parsing or statistics."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)
