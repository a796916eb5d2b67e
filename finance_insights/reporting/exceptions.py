"""
Reporting Errors

Errors raised by the reporting engine. Records with missing numeric fields
are never an error; they are read as zero.
"""

from typing import Optional


class ReportingError(Exception):
    """Base class for reporting engine errors"""


class InvalidWindow(ReportingError, ValueError):
    """Malformed, incomplete or inverted reporting window"""


class UpstreamFetchFailed(ReportingError):
    """One of the record slices could not be retrieved from storage"""

    def __init__(self, source: str, message: Optional[str] = None):
        self.source = source
        super().__init__(message or f"Failed to fetch {source}")
