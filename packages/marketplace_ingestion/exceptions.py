"""Error taxonomy for marketplace imports.

Row skips and duplicate detections are outcomes counted in statistics and job
counters, not exceptions. Everything here is either raised before a job
exists (format errors) or recovered at the chunk boundary by the job
controller, except JobFatalError.
"""

from typing import Optional


class IngestionError(Exception):
    """Base class for marketplace import errors."""


class FormatError(IngestionError):
    """The uploaded file or channel layout cannot be handled."""


class UnsupportedFormatError(FormatError):
    """Neither a delimited-text nor a spreadsheet file, or an unknown channel."""


class PasswordRequiredError(FormatError):
    """An encrypted workbook was uploaded without a password."""


class InvalidPasswordError(FormatError):
    """The supplied password could not decrypt the workbook."""


class StorageError(IngestionError):
    """A storage call failed. ``code`` carries the PostgREST/Postgres code."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class UniqueViolationError(StorageError):
    """Insert rejected by the (tenant, channel, external reference) constraint."""


class ChunkInsertError(StorageError):
    """Insert rejected for any reason other than a uniqueness violation."""


class DedupLookupError(StorageError):
    """A duplicate-check lookup against persisted rows failed."""


class JobFatalError(IngestionError):
    """Failure outside the per-chunk boundary; the job ends as failed."""
