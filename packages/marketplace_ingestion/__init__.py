"""
Marketplace Ingestion

Bulk import of marketplace transaction reports: format detection, per-channel
parsing, fingerprint deduplication and chunked, progress-tracked import jobs.
"""

__version__ = "0.1.0"

from .models import (
    Channel,
    EntryDirection,
    ImportJob,
    JobStatus,
    LineItem,
    ParsedBatch,
    ParsedTransaction,
    ParseStatistics,
)
from .fingerprint import build_fingerprint
from .duplicate_resolver import DuplicatePartition, DuplicateResolver
from .job_controller import ImportJobController
from .pipeline import ImportPipeline, ImportResult, build_job_controller
from .storage import MarketplaceStore

__all__ = [
    "Channel",
    "EntryDirection",
    "ImportJob",
    "JobStatus",
    "LineItem",
    "ParsedBatch",
    "ParsedTransaction",
    "ParseStatistics",
    "build_fingerprint",
    "DuplicatePartition",
    "DuplicateResolver",
    "ImportJobController",
    "ImportPipeline",
    "ImportResult",
    "build_job_controller",
    "MarketplaceStore",
]
