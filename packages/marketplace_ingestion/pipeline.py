"""
Upload-side entry point: detect, parse, create the job, deduplicate, queue.

Everything up to the job row runs on the caller's request; inserting and the
post-insert hooks run later in the worker (see ``build_job_controller``).
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from .auto_categorization import AutoCategorizer
from .duplicate_resolver import DEFAULT_LOOKUP_CHUNK_SIZE, DuplicatePartition, DuplicateResolver
from .exceptions import JobFatalError
from .format_detector import detect, read_table
from .hooks import PostInsertHooks
from .job_controller import DEFAULT_CHUNK_SIZE, ImportJobController
from .line_items import LineItemService
from .models import ImportJob, ParseStatistics
from .storage import MarketplaceStore

logger = structlog.get_logger(__name__)


def build_job_controller(store: MarketplaceStore, chunk_size: int = DEFAULT_CHUNK_SIZE) -> ImportJobController:
    """
    Controller with fresh hooks; build one per job so caches stay job-local.

    The controller loads the job's SkuMappingCache when it reaches the hooks
    and passes it through to line-item materialization.
    """
    hooks = PostInsertHooks(AutoCategorizer(store), LineItemService(store))
    return ImportJobController(store, hooks=hooks, chunk_size=chunk_size)


@dataclass
class ImportResult:
    job: ImportJob
    statistics: ParseStatistics
    partition: DuplicatePartition

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.job.to_dict(),
            "statistics": self.statistics.to_dict(),
            "novel": len(self.partition.novel_indices),
            "duplicates": self.partition.duplicate_count,
        }


class ImportPipeline:
    def __init__(
        self,
        store: MarketplaceStore,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        lookup_chunk_size: int = DEFAULT_LOOKUP_CHUNK_SIZE,
    ):
        self.store = store
        self.controller = ImportJobController(store, chunk_size=chunk_size)
        self.resolver = DuplicateResolver(store, lookup_chunk_size)

    def start_import(
        self,
        tenant_id: str,
        channel: str,
        account_label: Optional[str],
        filename: str,
        content: bytes,
        password: Optional[str] = None,
    ) -> ImportResult:
        """
        Parse an upload and queue its novel transactions.

        Format errors are raised before any job exists. Once the job row is
        created, any failure marks it failed and surfaces as JobFatalError.
        """
        detection = detect(content, filename, channel)
        parser = detection.parser
        table = read_table(
            content,
            detection.kind,
            header_markers=parser.header_markers,
            preferred_sheets=parser.preferred_sheets,
            password=password,
        )
        batch = parser.parse(table, detection.channel)
        channel_key = detection.channel.value

        job = self.controller.create_job(
            tenant_id, channel_key, filename, len(batch.transactions)
        )
        try:
            partition = self.resolver.resolve(
                [tx.external_reference for tx in batch.transactions], tenant_id, channel_key
            )
            novel = [batch.transactions[i] for i in partition.novel_indices]
            self.controller.enqueue(
                job,
                novel,
                duplicate_count=partition.duplicate_count,
                account_label=account_label or channel_key,
                origin=detection.kind.origin_tag,
            )
        except Exception as e:
            logger.error("import_queue_failed", job_id=job.id, error=str(e))
            self.controller.fail(job, str(e))
            raise JobFatalError(f"Import job {job.id} could not be queued: {e}") from e

        logger.info(
            "import_started",
            job_id=job.id,
            tenant_id=tenant_id,
            channel=channel_key,
            generated=batch.statistics.generated_count,
            items=batch.item_count,
        )
        return ImportResult(job=job, statistics=batch.statistics, partition=partition)
