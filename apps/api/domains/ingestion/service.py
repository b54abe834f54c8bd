"""Ingestion service: wires the marketplace import pipeline to a Supabase client.

The router stays thin; everything that touches storage or the parsers goes
through here so the endpoints can be tested with a mocked service.
"""

from typing import Any, Dict, List, Optional

import structlog
from supabase import Client

from apps.api.core.config import Settings
from apps.api.core.errors import BadRequestError, NotFoundError
from packages.marketplace_ingestion import ImportJob, ImportPipeline, MarketplaceStore
from packages.marketplace_ingestion.exceptions import FormatError

logger = structlog.get_logger()


class MarketplaceImportService:
    def __init__(self, client: Client, settings: Settings):
        self.store = MarketplaceStore(client)
        self.pipeline = ImportPipeline(
            self.store,
            chunk_size=settings.IMPORT_CHUNK_SIZE,
            lookup_chunk_size=settings.DEDUP_LOOKUP_CHUNK_SIZE,
        )

    def start_import(
        self,
        tenant_id: str,
        channel: str,
        account_label: Optional[str],
        filename: str,
        content: bytes,
        password: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Parse and queue an upload; format problems become 400s."""
        try:
            result = self.pipeline.start_import(
                tenant_id,
                channel,
                account_label,
                filename,
                content,
                password=password,
            )
        except FormatError as e:
            logger.warning(
                "marketplace_upload_rejected",
                tenant_id=tenant_id,
                channel=channel,
                filename=filename,
                error=str(e),
            )
            raise BadRequestError(detail=str(e)) from e
        return result.to_dict()

    def get_job(self, job_id: str) -> Dict[str, Any]:
        row = self.store.get_job(job_id)
        if row is None:
            raise NotFoundError(f"Import job {job_id} not found")
        return ImportJob.from_row(row).to_dict()

    def list_jobs(self, tenant_id: str, limit: int) -> List[Dict[str, Any]]:
        return [ImportJob.from_row(row).to_dict() for row in self.store.list_jobs(tenant_id, limit)]
