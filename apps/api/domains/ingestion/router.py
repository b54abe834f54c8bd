"""Ingestion router: marketplace report upload and import job progress.

Uploads are parsed and deduplicated on the request, in the threadpool; the
insert loop runs in the import worker, so the upload answers 202 with the
queued job. The job reads are sync routes for the same reason.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from starlette.concurrency import run_in_threadpool
from supabase import Client

from apps.api.core.auth import get_user_client
from apps.api.core.config import Settings, get_settings
from apps.api.core.errors import PayloadTooLargeError
from apps.api.domains.ingestion.schemas import (
    ImportAcceptedResponse,
    ImportJobList,
    ImportJobOut,
)
from apps.api.domains.ingestion.service import MarketplaceImportService

router = APIRouter(prefix="/ingest", tags=["ingestion"])
logger = structlog.get_logger()


def get_import_service(
    client: Client = Depends(get_user_client),
    settings: Settings = Depends(get_settings),
) -> MarketplaceImportService:
    return MarketplaceImportService(client, settings)


@router.post("/marketplace", status_code=202, response_model=ImportAcceptedResponse)
async def ingest_marketplace_report(
    file: UploadFile = File(...),
    tenant_id: str = Form(...),
    channel: str = Form(...),
    account_label: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    service: MarketplaceImportService = Depends(get_import_service),
    settings: Settings = Depends(get_settings),
):
    """Accept a marketplace settlement report and queue its import.

    The file must be CSV/TXT or an Excel workbook (optionally
    password-protected). Rejected files never create a job.
    """
    filename = file.filename or ""
    contents = await file.read()
    if len(contents) > settings.MAX_UPLOAD_BYTES:
        raise PayloadTooLargeError(
            f"File too large (max {settings.MAX_UPLOAD_BYTES // (1024 * 1024)}MB)"
        )

    # Parsing and dedup lookups are blocking; keep them off the event loop
    result = await run_in_threadpool(
        service.start_import,
        tenant_id,
        channel,
        account_label,
        filename,
        contents,
        password=password or None,
    )
    logger.info(
        "marketplace_upload_accepted",
        tenant_id=tenant_id,
        channel=channel,
        filename=filename,
        job_id=result["job"]["id"],
    )
    return result


@router.get("/marketplace/jobs/{job_id}", response_model=ImportJobOut)
def get_import_job(
    job_id: str,
    service: MarketplaceImportService = Depends(get_import_service),
):
    return service.get_job(job_id)


@router.get("/marketplace/jobs", response_model=ImportJobList)
def list_import_jobs(
    tenant_id: str = Query(...),
    limit: int = Query(20, ge=1, le=100),
    service: MarketplaceImportService = Depends(get_import_service),
):
    """Most recent import jobs for a tenant, newest first."""
    jobs = service.list_jobs(tenant_id, limit)
    return {"jobs": jobs, "count": len(jobs)}
