"""Pydantic schemas for the marketplace ingestion domain."""

from pydantic import BaseModel
from typing import Optional


class ImportJobOut(BaseModel):
    """Progress snapshot of an import job, as read by pollers."""

    id: str
    tenant_id: str
    channel: str
    filename: str = ""
    total_rows: int = 0
    rows_processed: int = 0
    rows_imported: int = 0
    rows_duplicated: int = 0
    rows_errored: int = 0
    status: str
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    finished_at: Optional[str] = None


class ParseStatisticsOut(BaseModel):
    total_rows: int = 0
    zero_value_rows: int = 0
    discarded_format_rows: int = 0
    empty_rows: int = 0
    generated_count: int = 0


class ImportAcceptedResponse(BaseModel):
    """Response from a marketplace upload: the queued job plus parse stats."""

    job: ImportJobOut
    statistics: ParseStatisticsOut
    novel: int
    duplicates: int


class ImportJobList(BaseModel):
    jobs: list[ImportJobOut]
    count: int
