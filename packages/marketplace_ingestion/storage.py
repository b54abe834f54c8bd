"""Supabase-backed storage for marketplace imports.

Wraps every table the import touches behind one adapter so that the job
controller and hooks never see PostgREST query builders. PostgREST errors are
translated into the package's StorageError hierarchy; a Postgres unique
violation (``23505``) surfaces as UniqueViolationError. Transport failures
(httpx) are raised as the calling operation's StorageError subclass too.
"""

from typing import Any, Dict, Iterable, List, Optional, Set, Type

import httpx
import structlog
from postgrest.exceptions import APIError
from supabase import Client

from .exceptions import (
    ChunkInsertError,
    DedupLookupError,
    StorageError,
    UniqueViolationError,
)

logger = structlog.get_logger(__name__)

UNIQUE_VIOLATION = "23505"

JOBS_TABLE = "marketplace_import_jobs"
TRANSACTIONS_TABLE = "marketplace_transactions"
ITEMS_TABLE = "marketplace_transaction_items"
SKU_MAPPINGS_TABLE = "marketplace_sku_mappings"
PRODUCT_SKU_MAP_TABLE = "product_sku_map"
CATEGORIES_TABLE = "financial_categories"
COST_CENTERS_TABLE = "cost_centers"

JOB_COLUMNS = (
    "id, tenant_id, channel, filename, total_rows, rows_processed, rows_imported, "
    "rows_duplicated, rows_errored, status, error_message, created_at, updated_at, finished_at"
)


def _raise_storage_error(e: APIError, error_cls: Type[StorageError]) -> None:
    code = getattr(e, "code", None)
    message = getattr(e, "message", None) or str(e)
    if code == UNIQUE_VIOLATION:
        raise UniqueViolationError(message, code) from e
    raise error_cls(message, code) from e


class MarketplaceStore:
    """Storage adapter over a Supabase client (service role in the worker)."""

    def __init__(self, client: Client):
        self.client = client

    def _run(self, query, error_cls: Type[StorageError] = StorageError) -> List[Dict[str, Any]]:
        try:
            response = query.execute()
        except APIError as e:
            _raise_storage_error(e, error_cls)
        except httpx.HTTPError as e:
            raise error_cls(f"{type(e).__name__}: {e}") from e
        return response.data or []

    # ----- import jobs -----

    def create_job(self, row: Dict[str, Any]) -> Dict[str, Any]:
        data = self._run(self.client.table(JOBS_TABLE).insert(row))
        if not data:
            raise StorageError("Import job insert returned no row")
        return data[0]

    def update_job(self, job_id: str, fields: Dict[str, Any]) -> None:
        self._run(self.client.table(JOBS_TABLE).update(fields).eq("id", job_id))

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        data = self._run(
            self.client.table(JOBS_TABLE).select(JOB_COLUMNS).eq("id", job_id).limit(1)
        )
        return data[0] if data else None

    def list_jobs(self, tenant_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        return self._run(
            self.client.table(JOBS_TABLE)
            .select(JOB_COLUMNS)
            .eq("tenant_id", tenant_id)
            .order("created_at", desc=True)
            .limit(limit)
        )

    def next_queued_job(self) -> Optional[Dict[str, Any]]:
        """Oldest pending job whose payload has been written."""
        data = self._run(
            self.client.table(JOBS_TABLE)
            .select("*")
            .eq("status", "pending")
            .not_.is_("payload", "null")
            .order("created_at")
            .limit(1)
        )
        return data[0] if data else None

    def claim_job(self, job_id: str, fields: Dict[str, Any]) -> bool:
        """Conditional pending -> running update; False if another worker won."""
        data = self._run(
            self.client.table(JOBS_TABLE)
            .update(fields)
            .eq("id", job_id)
            .eq("status", "pending")
        )
        return bool(data)

    def seal_job(self, job_id: str, fields: Dict[str, Any]) -> bool:
        """Write a terminal state unless the job is already concluded or failed."""
        data = self._run(
            self.client.table(JOBS_TABLE)
            .update(fields)
            .eq("id", job_id)
            .in_("status", ["pending", "running"])
        )
        return bool(data)

    def touch_job(self, job_id: str, updated_at: str) -> None:
        self._run(
            self.client.table(JOBS_TABLE)
            .update({"updated_at": updated_at})
            .eq("id", job_id)
            .eq("status", "running")
        )

    def fail_stale_jobs(self, cutoff_iso: str, fields: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Mark running jobs not updated since ``cutoff_iso`` with ``fields``."""
        return self._run(
            self.client.table(JOBS_TABLE)
            .update(fields)
            .eq("status", "running")
            .lt("updated_at", cutoff_iso)
        )

    # ----- transactions -----

    def insert_transactions(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Insert one chunk; returns the inserted rows (with ids)."""
        return self._run(self.client.table(TRANSACTIONS_TABLE).insert(rows), ChunkInsertError)

    def find_existing_references(
        self, tenant_id: str, channel: str, references: Iterable[str]
    ) -> Set[str]:
        data = self._run(
            self.client.table(TRANSACTIONS_TABLE)
            .select("external_reference")
            .eq("tenant_id", tenant_id)
            .eq("channel", channel)
            .in_("external_reference", list(references)),
            DedupLookupError,
        )
        return {row["external_reference"] for row in data if row.get("external_reference")}

    def fetch_transactions(self, tenant_id: str, ids: List[str]) -> List[Dict[str, Any]]:
        return self._run(
            self.client.table(TRANSACTIONS_TABLE)
            .select("id, channel, description, net_amount, gross_amount, transaction_type, entry_direction")
            .eq("tenant_id", tenant_id)
            .in_("id", ids)
        )

    def update_transaction(self, transaction_id: str, fields: Dict[str, Any]) -> None:
        self._run(self.client.table(TRANSACTIONS_TABLE).update(fields).eq("id", transaction_id))

    # ----- categories and cost centres -----

    def list_categories(self, tenant_id: str) -> List[Dict[str, Any]]:
        return self._run(
            self.client.table(CATEGORIES_TABLE)
            .select("id, name, category_group")
            .eq("tenant_id", tenant_id)
            .eq("active", True)
        )

    def create_category(self, tenant_id: str, name: str, group: str) -> Dict[str, Any]:
        data = self._run(
            self.client.table(CATEGORIES_TABLE).insert(
                {
                    "tenant_id": tenant_id,
                    "name": name,
                    "category_group": group,
                    "description": "Created automatically by marketplace import",
                    "active": True,
                }
            )
        )
        if not data:
            raise StorageError(f"Category insert returned no row for {name!r}")
        return data[0]

    def list_cost_centers(self, tenant_id: str) -> List[Dict[str, Any]]:
        return self._run(
            self.client.table(COST_CENTERS_TABLE)
            .select("id, name")
            .eq("tenant_id", tenant_id)
            .eq("active", True)
        )

    def create_cost_center(self, tenant_id: str, name: str) -> Dict[str, Any]:
        data = self._run(
            self.client.table(COST_CENTERS_TABLE).insert(
                {
                    "tenant_id": tenant_id,
                    "name": name,
                    "description": "Created automatically by marketplace import",
                    "active": True,
                }
            )
        )
        if not data:
            raise StorageError(f"Cost center insert returned no row for {name!r}")
        return data[0]

    # ----- SKU mappings and line items -----

    def load_listing_mappings(self, tenant_id: str, channel: str) -> List[Dict[str, Any]]:
        return self._run(
            self.client.table(PRODUCT_SKU_MAP_TABLE)
            .select("internal_sku, listing_id, variant_id, product_id, sku_id")
            .eq("tenant_id", tenant_id)
            .eq("channel", channel)
        )

    def load_sku_mappings(self, tenant_id: str, channel: str) -> List[Dict[str, Any]]:
        return self._run(
            self.client.table(SKU_MAPPINGS_TABLE)
            .select("marketplace_sku, product_id, sku_id")
            .eq("tenant_id", tenant_id)
            .eq("channel", channel)
        )

    def insert_items(self, rows: List[Dict[str, Any]]) -> None:
        self._run(self.client.table(ITEMS_TABLE).insert(rows), ChunkInsertError)

    def upsert_unmapped_skus(self, rows: List[Dict[str, Any]]) -> None:
        self._run(
            self.client.table(SKU_MAPPINGS_TABLE).upsert(
                rows,
                on_conflict="tenant_id,channel,marketplace_sku",
                ignore_duplicates=True,
            )
        )
