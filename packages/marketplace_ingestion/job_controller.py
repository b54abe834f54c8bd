"""
Import job lifecycle: pending -> running -> concluded | failed.

A job row is created synchronously so the caller gets an id immediately.
Queuing stores the novel transactions in the row's ``payload``; the worker
claims the row and runs the chunked insert loop. Progress counters are
written after every chunk, and ``rows_processed`` reaches ``total_rows``
before the job is sealed.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import structlog

from .exceptions import JobFatalError, StorageError, UniqueViolationError
from .hooks import PostInsertHooks
from .models import ImportJob, JobStatus, ParsedTransaction
from .sku_cache import SkuMappingCache
from .storage import MarketplaceStore

logger = structlog.get_logger(__name__)

DEFAULT_CHUNK_SIZE = 500
MAX_ERROR_MESSAGES = 5


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ImportJobController:
    def __init__(
        self,
        store: MarketplaceStore,
        hooks: Optional[PostInsertHooks] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.store = store
        self.hooks = hooks
        self.chunk_size = max(1, chunk_size)

    def create_job(self, tenant_id: str, channel: str, filename: str, total_rows: int) -> ImportJob:
        row = self.store.create_job(
            {
                "tenant_id": tenant_id,
                "channel": channel,
                "filename": filename,
                "total_rows": total_rows,
                "rows_processed": 0,
                "rows_imported": 0,
                "rows_duplicated": 0,
                "rows_errored": 0,
                "status": JobStatus.PENDING.value,
            }
        )
        job = ImportJob.from_row(row)
        logger.info(
            "job_created",
            job_id=job.id,
            tenant_id=tenant_id,
            channel=channel,
            filename=filename,
            total_rows=total_rows,
        )
        return job

    def enqueue(
        self,
        job: ImportJob,
        transactions: List[ParsedTransaction],
        duplicate_count: int,
        account_label: str,
        origin: str,
    ) -> ImportJob:
        """Record pre-detected duplicates and hand the novel rows to the worker."""
        job.rows_duplicated = duplicate_count
        job.rows_processed = duplicate_count
        self.store.update_job(
            job.id,
            {
                **job.progress_fields(),
                "payload": {
                    "account_label": account_label,
                    "origin": origin,
                    "transactions": [tx.to_dict() for tx in transactions],
                },
                "updated_at": _now_iso(),
            },
        )
        logger.info(
            "job_queued",
            job_id=job.id,
            novel=len(transactions),
            duplicates=duplicate_count,
        )
        return job

    def claim(self, job: ImportJob) -> bool:
        """Move a pending job to running; False if another worker claimed it."""
        now = _now_iso()
        if not self.store.claim_job(job.id, {"status": JobStatus.RUNNING.value, "updated_at": now}):
            logger.info("job_already_claimed", job_id=job.id)
            return False
        job.status = JobStatus.RUNNING
        job.updated_at = now
        return True

    def run_queued(self, row: Dict[str, Any]) -> Optional[ImportJob]:
        """Claim and run a job row read from the queue."""
        job = ImportJob.from_row(row)
        if not self.claim(job):
            return None

        try:
            payload = row.get("payload") or {}
            transactions = [ParsedTransaction.from_dict(t) for t in payload.get("transactions", [])]
        except (KeyError, TypeError, ValueError) as e:
            self.fail(job, f"Unreadable job payload: {e}")
            return job

        return self.run(
            job,
            transactions,
            account_label=payload.get("account_label") or job.channel,
            origin=payload.get("origin") or "",
        )

    def run(
        self,
        job: ImportJob,
        transactions: List[ParsedTransaction],
        account_label: str,
        origin: str,
    ) -> ImportJob:
        """
        Insert the novel transactions chunk by chunk, then run hooks and seal.

        Chunk-level insert failures are counted and never stop the loop; any
        other exception marks the job failed.
        """
        log = logger.bind(job_id=job.id, tenant_id=job.tenant_id, channel=job.channel)
        log.info("job_started", novel=len(transactions), chunk_size=self.chunk_size)

        errors: List[str] = []
        inserted: List[Tuple[str, ParsedTransaction]] = []
        try:
            for start in range(0, len(transactions), self.chunk_size):
                chunk = transactions[start:start + self.chunk_size]
                inserted.extend(self._insert_chunk(job, chunk, account_label, origin, errors, log))
                job.rows_processed += len(chunk)
                job.updated_at = _now_iso()
                self.store.update_job(job.id, {**job.progress_fields(), "updated_at": job.updated_at})
                log.info(
                    "chunk_processed",
                    processed=job.rows_processed,
                    total=job.total_rows,
                    imported=job.rows_imported,
                    duplicated=job.rows_duplicated,
                    errored=job.rows_errored,
                )

            if self.hooks is not None:
                self._touch(job)
                self.hooks.run(
                    inserted,
                    job.tenant_id,
                    job.channel,
                    sku_cache=self._sku_cache_for(job, inserted, log),
                    heartbeat=lambda: self._touch(job),
                )

            self._conclude(job, errors)
        except Exception as e:
            log.error("job_failed", error=str(e))
            self.fail(job, str(e) or type(e).__name__)
        return job

    def _insert_chunk(self, job, chunk, account_label, origin, errors, log):
        rows = [tx.to_row(job.tenant_id, account_label, origin, job.id) for tx in chunk]
        try:
            created = self.store.insert_transactions(rows)
        except UniqueViolationError as e:
            job.rows_duplicated += len(chunk)
            log.warning("chunk_duplicate_violation", chunk_size=len(chunk), error=str(e))
            return []
        except Exception as e:
            job.rows_errored += len(chunk)
            if len(errors) < MAX_ERROR_MESSAGES:
                errors.append(str(e))
            log.error("chunk_insert_failed", chunk_size=len(chunk), error=str(e))
            return []

        job.rows_imported += len(created)
        by_reference = {tx.external_reference: tx for tx in chunk}
        pairs = []
        for row in created:
            tx = by_reference.get(row.get("external_reference"))
            if tx is not None and row.get("id") is not None:
                pairs.append((str(row["id"]), tx))
        return pairs

    def _conclude(self, job: ImportJob, errors: List[str]) -> None:
        if job.rows_processed != job.total_rows:
            raise JobFatalError(
                f"Processed {job.rows_processed} of {job.total_rows} rows before concluding"
            )
        message = "; ".join(errors) if errors else None
        if self._seal(job, JobStatus.CONCLUDED, message, job.progress_fields()):
            logger.info("job_concluded", job_id=job.id, **job.progress_fields())

    def fail(self, job: ImportJob, message: str) -> ImportJob:
        if self._seal(job, JobStatus.FAILED, message):
            logger.warning("job_marked_failed", job_id=job.id, error=message)
        return job

    def _seal(
        self,
        job: ImportJob,
        status: JobStatus,
        message: Optional[str],
        extra: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Move the job to a terminal status exactly once.

        If the stale sweep (or another run) sealed the row first, the stored
        outcome wins and ``job`` is refreshed from it.
        """
        now = _now_iso()
        fields = {
            **(extra or {}),
            "status": status.value,
            "error_message": message,
            "updated_at": now,
            "finished_at": now,
            "payload": None,
        }
        if self.store.seal_job(job.id, fields):
            job.status = status
            job.error_message = message
            job.updated_at = now
            job.finished_at = now
            return True

        row = self.store.get_job(job.id)
        if row is not None:
            stored = ImportJob.from_row(row)
            job.status = stored.status
            job.error_message = stored.error_message
            job.updated_at = stored.updated_at
            job.finished_at = stored.finished_at
        logger.warning(
            "job_already_sealed",
            job_id=job.id,
            attempted=status.value,
            stored=job.status.value,
        )
        return False

    def _touch(self, job: ImportJob) -> None:
        """Refresh ``updated_at`` so long hook runs are not swept as stale."""
        job.updated_at = _now_iso()
        try:
            self.store.touch_job(job.id, job.updated_at)
        except StorageError as e:
            logger.warning("job_heartbeat_failed", job_id=job.id, error=str(e))

    def _sku_cache_for(
        self,
        job: ImportJob,
        inserted: List[Tuple[str, ParsedTransaction]],
        log,
    ) -> Optional[SkuMappingCache]:
        """Fresh per-run SKU cache; None when no inserted row carries items."""
        if not any(tx.items for _, tx in inserted):
            return None
        try:
            return SkuMappingCache.load(self.store, job.tenant_id, job.channel)
        except StorageError as e:
            log.warning("sku_cache_load_failed", error=str(e))
            return None

    def fail_stale(self, ttl_seconds: int) -> List[str]:
        """Fail running jobs whose progress has not moved for ``ttl_seconds``."""
        cutoff = (datetime.now(timezone.utc) - timedelta(seconds=ttl_seconds)).isoformat()
        now = _now_iso()
        rows = self.store.fail_stale_jobs(
            cutoff,
            {
                "status": JobStatus.FAILED.value,
                "error_message": f"No progress for {ttl_seconds}s; marked failed by reconciliation",
                "updated_at": now,
                "finished_at": now,
                "payload": None,
            },
        )
        ids = [str(r["id"]) for r in rows]
        if ids:
            logger.warning("stale_jobs_failed", job_ids=ids, ttl_seconds=ttl_seconds)
        return ids
