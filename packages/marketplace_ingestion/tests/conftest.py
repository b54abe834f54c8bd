import itertools
from typing import Any, Dict, Iterable, List, Optional, Set

import pytest

from packages.marketplace_ingestion.exceptions import (
    ChunkInsertError,
    DedupLookupError,
    StorageError,
    UniqueViolationError,
)
from packages.marketplace_ingestion.fingerprint import build_fingerprint
from packages.marketplace_ingestion.models import EntryDirection, ParsedTransaction, RawTable


class InMemoryStore:
    """Dict-backed stand-in for MarketplaceStore with failure injection."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.job_updates: List[Dict[str, Any]] = []
        self.transactions: List[Dict[str, Any]] = []
        self.categories: List[Dict[str, Any]] = []
        self.cost_centers: List[Dict[str, Any]] = []
        self.listing_mappings: List[Dict[str, Any]] = []
        self.sku_mappings: List[Dict[str, Any]] = []
        self.items: List[Dict[str, Any]] = []
        self.insert_calls = 0
        # 1-based insert_transactions calls that fail with ChunkInsertError
        self.failing_insert_calls: Set[int] = set()
        self.fail_lookups = False
        self.lookup_calls = 0
        self.fail_items = False
        self.listing_loads = 0
        self.touches = 0
        # 1-based fetch_transactions calls that fail with StorageError
        self.failing_fetch_calls: Set[int] = set()
        self.fetch_calls = 0

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # jobs

    def create_job(self, row):
        job = dict(row, id=self._next_id("job"), payload=None, created_at=f"{len(self.jobs):06d}")
        job.setdefault("updated_at", None)
        job.setdefault("finished_at", None)
        job.setdefault("error_message", None)
        self.jobs[job["id"]] = job
        return dict(job)

    def update_job(self, job_id, fields):
        self.jobs[job_id].update(fields)
        self.job_updates.append(dict(fields))

    def get_job(self, job_id):
        job = self.jobs.get(job_id)
        return dict(job) if job else None

    def list_jobs(self, tenant_id, limit=20):
        rows = [j for j in self.jobs.values() if j["tenant_id"] == tenant_id]
        rows.sort(key=lambda j: j["created_at"], reverse=True)
        return [dict(j) for j in rows[:limit]]

    def next_queued_job(self):
        queued = [
            j for j in self.jobs.values()
            if j["status"] == "pending" and j.get("payload") is not None
        ]
        queued.sort(key=lambda j: j["created_at"])
        return dict(queued[0]) if queued else None

    def claim_job(self, job_id, fields):
        job = self.jobs[job_id]
        if job["status"] != "pending":
            return False
        job.update(fields)
        return True

    def seal_job(self, job_id, fields):
        job = self.jobs[job_id]
        if job["status"] not in ("pending", "running"):
            return False
        job.update(fields)
        self.job_updates.append(dict(fields))
        return True

    def touch_job(self, job_id, updated_at):
        job = self.jobs[job_id]
        if job["status"] == "running":
            job["updated_at"] = updated_at
        self.touches += 1

    def fail_stale_jobs(self, cutoff_iso, fields):
        failed = []
        for job in self.jobs.values():
            if job["status"] == "running" and (job.get("updated_at") or "") < cutoff_iso:
                job.update(fields)
                failed.append(dict(job))
        return failed

    # transactions

    def insert_transactions(self, rows):
        self.insert_calls += 1
        if self.insert_calls in self.failing_insert_calls:
            raise ChunkInsertError("connection reset by peer", "08006")
        existing = {
            (t["tenant_id"], t["channel"], t["external_reference"]) for t in self.transactions
        }
        keys = [(r["tenant_id"], r["channel"], r["external_reference"]) for r in rows]
        if len(set(keys)) != len(keys) or existing.intersection(keys):
            raise UniqueViolationError("duplicate key value violates unique constraint", "23505")
        created = []
        for row in rows:
            stored = dict(row, id=self._next_id("tx"))
            self.transactions.append(stored)
            created.append(dict(stored))
        return created

    def find_existing_references(self, tenant_id, channel, references: Iterable[str]):
        self.lookup_calls += 1
        if self.fail_lookups:
            raise DedupLookupError("statement timeout", "57014")
        wanted = set(references)
        return {
            t["external_reference"]
            for t in self.transactions
            if t["tenant_id"] == tenant_id and t["channel"] == channel
            and t["external_reference"] in wanted
        }

    def fetch_transactions(self, tenant_id, ids):
        self.fetch_calls += 1
        if self.fetch_calls in self.failing_fetch_calls:
            raise StorageError("read timed out")
        wanted = set(ids)
        return [dict(t) for t in self.transactions if t["tenant_id"] == tenant_id and t["id"] in wanted]

    def update_transaction(self, transaction_id, fields):
        for t in self.transactions:
            if t["id"] == transaction_id:
                t.update(fields)

    # categories and cost centres

    def list_categories(self, tenant_id):
        return [c for c in self.categories if c["tenant_id"] == tenant_id]

    def create_category(self, tenant_id, name, group):
        row = {"id": self._next_id("cat"), "tenant_id": tenant_id, "name": name, "category_group": group}
        self.categories.append(row)
        return row

    def list_cost_centers(self, tenant_id):
        return [c for c in self.cost_centers if c["tenant_id"] == tenant_id]

    def create_cost_center(self, tenant_id, name):
        row = {"id": self._next_id("cc"), "tenant_id": tenant_id, "name": name}
        self.cost_centers.append(row)
        return row

    # sku mappings and items

    def load_listing_mappings(self, tenant_id, channel):
        self.listing_loads += 1
        return list(self.listing_mappings)

    def load_sku_mappings(self, tenant_id, channel):
        return list(self.sku_mappings)

    def insert_items(self, rows):
        if self.fail_items:
            raise ChunkInsertError("items table unavailable")
        self.items.extend(dict(r) for r in rows)

    def upsert_unmapped_skus(self, rows):
        known = {m["marketplace_sku"] for m in self.sku_mappings}
        for row in rows:
            if row["marketplace_sku"] not in known:
                self.sku_mappings.append(dict(row, product_id=None, sku_id=None))

    def progress_history(self) -> List[int]:
        return [u["rows_processed"] for u in self.job_updates if "rows_processed" in u]


@pytest.fixture
def store():
    return InMemoryStore()


def make_table(headers: List[str], rows: List[List[Any]]) -> RawTable:
    return RawTable(headers=headers, rows=[dict(zip(headers, r)) for r in rows])


@pytest.fixture
def table_factory():
    return make_table


def generic_csv(rows: List[List[Any]], headers: Optional[List[str]] = None) -> bytes:
    headers = headers or ["Data", "Descrição", "Valor"]
    lines = [",".join(headers)] + [",".join(str(c) for c in r) for r in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


@pytest.fixture
def csv_factory():
    return generic_csv


def make_transactions(count: int, channel: str = "outro", day: str = "2024-11-01") -> List[ParsedTransaction]:
    transactions = []
    for i in range(count):
        description = f"Venda {i}"
        amount = 10.0 + i
        transactions.append(
            ParsedTransaction(
                channel=channel,
                date=day,
                description=description,
                net_amount=amount,
                entry_direction=EntryDirection.CREDIT,
                order_id=f"ORD-{i}",
                transaction_type="venda",
                gross_amount=amount,
                external_reference=build_fingerprint(channel, day, f"ORD-{i}", description, amount),
            )
        )
    return transactions


@pytest.fixture
def transactions_factory():
    return make_transactions
