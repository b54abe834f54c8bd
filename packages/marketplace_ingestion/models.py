"""
Canonical records shared by every stage of a marketplace import.

A file is parsed into a ParsedBatch of ParsedTransaction records, each
optionally carrying LineItem records. ImportJob mirrors the durable job row
that progress pollers read.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Channel(str, Enum):
    """Declared set of marketplace channels whose reports can be imported."""

    MERCADO_LIVRE = "mercado_livre"
    MERCADO_PAGO = "mercado_pago"
    SHOPEE = "shopee"
    AMAZON = "amazon"
    TIKTOK_SHOP = "tiktok_shop"
    SHEIN = "shein"
    MAGALU = "magalu"
    OTHER = "outro"

    @classmethod
    def from_key(cls, value: str) -> "Channel":
        """
        Resolve a channel key or display label ("Mercado Livre",
        "MERCADO_LIVRE", "mercadolivre") to a Channel.

        Raises ValueError for channels outside the declared set.
        """
        key = re.sub(r"[\s\-]+", "_", str(value or "").strip().lower())
        key = _CHANNEL_ALIASES.get(key, key)
        for channel in cls:
            if channel.value == key:
                return channel
        raise ValueError(f"Unknown marketplace channel: {value!r}")


_CHANNEL_ALIASES = {
    "mercadolivre": "mercado_livre",
    "ml": "mercado_livre",
    "mercadopago": "mercado_pago",
    "mp": "mercado_pago",
    "tiktok": "tiktok_shop",
    "tiktokshop": "tiktok_shop",
    "other": "outro",
    "generic": "outro",
}


class EntryDirection(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    CONCLUDED = "concluded"
    FAILED = "failed"


class FileKind(str, Enum):
    DELIMITED_TEXT = "delimited-text"
    SPREADSHEET = "spreadsheet"

    @property
    def origin_tag(self) -> str:
        """Provenance tag stored on every row imported from this kind of file."""
        if self is FileKind.SPREADSHEET:
            return "spreadsheet_file"
        return "delimited_file"


@dataclass
class RawTable:
    """Rows of a report keyed by their original (stripped) header text."""

    headers: List[str]
    rows: List[Dict[str, Any]]

    def values(self, row: Dict[str, Any]) -> List[Any]:
        return [row.get(h, "") for h in self.headers]


@dataclass
class LineItem:
    """A product line sold inside a marketplace transaction."""

    sku: str
    quantity: int = 1
    unit_price: Optional[float] = None
    description: str = ""
    total_price: Optional[float] = None
    listing_id: Optional[str] = None
    variant_id: Optional[str] = None
    product_id: Optional[str] = None
    sku_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "description": self.description,
            "total_price": self.total_price,
            "listing_id": self.listing_id,
            "variant_id": self.variant_id,
            "product_id": self.product_id,
            "sku_id": self.sku_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        return cls(
            sku=data["sku"],
            quantity=int(data.get("quantity") or 1),
            unit_price=data.get("unit_price"),
            description=data.get("description") or "",
            total_price=data.get("total_price"),
            listing_id=data.get("listing_id"),
            variant_id=data.get("variant_id"),
            product_id=data.get("product_id"),
            sku_id=data.get("sku_id"),
        )


@dataclass
class ParsedTransaction:
    """Standardized marketplace transaction. Amounts are absolute values."""

    channel: str
    date: str
    description: str
    net_amount: float
    entry_direction: EntryDirection
    order_id: Optional[str] = None
    transaction_type: str = ""
    gross_amount: float = 0.0
    fees: float = 0.0
    taxes: float = 0.0
    other_deductions: float = 0.0
    external_reference: str = ""
    payout_date: Optional[str] = None
    sales_channel: Optional[str] = None
    items: List[LineItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-safe dict (used for queued job payloads)."""
        return {
            "channel": self.channel,
            "date": self.date,
            "description": self.description,
            "net_amount": self.net_amount,
            "entry_direction": self.entry_direction.value,
            "order_id": self.order_id,
            "transaction_type": self.transaction_type,
            "gross_amount": self.gross_amount,
            "fees": self.fees,
            "taxes": self.taxes,
            "other_deductions": self.other_deductions,
            "external_reference": self.external_reference,
            "payout_date": self.payout_date,
            "sales_channel": self.sales_channel,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParsedTransaction":
        return cls(
            channel=data["channel"],
            date=data["date"],
            description=data.get("description") or "",
            net_amount=float(data.get("net_amount") or 0.0),
            entry_direction=EntryDirection(data.get("entry_direction", "credit")),
            order_id=data.get("order_id"),
            transaction_type=data.get("transaction_type") or "",
            gross_amount=float(data.get("gross_amount") or 0.0),
            fees=float(data.get("fees") or 0.0),
            taxes=float(data.get("taxes") or 0.0),
            other_deductions=float(data.get("other_deductions") or 0.0),
            external_reference=data.get("external_reference") or "",
            payout_date=data.get("payout_date"),
            sales_channel=data.get("sales_channel"),
            items=[LineItem.from_dict(i) for i in data.get("items") or []],
        )

    def to_row(
        self,
        tenant_id: str,
        account_label: str,
        origin: str,
        import_job_id: str,
    ) -> Dict[str, Any]:
        """Build the marketplace_transactions row for this transaction."""
        return {
            "tenant_id": tenant_id,
            "channel": self.channel,
            "account_label": account_label or self.channel,
            "order_id": self.order_id,
            "external_reference": self.external_reference,
            "transaction_date": self.date,
            "payout_date": self.payout_date,
            "transaction_type": self.transaction_type,
            "description": self.description,
            "gross_amount": self.gross_amount,
            "net_amount": self.net_amount,
            "fees": self.fees,
            "taxes": self.taxes,
            "other_deductions": self.other_deductions,
            "entry_direction": self.entry_direction.value,
            "sales_channel": self.sales_channel,
            "status": "imported",
            "source_origin": origin,
            "import_job_id": import_job_id,
        }


@dataclass
class ParseStatistics:
    """Row accounting reported by every channel parser."""

    total_rows: int = 0
    zero_value_rows: int = 0
    discarded_format_rows: int = 0
    empty_rows: int = 0
    generated_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_rows": self.total_rows,
            "zero_value_rows": self.zero_value_rows,
            "discarded_format_rows": self.discarded_format_rows,
            "empty_rows": self.empty_rows,
            "generated_count": self.generated_count,
        }


@dataclass
class ParsedBatch:
    transactions: List[ParsedTransaction]
    statistics: ParseStatistics

    @property
    def item_count(self) -> int:
        return sum(len(t.items) for t in self.transactions)


@dataclass
class ImportJob:
    """Durable record tracking one upload from queueing to a terminal status."""

    id: str
    tenant_id: str
    channel: str
    filename: str
    total_rows: int = 0
    rows_processed: int = 0
    rows_imported: int = 0
    rows_duplicated: int = 0
    rows_errored: int = 0
    status: JobStatus = JobStatus.PENDING
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    finished_at: Optional[str] = None

    def progress_fields(self) -> Dict[str, int]:
        return {
            "rows_processed": self.rows_processed,
            "rows_imported": self.rows_imported,
            "rows_duplicated": self.rows_duplicated,
            "rows_errored": self.rows_errored,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "channel": self.channel,
            "filename": self.filename,
            "total_rows": self.total_rows,
            **self.progress_fields(),
            "status": self.status.value,
            "error_message": self.error_message,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "finished_at": self.finished_at,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ImportJob":
        return cls(
            id=str(row["id"]),
            tenant_id=str(row["tenant_id"]),
            channel=row["channel"],
            filename=row.get("filename") or "",
            total_rows=int(row.get("total_rows") or 0),
            rows_processed=int(row.get("rows_processed") or 0),
            rows_imported=int(row.get("rows_imported") or 0),
            rows_duplicated=int(row.get("rows_duplicated") or 0),
            rows_errored=int(row.get("rows_errored") or 0),
            status=JobStatus(row.get("status") or JobStatus.PENDING.value),
            error_message=row.get("error_message"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            finished_at=row.get("finished_at"),
        )
