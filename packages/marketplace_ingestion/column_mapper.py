"""
Heuristic header matching and the generic (fallback) report mapper.

Used for channels without a dedicated parser. The header matching and row
accounting helpers are shared with the dedicated channel parsers.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

import structlog

from .fingerprint import build_fingerprint
from .item_extractor import extract_item, has_item_granularity
from .models import (
    Channel,
    EntryDirection,
    LineItem,
    ParsedBatch,
    ParsedTransaction,
    ParseStatistics,
    RawTable,
)
from .normalizers import clean_text, infer_entry_direction, normalize_date, parse_money

logger = structlog.get_logger(__name__)

# Headers naming a date are never amount columns
DATE_TERMS = ("data", "fecha", "date", "período", "periodo", "vencimento")
AMOUNT_FIELDS = ("fees", "taxes", "discounts")

# Ordered candidate headers per logical field; first match wins
DEFAULT_CANDIDATES: Dict[str, List[str]] = {
    "date": ["data", "date", "data_transacao"],
    "order": ["pedido", "order", "pedido_id"],
    "type": ["tipo", "type", "tipo_transacao"],
    "description": ["descricao", "descrição", "description", "observacao", "observação"],
    "gross": ["valor_bruto", "valor bruto", "gross", "bruto"],
    "net": ["valor_liquido", "valor líquido", "net", "liquido", "líquido", "valor", "amount"],
    "fees": ["tarifa", "comissao", "comissão", "fee"],
    "taxes": ["taxa", "imposto", "tax"],
    "discounts": ["desconto", "outros", "discount"],
    "unique_id": ["id da transação", "transaction id", "id_transacao", "unique id"],
}


def find_column(
    headers: Sequence[str],
    candidates: Iterable[str],
    exclude_terms: Sequence[str] = (),
    claimed: Optional[set] = None,
) -> Optional[str]:
    """
    Return the first header containing a candidate (case-insensitive).

    Candidates are tried in order; for each, headers are scanned left to
    right. Headers containing any ``exclude_terms`` or already ``claimed``
    are skipped.
    """
    claimed = claimed or set()
    for candidate in candidates:
        needle = candidate.lower()
        for header in headers:
            lowered = header.lower()
            if header in claimed or needle not in lowered:
                continue
            if any(term in lowered for term in exclude_terms):
                continue
            return header
    return None


class BatchAccumulator:
    """
    Per-parse row accounting shared by every channel parser.

    Each row ends up in exactly one of: empty (skipped silently), discarded
    for format (no parseable date) or generated.
    """

    def __init__(self, channel: Channel, total_rows: int):
        self.channel = channel
        self.statistics = ParseStatistics(total_rows=total_rows)
        self.transactions: List[ParsedTransaction] = []

    def screen(
        self, date_iso: str, has_description: bool, amounts: Iterable[float]
    ) -> bool:
        """
        Apply the empty / zero-value / missing-date rules to a row.

        Returns True when the row should produce a transaction.
        """
        amounts = list(amounts)
        has_value = any(a != 0 for a in amounts)
        if not date_iso and not has_description and not has_value:
            self.statistics.empty_rows += 1
            return False
        if not has_value:
            self.statistics.zero_value_rows += 1
        if not date_iso:
            self.statistics.discarded_format_rows += 1
            return False
        return True

    def discard(self) -> None:
        self.statistics.discarded_format_rows += 1

    def add(
        self,
        date_iso: str,
        description: str,
        net_amount: float,
        entry_direction: EntryDirection,
        order_id: Optional[str] = None,
        transaction_type: str = "",
        gross_amount: float = 0.0,
        fees: float = 0.0,
        taxes: float = 0.0,
        other_deductions: float = 0.0,
        payout_date: Optional[str] = None,
        sales_channel: Optional[str] = None,
        items: Optional[List[LineItem]] = None,
    ) -> ParsedTransaction:
        net = round(abs(net_amount), 2)
        transaction = ParsedTransaction(
            channel=self.channel.value,
            date=date_iso,
            description=description,
            net_amount=net,
            entry_direction=entry_direction,
            order_id=order_id or None,
            transaction_type=transaction_type,
            gross_amount=round(abs(gross_amount), 2),
            fees=round(abs(fees), 2),
            taxes=round(abs(taxes), 2),
            other_deductions=round(abs(other_deductions), 2),
            external_reference=build_fingerprint(
                self.channel.value, date_iso, order_id, description, net
            ),
            payout_date=payout_date or None,
            sales_channel=sales_channel or None,
            items=items or [],
        )
        self.transactions.append(transaction)
        return transaction

    def finish(self, parser_name: str) -> ParsedBatch:
        self.statistics.generated_count = len(self.transactions)
        logger.info(
            "report_parsed",
            parser=parser_name,
            channel=self.channel.value,
            **self.statistics.to_dict(),
        )
        return ParsedBatch(transactions=self.transactions, statistics=self.statistics)


class GenericColumnMapper:
    """Maps an arbitrary report onto the canonical transaction by header heuristics."""

    def __init__(self, candidates: Optional[Dict[str, List[str]]] = None):
        self.candidates = candidates or DEFAULT_CANDIDATES

    def map_columns(self, headers: Sequence[str]) -> Dict[str, Optional[str]]:
        """Resolve each logical field to a header; a header serves one field."""
        mapping: Dict[str, Optional[str]] = {}
        claimed: set = set()
        for field_name, candidates in self.candidates.items():
            exclude = DATE_TERMS if field_name in AMOUNT_FIELDS else ()
            header = find_column(headers, candidates, exclude, claimed)
            mapping[field_name] = header
            if header:
                claimed.add(header)
        return mapping

    def parse(self, table: RawTable, channel: Channel) -> ParsedBatch:
        acc = BatchAccumulator(channel, len(table.rows))
        columns = self.map_columns(table.headers)
        with_items = has_item_granularity(table.headers)
        logger.debug("generic_columns_mapped", channel=channel.value, columns=columns)

        def get(row: Dict[str, Any], field_name: str) -> Any:
            header = columns.get(field_name)
            return row.get(header, "") if header else ""

        for row in table.rows:
            date_iso = normalize_date(get(row, "date"))
            type_label = clean_text(get(row, "type"))
            description = clean_text(get(row, "description")) or type_label
            gross = parse_money(get(row, "gross"))
            net = parse_money(get(row, "net")) or gross

            if not acc.screen(date_iso, bool(description), (gross, net)):
                continue

            description = description or f"{channel.value} transaction"
            order_id = clean_text(get(row, "order")) or clean_text(get(row, "unique_id"))

            items = []
            if with_items:
                item = extract_item(channel, table.headers, table.values(row))
                if item:
                    items.append(item)

            acc.add(
                date_iso=date_iso,
                description=description,
                net_amount=net,
                entry_direction=infer_entry_direction(description, net, type_label),
                order_id=order_id,
                transaction_type=type_label or "venda",
                gross_amount=gross or net,
                fees=parse_money(get(row, "fees")),
                taxes=parse_money(get(row, "taxes")),
                other_deductions=parse_money(get(row, "discounts")),
                items=items,
            )

        return acc.finish(type(self).__name__)
