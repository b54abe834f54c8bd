# packages/marketplace_ingestion/channels/mercado_pago.py
"""
Mercado Pago reports in two layouts.

The billing report ("Relatório de faturamento") lists fees charged per
movement; the sales statement lists payments received. The layout is chosen
from the headers.
"""

import structlog

from ..column_mapper import BatchAccumulator
from ..exceptions import UnsupportedFormatError
from ..models import Channel, EntryDirection, ParsedBatch, RawTable
from ..normalizers import clean_text, contains_any, normalize_date, parse_money
from .base import ChannelParser, ColumnSet

logger = structlog.get_logger(__name__)

BILLING_MARKERS = ("valor da tarifa", "data do movimento")

BILLING_COLUMNS = {
    "date": ["data do movimento", "data movimento", "data", "fecha"],
    "detail": ["detalhe", "descrição", "descricao", "detail"],
    "fee_amount": ["valor da tarifa", "valor tarifa", "tarifa"],
    "operation_amount": ["valor da operação", "valor operação", "valor operacao"],
    "operation_type": ["tipo de operação", "tipo operação", "tipo operacao", "tipo"],
    "movement": ["número do movimento", "numero do movimento", "numero movimento"],
    "reversed": ["tarifa estornada", "estornada"],
}

SALES_COLUMNS = {
    "date": [
        "date_created", "data de criação", "data", "fecha", "date",
        "data de liberação", "date_approved", "money_release_date",
    ],
    "reference": [
        "operation_id", "id da operação", "reference", "external_reference",
        "referência externa", "source_id",
    ],
    "type": [
        "operation_type", "tipo de operação", "tipo", "type", "reason",
        "transaction_type", "tipo de transação", "payment_type",
    ],
    "description": [
        "description", "descrição", "descricao", "reason", "motivo",
        "detail", "detalhe", "item_title", "título",
    ],
    "gross": [
        "transaction_amount", "valor da transação", "valor bruto", "gross_amount",
        "total_paid_amount", "valor total", "amount",
    ],
    "fee": [
        "fee_amount", "marketplace_fee", "tarifa", "comissão", "commission",
        "mercadopago_fee", "mp_fee", "taxa mercadopago",
    ],
    "net": [
        "net_received_amount", "valor líquido recebido", "valor líquido", "net_amount",
        "valor_liquido", "total received",
    ],
    "status": ["status", "status_detail", "situação", "state"],
    "order": [
        "order_id", "id do pedido", "pedido", "external_reference",
        "referência externa", "merchant_order_id",
    ],
}

SKIPPED_STATUSES = ("pending", "cancelled", "rejected")
DEBIT_OPERATIONS = ("refund", "chargeback", "estorno", "devolução")


def is_billing_layout(headers) -> bool:
    return any(contains_any(h, BILLING_MARKERS) for h in headers)


class MercadoPagoParser(ChannelParser):
    header_markers = (
        "data de criação",
        "date_created",
        "transaction_amount",
        "valor da transação",
        "valor da tarifa",
        "data do movimento",
    )
    preferred_sheets = ("Relatório", "Report", "Movimentos")

    def parse(self, table: RawTable, channel: Channel) -> ParsedBatch:
        if is_billing_layout(table.headers):
            logger.info("mercado_pago_layout", layout="billing")
            return self._parse_billing(table, channel)
        logger.info("mercado_pago_layout", layout="sales")
        return self._parse_sales(table, channel)

    def _parse_billing(self, table: RawTable, channel: Channel) -> ParsedBatch:
        cols = ColumnSet(table.headers, BILLING_COLUMNS)
        acc = BatchAccumulator(channel, len(table.rows))

        for row in table.rows:
            date_iso = normalize_date(cols.get(row, "date"))
            detail = clean_text(cols.get(row, "detail"))
            fee_amount = parse_money(cols.get(row, "fee_amount"))
            operation_amount = parse_money(cols.get(row, "operation_amount"))

            if not acc.screen(date_iso, bool(detail), (fee_amount, operation_amount)):
                continue

            description = detail or "Tarifa MP"
            reversed_fee = bool(clean_text(cols.get(row, "reversed")))
            operation_type = clean_text(cols.get(row, "operation_type")).lower()

            acc.add(
                date_iso=date_iso,
                description=description,
                net_amount=fee_amount,
                entry_direction=EntryDirection.CREDIT if reversed_fee else EntryDirection.DEBIT,
                order_id=clean_text(cols.get(row, "movement")),
                transaction_type=operation_type or "tarifa",
                gross_amount=operation_amount or fee_amount,
                fees=0.0 if reversed_fee else fee_amount,
            )

        return acc.finish("MercadoPagoParser.billing")

    def _parse_sales(self, table: RawTable, channel: Channel) -> ParsedBatch:
        cols = ColumnSet(table.headers, SALES_COLUMNS)
        if not any(name in cols for name in ("date", "gross", "net")):
            raise UnsupportedFormatError(
                "Unrecognized Mercado Pago report layout. "
                f"Headers: {', '.join(table.headers[:15])}"
            )

        acc = BatchAccumulator(channel, len(table.rows))
        for row in table.rows:
            gross = parse_money(cols.get(row, "gross"))
            fee = abs(parse_money(cols.get(row, "fee")))
            net = parse_money(cols.get(row, "net"))
            if not net and gross:
                net = gross - fee

            date_iso = normalize_date(cols.get(row, "date"))
            description = clean_text(cols.get(row, "description")) or clean_text(
                cols.get(row, "type")
            )

            if not acc.screen(date_iso, bool(description), (gross, net)):
                continue

            status = clean_text(cols.get(row, "status")).lower()
            if contains_any(status, SKIPPED_STATUSES):
                acc.discard()
                continue

            operation_type = clean_text(cols.get(row, "type")).lower()
            is_debit = contains_any(operation_type, DEBIT_OPERATIONS) or net < 0

            acc.add(
                date_iso=date_iso,
                description=description or "Transação MP",
                net_amount=abs(net) or abs(gross),
                entry_direction=EntryDirection.DEBIT if is_debit else EntryDirection.CREDIT,
                order_id=clean_text(cols.get(row, "order")) or clean_text(cols.get(row, "reference")),
                transaction_type=operation_type or "payment",
                gross_amount=abs(gross) or abs(net),
                fees=fee,
            )

        return acc.finish("MercadoPagoParser.sales")
