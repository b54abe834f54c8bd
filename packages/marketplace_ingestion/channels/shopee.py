# packages/marketplace_ingestion/channels/shopee.py
import structlog

from ..column_mapper import BatchAccumulator
from ..exceptions import UnsupportedFormatError
from ..models import Channel, EntryDirection, LineItem, ParsedBatch, RawTable
from ..normalizers import (
    clean_text,
    contains_any,
    normalize_date,
    parse_money,
    parse_quantity,
)
from .base import ChannelParser, ColumnSet

logger = structlog.get_logger(__name__)

COLUMNS = {
    "date": [
        "data do pedido", "data pedido", "order date", "created date",
        "data de criação", "data da transação", "transaction date",
        "data de conclusão", "completion date", "data",
    ],
    "payout_date": [
        "data de liberação", "release date", "data do repasse",
        "settlement date", "payout date",
    ],
    "order": [
        "n° do pedido", "nº do pedido", "numero do pedido", "order id", "order no",
        "nº pedido", "id do pedido", "order number", "pedido",
    ],
    "transaction_id": [
        "id da transação", "transaction id", "id transação", "transaction no",
        "nº transação",
    ],
    "type": [
        "tipo de transação", "transaction type", "tipo transação", "type",
        "tipo", "descrição da transação", "transaction description",
    ],
    "description": [
        "descrição", "descricao", "description", "motivo", "reason",
        "detalhes", "details", "observação",
    ],
    "product_name": [
        "nome do produto", "product name", "produto", "item name",
        "nome produto", "título", "title",
    ],
    "total": [
        "valor total do pedido", "order total", "total do pedido",
        "total amount", "valor bruto", "gross amount", "total",
    ],
    "product_price": [
        "preço do produto", "product price", "valor do produto",
        "unit price", "preço unitário",
    ],
    "commission": [
        "taxa de comissão", "commission fee", "comissão", "commission",
        "taxa comissão", "taxa marketplace", "marketplace fee",
    ],
    "transaction_fee": [
        "taxa de transação", "transaction fee", "taxa transação",
        "payment fee", "taxa pagamento",
    ],
    "service_fee": ["taxa de serviço", "service fee", "taxa serviço"],
    "shipping": [
        "taxa de envio", "shipping fee", "frete", "envio",
        "custo de envio", "shipping cost", "taxa frete",
    ],
    "discounts": [
        "desconto", "discount", "cupom", "voucher", "promoção",
        "desconto vendedor", "seller discount", "desconto plataforma",
    ],
    "net": [
        "receita do vendedor", "seller earnings", "valor líquido",
        "net amount", "valor a receber", "payout amount", "earnings",
        "receita líquida", "net earnings", "ganhos", "seller income",
    ],
    "sku": [
        "sku", "sku do produto", "product sku", "variação", "variation",
        "código sku", "sku code",
    ],
    "quantity": ["quantidade", "qty", "quantity", "qtd", "unidades"],
}

DEBIT_KEYWORDS = ("refund", "cancel", "estorno", "devolução", "return", "taxa", "fee")


class ShopeeParser(ChannelParser):
    header_markers = ("data do pedido", "order date", "n° do pedido", "nº do pedido", "order id")

    def parse(self, table: RawTable, channel: Channel) -> ParsedBatch:
        cols = ColumnSet(table.headers, COLUMNS)
        if "date" not in cols and "payout_date" not in cols:
            raise UnsupportedFormatError(
                "Unrecognized Shopee report layout: no date column found. "
                f"Headers: {', '.join(table.headers[:15])}"
            )

        acc = BatchAccumulator(channel, len(table.rows))
        for row in table.rows:
            payout_date = normalize_date(cols.get(row, "payout_date"))
            date_iso = normalize_date(cols.get(row, "date")) or payout_date

            total = parse_money(cols.get(row, "total"))
            product_price = parse_money(cols.get(row, "product_price"))
            commission = abs(parse_money(cols.get(row, "commission")))
            transaction_fee = abs(parse_money(cols.get(row, "transaction_fee")))
            service_fee = abs(parse_money(cols.get(row, "service_fee")))
            shipping = abs(parse_money(cols.get(row, "shipping")))
            discounts = abs(parse_money(cols.get(row, "discounts")))
            fees_total = commission + transaction_fee + service_fee

            net = parse_money(cols.get(row, "net"))
            if not net and (total or product_price):
                net = (total or product_price) - fees_total - shipping + discounts

            type_label = clean_text(cols.get(row, "type"))
            description = (
                type_label
                or clean_text(cols.get(row, "description"))
                or clean_text(cols.get(row, "product_name"))
            )

            if not acc.screen(date_iso, bool(description), (total, net, product_price)):
                continue

            is_debit = contains_any(type_label, DEBIT_KEYWORDS) or net < 0
            order_id = clean_text(cols.get(row, "order")) or clean_text(
                cols.get(row, "transaction_id")
            )

            items = []
            sku = clean_text(cols.get(row, "sku"))
            if sku:
                quantity = parse_quantity(cols.get(row, "quantity")) if "quantity" in cols else 1
                unit_price = abs(product_price) or None
                items.append(
                    LineItem(
                        sku=sku,
                        quantity=quantity,
                        unit_price=unit_price,
                        description=clean_text(cols.get(row, "product_name")) or sku,
                        total_price=round(unit_price * quantity, 2) if unit_price else None,
                    )
                )

            acc.add(
                date_iso=date_iso,
                description=description or "Transação Shopee",
                net_amount=abs(net) or abs(total) or abs(product_price),
                entry_direction=EntryDirection.DEBIT if is_debit else EntryDirection.CREDIT,
                order_id=order_id,
                transaction_type=type_label.lower() or "venda",
                gross_amount=abs(total) or abs(product_price) or abs(net),
                fees=commission,
                taxes=fees_total,
                other_deductions=discounts,
                payout_date=payout_date,
                items=items,
            )

        return acc.finish(type(self).__name__)
