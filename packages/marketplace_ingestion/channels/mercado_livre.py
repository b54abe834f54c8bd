# packages/marketplace_ingestion/channels/mercado_livre.py
"""
Mercado Livre billing report ("Relatório de tarifas").

One row per fee or sale movement. Sale rows may carry the listing (MLB) and
item title, in which case a native LineItem is attached.
"""

from typing import Tuple

import structlog

from ..column_mapper import DATE_TERMS, BatchAccumulator
from ..exceptions import UnsupportedFormatError
from ..item_extractor import extract_listing_id
from ..models import Channel, EntryDirection, LineItem, ParsedBatch, RawTable
from ..normalizers import clean_text, normalize_date, parse_money, parse_quantity
from .base import ChannelParser, ColumnSet

logger = structlog.get_logger(__name__)

COLUMNS = {
    "date": ["data da tarifa", "data tarifa", "fecha", "data"],
    "fee_type": ["tipo de tarifa", "tipo tarifa", "detalhe", "descrição", "descricao", "type"],
    "order": ["número da venda", "numero da venda", "order", "pedido", "n° pedido", "pack id"],
    "sales_channel": ["canal de vendas", "canal vendas", "channel", "marketplace"],
    "gross": ["valor da transação", "valor transação", "valor transacao", "valor bruto", "gross"],
    "net": ["valor líquido", "valor liquido", "subtotal", "net", "total", "valor da tarifa"],
    "fee_id": ["id da tarifa", "id tarifa", "tarifa id"],
    "transaction_id": ["id da transação", "id transação", "transaction id", "id transacao"],
    "listing": ["mlb", "id do anúncio", "id anúncio", "listing id", "item id", "id do item", "item_id", "publicação"],
    "item_name": ["título do anúncio", "titulo do anuncio", "título", "titulo", "nome do item", "item name", "descrição do produto", "produto"],
    "quantity": ["quantidade", "qty", "quantity", "unidades", "qtd"],
    "unit_price": ["preço unitário", "preco unitario", "unit price", "valor unitário", "valor unitario"],
    "total_price": ["preço total", "preco total", "total price", "valor total item", "subtotal item"],
    "commission": ["comissão", "comissao", "commission", "tarifa de venda"],
    "fee": ["valor da tarifa", "tarifa", "fee", "taxa"],
    "shipping": ["frete", "envio", "shipping", "custo de envio"],
    "discount": ["desconto", "discount", "cupom"],
}

# Date and label headers never hold fee amounts
_FEE_EXCLUDE = DATE_TERMS + ("tipo", "id ")
EXCLUDE = {
    "commission": _FEE_EXCLUDE,
    "fee": _FEE_EXCLUDE,
    "shipping": _FEE_EXCLUDE,
    "discount": _FEE_EXCLUDE,
}

# (keywords, type label, direction), first match wins
CLASSIFICATION = [
    (("venda", "pagamento", "liberação", "repasse"), "venda", EntryDirection.CREDIT),
    (("tarifa", "comissão", "custo por vender"), "tarifa_marketplace", EntryDirection.DEBIT),
    (("envio", "frete", "full"), "frete_marketplace", EntryDirection.DEBIT),
    (("publicidade", "ads", "anúncio"), "ads", EntryDirection.DEBIT),
    (("estorno", "devolução", "cancelamento"), "estorno", EntryDirection.DEBIT),
    (("antecipação",), "antecipacao", EntryDirection.DEBIT),
    (("juros", "parcelamento"), "taxa_parcelamento", EntryDirection.DEBIT),
]


def classify(description: str, net_amount: float) -> Tuple[str, EntryDirection]:
    """Type label and direction from the fee description."""
    lowered = description.lower()
    for keywords, type_label, direction in CLASSIFICATION:
        if any(k in lowered for k in keywords):
            return type_label, direction
    direction = EntryDirection.CREDIT if net_amount >= 0 else EntryDirection.DEBIT
    return "outro", direction


class MercadoLivreParser(ChannelParser):
    header_markers = ("data da tarifa", "tipo de tarifa", "valor líquido", "valor liquido")
    preferred_sheets = ("REPORT",)

    def parse(self, table: RawTable, channel: Channel) -> ParsedBatch:
        cols = ColumnSet(table.headers, COLUMNS, EXCLUDE)
        if "date" not in cols or "net" not in cols:
            raise UnsupportedFormatError(
                "Unexpected Mercado Livre report layout: date and net columns are "
                f"required. Headers: {', '.join(table.headers[:10])}"
            )

        acc = BatchAccumulator(channel, len(table.rows))
        for row in table.rows:
            date_iso = normalize_date(cols.get(row, "date"))
            fee_type = clean_text(cols.get(row, "fee_type"))
            gross = parse_money(cols.get(row, "gross"))
            net = parse_money(cols.get(row, "net"))

            if not acc.screen(date_iso, bool(fee_type), (gross, net)):
                continue

            if fee_type:
                description = fee_type
            elif gross:
                description = f"Tarifa: R$ {gross:.2f}"
            else:
                description = "Transação ML"

            order_id = (
                clean_text(cols.get(row, "order"))
                or clean_text(cols.get(row, "fee_id"))
                or clean_text(cols.get(row, "transaction_id"))
            )
            commission = abs(parse_money(cols.get(row, "commission")))
            fee = abs(parse_money(cols.get(row, "fee")))
            shipping = abs(parse_money(cols.get(row, "shipping")))
            discount = abs(parse_money(cols.get(row, "discount")))

            type_label, direction = classify(description, net)

            items = []
            listing = clean_text(cols.get(row, "listing"))
            item_name = clean_text(cols.get(row, "item_name"))
            if (listing or item_name) and (
                type_label == "venda" or "venda" in description.lower()
            ):
                quantity = parse_quantity(cols.get(row, "quantity")) if "quantity" in cols else 1
                unit_price = abs(parse_money(cols.get(row, "unit_price"))) or None
                total_price = abs(parse_money(cols.get(row, "total_price"))) or None
                if not total_price and unit_price:
                    total_price = round(unit_price * quantity, 2)
                items.append(
                    LineItem(
                        sku=listing,
                        quantity=quantity,
                        unit_price=unit_price,
                        description=item_name or description,
                        total_price=total_price,
                        listing_id=extract_listing_id(listing),
                    )
                )

            acc.add(
                date_iso=date_iso,
                description=description,
                net_amount=net or gross,
                entry_direction=direction,
                order_id=order_id,
                transaction_type=type_label,
                gross_amount=gross or net,
                fees=commission + fee,
                taxes=shipping,
                other_deductions=discount,
                sales_channel=clean_text(cols.get(row, "sales_channel")),
                items=items,
            )

        return acc.finish(type(self).__name__)
