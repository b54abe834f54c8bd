"""
Fallback extraction of a single LineItem from a report row.

Channel parsers with native item columns attach items themselves; this
module serves layouts where only SKU / quantity columns hint at item data.
"""

import re
from typing import Any, List, Optional, Sequence

from .models import Channel, LineItem
from .normalizers import clean_text, parse_money, parse_quantity

_LISTING_ID = re.compile(r"MLB\d+")
_LONG_NUMERIC_ID = re.compile(r"\d{10,}")

# Candidate header substrings per channel, first match wins
ITEM_COLUMNS = {
    Channel.MERCADO_LIVRE: {
        "sku": ["sku", "código", "anuncio", "mlb"],
        "quantity": ["quantidade", "qty", "unidades"],
        "description": ["produto", "título", "item", "description"],
        "unit_price": ["preço unitário", "unit price", "valor unitário"],
        "total_price": ["preço total", "total price", "subtotal"],
    },
    Channel.SHOPEE: {
        "sku": ["sku do produto", "sku referência", "product sku"],
        "quantity": ["quantidade", "qty"],
        "description": ["nome do produto", "product name", "título"],
        "unit_price": ["preço", "price", "valor"],
        "total_price": [],
    },
    "generic": {
        "sku": ["sku", "código", "code", "id_produto"],
        "quantity": ["qtd", "quantidade", "qty", "quantity"],
        "description": ["produto", "item", "descrição", "nome"],
        "unit_price": ["preço", "price", "valor", "value"],
        "total_price": [],
    },
}


def has_item_granularity(headers: Sequence[str]) -> bool:
    """True when the report headers suggest one product line per row."""
    lowered = [str(h).lower() for h in headers]
    has_sku = any(
        "sku" in h or "código do produto" in h or "mlb" in h for h in lowered
    )
    has_quantity = any(
        "quantidade" in h and "quantidade de transações" not in h for h in lowered
    )
    return has_sku or has_quantity


def extract_listing_id(value: Any) -> Optional[str]:
    """Pull a Mercado Livre listing id ("MLB123...") or a long numeric id."""
    text = clean_text(value).upper()
    if not text:
        return None
    match = _LISTING_ID.search(text)
    if match:
        return match.group(0)
    match = _LONG_NUMERIC_ID.search(text)
    if match:
        return match.group(0)
    return None


def _find_index(headers: List[str], candidates: Sequence[str]) -> int:
    for candidate in candidates:
        for idx, header in enumerate(headers):
            if candidate in header:
                return idx
    return -1


def extract_item(
    channel: Channel,
    headers: Sequence[str],
    values: Sequence[Any],
    has_granularity: bool = True,
) -> Optional[LineItem]:
    """
    Emit zero or one LineItem for a row.

    Args:
        channel: Channel whose header vocabulary applies.
        headers: Raw header texts of the report.
        values: Cell values aligned with ``headers``.
        has_granularity: Result of ``has_item_granularity`` for the report.

    Returns:
        A LineItem, or None when the report has no item granularity, no SKU
        column, or the row's SKU is empty.
    """
    if not has_granularity:
        return None

    columns = ITEM_COLUMNS.get(channel, ITEM_COLUMNS["generic"])
    lowered = [str(h).lower() for h in headers]

    sku_idx = _find_index(lowered, columns["sku"])
    if sku_idx < 0:
        return None

    def cell(idx: int) -> Any:
        return values[idx] if 0 <= idx < len(values) else ""

    sku = clean_text(cell(sku_idx))
    if not sku:
        return None

    qty_idx = _find_index(lowered, columns["quantity"])
    desc_idx = _find_index(lowered, columns["description"])
    unit_idx = _find_index(lowered, columns["unit_price"])
    total_idx = _find_index(lowered, columns["total_price"])

    quantity = parse_quantity(cell(qty_idx)) if qty_idx >= 0 else 1
    unit_price = abs(parse_money(cell(unit_idx))) if unit_idx >= 0 else None
    total_price = abs(parse_money(cell(total_idx))) if total_idx >= 0 else None
    if not total_price and unit_price:
        total_price = round(unit_price * quantity, 2)

    listing_id = extract_listing_id(sku) if channel is Channel.MERCADO_LIVRE else None

    return LineItem(
        sku=sku,
        quantity=quantity,
        unit_price=unit_price,
        description=clean_text(cell(desc_idx)) or sku,
        total_price=total_price,
        listing_id=listing_id,
    )
