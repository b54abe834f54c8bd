"""Materialize LineItem records for newly inserted marketplace transactions."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import structlog

from .exceptions import StorageError
from .item_extractor import extract_listing_id
from .models import LineItem
from .sku_cache import SkuMappingCache
from .storage import MarketplaceStore

logger = structlog.get_logger(__name__)

ITEM_CHUNK_SIZE = 500


@dataclass
class LineItemResult:
    total: int = 0
    linked: int = 0
    unlinked: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "linked": self.linked,
            "unlinked": self.unlinked,
            "errors": self.errors,
        }


class LineItemService:
    def __init__(self, store: MarketplaceStore, chunk_size: int = ITEM_CHUNK_SIZE):
        self.store = store
        self.chunk_size = chunk_size

    def create_batch(
        self,
        items: List[Tuple[str, List[LineItem]]],
        tenant_id: str,
        channel: str,
        cache: Optional[SkuMappingCache] = None,
    ) -> LineItemResult:
        """
        Insert item rows for ``(transaction_id, items)`` pairs.

        SKUs that resolve to no product are registered in the SKU mapping
        table (without a product) so they can be linked later.
        """
        result = LineItemResult()
        if not items:
            return result

        if cache is None:
            cache = SkuMappingCache.load(self.store, tenant_id, channel)

        rows = []
        unmapped: Dict[str, Optional[str]] = {}
        for transaction_id, line_items in items:
            for item in line_items:
                result.total += 1
                listing_id = item.listing_id or extract_listing_id(item.sku)
                resolution = cache.resolve(listing_id, item.variant_id, item.sku)
                if resolution.linked:
                    result.linked += 1
                else:
                    result.unlinked += 1
                    if item.sku:
                        unmapped.setdefault(item.sku, item.description or None)

                rows.append(
                    {
                        "transaction_id": transaction_id,
                        "tenant_id": tenant_id,
                        "marketplace_sku": item.sku or None,
                        "description": item.description,
                        "quantity": item.quantity,
                        "unit_price": item.unit_price,
                        "total_price": item.total_price,
                        "listing_id": listing_id,
                        "variant_id": item.variant_id,
                        "product_id": resolution.product_id,
                        "sku_id": resolution.sku_id,
                        "mapping_origin": resolution.origin,
                    }
                )

        for start in range(0, len(rows), self.chunk_size):
            chunk = rows[start:start + self.chunk_size]
            try:
                self.store.insert_items(chunk)
            except StorageError as e:
                result.errors += len(chunk)
                logger.error("line_item_insert_failed", chunk_size=len(chunk), error=str(e))

        if unmapped:
            pending = [
                {
                    "tenant_id": tenant_id,
                    "channel": channel,
                    "marketplace_sku": sku,
                    "marketplace_product_name": name,
                    "auto_mapped": True,
                }
                for sku, name in unmapped.items()
            ]
            for start in range(0, len(pending), self.chunk_size):
                try:
                    self.store.upsert_unmapped_skus(pending[start:start + self.chunk_size])
                except StorageError as e:
                    logger.warning("unmapped_sku_upsert_failed", error=str(e))

        logger.info("line_items_created", tenant_id=tenant_id, channel=channel, **result.to_dict())
        return result
