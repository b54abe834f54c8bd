"""Per-job cache of marketplace SKU -> internal product mappings."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from .storage import MarketplaceStore

logger = structlog.get_logger(__name__)


@dataclass
class SkuResolution:
    internal_sku: Optional[str]
    product_id: Optional[str]
    sku_id: Optional[str]
    origin: str  # listing_map | legacy | none

    @property
    def linked(self) -> bool:
        return bool(self.product_id or self.sku_id)


class SkuMappingCache:
    """
    Mappings for one (tenant, channel), loaded once and then read-only.

    Owned by a single job run; never shared across jobs.
    """

    def __init__(self, channel: str):
        self.channel = channel
        self.by_listing: Dict[str, Dict[str, Any]] = {}
        self.by_marketplace_sku: Dict[str, Dict[str, Any]] = {}
        self.by_internal_sku: Dict[str, Dict[str, Any]] = {}

    def _listing_key(self, listing_id: str, variant_id: Optional[str]) -> str:
        return f"{self.channel}|{listing_id}|{variant_id or ''}".lower()

    @classmethod
    def load(cls, store: MarketplaceStore, tenant_id: str, channel: str) -> "SkuMappingCache":
        cache = cls(channel)
        for m in store.load_listing_mappings(tenant_id, channel):
            cache.add_listing_mapping(m)
        for m in store.load_sku_mappings(tenant_id, channel):
            cache.add_sku_mapping(m)
        logger.info(
            "sku_cache_loaded",
            tenant_id=tenant_id,
            channel=channel,
            listings=len(cache.by_listing),
            marketplace_skus=len(cache.by_marketplace_sku),
            internal_skus=len(cache.by_internal_sku),
        )
        return cache

    def add_listing_mapping(self, mapping: Dict[str, Any]) -> None:
        target = {
            "internal_sku": mapping.get("internal_sku"),
            "product_id": mapping.get("product_id"),
            "sku_id": mapping.get("sku_id"),
        }
        listing_id = mapping.get("listing_id")
        if listing_id:
            # A variant-less mapping doubles as the listing-only fallback key
            self.by_listing[self._listing_key(listing_id, mapping.get("variant_id"))] = target

        internal_sku = mapping.get("internal_sku")
        if internal_sku and (target["product_id"] or target["sku_id"]):
            self.by_internal_sku[internal_sku.lower()] = target

    def add_sku_mapping(self, mapping: Dict[str, Any]) -> None:
        sku = mapping.get("marketplace_sku")
        if sku:
            self.by_marketplace_sku[f"{self.channel}|{sku}".lower()] = {
                "product_id": mapping.get("product_id"),
                "sku_id": mapping.get("sku_id"),
            }

    def resolve(
        self,
        listing_id: Optional[str],
        variant_id: Optional[str],
        marketplace_sku: Optional[str],
    ) -> SkuResolution:
        if listing_id:
            for key in (
                self._listing_key(listing_id, variant_id),
                self._listing_key(listing_id, None),
            ):
                match = self.by_listing.get(key)
                if match:
                    return SkuResolution(
                        match["internal_sku"], match["product_id"], match["sku_id"], "listing_map"
                    )

        if marketplace_sku:
            match = self.by_marketplace_sku.get(f"{self.channel}|{marketplace_sku}".lower())
            if match and (match["product_id"] or match["sku_id"]):
                return SkuResolution(
                    marketplace_sku, match["product_id"], match["sku_id"], "legacy"
                )
            match = self.by_internal_sku.get(marketplace_sku.lower())
            if match:
                return SkuResolution(
                    marketplace_sku, match["product_id"], match["sku_id"], "listing_map"
                )

        return SkuResolution(marketplace_sku or listing_id, None, None, "none")
