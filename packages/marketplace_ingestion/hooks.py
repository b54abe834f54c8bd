"""Best-effort side effects run after a job's chunks have been inserted."""

from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

from .auto_categorization import AutoCategorizer
from .line_items import LineItemService
from .models import ParsedTransaction
from .sku_cache import SkuMappingCache

logger = structlog.get_logger(__name__)


class PostInsertHooks:
    """
    Auto-categorization and line-item materialization.

    The two hooks are independent: a failure in one is logged and never
    prevents the other, nor changes the job outcome.
    """

    def __init__(self, categorizer: AutoCategorizer, line_items: LineItemService):
        self.categorizer = categorizer
        self.line_items = line_items

    def run(
        self,
        inserted: List[Tuple[str, ParsedTransaction]],
        tenant_id: str,
        channel: str,
        sku_cache: Optional[SkuMappingCache] = None,
        heartbeat: Optional[Callable[[], None]] = None,
    ) -> Dict[str, Any]:
        """
        Args:
            inserted: (new row id, source transaction) pairs
            tenant_id: Tenant owning the rows
            channel: Channel key of the job
            sku_cache: The running job's SKU mappings, loaded on demand if None
            heartbeat: Called between batches so the job keeps looking alive
        """
        summary: Dict[str, Any] = {"categorization": None, "line_items": None}
        if not inserted:
            return summary

        ids = [row_id for row_id, _ in inserted]
        try:
            summary["categorization"] = self.categorizer.apply(ids, tenant_id, on_batch=heartbeat)
        except Exception as e:
            logger.error("categorization_hook_failed", tenant_id=tenant_id, error=str(e))

        with_items = [(row_id, tx.items) for row_id, tx in inserted if tx.items]
        if with_items:
            if heartbeat is not None:
                heartbeat()
            try:
                result = self.line_items.create_batch(with_items, tenant_id, channel, cache=sku_cache)
                summary["line_items"] = result.to_dict()
            except Exception as e:
                logger.error("line_items_hook_failed", tenant_id=tenant_id, error=str(e))

        return summary
