from unittest.mock import MagicMock

from packages.marketplace_ingestion.auto_categorization import AutoCategorizer
from packages.marketplace_ingestion.hooks import PostInsertHooks
from packages.marketplace_ingestion.line_items import LineItemService
from packages.marketplace_ingestion.models import LineItem
from packages.marketplace_ingestion.sku_cache import SkuMappingCache


def test_hooks_run_both_services(store, transactions_factory):
    tx = transactions_factory(1, channel="shopee")[0]
    tx.items = [LineItem(sku="CAN-01")]
    categorizer = MagicMock()
    categorizer.apply.return_value = {"categorized": 1, "updated": 1, "errors": 0}

    summary = PostInsertHooks(categorizer, LineItemService(store)).run([("tx-1", tx)], "t1", "shopee")

    categorizer.apply.assert_called_once_with(["tx-1"], "t1", on_batch=None)
    assert summary["categorization"]["updated"] == 1
    assert summary["line_items"]["total"] == 1
    assert store.items[0]["transaction_id"] == "tx-1"


def test_categorization_failure_does_not_block_line_items(store, transactions_factory):
    tx = transactions_factory(1)[0]
    tx.items = [LineItem(sku="A")]
    categorizer = MagicMock(spec=AutoCategorizer)
    categorizer.apply.side_effect = RuntimeError("categories table missing")

    summary = PostInsertHooks(categorizer, LineItemService(store)).run([("tx-1", tx)], "t1", "outro")

    assert summary["categorization"] is None
    assert summary["line_items"]["total"] == 1


def test_line_item_failure_is_contained(store, transactions_factory):
    tx = transactions_factory(1)[0]
    tx.items = [LineItem(sku="A")]
    line_items = MagicMock(spec=LineItemService)
    line_items.create_batch.side_effect = RuntimeError("boom")

    summary = PostInsertHooks(AutoCategorizer(store), line_items).run([("tx-1", tx)], "t1", "outro")

    assert summary["line_items"] is None


def test_nothing_inserted(store):
    categorizer = MagicMock()
    summary = PostInsertHooks(categorizer, LineItemService(store)).run([], "t1", "outro")

    categorizer.apply.assert_not_called()
    assert summary == {"categorization": None, "line_items": None}


def test_job_cache_and_heartbeat_are_passed_through(store, transactions_factory):
    tx = transactions_factory(1, channel="shopee")[0]
    tx.items = [LineItem(sku="X-1")]
    cache = SkuMappingCache("shopee")
    cache.add_sku_mapping({"marketplace_sku": "X-1", "product_id": "p2", "sku_id": "s2"})
    categorizer = MagicMock()
    beats = []

    summary = PostInsertHooks(categorizer, LineItemService(store)).run(
        [("tx-1", tx)], "t1", "shopee", sku_cache=cache, heartbeat=lambda: beats.append(1)
    )

    assert categorizer.apply.call_args.kwargs["on_batch"] is not None
    assert summary["line_items"]["linked"] == 1
    assert store.listing_loads == 0
    assert beats == [1]
