from packages.marketplace_ingestion.duplicate_resolver import DuplicateResolver


def _persist(store, tenant_id, channel, reference):
    store.transactions.append(
        {"id": f"tx-{reference}", "tenant_id": tenant_id, "channel": channel, "external_reference": reference}
    )


def test_internal_duplicates_keep_first_occurrence(store):
    partition = DuplicateResolver(store).resolve(["a", "b", "a", "a"], "t1", "outro")

    assert partition.internal_duplicates == [2, 3]
    assert partition.novel_indices == [0, 1]
    assert partition.duplicate_count == 2


def test_persisted_duplicates_are_scoped_to_tenant_and_channel(store):
    _persist(store, "t1", "outro", "b")
    _persist(store, "t2", "outro", "a")
    _persist(store, "t1", "shopee", "c")

    partition = DuplicateResolver(store).resolve(["a", "b", "c"], "t1", "outro")

    assert partition.persisted_duplicates == [1]
    assert partition.novel_indices == [0, 2]
    assert partition.duplicate_indices == [1]


def test_lookups_are_chunked(store):
    fingerprints = [f"fp-{i}" for i in range(450)]
    _persist(store, "t1", "outro", "fp-449")

    partition = DuplicateResolver(store, lookup_chunk_size=200).resolve(fingerprints, "t1", "outro")

    assert store.lookup_calls == 3
    assert partition.persisted_duplicates == [449]
    assert len(partition.novel_indices) == 449


def test_failed_lookup_treats_chunk_as_novel(store):
    store.fail_lookups = True
    _persist(store, "t1", "outro", "a")

    partition = DuplicateResolver(store, lookup_chunk_size=1).resolve(["a", "b", "b"], "t1", "outro")

    assert partition.failed_lookups == 2
    assert partition.novel_indices == [0, 1]
    assert partition.internal_duplicates == [2]


def test_empty_batch(store):
    partition = DuplicateResolver(store).resolve([], "t1", "outro")
    assert partition.novel_indices == []
    assert store.lookup_calls == 0
