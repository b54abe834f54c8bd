"""
Partition a parsed batch into novel and duplicate transactions.

Duplicates are either repeats inside the batch (first occurrence wins) or
fingerprints already persisted for the same tenant and channel.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Set

import structlog

from .exceptions import DedupLookupError
from .storage import MarketplaceStore

logger = structlog.get_logger(__name__)

DEFAULT_LOOKUP_CHUNK_SIZE = 200


@dataclass
class DuplicatePartition:
    internal_duplicates: List[int] = field(default_factory=list)
    persisted_duplicates: List[int] = field(default_factory=list)
    novel_indices: List[int] = field(default_factory=list)
    failed_lookups: int = 0

    @property
    def duplicate_indices(self) -> List[int]:
        return sorted(self.internal_duplicates + self.persisted_duplicates)

    @property
    def duplicate_count(self) -> int:
        return len(self.internal_duplicates) + len(self.persisted_duplicates)


class DuplicateResolver:
    def __init__(self, store: MarketplaceStore, lookup_chunk_size: int = DEFAULT_LOOKUP_CHUNK_SIZE):
        self.store = store
        self.lookup_chunk_size = max(1, lookup_chunk_size)

    def resolve(self, fingerprints: List[str], tenant_id: str, channel: str) -> DuplicatePartition:
        """
        Split batch indices into duplicate and novel.

        A failed lookup chunk is logged and treated as "nothing found"; the
        storage unique constraint catches anything missed.
        """
        partition = DuplicatePartition()

        first_seen: Dict[str, int] = {}
        for idx, fp in enumerate(fingerprints):
            if fp in first_seen:
                partition.internal_duplicates.append(idx)
            else:
                first_seen[fp] = idx

        distinct = list(first_seen)
        persisted: Set[str] = set()
        for start in range(0, len(distinct), self.lookup_chunk_size):
            chunk = distinct[start:start + self.lookup_chunk_size]
            try:
                persisted |= self.store.find_existing_references(tenant_id, channel, chunk)
            except DedupLookupError as e:
                partition.failed_lookups += 1
                logger.warning(
                    "dedup_lookup_failed",
                    tenant_id=tenant_id,
                    channel=channel,
                    chunk_start=start,
                    chunk_size=len(chunk),
                    error=str(e),
                )

        for fp, idx in first_seen.items():
            if fp in persisted:
                partition.persisted_duplicates.append(idx)
            else:
                partition.novel_indices.append(idx)
        partition.novel_indices.sort()
        partition.persisted_duplicates.sort()

        logger.info(
            "duplicates_resolved",
            tenant_id=tenant_id,
            channel=channel,
            total=len(fingerprints),
            novel=len(partition.novel_indices),
            internal_duplicates=len(partition.internal_duplicates),
            persisted_duplicates=len(partition.persisted_duplicates),
        )
        return partition
