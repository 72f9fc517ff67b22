"""
Confirmed-Block Cache

Persistent local cache of slot confirmation status, keyed by cluster.

Design Principles:
- Append-only: confirmed slot history never changes, so rows are never
  updated, evicted or invalidated
- Fetch once: slots missing from the store are fetched from the ledger
  and persisted before being returned
- Fast fail: store errors raise CacheIOError, remote errors propagate
  as RemoteQueryError (no retry here)

Intended for completed accounting periods: a slot is cached as unconfirmed
forever once fetched.
"""

from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, List, Set, Tuple

from sqlalchemy import insert

from stakebot.database import CacheDatabase, ConfirmedBlock
from stakebot.ledger.client import LedgerClient
from stakebot.utils.logger import get_logger

logger = get_logger(__name__)

# Rows written per INSERT batch
INSERT_BATCH_SIZE = 50_000


def missing_ranges(start_slot: int, end_slot: int, cached: Dict[int, bool]) -> List[Tuple[int, int]]:
    """
    Contiguous half-open ranges inside [start_slot, end_slot) not present in cached

    Example:
        >>> missing_ranges(0, 10, {2: True, 3: False, 7: True})
        [(0, 2), (4, 7), (8, 10)]
    """
    ranges = []
    range_start = None

    for slot in range(start_slot, end_slot):
        if slot in cached:
            if range_start is not None:
                ranges.append((range_start, slot))
                range_start = None
        elif range_start is None:
            range_start = slot

    if range_start is not None:
        ranges.append((range_start, end_slot))

    return ranges


class ConfirmedBlockCache:
    """
    Cache of confirmed slots backed by remote ledger queries

    Usage:
        cache = ConfirmedBlockCache.open(Path('~/.cache/stakebot'), 'mainnet-beta', client)
        confirmed = cache.query(first_slot, end_slot)
    """

    def __init__(self, database: CacheDatabase, cluster: str, client: LedgerClient):
        """
        Initialize cache

        Args:
            database: Opened cache store
            cluster: Cluster identifier rows are keyed by
            client: Ledger client used for missing slots
        """
        self.database = database
        self.cluster = cluster
        self.client = client

    @classmethod
    def open(cls, base_path: Path, cluster: str, client: LedgerClient) -> "ConfirmedBlockCache":
        """
        Open the persisted store under base_path

        Raises:
            CacheIOError: If the store cannot be opened
        """
        database = CacheDatabase.open(base_path)
        logger.info(f"Confirmed-block cache opened: {base_path} (cluster={cluster})")
        return cls(database, cluster, client)

    def _load_cached(self, start_slot: int, end_slot: int) -> Dict[int, bool]:
        with self.database.session() as session:
            rows = (
                session.query(ConfirmedBlock.slot, ConfirmedBlock.confirmed)
                .filter(
                    ConfirmedBlock.cluster == self.cluster,
                    ConfirmedBlock.slot >= start_slot,
                    ConfirmedBlock.slot < end_slot,
                )
                .all()
            )
        return {slot: confirmed for slot, confirmed in rows}

    def _persist(self, range_start: int, range_end: int, confirmed: Set[int]) -> None:
        now = datetime.now(UTC)
        with self.database.session() as session:
            batch = []
            for slot in range(range_start, range_end):
                batch.append({
                    'cluster': self.cluster,
                    'slot': slot,
                    'confirmed': slot in confirmed,
                    'cached_at': now,
                })
                if len(batch) >= INSERT_BATCH_SIZE:
                    session.execute(insert(ConfirmedBlock), batch)
                    batch = []
            if batch:
                session.execute(insert(ConfirmedBlock), batch)

    def query(self, start_slot: int, end_slot: int) -> Set[int]:
        """
        Get confirmed slots in [start_slot, end_slot)

        Args:
            start_slot: First slot (inclusive)
            end_slot: End slot (exclusive)

        Returns:
            Set of confirmed slots

        Raises:
            CacheIOError: If the store cannot be read or written
            RemoteQueryError: If fetching missing slots fails
        """
        if end_slot <= start_slot:
            return set()

        cached = self._load_cached(start_slot, end_slot)
        gaps = missing_ranges(start_slot, end_slot, cached)

        logger.debug(
            f"Cache query [{start_slot}, {end_slot}): {len(cached)} cached, "
            f"{len(gaps)} missing ranges"
        )

        for range_start, range_end in gaps:
            logger.info(f"Fetching confirmed blocks for slots [{range_start}, {range_end})")
            fetched = {
                slot for slot in self.client.get_blocks(range_start, range_end)
                if range_start <= slot < range_end
            }
            self._persist(range_start, range_end, fetched)

            for slot in range(range_start, range_end):
                cached[slot] = slot in fetched

        return {slot for slot, confirmed in cached.items() if confirmed}

    def close(self) -> None:
        self.database.close()
