"""
Block-Production Classifier

Splits validators into quality and poor block producers based on their
skip rate over one accounting period (epoch).

Algorithm:
1. Count assigned slots and produced blocks per validator
2. skip_rate = 100 - blocks * 100 / slots (integer arithmetic)
3. Cluster average skip rate over all validators combined
4. Poor iff max(0, skip_rate - quality_pct) > floor, where floor is the
   cluster average (if enabled) or 0
5. too_many_poor iff poor percentage > max_poor_block_producer_percentage
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Set

from stakebot.cache.confirmed_block_cache import ConfirmedBlockCache
from stakebot.errors import ClassificationError
from stakebot.ledger.client import LedgerClient
from stakebot.ledger.types import LeaderSchedule, Pubkey
from stakebot.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProducerStats:
    """Block production of one validator in one epoch"""
    blocks: int
    slots: int

    @property
    def skip_rate(self) -> int:
        return 100 - (self.blocks * 100 // self.slots)


@dataclass(frozen=True)
class EpochClassification:
    """Result of classifying one epoch"""
    quality: FrozenSet[Pubkey]
    poor: FrozenSet[Pubkey]
    cluster_average_skip_rate: int
    too_many_poor: bool
    poor_percentage: int = 0
    stats: Dict[Pubkey, ProducerStats] = field(default_factory=dict)

    @property
    def classified_count(self) -> int:
        return len(self.quality) + len(self.poor)

    def is_classified(self, identity: Pubkey) -> bool:
        return identity in self.quality or identity in self.poor


class BlockProducerClassifier:
    """
    Classifies validators by block production quality

    Pure classification lives in classify(); classify_epoch() gathers
    its inputs from the ledger and the confirmed-block cache.
    """

    def __init__(self, config: dict):
        """
        Initialize classifier

        Args:
            config: Configuration dict with 'classification' section

        Raises:
            KeyError: If required config keys are missing (Fast Fail)
        """
        classification_config = config['classification']

        self.quality_block_producer_percentage = classification_config['quality_block_producer_percentage']
        self.max_poor_block_producer_percentage = classification_config['max_poor_block_producer_percentage']
        self.use_cluster_average_skip_rate = classification_config['use_cluster_average_skip_rate']

        logger.debug(
            f"BlockProducerClassifier initialized: quality={self.quality_block_producer_percentage}%, "
            f"max_poor={self.max_poor_block_producer_percentage}%, "
            f"cluster_average_floor={self.use_cluster_average_skip_rate}"
        )

    def classify(
        self,
        first_slot_in_epoch: int,
        confirmed_blocks: Set[int],
        leader_schedule: LeaderSchedule
    ) -> EpochClassification:
        """
        Classify validators for one epoch

        Args:
            first_slot_in_epoch: Absolute slot the schedule offsets are relative to
            confirmed_blocks: Confirmed slots within the epoch
            leader_schedule: Identity -> relative slot offsets

        Returns:
            EpochClassification

        Raises:
            ClassificationError: If no validator has any assigned slot
        """
        stats: Dict[Pubkey, ProducerStats] = {}
        total_blocks = 0
        total_slots = 0

        for identity, relative_slots in leader_schedule.items():
            slots = len(relative_slots)
            if slots == 0:
                continue

            blocks = sum(
                1 for offset in relative_slots
                if first_slot_in_epoch + offset in confirmed_blocks
            )
            total_blocks += blocks
            total_slots += slots
            stats[identity] = ProducerStats(blocks=blocks, slots=slots)

        if total_slots == 0:
            raise ClassificationError(
                "Leader schedule has no assigned slots; cannot classify block producers"
            )

        cluster_average_skip_rate = 100 - total_blocks * 100 // total_slots
        skip_rate_floor = cluster_average_skip_rate if self.use_cluster_average_skip_rate else 0

        quality: Set[Pubkey] = set()
        poor: Set[Pubkey] = set()

        for identity, producer in stats.items():
            skip_rate = producer.skip_rate
            if max(0, skip_rate - self.quality_block_producer_percentage) > skip_rate_floor:
                poor.add(identity)
            else:
                quality.add(identity)

            logger.debug(
                f"Validator {identity} produced {producer.blocks} blocks in "
                f"{producer.slots} slots, skip_rate: {skip_rate}"
            )

        poor_percentage = len(poor) * 100 // (len(quality) + len(poor))
        too_many_poor = poor_percentage > self.max_poor_block_producer_percentage

        logger.info(f"cluster_average_skip_rate: {cluster_average_skip_rate}")
        logger.info(f"quality_block_producers: {len(quality)}")
        logger.info(f"poor_block_producers: {len(poor)}")
        logger.info(
            f"poor_block_producer_percentage: {poor_percentage}% "
            f"(too many poor producers={too_many_poor})"
        )

        return EpochClassification(
            quality=frozenset(quality),
            poor=frozenset(poor),
            cluster_average_skip_rate=cluster_average_skip_rate,
            too_many_poor=too_many_poor,
            poor_percentage=poor_percentage,
            stats=stats,
        )

    def classify_epoch(
        self,
        client: LedgerClient,
        cache: ConfirmedBlockCache,
        epoch: int
    ) -> EpochClassification:
        """
        Classify validators based on their block production in epoch

        Raises:
            ClassificationError: If the ledger no longer holds the epoch's blocks
            RemoteQueryError: If a ledger query fails
            CacheIOError: If the cache store fails
        """
        epoch_schedule = client.get_epoch_schedule()
        first_slot_in_epoch = epoch_schedule.get_first_slot_in_epoch(epoch)
        last_slot_in_epoch = epoch_schedule.get_last_slot_in_epoch(epoch)

        first_available_block = client.get_first_available_block()
        # a block at the first slot itself is still available; a ledger that
        # keeps slot 0 can classify epoch 0
        if first_available_block > first_slot_in_epoch:
            raise ClassificationError(
                f"First available block is newer than the start of epoch {epoch}: "
                f"{first_available_block} > {first_slot_in_epoch}"
            )

        leader_schedule = client.get_leader_schedule(first_slot_in_epoch)
        confirmed_blocks = cache.query(first_slot_in_epoch, last_slot_in_epoch)

        logger.info(
            f"Epoch {epoch}: slots [{first_slot_in_epoch}, {last_slot_in_epoch}), "
            f"{len(confirmed_blocks)} confirmed blocks, {len(leader_schedule)} leaders"
        )

        return self.classify(first_slot_in_epoch, confirmed_blocks, leader_schedule)
