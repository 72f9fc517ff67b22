"""
Allocation Decision Engine

Maps each enrolled, observed validator to a desired stake state.
Rules are evaluated in strict precedence order, first match wins:

1. Infrastructure concentration destake     -> NONE
2. Commission above ceiling                  -> NONE
3. Stale release (not over-represented)      -> NONE
4. Delinquent beyond the grace distance      -> NONE
5. Delinquent within the grace distance      -> no decision (hold)
6. Quality block producer                    -> BONUS
7. Poor block producer (not too many)        -> BASELINE
8. Poor block producer (too many)            -> no decision
9. Anything else                             -> BASELINE

Safety and compliance rules always dominate performance bonuses.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Iterable, List, Optional

from stakebot.classifier.block_producers import EpochClassification
from stakebot.ledger.types import ClusterNode, Pubkey, VoteAccountInfo
from stakebot.policy.base import ValidatorObservation
from stakebot.policy.commission import CommissionPolicy
from stakebot.policy.infrastructure import InfrastructureConcentrationPolicy
from stakebot.policy.release_version import ReleaseVersionPolicy
from stakebot.utils.logger import get_logger

logger = get_logger(__name__)


class DesiredStakeState(IntEnum):
    """Target allocation tier of a validator"""
    NONE = 0
    BASELINE = 1
    BONUS = 2


@dataclass(frozen=True)
class ValidatorStake:
    """Desired state of one validator plus its audit memo"""
    identity: Pubkey
    stake_state: DesiredStakeState
    memo: str


@dataclass
class DecisionResult:
    """Output of one decision pass"""
    desired: List[ValidatorStake] = field(default_factory=list)
    notifications: List[str] = field(default_factory=list)

    def by_identity(self) -> Dict[Pubkey, ValidatorStake]:
        return {stake.identity: stake for stake in self.desired}


def latest_vote_accounts(vote_accounts: Iterable[VoteAccountInfo]) -> List[VoteAccountInfo]:
    """
    Keep one vote account per identity

    If a validator has several vote accounts, the one that voted most
    recently is selected.
    """
    latest: Dict[Pubkey, VoteAccountInfo] = {}
    for info in vote_accounts:
        entry = latest.get(info.identity)
        if entry is None or entry.last_vote < info.last_vote:
            latest[info.identity] = info
    return list(latest.values())


def build_observations(
    vote_accounts: Iterable[VoteAccountInfo],
    cluster_nodes: Iterable[ClusterNode],
    is_enrolled
) -> List[ValidatorObservation]:
    """
    Join the vote-account snapshot with cluster node versions

    Args:
        vote_accounts: Current and delinquent vote accounts
        cluster_nodes: Gossip listing (source of software versions)
        is_enrolled: Callable identity -> bool (the backend's enrollment)

    Returns:
        One observation per identity, de-duplicated by latest vote
    """
    versions = {node.identity: node.version for node in cluster_nodes}

    observations = []
    for info in latest_vote_accounts(vote_accounts):
        observations.append(ValidatorObservation(
            identity=info.identity,
            vote_address=info.vote_address,
            commission=info.commission,
            root_slot=info.root_slot,
            version=versions.get(info.identity),
            enrolled=is_enrolled(info.identity),
        ))
    return observations


class DecisionEngine:
    """
    Computes desired stake states for one run

    The engine holds configuration only; every decide() call is
    independent of previous calls.
    """

    def __init__(self, config: dict):
        """
        Initialize decision engine

        Args:
            config: Configuration dict with 'delinquency' and 'classification' sections

        Raises:
            KeyError: If required config keys are missing (Fast Fail)
        """
        delinquency_config = config['delinquency']
        self.delinquent_grace_slot_distance = delinquency_config['grace_slot_distance']
        self.delinquent_hold_slot_distance = delinquency_config['hold_slot_distance']

        classification_config = config['classification']
        self.bad_cluster_average_skip_rate = classification_config['bad_cluster_average_skip_rate']
        self.max_poor_block_producer_percentage = classification_config['max_poor_block_producer_percentage']

    def run_notifications(
        self,
        classification: EpochClassification,
        release_policy: ReleaseVersionPolicy,
        epoch: int
    ) -> List[str]:
        """Fleet-wide alerts for the classified epoch"""
        notifications = []

        if classification.cluster_average_skip_rate > self.bad_cluster_average_skip_rate:
            notifications.append(
                f"Cluster average skip rate: {classification.cluster_average_skip_rate} "
                f"is above threshold: {self.bad_cluster_average_skip_rate}"
            )

        if classification.too_many_poor:
            notifications.append(
                f"Over {self.max_poor_block_producer_percentage}% of validators classified "
                f"as poor block producers in epoch {epoch}"
            )

        if release_policy.too_many_old:
            notifications.append(
                f"Over {release_policy.max_old_release_version_percentage}% of validators "
                f"classified as running an older release"
            )

        return notifications

    def decide_one(
        self,
        observation: ValidatorObservation,
        classification: EpochClassification,
        current_slot: int,
        epoch: int,
        commission_policy: CommissionPolicy,
        release_policy: ReleaseVersionPolicy,
        infrastructure_policy: Optional[InfrastructureConcentrationPolicy],
        notifications: List[str]
    ) -> Optional[ValidatorStake]:
        """
        Decide one validator

        Infrastructure warnings are appended to notifications.

        Returns:
            ValidatorStake, or None when no decision is taken this run
        """
        identity = observation.identity

        def stake(state: DesiredStakeState, memo: str) -> ValidatorStake:
            return ValidatorStake(identity=identity, stake_state=state, memo=memo)

        if infrastructure_policy is not None:
            verdict = infrastructure_policy.evaluate(observation)
            if verdict is not None:
                if verdict.destake:
                    return stake(DesiredStakeState.NONE, verdict.memo)
                notifications.append(verdict.memo)

        verdict = commission_policy.evaluate(observation)
        if verdict is not None and verdict.destake:
            return stake(DesiredStakeState.NONE, verdict.memo)

        verdict = release_policy.evaluate(observation)
        if verdict is not None and verdict.destake:
            return stake(DesiredStakeState.NONE, verdict.memo)

        if observation.root_slot < max(0, current_slot - self.delinquent_grace_slot_distance):
            return stake(DesiredStakeState.NONE, f"`{identity}` is delinquent")

        # Delinquent, but less than the grace period
        if observation.root_slot < max(0, current_slot - self.delinquent_hold_slot_distance):
            return None

        if identity in classification.quality:
            return stake(
                DesiredStakeState.BONUS,
                f"`{identity}` was a quality block producer during epoch {epoch}",
            )

        if identity in classification.poor:
            if classification.too_many_poor:
                return None
            return stake(
                DesiredStakeState.BASELINE,
                f"`{identity}` was a poor block producer during epoch {epoch}",
            )

        return stake(DesiredStakeState.BASELINE, f"`{identity}` is current")

    def decide(
        self,
        observations: Iterable[ValidatorObservation],
        classification: EpochClassification,
        current_slot: int,
        epoch: int,
        commission_policy: CommissionPolicy,
        release_policy: ReleaseVersionPolicy,
        infrastructure_policy: Optional[InfrastructureConcentrationPolicy] = None
    ) -> DecisionResult:
        """
        Compute the desired state of every enrolled validator

        Args:
            observations: Validator snapshot for this run
            classification: Block production of the classified epoch
            current_slot: Absolute slot of the ledger now
            epoch: The classified epoch (used in memos)
            commission_policy: Commission ceiling
            release_policy: Software staleness
            infrastructure_policy: Data center concentration (None if unavailable)

        Returns:
            DecisionResult with desired states and warning notifications
        """
        result = DecisionResult()

        for observation in observations:
            if not observation.enrolled:
                continue

            decision = self.decide_one(
                observation, classification, current_slot, epoch,
                commission_policy, release_policy, infrastructure_policy,
                result.notifications,
            )

            logger.debug(
                f"identity: {observation.identity} vote address: {observation.vote_address} "
                f"root slot: {observation.root_slot} decision: "
                f"{decision.stake_state.name if decision else 'hold'}"
            )

            if decision is not None:
                result.desired.append(decision)

        counts = {state: 0 for state in DesiredStakeState}
        for stake in result.desired:
            counts[stake.stake_state] += 1
        logger.info(
            f"Decisions: {counts[DesiredStakeState.BONUS]} bonus, "
            f"{counts[DesiredStakeState.BASELINE]} baseline, "
            f"{counts[DesiredStakeState.NONE]} none"
        )

        return result
