"""
Pooled Allocation Backend

All stake lives in one shared pool. The pool keeps a validator list and
per-validator active and transient (in-flight) amounts.

Targets:
- NONE:     0
- BASELINE: baseline_amount
- BONUS:    baseline_amount + equal share of the stake left after baselines

Decreases are planned before increases; increases are capped by the pool
reserve. Validators with an adjustment in flight are skipped until it
settles, and deltas below the pool's minimum record balance are ignored.
"""

from dataclasses import replace
from typing import Dict, FrozenSet, List

from stakebot.allocation.base import AllocationBackend, Operation, OperationKind, Plan
from stakebot.decision.engine import DesiredStakeState, ValidatorStake
from stakebot.ledger.client import LedgerClient
from stakebot.ledger.types import EpochInfo, PoolState, Pubkey, ValidatorAddressPair
from stakebot.utils.logger import get_logger

logger = get_logger(__name__)


class PooledAllocation(AllocationBackend):
    """Rebalance one shared pool across enrolled validators"""

    name = "pooled"

    def __init__(self, pool_address: Pubkey, baseline_amount: int, enrolled: FrozenSet[Pubkey]):
        super().__init__(enrolled)
        self.pool_address = pool_address
        self.baseline_amount = baseline_amount

        logger.info(
            f"PooledAllocation: pool {pool_address}, {len(self.enrolled)} enrolled, "
            f"baseline={baseline_amount}"
        )

    def init(
        self,
        client: LedgerClient,
        authority: str,
        validators: List[ValidatorAddressPair],
        epoch_info: EpochInfo
    ) -> Plan:
        """Add enrolled validators missing from the pool's validator list"""
        self.remember_validators(validators)
        pool = client.get_stake_pool(self.pool_address)

        plan: Plan = []
        for pair in validators:
            if not self.is_enrolled(pair.identity):
                continue
            if pool.entry_for(pair.vote_address) is not None:
                continue
            plan.append(Operation(
                kind=OperationKind.CREATE,
                identity=pair.identity,
                account=self.pool_address,
                vote_address=pair.vote_address,
                memo=f"Adding `{pair.identity}` to the pool",
            ))

        logger.info(f"Init plan (epoch {epoch_info.epoch}): {len(plan)} operations")
        return plan

    def targets(self, pool: PoolState, desired: List[ValidatorStake]) -> Dict[Pubkey, int]:
        """Target amount per identity"""
        staked = [s for s in desired if s.stake_state != DesiredStakeState.NONE]
        bonus_count = sum(1 for s in desired if s.stake_state == DesiredStakeState.BONUS)

        baseline_total = self.baseline_amount * len(staked)
        bonus_share = 0
        if bonus_count:
            bonus_share = max(0, pool.total_amount - baseline_total) // bonus_count

        targets = {}
        for stake in desired:
            if stake.stake_state == DesiredStakeState.NONE:
                targets[stake.identity] = 0
            elif stake.stake_state == DesiredStakeState.BASELINE:
                targets[stake.identity] = self.baseline_amount
            else:
                targets[stake.identity] = self.baseline_amount + bonus_share

        logger.debug(f"Pool targets: baseline={self.baseline_amount}, bonus share={bonus_share}")
        return targets

    def apply(
        self,
        client: LedgerClient,
        authority: str,
        desired: List[ValidatorStake]
    ) -> Plan:
        pool = client.get_stake_pool(self.pool_address)
        targets = self.targets(pool, desired)

        decreases: Plan = []
        increases: Plan = []

        for stake in desired:
            vote_address = self.vote_address_for(stake.identity)
            entry = pool.entry_for(vote_address)
            if entry is None:
                logger.warning(f"`{stake.identity}` is not in the pool validator list yet")
                continue
            if entry.transient_amount > 0:
                logger.debug(f"`{stake.identity}` has an adjustment in flight, skipping")
                continue

            delta = targets[stake.identity] - entry.active_amount
            if delta == 0 or abs(delta) < pool.minimum_record_balance:
                continue

            operation = Operation(
                kind=OperationKind.ADJUST,
                identity=stake.identity,
                account=self.pool_address,
                amount=delta,
                vote_address=vote_address,
                memo=stake.memo,
            )
            (decreases if delta < 0 else increases).append(operation)

        reserve = pool.reserve_amount
        capped: Plan = []
        for operation in increases:
            amount = min(operation.amount, reserve)
            if amount <= 0 or amount < pool.minimum_record_balance:
                logger.warning(f"Pool reserve exhausted, not increasing `{operation.identity}`")
                continue
            reserve -= amount
            if amount != operation.amount:
                operation = replace(operation, amount=amount)
            capped.append(operation)

        plan = decreases + capped
        logger.info(
            f"Allocation plan: {len(decreases)} decreases, {len(capped)} increases "
            f"for {len(desired)} validators"
        )
        return plan
