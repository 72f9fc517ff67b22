"""
Batch Submission Pipeline

Submits an allocation plan to the ledger.

Contract:
- Dry run: every operation is logged, nothing is sent, the run is ok
- Live: funds precondition first, then each operation is signed by the
  authority with a fresh blockhash, sent, and polled until confirmed
- Transient errors are retried per RetryPolicy; terminal rejections fail
  only that operation (later operations of the same validator are skipped)
- An unconfirmed send is resent only once its blockhash has expired
- ok is True iff every operation confirmed

Operations of different validators are independent and may be submitted
in parallel; operations of the same validator keep their plan order.
"""

import time
from collections import OrderedDict, defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from stakebot.allocation.base import Operation, OperationKind, Plan
from stakebot.errors import (
    ConfirmationUnknownError,
    InsufficientFundsError,
    OperationRejectedError,
    RemoteQueryError,
    StakeBotError,
)
from stakebot.ledger.authority import Authority
from stakebot.ledger.client import LedgerClient
from stakebot.ledger.types import STAKE_RECORD_SIZE, Pubkey
from stakebot.utils.logger import get_logger

logger = get_logger(__name__)

CONFIRMED_STATUSES = ('confirmed', 'finalized')


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry contract for one operation

    An error is transient if it is a RemoteQueryError flagged transient or
    its message contains one of transient_markers. Rejections, and sends that
    may still land, are never retried.
    """
    max_attempts: int = 5
    initial_backoff: float = 2.0
    backoff_multiplier: float = 2.0
    max_backoff: float = 30.0
    transient_markers: Tuple[str, ...] = ()

    @classmethod
    def from_config(cls, config: dict) -> "RetryPolicy":
        submission_config = config['submission']
        return cls(
            max_attempts=submission_config['max_attempts'],
            initial_backoff=submission_config['initial_backoff_seconds'],
            backoff_multiplier=submission_config['backoff_multiplier'],
            max_backoff=submission_config['max_backoff_seconds'],
            transient_markers=tuple(submission_config.get('transient_errors') or ()),
        )

    def is_transient(self, error: Exception) -> bool:
        if isinstance(error, (OperationRejectedError, ConfirmationUnknownError)):
            return False
        if isinstance(error, RemoteQueryError) and error.transient:
            return True
        message = str(error).lower()
        return any(marker.lower() in message for marker in self.transient_markers)

    def delay(self, attempt: int) -> float:
        """Backoff before retry number attempt + 1 (attempt is 0-based)"""
        return min(self.max_backoff, self.initial_backoff * self.backoff_multiplier ** attempt)


class OutcomeStatus(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    SKIPPED = "skipped"
    DRY_RUN = "dry_run"


@dataclass
class OperationOutcome:
    operation: Operation
    status: OutcomeStatus
    reason: str = ""
    signature: Optional[str] = None
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status in (OutcomeStatus.CONFIRMED, OutcomeStatus.DRY_RUN)


@dataclass
class SubmissionReport:
    ok: bool
    outcomes: List[OperationOutcome] = field(default_factory=list)
    notifications: List[str] = field(default_factory=list)

    @property
    def failed(self) -> List[OperationOutcome]:
        return [o for o in self.outcomes if not o.succeeded]


class SubmissionPipeline:
    """Signs, sends and confirms allocation operations"""

    def __init__(
        self,
        client: LedgerClient,
        authority: Authority,
        retry_policy: RetryPolicy,
        dry_run: bool = True,
        fee_per_operation: int = 0,
        max_workers: int = 1,
        confirmation_timeout: float = 60.0,
        landing_timeout: float = 180.0,
        poll_interval: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize pipeline

        Args:
            client: Ledger client
            authority: Signs every operation and pays fees
            retry_policy: Bounded retry contract
            dry_run: If True, nothing is sent to the ledger
            fee_per_operation: Fee charged to the authority per operation (base units)
            max_workers: Validators submitted in parallel
            confirmation_timeout: Seconds to wait for confirmation per attempt
            landing_timeout: Seconds to keep polling an unconfirmed send while it
                may still land, before giving up without resending
            poll_interval: Seconds between status polls
            sleep: Sleep function (injectable for tests)
            clock: Monotonic clock (injectable for tests)
        """
        self.client = client
        self.authority = authority
        self.retry_policy = retry_policy
        self.dry_run = dry_run
        self.fee_per_operation = fee_per_operation
        self.max_workers = max(1, max_workers)
        self.confirmation_timeout = confirmation_timeout
        self.landing_timeout = max(landing_timeout, confirmation_timeout)
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: dict,
        client: LedgerClient,
        authority: Authority,
        dry_run: bool
    ) -> "SubmissionPipeline":
        submission_config = config['submission']
        return cls(
            client=client,
            authority=authority,
            retry_policy=RetryPolicy.from_config(config),
            dry_run=dry_run,
            fee_per_operation=submission_config['fee_per_operation'],
            max_workers=submission_config['max_workers'],
            confirmation_timeout=submission_config['confirmation_timeout_seconds'],
            landing_timeout=submission_config['landing_timeout_seconds'],
            poll_interval=submission_config['poll_interval_seconds'],
        )

    # =========================================================================
    # PRECONDITIONS
    # =========================================================================

    def required_funds(self, plan: Plan) -> Dict[str, int]:
        """
        Amount each funding account must hold to cover the plan

        Transfers are charged to their funding source, the rent-exempt reserve
        of each new record to its funding source (or the authority), and
        operation fees to the authority.
        """
        required: Dict[str, int] = defaultdict(int)
        creates = [op for op in plan if op.kind == OperationKind.CREATE]
        if creates:
            rent = self.client.get_minimum_balance_for_rent_exemption(STAKE_RECORD_SIZE)
            for operation in creates:
                required[operation.funding_source or self.authority.address] += rent
        for operation in plan:
            if operation.funding_source and operation.amount > 0:
                required[operation.funding_source] += operation.amount
        required[self.authority.address] += self.fee_per_operation * len(plan)
        return dict(required)

    def check_funds(self, plan: Plan) -> None:
        """
        Raises:
            InsufficientFundsError: If any funding account cannot cover the plan
        """
        for address, required in self.required_funds(plan).items():
            balance = self.client.get_balance(address)
            if balance < required:
                raise InsufficientFundsError(address, balance, required)
            logger.debug(f"{address} balance {balance} covers {required}")

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def _poll_status(self, signature: str) -> Optional[Dict]:
        try:
            return self.client.get_signature_status(signature)
        except RemoteQueryError as e:
            logger.debug(f"Status query for {signature} failed: {e}")
            return None

    def _blockhash_expired(self, blockhash: str) -> bool:
        try:
            return not self.client.is_blockhash_valid(blockhash)
        except RemoteQueryError as e:
            logger.debug(f"Blockhash check for {blockhash} failed: {e}")
            return False

    @staticmethod
    def _check_status(signature: str, status: Optional[Dict]) -> bool:
        """True if confirmed; raises OperationRejectedError if the ledger reports an error"""
        if status is None:
            return False
        if status.get('err'):
            raise OperationRejectedError(f"{signature} rejected: {status['err']}")
        return status.get('confirmationStatus') in CONFIRMED_STATUSES

    def _await_confirmation(self, signature: str, blockhash: str) -> None:
        """
        Poll until the operation is confirmed

        After confirmation_timeout the operation is only given up on once its
        blockhash has expired, since until then it may still land. A resend
        before that point could apply the same operation twice.

        Raises:
            OperationRejectedError: If the ledger reports an error
            RemoteQueryError: Transient, if the blockhash expired unconfirmed
            ConfirmationUnknownError: If landing_timeout passes while the
                operation may still land
        """
        started = self._clock()
        while True:
            if self._check_status(signature, self._poll_status(signature)):
                return

            elapsed = self._clock() - started
            if elapsed >= self.confirmation_timeout:
                if self._blockhash_expired(blockhash):
                    # it may have landed between the last poll and expiry
                    if self._check_status(signature, self._poll_status(signature)):
                        return
                    raise RemoteQueryError(
                        f"{signature} was not confirmed before its blockhash expired", transient=True
                    )
                if elapsed >= self.landing_timeout:
                    raise ConfirmationUnknownError(
                        f"{signature} unconfirmed after {elapsed:.0f}s and may still land"
                    )
            self._sleep(self.poll_interval)

    def _submit_operation(self, operation: Operation) -> OperationOutcome:
        max_attempts = self.retry_policy.max_attempts
        last_error: Optional[StakeBotError] = None

        for attempt in range(max_attempts):
            try:
                blockhash = self.client.get_latest_blockhash()
                payload = operation.to_payload(blockhash, self.authority.address)
                signature = self.client.send_operation(payload, self.authority.sign(payload))
                self._await_confirmation(signature, blockhash)

                logger.info(f"Confirmed {operation.describe()} ({signature})")
                return OperationOutcome(
                    operation, OutcomeStatus.CONFIRMED, signature=signature, attempts=attempt + 1
                )

            except StakeBotError as e:
                last_error = e
                if not self.retry_policy.is_transient(e):
                    logger.error(f"{operation.describe()} rejected: {e}")
                    return OperationOutcome(
                        operation, OutcomeStatus.FAILED, reason=str(e), attempts=attempt + 1
                    )

                if attempt < max_attempts - 1:
                    delay = self.retry_policy.delay(attempt)
                    logger.warning(
                        f"{operation.describe()} failed (attempt {attempt + 1}/{max_attempts}): {e}. "
                        f"Retrying in {delay:.1f}s"
                    )
                    self._sleep(delay)

        logger.error(f"{operation.describe()} failed after {max_attempts} attempts")
        return OperationOutcome(
            operation, OutcomeStatus.FAILED,
            reason=f"failed after {max_attempts} attempts: {last_error}",
            attempts=max_attempts,
        )

    def _submit_group(self, operations: List[Operation]) -> List[OperationOutcome]:
        """Submit one validator's operations in order; stop at the first failure"""
        outcomes = []
        failed = False
        for operation in operations:
            if failed:
                outcomes.append(OperationOutcome(
                    operation, OutcomeStatus.SKIPPED,
                    reason=f"an earlier operation for {operation.identity} failed",
                ))
                continue
            outcome = self._submit_operation(operation)
            failed = not outcome.succeeded
            outcomes.append(outcome)
        return outcomes

    @staticmethod
    def group_by_identity(plan: Plan) -> List[List[Operation]]:
        """Split plan into per-validator groups, keeping plan order within each"""
        groups: Dict[Pubkey, List[Operation]] = OrderedDict()
        for operation in plan:
            groups.setdefault(operation.identity, []).append(operation)
        return list(groups.values())

    def submit(self, plan: Plan, notifications: Optional[List[str]] = None) -> SubmissionReport:
        """
        Submit a plan

        Args:
            plan: Ordered operations
            notifications: Accumulated notifications (appended to)

        Returns:
            SubmissionReport

        Raises:
            InsufficientFundsError: If the funds precondition fails (nothing is sent)
        """
        if notifications is None:
            notifications = []

        if not plan:
            logger.info("Nothing to submit")
            return SubmissionReport(ok=True, notifications=notifications)

        if self.dry_run:
            outcomes = []
            for operation in plan:
                logger.info(f"DRY RUN: {operation.describe()} - {operation.memo}")
                outcomes.append(OperationOutcome(operation, OutcomeStatus.DRY_RUN))
            self._collect_notifications(outcomes, notifications)
            return SubmissionReport(ok=True, outcomes=outcomes, notifications=notifications)

        self.check_funds(plan)

        groups = self.group_by_identity(plan)
        logger.info(f"Submitting {len(plan)} operations for {len(groups)} validators")

        if self.max_workers == 1 or len(groups) == 1:
            results = [self._submit_group(group) for group in groups]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="submit") as executor:
                results = list(executor.map(self._submit_group, groups))

        outcomes = [outcome for group_outcomes in results for outcome in group_outcomes]
        self._collect_notifications(outcomes, notifications)

        ok = all(outcome.succeeded for outcome in outcomes)
        confirmed = sum(1 for o in outcomes if o.status == OutcomeStatus.CONFIRMED)
        logger.info(f"Submission complete: {confirmed}/{len(outcomes)} confirmed")

        return SubmissionReport(ok=ok, outcomes=outcomes, notifications=notifications)

    @staticmethod
    def _collect_notifications(outcomes: List[OperationOutcome], notifications: List[str]) -> None:
        seen = set(notifications)
        for outcome in outcomes:
            if outcome.succeeded:
                text = outcome.operation.memo
            elif outcome.status == OutcomeStatus.SKIPPED:
                text = f"Skipped {outcome.operation.describe()}: {outcome.reason}"
            else:
                text = f"Failed {outcome.operation.describe()}: {outcome.reason}"
            if text and text not in seen:
                seen.add(text)
                notifications.append(text)
