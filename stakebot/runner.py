"""
Control Loop

One synchronous run-to-completion pass per invocation:

1. Check ledger health and read the current epoch
2. Snapshot vote accounts, submit the backend's init plan
3. Classify block production of the previous epoch
4. Evaluate risk policies and decide desired stake states
5. Build the allocation plan and submit it
6. Send every notification to the operator

All collaborators live in a RunContext built once per run and passed
explicitly; nothing here keeps process-wide state.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

import yaml

from stakebot.allocation import AllocationBackend, build_backend
from stakebot.cache import ConfirmedBlockCache
from stakebot.classifier import BlockProducerClassifier, EpochClassification
from stakebot.decision import DecisionEngine, DecisionResult, build_observations, latest_vote_accounts
from stakebot.errors import BackendError, ClassificationError, StakeBotError
from stakebot.ledger import Authority, LedgerClient
from stakebot.ledger.types import ValidatorAddressPair
from stakebot.notify import Notifier
from stakebot.policy import (
    CommissionPolicy,
    InfrastructureConcentrationPolicy,
    ReleaseVersionPolicy,
)
from stakebot.policy.data_center import concentration_by_validator, get_data_center_info
from stakebot.registry import ParticipantRegistry
from stakebot.submission import SubmissionPipeline, SubmissionReport
from stakebot.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RunContext:
    """Everything one run needs, constructed once"""
    config: dict
    dry_run: bool
    client: LedgerClient
    authority: Authority
    backend: AllocationBackend
    notifier: Notifier
    cache_path: Path


@dataclass
class RunResult:
    """Outcome of one run"""
    ok: bool
    epoch: int
    classification: EpochClassification
    decisions: DecisionResult
    report: SubmissionReport
    notifications: List[str] = field(default_factory=list)


def build_client(config: dict) -> LedgerClient:
    cluster_config = config['cluster']
    return LedgerClient(
        cluster_config['json_rpc_url'],
        timeout=float(cluster_config.get('request_timeout', 30)),
    )


def build_context(
    config: dict,
    dry_run: Optional[bool] = None,
    client: Optional[LedgerClient] = None,
    authority: Optional[Authority] = None,
    notifier: Optional[Notifier] = None
) -> RunContext:
    """
    Build the run context from configuration

    Args:
        config: Raw configuration dict
        dry_run: Overrides config['dry_run'] if given
        client: Ledger client (built from config if None)
        authority: Staking authority (loaded from config/env if None)
        notifier: Notifier (built from config if None)

    Raises:
        StakeBotError: If a live run has no notifier configured
        BackendError: If the allocation backend cannot be built
        ValueError: If the authority key is missing or malformed
    """
    if dry_run is None:
        dry_run = bool(config['dry_run'])

    client = client or build_client(config)
    authority = authority or Authority.from_config(config)
    notifier = notifier or Notifier.from_config(config, dry_run=dry_run)

    if not dry_run and notifier.is_empty():
        raise StakeBotError("A notifier must be configured for live runs")

    registry = None
    participants_file = (config.get('registry') or {}).get('participants_file')
    if participants_file:
        try:
            registry = ParticipantRegistry.from_file(participants_file)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise BackendError(f"Unable to load participant registry: {e}") from e

    backend = build_backend(config, authority.address, registry)

    return RunContext(
        config=config,
        dry_run=dry_run,
        client=client,
        authority=authority,
        backend=backend,
        notifier=notifier,
        cache_path=Path(config['cache']['path']).expanduser(),
    )


def classify_epoch(config: dict, client: LedgerClient, cache_path: Path, epoch: int) -> EpochClassification:
    """Classify block production of epoch through the confirmed-block cache"""
    cache = ConfirmedBlockCache.open(cache_path, config['cluster']['name'], client)
    try:
        return BlockProducerClassifier(config).classify_epoch(client, cache, epoch)
    finally:
        cache.close()


def classify_previous_epoch(
    config: dict,
    client: LedgerClient,
    cache_path: Path
) -> Tuple[int, EpochClassification]:
    """
    Classify block production of the last completed epoch

    Raises:
        ClassificationError: If there is no completed epoch or it cannot be classified
        CacheIOError: If the cache store fails
    """
    epoch_info = client.get_epoch_info()
    if epoch_info.epoch == 0:
        raise ClassificationError("No completed epoch to classify yet")
    last_epoch = epoch_info.epoch - 1
    return last_epoch, classify_epoch(config, client, cache_path, last_epoch)


def build_infrastructure_policy(config: dict) -> Optional[InfrastructureConcentrationPolicy]:
    data_centers = get_data_center_info(config)
    if not data_centers:
        return None
    return InfrastructureConcentrationPolicy.from_config(config, concentration_by_validator(data_centers))


def run(context: RunContext) -> RunResult:
    """
    Execute one control-loop pass

    Returns:
        RunResult; ok is False if any submitted operation did not confirm

    Raises:
        LedgerUnhealthyError: If the ledger endpoint is unhealthy
        InsufficientFundsError: If a funding account cannot cover a plan
        ClassificationError, BackendError, PolicyError, CacheIOError: Fatal run errors
    """
    config = context.config
    client = context.client
    backend = context.backend
    authority_address = context.authority.address

    mode = "DRY RUN" if context.dry_run else "LIVE"
    logger.info(f"Starting run ({mode}) on {config['cluster']['name']} with {backend.name} backend")

    client.get_health()
    epoch_info = client.get_epoch_info()
    logger.info(f"Epoch {epoch_info.epoch}, slot {epoch_info.absolute_slot}")
    if epoch_info.epoch == 0:
        raise ClassificationError("No completed epoch to classify yet")
    last_epoch = epoch_info.epoch - 1

    pipeline = SubmissionPipeline.from_config(config, client, context.authority, context.dry_run)

    vote_accounts = latest_vote_accounts(client.get_vote_accounts())
    validators = [
        ValidatorAddressPair(identity=info.identity, vote_address=info.vote_address)
        for info in vote_accounts
    ]

    init_plan = backend.init(client, authority_address, validators, epoch_info)
    if not pipeline.submit(init_plan, []).ok:
        raise BackendError("Failed to initialize allocation backend. Unable to continue")

    observations = build_observations(vote_accounts, client.get_cluster_nodes(), backend.is_enrolled)

    classification = classify_epoch(config, client, context.cache_path, last_epoch)

    commission_policy = CommissionPolicy.from_config(config)
    release_policy = ReleaseVersionPolicy.from_config(config, observations)
    infrastructure_policy = build_infrastructure_policy(config)

    engine = DecisionEngine(config)
    notifications = engine.run_notifications(classification, release_policy, last_epoch)

    decisions = engine.decide(
        observations,
        classification,
        epoch_info.absolute_slot,
        last_epoch,
        commission_policy,
        release_policy,
        infrastructure_policy,
    )
    notifications.extend(decisions.notifications)

    plan = backend.apply(client, authority_address, decisions.desired)
    report = pipeline.submit(plan, notifications)

    for notification in notifications:
        logger.warning(notification)
        context.notifier.send(notification)

    if report.ok:
        logger.info(f"Run complete: {len(plan)} operations")
    else:
        logger.error(f"Run complete: {len(report.failed)} of {len(plan)} operations failed")

    return RunResult(
        ok=report.ok,
        epoch=last_epoch,
        classification=classification,
        decisions=decisions,
        report=report,
        notifications=notifications,
    )
