"""
Test Control Loop

End-to-end passes of run() against the in-memory ledger:
dry run, live run, and the fatal preconditions.
"""

import sys
from pathlib import Path
from unittest.mock import Mock

import pytest
import yaml

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
sys.path.insert(0, str(Path(__file__).parent.parent))

from mocks.mock_ledger import MockLedgerClient, schedule_of
from stakebot.decision import DesiredStakeState
from stakebot.errors import BackendError, ClassificationError, LedgerUnhealthyError, StakeBotError
from stakebot.notify import Notifier
from stakebot.runner import build_context, classify_previous_epoch, run
from stakebot.submission import OutcomeStatus

# Scenario A, shifted into epoch 1 (slots 50..99)
CONFIRMED_IN_EPOCH_1 = {50 + s for s in set(range(0, 9)) | {10, 11, 12, 14, 21, 22} | set(range(43, 49))}


@pytest.fixture
def ledger(validators, cluster_nodes):
    identities, vote_accounts = validators
    return MockLedgerClient(
        epoch=2,
        leader_schedule=schedule_of(identities, 10),
        confirmed_slots=CONFIRMED_IN_EPOCH_1,
        vote_accounts=vote_accounts,
        cluster_nodes=cluster_nodes,
    )


@pytest.fixture
def run_config(dry_run_config, validators, tmp_path):
    identities, _ = validators
    validator_list = tmp_path / 'validators.yml'
    validator_list.write_text(yaml.safe_dump([str(i) for i in identities]))
    # cluster-average floor on: three quality producers and two poor ones
    dry_run_config['classification']['use_cluster_average_skip_rate'] = True
    dry_run_config['allocation']['per_validator']['validator_list_file'] = str(validator_list)
    return dry_run_config


@pytest.fixture
def notifier():
    notifier = Mock(spec=Notifier)
    notifier.is_empty.return_value = False
    return notifier


class TestDryRun:

    def test_dry_run_decides_and_submits_nothing(self, run_config, ledger, authority, notifier, validators):
        identities, _ = validators
        context = build_context(run_config, client=ledger, authority=authority, notifier=notifier)

        result = run(context)

        assert context.dry_run is True
        assert result.ok
        assert result.epoch == 1
        assert ledger.sent == []
        assert result.report.outcomes
        assert all(o.status == OutcomeStatus.DRY_RUN for o in result.report.outcomes)

        states = {i: s.stake_state for i, s in result.decisions.by_identity().items()}
        l1, l2, l3, l4, l5 = identities
        assert states == {
            l1: DesiredStakeState.BONUS,
            l2: DesiredStakeState.BONUS,
            l3: DesiredStakeState.BASELINE,
            l4: DesiredStakeState.BASELINE,
            l5: DesiredStakeState.BONUS,
        }

    def test_notifications_are_sent(self, run_config, ledger, authority, notifier):
        context = build_context(run_config, client=ledger, authority=authority, notifier=notifier)

        result = run(context)

        assert "Cluster average skip rate: 58 is above threshold: 50" in result.notifications[0]
        assert any("quality block producer during epoch 1" in n for n in result.notifications)
        assert notifier.send.call_count == len(result.notifications)

    def test_classification_is_cached(self, run_config, ledger, authority, notifier):
        context = build_context(run_config, client=ledger, authority=authority, notifier=notifier)

        run(context)
        run(context)

        assert ledger.get_blocks_calls == [(50, 99)]


class TestLiveRun:

    @pytest.fixture
    def funded_ledger(self, ledger, authority):
        ledger.balances['source-account'] = 10**18
        ledger.balances[authority.address] = 10**18
        return ledger

    def test_live_run_converges(self, run_config, funded_ledger, authority, notifier):
        context = build_context(
            run_config, dry_run=False, client=funded_ledger, authority=authority, notifier=notifier
        )

        first = run(context)
        sent_after_first = len(funded_ledger.sent)
        second = run(context)

        assert first.ok
        assert sent_after_first > 0
        assert all(o.status == OutcomeStatus.CONFIRMED for o in first.report.outcomes)
        assert second.ok
        assert second.report.outcomes == []
        assert len(funded_ledger.sent) == sent_after_first

    def test_live_run_requires_notifier(self, run_config, ledger, authority):
        with pytest.raises(StakeBotError, match="notifier must be configured"):
            build_context(run_config, dry_run=False, client=ledger, authority=authority, notifier=Notifier())


class TestFatalConditions:

    def test_unhealthy_ledger_aborts(self, run_config, ledger, authority, notifier):
        ledger.healthy = False
        context = build_context(run_config, client=ledger, authority=authority, notifier=notifier)

        with pytest.raises(LedgerUnhealthyError):
            run(context)

        notifier.send.assert_not_called()

    def test_first_epoch_has_nothing_to_classify(self, run_config, authority, notifier):
        context = build_context(
            run_config, client=MockLedgerClient(epoch=0), authority=authority, notifier=notifier
        )

        with pytest.raises(ClassificationError):
            run(context)

    def test_missing_enrollment_is_fatal(self, dry_run_config, ledger, authority, notifier):
        with pytest.raises(BackendError, match="No enrolled validators"):
            build_context(dry_run_config, client=ledger, authority=authority, notifier=notifier)

    def test_malformed_registry_is_fatal(self, run_config, ledger, authority, notifier, tmp_path):
        participants = tmp_path / 'participants.yml'
        participants.write_text("- identity: [unclosed")
        run_config['registry'] = {'participants_file': str(participants)}

        with pytest.raises(BackendError, match="Unable to load participant registry"):
            build_context(run_config, client=ledger, authority=authority, notifier=notifier)

    def test_classify_previous_epoch(self, run_config, ledger, tmp_path):
        epoch, classification = classify_previous_epoch(run_config, ledger, tmp_path / 'cache')

        assert epoch == 1
        assert len(classification.poor) == 2
