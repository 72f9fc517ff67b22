"""
Participant Registry

Maps registration records to (state, mainnet identity, testnet identity).
Only approved participants are enrolled in the allocation on known clusters.

File format (YAML):
    - record: <registration address>
      state: approved            # pending | rejected | approved
      mainnet_identity: <identity>
      testnet_identity: <identity>
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

import yaml

from stakebot.ledger.types import Pubkey
from stakebot.utils.logger import get_logger

logger = get_logger(__name__)


class ParticipantState(str, Enum):
    PENDING = "pending"
    REJECTED = "rejected"
    APPROVED = "approved"


@dataclass(frozen=True)
class Participant:
    state: ParticipantState
    mainnet_identity: Pubkey
    testnet_identity: Pubkey


class ParticipantRegistry:
    """Read-only view of the participant registrations"""

    def __init__(self, participants: Dict[str, Participant]):
        self.participants = participants

    @classmethod
    def from_file(cls, path) -> "ParticipantRegistry":
        """
        Load registry from a YAML file

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If an entry is malformed
        """
        path = Path(path).expanduser()
        with open(path, 'r') as f:
            entries = yaml.safe_load(f) or []

        participants = {}
        for entry in entries:
            try:
                participants[str(entry['record'])] = Participant(
                    state=ParticipantState(entry['state']),
                    mainnet_identity=Pubkey.from_string(entry['mainnet_identity']),
                    testnet_identity=Pubkey.from_string(entry['testnet_identity']),
                )
            except (KeyError, TypeError) as e:
                raise ValueError(f"Malformed participant entry in {path}: {entry}") from e

        logger.info(f"Loaded {len(participants)} participants from {path}")
        return cls(participants)

    @classmethod
    def empty(cls) -> "ParticipantRegistry":
        return cls({})

    def get_participants(self, state: Optional[ParticipantState] = None) -> Dict[str, Participant]:
        """All participants, optionally filtered by state"""
        if state is None:
            return dict(self.participants)
        return {
            record: participant
            for record, participant in self.participants.items()
            if participant.state == state
        }

    def enrolled_identities(self, cluster: str) -> FrozenSet[Pubkey]:
        """
        Identities of approved participants on cluster

        Raises:
            ValueError: If cluster is not mainnet-beta or testnet
        """
        approved = self.get_participants(ParticipantState.APPROVED).values()
        if cluster == 'mainnet-beta':
            return frozenset(p.mainnet_identity for p in approved)
        if cluster == 'testnet':
            return frozenset(p.testnet_identity for p in approved)
        raise ValueError(f"Participant registry has no identities for cluster '{cluster}'")


def load_validator_list(path) -> FrozenSet[Pubkey]:
    """
    Load an explicit YAML list of validator identities

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a list or holds an invalid identity
    """
    path = Path(path).expanduser()
    with open(path, 'r') as f:
        entries = yaml.safe_load(f) or []

    if not isinstance(entries, list):
        raise ValueError(f"Validator list {path} must be a YAML list")

    identities: List[Pubkey] = [Pubkey.from_string(str(entry)) for entry in entries]
    logger.info(f"Loaded {len(identities)} validators from {path}")
    return frozenset(identities)
