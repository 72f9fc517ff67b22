"""
Risk Policy Base Types

A policy looks at one validator observation and optionally returns a
verdict. Policies are built once per run and never mutate shared state.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from stakebot.ledger.types import Pubkey


@dataclass(frozen=True)
class ValidatorObservation:
    """Read-only snapshot of one validator, fetched once per run"""
    identity: Pubkey
    vote_address: Pubkey
    commission: int
    root_slot: int
    version: Optional[str] = None
    enrolled: bool = False


@dataclass(frozen=True)
class Verdict:
    """
    Outcome of a policy for one validator

    destake=False means the memo is a warning only.
    """
    destake: bool
    memo: str


class RiskPolicy(ABC):
    """Interface shared by all risk policies"""

    name: str = "policy"

    @abstractmethod
    def evaluate(self, observation: ValidatorObservation) -> Optional[Verdict]:
        """Return a verdict for the validator, or None if the policy does not apply"""
        raise NotImplementedError
