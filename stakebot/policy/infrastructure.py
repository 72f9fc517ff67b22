"""
Infrastructure Concentration Policy

Validators hosted in a data center holding more than
max_infrastructure_concentration percent of total stake are either warned
or destaked, depending on the configured affects-policy:

1) warn         - Stake unaffected, a warning is notified
2) destake      - All such validators lose their stake
3) PATH_TO_YAML - Validators listed in the YAML file are destaked,
                  all others are warned
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Optional

import yaml

from stakebot.errors import PolicyError
from stakebot.ledger.types import Pubkey
from stakebot.policy.base import RiskPolicy, ValidatorObservation, Verdict
from stakebot.utils.logger import get_logger

logger = get_logger(__name__)


class AffectsKind(str, Enum):
    """How over-concentrated validators are affected"""
    WARN_ALL = "warn"
    DESTAKE_ALL = "destake"
    DESTAKE_LISTED = "destake_listed"


@dataclass(frozen=True)
class InfrastructureConcentrationAffects:
    """Immutable per run; listed is only used by DESTAKE_LISTED"""
    kind: AffectsKind
    listed: FrozenSet[Pubkey] = field(default_factory=frozenset)

    @classmethod
    def warn_all(cls) -> "InfrastructureConcentrationAffects":
        return cls(AffectsKind.WARN_ALL)

    @classmethod
    def destake_all(cls) -> "InfrastructureConcentrationAffects":
        return cls(AffectsKind.DESTAKE_ALL)

    @classmethod
    def destake_listed(cls, identities: Iterable[Pubkey]) -> "InfrastructureConcentrationAffects":
        return cls(AffectsKind.DESTAKE_LISTED, frozenset(identities))

    @classmethod
    def parse(cls, value: str) -> "InfrastructureConcentrationAffects":
        """
        Parse 'warn', 'destake' or a path to a YAML list of identities

        Unparseable identities in the YAML list are ignored.

        Raises:
            PolicyError: If value is neither keyword nor a readable YAML list
        """
        lower = str(value).lower()
        if lower == AffectsKind.WARN_ALL.value:
            return cls.warn_all()
        if lower == AffectsKind.DESTAKE_ALL.value:
            return cls.destake_all()

        try:
            with open(Path(value).expanduser(), 'r') as f:
                entries = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise PolicyError(f"cannot convert to InfrastructureConcentrationAffects: {value} ({e})") from e

        if not isinstance(entries, list):
            raise PolicyError(f"cannot convert to InfrastructureConcentrationAffects: {value}")

        listed = set()
        for entry in entries:
            try:
                listed.add(Pubkey.from_string(str(entry)))
            except ValueError:
                logger.warning(f"Ignoring invalid identity in {value}: {entry}")

        return cls.destake_listed(listed)

    def destakes(self, identity: Pubkey) -> bool:
        if self.kind is AffectsKind.DESTAKE_ALL:
            return True
        if self.kind is AffectsKind.DESTAKE_LISTED:
            return identity in self.listed
        return False


class InfrastructureConcentrationPolicy(RiskPolicy):
    """Warn or destake validators in over-concentrated data centers"""

    name = "infrastructure_concentration"

    def __init__(
        self,
        max_infrastructure_concentration: float,
        affects: InfrastructureConcentrationAffects,
        concentration: Dict[Pubkey, float]
    ):
        """
        Args:
            max_infrastructure_concentration: Ceiling in percent of total stake
            affects: Resolution policy above the ceiling
            concentration: Identity -> stake percent of its data center
        """
        self.max_infrastructure_concentration = max_infrastructure_concentration
        self.affects = affects
        self.concentration = concentration

    @classmethod
    def from_config(cls, config: dict, concentration: Dict[Pubkey, float]) -> "InfrastructureConcentrationPolicy":
        policy_config = config['policy']
        return cls(
            float(policy_config['max_infrastructure_concentration']),
            InfrastructureConcentrationAffects.parse(policy_config['infrastructure_concentration_affects']),
            concentration,
        )

    def destake_memo(self, identity: Pubkey, concentration: float) -> str:
        return (
            f"`{identity}` infrastructure concentration {concentration:.1f}% is too high. "
            f"Max concentration is {self.max_infrastructure_concentration:.0f}%. Removed stake"
        )

    def warning_memo(self, identity: Pubkey, concentration: float) -> str:
        return (
            f"`{identity}` infrastructure concentration {concentration:.1f}% is too high. "
            f"Max concentration is {self.max_infrastructure_concentration:.0f}%. "
            f"No stake removed. Consider finding a new data center"
        )

    def evaluate(self, observation: ValidatorObservation) -> Optional[Verdict]:
        concentration = self.concentration.get(observation.identity)
        if concentration is None or concentration <= self.max_infrastructure_concentration:
            return None

        if self.affects.destakes(observation.identity):
            return Verdict(destake=True, memo=self.destake_memo(observation.identity, concentration))
        return Verdict(destake=False, memo=self.warning_memo(observation.identity, concentration))
