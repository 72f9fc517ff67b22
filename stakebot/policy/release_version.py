"""
Software Staleness Policy

Enrolled validators running a release older than min_release_version are
destake candidates. When stale validators are over-represented (more than
max_old_release_version_percentage of the enrolled fleet) nobody is
destaked for staleness: the stale flag is recorded with destake=False.
"""

from typing import FrozenSet, Iterable, Optional

from packaging.version import InvalidVersion, Version

from stakebot.ledger.types import Pubkey
from stakebot.policy.base import RiskPolicy, ValidatorObservation, Verdict
from stakebot.utils.logger import get_logger

logger = get_logger(__name__)


def parse_release_version(value: Optional[str]) -> Optional[Version]:
    """Parse a release version ('1.14.17' or 'v1.14.17'); None if unparseable"""
    if not value:
        return None
    try:
        return Version(value)
    except InvalidVersion:
        return None


class ReleaseVersionPolicy(RiskPolicy):
    """Destake enrolled validators running an old software release"""

    name = "release_version"

    def __init__(
        self,
        min_release_version: Optional[Version],
        max_old_release_version_percentage: int,
        observations: Iterable[ValidatorObservation]
    ):
        """
        Initialize policy for the current fleet

        Args:
            min_release_version: Minimum accepted release (None disables the policy)
            max_old_release_version_percentage: Staleness ceiling in percent of enrolled validators
            observations: All observations of this run
        """
        self.min_release_version = min_release_version
        self.max_old_release_version_percentage = max_old_release_version_percentage

        enrolled = [o for o in observations if o.enrolled]
        self.enrolled_count = len(enrolled)
        self.stale: FrozenSet[Pubkey] = frozenset(
            o.identity for o in enrolled if self.is_stale(o.version)
        )
        self.too_many_old = (
            len(self.stale) > self.enrolled_count * max_old_release_version_percentage // 100
        )

        if min_release_version is not None:
            logger.info(
                f"Validators running a release older than {min_release_version}: "
                f"{len(self.stale)} of {self.enrolled_count} enrolled "
                f"(too many old={self.too_many_old})"
            )

    @classmethod
    def from_config(cls, config: dict, observations: Iterable[ValidatorObservation]) -> "ReleaseVersionPolicy":
        policy_config = config['policy']
        min_release_version = policy_config.get('min_release_version')
        return cls(
            Version(str(min_release_version)) if min_release_version is not None else None,
            policy_config['max_old_release_version_percentage'],
            observations,
        )

    def is_stale(self, version: Optional[str]) -> bool:
        if self.min_release_version is None:
            return False
        parsed = parse_release_version(version)
        return parsed is not None and parsed < self.min_release_version

    def evaluate(self, observation: ValidatorObservation) -> Optional[Verdict]:
        if observation.identity not in self.stale:
            return None
        return Verdict(
            destake=not self.too_many_old,
            memo=(
                f"`{observation.identity}` is running an old software release "
                f"{observation.version}"
            ),
        )
