"""
Commission Ceiling Policy

Validators charging more than max_commission are destaked unconditionally.
"""

from typing import Optional

from stakebot.policy.base import RiskPolicy, ValidatorObservation, Verdict


class CommissionPolicy(RiskPolicy):
    """Destake validators whose commission exceeds the ceiling"""

    name = "commission"

    def __init__(self, max_commission: int):
        self.max_commission = max_commission

    @classmethod
    def from_config(cls, config: dict) -> "CommissionPolicy":
        return cls(config['policy']['max_commission'])

    def evaluate(self, observation: ValidatorObservation) -> Optional[Verdict]:
        if observation.commission > self.max_commission:
            return Verdict(
                destake=True,
                memo=f"`{observation.identity}` {observation.commission}% commission is too high",
            )
        return None
