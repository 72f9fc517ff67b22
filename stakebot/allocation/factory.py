"""
Allocation Backend Factory

Builds the backend selected by config['allocation']['backend'].
The set of backends is closed: 'pooled' or 'per_validator'.
"""

from typing import FrozenSet, Optional

import yaml

from stakebot.allocation.base import AllocationBackend
from stakebot.allocation.per_validator import PerValidatorAllocation
from stakebot.allocation.pooled import PooledAllocation
from stakebot.errors import BackendError
from stakebot.ledger.types import Pubkey, to_base_units
from stakebot.registry.participants import ParticipantRegistry, load_validator_list
from stakebot.utils.logger import get_logger

logger = get_logger(__name__)

BACKENDS = ('pooled', 'per_validator')


def resolve_enrollment(
    backend_config: dict,
    cluster: str,
    registry: Optional[ParticipantRegistry]
) -> FrozenSet[Pubkey]:
    """
    Enrolled identities: explicit validator list first, else approved registry participants

    Raises:
        BackendError: If neither source is available
    """
    validator_list_file = backend_config.get('validator_list_file')
    try:
        if validator_list_file:
            return load_validator_list(validator_list_file)
        if registry is not None and cluster in ('mainnet-beta', 'testnet'):
            return registry.enrolled_identities(cluster)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise BackendError(f"Unable to load enrolled validators: {e}") from e

    raise BackendError(
        f"No enrolled validators for cluster '{cluster}': "
        f"configure validator_list_file or registry.participants_file"
    )


def build_backend(
    config: dict,
    authority_address: str,
    registry: Optional[ParticipantRegistry] = None
) -> AllocationBackend:
    """
    Build the configured allocation backend

    Args:
        config: Configuration dict with 'cluster' and 'allocation' sections
        authority_address: Staking authority (default funding source)
        registry: Participant registry (None if not configured)

    Raises:
        BackendError: On unknown backend or missing enrollment
        KeyError: If required config keys are missing (Fast Fail)
    """
    allocation_config = config['allocation']
    cluster = config['cluster']['name']
    kind = allocation_config['backend']

    baseline_amount = to_base_units(allocation_config['baseline_stake_amount'])

    if kind == 'per_validator':
        backend_config = allocation_config.get('per_validator') or {}
        enrolled = resolve_enrollment(backend_config, cluster, registry)
        return PerValidatorAllocation(
            baseline_amount=baseline_amount,
            bonus_amount=to_base_units(allocation_config['bonus_stake_amount']),
            source_account=backend_config.get('source_account') or authority_address,
            enrolled=enrolled,
        )

    if kind == 'pooled':
        backend_config = allocation_config.get('pooled') or {}
        pool_address = backend_config.get('pool_address')
        if not pool_address:
            raise BackendError("allocation.pooled.pool_address is required for the pooled backend")
        try:
            pool_pubkey = Pubkey.from_string(pool_address)
        except ValueError as e:
            raise BackendError(str(e)) from e
        enrolled = resolve_enrollment(backend_config, cluster, registry)
        return PooledAllocation(
            pool_address=pool_pubkey,
            baseline_amount=baseline_amount,
            enrolled=enrolled,
        )

    raise BackendError(f"Unknown allocation backend '{kind}', expected one of {BACKENDS}")
