"""
Data Center Concentration Source

Supplies, per data center, the percentage of total stake hosted there and
the validators it hosts. Read from a YAML/JSON file or fetched from a URL.

Expected shape:
    - data_center: "24940-DE-Falkenstein"
      stake_percent: 12.5
      validators: [<identity>, ...]

Concentration data is advisory: when it cannot be loaded the run continues
without the infrastructure policy and a warning is logged.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import requests
import yaml

from stakebot.ledger.types import Pubkey
from stakebot.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class DataCenterInfo:
    """Stake concentration of one data center"""
    data_center: str
    stake_percent: float
    validators: List[Pubkey]


def _parse_entries(entries) -> List[DataCenterInfo]:
    if not isinstance(entries, list):
        raise ValueError(f"Data center info must be a list, got {type(entries)}")

    result = []
    for entry in entries:
        result.append(DataCenterInfo(
            data_center=str(entry['data_center']),
            stake_percent=float(entry['stake_percent']),
            validators=[Pubkey.from_string(v) for v in entry.get('validators', [])],
        ))
    return result


def load_data_center_file(path: Path) -> List[DataCenterInfo]:
    """
    Load data center info from a YAML (or JSON) file

    Raises:
        OSError, yaml.YAMLError, ValueError, KeyError: On unreadable or malformed data
    """
    with open(path, 'r') as f:
        return _parse_entries(yaml.safe_load(f))


def fetch_data_center_info(url: str, timeout: float = 30.0) -> List[DataCenterInfo]:
    """
    Fetch data center info from an HTTP endpoint returning JSON

    Raises:
        requests.RequestException, ValueError, KeyError: On failure
    """
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    return _parse_entries(response.json())


def get_data_center_info(config: dict) -> List[DataCenterInfo]:
    """
    Load data center info as configured in config['data_center']

    Returns:
        List of DataCenterInfo, empty if unconfigured or unavailable
    """
    dc_config = config.get('data_center') or {}
    path: Optional[str] = dc_config.get('file')
    url: Optional[str] = dc_config.get('url')

    if not path and not url:
        logger.debug("No data center source configured")
        return []

    try:
        if path:
            info = load_data_center_file(Path(path).expanduser())
        else:
            info = fetch_data_center_info(url)
    except (OSError, yaml.YAMLError, requests.RequestException, ValueError, KeyError) as e:
        logger.warning(f"infrastructure concentration skipped: {e}")
        return []

    logger.info(f"Loaded stake concentration for {len(info)} data centers")
    return info


def concentration_by_validator(data_centers: List[DataCenterInfo]) -> Dict[Pubkey, float]:
    """Map each validator to the stake percentage of its data center"""
    concentration: Dict[Pubkey, float] = {}
    for dc in data_centers:
        for identity in dc.validators:
            concentration[identity] = dc.stake_percent
    return concentration
