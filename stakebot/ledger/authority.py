"""
Staking Authority

Loads the authority wallet from its private key and signs operation payloads.
The authority pays operation fees and owns every allocation record.

Usage:
    authority = Authority.from_env()
    signature = authority.sign(payload)
"""

import json
import os
from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.messages import encode_defunct

from stakebot.utils.logger import get_logger

logger = get_logger(__name__)

AUTHORITY_KEY_ENV = 'STAKEBOT_AUTHORITY_KEY'


def canonical_payload(payload: Dict[str, Any]) -> str:
    """Serialize a payload deterministically (the exact bytes that get signed)"""
    return json.dumps(payload, sort_keys=True, separators=(',', ':'))


class Authority:
    """
    Signing authority for all submitted operations.

    Wraps an eth_account LocalAccount.
    """

    def __init__(self, private_key: str):
        """
        Initialize authority

        Args:
            private_key: Hex-encoded private key

        Raises:
            ValueError: If the key is empty or malformed
        """
        if not private_key:
            raise ValueError("Authority private key is empty")

        self._account = Account.from_key(private_key)
        logger.info(f"Authority loaded: {self.address[:6]}...{self.address[-4:]}")

    @classmethod
    def from_env(cls, env_var: str = AUTHORITY_KEY_ENV) -> "Authority":
        """
        Load authority from environment.

        Raises:
            ValueError: If the environment variable is not set (Fast Fail)
        """
        key = os.environ.get(env_var)
        if not key:
            raise ValueError(
                f"{env_var} environment variable not set. "
                f"Add the staking authority private key to .env"
            )
        return cls(key)

    @classmethod
    def from_config(cls, config: Dict) -> "Authority":
        """Load authority from config['authority']['private_key'] or the environment"""
        key: Optional[str] = config.get('authority', {}).get('private_key')
        if key:
            return cls(key)
        return cls.from_env()

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, payload: Dict[str, Any]) -> str:
        """
        Sign an operation payload

        Args:
            payload: Operation payload (must be JSON serializable)

        Returns:
            Hex-encoded signature
        """
        message = encode_defunct(text=canonical_payload(payload))
        signed = self._account.sign_message(message)
        return signed.signature.hex()
