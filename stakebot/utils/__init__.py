"""
Utilities for StakeBot
"""

from stakebot.utils.logger import setup_logging, setup_logging_from_config, get_logger

__all__ = ["setup_logging", "setup_logging_from_config", "get_logger"]
