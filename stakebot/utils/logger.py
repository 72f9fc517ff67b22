"""
Logging for StakeBot

Every run logs to two places:
- a rotating run log (plain text, one line per record)
- the terminal on stderr through rich, so stdout stays free for CLI tables

Notifications are also logged at WARNING, so the run log is the complete
record of what the operator was told.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ('urllib3', 'requests', 'sqlalchemy.engine')


def _parse_level(level: str) -> int:
    """
    Raises:
        ValueError: If level is not a standard logging level name
    """
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(
    log_file: Optional[str] = "logs/stakebot.log",
    log_level: str = "INFO",
    max_bytes: int = 10_485_760,  # 10MB
    backup_count: int = 5,
    module_levels: Optional[Dict[str, str]] = None
) -> logging.Logger:
    """
    Configure the root logger for one process

    Args:
        log_file: Run log path (None logs to the terminal only)
        log_level: Level for both handlers
        max_bytes: Rotate the run log at this size
        backup_count: Rotated files to keep
        module_levels: Per-module overrides (e.g. {'stakebot.submission': 'DEBUG'})

    Returns:
        Root logger

    Raises:
        ValueError: On an unknown level name
    """
    level = _parse_level(log_level)
    overrides = {name: _parse_level(value) for name, value in (module_levels or {}).items()}

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)

    console_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        show_time=False,
        show_path=False
    )
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    for module_name, module_level in overrides.items():
        logging.getLogger(module_name).setLevel(module_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = get_logger("stakebot.setup")
    logger.debug(f"Logging initialized: file={log_file or '-'} level={log_level}")
    if overrides:
        logger.debug(f"Per-module log levels: {module_levels}")

    return root_logger


def setup_logging_from_config(config: dict) -> logging.Logger:
    """Configure logging from config['logging']"""
    logging_config = config.get('logging') or {}
    return setup_logging(
        log_file=logging_config.get('file', 'logs/stakebot.log'),
        log_level=logging_config.get('level', 'INFO'),
        max_bytes=logging_config.get('max_bytes', 10_485_760),
        backup_count=logging_config.get('backup_count', 5),
        module_levels=logging_config.get('modules'),
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
