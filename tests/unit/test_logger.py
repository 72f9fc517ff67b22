"""
Test logging setup
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from stakebot.utils.logger import setup_logging, setup_logging_from_config


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:

    def test_file_and_console_handlers(self, tmp_path):
        log_file = tmp_path / 'logs' / 'run.log'

        root = setup_logging(log_file=str(log_file), log_level='warning')
        logging.getLogger('stakebot.test').warning("Cluster average skip rate: 58")

        assert any(isinstance(h, RotatingFileHandler) for h in root.handlers)
        assert "Cluster average skip rate: 58" in log_file.read_text()

    def test_console_only(self):
        root = setup_logging(log_file=None)

        assert not any(isinstance(h, RotatingFileHandler) for h in root.handlers)

    def test_unknown_level_raises(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown log level"):
            setup_logging(log_file=None, log_level='LOUD')

        with pytest.raises(ValueError, match="Unknown log level"):
            setup_logging(log_file=None, module_levels={'stakebot.submission': 'chatty'})

    def test_from_config(self, dry_run_config):
        dry_run_config['logging']['modules'] = {'stakebot.submission': 'DEBUG'}

        setup_logging_from_config(dry_run_config)

        assert logging.getLogger('stakebot.submission').level == logging.DEBUG
        assert logging.getLogger('urllib3').level == logging.WARNING
