"""
Unit tests for the logging setup helpers.
"""
import logging

import pytest

from forum.utils import logging as logging_module
from forum.utils.logging import get_logger, setup_cli_logging, setup_logging


@pytest.fixture
def root_logger(monkeypatch):
    """Run each test against a clean root logger and restore it afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    monkeypatch.setattr(logging_module, '_configured', False)
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging and setup_cli_logging."""

    def test_later_call_without_verbosity_keeps_level(self, root_logger):
        """Test an app started after the CLI does not reset the CLI's level."""
        setup_cli_logging(verbosity=4)
        handler_count = len(root_logger.handlers)

        setup_logging(verbosity=None)

        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == handler_count

    def test_later_call_with_verbosity_adjusts_level(self, root_logger):
        """Test an explicit verbosity still changes the level."""
        setup_logging(verbosity=4)
        handler_count = len(root_logger.handlers)

        setup_logging(verbosity=1)

        assert root_logger.level == logging.ERROR
        assert len(root_logger.handlers) == handler_count

    def test_get_logger_namespace(self):
        assert get_logger('rbac.audit').name == 'forum.rbac.audit'
        assert get_logger('forum.utils.x').name == 'forum.utils.x'
