"""
Tests for loguru sink configuration and the writable data directory
"""

import pytest
from loguru import logger

from spellbook.config.logging_config import configure_logging
from spellbook.utils.paths import get_writable_dir


@pytest.fixture
def data_dir(monkeypatch, tmp_path):
    monkeypatch.setenv('SPELLBOOK_DATA_DIR', str(tmp_path))
    yield tmp_path
    configure_logging(log_to_file=False)


class TestWritableDir:
    def test_override(self, data_dir):
        target = get_writable_dir('cache')
        assert target == data_dir / 'cache'
        assert target.is_dir()
        assert not (target / '.write_test').exists()


class TestConfigureLogging:
    def test_file_sinks(self, data_dir):
        configure_logging(log_to_file=True)
        logger.info('session started')
        logger.error('commit failed')
        logger.remove()

        log_dir = data_dir / 'logs'
        errors = (log_dir / 'error.log').read_text()
        assert 'commit failed' in errors
        assert 'session started' not in errors
        session_logs = list(log_dir.glob('spellbook_*.log'))
        assert len(session_logs) == 1
        assert 'session started' in session_logs[0].read_text()

    def test_file_logging_from_environment(self, data_dir, monkeypatch):
        monkeypatch.setenv('SPELLBOOK_LOG_TO_FILE', 'true')
        configure_logging()
        logger.error('from env')
        logger.remove()
        assert 'from env' in (data_dir / 'logs' / 'error.log').read_text()

    def test_console_only(self, data_dir):
        assert configure_logging(log_to_file=False) is logger
        assert not (data_dir / 'logs').exists()
