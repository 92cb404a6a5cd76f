# tests/conftest.py
import logging
from unittest.mock import MagicMock

import pytest

from settings.config_models import AppSettings


@pytest.fixture
def app_settings(tmp_path):
    """AppSettings whose paths all live below the test's tmp_path."""
    return AppSettings(
        work_dir=tmp_path / "work",
        log_dir=tmp_path / "logs",
        apt_lock_path=tmp_path / "apt-seq.lock",
        apt_lock_timeout=5.0,
        stderr_tail_lines=5,
        log_prefix="test_prefix",
    )


@pytest.fixture
def mock_logger():
    """Fixture to create a mock logger for testing."""
    return MagicMock(spec=logging.Logger)
