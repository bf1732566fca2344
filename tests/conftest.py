import os

import pytest
from unittest.mock import Mock

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtWidgets import QApplication

from capacity_backend.volume import Volume


@pytest.fixture(scope="session", autouse=True)
def qapp():
    """Qt application instance shared by all tests"""
    app = QApplication.instance() or QApplication([])
    yield app


@pytest.fixture
def make_volume(tmp_path):
    """Factory for a mock volume rooted at tmp_path"""
    def _make(available: int, valid: bool = True, conflicts=()):
        volume = Mock(spec=Volume)
        volume.mountpoint = str(tmp_path)
        volume.is_valid.return_value = valid
        volume.bytes_available.return_value = available
        volume.conflict_files.return_value = list(conflicts)
        return volume
    return _make
