"""Shared pytest fixtures for fleetmon tests."""

import os
import sys
from pathlib import Path

# Add the project root to Python path to enable 'fleetmon' imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from fleetmon.models.server_inventory import Inventory
from fleetmon.utils.settings import Settings
from tests.factories import SAMPLE_INVENTORY, make_server


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep FLEETMON_* variables from the outer environment out of tests."""
    for key in list(os.environ):
        if key.startswith("FLEETMON_") or key == "LOG_LEVEL":
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings():
    """Settings with probe delays removed."""
    return Settings(probe_backoff=0, probe_timeout=1)


@pytest.fixture
def inventory_file(tmp_path):
    """The sample inventory written to a temporary servers.yml."""
    path = tmp_path / "inventory" / "servers.yml"
    path.parent.mkdir()
    path.write_text(SAMPLE_INVENTORY, encoding="utf-8")
    return path


@pytest.fixture
def web_inventory():
    return Inventory(servers=[make_server("web-01", hostname="web01-host")])
