"""Pytest hooks and fixtures."""

import tempfile
from pathlib import Path

import pytest


@pytest.fixture
def sock_path():
    """Socket path in a fresh short-lived directory (AF_UNIX paths are limited to ~107 bytes)."""
    with tempfile.TemporaryDirectory(prefix="avs-", dir="/tmp") as tmp:
        yield Path(tmp) / "rpc.sock"
