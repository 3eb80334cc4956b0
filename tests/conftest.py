"""Shared test fixtures for BigO Board tests."""

import sys
from pathlib import Path

import pytest

# Ensure the repo root (board_server.py, chat_client.py, bigo/) is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from bigo.config import BoardConfig
from bigo.chat.replies import ResponseStore


@pytest.fixture
def cfg(tmp_path):
    """Config isolated from the environment and any board.yaml."""
    c = BoardConfig(
        webhook_url="http://ai.test/hooks/new-message",
        api_key_name="key-name",
        api_key_val="key-val",
        db_path=str(tmp_path / "board.db"),
    )
    c.resolve()
    return c


@pytest.fixture
def store():
    return ResponseStore()
