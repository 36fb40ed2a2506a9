"""Shared fixtures for Inbox Tasker tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from fakes import FakeTaskStore, make_message
from inbox_tasker.core.models import RawMessage


@pytest.fixture
def message_factory() -> Callable[..., RawMessage]:
    return make_message


@pytest.fixture
def sample_message() -> RawMessage:
    return make_message("msg_test_001", subject="Quote request for 500 units")


@pytest.fixture
def fake_store() -> FakeTaskStore:
    return FakeTaskStore()


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> Path:
    """Temporary database path for tests."""
    return tmp_path / "test.db"
