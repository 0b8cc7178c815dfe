"""Shared fixtures."""
from __future__ import annotations

import pytest

from src.config import Settings
from src.rules import build_rulebook


@pytest.fixture
def rules():
    return build_rulebook(blocklist=["Amazon", "Lockheed Martin"])


@pytest.fixture
def settings(tmp_path):
    return Settings(
        store_path=tmp_path / "jobs.xlsx",
        user_data_dir=tmp_path / "profile",
        challenge_grace_seconds=0.05,
        challenge_solve_seconds=2.0,
        content_timeout_ms=100,
        navigation_timeout_ms=100,
    )
