"""Tests for scripts/seed_users.py."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[3] / "scripts"))
import seed_users

from src.shared.types import UserInput
from tests.fakes import InMemoryUserStore


@pytest.mark.unit
class TestSeed:
    async def test_creates_every_sample_user(self) -> None:
        store = InMemoryUserStore()
        created = await seed_users.seed(store)
        assert created == ["john@example.com", "jane@example.com", "alice@example.com"]
        assert len(await store.list_all()) == 3

    async def test_is_idempotent(self, capsys: pytest.CaptureFixture[str]) -> None:
        store = InMemoryUserStore()
        await store.insert(UserInput("John Doe", "john@example.com"))

        created = await seed_users.seed(store)

        assert "john@example.com" not in created
        assert len(await store.list_all()) == 3
        assert "Already present: john@example.com" in capsys.readouterr().out
