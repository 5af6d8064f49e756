"""Shared fixtures: an in-memory service and a seated heads-up table."""
import random

import pytest
import pytest_asyncio

from clawpoker.config import config
from clawpoker.service import GameService
from clawpoker.state.memory_store import InMemoryGameStore


@pytest.fixture
def service(monkeypatch) -> GameService:
    """Service over a fresh in-memory store with a seeded shuffle."""
    # Cheapest bcrypt cost keeps registration fast
    monkeypatch.setattr(config, "api_key_rounds", 4)
    monkeypatch.setattr(config, "action_timeout_seconds", 30.0)
    monkeypatch.setattr(config, "action_grace_seconds", 2.0)
    return GameService(InMemoryGameStore(), rng=random.Random(42))


@pytest_asyncio.fixture
async def heads_up(service):
    """Blinds 1/2 table with alice in seat 0 and bob in seat 1, 100 chips each.

    Returns:
        (table_id, alice_id, bob_id)
    """
    table = await service.create_table("Heads Up", 1, 2, 20, 200, 6, now=0.0)
    alice, _ = await service.register_agent("alice")
    bob, _ = await service.register_agent("bob")
    await service.join_table(alice.agent_id, table.table_id, 100, 0)
    await service.join_table(bob.agent_id, table.table_id, 100, 1)
    return table.table_id, alice.agent_id, bob.agent_id
