"""In-process game store with compare-and-swap commits.

Same contract as the Redis store; used by tests and single-process runs
(``STORE_BACKEND=memory``).
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from clawpoker.game.errors import ConcurrentUpdateError
from clawpoker.state.game_store import GameStore, Transaction


class MemoryTransaction(Transaction):
    """Records the revision of every key read; commit checks none moved."""

    def __init__(self, store: "InMemoryGameStore"):
        super().__init__()
        self._store = store
        self._read_revisions: dict[str, int] = {}

    async def _load(self, key: str) -> Optional[str]:
        # Yield so concurrent transactions interleave as they would over the network
        await asyncio.sleep(0)
        revision, value = self._store._docs.get(key, (0, None))
        self._read_revisions.setdefault(key, revision)
        return value

    async def commit(self) -> None:
        docs = self._store._docs
        for key, revision in self._read_revisions.items():
            if docs.get(key, (0, None))[0] != revision:
                raise ConcurrentUpdateError(key)

        for key, value in self._writes.items():
            docs[key] = (docs.get(key, (0, None))[0] + 1, value)
        for key, member in self._set_adds:
            self._store._sets.setdefault(key, set()).add(member)
        for key, member in self._set_removes:
            self._store._sets.get(key, set()).discard(member)
        for key, value in self._prepends:
            self._store._lists.setdefault(key, []).insert(0, value)
        for key, value in self._pushes:
            self._store._lists.setdefault(key, []).append(value)


class InMemoryGameStore(GameStore):
    """Documents held as JSON strings, each with a revision counter."""

    def __init__(self) -> None:
        self._docs: dict[str, tuple[int, Optional[str]]] = {}
        self._sets: dict[str, set[str]] = {}
        self._lists: dict[str, list[str]] = {}

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MemoryTransaction]:
        tx = MemoryTransaction(self)
        yield tx
        await tx.commit()

    async def _get(self, key: str) -> Optional[str]:
        return self._docs.get(key, (0, None))[1]

    async def _members(self, key: str) -> set[str]:
        return set(self._sets.get(key, set()))

    async def _range(self, key: str, start: int, stop: int) -> list[str]:
        items = self._lists.get(key, [])
        if stop == -1:
            return list(items[start:])
        return list(items[start:stop + 1])
