"""Tests for the game stores and the hand archive."""
import random
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import WatchError

from clawpoker.game.betting import apply_action, start_hand
from clawpoker.game.errors import ConcurrentUpdateError, RejectedError
from clawpoker.game.models import ActionType, Seat, Table, TableStatus
from clawpoker.state.archive import HandArchive
from clawpoker.state.game_store import RedisGameStore, RedisTransaction, hand_key, table_key
from clawpoker.state.memory_store import InMemoryGameStore, MemoryTransaction


def make_table(table_id: str = "t1") -> Table:
    table = Table(
        table_id=table_id, name="Test", small_blind=1, big_blind=2,
        min_buy_in=20, max_buy_in=200, max_seats=6,
    )
    table.seats[0] = Seat(agent_id="p0", name="player_0", stack=100)
    table.seats[1] = Seat(agent_id="p1", name="player_1", stack=100)
    table.status = TableStatus.BETWEEN_HANDS
    return table


def make_pipe(docs: dict = None, conflict: bool = False) -> MagicMock:
    """A mock Redis pipeline serving `docs`."""
    docs = docs or {}
    pipe = MagicMock()
    pipe.watch = AsyncMock()
    pipe.get = AsyncMock(side_effect=lambda key: docs.get(key))
    pipe.execute = AsyncMock(side_effect=WatchError() if conflict else None)
    return pipe


class TestMemoryStore:
    """Test the in-memory store's transactions."""

    @pytest.mark.asyncio
    async def test_round_trip(self):
        """Test committed documents can be read back."""
        store = InMemoryGameStore()
        async with store.transaction() as tx:
            tx.put_table(make_table())

        table = await store.get_table("t1")

        assert table.name == "Test"
        assert table.version == 1
        assert [t.table_id for t in await store.list_tables()] == ["t1"]

    @pytest.mark.asyncio
    async def test_conflicting_commit_rejected(self):
        """Test a transaction whose reads went stale cannot commit."""
        store = InMemoryGameStore()
        async with store.transaction() as tx:
            tx.put_table(make_table())

        first, second = MemoryTransaction(store), MemoryTransaction(store)
        table_a = await first.get_table("t1")
        table_b = await second.get_table("t1")
        table_a.hand_count = 5
        first.put_table(table_a)
        await first.commit()

        table_b.hand_count = 9
        second.put_table(table_b)
        with pytest.raises(ConcurrentUpdateError):
            await second.commit()

        assert (await store.get_table("t1")).hand_count == 5

    @pytest.mark.asyncio
    async def test_failed_block_discards_writes(self):
        """Test an exception inside the block commits nothing."""
        store = InMemoryGameStore()

        with pytest.raises(RuntimeError):
            async with store.transaction() as tx:
                tx.put_table(make_table())
                raise RuntimeError("boom")

        assert await store.get_table("t1") is None

    @pytest.mark.asyncio
    async def test_reads_see_pending_writes(self):
        """Test a transaction reads its own queued writes."""
        store = InMemoryGameStore()
        async with store.transaction() as tx:
            tx.put_table(make_table())
            table = await tx.get_table("t1")
            assert table is not None

    @pytest.mark.asyncio
    async def test_hand_indexes(self):
        """Test live hands are indexed and dropped from the index when complete."""
        store = InMemoryGameStore()
        table = make_table()
        hand = start_hand(table, 1000.0, random.Random(1))
        async with store.transaction() as tx:
            tx.put_table(table)
            tx.put_hand(hand)

        assert await store.active_hand_ids() == [hand.hand_id]
        assert await store.recent_hands("t1") == []
        assert [h.hand_id for h in await store.recent_hands("t1", completed_only=False)] == [hand.hand_id]

        apply_action(table, hand, hand.current_player().agent_id, ActionType.FOLD, now=1001.0)
        async with store.transaction() as tx:
            tx.put_table(table)
            tx.put_hand(hand)

        assert await store.active_hand_ids() == []
        assert [h.hand_id for h in await store.recent_hands("t1")] == [hand.hand_id]

    @pytest.mark.asyncio
    async def test_claim_name(self):
        """Test a name can only be claimed once."""
        store = InMemoryGameStore()
        async with store.transaction() as tx:
            await tx.claim_name("Alice", "a1")

        with pytest.raises(RejectedError):
            async with store.transaction() as tx:
                await tx.claim_name("alice", "a2")


class TestRedisTransaction:
    """Test WATCH/MULTI/EXEC use against a mocked pipeline."""

    @pytest.mark.asyncio
    async def test_reads_watch_keys(self):
        """Test every read watches its key first."""
        pipe = make_pipe({table_key("t1"): '{"table_id": "t1"}'})
        tx = RedisTransaction(pipe)

        await tx._load(table_key("t1"))

        pipe.watch.assert_awaited_once_with(table_key("t1"))
        pipe.get.assert_awaited_once_with(table_key("t1"))

    @pytest.mark.asyncio
    async def test_commit_queues_writes(self):
        """Test writes and index updates go into one MULTI block."""
        pipe = make_pipe()
        tx = RedisTransaction(pipe)
        table = make_table()
        hand = start_hand(table, 1000.0, random.Random(1))

        tx.put_table(table)
        tx.put_hand(hand)
        await tx.commit()

        pipe.multi.assert_called_once()
        written = {c.args[0] for c in pipe.set.call_args_list}
        assert written == {table_key("t1"), hand_key(hand.hand_id)}
        pipe.sadd.assert_any_call("hands:active", hand.hand_id)
        pipe.lpush.assert_called_once_with("table:t1:hands", hand.hand_id)
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_watch_error_is_conflict(self):
        """Test a failed EXEC surfaces as a concurrent update."""
        tx = RedisTransaction(make_pipe(conflict=True))
        tx.put_table(make_table())

        with pytest.raises(ConcurrentUpdateError):
            await tx.commit()

    @pytest.mark.asyncio
    async def test_store_transaction_commits(self):
        """Test the store opens a pipeline and commits on exit."""
        pipe = make_pipe()
        pipeline_cm = MagicMock()
        pipeline_cm.__aenter__.return_value = pipe
        client = MagicMock()
        client.redis.pipeline.return_value = pipeline_cm

        with patch("clawpoker.state.game_store.redis_client", client):
            async with RedisGameStore().transaction() as tx:
                tx.put_table(make_table())

        client.redis.pipeline.assert_called_once_with(transaction=True)
        pipe.execute.assert_awaited_once()


class TestHandArchive:
    """Test archiving completed hands to PostgreSQL."""

    def make_database(self, status: str = "INSERT 0 1"):
        conn = MagicMock()
        conn.execute = AsyncMock(return_value=status)
        conn.executemany = AsyncMock()
        transaction_cm = MagicMock()
        transaction_cm.__aenter__.return_value = conn
        database = MagicMock()
        database.transaction.return_value = transaction_cm
        return database, conn

    def finished_hand(self):
        table = make_table()
        hand = start_hand(table, 1000.0, random.Random(1))
        entry = apply_action(table, hand, hand.current_player().agent_id, ActionType.FOLD, now=1001.0)
        return hand, [entry]

    @pytest.mark.asyncio
    async def test_save_hand(self):
        """Test the hand row and numbered action rows are written."""
        database, conn = self.make_database()
        hand, actions = self.finished_hand()

        await HandArchive(database).save_hand(hand, actions)

        assert conn.execute.await_args.args[1] == hand.hand_id
        rows = conn.executemany.await_args.args[1]
        assert len(rows) == 1
        assert rows[0][1] == 1
        assert rows[0][3] == "fold"

    @pytest.mark.asyncio
    async def test_duplicate_skipped(self):
        """Test re-archiving a hand does not duplicate its actions."""
        database, conn = self.make_database(status="INSERT 0 0")
        hand, actions = self.finished_hand()

        await HandArchive(database).save_hand(hand, actions)

        conn.executemany.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failures_do_not_raise(self):
        """Test archive errors are logged, not propagated."""
        database, conn = self.make_database()
        conn.execute.side_effect = OSError("connection lost")
        hand, actions = self.finished_hand()

        await HandArchive(database).archive(hand, actions)
