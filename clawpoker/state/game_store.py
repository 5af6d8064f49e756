"""Game state persistence with optimistic transactions."""
import json
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from redis.exceptions import WatchError

from clawpoker.game.errors import ConcurrentUpdateError, RejectedError
from clawpoker.game.models import ActionLogEntry, Agent, Hand, Table
from clawpoker.state.redis_client import redis_client
from clawpoker.utils.logger import get_logger

logger = get_logger(__name__)

TABLES_KEY = "tables"
AGENTS_KEY = "agents"
ACTIVE_HANDS_KEY = "hands:active"


def table_key(table_id: str) -> str:
    return f"table:{table_id}"


def table_hands_key(table_id: str) -> str:
    return f"table:{table_id}:hands"


def hand_key(hand_id: str) -> str:
    return f"hand:{hand_id}"


def hand_actions_key(hand_id: str) -> str:
    return f"hand:{hand_id}:actions"


def agent_key(agent_id: str) -> str:
    return f"agent:{agent_id}"


def agent_name_key(name: str) -> str:
    return f"agent:name:{name.lower()}"


class Transaction(ABC):
    """A unit of work over tables, hands and agents.

    Reads are tracked so the commit can detect that anything read has
    changed since; writes are queued and applied together at commit.
    Objects returned by reads are private copies.
    """

    def __init__(self):
        self._writes: dict[str, str] = {}
        self._set_adds: list[tuple[str, str]] = []
        self._set_removes: list[tuple[str, str]] = []
        self._pushes: list[tuple[str, str]] = []
        self._prepends: list[tuple[str, str]] = []

    @abstractmethod
    async def _load(self, key: str) -> Optional[str]:
        """Read a raw document, registering it in the read set."""

    @abstractmethod
    async def commit(self) -> None:
        """Apply queued writes atomically.

        Raises:
            ConcurrentUpdateError: If anything read has changed.
        """

    async def _load_json(self, key: str) -> Optional[dict]:
        if key in self._writes:
            return json.loads(self._writes[key])
        raw = await self._load(key)
        return json.loads(raw) if raw is not None else None

    async def get_table(self, table_id: str) -> Optional[Table]:
        data = await self._load_json(table_key(table_id))
        return Table.from_dict(data) if data else None

    async def get_hand(self, hand_id: str) -> Optional[Hand]:
        data = await self._load_json(hand_key(hand_id))
        return Hand.from_dict(data) if data else None

    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        data = await self._load_json(agent_key(agent_id))
        return Agent.from_dict(data) if data else None

    def put_table(self, table: Table) -> None:
        table.version += 1
        self._writes[table_key(table.table_id)] = json.dumps(table.to_dict())
        self._set_adds.append((TABLES_KEY, table.table_id))

    def put_hand(self, hand: Hand) -> None:
        """Queue a hand write and keep the active-hand and per-table indexes."""
        if hand.version == 0:
            self._prepends.append((table_hands_key(hand.table_id), hand.hand_id))
        hand.version += 1
        self._writes[hand_key(hand.hand_id)] = json.dumps(hand.to_dict())
        if hand.is_complete:
            self._set_removes.append((ACTIVE_HANDS_KEY, hand.hand_id))
        else:
            self._set_adds.append((ACTIVE_HANDS_KEY, hand.hand_id))

    def put_agent(self, agent: Agent) -> None:
        agent.version += 1
        self._writes[agent_key(agent.agent_id)] = json.dumps(agent.to_dict())
        self._set_adds.append((AGENTS_KEY, agent.agent_id))

    def append_action(self, entry: ActionLogEntry) -> None:
        self._pushes.append((hand_actions_key(entry.hand_id), json.dumps(entry.to_dict())))

    async def claim_name(self, name: str, agent_id: str) -> None:
        """Reserve an agent name, case-insensitively.

        Raises:
            RejectedError: If the name is taken.
        """
        key = agent_name_key(name)
        if await self._load(key) is not None:
            raise RejectedError("NAME_TAKEN", f"Name '{name}' is already taken")
        self._writes[key] = json.dumps({"agent_id": agent_id})


class GameStore(ABC):
    """Persistent home of tables, hands, agents and action logs."""

    @abstractmethod
    def transaction(self):
        """Async context manager yielding a Transaction.

        The transaction commits when the block exits normally and is
        discarded if it raises.
        """

    @abstractmethod
    async def _get(self, key: str) -> Optional[str]:
        """Read a raw document outside any transaction."""

    @abstractmethod
    async def _members(self, key: str) -> set[str]:
        """Members of an index set."""

    @abstractmethod
    async def _range(self, key: str, start: int, stop: int) -> list[str]:
        """Slice of a list, inclusive bounds as in Redis LRANGE."""

    async def _get_json(self, key: str) -> Optional[dict]:
        raw = await self._get(key)
        return json.loads(raw) if raw is not None else None

    async def get_table(self, table_id: str) -> Optional[Table]:
        data = await self._get_json(table_key(table_id))
        return Table.from_dict(data) if data else None

    async def get_hand(self, hand_id: str) -> Optional[Hand]:
        data = await self._get_json(hand_key(hand_id))
        return Hand.from_dict(data) if data else None

    async def get_agent(self, agent_id: str) -> Optional[Agent]:
        data = await self._get_json(agent_key(agent_id))
        return Agent.from_dict(data) if data else None

    async def find_agent_by_name(self, name: str) -> Optional[Agent]:
        data = await self._get_json(agent_name_key(name))
        return await self.get_agent(data["agent_id"]) if data else None

    async def list_tables(self) -> list[Table]:
        """All tables, ordered by creation time."""
        tables = []
        for table_id in await self._members(TABLES_KEY):
            table = await self.get_table(table_id)
            if table is not None:
                tables.append(table)
        return sorted(tables, key=lambda t: (t.created_at, t.name))

    async def list_agents(self) -> list[Agent]:
        agents = []
        for agent_id in await self._members(AGENTS_KEY):
            agent = await self.get_agent(agent_id)
            if agent is not None:
                agents.append(agent)
        return agents

    async def active_hand_ids(self) -> list[str]:
        return sorted(await self._members(ACTIVE_HANDS_KEY))

    async def recent_hands(self, table_id: str, limit: int = 10, completed_only: bool = True) -> list[Hand]:
        """Hands dealt at a table, newest first."""
        hands = []
        # Scan a little past `limit` so a live hand at the head is skipped
        for hand_id in await self._range(table_hands_key(table_id), 0, limit):
            hand = await self.get_hand(hand_id)
            if hand is None or (completed_only and not hand.is_complete):
                continue
            hands.append(hand)
        return hands[:limit]

    async def hand_actions(self, hand_id: str) -> list[ActionLogEntry]:
        """A hand's action log in the order actions were applied."""
        raw = await self._range(hand_actions_key(hand_id), 0, -1)
        return [ActionLogEntry.from_dict(json.loads(r)) for r in raw]


class RedisTransaction(Transaction):
    """WATCH every key read, then apply all writes in one MULTI/EXEC."""

    def __init__(self, pipe):
        super().__init__()
        self._pipe = pipe

    async def _load(self, key: str) -> Optional[str]:
        await self._pipe.watch(key)
        return await self._pipe.get(key)

    async def commit(self) -> None:
        self._pipe.multi()
        for key, value in self._writes.items():
            self._pipe.set(key, value)
        for key, member in self._set_adds:
            self._pipe.sadd(key, member)
        for key, member in self._set_removes:
            self._pipe.srem(key, member)
        for key, value in self._prepends:
            self._pipe.lpush(key, value)
        for key, value in self._pushes:
            self._pipe.rpush(key, value)
        try:
            await self._pipe.execute()
        except WatchError:
            raise ConcurrentUpdateError("watched key")


class RedisGameStore(GameStore):
    """Live state in Redis; every document is a JSON string."""

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[RedisTransaction]:
        async with redis_client.redis.pipeline(transaction=True) as pipe:
            tx = RedisTransaction(pipe)
            yield tx
            await tx.commit()

    async def _get(self, key: str) -> Optional[str]:
        return await redis_client.get(key)

    async def _members(self, key: str) -> set[str]:
        return await redis_client.smembers(key)

    async def _range(self, key: str, start: int, stop: int) -> list[str]:
        return await redis_client.lrange(key, start, stop)
