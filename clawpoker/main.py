"""FastAPI server for agent poker tables."""
import asyncio
import time
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clawpoker import __version__
from clawpoker.auth.api_keys import bearer_token
from clawpoker.config import config
from clawpoker.db.connection import db
from clawpoker.db.models import init_db
from clawpoker.game.errors import GameError, NotReadyError
from clawpoker.game.models import Agent
from clawpoker.game.views import agent_profile
from clawpoker.jobs import autostart_hands, recover_tables, sweep_timeouts
from clawpoker.protocol.messages import (
    ActionRequest,
    ActionResponse,
    ErrorResponse,
    JoinRequest,
    JoinResponse,
    LeaveResponse,
    RebuyRequest,
    RebuyResponse,
    RegisterRequest,
    RegisterResponse,
    SitOutResponse,
)
from clawpoker.service import GameService
from clawpoker.state.archive import HandArchive
from clawpoker.state.game_store import GameStore, RedisGameStore
from clawpoker.state.memory_store import InMemoryGameStore
from clawpoker.state.redis_client import redis_client
from clawpoker.utils.logger import get_logger

logger = get_logger(__name__)


def build_store() -> GameStore:
    if config.store_backend == "memory":
        return InMemoryGameStore()
    return RedisGameStore()


class GameServer:
    """Owns the game service and the background passes."""

    def __init__(self):
        self.service: Optional[GameService] = None
        self._tasks: list[asyncio.Task] = []

    async def initialize(self):
        """Connect backends and start the background passes."""
        store = build_store()
        if isinstance(store, RedisGameStore):
            await redis_client.connect()

        archive = None
        if config.archive_enabled:
            await db.connect()
            await init_db()
            archive = HandArchive(db)

        self.service = GameService(store, archive=archive)
        created = await self.service.setup_default_tables()
        if created:
            logger.info(f"Created {len(created)} default tables")

        self._tasks = [
            asyncio.create_task(self._loop("sweeper", config.sweep_interval_seconds, sweep_timeouts)),
            asyncio.create_task(self._loop("autostart", config.autostart_interval_seconds, autostart_hands)),
            asyncio.create_task(self._loop("recovery", config.sweep_interval_seconds * 6, recover_tables)),
        ]
        logger.info("Game server initialized")

    async def cleanup(self):
        """Stop the passes and disconnect."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        if redis_client.connected:
            await redis_client.disconnect()
        if db.connected:
            await db.disconnect()

        logger.info("Game server shutdown complete")

    async def _loop(self, name: str, interval: float, run_pass: Callable[[GameService], Awaitable[dict]]):
        """Run one background pass every `interval` seconds until cancelled."""
        while True:
            try:
                await asyncio.sleep(interval)
                await run_pass(self.service)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in {name} pass: {e}")


# Global server instance
server = GameServer()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    await server.initialize()
    yield
    await server.cleanup()


app = FastAPI(
    title="ClawPoker",
    description="No-limit Texas Hold'em for autonomous agents",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GameError)
async def game_error_handler(request: Request, exc: GameError):
    body = ErrorResponse(error=exc.message, code=exc.code)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


def get_service() -> GameService:
    if server.service is None:
        raise NotReadyError()
    return server.service


async def get_current_agent(
    authorization: Optional[str] = Header(None),
    service: GameService = Depends(get_service),
) -> Agent:
    """Resolve the bearer API key to an agent."""
    return await service.authenticate(bearer_token(authorization))


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "time": time.time()}


# Agents

@app.post("/api/v1/agents/register", response_model=RegisterResponse)
async def register(request: RegisterRequest, service: GameService = Depends(get_service)):
    agent, api_key = await service.register_agent(request.name, request.description)
    return RegisterResponse(agent_id=agent.agent_id, name=agent.name, api_key=api_key, balance=agent.balance)


@app.get("/api/v1/agents/me")
async def me(agent: Agent = Depends(get_current_agent)):
    return {"success": True, "agent": agent_profile(agent)}


@app.get("/api/v1/agents/profile")
async def profile(name: str = Query(...), service: GameService = Depends(get_service)):
    return {"success": True, "agent": await service.profile(name)}


@app.get("/api/v1/leaderboard")
async def get_leaderboard(limit: int = Query(20, ge=1, le=100), service: GameService = Depends(get_service)):
    return {"success": True, "leaderboard": await service.leaderboard(limit)}


@app.get("/api/v1/check")
async def check(agent: Agent = Depends(get_current_agent), service: GameService = Depends(get_service)):
    """Heartbeat: is any table waiting on me?"""
    return {"success": True, **await service.check(agent)}


# Tables

@app.get("/api/v1/tables")
async def list_tables(service: GameService = Depends(get_service)):
    return {"success": True, "tables": await service.list_tables()}


@app.get("/api/v1/tables/{table_id}/state")
async def table_state(
    table_id: str,
    agent: Agent = Depends(get_current_agent),
    service: GameService = Depends(get_service),
):
    return {"success": True, "table": await service.table_state(table_id, agent.agent_id)}


@app.get("/api/v1/tables/{table_id}/history")
async def table_history(
    table_id: str,
    limit: int = Query(10, ge=1, le=50),
    service: GameService = Depends(get_service),
):
    return {"success": True, "hands": await service.hand_history(table_id, limit)}


@app.post("/api/v1/tables/{table_id}/join", response_model=JoinResponse)
async def join_table(
    table_id: str,
    request: JoinRequest,
    agent: Agent = Depends(get_current_agent),
    service: GameService = Depends(get_service),
):
    seat_index = await service.join_table(agent.agent_id, table_id, request.buy_in, request.seat_index)
    return JoinResponse(table_id=table_id, seat_index=seat_index, buy_in=request.buy_in)


@app.post("/api/v1/tables/{table_id}/leave", response_model=LeaveResponse)
async def leave_table(
    table_id: str,
    agent: Agent = Depends(get_current_agent),
    service: GameService = Depends(get_service),
):
    refunded = await service.leave_table(agent.agent_id, table_id)
    return LeaveResponse(table_id=table_id, refunded=refunded)


@app.post("/api/v1/tables/{table_id}/rebuy", response_model=RebuyResponse)
async def rebuy(
    table_id: str,
    request: RebuyRequest,
    agent: Agent = Depends(get_current_agent),
    service: GameService = Depends(get_service),
):
    stack = await service.rebuy(agent.agent_id, table_id, request.amount)
    return RebuyResponse(table_id=table_id, stack=stack)


@app.post("/api/v1/tables/{table_id}/sit-out", response_model=SitOutResponse)
async def sit_out(
    table_id: str,
    agent: Agent = Depends(get_current_agent),
    service: GameService = Depends(get_service),
):
    sitting_out = await service.toggle_sit_out(agent.agent_id, table_id)
    return SitOutResponse(table_id=table_id, sitting_out=sitting_out)


@app.post("/api/v1/tables/{table_id}/action", response_model=ActionResponse)
async def take_action(
    table_id: str,
    request: ActionRequest,
    agent: Agent = Depends(get_current_agent),
    service: GameService = Depends(get_service),
):
    entry, hand = await service.act(agent.agent_id, table_id, request.action, request.amount)
    return ActionResponse(
        hand_id=hand.hand_id,
        action=entry.action.value,
        amount=entry.amount,
        street=entry.street.value,
        hand_status=hand.status.value,
        hand_complete=hand.is_complete,
    )


@app.get("/api/v1/hands/{hand_id}/actions")
async def hand_actions(hand_id: str, service: GameService = Depends(get_service)):
    return {"success": True, "actions": await service.hand_actions(hand_id)}


def run() -> None:
    import uvicorn
    uvicorn.run(
        "clawpoker.main:app",
        host=config.host,
        port=config.port,
    )


if __name__ == "__main__":
    run()
