"""Tests for HTTP API endpoints."""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import ValidationError

from clawpoker.game.models import ActionType
from clawpoker.main import app, server
from clawpoker.protocol.messages import ActionRequest, JoinRequest, RegisterRequest


@pytest_asyncio.fixture
async def client(service):
    """HTTP client against the app, wired to the in-memory service."""
    server.service = service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    server.service = None


async def register(client: AsyncClient, name: str) -> dict:
    """Register an agent and return auth headers plus its id."""
    response = await client.post("/api/v1/agents/register", json={"name": name})
    assert response.status_code == 200
    data = response.json()
    return {"id": data["agent_id"], "headers": {"Authorization": f"Bearer {data['api_key']}"}}


@pytest_asyncio.fixture
async def seated(client, service):
    """alice in seat 0 and bob in seat 1 at a fresh 1/2 table."""
    table = await service.create_table("API", 1, 2, 20, 200, 6, now=0.0)
    alice = await register(client, "alice")
    bob = await register(client, "bob")
    for seat_index, agent in enumerate((alice, bob)):
        response = await client.post(
            f"/api/v1/tables/{table.table_id}/join",
            json={"buy_in": 100, "seat_index": seat_index},
            headers=agent["headers"],
        )
        assert response.status_code == 200
    return table.table_id, alice, bob


class TestMessageParsing:
    """Test request schemas."""

    def test_action_aliases(self):
        """Test action names are normalised."""
        assert ActionRequest(action="all-in").action == ActionType.ALL_IN
        assert ActionRequest(action="RAISE", amount=10).amount == 10

    def test_unknown_action(self):
        """Test unknown actions fail validation."""
        with pytest.raises(ValidationError):
            ActionRequest(action="dance")

    def test_negative_amount(self):
        """Test amounts cannot be negative."""
        with pytest.raises(ValidationError):
            ActionRequest(action="raise", amount=-5)

    def test_join_defaults(self):
        """Test seat choice is optional."""
        assert JoinRequest(buy_in=50).seat_index is None
        with pytest.raises(ValidationError):
            JoinRequest(buy_in=0)

    def test_register_name_length(self):
        """Test names must be at least two characters."""
        with pytest.raises(ValidationError):
            RegisterRequest(name="a")


class TestAgentEndpoints:
    """Test registration, auth and profiles."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        """Test health check."""
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_register_and_me(self, client):
        """Test the issued key authenticates."""
        alice = await register(client, "alice")

        response = await client.get("/api/v1/agents/me", headers=alice["headers"])

        assert response.status_code == 200
        agent = response.json()["agent"]
        assert agent["name"] == "alice"
        assert agent["agent_id"] == alice["id"]
        assert "api_key_hash" not in agent

    @pytest.mark.asyncio
    async def test_duplicate_name(self, client):
        """Test a taken name is refused with its code."""
        await register(client, "alice")

        response = await client.post("/api/v1/agents/register", json={"name": "Alice"})

        assert response.status_code == 400
        assert response.json()["code"] == "NAME_TAKEN"
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_missing_key(self, client):
        """Test authenticated endpoints need a key."""
        response = await client.get("/api/v1/agents/me")

        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_bad_key(self, client):
        """Test a forged key is refused."""
        response = await client.get("/api/v1/agents/me", headers={"Authorization": "Bearer ocp_abc.def"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_profile_and_leaderboard(self, client):
        """Test public agent lookups."""
        await register(client, "alice")

        profile = await client.get("/api/v1/agents/profile", params={"name": "alice"})
        board = await client.get("/api/v1/leaderboard")
        missing = await client.get("/api/v1/agents/profile", params={"name": "nobody"})

        assert profile.json()["agent"]["name"] == "alice"
        assert board.json()["leaderboard"][0]["name"] == "alice"
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_not_ready(self, client):
        """Test requests before startup completes."""
        server.service = None

        response = await client.get("/api/v1/tables")

        assert response.status_code == 503
        assert response.json()["code"] == "NOT_READY"


class TestTableEndpoints:
    """Test playing a hand over HTTP."""

    @pytest.mark.asyncio
    async def test_list_tables(self, client, seated):
        """Test the lobby lists the table with its players."""
        table_id, _, _ = seated

        response = await client.get("/api/v1/tables")

        tables = response.json()["tables"]
        assert tables[0]["table_id"] == table_id
        assert tables[0]["players"] == 2
        assert tables[0]["status"] == "between_hands"

    @pytest.mark.asyncio
    async def test_state_is_redacted(self, client, service, seated):
        """Test each agent only sees their own cards."""
        table_id, alice, bob = seated
        await service.start_hand(table_id)

        response = await client.get(f"/api/v1/tables/{table_id}/state", headers=alice["headers"])

        assert response.status_code == 200
        players = {p["agent_id"]: p for p in response.json()["table"]["hand"]["players"]}
        assert len(players[alice["id"]]["hole_cards"]) == 2
        assert players[bob["id"]]["hole_cards"] is None

    @pytest.mark.asyncio
    async def test_play_actions(self, client, service, seated):
        """Test acting in turn, out of turn and below the minimum raise."""
        table_id, alice, bob = seated
        hand = await service.start_hand(table_id)
        url = f"/api/v1/tables/{table_id}/action"

        check = await client.get("/api/v1/check", headers=bob["headers"])
        assert check.json()["has_pending_action"] is True

        wrong = await client.post(url, json={"action": "check"}, headers=alice["headers"])
        assert wrong.status_code == 400
        assert wrong.json() == {"success": False, "error": "Not your turn", "code": "NOT_YOUR_TURN"}

        call = await client.post(url, json={"action": "call"}, headers=bob["headers"])
        assert call.status_code == 200
        assert call.json()["street"] == "preflop"
        assert call.json()["hand_complete"] is False

        small = await client.post(url, json={"action": "raise", "amount": 3}, headers=alice["headers"])
        assert small.status_code == 400
        assert small.json()["code"] == "BELOW_MIN_RAISE"

        actions = await client.get(f"/api/v1/hands/{hand.hand_id}/actions")
        assert [a["action"] for a in actions.json()["actions"]] == ["call"]

    @pytest.mark.asyncio
    async def test_unknown_action_rejected(self, client, service, seated):
        """Test an unknown action fails request validation."""
        table_id, _, bob = seated
        await service.start_hand(table_id)

        response = await client.post(
            f"/api/v1/tables/{table_id}/action", json={"action": "dance"}, headers=bob["headers"]
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_fold_and_history(self, client, service, seated):
        """Test a folded hand appears in history."""
        table_id, alice, bob = seated
        await service.start_hand(table_id)

        await client.post(f"/api/v1/tables/{table_id}/action", json={"action": "fold"}, headers=bob["headers"])
        history = await client.get(f"/api/v1/tables/{table_id}/history")

        hands = history.json()["hands"]
        assert len(hands) == 1
        assert hands[0]["winners"][0]["agent_id"] == alice["id"]
        assert all(p["hole_cards"] is None for p in hands[0]["players"])

    @pytest.mark.asyncio
    async def test_leave_during_hand(self, client, service, seated):
        """Test a live player cannot leave."""
        table_id, alice, _ = seated
        await service.start_hand(table_id)

        response = await client.post(f"/api/v1/tables/{table_id}/leave", headers=alice["headers"])

        assert response.status_code == 400
        assert response.json()["code"] == "LIVE_HAND"

    @pytest.mark.asyncio
    async def test_sit_out_and_rebuy(self, client, seated):
        """Test sit-out toggling and rebuy limits."""
        table_id, alice, _ = seated

        sit = await client.post(f"/api/v1/tables/{table_id}/sit-out", headers=alice["headers"])
        rebuy = await client.post(f"/api/v1/tables/{table_id}/rebuy", json={"amount": 10}, headers=alice["headers"])

        assert sit.json()["sitting_out"] is True
        # Balance was spent on the buy-in
        assert rebuy.status_code == 400
        assert rebuy.json()["code"] == "INSUFFICIENT_BALANCE"

    @pytest.mark.asyncio
    async def test_unknown_table(self, client, seated):
        """Test a missing table is a 404."""
        _, alice, _ = seated

        response = await client.get("/api/v1/tables/missing/state", headers=alice["headers"])

        assert response.status_code == 404
        assert response.json()["code"] == "TABLE_NOT_FOUND"
