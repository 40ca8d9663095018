"""HTTP-level tests for the relay endpoint."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from conftest import ENTRY_POINT, make_user_op
from foresight_relayer.models import MISSING_PARAMS_MESSAGE
from foresight_relayer.server import LIVENESS_MESSAGE, create_app


@pytest_asyncio.fixture
async def client(relayer):
    """Create an async test client bound to the app."""
    app = create_app(relayer)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestLiveness:
    """Test liveness and health endpoints."""

    @pytest.mark.asyncio
    async def test_root_get(self, client):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.text == LIVENESS_MESSAGE

    @pytest.mark.asyncio
    async def test_health(self, client, relayer):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["bundler"] == relayer.signer.address
        assert data["chainConnected"] is True
        assert data["stats"]["queue"]["max_bundle_size"] == 1


class TestRelayEndpoint:
    """Test POST / end to end through the ASGI app."""

    @pytest.mark.asyncio
    async def test_relay_success(self, client, fake_chain, relay_body):
        response = await client.post("/", json=relay_body)

        assert response.status_code == 200
        data = response.json()
        assert data["jsonrpc"] == "2.0"
        assert data["id"] == 1
        assert data["result"].startswith("0x")
        assert len(data["result"]) == 66
        assert fake_chain.broadcast_nonces == [7]

    @pytest.mark.asyncio
    async def test_missing_params(self, client):
        response = await client.post("/", json={})

        assert response.status_code == 400
        assert response.json() == {
            "jsonrpc": "2.0",
            "error": {"code": -32602, "message": MISSING_PARAMS_MESSAGE},
        }

    @pytest.mark.asyncio
    async def test_missing_entry_point_echoes_id(self, client):
        response = await client.post("/", json={"id": "req-9", "userOp": {"sender": "0x"}})

        assert response.status_code == 400
        assert response.json()["id"] == "req-9"

    @pytest.mark.asyncio
    async def test_malformed_call_data_gets_json_rpc_envelope(self, client, fake_chain, relay_body):
        relay_body["userOp"] = make_user_op(callData="0x12\n")

        response = await client.post("/", json=relay_body)

        assert response.status_code == 400
        data = response.json()
        assert data["id"] == 1
        assert data["error"]["code"] == -32602
        assert "callData" in data["error"]["message"]
        assert fake_chain.broadcast_nonces == []

    @pytest.mark.asyncio
    async def test_empty_body_treated_as_missing_params(self, client):
        response = await client.post("/", content=b"")

        assert response.status_code == 400
        assert response.json()["error"]["message"] == MISSING_PARAMS_MESSAGE

    @pytest.mark.asyncio
    async def test_invalid_json(self, client):
        response = await client.post(
            "/", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["error"] == {"code": -32700, "message": "Parse error"}

    @pytest.mark.asyncio
    async def test_non_object_json(self, client):
        response = await client.post("/", json=[{"entryPointAddress": ENTRY_POINT}])

        assert response.status_code == 400
        assert response.json()["error"]["code"] == -32600
