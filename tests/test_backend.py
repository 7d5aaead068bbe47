"""Tests for the backend HTTP client."""
import aiohttp
import pytest

from pokebot.backend import BackendClient, BackendConfig, _error_message
from pokebot.errors import BackendError


class FakeResponse:
    def __init__(self, status, payload):
        self.status = status
        self._payload = payload

    async def json(self, content_type=None):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    closed = False

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("BACKEND_API_URL", "http://game:9000/api")
    monkeypatch.setenv("POKEBOT_BACKEND_TIMEOUT", "4.5")
    config = BackendConfig.from_env()
    assert config.base_url == "http://game:9000/api"
    assert config.timeout == 4.5


def test_config_ignores_invalid_timeout(monkeypatch):
    monkeypatch.delenv("BACKEND_API_URL", raising=False)
    monkeypatch.setenv("POKEBOT_BACKEND_TIMEOUT", "soon")
    config = BackendConfig.from_env(default_timeout=9)
    assert config.timeout == 9
    assert config.base_url == "http://localhost:5000/api"


def test_error_message_prefers_payload():
    assert _error_message({"message": "Not enough points"}, 400) == "Not enough points"
    assert _error_message({"error": "Battle not found"}, 404) == "Battle not found"
    assert _error_message(None, 500) == "Backend request failed with status 500"


@pytest.mark.asyncio
async def test_request_sends_guild_header_and_drops_empty_params():
    session = FakeSession(FakeResponse(200, {"cards": []}))
    client = BackendClient(BackendConfig(base_url="http://game/api/"), session=session)

    data = await client.list_cards(1, 5, search="pika", limit=50)

    method, url, kwargs = session.calls[0]
    assert method == "GET"
    assert url == "http://game/api/tcg/users/1/cards"
    assert kwargs["headers"] == {"x-guild-id": "5"}
    assert kwargs["params"] == {"search": "pika", "page": "1", "limit": "50"}
    assert data == {"cards": []}


@pytest.mark.asyncio
async def test_rejection_maps_to_backend_error():
    session = FakeSession(FakeResponse(400, {"message": "Daily limit reached"}))
    client = BackendClient(BackendConfig(), session=session)

    with pytest.raises(BackendError) as excinfo:
        await client.purchase_pack(1, 5, "base")
    assert excinfo.value.status == 400
    assert str(excinfo.value) == "Daily limit reached"
    assert session.calls[0][2]["json"] == {"packId": "base", "quantity": 1}


@pytest.mark.asyncio
async def test_connection_failure_maps_to_unavailable():
    client = BackendClient(BackendConfig(), session=FakeSession(error=aiohttp.ClientConnectionError("refused")))
    with pytest.raises(BackendError) as excinfo:
        await client.get_user(1, None)
    assert excinfo.value.status == 0
    assert "unavailable" in excinfo.value.message


@pytest.mark.asyncio
async def test_non_json_body_is_wrapped():
    client = BackendClient(BackendConfig(), session=FakeSession(FakeResponse(200, ValueError("no json"))))
    assert await client.request("GET", "/ping") == {"data": None}


@pytest.mark.asyncio
async def test_get_battle_unwraps_session():
    session = FakeSession(FakeResponse(200, {"session": {"status": "pending"}}))
    client = BackendClient(BackendConfig(), session=session)
    assert await client.get_battle("b1") == {"status": "pending"}
    assert session.calls[0][2]["headers"] == {}
