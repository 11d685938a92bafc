"""
Tests for the Graph REST client, using a fake aiohttp session.
"""

import time
from unittest.mock import MagicMock

import pytest

from core.auth import AccessToken
from core.exceptions import GraphApiError
from core.graph_client import GraphClient


class FakeResponse:
    def __init__(self, status, body=None, reason="OK", invalid_json=False):
        self.status = status
        self.reason = reason
        self._body = body
        self._invalid_json = invalid_json

    async def json(self, content_type=None):
        if self._invalid_json:
            raise ValueError("not json")
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self.responses.pop(0)

    async def close(self):
        self.closed = True


def make_client(*responses, expires_in=3600):
    authenticator = MagicMock()
    authenticator.tenant_id = "tenant-1"
    authenticator.get_token.return_value = AccessToken("token-1", time.time() + expires_in)
    client = GraphClient(authenticator)
    client.session = FakeSession(*responses)
    return client, authenticator


@pytest.mark.asyncio
async def test_get_sends_bearer_token_and_params():
    client, _ = make_client(FakeResponse(200, {'value': [1]}))

    result = await client.get("/users", params={'$top': '999'})

    method, url, kwargs = client.session.calls[0]
    assert result == {'value': [1]}
    assert method == "GET"
    assert url == "https://graph.microsoft.com/v1.0/users"
    assert kwargs['headers']['Authorization'] == "Bearer token-1"
    assert kwargs['params'] == {'$top': '999'}


@pytest.mark.asyncio
async def test_absolute_next_link_is_used_as_is():
    client, _ = make_client(FakeResponse(200, {'value': []}))
    next_link = "https://graph.microsoft.com/v1.0/users?$skiptoken=abc"

    await client.get(next_link)

    assert client.session.calls[0][1] == next_link


@pytest.mark.asyncio
async def test_post_sends_json_body():
    client, _ = make_client(FakeResponse(200, {'responses': []}))

    await client.post("/$batch", {'requests': []})

    method, url, kwargs = client.session.calls[0]
    assert method == "POST"
    assert url.endswith("/$batch")
    assert kwargs['json'] == {'requests': []}


@pytest.mark.asyncio
async def test_no_content_returns_empty_dict():
    client, _ = make_client(FakeResponse(204, None))

    assert await client.get("/users/u1") == {}


@pytest.mark.asyncio
async def test_error_envelope_is_parsed():
    client, _ = make_client(FakeResponse(
        429, {'error': {'code': 'TooManyRequests', 'message': 'Too many requests'}}, reason="Too Many Requests"
    ))

    with pytest.raises(GraphApiError) as excinfo:
        await client.get("/users")

    assert excinfo.value.status_code == 429
    assert excinfo.value.code == 'TooManyRequests'
    assert str(excinfo.value) == "HTTP 429: Too many requests"


@pytest.mark.asyncio
async def test_error_without_json_body_uses_reason():
    client, _ = make_client(FakeResponse(502, reason="Bad Gateway", invalid_json=True))

    with pytest.raises(GraphApiError) as excinfo:
        await client.get("/users")

    assert excinfo.value.code is None
    assert str(excinfo.value) == "HTTP 502: Bad Gateway"


@pytest.mark.asyncio
async def test_token_is_cached_until_close_to_expiry():
    client, authenticator = make_client(FakeResponse(200, {}), FakeResponse(200, {}))

    await client.get("/a")
    await client.get("/b")

    assert authenticator.get_token.call_count == 1


@pytest.mark.asyncio
async def test_token_near_expiry_is_refreshed():
    client, authenticator = make_client(FakeResponse(200, {}), FakeResponse(200, {}), expires_in=60)

    await client.get("/a")
    await client.get("/b")

    assert authenticator.get_token.call_count == 2


@pytest.mark.asyncio
async def test_request_without_session_fails():
    client, _ = make_client()
    client.session = None

    with pytest.raises(ConnectionError):
        await client.get("/users")


@pytest.mark.asyncio
async def test_disconnect_closes_session():
    client, _ = make_client()
    session = client.session

    await client.disconnect()

    assert session.closed
    assert client.session is None
