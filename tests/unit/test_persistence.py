"""Unit tests for the HTTP client and transcript persistence.

Tests error mapping in JSONHTTPClient and the save-transcript request made
by HTTPTranscriptStore, against a local aiohttp server.
"""

from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer, unused_port

from voice_orchestrator.http_client import (
    JSONHTTPClient,
    ProviderPayloadError,
    ProviderRequestError,
    ProviderStatusError,
)
from voice_orchestrator.persistence import (
    HTTPTranscriptStore,
    PersistenceError,
    build_save_payload,
)
from voice_orchestrator.transcript_buffer import Role, TranscriptEntry


class BackendStub:
    """Records save-transcript requests and answers with a fixed status."""

    def __init__(self) -> None:
        self.bodies: list[Any] = []
        self.status = 200

    async def save(self, request: web.Request) -> web.Response:
        self.bodies.append(await request.json())
        if self.status >= 400:
            return web.json_response({"error": "storage unavailable"}, status=self.status)
        return web.json_response({"saved": True}, status=self.status)

    async def echo(self, request: web.Request) -> web.Response:
        return web.Response(text=request.query.get("body", ""), status=200)

    async def garbled(self, request: web.Request) -> web.Response:
        return web.Response(
            body=b"\xff\xfe{}", content_type="application/json", charset="utf-8", status=self.status
        )


@pytest_asyncio.fixture
async def stub() -> AsyncIterator[tuple[BackendStub, TestServer]]:
    backend = BackendStub()
    app = web.Application()
    app.router.add_post("/api/save-transcript", backend.save)
    app.router.add_get("/echo", backend.echo)
    app.router.add_post("/echo", backend.echo)
    app.router.add_get("/garbled", backend.garbled)
    app.router.add_post("/garbled", backend.garbled)
    async with TestServer(app) as server:
        yield backend, server


@pytest_asyncio.fixture
async def client() -> AsyncIterator[JSONHTTPClient]:
    http = JSONHTTPClient(timeout_s=2.0)
    yield http
    await http.close()


def entries() -> list[TranscriptEntry]:
    ts = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)
    return [
        TranscriptEntry(role=Role.AGENT, text="Hi, how may I help you?", timestamp=ts),
        TranscriptEntry(role=Role.PARTICIPANT, text="What's AAPL at?", timestamp=ts),
    ]


# ============================================================================
# HTTP Client Tests
# ============================================================================


class TestJSONHTTPClient:
    """Test error mapping in the shared HTTP client."""

    @pytest.mark.asyncio
    async def test_get_json_decodes(
        self, client: JSONHTTPClient, stub: tuple[BackendStub, TestServer]
    ) -> None:
        _, server = stub
        data = await client.get_json(str(server.make_url("/echo")), params={"body": '{"a": 1}'})
        assert data == {"a": 1}

    @pytest.mark.asyncio
    async def test_get_json_invalid_body(
        self, client: JSONHTTPClient, stub: tuple[BackendStub, TestServer]
    ) -> None:
        _, server = stub
        with pytest.raises(ProviderPayloadError):
            await client.get_json(str(server.make_url("/echo")), params={"body": "<html>"})

    @pytest.mark.asyncio
    async def test_get_json_undecodable_body(
        self, client: JSONHTTPClient, stub: tuple[BackendStub, TestServer]
    ) -> None:
        _, server = stub
        with pytest.raises(ProviderPayloadError):
            await client.get_json(str(server.make_url("/garbled")))

    @pytest.mark.asyncio
    async def test_undecodable_error_body_keeps_status(
        self, client: JSONHTTPClient, stub: tuple[BackendStub, TestServer]
    ) -> None:
        backend, server = stub
        backend.status = 502
        with pytest.raises(ProviderStatusError) as exc_info:
            await client.get_json(str(server.make_url("/garbled")))
        assert exc_info.value.status == 502
        assert exc_info.value.body == ""

    @pytest.mark.asyncio
    async def test_status_error(
        self, client: JSONHTTPClient, stub: tuple[BackendStub, TestServer]
    ) -> None:
        _, server = stub
        with pytest.raises(ProviderStatusError) as exc_info:
            await client.get_json(str(server.make_url("/missing")))
        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_connection_refused(self, client: JSONHTTPClient) -> None:
        with pytest.raises(ProviderRequestError):
            await client.get_json(f"http://127.0.0.1:{unused_port()}/x")

    @pytest.mark.asyncio
    async def test_post_json_empty_body(
        self, client: JSONHTTPClient, stub: tuple[BackendStub, TestServer]
    ) -> None:
        _, server = stub
        assert await client.post_json(str(server.make_url("/echo")), {}) is None

    @pytest.mark.asyncio
    async def test_post_json_undecodable_body(
        self, client: JSONHTTPClient, stub: tuple[BackendStub, TestServer]
    ) -> None:
        _, server = stub
        assert await client.post_json(str(server.make_url("/garbled")), {}) is None

    @pytest.mark.asyncio
    async def test_session_recreated_after_close(self, client: JSONHTTPClient) -> None:
        first = client._ensure_session()
        await client.close()
        second = client._ensure_session()
        assert second is not first
        assert not second.closed


# ============================================================================
# Transcript Store Tests
# ============================================================================


class TestHTTPTranscriptStore:
    """Test the save-transcript request."""

    def test_build_save_payload(self) -> None:
        payload = build_save_payload("session-1", entries())

        assert payload["session_id"] == "session-1"
        assert payload["transcripts"] == [
            {
                "role": "agent",
                "text": "Hi, how may I help you?",
                "timestamp": "2024-05-01T10:00:00+00:00",
                "final": True,
            },
            {
                "role": "participant",
                "text": "What's AAPL at?",
                "timestamp": "2024-05-01T10:00:00+00:00",
                "final": True,
            },
        ]

    @pytest.mark.asyncio
    async def test_save_posts_batch(
        self, client: JSONHTTPClient, stub: tuple[BackendStub, TestServer]
    ) -> None:
        backend, server = stub
        store = HTTPTranscriptStore(client, str(server.make_url("/api/save-transcript")))

        await store.save("session-1", entries())

        assert len(backend.bodies) == 1
        assert backend.bodies[0]["session_id"] == "session-1"
        assert [t["role"] for t in backend.bodies[0]["transcripts"]] == ["agent", "participant"]

    @pytest.mark.asyncio
    async def test_save_http_500_raises(
        self, client: JSONHTTPClient, stub: tuple[BackendStub, TestServer]
    ) -> None:
        backend, server = stub
        backend.status = 500
        store = HTTPTranscriptStore(client, str(server.make_url("/api/save-transcript")))

        with pytest.raises(PersistenceError, match="HTTP 500"):
            await store.save("session-1", entries())
        assert len(backend.bodies) == 1

    @pytest.mark.asyncio
    async def test_save_unreachable_raises(self, client: JSONHTTPClient) -> None:
        store = HTTPTranscriptStore(client, f"http://127.0.0.1:{unused_port()}/save")

        with pytest.raises(PersistenceError):
            await store.save("session-1", entries())

    @pytest.mark.asyncio
    async def test_save_requires_session_id(self, client: JSONHTTPClient) -> None:
        store = HTTPTranscriptStore(client, "http://127.0.0.1:1/save")

        with pytest.raises(PersistenceError, match="session_id"):
            await store.save("", entries())
