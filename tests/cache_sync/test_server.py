"""
Tests for the HTTP event receiver.

Uses aiohttp's in-process test client; the processor runs against the
in-memory doubles from conftest.
"""

import base64
import json

import pytest
from aiohttp import test_utils

from cache_sync.server import create_app, envelope_from_request
from core.errors import ServerError
from tests.cache_sync.fakes import string_fields, structured_payload


class Closeable:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


@pytest.fixture
def api_closeable():
    return Closeable()


@pytest.fixture
async def http_client(processor, store, api_closeable):
    app = create_app(processor, store=store, closeables=[api_closeable])
    client = test_utils.TestClient(test_utils.TestServer(app))
    await client.start_server()
    yield client
    await client.close()


def cloud_event(payload, subject="documents/feedEvents/doc1", **extra):
    return {"id": "evt-1", "type": "document.written", "subject": subject, "data": payload, **extra}


# =============================================================================
# envelope_from_request
# =============================================================================


class TestEnvelopeFromRequest:

    def test_binary_mode_headers(self):
        headers = {
            "ce-id": "evt-9",
            "ce-type": "document.written",
            "ce-subject": "documents/feedEvents/d",
            "ce-deliveryattempt": "3",
        }

        envelope = envelope_from_request(headers, b"\x01\x02", "application/protobuf")

        assert envelope["id"] == "evt-9"
        assert envelope["deliveryAttempt"] == "3"
        assert envelope["data"] == b"\x01\x02"
        assert envelope["dataContentType"] == "application/protobuf"

    def test_structured_mode(self):
        body = json.dumps(cloud_event({"childId": "c1"})).encode()

        envelope = envelope_from_request({}, body, "application/cloudevents+json")

        assert envelope["id"] == "evt-1"
        assert envelope["data"] == {"childId": "c1"}

    def test_structured_mode_base64_data(self):
        raw = b"\x0achildId\x12c1"
        body = json.dumps({"id": "e", "data_base64": base64.b64encode(raw).decode()}).encode()

        envelope = envelope_from_request({}, body, "application/json")

        assert envelope["data"] == raw
        assert "data_base64" not in envelope

    def test_bare_body(self):
        envelope = envelope_from_request({}, b"\xff\xfe", "application/octet-stream")
        assert envelope == {"data": b"\xff\xfe", "dataContentType": "application/octet-stream"}


# =============================================================================
# Event endpoint
# =============================================================================


class TestEventEndpoint:

    @pytest.mark.asyncio
    async def test_processed_event_returns_204(self, http_client, store):
        payload = structured_payload(string_fields(parentId="p1", childId="c1"))

        resp = await http_client.post("/", json=cloud_event(payload))

        assert resp.status == 204
        assert "parent:p1:child:c1" in store.entries

    @pytest.mark.asyncio
    async def test_collection_route_overrides_subject(self, http_client, store):
        payload = structured_payload(string_fields(childId="c1"))

        resp = await http_client.post(
            "/sleepEvents", json=cloud_event(payload, subject="documents/feedEvents/doc1")
        )

        assert resp.status == 204
        assert "limited:child:c1:sleepEvents" in store.entries

    @pytest.mark.asyncio
    async def test_binary_mode_delivery(self, http_client, store):
        payload = structured_payload(string_fields(parentId="p1", childId="c7"))

        resp = await http_client.post(
            "/",
            data=json.dumps(payload).encode(),
            headers={
                "Content-Type": "application/json",
                "ce-id": "evt-2",
                "ce-type": "document.written",
                "ce-subject": "documents/feedEvents/doc7",
                "ce-deliveryattempt": "2",
            },
        )

        assert resp.status == 204
        assert "summary:c7" in store.entries

    @pytest.mark.asyncio
    async def test_terminal_failure_is_acknowledged(self, http_client, audit_sink):
        payload = structured_payload(string_fields(parentId="p1"))

        resp = await http_client.post("/", json=cloud_event(payload))

        assert resp.status == 204
        assert len(audit_sink.records) == 1

    @pytest.mark.asyncio
    async def test_non_string_envelope_attributes_are_not_redelivered(self, http_client, store):
        payload = structured_payload(string_fields(parentId="p1", childId="c1"))

        resp = await http_client.post(
            "/", json={"id": "e1", "subject": 42, "type": {"v": 1}, "data": payload}
        )

        assert resp.status == 204
        assert "parent:p1:child:c1" in store.entries

    @pytest.mark.asyncio
    async def test_malformed_envelope_payload_is_terminal(self, http_client, audit_sink):
        resp = await http_client.post("/", json={"id": "e2", "subject": ["x"], "data": 5})

        assert resp.status == 204
        assert len(audit_sink.records) == 1

    @pytest.mark.asyncio
    async def test_retryable_failure_returns_500(self, http_client, source):
        source.profile_error = ServerError("Server error (502)", status_code=502)
        payload = structured_payload(string_fields(parentId="p1", childId="c1"))

        resp = await http_client.post(
            "/childProfiles", json=cloud_event(payload, subject="documents/childProfiles/c1")
        )

        assert resp.status == 500
        body = await resp.json()
        assert body == {"retryable": True, "reason": "server-error", "event_id": "evt-1"}


# =============================================================================
# Health and lifecycle
# =============================================================================


class TestHealthEndpoints:

    @pytest.mark.asyncio
    async def test_liveness(self, http_client):
        resp = await http_client.get("/health/live")

        assert resp.status == 200
        assert (await resp.json())["status"] == "alive"

    @pytest.mark.asyncio
    async def test_readiness(self, http_client, store):
        resp = await http_client.get("/health/ready")
        assert resp.status == 200

        store.connected = False
        resp = await http_client.get("/health/ready")

        assert resp.status == 503
        assert (await resp.json())["checks"]["cache_store_connected"] is False


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_cleanup_closes_resources(self, processor, store, api_closeable):
        app = create_app(processor, store=store, closeables=[api_closeable])
        client = test_utils.TestClient(test_utils.TestServer(app))
        await client.start_server()

        await client.close()

        assert api_closeable.closed
        assert store.connected is False


class TestCreateAppFromConfig:

    def test_wires_routes_without_connecting(self, tmp_path, monkeypatch):
        from config.config import load_config
        from cache_sync.server import create_app_from_config

        monkeypatch.delenv("ENRICHMENT_API_URL", raising=False)
        config = load_config(
            overrides={
                "api": {"base_url": "https://api.example.com"},
                "audit": {"storage_path": str(tmp_path / "audit")},
            }
        )

        app = create_app_from_config(config)

        paths = {route.resource.canonical for route in app.router.routes()}
        assert {"/", "/{collection}", "/health/live", "/health/ready"} <= paths
        assert (tmp_path / "audit").is_dir()
