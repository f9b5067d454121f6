"""
HTTP event receiver.

Accepts change events delivered as CloudEvents over HTTP and hands them to
the processor. Endpoints:

- POST /               collection derived from the event subject
- POST /{collection}   collection fixed by the route (one trigger per collection)
- GET  /health/live    liveness probe
- GET  /health/ready   readiness probe (cache store connected)

Response contract: acknowledged events (processed, skipped or terminal)
get 204; retryable failures get 500 with ``{retryable, reason}`` so the
broker redelivers.

Usage:
    app = create_app(processor, store, closeables=[api_client])
    web.run_app(app, port=8080)
"""

import base64
import binascii
import json
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, Protocol

from aiohttp import web

from cache_sync.api_client import EnrichmentApiClient
from cache_sync.audit.recorder import FailureRecorder
from cache_sync.audit.sinks import JsonFileAuditSink
from cache_sync.cache.store import RedisCacheStore
from cache_sync.cache.writer import CacheWriter
from cache_sync.collections import CollectionRouter
from cache_sync.enrichment import EnrichmentService
from cache_sync.mock_client import MockEnrichmentClient
from cache_sync.processor import ChangeEventProcessor
from cache_sync.schemas.events import ChangeEvent
from config.config import CacheSyncConfig
from core.errors import RetryableEventError

logger = logging.getLogger(__name__)


class Closeable(Protocol):
    async def close(self) -> None: ...


def _decode_base64(data: str) -> bytes | str:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        return data


def envelope_from_request(headers: Any, body: bytes, content_type: str) -> dict[str, Any]:
    """
    Build an event envelope from an HTTP request.

    Binary mode (``ce-id`` header present): attributes come from ``ce-*``
    headers and the body is the raw data. Structured mode: the body is a
    JSON envelope carrying ``data`` (or ``data_base64``). Anything else is
    treated as bare data.
    """
    if headers.get("ce-id"):
        return {
            "id": headers.get("ce-id"),
            "type": headers.get("ce-type"),
            "subject": headers.get("ce-subject"),
            "deliveryAttempt": headers.get("ce-deliveryattempt"),
            "dataContentType": content_type or None,
            "data": body,
        }

    try:
        parsed = json.loads(body.decode("utf-8")) if body else None
    except (UnicodeDecodeError, json.JSONDecodeError):
        parsed = None

    if isinstance(parsed, dict) and ("data" in parsed or "data_base64" in parsed):
        envelope = dict(parsed)
        if "data" not in envelope:
            envelope["data"] = _decode_base64(str(envelope.pop("data_base64")))
        return envelope

    return {"data": body, "dataContentType": content_type or None}


class EventReceiver:
    """aiohttp handlers bridging HTTP deliveries to the processor."""

    def __init__(
        self,
        processor: ChangeEventProcessor,
        store: RedisCacheStore | None = None,
        worker_name: str = "cache-sync",
    ):
        self.processor = processor
        self.store = store
        self.worker_name = worker_name
        self._started_at = datetime.now(UTC)

    async def handle_event(self, request: web.Request) -> web.Response:
        collection = request.match_info.get("collection")
        body = await request.read()
        envelope = envelope_from_request(request.headers, body, request.content_type)
        event = ChangeEvent.from_envelope(envelope, collection_name=collection)

        try:
            outcome = await self.processor.process(event)
        except RetryableEventError as e:
            return web.json_response(
                {"retryable": True, "reason": e.reason, "event_id": event.event_id},
                status=500,
            )

        logger.debug(
            "Event acknowledged",
            extra={"event_id": outcome.event_id, "outcome": outcome.status.value},
        )
        return web.Response(status=204)

    async def handle_liveness(self, request: web.Request) -> web.Response:
        uptime_seconds = (datetime.now(UTC) - self._started_at).total_seconds()
        return web.json_response(
            {
                "status": "alive",
                "worker": self.worker_name,
                "uptime_seconds": int(uptime_seconds),
                "timestamp": datetime.now(UTC).isoformat(),
            },
            status=200,
        )

    async def handle_readiness(self, request: web.Request) -> web.Response:
        connected = self.store is None or self.store.connected
        return web.json_response(
            {
                "status": "ready" if connected else "not_ready",
                "worker": self.worker_name,
                "checks": {"cache_store_connected": connected},
                "timestamp": datetime.now(UTC).isoformat(),
            },
            status=200 if connected else 503,
        )


def create_app(
    processor: ChangeEventProcessor,
    store: RedisCacheStore | None = None,
    closeables: Iterable[Closeable] = (),
    worker_name: str = "cache-sync",
) -> web.Application:
    """
    Create the aiohttp application.

    The cache store connects during startup, before the site accepts
    events. On cleanup the closeables (HTTP clients) and then the store
    are closed.
    """
    receiver = EventReceiver(processor, store=store, worker_name=worker_name)
    to_close = list(closeables)

    async def on_startup(app: web.Application) -> None:
        if store is not None:
            await store.connect()

    async def on_cleanup(app: web.Application) -> None:
        for closeable in to_close:
            await closeable.close()
        if store is not None:
            await store.close()
        logger.info("Event receiver resources released")

    app = web.Application()
    app.router.add_get("/health/live", receiver.handle_liveness)
    app.router.add_get("/health/ready", receiver.handle_readiness)
    app.router.add_post("/", receiver.handle_event)
    app.router.add_post("/{collection}", receiver.handle_event)
    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app


def create_app_from_config(config: CacheSyncConfig) -> web.Application:
    """Wire every pipeline component from configuration."""
    router = CollectionRouter.from_config(config)
    store = RedisCacheStore.from_config(config.redis)
    api_client = EnrichmentApiClient.from_config(config.api)
    sink = JsonFileAuditSink(config.audit.storage_path, config.audit.collection)

    processor = ChangeEventProcessor(
        enrichment=EnrichmentService(api_client, router, mock_client=MockEnrichmentClient()),
        writer=CacheWriter(store, router),
        recorder=FailureRecorder(sink),
        router=router,
        max_delivery_attempts=config.max_delivery_attempts,
    )
    return create_app(processor, store=store, closeables=[api_client])


__all__ = [
    "EventReceiver",
    "create_app",
    "create_app_from_config",
    "envelope_from_request",
]
