"""Enrichment REST API client: credential, summary, current-log and profile lookups."""

import asyncio
import json
import logging
from typing import Any

import aiohttp

from cache_sync import metrics
from config.config import ApiConfig
from core.errors import (
    PipelineError,
    SchemaError,
    classify_api_error,
    wrap_transport_error,
)
from core.logging.context import get_log_context

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 2.0


class EnrichmentApiClient:
    """
    Async client for the enrichment API.

    Every call carries its own total timeout and is attempted exactly once;
    redelivery of the whole event is the pipeline's retry mechanism. Non-2xx
    responses raise the matching taxonomy error, transport failures raise
    NetworkTransientError (recognized codes) or UnknownError.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        time_zone: str = "America/Los_Angeles",
        summary_mode: str = "ML",
        token_path: str = "/token/{parent_id}",
        summary_path: str = "/summary",
        current_logs_path: str = "/current-logs",
        profile_path: str = "/profile/{child_id}",
    ):
        self.base_url = base_url.rstrip("/") if base_url else ""

        if not self.base_url:
            raise ValueError(
                "EnrichmentApiClient requires 'base_url'. "
                "Set ENRICHMENT_API_URL environment variable or configure api.base_url in config."
            )

        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(
                f"EnrichmentApiClient base_url must start with http:// or https://, got: {self.base_url!r}"
            )

        self.timeout_seconds = timeout_seconds
        self.time_zone = time_zone
        self.summary_mode = summary_mode
        self.token_path = token_path
        self.summary_path = summary_path
        self.current_logs_path = current_logs_path
        self.profile_path = profile_path

        self._session: aiohttp.ClientSession | None = None
        self._closed = False

        logger.info(
            "EnrichmentApiClient initialized",
            extra={
                "api_url": self.base_url,
                "timeout_seconds": self.timeout_seconds,
            },
        )

    @classmethod
    def from_config(cls, config: ApiConfig) -> "EnrichmentApiClient":
        return cls(
            base_url=config.base_url,
            timeout_seconds=config.timeout_seconds,
            time_zone=config.time_zone,
            summary_mode=config.summary_mode,
            token_path=config.token_path,
            summary_path=config.summary_path,
            current_logs_path=config.current_logs_path,
            profile_path=config.profile_path,
        )

    async def __aenter__(self) -> "EnrichmentApiClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> None:
        if self._closed:
            raise RuntimeError("EnrichmentApiClient is closed, cannot create new session")
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )

    async def close(self) -> None:
        self._closed = True
        if self._session and not self._session.closed:
            await self._session.close()
            await asyncio.sleep(0)
            self._session = None

    @staticmethod
    def _get_context_ids() -> dict[str, str]:
        """Extract the current event id from log context for log enrichment."""
        return {k: v for k, v in get_log_context().items() if v and k == "event_id"}

    async def _handle_error_response(
        self, response: aiohttp.ClientResponse, url: str, endpoint: str, method: str, duration: float
    ) -> None:
        """Read error body, classify error and raise."""
        try:
            response_body = await response.text()
            response_body_log = (
                response_body[:500] + "..." if len(response_body) > 500 else response_body
            )
        except (aiohttp.ClientError, UnicodeDecodeError):
            response_body_log = "<unable to read response body>"

        error = classify_api_error(response.status, url)
        logger.warning(
            "API request failed",
            extra={
                **self._get_context_ids(),
                "api_endpoint": endpoint,
                "api_method": method,
                "api_url": url,
                "http_status": response.status,
                "error_kind": error.kind,
                "error_message": response_body_log,
                "duration_ms": round(duration * 1000, 1),
            },
        )
        raise error

    async def _request(
        self,
        method: str,
        endpoint: str,
        path: str,
        token: str | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        await self._ensure_session()

        url = f"{self.base_url}/{path.lstrip('/')}"
        ctx = self._get_context_ids()

        logger.debug(
            "API request starting",
            extra={
                **ctx,
                "api_endpoint": endpoint,
                "api_method": method,
                "api_url": url,
            },
        )

        headers = {"Authorization": f"Bearer {token}"} if token else None

        loop = asyncio.get_running_loop()
        start_time = loop.time()
        outcome = "error"
        try:
            if self._session is None:
                raise RuntimeError("HTTP session not initialized - call _ensure_session() first")
            async with self._session.request(
                method,
                url,
                json=json_body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                duration = loop.time() - start_time

                if not 200 <= response.status < 300:
                    await self._handle_error_response(response, url, endpoint, method, duration)

                raw_body = await response.read()
                try:
                    data = json.loads(raw_body.decode("utf-8")) if raw_body else None
                except (UnicodeDecodeError, json.JSONDecodeError) as e:
                    raise SchemaError(
                        f"Response is not valid UTF-8 JSON: {url}",
                        cause=e,
                        status_code=response.status,
                    ) from e

                outcome = "success"
                log_level = logging.INFO if duration > SLOW_REQUEST_SECONDS else logging.DEBUG
                log_msg = "Slow API request" if duration > SLOW_REQUEST_SECONDS else "API request succeeded"
                logger.log(
                    log_level,
                    log_msg,
                    extra={
                        **ctx,
                        "api_endpoint": endpoint,
                        "api_method": method,
                        "http_status": response.status,
                        "duration_ms": round(duration * 1000, 1),
                    },
                )
                return data

        except PipelineError:
            raise

        except (aiohttp.ClientError, TimeoutError, OSError) as e:
            duration = loop.time() - start_time
            error = wrap_transport_error(e, url)
            logger.warning(
                "API request transport failure",
                extra={
                    **ctx,
                    "api_endpoint": endpoint,
                    "api_method": method,
                    "api_url": url,
                    "timeout_seconds": self.timeout_seconds,
                    "duration_ms": round(duration * 1000, 1),
                    "error_kind": error.kind,
                    "transport_code": error.transport_code,
                },
            )
            raise error from e

        finally:
            metrics.record_enrichment_call(endpoint, outcome, loop.time() - start_time)

    # =========================================================================
    # Endpoints
    # =========================================================================

    async def get_token(self, parent_id: str) -> str:
        """Fetch a bearer credential scoped to the parent."""
        data = await self._request(
            "GET", "token", self.token_path.format(parent_id=parent_id)
        )
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise SchemaError(
                "credential response missing token field",
                context={"parent_id": parent_id},
            )
        return str(token)

    async def get_summary(self, parent_id: str | None, child_id: str, token: str) -> Any:
        """Multi-day aggregate summary for a child. Payload shape is opaque."""
        return await self._request(
            "POST",
            "summary",
            self.summary_path,
            token=token,
            json_body={
                "childId": child_id,
                "parentId": parent_id,
                "timeZone": self.time_zone,
                "mode": self.summary_mode,
            },
        )

    async def get_current_logs(self, child_id: str, token: str) -> dict[str, Any]:
        """Current-period logs: ``{sleep, feed, diaper, pumping}`` lists."""
        data = await self._request(
            "POST",
            "current-logs",
            self.current_logs_path,
            token=token,
            json_body={"childId": child_id, "timeZone": self.time_zone},
        )
        if not isinstance(data, dict):
            raise SchemaError("current-logs response is not an object")
        return data

    async def get_profile(self, child_id: str, token: str) -> dict[str, Any]:
        data = await self._request(
            "GET",
            "profile",
            self.profile_path.format(child_id=child_id),
            token=token,
        )
        if not isinstance(data, dict):
            raise SchemaError("profile response is not an object")
        return data


__all__ = ["EnrichmentApiClient"]
