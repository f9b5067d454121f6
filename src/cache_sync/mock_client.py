"""
Mock enrichment source for test collections.

Serves fixed fixture data without outbound calls. Every payload is marked
``testMode: true`` so cached test data is never mistaken for real data.
"""

import logging
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

MOCK_TOKEN = "test-token-123"


class MockEnrichmentClient:
    """Drop-in replacement for EnrichmentApiClient backed by fixture data."""

    def __init__(self, token: str = MOCK_TOKEN):
        self.token = token
        self.calls: list[tuple[str, str | None]] = []

    async def get_token(self, parent_id: str) -> str:
        self.calls.append(("token", parent_id))
        return self.token

    async def get_summary(self, parent_id: str | None, child_id: str, token: str) -> dict[str, Any]:
        self.calls.append(("summary", child_id))
        return {
            "testMode": True,
            "parentId": parent_id,
            "childId": child_id,
            "summary": "This is test summary data for last 7 days",
            "timestamp": datetime.now(UTC).isoformat(),
        }

    async def get_current_logs(self, child_id: str, token: str) -> dict[str, Any]:
        self.calls.append(("current-logs", child_id))
        return {
            "testMode": True,
            "sleep": [{"id": 1, "duration": "8 hours"}],
            "feed": [{"id": 1, "amount": "6 oz"}],
            "diaper": [{"id": 1, "type": "wet"}],
            "pumping": [{"id": 1, "amount": "4 oz"}],
        }

    async def get_profile(self, child_id: str, token: str) -> dict[str, Any]:
        self.calls.append(("profile", child_id))
        return {
            "testMode": True,
            "name": "Test Child",
            "dateOfBirth": "2024-01-01",
            "gender": "unspecified",
        }

    async def close(self) -> None:
        logger.debug("Mock enrichment client closed")


__all__ = ["MockEnrichmentClient", "MOCK_TOKEN"]
