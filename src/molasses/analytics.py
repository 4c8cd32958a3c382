"""Analytics events and their upload to POST /analytics."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import MolassesConfig
from .exceptions import MolassesError, MolassesErrorCodes

EXPERIMENT_STARTED = "experiment_started"
EXPERIMENT_SUCCESS = "experiment_success"


@dataclass
class AnalyticsEvent:
    """One analytics event."""

    event: str
    user_id: str = ""
    tags: dict[str, Any] = field(default_factory=dict)
    feature_id: str = ""
    feature_name: str = ""
    test_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "featureId": self.feature_id,
            "userId": self.user_id,
            "featureName": self.feature_name,
            "event": self.event,
            "tags": self.tags,
            "testType": self.test_type,
        }


class EventUploader:
    """Sends analytics events to the Molasses API with httpx."""

    def __init__(self, config: MolassesConfig) -> None:
        self._config = config
        self._headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {config.api_key}",
        }

    def _make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._config.base_url,
            headers=self._headers,
            timeout=self._config.timeout_seconds,
        )

    async def upload(self, event: AnalyticsEvent) -> None:
        try:
            async with self._make_client() as client:
                resp = await client.post("/analytics", json=event.to_dict())
        except httpx.HTTPError as e:
            raise MolassesError(
                code=MolassesErrorCodes.CONNECTION_ERROR,
                message=f"Failed to upload event {event.event}: {e}",
                cause=e,
            ) from e
        if resp.status_code >= 400:
            raise MolassesError(
                code=MolassesErrorCodes.HTTP_ERROR,
                message=f"upload_event({event.event}): HTTP {resp.status_code}: {resp.text}",
            )


def merge_tags(
    params: dict[str, Any] | None,
    additional_details: dict[str, Any] | None,
) -> dict[str, Any]:
    """Combine user params and per-call details into a new tag dict."""
    tags = dict(params or {})
    if additional_details:
        tags.update(additional_details)
    return tags
