"""Polling transport: GET /features with ETag revalidation."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from .config import MolassesConfig
from .exceptions import MolassesError, MolassesErrorCodes
from .models import FeaturesResponse

logger = structlog.get_logger(__name__)


class FeatureFetcher:
    """Fetches feature definitions from the Molasses API with httpx."""

    def __init__(self, config: MolassesConfig) -> None:
        self._config = config
        self._headers: dict[str, str] = {"Authorization": f"Bearer {config.api_key}"}
        self._etag = ""

    @property
    def etag(self) -> str:
        return self._etag

    def _make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._config.base_url,
            headers=self._headers,
            timeout=self._config.timeout_seconds,
        )

    def _handle_error(self, resp: httpx.Response) -> None:
        if resp.status_code in (401, 403):
            raise MolassesError(
                code=MolassesErrorCodes.UNAUTHORIZED,
                message=f"fetch_features: HTTP {resp.status_code}: Molasses is unauthorized",
            )
        if resp.status_code >= 400:
            raise MolassesError(
                code=MolassesErrorCodes.HTTP_ERROR,
                message=f"fetch_features: HTTP {resp.status_code}: {resp.text}",
            )

    async def fetch(self) -> FeaturesResponse | None:
        """Fetch all features.

        Returns:
            the parsed response, or None when the server answered 304 Not Modified

        Raises:
            MolassesError: on HTTP, network or payload errors
        """
        headers: dict[str, str] = {}
        if self._etag:
            headers["If-None-Match"] = self._etag
        try:
            async with self._make_client() as client:
                resp = await client.get("/features", headers=headers)
        except httpx.HTTPError as e:
            raise MolassesError(
                code=MolassesErrorCodes.CONNECTION_ERROR,
                message=f"Failed to fetch features: {e}",
                cause=e,
            ) from e

        if resp.status_code == 304:
            logger.debug("features not modified", etag=self._etag)
            return None
        self._handle_error(resp)
        try:
            data: dict[str, Any] = resp.json()
        except ValueError as e:
            raise MolassesError(
                code=MolassesErrorCodes.PARSE_ERROR,
                message=f"Invalid JSON from /features: {e}",
                cause=e,
            ) from e
        response = FeaturesResponse.from_dict(data)
        self._etag = resp.headers.get("ETag", "")
        return response
