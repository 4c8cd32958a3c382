"""Push transport: server-sent events from GET /event-stream."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable

import httpx
import structlog

from .config import MolassesConfig
from .exceptions import MolassesError, MolassesErrorCodes
from .models import FeaturesResponse

logger = structlog.get_logger(__name__)

FeaturesHandler = Callable[[FeaturesResponse], Awaitable[None] | None]

STREAM_PATH = "/event-stream"
STREAM_NAME = "messages"


async def iter_event_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the data of each server-sent event read from ``lines``.

    Multiple ``data:`` lines of one event are joined with newlines; a blank
    line ends the event. Comments and other fields are ignored.
    """
    buffer: list[str] = []
    async for line in lines:
        if not line:
            if buffer:
                yield "\n".join(buffer)
                buffer = []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if name != "data":
            continue
        buffer.append(value[1:] if value.startswith(" ") else value)
    if buffer:
        yield "\n".join(buffer)


class FeatureStream:
    """Subscribes to feature updates pushed by the Molasses API."""

    def __init__(self, config: MolassesConfig) -> None:
        self._config = config
        self._headers: dict[str, str] = {
            "Authorization": f"Bearer {config.api_key}",
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
        }
        self._connected = False
        self._established = False

    @property
    def connected(self) -> bool:
        return self._connected

    def _make_client(self) -> httpx.AsyncClient:
        # no read timeout: the server holds the connection open between events
        return httpx.AsyncClient(
            base_url=self._config.base_url,
            headers=self._headers,
            timeout=httpx.Timeout(self._config.timeout_seconds, read=None),
        )

    def _handle_error(self, resp: httpx.Response) -> None:
        if resp.status_code in (401, 403):
            raise MolassesError(
                code=MolassesErrorCodes.UNAUTHORIZED,
                message="Molasses is unauthorized",
            )
        if resp.status_code >= 400:
            raise MolassesError(
                code=MolassesErrorCodes.HTTP_ERROR,
                message=(
                    "There is an issue connecting to Molasses status code - "
                    f"{resp.status_code}"
                ),
            )

    async def listen(self, on_features: FeaturesHandler) -> None:
        """Hold one stream connection open, handing every update to ``on_features``.

        Returns when the server closes the stream.

        Raises:
            MolassesError: when the connection is refused or drops
        """
        self._established = False
        try:
            async with self._make_client() as client:
                async with client.stream(
                    "GET", STREAM_PATH, params={"stream": STREAM_NAME}
                ) as resp:
                    self._handle_error(resp)
                    self._connected = True
                    self._established = True
                    logger.info("molasses stream connected")
                    async for data in iter_event_data(resp.aiter_lines()):
                        await self._dispatch(data, on_features)
        except httpx.HTTPError as e:
            raise MolassesError(
                code=MolassesErrorCodes.CONNECTION_ERROR,
                message=f"Stream connection failed: {e}",
                cause=e,
            ) from e
        finally:
            if self._connected:
                logger.info("molasses stream disconnected")
            self._connected = False

    async def _dispatch(self, data: str, on_features: FeaturesHandler) -> None:
        try:
            response = FeaturesResponse.from_dict(json.loads(data))
        except (ValueError, MolassesError) as e:
            logger.error("error refreshing features", error=str(e))
            return
        outcome = on_features(response)
        if outcome is not None:
            await outcome

    async def run(self, on_features: FeaturesHandler) -> None:
        """Listen forever, reconnecting with exponential backoff."""
        attempt = 0
        while True:
            error: Exception | None = None
            try:
                await self.listen(on_features)
            except MolassesError as e:
                error = e
            # a connection that got through starts the backoff over
            if self._established:
                attempt = 0
            delay = self._config.backoff.compute_delay(attempt)
            logger.warning(
                "molasses stream reconnecting",
                error=str(error) if error else "stream closed",
                delay_seconds=round(delay, 3),
            )
            attempt += 1
            await asyncio.sleep(delay)
