"""MolassesClient: feature cache, background refresh and analytics dispatch."""

from __future__ import annotations

import asyncio
import contextlib
from types import TracebackType
from typing import Any

import structlog

from .analytics import (
    EXPERIMENT_STARTED,
    EXPERIMENT_SUCCESS,
    AnalyticsEvent,
    EventUploader,
    merge_tags,
)
from .cache import FeatureCache
from .config import MolassesConfig
from .evaluator import evaluate
from .exceptions import MolassesError, MolassesErrorCodes
from .fetcher import FeatureFetcher
from .logger import set_level
from .models import EvaluationReason, EvaluationResult, FeaturesResponse, User
from .stream import FeatureStream

logger = structlog.get_logger(__name__)


class MolassesClient:
    """Evaluates features locally against a cache kept fresh in the background.

    Polling mode fetches ``/features`` every ``refresh_interval_seconds``;
    otherwise updates are pushed over the event stream. Evaluation never waits
    on the network, and analytics uploads are fire-and-forget.

    Raises:
        MolassesError: CONFIG_ERROR when no API key is configured
    """

    def __init__(self, config: MolassesConfig, cache: FeatureCache | None = None) -> None:
        if not config.api_key:
            raise MolassesError(
                code=MolassesErrorCodes.CONFIG_ERROR,
                message="API key must be supplied",
            )
        if config.debug:
            set_level("DEBUG")
        self._config = config
        self._cache = cache if cache is not None else FeatureCache()
        self._fetcher = FeatureFetcher(config)
        self._stream = FeatureStream(config)
        self._uploader = EventUploader(config)
        self._initiated = False
        self._task: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._uploads: set[asyncio.Task[None]] = set()

    @property
    def cache(self) -> FeatureCache:
        return self._cache

    async def __aenter__(self) -> MolassesClient:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def start(self) -> None:
        """Load features and start the background refresh task."""
        if self._task is not None:
            return
        self._loop = asyncio.get_running_loop()
        if self._config.polling:
            try:
                await self.refresh()
                logger.info("molasses is connected, polling, and initiated")
            except MolassesError as e:
                logger.error("error fetching molasses features", error=str(e))
            self._task = asyncio.create_task(self._poll_loop())
        else:
            self._task = asyncio.create_task(self._stream.run(self._apply))

    async def stop(self) -> None:
        """Stop refreshing and wait briefly for in-flight uploads. Safe to call twice."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._uploads:
            _, pending = await asyncio.wait(
                set(self._uploads), timeout=self._config.timeout_seconds
            )
            for upload in pending:
                upload.cancel()
            if pending:
                logger.warning("analytics uploads cancelled on stop", count=len(pending))
                await asyncio.gather(*pending, return_exceptions=True)
        self._initiated = False

    def is_initiated(self) -> bool:
        return self._initiated

    def is_stream_connected(self) -> bool:
        return self._stream.connected

    async def refresh(self) -> None:
        """Fetch features once and merge them into the cache."""
        response = await self._fetcher.fetch()
        if response is None:
            self._initiated = True
            return
        self._apply(response)

    def _apply(self, response: FeaturesResponse) -> None:
        applied = self._cache.update(response.features)
        if self._config.debug:
            logger.debug("features refreshed", count=applied, environment=response.name)
        if not self._initiated:
            logger.info("molasses is initiated", features=len(self._cache))
        self._initiated = True

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.refresh_interval_seconds)
            try:
                await self.refresh()
            except MolassesError as e:
                logger.error("error refreshing features", error=str(e))

    def evaluate(self, key: str, user: User | None = None) -> EvaluationResult:
        """Evaluate a feature, keeping the reason and feature id alongside the result."""
        feature = self._cache.get(key)
        if feature is None:
            logger.warning("feature flag not set in environment", feature_key=key)
            return EvaluationResult(
                feature_key=key,
                active=False,
                reason=EvaluationReason.FEATURE_NOT_FOUND,
            )
        result = evaluate(feature, user)
        if self._config.debug:
            logger.debug(
                "feature evaluated",
                feature_key=key,
                active=result.active,
                reason=result.reason,
            )
        return result

    def is_active(self, key: str, user: User | None = None) -> bool:
        """Check whether a feature is active, optionally for a specific user.

        With ``auto_send_events`` set, evaluating for a user also reports an
        experiment_started event.
        """
        result = self.evaluate(key, user)
        if (
            user is not None
            and self._config.auto_send_events
            and result.reason != EvaluationReason.FEATURE_NOT_FOUND
        ):
            self._dispatch(
                AnalyticsEvent(
                    event=EXPERIMENT_STARTED,
                    user_id=user.id,
                    tags=merge_tags(user.params, None),
                    feature_id=result.feature_id,
                    feature_name=key,
                    test_type=result.branch,
                )
            )
        return result.active

    def track(
        self,
        event_name: str,
        user: User,
        additional_details: dict[str, Any] | None = None,
    ) -> None:
        self._dispatch(
            AnalyticsEvent(
                event=event_name,
                user_id=user.id,
                tags=merge_tags(user.params, additional_details),
            )
        )

    def experiment_started(
        self,
        key: str,
        user: User,
        additional_details: dict[str, Any] | None = None,
    ) -> None:
        self._experiment_event(EXPERIMENT_STARTED, key, user, additional_details)

    def experiment_success(
        self,
        key: str,
        user: User,
        additional_details: dict[str, Any] | None = None,
    ) -> None:
        self._experiment_event(EXPERIMENT_SUCCESS, key, user, additional_details)

    def _experiment_event(
        self,
        event_name: str,
        key: str,
        user: User,
        additional_details: dict[str, Any] | None,
    ) -> None:
        if not self._initiated:
            return
        result = self.evaluate(key, user)
        if result.reason == EvaluationReason.FEATURE_NOT_FOUND:
            return
        self._dispatch(
            AnalyticsEvent(
                event=event_name,
                user_id=user.id,
                tags=merge_tags(user.params, additional_details),
                feature_id=result.feature_id,
                feature_name=key,
                test_type=result.branch,
            )
        )

    def _dispatch(self, event: AnalyticsEvent) -> None:
        try:
            running: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is not None and (self._loop is None or running is self._loop):
            self._spawn_upload(event)
        elif self._loop is not None and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._spawn_upload, event)
        else:
            logger.warning("analytics event dropped, no running event loop", event=event.event)

    def _spawn_upload(self, event: AnalyticsEvent) -> None:
        task = asyncio.get_running_loop().create_task(self._upload(event))
        self._uploads.add(task)
        task.add_done_callback(self._uploads.discard)

    async def _upload(self, event: AnalyticsEvent) -> None:
        try:
            await self._uploader.upload(event)
        except MolassesError as e:
            logger.error("error uploading event", event=event.event, error=str(e))
