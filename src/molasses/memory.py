"""InMemoryMolassesClient implementation."""

from __future__ import annotations

from typing import Any

from .analytics import EXPERIMENT_STARTED, EXPERIMENT_SUCCESS, AnalyticsEvent, merge_tags
from .cache import FeatureCache
from .evaluator import evaluate
from .exceptions import MolassesError, MolassesErrorCodes
from .models import EvaluationReason, EvaluationResult, Feature, User


class InMemoryMolassesClient:
    """Client for tests: evaluates real rules, records events instead of sending them."""

    def __init__(self, features: list[Feature] | None = None) -> None:
        self._cache = FeatureCache(features or [])
        self._started = False
        self.events: list[AnalyticsEvent] = []

    def set_feature(self, feature: Feature) -> None:
        """Add or replace a feature."""
        self._cache.update([feature])

    def get_feature(self, key: str) -> Feature:
        feature = self._cache.get(key)
        if feature is None:
            raise MolassesError(
                MolassesErrorCodes.FEATURE_NOT_FOUND,
                f"Feature not found: {key}",
            )
        return feature

    async def start(self) -> None:
        self._started = True

    async def stop(self) -> None:
        self._started = False

    def is_initiated(self) -> bool:
        return self._started

    def evaluate(self, key: str, user: User | None = None) -> EvaluationResult:
        feature = self._cache.get(key)
        if feature is None:
            return EvaluationResult(
                feature_key=key,
                active=False,
                reason=EvaluationReason.FEATURE_NOT_FOUND,
            )
        return evaluate(feature, user)

    def is_active(self, key: str, user: User | None = None) -> bool:
        return self.evaluate(key, user).active

    def track(
        self,
        event_name: str,
        user: User,
        additional_details: dict[str, Any] | None = None,
    ) -> None:
        self.events.append(
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
        self._record(EXPERIMENT_STARTED, key, user, additional_details)

    def experiment_success(
        self,
        key: str,
        user: User,
        additional_details: dict[str, Any] | None = None,
    ) -> None:
        self._record(EXPERIMENT_SUCCESS, key, user, additional_details)

    def _record(
        self,
        event_name: str,
        key: str,
        user: User,
        additional_details: dict[str, Any] | None,
    ) -> None:
        result = self.evaluate(key, user)
        if result.reason == EvaluationReason.FEATURE_NOT_FOUND:
            return
        self.events.append(
            AnalyticsEvent(
                event=event_name,
                user_id=user.id,
                tags=merge_tags(user.params, additional_details),
                feature_id=result.feature_id,
                feature_name=key,
                test_type=result.branch,
            )
        )
