"""FeatureClient protocol."""

from __future__ import annotations

from typing import Any, Protocol

from .models import EvaluationResult, User


class FeatureClient(Protocol):
    """Public contract shared by MolassesClient and InMemoryMolassesClient."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    def is_initiated(self) -> bool: ...

    def is_active(self, key: str, user: User | None = None) -> bool: ...

    def evaluate(self, key: str, user: User | None = None) -> EvaluationResult: ...

    def track(
        self,
        event_name: str,
        user: User,
        additional_details: dict[str, Any] | None = None,
    ) -> None: ...

    def experiment_started(
        self,
        key: str,
        user: User,
        additional_details: dict[str, Any] | None = None,
    ) -> None: ...

    def experiment_success(
        self,
        key: str,
        user: User,
        additional_details: dict[str, Any] | None = None,
    ) -> None: ...
